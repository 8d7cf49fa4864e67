"""
Error taxonomy for the signal pipeline.

InputError and PipelineTimeout reach the caller. SourceDegraded and
ClassificationUncertain are raised internally and handled by the
coordinator and the classifiers respectively.
"""


class SignalBotError(Exception):
    """Base class for all pipeline errors."""


class InputError(SignalBotError, ValueError):
    """Caller supplied unusable input (empty target set, non-positive count)."""


class SourceDegraded(SignalBotError):
    """A post source failed, timed out or was not configured."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class LLMResponseError(SourceDegraded):
    """The LLM answered with something that could not be used."""

    def __init__(self, message: str):
        super().__init__("llm", message)


class PipelineTimeout(SignalBotError, TimeoutError):
    """The analysis exceeded its overall time budget."""

    def __init__(self, budget: float):
        super().__init__(f"Analysis did not finish within {budget:.1f}s")
        self.budget = budget


class ClassificationUncertain(SignalBotError):
    """A classifier could not confidently assign ticker or direction for a post."""

    def __init__(self, post_id: str, reason: str):
        super().__init__(f"post {post_id}: {reason}")
        self.post_id = post_id
        self.reason = reason
