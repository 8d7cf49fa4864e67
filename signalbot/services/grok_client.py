"""
Async client for the Grok chat-completions API.

Both the LLM-backed post source and the LLM impact classifier talk to the
model through this client. Responses are requested as JSON objects; when the
model wraps or truncates its JSON, `parse_json_payload` tries a few repairs
before giving up.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

import httpx

from signalbot.config import get_settings
from signalbot.errors import LLMResponseError, SourceDegraded

logger = logging.getLogger(__name__)

JSON_ONLY_SUFFIX = (
    "\n\nIMPORTANT: Return ONLY valid JSON. Ensure all strings are properly escaped. "
    "Do not include any markdown formatting or code blocks."
)


def parse_json_payload(content: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of raw model output.

    Tries, in order: the raw text, the text with markdown fences removed,
    the outermost {...} span, and that span with a dangling string closed.

    Raises:
        LLMResponseError: If no strategy yields a JSON object
    """
    try:
        parsed = json.loads(content)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    cleaned = re.sub(r"```(?:json)?\s*", "", content.strip(), flags=re.IGNORECASE)

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start < 0 or end <= start:
        raise LLMResponseError(f"No JSON object in response: {content[:200]!r}")

    candidate = cleaned[start:end + 1]
    try:
        parsed = json.loads(candidate)
        if isinstance(parsed, dict):
            logger.debug("Recovered JSON by extracting outer object")
            return parsed
    except json.JSONDecodeError:
        pass

    # Odd number of quotes means a string was cut off before the last brace
    if candidate.count('"') % 2 == 1:
        repaired = candidate[:-1] + '"}'
        try:
            parsed = json.loads(repaired)
            if isinstance(parsed, dict):
                logger.debug("Recovered JSON by closing an unterminated string")
                return parsed
        except json.JSONDecodeError:
            pass

    raise LLMResponseError(f"Unparseable JSON in response: {content[:200]!r}")


class GrokClient:
    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None,
                 model: Optional[str] = None, http_client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()
        self.api_key = settings.grok_api_key if api_key is None else api_key
        self.api_url = api_url or settings.grok_api_url
        self.model = model or settings.grok_model
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete_json(self, prompt: str, temperature: float = 0.7,
                            max_tokens: int = 2000) -> Dict[str, Any]:
        """
        Send a single-turn prompt and return the parsed JSON object.

        Raises:
            SourceDegraded: Missing key, HTTP failure or transport error
            LLMResponseError: The model's answer held no usable JSON
        """
        if not self.configured:
            raise SourceDegraded("llm", "GROK_API_KEY is not configured")

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt + JSON_ONLY_SUFFIX}],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.api_url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.post(self.api_url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise SourceDegraded("llm", f"Grok API error: {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise SourceDegraded("llm", f"Grok API request failed: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMResponseError(f"Unexpected completion shape: {e}") from e

        return parse_json_payload(content)
