from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API Keys
    x_bearer_token: str = ""
    x_api_base_url: str = "https://api.twitter.com/2"
    grok_api_key: str = ""
    grok_api_url: str = "https://api.x.ai/v1/chat/completions"
    grok_model: str = "grok-2-1212"

    # Acquisition budgets (seconds)
    acquisition_budget_seconds: float = 20.0
    primary_share: float = 0.6
    fallback_floor_seconds: float = 5.0
    pipeline_budget_seconds: float = 30.0
    default_max_count: int = 20

    # Classification
    classification_fanout: int = 8
    use_llm_classifier: bool = False

    # 0 disables the acquisition cache
    cache_bucket_seconds: int = 0

    # Accounts that move the whole market, always worth reading
    market_accounts: str = "elonmusk,Bloomberg,CNBC,Reuters,WSJ,MarketWatch,FederalReserve,DeItaone"

    # Ranker policy
    ranker_position_bias: bool = True
    ranker_position_penalty: float = 0.8
    ranker_watchlist_boost: float = 5.0
    ranker_half_life_hours: float = 24.0
    option_target_days: int = 14
    option_target_move: float = 0.05
    option_confidence_factor: float = 0.9

    log_level: str = "INFO"

    @property
    def market_account_list(self) -> List[str]:
        return [a.strip() for a in self.market_accounts.split(",") if a.strip()]

@lru_cache()
def get_settings():
    return Settings()
