from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "ToolHub"
    API_PREFIX: str = "/api"

    # Market Data
    # Primary provider is only used when a key is present.
    ALPHA_VANTAGE_API_KEY: Optional[str] = None
    ALPHA_VANTAGE_URL: str = "https://www.alphavantage.co/query"
    PROVIDER_TIMEOUT_SECONDS: float = 15.0

    # Pacing: Alpha Vantage free tier allows 5 calls/min, 500/day
    PRIMARY_REQUEST_DELAY_MS: int = 13000
    PRIMARY_BATCH_SIZE: int = 5
    PRIMARY_BATCH_DELAY_MS: int = 0

    # Pacing: Yahoo Finance has no published quota
    FALLBACK_REQUEST_DELAY_MS: int = 2000
    FALLBACK_BATCH_SIZE: int = 10
    FALLBACK_BATCH_DELAY_MS: int = 5000

    RATE_LIMIT_COOLDOWN_MS: int = 10000

    # Overall budget for one price request; unset means run to completion
    PRICE_FETCH_DEADLINE_SECONDS: Optional[float] = None

    @property
    def PRIMARY_PROVIDER_CONFIGURED(self) -> bool:
        return bool(self.ALPHA_VANTAGE_API_KEY and self.ALPHA_VANTAGE_API_KEY.strip())

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
