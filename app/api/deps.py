from fastapi import Depends

from app.core.config import Settings, settings
from app.domain.schemas import ProviderConfig
from app.adapters.alpha_vantage_adapter import AlphaVantageAdapter
from app.adapters.yahoo_finance_adapter import YahooFinanceAdapter
from app.services.price_fetcher import PriceFetcher
from app.services.insider_service import InsiderService

def get_settings() -> Settings:
    return settings

def get_provider_config(app_settings: Settings = Depends(get_settings)) -> ProviderConfig:
    return ProviderConfig.from_settings(app_settings)

def get_price_fetcher(
    config: ProviderConfig = Depends(get_provider_config),
    app_settings: Settings = Depends(get_settings),
) -> PriceFetcher:
    primary = None
    if config.primary_configured:
        primary = AlphaVantageAdapter(
            api_key=config.primary_api_key,
            base_url=app_settings.ALPHA_VANTAGE_URL,
            timeout=app_settings.PROVIDER_TIMEOUT_SECONDS,
        )
    return PriceFetcher(config=config, primary=primary, fallback=YahooFinanceAdapter())

def get_insider_service(price_fetcher: PriceFetcher = Depends(get_price_fetcher)) -> InsiderService:
    return InsiderService(price_fetcher=price_fetcher)
