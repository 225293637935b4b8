import json
from pydantic import BaseModel, Field, ConfigDict, TypeAdapter, ValidationError, ValidationInfo, field_validator
from typing import List, Optional, Dict, Any
from datetime import datetime

from app.domain.constants import Recommendation

# --- Price Fetcher Schemas ---

class StockPriceResponse(BaseModel):
    prices: Dict[str, Optional[float]]

class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None

class PacingPolicy(BaseModel):
    """Timing knobs for one price request, derived from the active provider order."""
    request_delay_ms: int = Field(..., ge=0)
    batch_delay_ms: int = Field(..., ge=0)
    batch_size: int = Field(..., gt=0)

    model_config = ConfigDict(frozen=True)

class ProviderConfig(BaseModel):
    """
    Read-only provider settings handed to the price fetcher.

    The presence of a primary API key selects both the provider order and
    which pacing profile applies.
    """
    primary_api_key: Optional[str] = None

    primary_pacing: PacingPolicy = PacingPolicy(request_delay_ms=13000, batch_delay_ms=0, batch_size=5)
    fallback_pacing: PacingPolicy = PacingPolicy(request_delay_ms=2000, batch_delay_ms=5000, batch_size=10)
    rate_limit_cooldown_ms: int = Field(10000, ge=0)
    deadline_seconds: Optional[float] = Field(None, gt=0)

    model_config = ConfigDict(frozen=True)

    @property
    def primary_configured(self) -> bool:
        return bool(self.primary_api_key and self.primary_api_key.strip())

    def pacing_policy(self) -> PacingPolicy:
        return self.primary_pacing if self.primary_configured else self.fallback_pacing

    @classmethod
    def from_settings(cls, settings: Any) -> "ProviderConfig":
        return cls(
            primary_api_key=settings.ALPHA_VANTAGE_API_KEY,
            primary_pacing=PacingPolicy(
                request_delay_ms=settings.PRIMARY_REQUEST_DELAY_MS,
                batch_delay_ms=settings.PRIMARY_BATCH_DELAY_MS,
                batch_size=settings.PRIMARY_BATCH_SIZE,
            ),
            fallback_pacing=PacingPolicy(
                request_delay_ms=settings.FALLBACK_REQUEST_DELAY_MS,
                batch_delay_ms=settings.FALLBACK_BATCH_DELAY_MS,
                batch_size=settings.FALLBACK_BATCH_SIZE,
            ),
            rate_limit_cooldown_ms=settings.RATE_LIMIT_COOLDOWN_MS,
            deadline_seconds=settings.PRICE_FETCH_DEADLINE_SECONDS,
        )

# --- Insider Dashboard Schemas ---

class LLMCall(BaseModel):
    """A row of the `llm_calls` table as the dashboard receives it."""
    id: int
    call_date: Optional[str] = None
    batch_id: Optional[str] = None
    ticker: str
    company_name: Optional[str] = None
    recommendation: str
    rank: Optional[int] = None
    signal_strength: Optional[float] = None
    time_horizon: Optional[str] = None
    number_of_insiders: Optional[int] = None
    total_transaction_value: Optional[float] = None
    transaction_dates: Optional[Any] = None  # JSON string
    insider_names: Optional[Any] = None  # JSON string
    entry_price: Optional[float] = None
    entry_date: str
    entry_timestamp: Optional[str] = None
    price_change_pct: Optional[float] = None
    holding_days: Optional[int] = None
    pnl_dollars: Optional[float] = None
    llm_rationale: Optional[str] = None
    market_patterns: Optional[Any] = None  # JSON string
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    insider_avg_price: Optional[float] = None
    insider_prices_json: Optional[Any] = None  # JSON string
    current_price: Optional[float] = None
    last_price_update: Optional[str] = None
    traded: Optional[bool] = None
    is_closed: Optional[bool] = False

    @property
    def is_strong_buy(self) -> bool:
        return self.recommendation == Recommendation.STRONG_BUY.value

_JSON_LIST_ITEMS = {
    "transaction_dates": TypeAdapter(str),
    "insider_names": TypeAdapter(str),
    "market_patterns": TypeAdapter(str),
    "insider_prices_json": TypeAdapter(Optional[float]),
}

class ParsedLLMCall(LLMCall):
    transaction_dates: List[str] = []
    insider_names: List[str] = []
    market_patterns: List[str] = []
    insider_prices_json: List[Optional[float]] = []

    @field_validator(
        "transaction_dates", "insider_names", "market_patterns", "insider_prices_json",
        mode="before",
    )
    @classmethod
    def decode_json_list(cls, value: Any, info: ValidationInfo) -> Any:
        # Stored as JSON text; bad or missing values degrade to an empty list
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return []
        if not isinstance(value, list):
            return []

        # Unreadable prices keep their slot as None; other bad items are dropped
        adapter = _JSON_LIST_ITEMS[info.field_name]
        keep_slot = info.field_name == "insider_prices_json"
        items = []
        for item in value:
            try:
                items.append(adapter.validate_python(item))
            except ValidationError:
                if keep_slot:
                    items.append(None)
        return items

class InsiderCallView(ParsedLLMCall):
    pnl_pct: Optional[float] = None
    days_held: int = 0
    earliest_insider_date: Optional[datetime] = None

class DashboardStats(BaseModel):
    active_calls: int
    avg_pnl_pct: float
    total_transaction_value: float
    strong_buy_count: int

class InsiderDashboard(BaseModel):
    calls: List[InsiderCallView]
    stats: DashboardStats

class PriceUpdate(BaseModel):
    id: int
    current_price: float
    last_price_update: datetime

class PriceRefreshResult(BaseModel):
    updates: List[PriceUpdate]
    success_count: int
    ticker_count: int

class ManualPriceIn(BaseModel):
    price: Any = None
