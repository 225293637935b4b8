from typing import List, Any
from datetime import datetime, timezone
import logging
import time

from fastapi import APIRouter, Depends, Request

from app.api import deps
from app.core.exceptions import ToolHubException, PriceRequestError
from app.domain.constants import CallFilter
from app.domain.schemas import (
    ErrorResponse,
    InsiderDashboard,
    LLMCall,
    ManualPriceIn,
    PriceRefreshResult,
    PriceUpdate,
    StockPriceResponse,
)
from app.services.insider_service import InsiderService, manual_price_update
from app.services.price_fetcher import PriceFetcher

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post(
    "/stock-price",
    response_model=StockPriceResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def get_stock_prices(
    request: Request,
    fetcher: PriceFetcher = Depends(deps.get_price_fetcher)
) -> Any:
    """Fetch the latest price for each ticker in `{"tickers": [...]}`; unpriced tickers map to null."""
    started = time.monotonic()
    logger.info("=== Stock Price API Request Started ===")
    try:
        body = await request.json()
        tickers = body.get("tickers") if isinstance(body, dict) else None
        prices = await fetcher.fetch_prices(tickers)
    except ToolHubException:
        raise
    except Exception as e:
        logger.error(f"=== Request Failed after {(time.monotonic() - started) * 1000:.0f}ms ===", exc_info=True)
        raise PriceRequestError(str(e))
    return StockPriceResponse(prices=prices)

# --- Insider Dashboard Endpoints ---

@router.post("/insider/calls", response_model=InsiderDashboard)
async def build_insider_dashboard(
    calls: List[LLMCall],
    filter: CallFilter = CallFilter.OPEN,
    service: InsiderService = Depends(deps.get_insider_service)
) -> Any:
    """Parse LLM call rows and attach P&L, holding days and summary stats."""
    return service.build_dashboard(calls, call_filter=filter)

@router.post(
    "/insider/calls/refresh-prices",
    response_model=PriceRefreshResult,
    responses={400: {"model": ErrorResponse}},
)
async def refresh_insider_prices(
    calls: List[LLMCall],
    service: InsiderService = Depends(deps.get_insider_service)
) -> Any:
    """Fetch current prices for all open calls and return the row updates to apply."""
    return await service.refresh_open_call_prices(calls)

@router.post(
    "/insider/calls/{call_id}/price",
    response_model=PriceUpdate,
    responses={400: {"model": ErrorResponse}},
)
async def set_insider_call_price(call_id: int, price_in: ManualPriceIn) -> Any:
    """Validate a manually entered price for one call."""
    return manual_price_update(call_id, price_in.price, datetime.now(timezone.utc))
