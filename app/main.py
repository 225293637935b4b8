from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging

from app.core.config import settings
from app.core.exceptions import (
    InvalidPriceError,
    InvalidTickersError,
    NoOpenPositionsError,
    PriceRequestError,
)
from app.api import routes

# Setup Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if settings.PRIMARY_PROVIDER_CONFIGURED:
        logger.info("Price provider: Alpha Vantage (Yahoo Finance fallback)")
    else:
        logger.info("No ALPHA_VANTAGE_API_KEY found. Price provider: Yahoo Finance only")
        logger.info("Get a free API key at: https://www.alphavantage.co/support/#api-key")
    if settings.PRICE_FETCH_DEADLINE_SECONDS is None:
        logger.info("Price requests run to completion (no PRICE_FETCH_DEADLINE_SECONDS set)")

    yield

    # Shutdown
    logger.info("Shutting down...")

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    lifespan=lifespan
)

@app.exception_handler(InvalidTickersError)
async def invalid_tickers_handler(request: Request, exc: InvalidTickersError):
    logger.error("Invalid tickers array provided")
    return JSONResponse(status_code=400, content={"error": str(exc)})

@app.exception_handler(InvalidPriceError)
@app.exception_handler(NoOpenPositionsError)
async def bad_request_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=400, content={"error": str(exc)})

@app.exception_handler(PriceRequestError)
async def price_request_error_handler(request: Request, exc: PriceRequestError):
    return JSONResponse(status_code=500, content={"error": str(exc), "details": exc.details})

app.include_router(routes.router, prefix=settings.API_PREFIX)

@app.get("/health")
async def health():
    return {"status": "ok", "primary_provider_configured": settings.PRIMARY_PROVIDER_CONFIGURED}
