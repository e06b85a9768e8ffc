"""REST API routes (read-only views of the dashboard state)."""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from fxpulse.dashboard import Dashboard
from fxpulse_core import timeframes

logger = logging.getLogger(__name__)

router = APIRouter()


# Response models
class TransportStatus(BaseModel):
    """Feed connection status."""

    url: str
    is_connected: bool
    is_connecting: bool
    connection_error: Optional[str] = None
    reconnect_attempts: int


class SystemStatus(BaseModel):
    """System status response."""

    status: str
    version: str
    transport: TransportStatus
    consumers: list[str]
    trading_style: str
    indicator_weighting: str
    active_timeframe: str


class BarResponse(BaseModel):
    """Bar response model."""

    time: int | float | str
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None


class BarsResponse(BaseModel):
    consumer: str
    symbol: str
    timeframe: str
    count: int
    bars: list[BarResponse]


class StrengthResponse(BaseModel):
    """Currency strength response."""

    mode: str
    timeframe: str
    strength: dict[str, float]
    server_strength: Optional[dict[str, float]] = None


def get_dashboard(request: Request) -> Dashboard:
    dashboard = getattr(request.app.state, "dashboard", None)
    if dashboard is None:
        raise HTTPException(status_code=503, detail="Dashboard not running")
    return dashboard


@router.get("/status", response_model=SystemStatus)
async def get_status(request: Request):
    """Get system status."""
    dashboard = get_dashboard(request)
    transport = dashboard.transport.status()
    settings = dashboard.settings

    return SystemStatus(
        status="connected" if transport["is_connected"] else "disconnected",
        version="0.1.0",
        transport=TransportStatus(**transport),
        consumers=list(dashboard.consumers),
        trading_style=settings.trading_style,
        indicator_weighting=settings.indicator_weighting,
        active_timeframe=settings.active_timeframe,
    )


@router.get("/consumers/{name}/bars/{symbol}/{timeframe}", response_model=BarsResponse)
async def get_bars(
    request: Request,
    name: str,
    symbol: str,
    timeframe: str,
    limit: int = Query(100, ge=1, le=100),
):
    """Get cached bars of one consumer, oldest first."""
    dashboard = get_dashboard(request)
    if name not in dashboard.consumers:
        raise HTTPException(status_code=404, detail=f"Unknown consumer '{name}'")

    bars = dashboard.consumers[name].get_bars(symbol, timeframe)[-limit:]
    return BarsResponse(
        consumer=name,
        symbol=symbol,
        timeframe=timeframes.ui_label(timeframe),
        count=len(bars),
        bars=[BarResponse(**b.model_dump(include=set(BarResponse.model_fields))) for b in bars],
    )


@router.get("/heatmap/{symbol}")
async def get_heatmap(
    request: Request,
    symbol: str,
    trading_style: Optional[str] = None,
    indicator_weighting: Optional[str] = None,
):
    """Get the multi-indicator score matrix for a symbol."""
    dashboard = get_dashboard(request)
    heatmap = dashboard.heatmap
    style = trading_style or heatmap.settings.trading_style
    scheme = indicator_weighting or heatmap.settings.indicator_weighting
    if style not in dashboard.weights.styles():
        raise HTTPException(status_code=400, detail=f"Unknown trading style '{style}'")
    if scheme not in dashboard.weights.schemes():
        raise HTTPException(status_code=400, detail=f"Unknown indicator weighting '{scheme}'")

    return heatmap.get_score_matrix(symbol, style, scheme).to_dict()


@router.get("/strength", response_model=StrengthResponse)
async def get_strength(request: Request, mode: Optional[str] = Query(None, pattern="^(closed|live)$")):
    """Get currency strength for the active timeframe."""
    dashboard = get_dashboard(request)
    strength = dashboard.strength
    mode = mode or strength.settings.strength_mode

    return StrengthResponse(
        mode=mode,
        timeframe=strength.settings.active_timeframe,
        strength=strength.get_currency_strength(mode),
        server_strength=strength.get_server_strength(),
    )


class CorrelationPairResponse(BaseModel):
    """RSI correlation status of one pair."""

    pair: str
    symbol1: str
    symbol2: str
    correlation: str
    status: str
    rsi1: float
    rsi2: float


class CorrelationResponse(BaseModel):
    timeframe: str
    overbought: float
    oversold: float
    pairs: list[CorrelationPairResponse]


@router.get("/correlation", response_model=CorrelationResponse)
async def get_correlation(request: Request, status: Optional[str] = Query(None, pattern="^(match|mismatch|neutral)$")):
    """Get RSI correlation status for every pair with data."""
    correlation = get_dashboard(request).correlation
    settings = correlation.settings
    results = correlation.get_correlations().values()

    return CorrelationResponse(
        timeframe=settings.active_timeframe,
        overbought=settings.rsi_overbought,
        oversold=settings.rsi_oversold,
        pairs=[
            CorrelationPairResponse(**asdict(r))
            for r in results
            if status is None or r.status == status
        ],
    )


@router.get("/router/stats")
async def get_router_stats(request: Request):
    """Get message router statistics."""
    return get_dashboard(request).router.stats()
