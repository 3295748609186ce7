"""
FastAPI REST API for zone and regime analysis.

Stateless endpoints: every request carries its own bars. Each request builds
a throwaway TradingSession over an in-memory market data port, so nothing
is shared between requests.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional, Any

from fastapi import FastAPI, Depends
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from pydantic import BaseModel, Field, field_validator
import uvicorn

from ..config.engine_config import EngineConfig, get_config
from ..engine.backtest import Backtester
from ..engine.session import TradingSession
from ..ports.execution import PaperExecutionPort
from ..ports.market_data import DataFrameMarketData
from ..preprocessing.bars import prepare_ohlcv_frame, bars_from_frame
from ..signals.models import SignalContext
from ..support_resistance.zone import ZoneEvent
from ..utils.exceptions import (
    ZoneRegimeException,
    APIException,
    InvalidDataException,
    create_error_response,
    log_exception
)
from ..utils.helpers import validate_timeframe, normalize_timeframe, normalize_symbol
from ..utils.logger import get_logger

logger = get_logger(__name__)


# === Pydantic Models for API ===

class BarModel(BaseModel):
    """Single OHLCV bar"""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = Field(default=0.0, ge=0)


class AnalysisRequest(BaseModel):
    """Bars to analyze, oldest-first or unordered"""
    symbol: str = Field(default="UNKNOWN", description="Instrument symbol")
    timeframe: str = Field(default="1h", description="Timeframe (1m, 5m, 15m, 30m, 1h, 4h, 1d)")
    bars: List[BarModel] = Field(..., min_length=1, description="OHLCV bars")
    higher_timeframe_bars: Optional[List[BarModel]] = Field(
        default=None,
        description="Bars of the configured higher timeframe for confluence"
    )

    @field_validator('symbol')
    @classmethod
    def validate_symbol_format(cls, v):
        symbol = normalize_symbol(v)
        if not symbol:
            raise ValueError(f"Invalid symbol: {v}")
        return symbol

    @field_validator('timeframe')
    @classmethod
    def validate_timeframe_format(cls, v):
        if not validate_timeframe(v, raise_error=False):
            raise ValueError(f"Invalid timeframe: {v}")
        return normalize_timeframe(v)


class ZonesRequest(AnalysisRequest):
    include_invalid: bool = Field(default=False, description="Return zones below validity thresholds")


class HealthResponse(BaseModel):
    """Response health check"""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(..., description="Current timestamp")
    uptime_seconds: float = Field(..., description="Uptime in seconds")
    requests_total: int = Field(..., description="Requests served")


# === Helpers ===

def _rows(bars: List[BarModel]) -> List[Dict[str, Any]]:
    return [bar.model_dump() for bar in bars]


def check_request_size(request: AnalysisRequest, config: EngineConfig):
    if len(request.bars) > config.api.max_bars_per_request:
        raise APIException(
            f"Too many bars: {len(request.bars)} > {config.api.max_bars_per_request}",
            status_code=413
        )


def build_session(request: AnalysisRequest, config: EngineConfig) -> TradingSession:
    """Throwaway session over the request bars"""
    check_request_size(request, config)

    market = DataFrameMarketData()
    market.add_frame(request.symbol, request.timeframe, prepare_ohlcv_frame(_rows(request.bars)))

    htf = config.zones.higher_timeframe
    if request.higher_timeframe_bars and htf:
        market.add_frame(request.symbol, htf, prepare_ohlcv_frame(_rows(request.higher_timeframe_bars)))

    return TradingSession(
        request.symbol,
        request.timeframe,
        market,
        PaperExecutionPort(config.instrument),
        config=config
    )


def _window(session: TradingSession):
    frame = session.market_data.get_bars(session.symbol, session.timeframe, session.window_size)
    bars = bars_from_frame(frame)
    if not bars:
        raise InvalidDataException("No usable bars in request")
    return frame, bars


def replay_zones(session: TradingSession) -> List[ZoneEvent]:
    """
    Drive the zone pipeline through every request bar, as a live session
    would have seen them. Returns the events of the last bar.
    """
    market = session.market_data
    events: List[ZoneEvent] = []
    for index in range(market.length(session.symbol, session.timeframe)):
        market.replay_to(session.symbol, session.timeframe, index)
        events = session.advance_zones()
    return events


async def handle_api_error(request_id: str, error: Exception) -> JSONResponse:
    """Processing errors API"""
    if isinstance(error, ZoneRegimeException):
        log_exception(logger, error, {"request_id": request_id})
        status_code = error.details.get('status_code', 400)
        return JSONResponse(status_code=status_code, content=create_error_response(error))

    logger.error("Unexpected API error", request_id=request_id, error=str(error))
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "type": "InternalServerError",
                "code": "INTERNAL_ERROR",
                "message": "Internal server error occurred",
                "timestamp": datetime.now().isoformat()
            }
        }
    )


# === Lifespan Management ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Management life loop application"""
    config = app.state.config
    logger.info("Starting analysis API", service=config.service_name, version=config.version)

    yield

    logger.info("Shutting down analysis API", requests_total=app.state.stats["requests_total"])


# === Creation FastAPI application ===

def create_analysis_app(config: Optional[EngineConfig] = None) -> FastAPI:
    """
    Creation FastAPI application for zone/regime analysis

    Args:
        config: Engine configuration (get_config() when omitted)

    Returns:
        FastAPI application instance
    """
    if config is None:
        config = get_config()

    app = FastAPI(
        title="Zone Regime Engine API",
        description="Support/resistance zones, market regime and candlestick patterns",
        version=config.version,
        docs_url="/docs" if config.api.debug else None,
        redoc_url="/redoc" if config.api.debug else None,
        lifespan=lifespan
    )
    app.state.config = config
    app.state.stats = {
        "requests_total": 0,
        "errors_total": 0,
        "start_time": datetime.now()
    }

    if config.api.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.api.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    def session_config(request: AnalysisRequest) -> EngineConfig:
        # Без баров старшего таймфрейма конфлюенция отключается
        if request.higher_timeframe_bars:
            return config
        zones = config.zones.model_copy(update={'higher_timeframe': None})
        return config.model_copy(update={'zones': zones})

    async def failed(request_id: str, error: Exception) -> JSONResponse:
        app.state.stats["errors_total"] += 1
        return await handle_api_error(request_id, error)

    def request_logger(request_id: str, endpoint: str):
        app.state.stats["requests_total"] += 1
        return logger.bind(request_id=request_id, endpoint=endpoint)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint"""
        uptime = (datetime.now() - app.state.stats["start_time"]).total_seconds()
        return HealthResponse(
            status="healthy",
            version=config.version,
            timestamp=datetime.now(),
            uptime_seconds=uptime,
            requests_total=app.state.stats["requests_total"]
        )

    @app.post("/zones")
    async def detect_zones(
        request: ZonesRequest,
        request_id: str = Depends(lambda: str(uuid.uuid4()))
    ):
        """
        Support/resistance zones for the submitted bars

        - **bars**: OHLCV bars
        - **include_invalid**: also return zones below the validity thresholds
        """
        log = request_logger(request_id, "/zones")
        try:
            session = build_session(request, session_config(request))
            events = replay_zones(session)
            frame, bars = _window(session)

            zones = session.zones.sorted_by_strength(valid_only=not request.include_invalid)
            log.info("Zones detected", symbol=request.symbol, bars=len(bars), zones=len(zones))

            return {
                "success": True,
                "request_id": request_id,
                "symbol": request.symbol,
                "timeframe": request.timeframe,
                "zones": [z.to_dict() for z in zones],
                "statistics": session.zones.get_statistics(),
                "events": [e.to_dict() for e in events]
            }
        except Exception as e:
            return await failed(request_id, e)

    @app.post("/regime")
    async def classify_regime(
        request: AnalysisRequest,
        request_id: str = Depends(lambda: str(uuid.uuid4()))
    ):
        """Market regime of the submitted bars"""
        log = request_logger(request_id, "/regime")
        try:
            session = build_session(request, session_config(request))
            frame, _ = _window(session)
            state = session.classifier.classify(frame)
            log.info("Regime classified", symbol=request.symbol, regime=state.regime.value)

            return {
                "success": True,
                "request_id": request_id,
                "symbol": request.symbol,
                "timeframe": request.timeframe,
                "regime": state.to_dict()
            }
        except Exception as e:
            return await failed(request_id, e)

    @app.post("/analyze")
    async def analyze(
        request: AnalysisRequest,
        request_id: str = Depends(lambda: str(uuid.uuid4()))
    ):
        """
        Zones, regime, latest pattern and the entry decision for the last bar

        No order is placed; the decision is informational.
        """
        log = request_logger(request_id, "/analyze")
        try:
            session = build_session(request, session_config(request))
            replay_zones(session)
            frame, bars = _window(session)

            state = session.classifier.classify(frame)
            nearest = session.zones.nearest_zone(bars[-1].close)
            pattern = session.recognizer.recognize(bars, nearest)

            decision = session.generator.evaluate(SignalContext(
                symbol=session.symbol,
                bars=bars,
                frame=frame,
                zones=session.zones,
                regime=state,
                pattern=pattern,
                balance=session.balance
            ))

            log.info(
                "Analysis completed",
                symbol=request.symbol,
                regime=state.regime.value,
                pattern=pattern.name.value,
                has_signal=decision.has_signal
            )
            return {
                "success": True,
                "request_id": request_id,
                "symbol": request.symbol,
                "timeframe": request.timeframe,
                "zones": [z.to_dict() for z in session.zones.sorted_by_strength(valid_only=True)],
                "regime": state.to_dict(),
                "pattern": pattern.to_dict(),
                "nearest_zone": nearest.to_dict() if nearest else None,
                "decision": decision.to_dict()
            }
        except Exception as e:
            return await failed(request_id, e)

    @app.post("/backtest")
    async def backtest(
        request: AnalysisRequest,
        request_id: str = Depends(lambda: str(uuid.uuid4()))
    ):
        """Replay the submitted bars against the paper broker"""
        log = request_logger(request_id, "/backtest")
        try:
            cfg = session_config(request)
            check_request_size(request, cfg)

            htf_frame = None
            if request.higher_timeframe_bars:
                htf_frame = prepare_ohlcv_frame(_rows(request.higher_timeframe_bars))

            result = Backtester(cfg).run(
                request.symbol,
                request.timeframe,
                prepare_ohlcv_frame(_rows(request.bars)),
                htf_frame
            )
            log.info("Backtest completed", symbol=request.symbol, trades=len(result.trades))

            return {
                "success": True,
                "request_id": request_id,
                "result": result.to_dict()
            }
        except Exception as e:
            return await failed(request_id, e)

    return app


def run_server(config: Optional[EngineConfig] = None):
    """Start uvicorn with the analysis app"""
    config = config or get_config()
    uvicorn.run(
        create_analysis_app(config),
        host=config.api.host,
        port=config.api.port,
        log_level=config.monitoring.log_level.value.lower()
    )
