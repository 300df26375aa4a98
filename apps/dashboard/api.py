"""
FastAPI application for the Futures Dashboard Service
"""

from typing import List, Literal, Optional, Union

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from libs.broker.base import AuthenticationError
from libs.core.logging import get_logger
from libs.data.models import CloseScope, PositionSide, TradingConfig

logger = get_logger(__name__)

SECRET_FIELDS = {"api_secret", "copytrading_api_secret"}


class TradeRequest(BaseModel):
    symbols: List[str]
    side: PositionSide


class RankingTradeRequest(BaseModel):
    ranking: Literal["top_market", "top_gainers", "top_losers"]
    side: PositionSide
    limit: Optional[int] = Field(None, ge=1, le=200)


class CloseRequest(BaseModel):
    symbols: Optional[List[str]] = None


class ConfigUpdate(BaseModel):
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    long_leverage: Optional[float] = Field(None, ge=1)
    long_margin: Optional[float] = Field(None, gt=0)
    short_leverage: Optional[float] = Field(None, ge=1)
    short_margin: Optional[float] = Field(None, gt=0)
    take_profit: Optional[Union[float, str]] = None
    stop_loss: Optional[Union[float, str]] = None
    default_limit: Optional[int] = Field(None, ge=1, le=200)
    ignored_symbols: Optional[str] = None
    copytrading_mode: Optional[bool] = None
    copytrading_api_key: Optional[str] = None
    copytrading_api_secret: Optional[str] = None


def public_config(config: TradingConfig) -> dict:
    """Config without secrets, with presence flags instead"""
    data = config.model_dump(mode="json", exclude=SECRET_FIELDS)
    data["has_api_secret"] = bool(config.api_secret)
    data["has_copytrading_api_secret"] = bool(config.copytrading_api_secret)
    return data


def create_app(trading_service, market_service) -> FastAPI:
    """Create FastAPI application"""

    app = FastAPI(
        title="Futures Dashboard API",
        description="Batch open and close Binance futures positions from ranking lists",
        version="0.1.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_input_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": "Invalid input", "errors": jsonable_encoder(exc.errors())})

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "dashboard",
        }

    # Market Endpoints

    @app.get("/market")
    async def get_market(
        limit: int = Query(50, ge=1, le=200),
        skip_market_cap: bool = False
    ):
        """Market-cap, gainers and losers ranking lists"""
        try:
            rankings = await market_service.get_rankings(limit=limit, skip_market_cap=skip_market_cap)
            return rankings.model_dump()
        except Exception as e:
            logger.error("Failed to fetch market data", error=str(e))
            raise HTTPException(status_code=500, detail=str(e))

    # Trading Endpoints

    @app.post("/trade")
    async def trade(trade_request: TradeRequest):
        """Open positions on the given symbols"""
        if not trade_request.symbols:
            raise HTTPException(status_code=400, detail="Invalid input")
        try:
            report = await trading_service.open_positions(trade_request.symbols, trade_request.side)
            return report.to_response()
        except AuthenticationError as e:
            raise HTTPException(status_code=401, detail=str(e))
        except Exception as e:
            logger.error("Error in batch trade", error=str(e))
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/trade/ranking")
    async def trade_ranking(ranking_request: RankingTradeRequest):
        """Open positions on the top symbols of a ranking list"""
        try:
            report = await trading_service.open_from_ranking(
                ranking_request.ranking, ranking_request.side, ranking_request.limit
            )
            return report.to_response()
        except AuthenticationError as e:
            raise HTTPException(status_code=401, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error("Error in ranking trade", error=str(e))
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/add-margin")
    async def add_margin(trade_request: TradeRequest):
        """Add to existing positions on the given symbols"""
        if not trade_request.symbols:
            raise HTTPException(status_code=400, detail="Invalid input")
        try:
            report = await trading_service.add_margin(trade_request.symbols, trade_request.side)
            return report.to_response()
        except AuthenticationError as e:
            raise HTTPException(status_code=401, detail=str(e))
        except Exception as e:
            logger.error("Error in add margin", error=str(e))
            raise HTTPException(status_code=500, detail=str(e))

    # Position Endpoints

    @app.get("/positions")
    async def get_positions():
        """Open positions with TP/SL prices"""
        try:
            snapshot = await trading_service.get_positions()
            return snapshot.model_dump(mode="json")
        except AuthenticationError as e:
            raise HTTPException(status_code=401, detail=str(e))
        except Exception as e:
            logger.error("Error fetching positions", error=str(e))
            raise HTTPException(status_code=500, detail=str(e))

    @app.delete("/positions")
    async def close_positions(
        type: CloseScope = Query(CloseScope.ALL),
        close_request: Optional[CloseRequest] = None
    ):
        """Close positions by side, optionally limited to a symbol list"""
        symbols = close_request.symbols if close_request else None
        try:
            report = await trading_service.close_positions(type, symbols)
            return report.to_response()
        except AuthenticationError as e:
            raise HTTPException(status_code=401, detail=str(e))
        except Exception as e:
            logger.error("Error closing positions", error=str(e))
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/positions/stream")
    async def stream_positions(request: Request):
        """Server-sent events with a positions snapshot every poll interval"""
        return StreamingResponse(
            trading_service.stream_positions(request.is_disconnected),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    # Configuration Endpoints

    @app.get("/config")
    async def get_config():
        """Current trading configuration"""
        return {"config": public_config(trading_service.load_config())}

    @app.put("/config")
    async def update_config(update: ConfigUpdate):
        """Update trading configuration; omitted fields keep their value"""
        try:
            current = trading_service.load_config()
            merged = TradingConfig(**{**current.model_dump(), **update.model_dump(exclude_unset=True)})
            saved = trading_service.save_config(merged)
            return {"config": public_config(saved), "message": "配置已保存"}
        except Exception as e:
            logger.error("Failed to save config", error=str(e))
            raise HTTPException(status_code=500, detail="保存配置失败")

    return app
