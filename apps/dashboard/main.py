"""
Main entry point for the Futures Dashboard Service
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from libs.core.config import get_settings
from libs.core.logging import setup_logging, get_logger

logger = get_logger(__name__)


async def main():
    """Main entry point"""
    setup_logging("dashboard")

    settings = get_settings()
    logger.info("Starting Futures Dashboard Service", port=settings.dashboard_port)

    from apps.dashboard.api import create_app
    from apps.dashboard.market_service import MarketService
    from apps.dashboard.trading_service import TradingService
    from libs.broker.binance_client import close_public_client
    from libs.data.repository import TradingConfigRepository

    market_service = MarketService()
    trading_service = TradingService(
        TradingConfigRepository(settings.database_path),
        market_service=market_service,
    )

    app = create_app(trading_service, market_service)

    import uvicorn

    config = uvicorn.Config(
        app=app,
        host=settings.dashboard_host,
        port=settings.dashboard_port,
        log_config=None
    )
    server = uvicorn.Server(config)

    try:
        await server.serve()
    except KeyboardInterrupt:
        logger.info("Shutting down Futures Dashboard Service")
    finally:
        await close_public_client()


if __name__ == "__main__":
    asyncio.run(main())
