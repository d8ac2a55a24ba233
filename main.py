"""
Tasks by Me — Entry Point.

`python main.py` starts the background task sync and runs until
SIGINT/SIGTERM. The web layer embeds the same DashboardService via
create_dashboard_service().
"""

import asyncio
import logging
import signal

from src.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from src.adapters.dashboard_factory import create_dashboard_service

logger = logging.getLogger(__name__)


async def run() -> None:
    service = create_dashboard_service()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:  # Windows
            pass

    logger.info("Tasks by Me sync service starting (env=%s)", settings.APP_ENV)
    service.scheduler.start()
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutdown signal received, stopping scheduler...")
        await service.scheduler.stop()


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
