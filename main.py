"""
TaskPulse — task time tracking with live productivity statistics.
Entry point for the service.
"""

import faulthandler
import logging
import sys
import threading
from pathlib import Path

faulthandler.enable()

# Ensure the package is importable when run from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parent))

import uvicorn
from PySide6.QtCore import QCoreApplication

from taskpulse.api import Services, create_app
from taskpulse.config import load_config, resolve_timezone
from taskpulse.data.database import Database
from taskpulse.data.repository import Repository
from taskpulse.realtime.broadcaster import EventBroadcaster
from taskpulse.realtime.server import RealtimeServer
from taskpulse.realtime.tokens import JoinTokenSigner
from taskpulse.services.productivity import ProductivityStreakCalculator
from taskpulse.services.statistics import StatisticsAggregator
from taskpulse.services.tasks import TaskService
from taskpulse.services.time_tracking import TimeTrackingManager


def setup_logging(config: dict) -> None:
    logging.basicConfig(
        level=getattr(logging, str(config["log_level"]).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(config["log_file"], encoding="utf-8"),
        ],
    )


def build_services(repo: Repository, broadcaster: EventBroadcaster, config: dict) -> Services:
    """Wire the services together around one broadcaster."""
    tz = resolve_timezone(config["timezone"])
    statistics = StatisticsAggregator(repo, broadcaster, tz)
    join_secret = config["realtime"]["join_secret"]
    return Services(
        tasks=TaskService(repo, broadcaster, on_change=statistics.publish_update),
        time_tracking=TimeTrackingManager(repo, broadcaster, on_change=statistics.publish_update),
        statistics=statistics,
        productivity=ProductivityStreakCalculator(repo, tz),
        join_tokens=(
            JoinTokenSigner(join_secret, config["realtime"]["join_token_ttl_s"])
            if join_secret else None
        ),
    )


def start_http_server(services: Services, host: str, port: int) -> uvicorn.Server:
    """Serve the FastAPI app on a background thread; Qt keeps the main thread."""
    server = uvicorn.Server(uvicorn.Config(
        create_app(services),
        host=host,
        port=port,
        loop="asyncio",
        log_config=None,  # keep the handlers from setup_logging()
    ))
    thread = threading.Thread(target=server.run, name="taskpulse-http", daemon=True)
    thread.start()
    return server


def main() -> None:
    config = load_config()
    setup_logging(config)
    logger = logging.getLogger(__name__)
    logger.info("Starting TaskPulse...")

    app = QCoreApplication(sys.argv)
    app.setApplicationName("TaskPulse")

    db = Database(Path(config["db_path"]))
    repo = Repository(db.connect())

    broadcaster = EventBroadcaster()
    services = build_services(repo, broadcaster, config)
    if services.join_tokens is None:
        logger.error("realtime.join_secret is not set; refusing to start the realtime channel.")
        sys.exit(1)

    realtime = RealtimeServer(
        broadcaster,
        services.join_tokens.verify,
        host=config["realtime"]["host"],
        port=config["realtime"]["port"],
    )
    if not realtime.start():
        sys.exit(1)

    http = start_http_server(services, config["http"]["host"], config["http"]["port"])
    logger.info("HTTP API on http://%s:%d", config["http"]["host"], config["http"]["port"])

    def shutdown() -> None:
        http.should_exit = True
        realtime.stop()
        db.close()

    app.aboutToQuit.connect(shutdown)

    logger.info("TaskPulse started.")
    sys.exit(app.exec())


if __name__ == "__main__":
    main()


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Starts the service: logging, config, database, the single
#   EventBroadcaster, the services around it, the FastAPI app under uvicorn
#   and the websocket server on the Qt event loop.
#
# Key points:
#   - The broadcaster is built once here and passed to every service.
#   - StatisticsAggregator.publish_update is the on_change hook of both
#     mutating services, so clients get a fresh statistics:updated after
#     each timer or task change.
#   - uvicorn runs on its own thread. Clients fetch a join token from
#     POST /realtime/token there, then send it to the websocket server.
