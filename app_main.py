"""Application entry point for the QuizDesk attempt API."""

from __future__ import annotations

from pathlib import Path
import socket
import sys

from quizdesk.core.attempt_manager import AttemptManager
from quizdesk.core.catalog_loader import load_catalog_from_file
from quizdesk.core.errors import CatalogImportError
from quizdesk.core.services.attempt_store import InMemoryAttemptStore
from quizdesk.core.services.catalog import InMemoryCatalog
from quizdesk.core.settings import EngineSettings
from quizdesk.server.api_server import run_api_server
from quizdesk.utils.logging_config import configure_logging


def _determine_api_url(port: int) -> str:
    """Best-effort determination of the local IP students should connect to."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


def main() -> None:
    """Load settings and the catalog, then serve the attempt API."""
    settings = EngineSettings.from_env()
    logger = configure_logging(settings.log_level)
    logger.info("Starting QuizDesk…")

    catalog_file = sys.argv[1] if len(sys.argv) > 1 else settings.catalog_file
    if catalog_file:
        try:
            catalog = load_catalog_from_file(Path(catalog_file))
        except (OSError, CatalogImportError) as exc:
            logger.error("Could not load catalog %s: %s", catalog_file, exc)
            sys.exit(1)
        logger.info("Loaded %d quiz(zes) from %s", len(catalog.list_quizzes()), catalog_file)
    else:
        logger.warning("No catalog file given; starting with an empty catalog")
        catalog = InMemoryCatalog()

    manager = AttemptManager(catalog=catalog, store=InMemoryAttemptStore(), settings=settings)
    logger.info("Student API available at %s", _determine_api_url(settings.port))
    run_api_server(manager, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
