"""Run the API with uvicorn."""

import logging

import uvicorn

from dropfeed.api.app import create_app
from dropfeed.observability.logging import configure_logging
from dropfeed.settings.app import get_settings


def main() -> None:
    """Start the API server."""
    settings = get_settings()
    configure_logging(level=logging.INFO, json_format=settings.json_logs)
    uvicorn.run(create_app(settings=settings), host="0.0.0.0", port=8000)  # noqa: S104


if __name__ == "__main__":
    main()
