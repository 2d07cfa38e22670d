import logging
import os
import structlog
import sys
from pathlib import Path
from dotenv import load_dotenv

SERVICE_NAME = "networth"
QUIET_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

def _renderer(fmt: str):
    if fmt == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()

def setup_logging(fmt: str | None = None):
    """Configure stdlib handlers and structlog.

    ``fmt`` is "json" (service default) or "console" (scripts); LOG_FORMAT
    overrides the default when ``fmt`` is not given.
    """
    env_path = Path(__file__).resolve().parents[1] / ".env"
    load_dotenv(dotenv_path=env_path)
    log_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    fmt = (fmt or os.getenv("LOG_FORMAT", "json")).lower()
    error_log_path = os.getenv("LOG_ERROR_FILE", "").strip()

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    # Scripts print their results on stdout, so console logs go to stderr.
    stream_handler = logging.StreamHandler(sys.stderr if fmt == "console" else sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(stream_handler)

    if error_log_path:
        Path(error_log_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(error_log_path)
        file_handler.setLevel(logging.ERROR)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(file_handler)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _renderer(fmt),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=False,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(log_level)
