"""Structured logging setup shared by every module."""
import logging
import sys
import structlog
from config.settings import get_settings

_configured = False

def configure_logging(level: str = None, json_logs: bool = None):
    """
    Configure structlog once per process.
    
    Args:
        level: Log level name, defaults to LOG_LEVEL
        json_logs: Render JSON lines instead of console output
    """
    global _configured
    
    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    json_logs = settings.LOG_JSON if json_logs is None else json_logs
    level_no = getattr(logging, level, logging.INFO)
    
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level_no)
    
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True

def get_logger(name: str = None):
    """Get a structured logger bound to a module name."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
