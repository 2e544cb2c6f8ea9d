"""Structured JSON logging configuration using loguru.

This module configures loguru with two sinks:
- Colorized console output for interactive debugging
- Structured JSON files with rotation and retention

The pipeline never configures logging on import; the embedding host calls
configure_logging() once at startup. Modules obtain a bound logger through
get_logger() and attach crawl context with bind_crawl().
"""

import json
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import GlobalConfig, get_config
from src.exceptions import LoggingInitializationError


def _json_serializer(record: dict[str, Any]) -> str:
    """Render a loguru record as a single JSON line.

    Args:
        record: Loguru record dictionary containing log metadata.

    Returns:
        JSON-formatted string representation of the log record.
    """
    payload: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    exception = record["exception"]
    if exception is not None:
        payload["exception"] = {
            "type": exception.type.__name__ if exception.type else None,
            "value": str(exception.value) if exception.value else None,
        }

    context = {k: v for k, v in record["extra"].items() if k != "serialized"}
    if context:
        payload["context"] = context

    return json.dumps(payload, default=str) + "\n"


def _validate_log_directory(log_dir: Path) -> None:
    """Create the log directory and prove it is writable.

    Raises:
        LoggingInitializationError: If directory creation or the write check fails.
    """
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        marker = log_dir / ".write_test"
        marker.write_text("write_test")
        marker.unlink()
    except PermissionError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir),
            reason=f"Permission denied: {exc}",
        ) from exc
    except OSError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir),
            reason=f"OS error during directory validation: {exc}",
        ) from exc


def configure_logging(config: GlobalConfig | None = None) -> None:
    """Install the console and JSON file sinks.

    Call once from the embedding host before crawls run.

    Args:
        config: Optional GlobalConfig instance. If None, uses singleton.

    Raises:
        LoggingInitializationError: If log directory validation fails.
    """
    if config is None:
        config = get_config()

    logger.remove()
    _validate_log_directory(config.log_dir)

    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )

    logger.add(
        sys.stderr,
        format=console_format,
        level=config.log_level,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )

    logger.add(
        str(config.log_dir / "tickerlens_{time:YYYY-MM-DD}.json"),
        format="{extra[serialized]}",
        level=config.log_level,
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="gz",
        filter=lambda record: record["extra"].update(serialized=_json_serializer(record)) or True,
    )

    logger.info(
        "Logging infrastructure initialized",
        app_name=config.app_name,
        environment=config.environment,
        log_level=config.log_level,
        log_dir=str(config.log_dir),
    )


def get_logger(name: str) -> "logger":
    """Get a logger bound with the module name.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("Crawl complete", symbol="ABCD", fields=4)
    """
    return logger.bind(module=name)


def bind_crawl(log: "logger", symbol: str | None, source_id: str) -> "logger":
    """Attach crawl correlation context to an existing logger."""
    return log.bind(symbol=symbol, source_id=source_id)
