"""
Logging Configuration
loguru sinks for the routing engine: console, application log, errors and the approval audit trail
"""

from loguru import logger
import sys
from pathlib import Path
from typing import Optional

from approval_routing.config.settings import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
AUDIT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {extra[report_id]} | {message}"

_configured = False


def is_audit(record) -> bool:
    return "AUDIT" in record["extra"]


def setup_logger():
    """
    Configure the shared logger on first use

    Every module calls this at import time; sinks are only added once per
    process. Audit entries go to their own file and are kept out of the
    application log.

    Returns:
        logger: Configured logger instance
    """
    global _configured
    if _configured:
        return logger

    logger.remove()

    log_dir = Path(settings.LOG_DIRECTORY)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.add(
        sys.stdout,
        format=CONSOLE_FORMAT,
        level=settings.LOG_LEVEL,
        colorize=True,
        filter=lambda record: not is_audit(record)
    )

    logger.add(
        settings.LOG_FILE,
        format=FILE_FORMAT,
        level=settings.LOG_LEVEL,
        filter=lambda record: not is_audit(record),
        rotation="10 MB",
        retention="30 days",
        compression="zip"
    )

    logger.add(
        str(log_dir / "error.log"),
        format=FILE_FORMAT,
        level="ERROR",
        rotation="10 MB",
        retention="90 days",
        compression="zip"
    )

    # Decisions and configuration changes, one line each
    logger.add(
        str(log_dir / "audit.log"),
        format=AUDIT_FORMAT,
        filter=is_audit,
        rotation="10 MB",
        retention="365 days",
        compression="zip"
    )

    _configured = True
    return logger


def log_audit(user_id: Optional[int], action: str, details: str, report_id: Optional[int] = None):
    """
    Write an audit trail entry

    Args:
        user_id: Acting user, None for system transitions
        action: Action performed (e.g. "approval_advanced", "rule_created")
        details: Action details
        report_id: Report the entry belongs to, if any
    """
    actor = user_id if user_id is not None else "system"
    logger.bind(AUDIT=True, report_id=report_id or "-").info(f"ACTOR={actor} | ACTION={action} | {details}")
