"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger
from authorization_gateway.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_decision(
    request_id: Optional[str],
    user_id: Optional[str],
    outcome: str,
    priority: str,
    duration_ms: float,
) -> None:
    """Log structured decision outcome for analysis"""
    logging.info(
        "Decision recorded",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "decision_complete",
            "outcome": outcome,
            "priority": priority,
            "duration_ms": duration_ms,
        },
    )


def log_autosave(
    request_id: Optional[str],
    user_id: Optional[str],
    outcome: str,
    duration_ms: float,
    error: Optional[str] = None,
) -> None:
    """Log one autosave attempt"""
    extra = {
        "request_id": request_id,
        "user_id": user_id,
        "step": "autosave",
        "outcome": outcome,
        "duration_ms": duration_ms,
    }
    if error:
        extra["error"] = error
        logging.warning("Autosave failed", extra=extra)
    else:
        logging.info("Autosave completed", extra=extra)
