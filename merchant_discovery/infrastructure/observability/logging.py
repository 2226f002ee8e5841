"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from merchant_discovery.config import settings


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


def log_discovery_run(
    total_codes: int,
    discoveries_count: int,
    duration_ms: float,
    request_id: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Log structured discovery run outcome for analysis"""
    logging.info(
        "Discovery run completed" if error is None else "Discovery run failed",
        extra={
            "request_id": request_id,
            "step": "discovery_complete" if error is None else "discovery_error",
            "total_codes": total_codes,
            "discoveries_count": discoveries_count,
            "duration_ms": duration_ms,
            "error": error,
        },
    )


def log_validation(
    discovery_id: int,
    code: str,
    action: str,
    ai_inference: str,
    user_correction: Optional[str] = None,
) -> None:
    """Log one human validation of a discovery"""
    logging.info(
        "Discovery validated",
        extra={
            "step": "validation",
            "discovery_id": discovery_id,
            "code": code,
            "action": action,
            "ai_inference": ai_inference,
            "user_correction": user_correction,
        },
    )
