# app/logging.py
import json
import logging
import os
from typing import Any, Dict, Optional

SECRET_KEYS = {"password", "token"}


def configure_logging(level: Optional[str] = None):
    logging.basicConfig(
        level=level or os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def redact_args(args: Dict[str, Any]) -> Dict[str, Any]:
    safe = json.loads(json.dumps(args, default=str))  # shallow copy via JSON
    for k in list(safe):
        if k.lower() in SECRET_KEYS and safe[k]:
            safe[k] = "[redacted]"
    return safe


def log_tool_call(logger: logging.Logger, name: str, args: Dict[str, Any]):
    logger.info("tool_call %s %s", name, redact_args(args))


def log_access(
    logger: logging.Logger,
    operation: str,
    principal: Optional[str],
    relative: str,
    outcome: str,
):
    level = logging.INFO if outcome == "allowed" else logging.WARNING
    logger.log(
        level,
        "access op=%s principal=%s path=%r outcome=%s",
        operation,
        principal or "-",
        relative,
        outcome,
    )
