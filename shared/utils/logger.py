"""
Logging utilities for the custom SSO bridge

Provides centralized structlog configuration and an audit logger.
"""

import os
import sys
import logging
import logging.config
from typing import Optional, Dict, Any
from pathlib import Path

import structlog
import yaml

LOG_FORMATS = ("json", "console")

_configured = False


def _load_dict_config(config_path: Optional[str]) -> Optional[Dict[str, Any]]:
    """Load a logging dictConfig from a YAML file"""
    if not config_path:
        return None

    path = Path(config_path)
    if not path.exists():
        print(f"Logging config not found at {config_path}, using defaults", file=sys.stderr)
        return None

    try:
        with open(path, 'r') as f:
            return yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        print(f"Failed to load logging config from {config_path}: {e}", file=sys.stderr)
        return None


def setup_logging(
    config_path: Optional[str] = None,
    log_level: Optional[str] = None,
    log_format: Optional[str] = None
) -> None:
    """
    Setup logging configuration

    Standard library handlers come from the YAML file when one is given,
    otherwise a single stdout handler is installed. structlog is then
    configured to render through them.

    Args:
        config_path: Path to a YAML logging configuration file
        log_level: Override log level
        log_format: 'json' (default) or 'console'
    """
    global _configured

    level_name = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = (log_format or os.getenv('LOG_FORMAT', 'json')).lower()
    if log_format not in LOG_FORMATS:
        log_format = "json"

    config = _load_dict_config(config_path)
    if config:
        logging.config.dictConfig(config)
        logging.getLogger().setLevel(level)
    else:
        logging.basicConfig(
            level=level,
            format="%(message)s",
            stream=sys.stdout,
            force=True
        )

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def is_configured() -> bool:
    return _configured


def get_logger(name: str):
    """
    Get logger instance

    Args:
        name: Logger name (usually __name__)

    Returns:
        structlog bound logger
    """
    return structlog.get_logger(name)


class AuditLogger:
    """Logger for authentication audit events"""

    def __init__(self, name: str = "custom_sso.audit"):
        self.logger = structlog.get_logger(name)

    def log_user_action(
        self,
        action: str,
        email: str,
        outcome: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log an authentication action for the audit trail"""
        log_method = self.logger.info if outcome == "success" else self.logger.warning
        log_method(
            "Auth action",
            action=action,
            email=email,
            outcome=outcome,
            user_id=user_id,
            details=details or {},
            event_type="user_action"
        )


def get_audit_logger() -> AuditLogger:
    """Get audit logger instance"""
    return AuditLogger()
