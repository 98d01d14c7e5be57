"""Core application utilities."""

from .config import ConfigurationError, Settings, get_settings, validate_startup
from .database import (
    close_db,
    create_engine_for_url,
    create_session_factory,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
)
from .security import (
    decrypt_token,
    encrypt_token,
    mask_token,
    verify_slack_signature,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "validate_startup",
    "ConfigurationError",
    # Database
    "create_engine_for_url",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
    "get_session",
    "init_db",
    "close_db",
    # Security
    "encrypt_token",
    "decrypt_token",
    "mask_token",
    "verify_slack_signature",
]
