"""RFPFlow Core - configuration, errors and logging"""

from .config import Settings, get_settings
from .errors import (
    RFPFlowError,
    ValidationError,
    NotFoundError,
    ConflictError,
    OracleError,
    OracleUnavailableError,
    OracleResponseError,
    JSONRecoveryError,
    SchemaValidationError,
    MailboxError,
)

__all__ = [
    "Settings",
    "get_settings",
    "RFPFlowError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "OracleError",
    "OracleUnavailableError",
    "OracleResponseError",
    "JSONRecoveryError",
    "SchemaValidationError",
    "MailboxError",
]
