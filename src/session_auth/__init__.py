"""Public exports for the session_auth package."""

from .config import AuthSettings, load_settings
from .controller import SessionController
from .credentials import (
    BcryptPasswordHasher,
    CredentialStore,
    PasswordHasher,
    UserStorage,
    create_credential_store,
    create_user_storage,
)
from .errors import (
    BackendUnavailable,
    Conflict,
    DuplicateUsername,
    EntropyFailure,
    InvalidSession,
    NotFound,
    SessionAuthError,
)
from .models import SessionRecord, UserAccount, UserProfile, ValidationResult, VerifyResult
from .session_storage import SessionStorage, create_session_storage
from .tokens import TokenGenerator

__all__ = [
    "AuthSettings",
    "BackendUnavailable",
    "BcryptPasswordHasher",
    "Conflict",
    "CredentialStore",
    "DuplicateUsername",
    "EntropyFailure",
    "InvalidSession",
    "NotFound",
    "PasswordHasher",
    "SessionAuthError",
    "SessionController",
    "SessionRecord",
    "SessionStorage",
    "TokenGenerator",
    "UserAccount",
    "UserProfile",
    "UserStorage",
    "ValidationResult",
    "VerifyResult",
    "create_credential_store",
    "create_session_storage",
    "create_user_storage",
    "load_settings",
]
