"""Authentication domain services."""

from .identity_resolution import (
    DEFAULT_EXTERNAL_DISPLAY_NAME,
    Credential,
    ExternalCredential,
    ExternalProfile,
    LinkedCredential,
    PasswordCredential,
    credential_of,
    find_user_by_email,
    normalize_email,
    password_hash_of,
    reconcile_external_identity,
    registration_conflict_exists,
    resolve_login_user,
)
from .oauth import GoogleOAuthClient, OAuthError, OAuthProvider, profile_from_userinfo
from .tokens import ACCESS_TOKEN_TTL, Principal, TokenService

__all__ = [
    "ACCESS_TOKEN_TTL",
    "DEFAULT_EXTERNAL_DISPLAY_NAME",
    "Credential",
    "ExternalCredential",
    "ExternalProfile",
    "GoogleOAuthClient",
    "LinkedCredential",
    "OAuthError",
    "OAuthProvider",
    "PasswordCredential",
    "Principal",
    "TokenService",
    "credential_of",
    "find_user_by_email",
    "normalize_email",
    "password_hash_of",
    "profile_from_userinfo",
    "reconcile_external_identity",
    "registration_conflict_exists",
    "resolve_login_user",
]
