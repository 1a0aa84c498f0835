"""Credentials, outbound rate limiting and pending OAuth state."""

from .credentials import apply_credential, build_auth_headers, merge_headers
from .oauth import OAuthStateStore, PendingAuthorization, generate_pkce_pair
from .rate_limiter import RateLimiter, RateLimitResult

__all__ = [
    "apply_credential",
    "build_auth_headers",
    "merge_headers",
    "OAuthStateStore",
    "PendingAuthorization",
    "generate_pkce_pair",
    "RateLimiter",
    "RateLimitResult",
]
