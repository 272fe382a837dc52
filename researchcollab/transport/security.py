# researchcollab/transport/security.py
"""
Security utilities for the public API.

Security features:
- JWT session tokens (issued after Discord sign-in)
- Constant-time token comparison (timing attack prevention)
- Token entropy validation (weak secret detection)
- Authorization header sanitization (prevents token logging)
- Security response headers
"""
import hmac
import secrets
import time

import jwt
from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from researchcollab.config import settings
from researchcollab.infra.logging_config import get_logger

logger = get_logger(__name__)

# Minimum secret length for security (32 bytes = 256 bits)
MIN_TOKEN_LENGTH = 32
WEAK_TOKEN_PATTERNS = [
    "password", "secret", "token", "admin", "test", "demo",
    "123456", "000000", "111111", "aaaaaa",
]

# Security schemes for OpenAPI docs - shows "Authorize" button
session_bearer_scheme = HTTPBearer(
    scheme_name="Session Token",
    description="Session token issued after Discord sign-in (without 'Bearer ' prefix)",
    auto_error=False,
)
metrics_bearer_scheme = HTTPBearer(
    scheme_name="Metrics Token",
    auto_error=False,
)


def validate_token_strength(token: str, token_name: str = "token") -> list[str]:
    """
    Validate that a secret meets minimum security requirements.
    Returns list of warnings (empty if the secret is strong).

    Checks:
    - Minimum length (32 chars)
    - Not a common weak pattern
    - Has reasonable entropy (mix of characters)
    """
    warnings = []

    if len(token) < MIN_TOKEN_LENGTH:
        warnings.append(
            f"{token_name} is too short ({len(token)} chars). "
            f"Minimum recommended: {MIN_TOKEN_LENGTH} chars"
        )

    token_lower = token.lower()
    for pattern in WEAK_TOKEN_PATTERNS:
        if pattern in token_lower:
            warnings.append(
                f"{token_name} contains weak pattern '{pattern}'. "
                "Use a cryptographically random token"
            )
            break

    has_upper = any(c.isupper() for c in token)
    has_lower = any(c.islower() for c in token)
    has_digit = any(c.isdigit() for c in token)

    if not (has_upper and has_lower and has_digit):
        warnings.append(
            f"{token_name} has low character diversity. "
            "Recommended: mix of uppercase, lowercase, and numbers"
        )

    return warnings


def generate_secure_token(length: int = 32) -> str:
    """
    Generate a cryptographically secure random token.
    Use this to generate SESSION_SECRET and METRICS_TOKEN values.
    """
    return secrets.token_urlsafe(length)


def check_configured_tokens() -> None:
    """Log warnings for weak configured secrets. Call from app startup."""
    if settings.session_secret:
        for warning in validate_token_strength(settings.session_secret, "SESSION_SECRET"):
            logger.warning(f"SECURITY: {warning}")

    if settings.metrics_token:
        for warning in validate_token_strength(settings.metrics_token, "METRICS_TOKEN"):
            logger.warning(f"SECURITY: {warning}")


# =============================================================================
# Session tokens
# =============================================================================
# HS256 JWTs with the user id in ``sub`` and the expiry in ``exp``.
# Stateless: nothing is stored server-side, rotating the secret logs everyone out.
# =============================================================================

SESSION_ALGORITHM = "HS256"


class SessionSigner:
    """Issue and verify JWT session tokens"""

    def __init__(self, secret: str, ttl_seconds: int = 604800) -> None:
        if not secret:
            raise ValueError("Session secret must not be empty")
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, user_id: str, now: float | None = None) -> str:
        issued_at = int(now if now is not None else time.time())
        payload = {
            "sub": user_id,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return jwt.encode(payload, self._secret, algorithm=SESSION_ALGORITHM)

    def verify(self, token: str) -> tuple[str | None, str | None]:
        """
        Verify a session token.

        Returns:
            (user_id, None) if valid, (None, error_message) otherwise
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[SESSION_ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            return None, "Session expired"
        except jwt.InvalidSignatureError:
            return None, "Invalid signature"
        except jwt.InvalidTokenError:
            return None, "Malformed token"

        user_id = claims.get("sub")
        if not isinstance(user_id, str) or not user_id:
            return None, "Malformed token"
        return user_id, None


def build_session_signer() -> SessionSigner:
    """Signer from settings; an ephemeral secret is used when none is configured."""
    secret = settings.session_secret
    if not secret:
        if settings.is_production:
            raise RuntimeError("SESSION_SECRET is required in production")
        logger.warning("SESSION_SECRET not set, using an ephemeral secret (sessions reset on restart)")
        secret = generate_secure_token()
    return SessionSigner(secret, settings.session_ttl_seconds)


def _session_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.session_cookie_name)


async def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(session_bearer_scheme),
) -> str:
    """
    Dependency that resolves the caller's user id from the session.

    Accepts the session cookie or ``Authorization: Bearer <session token>``.

    Usage:
        @app.post("/api/calls")
        async def create_call(user_id: str = Depends(require_user)):
            ...
    """
    token = _session_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    signer: SessionSigner = request.app.state.container.signer
    user_id, error = signer.verify(token)
    if user_id is None:
        logger.warning(f"Session rejected: {error}", extra={"path": request.url.path})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.user_id = user_id
    return user_id


def require_metrics_auth(
    credentials: HTTPAuthorizationCredentials | None = Depends(metrics_bearer_scheme),
):
    """
    Dependency for the metrics endpoint.

    If METRICS_TOKEN is set, a matching Bearer token is required.
    Otherwise the endpoint is open (warned about at startup).
    """
    if not settings.metrics_token:
        return

    if not credentials:
        logger.warning("Metrics endpoint accessed without token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not hmac.compare_digest(credentials.credentials, settings.metrics_token):
        logger.warning("Invalid metrics token attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


class SecurityHeaders:
    """
    Security headers for API responses.
    Implements OWASP recommended security headers.
    """

    @staticmethod
    def add_security_headers(response):
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

        # HSTS (only behind HTTPS)
        if settings.is_production or settings.is_staging:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        if "Server" in response.headers:
            del response.headers["Server"]

        return response


# Headers that should NEVER be logged (contain secrets)
SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
}


def sanitize_headers_for_logging(headers: dict) -> dict:
    """
    Sanitize HTTP headers for safe logging.
    Redacts sensitive headers like Authorization, cookies, etc.
    """
    return {
        key: "***REDACTED***" if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def sanitize_error_message(error: Exception, is_production: bool) -> str:
    """
    Sanitize error messages for external responses.
    In production: Generic messages
    In dev: Detailed messages
    """
    if not is_production:
        return str(error)

    generic_messages = {
        "ValueError": "Invalid input",
        "KeyError": "Invalid request",
        "ConnectionError": "Service temporarily unavailable",
        "TimeoutError": "Request timeout",
    }
    return generic_messages.get(type(error).__name__, "An error occurred")
