"""
HTTP security helpers for Empire.

Components:
- hash_uid: log-safe user identifiers
- SecurityHeaders: HTTP security headers applied to every API response
- create_security_middleware: wires SecurityHeaders into a FastAPI app

Usage:
    from empire.lib.security import create_security_middleware, hash_uid

    create_security_middleware(app)
    logger.info("Mission completed for user_hash=%s", hash_uid(user_id))
"""

import hashlib
from typing import Any

import structlog

logger = structlog.get_logger()


def hash_uid(user_id: str) -> str:
    """Return a 12-char SHA-256 prefix for log-safe user identification."""
    return hashlib.sha256(str(user_id).encode()).hexdigest()[:12]


# ============================================
# Security Headers
# ============================================

class SecurityHeaders:
    """
    Security headers for HTTP responses.

    Headers added:
    - X-Content-Type-Options: nosniff
    - X-Frame-Options: DENY
    - Strict-Transport-Security: max-age=31536000; includeSubDomains
    - Content-Security-Policy: (configurable)
    - Referrer-Policy: strict-origin-when-cross-origin
    """

    # The API serves JSON only
    DEFAULT_CSP = "default-src 'none'; frame-ancestors 'none'"

    @classmethod
    def get_headers(cls, csp: str | None = None) -> dict[str, str]:
        """
        Get security headers dictionary.

        Args:
            csp: Optional custom Content-Security-Policy

        Returns:
            Dictionary of security headers
        """
        return {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
            "Content-Security-Policy": csp or cls.DEFAULT_CSP,
            "Referrer-Policy": "strict-origin-when-cross-origin",
        }

    @classmethod
    def apply_to_response(cls, response: Any, csp: str | None = None) -> Any:
        """Apply security headers to a response object in place."""
        for header, value in cls.get_headers(csp).items():
            response.headers[header] = value
        return response


def create_security_middleware(app: Any, csp: str | None = None) -> None:
    """
    Add security headers middleware to a FastAPI application.

    Args:
        app: FastAPI application instance
        csp: Optional custom Content-Security-Policy
    """
    from fastapi import Request
    from starlette.middleware.base import BaseHTTPMiddleware

    class SecurityHeadersMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next: Any) -> Any:
            response = await call_next(request)
            return SecurityHeaders.apply_to_response(response, csp)

    app.add_middleware(SecurityHeadersMiddleware)

    logger.info("security_middleware_initialized", csp=csp or SecurityHeaders.DEFAULT_CSP)


__all__ = ["hash_uid", "SecurityHeaders", "create_security_middleware"]
