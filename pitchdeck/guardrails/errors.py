import logging

from fastapi import HTTPException

from pitchdeck.core.errors import (
    AuthError,
    DeckForbiddenError,
    DeckNotFoundError,
    PersistenceError,
)

logger = logging.getLogger(__name__)


def as_http_500(e: Exception) -> HTTPException:
    """Log exception and return a generic 500 HTTPException (no internal details leaked).
    Why available: Centralized error handling so API never leaks stack traces or internal state to clients."""
    logger.error("unhandled error: %s", e, exc_info=e)
    return HTTPException(status_code=500, detail="Internal server error")


def as_http_error(e: Exception) -> HTTPException:
    """Map a domain exception raised by the deck service to the HTTP status the API documents.
    Why available: Route handlers share one mapping (404 / 403 / 401 / 503), everything unknown falls back to as_http_500."""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, DeckNotFoundError):
        return HTTPException(status_code=404, detail="Pitch deck not found")
    if isinstance(e, DeckForbiddenError):
        return HTTPException(status_code=403, detail="Not allowed to modify this pitch deck")
    if isinstance(e, AuthError):
        return HTTPException(status_code=401, detail="Invalid or expired token")
    if isinstance(e, PersistenceError):
        logger.warning("record store unavailable: %s", e)
        return HTTPException(status_code=503, detail="Deck store unavailable. Retry later.")
    return as_http_500(e)
