"""
Classify upstream inference failures.

This is a best-effort text match against whatever the inference endpoint
put in its error. Wording changes upstream silently turn quota errors into
"other"; swap the predicate passed to ModelDispatcher if a structured
error code becomes available.
"""
from typing import Any

RATE_LIMITED = "rate-limited"
OTHER = "other"

RATE_LIMIT_PHRASES = ("rate limit", "too many requests", "quota exceeded")
RATE_LIMIT_CODES = ("429", "rate_limit_exceeded")

def _error_message(error: Any) -> str:
    if error is None:
        return ""
    if isinstance(error, str):
        return error
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    if isinstance(error, dict):
        return str(error.get("message") or "")
    return str(error)

def _error_codes(error: Any) -> list:
    if error is None or isinstance(error, str):
        return []
    if isinstance(error, dict):
        candidates = [error.get("code"), error.get("status"), error.get("status_code")]
    else:
        candidates = [
            getattr(error, "code", None),
            getattr(error, "status", None),
            getattr(error, "status_code", None),
        ]
    return [str(c).lower() for c in candidates if c is not None]

def classify_failure(error: Any) -> str:
    """
    Classify an inference failure

    Args:
        error: Exception, error dict from a response body, or plain message

    Returns:
        RATE_LIMITED or OTHER
    """
    message = _error_message(error).lower()
    if any(phrase in message for phrase in RATE_LIMIT_PHRASES):
        return RATE_LIMITED

    if any(code in RATE_LIMIT_CODES for code in _error_codes(error)):
        return RATE_LIMITED

    return OTHER
