from fastapi import HTTPException
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class EphemerisError(Exception):
    """
    Base class for every error raised by the ephemeris layer.

    Carries a CATEGORY.SPECIFIC_ERROR code, a title, the human-readable
    message (kept verbatim for the caller) and an actionable tip.
    """

    status_code = 500
    code = "SERVER.ERROR"
    title = "Server error"
    tip = ""

    def __init__(self, message: str, code: Optional[str] = None,
                 title: Optional[str] = None, tip: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if title is not None:
            self.title = title
        if tip is not None:
            self.tip = tip

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "title": self.title,
            "detail": self.message,
            "tip": self.tip
        }


class ValidationError(EphemerisError):
    """Bad coordinates, datetime, orb or body names. Caller-correctable."""

    status_code = 400
    code = "INPUT.INVALID"
    title = "Invalid input"
    tip = "Check request parameters and ranges in API documentation."


class InsufficientData(EphemerisError):
    """Aspect calculation with fewer than two usable longitudes."""

    code = "DATA.INSUFFICIENT"
    title = "Insufficient position data"
    tip = "Request at least two bodies that have positions for this observer."


class MissingData(EphemerisError):
    """An operation referenced a body that has no position."""

    code = "DATA.MISSING"
    title = "Position data missing"
    tip = "Choose a body that has a position from the observer's frame."


class ProviderError(EphemerisError):
    """Opaque failure from the position provider, message kept verbatim."""

    code = "COMPUTE.EPHEMERIS_ERROR"
    title = "Ephemeris computation failed"
    tip = "Retry request; report if persistent."


def server_error(code: str = "SERVER.ERROR", title: str = "Server error",
                detail: str = "", tip: str = ""):
    """
    Raise a 500 Internal Server Error exception.

    Args:
        code: Error code
        title: Error title
        detail: Error details
        tip: Resolution tip
    """
    error_response = {
        "code": code,
        "title": title,
        "detail": detail,
        "tip": tip
    }
    logger.error(f"Server error: {code} - {title} - {detail}")
    raise HTTPException(status_code=500, detail=error_response)


def service_unavailable(code: str = "SERVICE.UNAVAILABLE",
                       title: str = "Service temporarily unavailable",
                       detail: str = "Service is starting up or under maintenance.",
                       tip: str = "Retry after a few moments."):
    """Raise a 503 Service Unavailable exception."""
    error_response = {
        "code": code,
        "title": title,
        "detail": detail,
        "tip": tip
    }
    logger.warning(f"Service unavailable: {detail}")
    raise HTTPException(status_code=503, detail=error_response)


def classify_spice_error(err: Exception) -> Dict[str, str]:
    """
    Classify a SPICE/computation error into a friendly code, title and tip.

    The original message is never rewritten; only the code is derived
    from it.

    Args:
        err: The original exception
    """
    error_msg = str(err).upper()

    if "SPKINSUFFDATA" in error_msg or "INSUFFICIENT DATA" in error_msg:
        return {
            "code": "RANGE.EPHEMERIS_OUTSIDE",
            "title": "Date outside ephemeris range",
            "tip": "Use a date covered by the loaded kernels or change kernels."
        }

    elif "KERNELNOTFOUND" in error_msg or "NOSUCHFILE" in error_msg or "NOLOADEDFILES" in error_msg:
        return {
            "code": "KERNELS.NOT_AVAILABLE",
            "title": "Ephemeris kernels not available",
            "tip": "Service warming; retry shortly."
        }

    elif "NOLEAPSECONDS" in error_msg:
        return {
            "code": "KERNELS.NOT_AVAILABLE",
            "title": "Leap seconds kernel not available",
            "tip": "Check kernel bundle configuration."
        }

    elif "DIVIDEBYZERO" in error_msg or "CONVERGENCE" in error_msg:
        return {
            "code": "COMPUTE.CONVERGENCE_FAILED",
            "title": "Numerical convergence failed",
            "tip": "Try nearby date/time or report if persistent."
        }

    return {
        "code": ProviderError.code,
        "title": ProviderError.title,
        "tip": ProviderError.tip
    }


def provider_error_from(err: Exception, context: str = "") -> ProviderError:
    """
    Wrap an arbitrary provider exception, keeping its message verbatim.

    Args:
        err: The original exception
        context: Additional context about where the error occurred
    """
    logger.error(f"Provider error in {context}: {err}")
    return ProviderError(str(err), **classify_spice_error(err))


def raise_http_error(err: EphemerisError):
    """
    Map an ephemeris-layer error onto the structured HTTP error response.

    Validation-class errors become 4xx, everything else 5xx.
    """
    if err.status_code < 500:
        logger.warning(f"Bad request: {err.code} - {err.title} - {err.message}")
    else:
        logger.error(f"Server error: {err.code} - {err.title} - {err.message}")
    raise HTTPException(status_code=err.status_code, detail=err.to_dict())


class ErrorHandler:
    """
    Centralized error handling for the application.
    """

    @staticmethod
    def handle_operation_error(err: Exception, context: str = ""):
        """Handle errors raised while running an operation."""
        if isinstance(err, EphemerisError):
            raise_http_error(err)
        elif isinstance(err, HTTPException):
            raise err
        else:
            logger.error(f"Unexpected error in {context}: {err}")
            server_error(
                "SERVER.ERROR",
                "Internal server error",
                str(err),
                "Please try again or contact support if the problem persists"
            )
