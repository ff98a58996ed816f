"""
activity_logger.errors

Exception types raised by the activity pipeline and its collaborators.

Responsibilities:
- Separate setup-time failures (fatal) from request-time failures (logged, non-fatal).
"""

from __future__ import annotations


class ActivityLoggerError(Exception):
    pass


class ConfigurationError(ActivityLoggerError):
    """
    Raised once while wiring the middleware, before any traffic is served.
    """


class StorageError(ActivityLoggerError):
    """
    An activity store call failed. The pipeline logs it and keeps going.
    """


class CaptureError(ActivityLoggerError):
    """
    Reading a request/response body failed. Degrades to a marker value.
    """


# --- Module Notes -----------------------------------------------------------
# Cancellation is never modelled as an error here; it is recorded on the activity.
