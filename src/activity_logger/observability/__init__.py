"""
activity_logger.observability

Observability package.

Responsibilities:
- Structured logging configuration.
- The activity pipeline middleware that records one activity per request.
"""

# Package marker.
