"""
activity_logger.api

Reference host for the middleware (FastAPI).

Responsibilities:
- Compose the app, its DB resources and the activity middleware.
"""

# Package marker.
