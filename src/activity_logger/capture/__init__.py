"""
activity_logger.capture

Request/response capture for the activity pipeline.

Responsibilities:
- Observe client disconnects (`cancellation`).
- Build the phase-1 record (`request`) and finalize it in phase 2 (`response`).
"""

# Package marker; import from submodules.
