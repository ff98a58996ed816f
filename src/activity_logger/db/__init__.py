"""
activity_logger.db

Persistence package (SQLAlchemy async).

Responsibilities:
- Provide the activity schema, engine/session setup, the repository and the SQL store.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# The middleware only depends on the `ActivityStore` protocol in `db.store`; this
# package is one implementation of it.
