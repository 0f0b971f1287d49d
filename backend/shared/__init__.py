"""
Shared module for common utilities across the REST API and the WebSocket gateway.

STRUCTURE:
- shared.infrastructure: Database sessions and request correlation
  - db.py: SQLAlchemy sessions, safe_commit()
  - correlation.py: X-Request-ID middleware and logging filter

- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: Order statuses, limits, default store config

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging

IMPORT EXAMPLES:
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import OrderStatus
    from shared.utils.exceptions import NotFoundError, ValidationError
"""
