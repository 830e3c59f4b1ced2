"""
Shared module for common utilities used by the queue API and the CLI.

STRUCTURE:
- shared.security: Authentication and authorization
  - auth.py: JWT verification, CallerIdentity, require_roles, require_branch

- shared.infrastructure: Database and messaging
  - db.py: SQLAlchemy engine/sessions, get_db, safe_commit()
  - correlation.py: X-Request-ID middleware and log filter
  - events/: Event schema, Redis pool, publisher, ChangeBus

- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging
  - constants.py: Roles, TicketStatus, transitions, limits

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - timezones.py: Branch business-day helpers
  - health.py: Dependency health checks
  - schemas.py, queue_schemas.py: Pydantic schemas

IMPORT EXAMPLES:
    from shared.security.auth import current_caller, CallerIdentity
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import Roles, TicketStatus
    from shared.utils.exceptions import NotFoundError, ForbiddenError
"""
