"""
Core infrastructure package for the billing migration backend.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL connectivity via asyncpg (optional durable job storage)
- Domain exception hierarchy
- FastAPI dependency injection utilities (import from
  billing_migration.core.dependencies directly)

Simplified imports:

    from billing_migration.core import get_settings, MigrationError

Instead of:

    from billing_migration.core.config import get_settings
    from billing_migration.core.exceptions import MigrationError
"""

# =============================================================================
# Re-exports from billing_migration.core.config
# =============================================================================
from billing_migration.core.config import Settings, get_settings

# =============================================================================
# Re-exports from billing_migration.core.database
# =============================================================================
from billing_migration.core.database import init_db, close_db, get_db_pool, ensure_schema

# =============================================================================
# Re-exports from billing_migration.core.exceptions
# =============================================================================
from billing_migration.core.exceptions import (
    MigrationError,
    RecordCountMismatchError,
    JobNotFoundError,
    DuplicateJobError,
    InvalidJobTransitionError,
    OrchestratorBusyError,
    ImportRecordError,
)


__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Database pool lifecycle (from database.py)
    'init_db',
    'close_db',
    'get_db_pool',
    'ensure_schema',
    # Exceptions (from exceptions.py)
    'MigrationError',
    'RecordCountMismatchError',
    'JobNotFoundError',
    'DuplicateJobError',
    'InvalidJobTransitionError',
    'OrchestratorBusyError',
    'ImportRecordError',
]
