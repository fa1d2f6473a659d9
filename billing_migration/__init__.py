"""
Legacy Billing Migration Package.

FastAPI service layer for migrating the discontinued War Chest billing product
line: client disposition classification, legacy payment-vault token migration,
and historical transaction log reprocessing, all driven through chunked batch
jobs with progress tracking.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database, exceptions and dependencies
    - models: Pydantic schemas and enums
    - services: Risk scoring, classification, migration engines, orchestration
    - jobs: Operator notifications
"""

__version__ = "1.0.0"
