"""
Billing migration API package initialization.

This package contains FastAPI router modules:
- classification: Client status classification (single, batch, stats, rules)
- vault_migration: Legacy NMI vault token migration
- transaction_migration: Transaction log reprocessing
- war_chest: War Chest client imports and global import status
- jobs: Operator job control (inspect, cancel, purge)
"""

from fastapi import APIRouter

# Import router modules
from billing_migration.api.classification import router as classification_router
from billing_migration.api.vault_migration import router as vault_migration_router
from billing_migration.api.transaction_migration import router as transaction_migration_router
from billing_migration.api.war_chest import router as war_chest_router
from billing_migration.api.jobs import router as jobs_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(classification_router, prefix="/status-classification", tags=["classification"])
api_router.include_router(vault_migration_router, prefix="/nmi-legacy", tags=["vault-migration"])
api_router.include_router(transaction_migration_router, prefix="/transaction-migration", tags=["transaction-migration"])
api_router.include_router(war_chest_router, prefix="/war-chest-import", tags=["war-chest-import"])
api_router.include_router(jobs_router, prefix="/jobs", tags=["jobs"])

# Export all routers for selective imports
__all__ = [
    "api_router",
    "classification_router",
    "vault_migration_router",
    "transaction_migration_router",
    "war_chest_router",
    "jobs_router",
]
