"""
War Chest client import.

Imports clients from the War Chest vertical export. Each row already carries
its disposition; the importer checks that the row is consistent with it and
decides which follow-up queue the client lands in.
"""

import logging
from typing import Any, Dict, Sequence

import pandas as pd

from billing_migration.core.exceptions import ImportRecordError
from billing_migration.models.enums import Disposition, WarChestAction
from billing_migration.models.schemas import WarChestClientRecord, WarChestImportOutcome


logger = logging.getLogger(__name__)


MAX_CHARGEBACKS_BEFORE_STOP: int = 2

ACTIONS = {
    Disposition.BILL: WarChestAction.SCHEDULE_BILLING,
    Disposition.REWRITE: WarChestAction.QUEUE_PLAN_REWRITE,
    Disposition.FLIP: WarChestAction.QUEUE_PROCESSOR_FLIP,
    Disposition.DORMANT: WarChestAction.PRESERVE_DORMANT,
    Disposition.DO_NOT_BILL: WarChestAction.PRESERVE_FOR_COMPLIANCE,
}


async def process_war_chest_client(record: WarChestClientRecord) -> WarChestImportOutcome:
    """
    Decide the follow-up for one imported client.

    Raises:
        ImportRecordError: CHARGEBACK_CONFLICT when a client with more than two
            chargebacks is not marked DO_NOT_BILL; MISSING_PAYMENT_TOKEN when a
            BILL client has neither a vault id nor a payment token.
    """
    status = record.current_status

    if status == Disposition.DO_NOT_BILL:
        logger.info("Client %s preserved for compliance, billing skipped", record.client_id)
        return WarChestImportOutcome(
            client_id=record.client_id,
            status=status,
            action=ACTIONS[status],
            skipped=True,
        )

    if len(record.chargeback_history) > MAX_CHARGEBACKS_BEFORE_STOP:
        raise ImportRecordError(
            f"Client has {len(record.chargeback_history)} chargebacks but status {status.value}",
            code="CHARGEBACK_CONFLICT",
        )

    if status == Disposition.BILL and not (record.nmi_customer_vault_id or record.payment_method_token):
        raise ImportRecordError(
            "BILL status requires a customer vault id or payment method token",
            code="MISSING_PAYMENT_TOKEN",
        )

    return WarChestImportOutcome(
        client_id=record.client_id,
        status=status,
        action=ACTIONS[status],
    )


def summarize_war_chest_outcomes(outcomes: Sequence[WarChestImportOutcome]) -> Dict[str, Any]:
    """Imported client counts per disposition and per follow-up action."""
    if not outcomes:
        return {
            "total_imported": 0,
            "skipped": 0,
            "status_breakdown": {d.value: 0 for d in Disposition},
            "actions": {},
        }

    df = pd.DataFrame([o.model_dump(mode="json") for o in outcomes])
    status_breakdown = {d.value: 0 for d in Disposition}
    status_breakdown.update({k: int(v) for k, v in df['status'].value_counts().items()})

    return {
        "total_imported": int(len(df)),
        "skipped": int(df['skipped'].sum()),
        "status_breakdown": status_breakdown,
        "actions": {k: int(v) for k, v in df['action'].value_counts().items()},
    }
