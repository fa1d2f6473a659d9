"""
Slack completion digest for import batches.

When an import batch reaches a terminal state the orchestrator hands the job
to send_job_completion_digest(), which posts a Block Kit summary to the Slack
incoming webhook configured in SLACK_WEBHOOK_URL.

Environment Requirements:
- SLACK_WEBHOOK_URL: Slack incoming webhook URL
  Format: https://hooks.slack.com/services/xxx/yyy/zzz

Usage:
    result = await send_job_completion_digest(job)
    if not result['success']:
        print(f"Error: {result['error']}")

Dependencies:
    - slack-sdk (WebhookClient)
    - billing_migration.core.config.get_settings (for SLACK_WEBHOOK_URL)
"""

import logging
from typing import Any, Dict, List, Optional

from slack_sdk.webhook import WebhookClient

from billing_migration.core.config import get_settings
from billing_migration.models.enums import JobStatus
from billing_migration.models.schemas import ImportJob


logger = logging.getLogger(__name__)


STATUS_EMOJI = {
    JobStatus.COMPLETED: "✅",
    JobStatus.FAILED: "🛑",
    JobStatus.CANCELLED: "⚠️",
}

MAX_ERRORS_IN_DIGEST = 5


def format_job_digest(job: ImportJob) -> List[Dict[str, Any]]:
    """
    Format a finished import job as Slack Block Kit blocks.

    The message includes:
    - Header with batch id and final status
    - Record counts
    - Outcome and risk breakdowns
    - The first few error entries, if any
    """
    blocks: List[Dict[str, Any]] = []
    emoji = STATUS_EMOJI.get(job.status, "")

    blocks.append({
        "type": "header",
        "text": {
            "type": "plain_text",
            "text": f"{emoji} Import batch {job.batch_id}: {job.status.value}",
            "emoji": True
        }
    })

    blocks.append({"type": "divider"})

    counts_text = (
        f"*{job.kind.value.replace('_', ' ').title()}*\n\n"
        f"Processed: *{job.processed_records:,}* / {job.total_records:,}  |  "
        f"Succeeded: *{job.success_count:,}*  |  "
        f"Failed: *{job.failure_count:,}*"
    )
    blocks.append({
        "type": "section",
        "text": {"type": "mrkdwn", "text": counts_text}
    })

    if job.outcome_counts:
        outcome_text = "  |  ".join(
            f"{key}: *{count:,}*" for key, count in sorted(job.outcome_counts.items())
        )
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*Outcomes*\n{outcome_text}"}
        })

    if any(job.risk_distribution.values()):
        risk_text = "  |  ".join(
            f"{band}: *{count:,}*" for band, count in job.risk_distribution.items()
        )
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*Risk distribution*\n{risk_text}"}
        })

    if job.errors:
        lines = [
            f"• #{error.record_index} `{error.record_id}` {error.error_code}: {error.error_message}"
            for error in job.errors[:MAX_ERRORS_IN_DIGEST]
        ]
        hidden = job.failure_count - len(lines)
        if hidden > 0:
            lines.append(f"_…and {hidden:,} more_")
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": "*Errors*\n" + "\n".join(lines)}
        })

    return blocks


async def send_job_completion_digest(
    job: ImportJob,
    webhook_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Post the completion digest for a finished job.

    Args:
        job: The job in its terminal state.
        webhook_url: Override for SLACK_WEBHOOK_URL.

    Returns:
        Dict with:
        - success: True if the message was accepted by Slack
        - batch_id: The job's batch id
        - error: Error message (if failed)

    Raises:
        No exceptions are raised - all errors are captured in the return dict.
    """
    url = webhook_url or get_settings().slack_webhook_url
    if not url:
        return {
            'success': False,
            'batch_id': job.batch_id,
            'error': 'SLACK_WEBHOOK_URL not configured. Set this environment variable to enable completion digests.'
        }

    blocks = format_job_digest(job)

    try:
        client = WebhookClient(url)
        response = client.send(
            text=f"Import batch {job.batch_id} finished with status {job.status.value}",
            blocks=blocks,
        )

        if response.status_code == 200:
            return {
                'success': True,
                'batch_id': job.batch_id,
                'status': job.status.value,
            }

        logger.warning("Slack digest for %s rejected: %s", job.batch_id, response.status_code)
        return {
            'success': False,
            'batch_id': job.batch_id,
            'error': f'Slack API returned status {response.status_code}: {response.body}'
        }
    except Exception as e:
        logger.warning("Slack digest for %s failed: %s", job.batch_id, e)
        return {
            'success': False,
            'batch_id': job.batch_id,
            'error': f'Failed to send Slack message: {str(e)}'
        }
