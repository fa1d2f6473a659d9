"""
Background notification jobs for the billing migration backend.

- completion_notifier.py: Slack digest posted when an import batch finishes

Environment Requirements:
- SLACK_WEBHOOK_URL: Slack incoming webhook URL in format:
  https://hooks.slack.com/services/xxx/yyy/zzz
  When unset, digests are skipped and the orchestrator runs without a notifier.
"""

from billing_migration.jobs.completion_notifier import (
    format_job_digest,
    send_job_completion_digest,
)


__all__ = [
    'format_job_digest',
    'send_job_completion_digest',
]
