"""Slack Web API integration for "task changed" notifications."""

import logging
from dataclasses import dataclass

from designer_scheduler.db.models import Status, Task

logger = logging.getLogger(__name__)


class SlackError(Exception):
    """Raised when a Slack operation fails."""


@dataclass
class SlackMessage:
    channel: str
    ts: str
    text: str


def get_client(token: str | None):
    """Get a Slack WebClient. Returns None if no token provided."""
    if not token:
        return None
    from slack_sdk import WebClient
    return WebClient(token=token)


def send_message(
    token: str | None,
    channel: str,
    text: str,
    blocks: list[dict] | None = None,
) -> SlackMessage:
    """Send a message to a Slack channel."""
    client = get_client(token)
    if not client:
        raise SlackError("Slack not configured: SLACK_BOT_TOKEN not set")

    try:
        response = client.chat_postMessage(channel=channel, text=text, blocks=blocks)
    except Exception as e:
        raise SlackError(f"Slack API call failed: {e}") from e

    return SlackMessage(
        channel=response["channel"],
        ts=response["ts"],
        text=text,
    )


def format_task_notification(task: Task, event: str = "updated") -> list[dict]:
    """Format a task change as Slack blocks."""
    status_emoji = {
        Status.TO_DO: ":white_circle:",
        Status.IN_PROGRESS: ":large_blue_circle:",
        Status.ON_APPROVAL: ":eyes:",
        Status.COMPLETE: ":white_check_mark:",
    }
    emoji = status_emoji.get(task.status, ":grey_question:")
    assignees = ", ".join(task.assignees) or "unassigned"

    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f"{emoji} *Task {event}*\n*{task.name}* (`{task.id}`)\n"
                    f"Priority: *{task.priority.value}* | Status: *{task.status.value}*\n"
                    f"{task.start_date:%Y-%m-%d %H:%M} → {task.deadline:%Y-%m-%d %H:%M} UTC"
                    f" | Assignees: {assignees}"
                ),
            },
        }
    ]


def notify_task_changed(
    token: str | None, channel: str | None, task: Task, event: str = "updated"
) -> bool:
    """Best-effort notification; failures are logged, never raised."""
    if not token or not channel:
        logger.debug("Slack not configured; skipping notification for %s", task.id)
        return False
    try:
        send_message(
            token,
            channel,
            text=f"Task {event}: {task.name}",
            blocks=format_task_notification(task, event),
        )
    except SlackError:
        logger.exception("Failed to notify Slack about task %s", task.id)
        return False
    return True
