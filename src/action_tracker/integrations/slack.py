"""Slack Web API integration."""

import logging
from dataclasses import dataclass

from action_tracker.core.notifications import StatusChangedEvent
from action_tracker.core.rules import KIND_LABELS, EntityKind, get_rules

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

    response = client.chat_postMessage(
        channel=channel,
        text=text,
        blocks=blocks,
    )

    return SlackMessage(
        channel=response["channel"],
        ts=response["ts"],
        text=text,
    )


STATUS_EMOJI = {
    "not_started": ":white_circle:",
    "in_progress": ":large_blue_circle:",
    "in_review": ":mag:",
    "blocked": ":red_circle:",
    "completed": ":white_check_mark:",
    "delayed": ":warning:",
    "cancelled": ":no_entry_sign:",
}


def format_status_text(event: StatusChangedEvent) -> str:
    kind = EntityKind(event.kind)
    rules = get_rules(kind)
    text = (
        f"{KIND_LABELS[kind]} `{event.entity_id}`: "
        f"{rules.label(event.from_status)} → {rules.label(event.to_status)}"
    )
    if event.automatic:
        text += " (automatic, deadline exceeded)"
    return text


def format_status_notification(event: StatusChangedEvent) -> list[dict]:
    """Format a status change as Slack blocks."""
    emoji = STATUS_EMOJI.get(event.to_status, ":grey_question:")
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"{emoji} *Status Update*\n{format_status_text(event)}",
            },
        }
    ]


class SlackStatusNotifier:
    """Status change subscriber that relays each transition to a Slack channel."""

    def __init__(self, token: str, channel: str):
        self.token = token
        self.channel = channel

    def __call__(self, event: StatusChangedEvent):
        try:
            send_message(
                self.token,
                self.channel,
                format_status_text(event),
                blocks=format_status_notification(event),
            )
        except Exception:
            logger.exception("Failed to send Slack notification for %s %s", event.kind, event.entity_id)
