"""
Notification and escalation dispatcher.

Routes the recovery report through severity-scoped channels (email, SMS,
Slack, PagerDuty, webhooks) with rate limiting, business-hours filtering and
scheduler-driven escalation levels.
"""

from autorecovery.notifications.config import (
    DEFAULT_NOTIFICATION_CONFIG,
    BusinessHours,
    NotificationConfig,
    load_notification_config,
)
from autorecovery.notifications.dispatcher import (
    NotificationDispatcher,
    RateLimitLedger,
    condition_holds,
    due_levels,
)
from autorecovery.notifications.templates import FAILURE_TEMPLATE, message_fields, render
from autorecovery.notifications.transports import (
    EmailTransport,
    LogTransport,
    PagerDutyTransport,
    SlackTransport,
    SmsTransport,
    Transport,
    WebhookTransport,
)

__all__ = [
    "DEFAULT_NOTIFICATION_CONFIG",
    "FAILURE_TEMPLATE",
    "BusinessHours",
    "EmailTransport",
    "LogTransport",
    "NotificationConfig",
    "NotificationDispatcher",
    "PagerDutyTransport",
    "RateLimitLedger",
    "SlackTransport",
    "SmsTransport",
    "Transport",
    "WebhookTransport",
    "condition_holds",
    "due_levels",
    "load_notification_config",
    "message_fields",
    "render",
]
