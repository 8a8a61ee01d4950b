"""Notifications package."""
from tokenops.notifications.delivery import (
    EmailSender,
    LogOnlyEmailSender,
    MailerSendEmailSender,
    NotificationDispatcher,
    WebhookSender,
    build_email_sender,
    sign_payload,
    verify_signature,
)
from tokenops.notifications.fanout import NotificationFanout

__all__ = [
    "EmailSender",
    "LogOnlyEmailSender",
    "MailerSendEmailSender",
    "NotificationDispatcher",
    "WebhookSender",
    "build_email_sender",
    "sign_payload",
    "verify_signature",
    "NotificationFanout",
]
