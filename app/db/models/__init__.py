"""
Database Models
"""
from app.db.models.webhook import Webhook
from app.db.models.webhook_attachment import WebhookAttachment
from app.db.models.webhook_forward import ForwardAttempt

__all__ = [
    "Webhook",
    "WebhookAttachment",
    "ForwardAttempt",
]
