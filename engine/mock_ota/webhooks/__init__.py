"""
Webhook intake, background processing and retry.
"""

from mock_ota.webhooks.queue import WebhookQueue, WebhookRecord, WebhookStatus

__all__ = ["WebhookQueue", "WebhookRecord", "WebhookStatus"]
