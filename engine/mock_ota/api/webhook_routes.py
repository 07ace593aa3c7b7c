"""
Webhook API routes.

Provides:
- One intake endpoint per provider (three processing attempts)
- A generic test intake (single attempt, any channel)
- Status query with channel/status filters and pagination
- Single webhook lookup
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from mock_ota.api.deps import get_webhooks, webhook_rate_limit, webhook_simulation
from mock_ota.domain.provider import Provider
from mock_ota.errors import NotFoundError, ValidationError, page_meta, success_envelope
from mock_ota.logging import get_logger
from mock_ota.webhooks.queue import WebhookQueue, WebhookStatus

router = APIRouter(
    prefix="/api/webhooks",
    tags=["Webhooks"],
    dependencies=[Depends(webhook_rate_limit)],
)
logger = get_logger(__name__)

TEST_MAX_ATTEMPTS = 1


# =============================================================================
# Request Models
# =============================================================================


class ProviderWebhookRequest(BaseModel):
    """Webhook pushed by a provider."""

    model_config = ConfigDict(extra="allow")

    event_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices("event_type", "eventType"),
    )
    data: Any = None
    timestamp: str | None = None


class ChannelWebhookRequest(BaseModel):
    """Webhook for an arbitrary channel, processed once."""

    model_config = ConfigDict(extra="allow")

    channel: str | None = None
    event_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices("event_type", "eventType"),
    )
    data: Any = None


# =============================================================================
# Routes
# =============================================================================


@router.post("/test", dependencies=[Depends(webhook_simulation)])
async def receive_test_webhook(
    body: ChannelWebhookRequest | None = Body(default=None),
    webhooks: WebhookQueue = Depends(get_webhooks),
) -> dict[str, Any]:
    """Accept a test webhook for any channel."""
    body = body or ChannelWebhookRequest()
    if not body.channel or not body.event_type:
        raise ValidationError("channel and event_type are required")

    record = await webhooks.enqueue(
        channel=body.channel,
        event_type=body.event_type,
        payload=body.data if body.data is not None else {},
        max_attempts=TEST_MAX_ATTEMPTS,
        id_prefix="test",
    )
    return success_envelope(
        {
            "webhookId": record.id,
            "status": "received",
            "eventType": record.event_type,
            "channel": record.channel,
        }
    )


@router.get("/status")
async def get_webhook_status(
    channel: str | None = Query(default=None),
    status: WebhookStatus | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    webhooks: WebhookQueue = Depends(get_webhooks),
) -> dict[str, Any]:
    """Newest-first webhook summaries (payloads are never returned)."""
    items, total = await webhooks.query(channel=channel, status=status, page=page, limit=limit)
    logger.debug("Retrieved webhook status: %d of %d webhooks", len(items), total)
    return success_envelope(items, meta=page_meta(total, page, limit))


def _provider_intake(provider: Provider):
    async def receive_provider_webhook(
        body: ProviderWebhookRequest | None = Body(default=None),
        webhooks: WebhookQueue = Depends(get_webhooks),
    ) -> dict[str, Any]:
        body = body or ProviderWebhookRequest()
        if not body.event_type or body.data is None:
            raise ValidationError("event_type and data are required")

        record = await webhooks.enqueue(
            channel=provider.value,
            event_type=body.event_type,
            payload=body.data,
        )
        return success_envelope(
            {"webhookId": record.id, "status": "received", "eventType": record.event_type}
        )

    receive_provider_webhook.__name__ = f"receive_{provider.value}_webhook"
    return receive_provider_webhook


for _provider in Provider:
    router.add_api_route(
        f"/{_provider.value}",
        _provider_intake(_provider),
        methods=["POST"],
        dependencies=[Depends(webhook_simulation)],
        summary=f"Receive {_provider.value} webhook",
    )


@router.get("/{webhook_id}")
async def get_webhook(
    webhook_id: str,
    webhooks: WebhookQueue = Depends(get_webhooks),
) -> dict[str, Any]:
    record = await webhooks.get(webhook_id)
    if record is None:
        raise NotFoundError("Webhook not found", details={"webhookId": webhook_id})
    return success_envelope(record.to_summary())
