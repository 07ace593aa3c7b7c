#!/usr/bin/env python3
"""
Smoke flow against a running gateway: Property → Booking → Webhook → Metrics

Simulated failures are expected, so every call is retried a few times.
Run this after starting the gateway with: python -m mock_ota.main

Usage:
    python scripts/smoke_flow.py [base_url]
"""

import asyncio
import sys
from typing import Any

import httpx

BASE_URL = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:3001"
ATTEMPTS = 5


async def call(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    **kwargs: Any,
) -> dict[str, Any] | None:
    """Call an endpoint, retrying simulated failures and timeouts."""
    for attempt in range(1, ATTEMPTS + 1):
        try:
            resp = await client.request(method, f"{BASE_URL}{path}", **kwargs)
        except httpx.TimeoutException:
            print(f"  … {method} {path} timed out (attempt {attempt})")
            continue
        if resp.status_code < 400:
            return resp.json()
        code = resp.json().get("error", {}).get("code") if resp.content else "TIMEOUT"
        print(f"  … {method} {path} -> {resp.status_code} {code} (attempt {attempt})")
    print(f"✗ {method} {path} kept failing")
    return None


async def check_health(client: httpx.AsyncClient) -> bool:
    """Check if the gateway is running."""
    try:
        resp = await client.get(f"{BASE_URL}/health", timeout=5.0)
    except httpx.HTTPError as e:
        print(f"✗ Gateway not reachable: {e}")
        return False
    data = resp.json()
    print(f"✓ Gateway healthy: {data.get('version', 'unknown')} ({data.get('environment')})")
    return True


async def create_property(client: httpx.AsyncClient, channel: str) -> str | None:
    body = await call(
        client,
        "POST",
        f"/api/{channel}/properties",
        json={"name": "Smoke Test Loft", "address": {"city": "Lisbon", "country": "Portugal"}},
    )
    if body is None:
        return None
    property_id = body["data"]["id"]
    print(f"✓ Created property {property_id}")
    return property_id


async def create_booking(client: httpx.AsyncClient, channel: str, property_id: str) -> str | None:
    body = await call(
        client,
        "POST",
        f"/api/{channel}/bookings",
        json={
            "propertyId": property_id,
            "guestName": "Smoke Tester",
            "checkIn": "2030-01-10",
            "checkOut": "2030-01-12",
            "totalAmount": 240,
        },
    )
    if body is None:
        return None
    booking_id = body["data"]["id"]
    print(f"✓ Created booking {booking_id}")
    return booking_id


async def send_webhook(client: httpx.AsyncClient, channel: str, booking_id: str) -> str | None:
    body = await call(
        client,
        "POST",
        f"/api/webhooks/{channel}",
        json={"event_type": "booking.created", "data": {"bookingId": booking_id}},
    )
    if body is None:
        return None
    webhook_id = body["data"]["webhookId"]
    print(f"✓ Webhook accepted: {webhook_id}")
    return webhook_id


async def wait_for_webhook(client: httpx.AsyncClient, webhook_id: str) -> None:
    for _ in range(20):
        body = await call(client, "GET", f"/api/webhooks/{webhook_id}")
        if body and body["data"]["status"] != "pending":
            print(f"✓ Webhook {body['data']['status']} after {body['data']['attempts']} attempt(s)")
            return
        await asyncio.sleep(0.5)
    print("  Webhook still pending (a retry may be scheduled)")


async def show_metrics(client: httpx.AsyncClient) -> None:
    body = await call(client, "GET", "/api/metrics/performance")
    if body is None:
        return
    data = body["data"]
    print(
        f"✓ Metrics: {data['totalRequests']} requests, "
        f"{data['errorRate']:.1f}% errors, {data['averageResponseTime']:.0f}ms average"
    )


async def main() -> None:
    """Run the smoke flow."""
    print("=" * 60)
    print("Mock OTA Gateway Smoke Flow")
    print("=" * 60)
    print()

    channel = "airbnb"
    async with httpx.AsyncClient(timeout=10.0) as client:
        print("Step 1: Health Check")
        print("-" * 40)
        if not await check_health(client):
            print("\n❌ Gateway not running. Start with: python -m mock_ota.main")
            sys.exit(1)
        print()

        print("Step 2: Property and Booking")
        print("-" * 40)
        property_id = await create_property(client, channel)
        booking_id = await create_booking(client, channel, property_id) if property_id else None
        print()

        print("Step 3: Webhook Intake")
        print("-" * 40)
        webhook_id = await send_webhook(client, channel, booking_id or "unknown")
        if webhook_id:
            await wait_for_webhook(client, webhook_id)
        print()

        print("Step 4: Metrics")
        print("-" * 40)
        await show_metrics(client)
        print()

    print("=" * 60)
    print("Smoke Flow Complete")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
