"""
Provider API routes.

One router per simulated provider, mounted at ``/api/{provider}``. Every
route first enforces the per-client rate limit and runs the provider's
simulation pipeline, then serves the in-memory record store:
- properties: list / get / create / update / delete
- bookings: list / get / create / update / cancel
- rates: list by property / create
- calendar: get by property and date range / apply updates

Booking.com also answers on ``/reservations`` and ``/availability``.

Mutations publish the matching update on the provider's broadcast channel.
"""

import time
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request

from mock_ota.api.deps import (
    api_rate_limit,
    get_hub,
    get_services,
    get_store,
    provider_simulation,
)
from mock_ota.broadcast.hub import BroadcastHub
from mock_ota.domain.provider import Provider
from mock_ota.errors import NotFoundError, ValidationError, page_meta, success_envelope
from mock_ota.logging import get_logger
from mock_ota.simulation.random_source import random_token
from mock_ota.store.record_store import Record, RecordStore

logger = get_logger(__name__)

Payload = dict[str, Any] | None


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _require(payload: Payload, *fields: str, message: str) -> dict[str, Any]:
    body = payload or {}
    if any(not body.get(f) for f in fields):
        raise ValidationError(message, details={"required": list(fields)})
    return body


def create_provider_router(provider: Provider) -> APIRouter:
    """Build the record routes for one provider."""
    channel = provider.value
    router = APIRouter(
        prefix=f"/api/{channel}",
        tags=[channel.capitalize()],
        dependencies=[Depends(api_rate_limit), Depends(provider_simulation(provider))],
    )

    def new_id(request: Request, kind: str | None = None) -> str:
        token = random_token(get_services(request).rng)
        middle = f"{kind}_" if kind else ""
        return f"{channel}_{middle}{int(time.time() * 1000)}_{token}"

    def owned_booking(store: RecordStore, booking_id: str) -> Record:
        booking = store.bookings.get(booking_id)
        if booking is None or booking.get("channel") != channel:
            raise NotFoundError("Booking not found", details={"bookingId": booking_id})
        return booking

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @router.get("/properties")
    async def list_properties(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=20, ge=1, le=100),
        search: str | None = None,
        status: str | None = None,
        store: RecordStore = Depends(get_store),
    ) -> dict[str, Any]:
        term = search.lower() if search else None

        def matches(p: Record) -> bool:
            if p.get("status") == "deleted":
                return False
            if status and p.get("status") != status:
                return False
            if term:
                haystack = " ".join(
                    str(v)
                    for v in (p.get("name"), p.get("description"), (p.get("address") or {}).get("city"))
                    if v
                ).lower()
                return term in haystack
            return True

        items, total = store.properties.page(matches, page, limit)
        logger.info("Retrieved %d %s properties", len(items), channel)
        return success_envelope(items, meta=page_meta(total, page, limit))

    @router.get("/properties/{property_id}")
    async def get_property(property_id: str, store: RecordStore = Depends(get_store)) -> dict[str, Any]:
        prop = store.properties.get(property_id)
        if prop is None:
            raise NotFoundError("Property not found", details={"propertyId": property_id})
        return success_envelope(prop)

    @router.post("/properties", status_code=201)
    async def create_property(
        request: Request,
        payload: Payload = Body(default=None),
        store: RecordStore = Depends(get_store),
        hub: BroadcastHub = Depends(get_hub),
    ) -> dict[str, Any]:
        body = _require(payload, "name", "address", message="Name and address are required")
        now = _now_iso()
        prop = store.properties.add(
            {
                "id": new_id(request),
                "name": body["name"],
                "description": body.get("description", ""),
                "address": body["address"],
                "amenities": body.get("amenities", []),
                "images": body.get("images", []),
                "maxGuests": body.get("maxGuests", 1),
                "bedrooms": body.get("bedrooms", 1),
                "bathrooms": body.get("bathrooms", 1),
                "propertyType": body.get("propertyType", "apartment"),
                "status": "active",
                "createdAt": now,
                "updatedAt": now,
            }
        )
        await hub.publish_property_update(channel, prop)
        logger.info("Created %s property: %s", channel, prop["id"])
        return success_envelope(prop)

    @router.put("/properties/{property_id}")
    async def update_property(
        property_id: str,
        payload: Payload = Body(default=None),
        store: RecordStore = Depends(get_store),
        hub: BroadcastHub = Depends(get_hub),
    ) -> dict[str, Any]:
        prop = store.properties.update(property_id, payload or {})
        if prop is None:
            raise NotFoundError("Property not found", details={"propertyId": property_id})
        await hub.publish_property_update(channel, prop)
        logger.info("Updated %s property: %s", channel, property_id)
        return success_envelope(prop)

    @router.delete("/properties/{property_id}")
    async def delete_property(
        property_id: str,
        store: RecordStore = Depends(get_store),
        hub: BroadcastHub = Depends(get_hub),
    ) -> dict[str, Any]:
        if not store.delete_property(property_id):
            raise NotFoundError("Property not found", details={"propertyId": property_id})
        await hub.publish_property_update(channel, {"id": property_id, "deleted": True})
        logger.info("Deleted %s property: %s", channel, property_id)
        return success_envelope()

    # -------------------------------------------------------------------------
    # Bookings
    # -------------------------------------------------------------------------

    @router.get("/bookings")
    async def list_bookings(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=20, ge=1, le=100),
        property_id: str | None = Query(default=None, alias="propertyId"),
        status: str | None = None,
        store: RecordStore = Depends(get_store),
    ) -> dict[str, Any]:
        def matches(b: Record) -> bool:
            return (
                b.get("channel") == channel
                and (property_id is None or b.get("propertyId") == property_id)
                and (status is None or b.get("status") == status)
            )

        items, total = store.bookings.page(matches, page, limit)
        logger.info("Retrieved %d %s bookings", len(items), channel)
        return success_envelope(items, meta=page_meta(total, page, limit))

    @router.get("/bookings/{booking_id}")
    async def get_booking(booking_id: str, store: RecordStore = Depends(get_store)) -> dict[str, Any]:
        return success_envelope(owned_booking(store, booking_id))

    @router.post("/bookings", status_code=201)
    async def create_booking(
        request: Request,
        payload: Payload = Body(default=None),
        store: RecordStore = Depends(get_store),
        hub: BroadcastHub = Depends(get_hub),
    ) -> dict[str, Any]:
        body = _require(
            payload,
            "propertyId",
            "guestName",
            "checkIn",
            "checkOut",
            message="Property ID, guest name, check-in, and check-out dates are required",
        )
        now = _now_iso()
        millis = int(time.time() * 1000)
        booking = store.bookings.add(
            {
                "id": new_id(request, "booking"),
                "propertyId": body["propertyId"],
                "guestId": body.get("guestId", f"guest_{millis}"),
                "guestName": body["guestName"],
                "guestEmail": body.get("guestEmail", ""),
                "checkIn": body["checkIn"],
                "checkOut": body["checkOut"],
                "guests": body.get("guests", 1),
                "totalAmount": body.get("totalAmount", 0),
                "currency": body.get("currency", "USD"),
                "status": "confirmed",
                "channel": channel,
                "channelBookingId": f"{channel.upper()}{millis}",
                "createdAt": now,
                "updatedAt": now,
            }
        )
        await hub.publish_booking_update(channel, booking)
        logger.info("Created %s booking: %s", channel, booking["id"])
        return success_envelope(booking)

    @router.put("/bookings/{booking_id}")
    async def update_booking(
        booking_id: str,
        payload: Payload = Body(default=None),
        store: RecordStore = Depends(get_store),
        hub: BroadcastHub = Depends(get_hub),
    ) -> dict[str, Any]:
        owned_booking(store, booking_id)
        # Bookings never move between channels
        changes = {k: v for k, v in (payload or {}).items() if k != "channel"}
        booking = store.bookings.update(booking_id, changes)
        await hub.publish_booking_update(channel, booking)
        logger.info("Updated %s booking: %s", channel, booking_id)
        return success_envelope(booking)

    @router.delete("/bookings/{booking_id}")
    async def cancel_booking(
        booking_id: str,
        store: RecordStore = Depends(get_store),
        hub: BroadcastHub = Depends(get_hub),
    ) -> dict[str, Any]:
        owned_booking(store, booking_id)
        booking = store.bookings.update(booking_id, {"status": "cancelled"})
        await hub.publish_booking_update(channel, booking)
        logger.info("Cancelled %s booking: %s", channel, booking_id)
        return success_envelope()

    # -------------------------------------------------------------------------
    # Rate plans
    # -------------------------------------------------------------------------

    @router.get("/rates")
    async def list_rate_plans(
        property_id: str | None = Query(default=None, alias="propertyId"),
        store: RecordStore = Depends(get_store),
    ) -> dict[str, Any]:
        if not property_id:
            raise ValidationError("Property ID is required", details={"field": "propertyId"})
        plans = store.rate_plans.filter(lambda r: r.get("propertyId") == property_id)
        return success_envelope(plans)

    @router.post("/rates", status_code=201)
    async def create_rate_plan(
        request: Request,
        payload: Payload = Body(default=None),
        store: RecordStore = Depends(get_store),
        hub: BroadcastHub = Depends(get_hub),
    ) -> dict[str, Any]:
        body = _require(
            payload,
            "propertyId",
            "name",
            "basePrice",
            message="Property ID, name, and base price are required",
        )
        now = datetime.now(UTC)
        plan = store.rate_plans.add(
            {
                "id": new_id(request, "rate"),
                "propertyId": body["propertyId"],
                "name": body["name"],
                "basePrice": body["basePrice"],
                "currency": body.get("currency", "USD"),
                "minStay": body.get("minStay", 1),
                "maxStay": body.get("maxStay", 30),
                "cancellationPolicy": body.get("cancellationPolicy", "moderate"),
                "isActive": True,
                "validFrom": body.get("validFrom", now.isoformat()),
                "validTo": body.get("validTo", (now + timedelta(days=365)).isoformat()),
                "createdAt": now.isoformat(),
                "updatedAt": now.isoformat(),
            }
        )
        await hub.publish_rate_update(channel, plan)
        logger.info("Created %s rate plan: %s", channel, plan["id"])
        return success_envelope(plan)

    # -------------------------------------------------------------------------
    # Calendar
    # -------------------------------------------------------------------------

    @router.get("/calendar")
    async def get_calendar(
        property_id: str | None = Query(default=None, alias="propertyId"),
        start_date: str | None = Query(default=None, alias="startDate"),
        end_date: str | None = Query(default=None, alias="endDate"),
        store: RecordStore = Depends(get_store),
    ) -> dict[str, Any]:
        if not property_id:
            raise ValidationError("Property ID is required", details={"field": "propertyId"})

        def matches(c: Record) -> bool:
            day = str(c.get("date", ""))[:10]
            return (
                c.get("propertyId") == property_id
                and (start_date is None or day >= start_date[:10])
                and (end_date is None or day <= end_date[:10])
            )

        entries = sorted(store.calendars.filter(matches), key=lambda c: str(c.get("date", "")))
        return success_envelope(entries)

    @router.post("/calendar")
    async def update_calendar(
        request: Request,
        payload: Payload = Body(default=None),
        store: RecordStore = Depends(get_store),
        hub: BroadcastHub = Depends(get_hub),
    ) -> dict[str, Any]:
        body = payload or {}
        property_id = body.get("propertyId")
        updates = body.get("updates")
        if not property_id or not isinstance(updates, list):
            raise ValidationError("Property ID and updates array are required")

        # Reject the whole batch before touching the store
        for update in updates:
            if not isinstance(update, dict) or not update.get("date"):
                raise ValidationError("Each calendar update needs a date", details={"update": update})

        for update in updates:
            existing = store.find_calendar(property_id, str(update["date"]))
            if existing is not None:
                store.calendars.update(existing["id"], update)
            else:
                store.calendars.add(
                    {
                        "isAvailable": True,
                        **update,
                        "id": new_id(request, "cal"),
                        "propertyId": property_id,
                        "updatedAt": _now_iso(),
                    }
                )

        await hub.publish_calendar_update(channel, {"propertyId": property_id, "updates": updates})
        logger.info("Updated %s calendar for property: %s", channel, property_id)
        return success_envelope()

    if provider == Provider.BOOKING:
        # Booking.com names bookings "reservations" and the calendar "availability"
        router.add_api_route("/reservations", list_bookings, methods=["GET"])
        router.add_api_route("/reservations/{booking_id}", get_booking, methods=["GET"])
        router.add_api_route("/reservations", create_booking, methods=["POST"], status_code=201)
        router.add_api_route("/reservations/{booking_id}", update_booking, methods=["PUT"])
        router.add_api_route("/reservations/{booking_id}", cancel_booking, methods=["DELETE"])
        router.add_api_route("/availability", get_calendar, methods=["GET"])
        router.add_api_route("/availability", update_calendar, methods=["POST"])

    return router


routers = {provider: create_provider_router(provider) for provider in Provider}
