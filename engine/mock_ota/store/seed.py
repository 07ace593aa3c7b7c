"""
Mock record generation.

Populates a RecordStore with plausible properties, rate plans, bookings
and calendar entries using Faker.
"""

from datetime import UTC, date, datetime, timedelta
from typing import Any

from faker import Faker

from mock_ota.domain.provider import Provider
from mock_ota.logging import get_logger
from mock_ota.store.record_store import Record, RecordStore

logger = get_logger(__name__)

PROPERTY_TYPES = ["apartment", "house", "condo", "villa", "studio", "loft", "townhouse"]
AMENITIES = [
    "wifi", "parking", "pool", "gym", "kitchen", "washer", "dryer", "air_conditioning",
    "heating", "tv", "cable_tv", "hot_tub", "fireplace", "balcony", "garden", "patio",
]
RATE_PLAN_NAMES = ["Standard Rate", "Weekend Rate", "Holiday Rate", "Long Stay Rate", "Last Minute Rate"]
CANCELLATION_POLICIES = ["flexible", "moderate", "strict", "super_strict"]
RESTRICTIONS = ["no_pets", "no_smoking", "no_parties"]


def _iso(value: datetime | date) -> str:
    return value.isoformat()


class MockDataGenerator:
    """Faker-backed record factory."""

    def __init__(self, seed: int | None = None) -> None:
        self.fake = Faker()
        if seed is not None:
            self.fake.seed_instance(seed)

    def _past(self) -> str:
        return _iso(self.fake.date_time_between(start_date="-1y", end_date="now", tzinfo=UTC))

    def _recent(self) -> str:
        return _iso(self.fake.date_time_between(start_date="-30d", end_date="now", tzinfo=UTC))

    def property(self) -> Record:
        fake = self.fake
        return {
            "id": fake.uuid4(),
            "name": f"{fake.catch_phrase()} {fake.random_element(['Apartment', 'House', 'Villa', 'Condo'])}",
            "description": "\n\n".join(fake.paragraphs(nb=3)),
            "address": {
                "street": fake.street_address(),
                "city": fake.city(),
                "state": fake.state(),
                "country": fake.country(),
                "postalCode": fake.postcode(),
                "coordinates": {"lat": float(fake.latitude()), "lng": float(fake.longitude())},
            },
            "amenities": fake.random_elements(AMENITIES, length=fake.random_int(3, 8), unique=True),
            "images": [fake.image_url() for _ in range(fake.random_int(3, 10))],
            "maxGuests": fake.random_int(1, 12),
            "bedrooms": fake.random_int(1, 6),
            "bathrooms": fake.random_int(1, 4),
            "propertyType": fake.random_element(PROPERTY_TYPES),
            "status": fake.random_element(["active", "inactive", "maintenance"]),
            "createdAt": self._past(),
            "updatedAt": self._recent(),
        }

    def booking(self, property_id: str, channel: Provider) -> Record:
        fake = self.fake
        check_in = fake.date_time_between(start_date="now", end_date="+1y", tzinfo=UTC)
        nights = fake.random_int(1, 14)
        check_out = check_in + timedelta(days=nights)
        return {
            "id": fake.uuid4(),
            "propertyId": property_id,
            "guestId": fake.uuid4(),
            "guestName": fake.name(),
            "guestEmail": fake.email(),
            "checkIn": _iso(check_in),
            "checkOut": _iso(check_out),
            "guests": fake.random_int(1, 8),
            "totalAmount": fake.random_int(50, 500) * nights,
            "currency": "USD",
            "status": fake.random_element(["confirmed", "cancelled", "completed", "pending"]),
            "channel": channel.value,
            "channelBookingId": fake.bothify("????????????", letters="ABCDEFGHJKLMNPQRSTUVWXYZ0123456789"),
            "createdAt": self._past(),
            "updatedAt": self._recent(),
        }

    def rate_plan(self, property_id: str) -> Record:
        fake = self.fake
        return {
            "id": fake.uuid4(),
            "propertyId": property_id,
            "name": fake.random_element(RATE_PLAN_NAMES),
            "basePrice": fake.random_int(50, 500),
            "currency": "USD",
            "minStay": fake.random_int(1, 3),
            "maxStay": fake.random_int(30, 90),
            "cancellationPolicy": fake.random_element(CANCELLATION_POLICIES),
            "isActive": fake.pybool(),
            "validFrom": self._past(),
            "validTo": _iso(fake.date_time_between(start_date="now", end_date="+1y", tzinfo=UTC)),
            "createdAt": self._past(),
            "updatedAt": self._recent(),
        }

    def calendar(self, property_id: str, day: date) -> Record:
        fake = self.fake
        entry: dict[str, Any] = {
            "id": fake.uuid4(),
            "propertyId": property_id,
            "date": _iso(day),
            "isAvailable": fake.random_int(1, 100) <= 70,
            "updatedAt": self._recent(),
        }
        if fake.pybool():
            entry["price"] = fake.random_int(50, 500)
        if fake.pybool():
            entry["minStay"] = fake.random_int(1, 3)
        if fake.pybool():
            entry["maxStay"] = fake.random_int(30, 90)
        if fake.pybool():
            entry["restrictions"] = [fake.random_element(RESTRICTIONS)]
        return entry


def seed_store(
    store: RecordStore,
    properties: int = 50,
    bookings: int = 200,
    calendars: int = 1000,
    seed: int | None = None,
) -> dict[str, int]:
    """
    Replace the store contents with generated records.

    Returns:
        Record counts per collection
    """
    gen = MockDataGenerator(seed)

    props = [gen.property() for _ in range(properties)]
    store.properties.replace_all(props)

    plans: list[Record] = []
    for prop in props:
        plans.extend(gen.rate_plan(prop["id"]) for _ in range(gen.fake.random_int(1, 3)))
    store.rate_plans.replace_all(plans)

    channels = list(Provider)
    store.bookings.replace_all(
        gen.booking(gen.fake.random_element(props)["id"], gen.fake.random_element(channels))
        for _ in range(bookings if props else 0)
    )

    start = datetime.now(UTC).date() - timedelta(days=30)
    store.calendars.replace_all(
        gen.calendar(gen.fake.random_element(props)["id"], start + timedelta(days=i))
        for i in range(calendars if props else 0)
    )

    counts = store.counts()
    logger.info("Seeded record store: %s", counts)
    return counts
