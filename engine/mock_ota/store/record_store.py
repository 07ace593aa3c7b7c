"""
In-memory record store.

Four keyed collections (properties, bookings, rate plans, calendars) of
free-form JSON records. Each record carries an ``id`` and timestamps;
everything else is opaque to the store.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

Record = dict[str, Any]
Predicate = Callable[[Record], bool]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class Collection:
    """Insertion-ordered keyed collection of records."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._items: dict[str, Record] = {}

    def add(self, record: Record) -> Record:
        if "id" not in record:
            raise ValueError(f"{self.name} record has no id")
        record.setdefault("createdAt", _now_iso())
        record.setdefault("updatedAt", record["createdAt"])
        self._items[record["id"]] = record
        return record

    def get(self, record_id: str) -> Record | None:
        return self._items.get(record_id)

    def update(self, record_id: str, changes: Record) -> Record | None:
        """Merge ``changes`` into a record; the id is never changed."""
        record = self._items.get(record_id)
        if record is None:
            return None
        record.update({k: v for k, v in changes.items() if k != "id"})
        record["updatedAt"] = _now_iso()
        return record

    def delete(self, record_id: str) -> bool:
        return self._items.pop(record_id, None) is not None

    def delete_where(self, predicate: Predicate) -> int:
        doomed = [rid for rid, r in self._items.items() if predicate(r)]
        for rid in doomed:
            del self._items[rid]
        return len(doomed)

    def filter(self, predicate: Predicate | None = None) -> list[Record]:
        if predicate is None:
            return list(self._items.values())
        return [r for r in self._items.values() if predicate(r)]

    def page(
        self,
        predicate: Predicate | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Record], int]:
        """
        Filter then paginate.

        Returns:
            Tuple of (records on the page, total matching)
        """
        matching = self.filter(predicate)
        start = (page - 1) * limit
        return matching[start : start + limit], len(matching)

    def replace_all(self, records: Iterable[Record]) -> None:
        self._items = {}
        for record in records:
            self.add(record)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._items


class RecordStore:
    """The four entity collections served by the provider routes."""

    def __init__(self) -> None:
        self.properties = Collection("property")
        self.bookings = Collection("booking")
        self.rate_plans = Collection("rate_plan")
        self.calendars = Collection("calendar")

    def delete_property(self, property_id: str) -> bool:
        """Delete a property and cascade to its bookings, rate plans and calendars."""
        if not self.properties.delete(property_id):
            return False

        def owned(r: Record) -> bool:
            return r.get("propertyId") == property_id

        self.bookings.delete_where(owned)
        self.rate_plans.delete_where(owned)
        self.calendars.delete_where(owned)
        return True

    def find_calendar(self, property_id: str, date: str) -> Record | None:
        for entry in self.calendars.filter(lambda c: c.get("propertyId") == property_id):
            if str(entry.get("date", ""))[:10] == date[:10]:
                return entry
        return None

    def counts(self) -> dict[str, int]:
        return {
            "properties": len(self.properties),
            "bookings": len(self.bookings),
            "ratePlans": len(self.rate_plans),
            "calendars": len(self.calendars),
        }
