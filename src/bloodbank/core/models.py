"""Domain models for the Blood Bank service."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote

MAP_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query="


class BloodType(str, Enum):
    """Blood type codes tracked per hospital."""

    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


BLOOD_TYPE_CODES: tuple[str, ...] = tuple(t.value for t in BloodType)


class View(str, Enum):
    """Pages the client can display."""

    LOGIN = "login"
    HOME = "home"
    ABOUT = "about"
    REQUEST = "request"
    CONTACT = "contact"


class RequestStatusKind(str, Enum):
    """Outcome of the latest blood request."""

    NONE = "none"
    SUCCESS = "success"
    ERROR = "error"


def map_search_url(hospital_name: str) -> str:
    """Link to a map search for the hospital."""
    return MAP_SEARCH_URL + quote(hospital_name, safe="!*'()")


@dataclass(frozen=True)
class InventoryRecord:
    """A hospital and its per-blood-type unit counts."""

    id: str
    name: str
    location: str
    inventory: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "InventoryRecord":
        """Build a record from a stored document body.

        Raises:
            ValueError: If the body, the inventory or any count is malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Document body must be an object, got {type(data).__name__}")
        raw_inventory = data.get("inventory") or {}
        if not isinstance(raw_inventory, dict):
            raise ValueError(
                f"Inventory must be an object, got {type(raw_inventory).__name__}"
            )

        inventory = {}
        for code, units in raw_inventory.items():
            # bool is an int subclass
            if isinstance(units, bool) or not isinstance(units, int):
                raise ValueError(f"Unit count for {code} is not an integer: {units!r}")
            if units < 0:
                raise ValueError(f"Negative unit count for {code}")
            inventory[str(code)] = units
        return cls(
            id=doc_id,
            name=str(data.get("name", "")),
            location=str(data.get("location", "")),
            inventory=inventory,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "location": self.location,
            "inventory": dict(self.inventory),
        }


@dataclass(frozen=True)
class RequestStatus:
    """Transient result of a blood request submission."""

    kind: RequestStatusKind = RequestStatusKind.NONE
    message: str = ""
    hospital: str | None = None

    @classmethod
    def success(cls, message: str, hospital: str) -> "RequestStatus":
        return cls(RequestStatusKind.SUCCESS, message, hospital)

    @classmethod
    def error(cls, message: str) -> "RequestStatus":
        return cls(RequestStatusKind.ERROR, message)

    @property
    def map_url(self) -> str | None:
        if self.kind is RequestStatusKind.SUCCESS and self.hospital:
            return map_search_url(self.hospital)
        return None


REQUEST_STATUS_NONE = RequestStatus()


@dataclass(frozen=True)
class Session:
    """A signed-in principal."""

    uid: str
    is_anonymous: bool = True


DEFAULT_HOSPITALS: tuple[InventoryRecord, ...] = (
    InventoryRecord(
        id="hospital-A",
        name="City General Hospital",
        location="Mumbai",
        inventory={"A+": 25, "A-": 12, "B+": 30, "B-": 8, "AB+": 5, "AB-": 3, "O+": 50, "O-": 20},
    ),
    InventoryRecord(
        id="hospital-B",
        name="Community Health Center",
        location="Delhi",
        inventory={"A+": 10, "A-": 5, "B+": 15, "B-": 2, "AB+": 2, "AB-": 1, "O+": 25, "O-": 10},
    ),
    InventoryRecord(
        id="hospital-C",
        name="Regional Trauma Center",
        location="Bangalore",
        inventory={"A+": 50, "A-": 20, "B+": 40, "B-": 10, "AB+": 8, "AB-": 5, "O+": 80, "O-": 40},
    ),
)
