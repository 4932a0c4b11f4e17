"""Blood request validation and inventory withdrawal."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

import structlog

from bloodbank.core.errors import ValidationError, WriteError
from bloodbank.core.gateway import SyncGateway
from bloodbank.core.models import InventoryRecord, RequestStatus

logger = structlog.get_logger()

FILL_ALL_FIELDS = "Please fill in all fields."
HOSPITAL_NOT_FOUND = "Hospital not found."
TYPE_NOT_TRACKED = "This blood type is not tracked for this hospital."
REQUEST_FAILED = "Failed to process request. Please try again."

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_amount(raw: str | int | None) -> int | None:
    """Parse a form amount the way a browser number field reads it.

    Leading digits are taken, anything after them is ignored, and a value
    with no leading digits is treated as absent.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    match = _LEADING_INT.match(str(raw))
    if match is None:
        return None
    return int(match.group(1))


@dataclass(frozen=True)
class BloodRequest:
    """A withdrawal of units of one blood type from one hospital."""

    blood_type: str | None
    hospital: str | None
    amount: int | None
    # Optional details about who is asking; recorded, never validated here
    requester_name: str | None = None
    requester_age: int | None = None
    requester_gender: str | None = None

    @classmethod
    def from_form(
        cls,
        blood_type: str | None,
        hospital: str | None,
        amount: str | int | None,
        requester_name: str | None = None,
        requester_age: int | None = None,
        requester_gender: str | None = None,
    ) -> "BloodRequest":
        return cls(
            blood_type=blood_type or None,
            hospital=hospital or None,
            amount=parse_amount(amount),
            requester_name=requester_name or None,
            requester_age=requester_age,
            requester_gender=requester_gender,
        )


def shortage_message(blood_type: str, hospital: str, available: int) -> str:
    return (
        f"Not enough {blood_type} blood available at {hospital}. "
        f"Only {available} units available."
    )


def success_message(amount: int, blood_type: str, hospital: str) -> str:
    return f"Successfully requested {amount} units of {blood_type} blood from {hospital}."


class InventoryRequestHandler:
    """Validates blood requests against cached inventory and applies them."""

    def __init__(self, gateway: SyncGateway):
        self.gateway = gateway

    def validate(
        self, request: BloodRequest, banks: Sequence[InventoryRecord]
    ) -> tuple[InventoryRecord, int]:
        """Check a request against the current snapshot.

        Args:
            request: The submitted request
            banks: Records from the latest snapshot

        Returns:
            Tuple of (matched hospital record, units currently available)

        Raises:
            ValidationError: On the first failing check
        """
        if (
            not request.blood_type
            or not request.hospital
            or request.amount is None
            or request.amount <= 0
        ):
            raise ValidationError(FILL_ALL_FIELDS)

        bank = next((b for b in banks if b.name == request.hospital), None)
        if bank is None:
            raise ValidationError(HOSPITAL_NOT_FOUND)

        current = bank.inventory.get(request.blood_type)
        if current is None:
            raise ValidationError(TYPE_NOT_TRACKED)

        if current < request.amount:
            raise ValidationError(
                shortage_message(request.blood_type, request.hospital, current)
            )

        return bank, current

    async def submit(
        self, request: BloodRequest, banks: Sequence[InventoryRecord]
    ) -> RequestStatus:
        """Validate and apply a request, reporting the outcome.

        The write is not confirmed here; the new count arrives with the next
        snapshot.
        """
        try:
            bank, current = self.validate(request, banks)
        except ValidationError as e:
            logger.info(
                "blood_request_rejected",
                blood_type=request.blood_type,
                hospital=request.hospital,
                amount=request.amount,
                reason=str(e),
            )
            return RequestStatus.error(str(e))

        new_inventory = {**bank.inventory, request.blood_type: current - request.amount}
        try:
            await self.gateway.update_inventory(bank.id, new_inventory)
        except WriteError as e:
            logger.error(
                "inventory_update_failed",
                hospital_id=bank.id,
                blood_type=request.blood_type,
                error=str(e),
            )
            return RequestStatus.error(REQUEST_FAILED)

        logger.info(
            "blood_request_fulfilled",
            hospital_id=bank.id,
            blood_type=request.blood_type,
            amount=request.amount,
            remaining=current - request.amount,
            requester=request.requester_name,
            requester_age=request.requester_age,
            requester_gender=request.requester_gender,
        )
        return RequestStatus.success(
            success_message(request.amount, request.blood_type, bank.name),
            hospital=bank.name,
        )
