"""Pydantic request/response schemas for the Blood Bank API."""

from typing import Literal

from pydantic import BaseModel, Field

from bloodbank.core.models import RequestStatusKind, View


# Request models


class SignInRequest(BaseModel):
    """Request body for sign-in. Anonymous when no token is given."""

    token: str | None = Field(default=None, description="Pre-issued sign-in token")


class ViewRequest(BaseModel):
    view: View


class BloodRequestBody(BaseModel):
    """Request body for a blood withdrawal.

    Fields are optional so that incomplete forms reach validation and get
    the same inline message a user would see.
    """

    blood_type: str | None = Field(default=None, description="Blood type code, e.g. O+")
    hospital: str | None = Field(default=None, description="Hospital display name")
    amount: int | str | None = Field(default=None, description="Units requested")
    requester_name: str | None = None
    requester_age: int | None = Field(default=None, ge=18)
    requester_gender: Literal["male", "female", "other"] | None = None


class DonationRequest(BaseModel):
    name: str = Field(..., min_length=1)
    weight_kg: float = Field(..., gt=0)
    age: int = Field(..., gt=0)
    medical_issues: bool = False


class ContactRequest(BaseModel):
    name: str = ""
    email: str = ""
    message: str = ""


# Response models


class SessionResponse(BaseModel):
    uid: str
    is_anonymous: bool


class BankResponse(BaseModel):
    """A hospital and its inventory."""

    id: str
    name: str
    location: str
    inventory: dict[str, int]
    total_units: int


class RequestStatusResponse(BaseModel):
    """Outcome of the latest blood request."""

    kind: RequestStatusKind
    message: str
    hospital: str | None = None
    map_url: str | None = None


class StateResponse(BaseModel):
    """Snapshot of a client's state."""

    client_id: str
    view: View
    loading: bool
    synced: bool
    session: SessionResponse | None
    banks: list[BankResponse]
    request_status: RequestStatusResponse
    error: str | None
    show_donate: bool
    notice: str | None


class MessageResponse(BaseModel):
    message: str


class PageResponse(BaseModel):
    name: str
    title: str
    paragraphs: list[str]
    features: list[tuple[str, str]]


class HealthResponse(BaseModel):
    """Response for health check."""

    status: str
    version: str
    backend: str
    database: str
