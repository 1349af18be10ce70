import re
from datetime import datetime, time, timezone
from typing import Any, Dict, Optional

from email_validator import validate_email
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from user_service.models.user import UserRole, UserStatus

_HMS_PATTERN = re.compile(r"(\d{2}):(\d{2}):(\d{2})")


def check_email(value: Optional[str]) -> Optional[str]:
    """Reject malformed addresses but keep the value exactly as given."""
    if value is not None:
        validate_email(value, check_deliverability=False)
    return value


def normalize_time(value: Any) -> Optional[time]:
    """Coerce a departure time into a plain ``HH:MM:SS`` time of day.

    Accepts ``"07:30:00"``, anything containing an ``HH:MM:SS`` substring
    (``"2025-11-22T18:20:56.019Z"``, ``"18:22:48.343Z"``), ISO dates and
    ``time``/``datetime`` objects. Raises ``ValueError`` for anything else.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.time().replace(microsecond=0)
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)
    if not isinstance(value, str):
        raise ValueError(f"Unsupported time value: {value!r}")

    candidate = value.strip()
    match = _HMS_PATTERN.search(candidate)
    if match:
        hours, minutes, seconds = (int(part) for part in match.groups())
        return time(hours, minutes, seconds)

    try:
        parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"Unrecognised time value: {value!r}; expected HH:mm:ss") from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.time().replace(microsecond=0)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class _UserFieldsMixin(CamelModel):
    @field_validator("email", check_fields=False)
    @classmethod
    def _check_email(cls, v):
        return check_email(v)

    @field_validator("preferred_departure_time", mode="before", check_fields=False)
    @classmethod
    def _normalize_departure_time(cls, v):
        return normalize_time(v)


class UserCreate(_UserFieldsMixin):
    email: str
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: Optional[str] = None
    status: UserStatus = UserStatus.ACTIVE
    role: UserRole = UserRole.STUDENT
    home_area: Optional[str] = None
    preferred_departure_time: Optional[time] = None


class UserUpdate(_UserFieldsMixin):
    """Partial update: only the fields present in the payload are written."""

    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    status: Optional[UserStatus] = None
    role: Optional[UserRole] = None
    home_area: Optional[str] = None
    preferred_departure_time: Optional[time] = None

    @field_validator("email", "first_name", "last_name", "status", "role", mode="before")
    @classmethod
    def _not_null(cls, v):
        if v is None:
            raise ValueError("field may not be null")
        return v


class UserRead(CamelModel):
    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    status: UserStatus
    role: UserRole
    home_area: Optional[str] = None
    preferred_departure_time: Optional[time] = None
    google_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_serializer("preferred_departure_time")
    def _serialize_departure_time(self, v: Optional[time]) -> Optional[str]:
        return v.strftime("%H:%M:%S") if v else None

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE


class UserResponse(UserRead):
    links: Dict[str, str] = {}


def user_with_links(user: UserRead) -> Dict[str, Any]:
    """Wire representation of a user with its hypermedia self link."""
    body = user.model_dump(by_alias=True, mode="json")
    body["links"] = {"self": f"/api/users/{user.id}"}
    return body


class TokenVerifyRequest(BaseModel):
    token: Optional[str] = None
