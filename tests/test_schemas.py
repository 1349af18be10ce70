from datetime import datetime, time, timezone

import pytest
from pydantic import ValidationError

from user_service.schemas import UserCreate, UserUpdate, normalize_time


@pytest.mark.parametrize(
    "value,expected",
    [
        ("07:30:00", time(7, 30, 0)),
        ("18:22:48.343Z", time(18, 22, 48)),
        ("2025-11-22T18:20:56.019Z", time(18, 20, 56)),
        ("2025-11-22", time(0, 0, 0)),
        (time(6, 5, 4, 999), time(6, 5, 4)),
        (datetime(2025, 1, 1, 9, 15, 0, tzinfo=timezone.utc), time(9, 15, 0)),
        (None, None),
        ("", None),
    ],
)
def test_normalize_time_accepted_shapes(value, expected):
    assert normalize_time(value) == expected


@pytest.mark.parametrize("value", ["noon", "25:00:00", "7pm", 730])
def test_normalize_time_rejects_garbage(value):
    with pytest.raises(ValueError):
        normalize_time(value)


def test_user_create_accepts_camel_case_and_applies_defaults():
    user = UserCreate.model_validate(
        {"email": "a@example.com", "firstName": "A", "lastName": "B", "preferredDepartureTime": "2025-11-22T08:00:00Z"}
    )

    assert user.first_name == "A"
    assert user.status.value == "active"
    assert user.role.value == "student"
    assert user.preferred_departure_time == time(8, 0, 0)


@pytest.mark.parametrize("payload", [{"firstName": "A", "lastName": "B"}, {"email": "not-an-email", "firstName": "A", "lastName": "B"}, {"email": "a@example.com", "firstName": "", "lastName": "B"}, {"email": "a@example.com", "firstName": "A", "lastName": "B", "role": "admin"}])
def test_user_create_rejects_invalid_payloads(payload):
    with pytest.raises(ValidationError):
        UserCreate.model_validate(payload)


def test_user_update_dumps_only_supplied_fields():
    update = UserUpdate.model_validate({"homeArea": "Flushing", "phone": None})

    assert update.model_dump(by_alias=True, exclude_unset=True) == {"homeArea": "Flushing", "phone": None}


def test_user_update_refuses_nulling_required_fields():
    with pytest.raises(ValidationError):
        UserUpdate.model_validate({"firstName": None})


def test_email_keeps_its_original_case():
    user = UserCreate.model_validate({"email": "Grace@Navy.MIL", "firstName": "G", "lastName": "H"})
    update = UserUpdate.model_validate({"email": "Grace@Navy.MIL"})

    assert user.email == "Grace@Navy.MIL"
    assert update.email == "Grace@Navy.MIL"


def test_user_update_rejects_malformed_email():
    with pytest.raises(ValidationError):
        UserUpdate.model_validate({"email": "nobody-at-example"})
