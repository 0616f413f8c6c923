import pytest
from gymbook.domain import validators as v


@pytest.mark.parametrize(
    "email,expected",
    [
        ("ana@gym.com", True),
        ("ana.santos@gym.com.br", True),
        ("ana@gym", False),
        ("ana gym@gym.com", False),
        ("@gym.com", False),
    ],
)
def test_is_valid_email(email: str, expected: bool) -> None:
    assert v.is_valid_email(email) is expected


def test_name_accepts_accents_and_trims() -> None:
    assert v.is_valid_name("  João Conceição ")
    assert not v.is_valid_name("Jo")
    assert not v.is_valid_name("R2D2 Unit")


def test_time_format_is_strict() -> None:
    assert v.is_valid_time_format("07:00")
    assert v.is_valid_time_format("23:59")
    assert not v.is_valid_time_format("7:00")
    assert not v.is_valid_time_format("24:00")
    assert not v.is_valid_time_format("12:60")


def test_business_hours_bounds() -> None:
    assert v.is_valid_business_hours("06:00")
    assert v.is_valid_business_hours("23:30")
    assert not v.is_valid_business_hours("05:59")
    assert not v.is_valid_business_hours("bad")


def test_numeric_rules_reject_booleans_and_out_of_range() -> None:
    assert v.is_valid_class_capacity(1)
    assert v.is_valid_class_capacity(50)
    assert not v.is_valid_class_capacity(51)
    assert not v.is_valid_class_capacity(True)
    assert v.is_valid_class_duration(30)
    assert not v.is_valid_class_duration(29)
    assert not v.is_valid_weekday(7)


def test_password_strength_scores() -> None:
    assert v.password_strength("abc") == 0
    assert v.password_strength("abcdef") == 1
    assert v.password_strength("Abcdef1!") == 5
    assert v.is_strong_password("Abcdefg1")
    assert not v.is_strong_password("abcdefg1")


def test_sanitize_string_collapses_whitespace() -> None:
    assert v.sanitize_string("  Yoga   for  beginners ") == "Yoga for beginners"


def test_validate_class_accepts_valid_input() -> None:
    result = v.validate_class("Yoga", 1, "07:00", 60, 8)
    assert result.valid
    assert result.errors == []


def test_validate_class_reports_every_field_in_order() -> None:
    result = v.validate_class("Yoga", 1, "07:00", 20, 60)
    assert not result.valid
    assert result.errors == [
        "Duration must be between 30 and 180 minutes",
        "Capacity must be between 1 and 50 students",
    ]


def test_validate_class_reports_schedule_errors() -> None:
    result = v.validate_class("", 9, "05:00", 60, 10)
    assert result.errors == [
        "Modality is required",
        "Weekday must be between 0 (Sunday) and 6 (Saturday)",
        "Start time must be between 06:00 and 23:00",
    ]


def test_validate_registration_detects_mismatch() -> None:
    result = v.validate_registration("Ana Santos", "ana@gym.com", "secret1", "secret2")
    assert result.errors == ["Passwords do not match"]


def test_validate_login_requires_fields() -> None:
    result = v.validate_login("", "")
    assert result.errors == ["Email is required", "Password is required"]


def test_validate_password_change_rejects_reuse() -> None:
    result = v.validate_password_change("secret1", "secret1", "secret1")
    assert result.errors == ["New password must be different from the current password"]


@pytest.mark.parametrize(
    "duration,capacity,valid",
    [
        (200, 10, False),
        (45, 10, True),
        (60, 0, False),
        (60, 50, True),
    ],
)
def test_validate_class_boundaries(duration: int, capacity: int, valid: bool) -> None:
    assert v.validate_class("Cross", 2, "19:00", duration, capacity).valid is valid
