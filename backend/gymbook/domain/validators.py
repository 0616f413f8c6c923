"""Field and form validation.

Predicates answer a single question about one value. The ``validate_*``
functions check a whole form: every field is checked, at most one message is
reported per field, and the result is returned as data rather than raised.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

MIN_PASSWORD_LENGTH = 6
STRONG_PASSWORD_LENGTH = 8
MIN_NAME_LENGTH = 3
OPENING_HOUR = 6
CLOSING_HOUR = 23
MIN_CLASS_CAPACITY = 1
MAX_CLASS_CAPACITY = 50
MIN_CLASS_DURATION = 30
MAX_CLASS_DURATION = 180

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NAME_RE = re.compile(r"^[a-zA-ZÀ-ÿ\s]{3,}$")
_TIME_RE = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")
_STRONG_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}$")


@dataclass(frozen=True)
class ValidationResult:
    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def is_empty(value: str | None) -> bool:
    return value is None or not value.strip()


def sanitize_string(value: str) -> str:
    return " ".join(value.split())


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def is_valid_password(password: str) -> bool:
    return len(password) >= MIN_PASSWORD_LENGTH


def is_strong_password(password: str) -> bool:
    return bool(_STRONG_PASSWORD_RE.match(password))


def password_strength(password: str) -> int:
    """Score a password from 0 to 5."""
    checks = (
        len(password) >= MIN_PASSWORD_LENGTH,
        len(password) >= STRONG_PASSWORD_LENGTH,
        re.search(r"[A-Z]", password) is not None,
        re.search(r"[0-9]", password) is not None,
        re.search(r"[^A-Za-z0-9]", password) is not None,
    )
    return sum(checks)


def is_valid_name(name: str) -> bool:
    return bool(_NAME_RE.match(name.strip()))


def is_valid_time_format(time: str) -> bool:
    return bool(_TIME_RE.match(time))


def is_valid_business_hours(time: str) -> bool:
    if not is_valid_time_format(time):
        return False
    hours = int(time.split(":")[0])
    return OPENING_HOUR <= hours <= CLOSING_HOUR


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_valid_class_capacity(capacity: Any) -> bool:
    return _is_integer(capacity) and MIN_CLASS_CAPACITY <= capacity <= MAX_CLASS_CAPACITY


def is_valid_class_duration(duration: Any) -> bool:
    return _is_integer(duration) and MIN_CLASS_DURATION <= duration <= MAX_CLASS_DURATION


def is_valid_weekday(weekday: Any) -> bool:
    return _is_integer(weekday) and 0 <= weekday <= 6


def _check_email(email: str | None, errors: list[str]) -> None:
    if is_empty(email):
        errors.append("Email is required")
    elif not is_valid_email(email or ""):
        errors.append("Email is invalid")


def _check_password(password: str | None, errors: list[str], *, label: str = "Password") -> None:
    if is_empty(password):
        errors.append(f"{label} is required")
    elif not is_valid_password(password or ""):
        errors.append(f"{label} must be at least {MIN_PASSWORD_LENGTH} characters long")


def validate_login(email: str | None, password: str | None) -> ValidationResult:
    errors: list[str] = []
    _check_email(email, errors)
    _check_password(password, errors)
    return ValidationResult(errors)


def validate_registration(
    name: str | None,
    email: str | None,
    password: str | None,
    confirm_password: str | None,
) -> ValidationResult:
    errors: list[str] = []
    if is_empty(name):
        errors.append("Name is required")
    elif not is_valid_name(name or ""):
        errors.append("Name must have at least 3 characters and contain only letters")
    _check_email(email, errors)
    _check_password(password, errors)
    if password != confirm_password:
        errors.append("Passwords do not match")
    return ValidationResult(errors)


def validate_class(
    modality: str | None,
    weekday: Any,
    start_time: str | None,
    duration_minutes: Any,
    capacity: Any,
) -> ValidationResult:
    errors: list[str] = []
    if is_empty(modality):
        errors.append("Modality is required")

    if not is_valid_weekday(weekday):
        errors.append("Weekday must be between 0 (Sunday) and 6 (Saturday)")

    if is_empty(start_time):
        errors.append("Start time is required")
    elif not is_valid_time_format(start_time or ""):
        errors.append("Start time must use the HH:mm format")
    elif not is_valid_business_hours(start_time or ""):
        errors.append(f"Start time must be between {OPENING_HOUR:02d}:00 and {CLOSING_HOUR:02d}:00")

    if not _is_integer(duration_minutes):
        errors.append("Duration is invalid")
    elif not is_valid_class_duration(duration_minutes):
        errors.append(f"Duration must be between {MIN_CLASS_DURATION} and {MAX_CLASS_DURATION} minutes")

    if not _is_integer(capacity):
        errors.append("Capacity is invalid")
    elif not is_valid_class_capacity(capacity):
        errors.append(f"Capacity must be between {MIN_CLASS_CAPACITY} and {MAX_CLASS_CAPACITY} students")

    return ValidationResult(errors)


def validate_profile(name: str | None, email: str | None) -> ValidationResult:
    errors: list[str] = []
    if is_empty(name):
        errors.append("Name is required")
    elif not is_valid_name(name or ""):
        errors.append("Name must have at least 3 characters")
    _check_email(email, errors)
    return ValidationResult(errors)


def validate_password_change(
    current_password: str | None,
    new_password: str | None,
    confirm_password: str | None,
) -> ValidationResult:
    errors: list[str] = []
    if is_empty(current_password):
        errors.append("Current password is required")
    _check_password(new_password, errors, label="New password")
    if new_password != confirm_password:
        errors.append("Passwords do not match")
    if current_password == new_password:
        errors.append("New password must be different from the current password")
    return ValidationResult(errors)
