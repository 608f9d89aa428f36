"""Personnummer validator and normalizer.

Converts any accepted spelling of a Swedish identity number to the
canonical 12-digit ``YYYYMMDDNNNC`` form.

Rules applied in order
----------------------
1. Strip every character other than ASCII 0-9.  Only 10 or 12 digits
   remain valid (``Format``).
2. Resolve the century of a 10-digit number: a two-digit year greater
   than the current year's last two digits belongs to the previous
   century, anything else to the current one.
3. Coordination numbers carry day-of-month + 60.  The offset is removed
   for calendar validation only; the canonical string keeps it
   (``Date``).
4. Luhn checksum over the 10 rightmost digits (``Checksum``).

Safety rule: raw values are never logged.
"""
from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from datetime import date

logger = logging.getLogger(__name__)

COORDINATION_OFFSET = 60

# Published in 400 responses so callers see accepted spellings.
VALID_EXAMPLES: tuple[str, ...] = ("900116-6959", "9001166959", "199001166959")

_NON_DIGIT_RE = re.compile(r"[^0-9]")


class ValidationErrorKind(str, enum.Enum):
    FORMAT = "format"
    DATE = "date"
    CHECKSUM = "checksum"


class PersonnummerError(ValueError):
    """Raised when a raw identifier cannot be normalized.

    ``kind`` tells the three user-facing reasons apart; they are never
    merged into one.
    """

    def __init__(self, kind: ValidationErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True, slots=True)
class NormalizedPersonnummer:
    """Canonical 12-digit identity number.

    ``day`` keeps the coordination offset; use :attr:`birth_date` for the
    real calendar date.
    """

    year: int
    month: int
    day: int
    suffix: str

    def __post_init__(self) -> None:
        if len(self.value) != 12 or not (self.value.isascii() and self.value.isdigit()):
            raise ValueError("NormalizedPersonnummer must render as 12 ASCII digits")

    @property
    def value(self) -> str:
        return f"{self.year:04d}{self.month:02d}{self.day:02d}{self.suffix}"

    @property
    def is_coordination_number(self) -> bool:
        return self.day > COORDINATION_OFFSET

    @property
    def birth_date(self) -> date:
        day = self.day - COORDINATION_OFFSET if self.is_coordination_number else self.day
        return date(self.year, self.month, day)

    def masked(self) -> str:
        """Return ``YYYYMMDD-****``, safe for log output."""
        return f"{self.value[:8]}-****"

    def __str__(self) -> str:
        return self.value


# ---------------------------------------------------------------------------
# Luhn
# ---------------------------------------------------------------------------


def _luhn_sum(digits: str) -> int:
    total = 0
    for position, char in enumerate(digits):
        digit = int(char)
        if position % 2 == 0:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total


def luhn_check_digit(body: str) -> str:
    """Return the check digit that completes the 9-digit *body*.

    Exactly one of the ten possible trailing digits satisfies the sum.
    """
    if len(body) != 9 or not (body.isascii() and body.isdigit()):
        raise ValueError("body must be exactly 9 digits")
    return str((10 - _luhn_sum(body) % 10) % 10)


def _luhn_valid(ten_digits: str) -> bool:
    return _luhn_sum(ten_digits) % 10 == 0


# ---------------------------------------------------------------------------
# Century resolution
# ---------------------------------------------------------------------------


def resolve_century(two_digit_year: int, *, today: date | None = None) -> int:
    """Return the four-digit year for a two-digit *two_digit_year*.

    Years up to and including the current two-digit year belong to the
    current century; greater values to the previous one.
    """
    today = today or date.today()
    current_century = today.year - today.year % 100
    if two_digit_year > today.year % 100:
        return current_century - 100 + two_digit_year
    return current_century + two_digit_year


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize(raw: str | None, *, today: date | None = None) -> NormalizedPersonnummer:
    """Validate *raw* and return its canonical form.

    Parameters
    ----------
    raw:
        Caller-supplied identifier in any common spelling
        (``YYMMDD-NNNC``, ``YYMMDDNNNC``, ``YYYYMMDDNNNC``).
    today:
        Reference date for century resolution.  Defaults to
        ``date.today()``.

    Raises
    ------
    PersonnummerError
        With kind ``FORMAT``, ``DATE`` or ``CHECKSUM``, checked in that
        order.
    """
    digits = _NON_DIGIT_RE.sub("", raw or "")
    if len(digits) not in (10, 12):
        logger.debug("personnummer: rejected format (digits=%d)", len(digits))
        raise PersonnummerError(ValidationErrorKind.FORMAT, "Invalid personnummer format")

    if len(digits) == 10:
        year = resolve_century(int(digits[:2]), today=today)
    else:
        year = int(digits[:4])
    rest = digits[-10:]
    month = int(rest[2:4])
    day = int(rest[4:6])
    suffix = rest[6:]

    calendar_day = day - COORDINATION_OFFSET if day > COORDINATION_OFFSET else day
    try:
        candidate = date(year, month, calendar_day)
    except ValueError:
        candidate = None
    if candidate is None or (candidate.year, candidate.month, candidate.day) != (year, month, calendar_day):
        logger.debug("personnummer: rejected calendar date")
        raise PersonnummerError(ValidationErrorKind.DATE, "Invalid date components")

    if not _luhn_valid(rest):
        logger.debug("personnummer: rejected checksum")
        raise PersonnummerError(ValidationErrorKind.CHECKSUM, "Luhn checksum validation failed")

    return NormalizedPersonnummer(year=year, month=month, day=day, suffix=suffix)


def is_valid(raw: str | None, *, today: date | None = None) -> bool:
    """Return ``True`` when *raw* normalizes without error.  Never raises."""
    try:
        normalize(raw, today=today)
    except PersonnummerError:
        return False
    return True
