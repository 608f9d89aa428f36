"""Personnummer package.

Parsing, century resolution and Luhn validation of Swedish identity
numbers.  The single entry point is :func:`normalize`::

    def normalize(raw: str | None, *, today: date | None = None) -> NormalizedPersonnummer:
        ...

It raises :class:`PersonnummerError` carrying one of the
:class:`ValidationErrorKind` values.
"""
from app.personnummer.validator import (
    VALID_EXAMPLES,
    NormalizedPersonnummer,
    PersonnummerError,
    ValidationErrorKind,
    is_valid,
    luhn_check_digit,
    normalize,
)

__all__ = [
    "VALID_EXAMPLES",
    "NormalizedPersonnummer",
    "PersonnummerError",
    "ValidationErrorKind",
    "is_valid",
    "luhn_check_digit",
    "normalize",
]
