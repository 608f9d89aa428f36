"""Registry response normalizer.

Maps a raw registry payload onto exactly one :class:`LookupOutcome`.

The registry signals the result of a lookup in two overlapping
vocabularies depending on the response variant:

* a numeric ``Status`` code (``1`` found, ``2`` protected, ``3``
  deceased, ``4`` not found);
* boolean-like flags (``SkyddadIdentitet`` protected identity,
  ``Sekretessmarkering`` secrecy marker).

Both are read, and the signals they yield are combined through one
precedence table.  When neither vocabulary says anything definitive the
outcome is ``MALFORMED``; a record is never reported as found by
omission.
"""
from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from app.registry import payload as p

logger = logging.getLogger(__name__)

NAME_NOT_AVAILABLE = "Name not available"
UNKNOWN = "Unknown"

ANSWER_RECORD = "PersonsokningSvarspost"


class Outcome(str, enum.Enum):
    FOUND = "found"
    PROTECTED = "protected"
    NOT_FOUND = "not_found"
    DECEASED = "deceased"
    MALFORMED = "malformed"


# ---------------------------------------------------------------------------
# Status vocabularies
# ---------------------------------------------------------------------------

STATUS_CODES: dict[str, Outcome] = {
    "1": Outcome.FOUND,
    "2": Outcome.PROTECTED,
    "3": Outcome.DECEASED,
    "4": Outcome.NOT_FOUND,
}

PROTECTION_FLAGS: tuple[str, ...] = ("SkyddadIdentitet", "Sekretessmarkering")

_TRUTHY = frozenset({"true", "1", "j", "ja", "y", "yes"})
_FALSY = frozenset({"false", "0", "n", "nej", "no"})

# First signal in this order wins.
OUTCOME_PRECEDENCE: tuple[Outcome, ...] = (
    Outcome.NOT_FOUND,
    Outcome.DECEASED,
    Outcome.PROTECTED,
    Outcome.FOUND,
)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Address:
    street: str = UNKNOWN
    postal_code: str = UNKNOWN
    city: str = UNKNOWN

    def to_dict(self) -> dict[str, str]:
        return {"street": self.street, "postalCode": self.postal_code, "city": self.city}


@dataclass(frozen=True, slots=True)
class PersonRecord:
    name: str
    birth_date: str
    address: Address
    protected_identity: bool
    last_updated: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "birthDate": self.birth_date,
            "address": self.address.to_dict(),
            "protectedIdentity": self.protected_identity,
            "lastUpdated": self.last_updated,
        }


@dataclass(frozen=True, slots=True)
class LookupOutcome:
    """One terminal outcome; ``record`` is set only for ``FOUND``."""

    outcome: Outcome
    record: PersonRecord | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        if (self.outcome is Outcome.FOUND) != (self.record is not None):
            raise ValueError("record must be present exactly when outcome is FOUND")


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _flag_value(raw: str | None) -> bool | None:
    if raw is None:
        return None
    lowered = raw.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    return None


def read_flags(record: p.Tree) -> dict[str, bool]:
    """Return the recognised protection flags present on *record*."""
    flags: dict[str, bool] = {}
    for name in PROTECTION_FLAGS:
        value = _flag_value(p.text(record, name))
        if value is not None:
            flags[name] = value
    return flags


def resolve_outcome(record: p.Tree | None) -> tuple[Outcome, str | None]:
    """Return the outcome signalled by *record* and a reason when malformed."""
    if record is None:
        return Outcome.MALFORMED, f"No {ANSWER_RECORD} element in registry response"

    signals: set[Outcome] = set()

    code = p.text(record, "Status")
    if code is not None:
        if code not in STATUS_CODES:
            return Outcome.MALFORMED, f"Unknown registry status code {code!r}"
        signals.add(STATUS_CODES[code])

    flags = read_flags(record)
    if flags:
        signals.add(Outcome.PROTECTED if any(flags.values()) else Outcome.FOUND)

    for outcome in OUTCOME_PRECEDENCE:
        if outcome in signals:
            return outcome, None
    return Outcome.MALFORMED, "Registry response carries no status code or protection flag"


def format_name(record: p.Tree) -> str:
    """Given names, middle name and family names, single-space joined."""
    parts = [
        *p.texts(record, "Namn", "Fornamn"),
        *p.texts(record, "Namn", "Mellannamn"),
        *p.texts(record, "Namn", "Efternamn"),
    ]
    name = " ".join(" ".join(parts).split())
    return name or NAME_NOT_AVAILABLE


def format_address(record: p.Tree) -> Address:
    address = p.find(record, "Folkbokforingsadress", "SvenskAdress")
    node = next((item for item in address if isinstance(item, dict)), {})
    return Address(
        street=p.text(node, "Utdelningsadress2") or p.text(node, "Utdelningsadress1") or UNKNOWN,
        postal_code=p.text(node, "PostNr") or UNKNOWN,
        city=p.text(node, "Postort") or UNKNOWN,
    )


_COMPACT_DATE_RE = re.compile(r"^\d{8}$")


def format_birth_date(record: p.Tree) -> str:
    raw = p.text(record, "Persondetaljer", "Fodelsedatum")
    if raw is None:
        return UNKNOWN
    try:
        if _COMPACT_DATE_RE.match(raw):
            return datetime.strptime(raw, "%Y%m%d").date().isoformat()
        return date.fromisoformat(raw[:10]).isoformat()
    except ValueError:
        logger.warning("registry: unparseable birth date (length=%d)", len(raw))
        return UNKNOWN


def build_record(record: p.Tree) -> PersonRecord:
    flags = read_flags(record)
    return PersonRecord(
        name=format_name(record),
        birth_date=format_birth_date(record),
        address=format_address(record),
        protected_identity=any(flags.values()),
        last_updated=p.text(record, "SenastAndrad") or p.text(record, "SenasteAndringSPAR") or UNKNOWN,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_response(payload: Any) -> LookupOutcome:
    """Normalize a raw registry *payload* into a :class:`LookupOutcome`.

    Raises
    ------
    RegistryFaultError
        If the payload is a SOAP fault.
    RegistryPayloadError
        If the payload cannot be parsed at all.
    """
    tree = p.parse_payload(payload)
    p.check_fault(tree)

    record = p.find_descendant(tree, ANSWER_RECORD)
    outcome, reason = resolve_outcome(record)
    logger.debug("registry: resolved outcome=%s", outcome.value)

    if outcome is Outcome.FOUND:
        return LookupOutcome(outcome, record=build_record(record))
    return LookupOutcome(outcome, reason=reason)
