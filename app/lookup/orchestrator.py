"""Lookup orchestration: validate, call the registry once, normalize, render.

Every lookup ends in exactly one :class:`LookupResult`, which already
carries the HTTP status and JSON body of the external contract:

=========================== ====== ==============================
kind                        status code
=========================== ====== ==============================
found                       200    (person record)
invalid_format              400
invalid_date                400
invalid_checksum            400
protected                   403    PROTECTED
not_found                   404    PERSON_NOT_FOUND
deceased                    404    PERSON_DECEASED
service_unavailable         503    SERVICE_UNAVAILABLE
upstream_contract_violation 500    UPSTREAM_CONTRACT_VIOLATION
malformed                   500    UPSTREAM_CONTRACT_VIOLATION
=========================== ====== ==============================

Validation failures return before the gateway is touched.  Gateway
failures are not retried.  ``asyncio.CancelledError`` is never caught,
so cancelling the inbound request cancels the in-flight registry call.
"""
from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from app.personnummer.validator import (
    VALID_EXAMPLES,
    NormalizedPersonnummer,
    PersonnummerError,
    ValidationErrorKind,
    normalize,
)
from app.registry.gateway import RegistryGateway, RegistryUnavailableError
from app.registry.normalizer import LookupOutcome, Outcome, normalize_response
from app.registry.payload import RegistryPayloadError

logger = logging.getLogger(__name__)

CONTRACT_VIOLATION_CODE = "UPSTREAM_CONTRACT_VIOLATION"


@dataclass(frozen=True, slots=True)
class LookupResult:
    kind: str
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Response contract
# ---------------------------------------------------------------------------

_VALIDATION_RESULTS: dict[ValidationErrorKind, LookupResult] = {
    ValidationErrorKind.FORMAT: LookupResult(
        "invalid_format",
        400,
        {"error": "Invalid personnummer format", "validExamples": list(VALID_EXAMPLES)},
    ),
    ValidationErrorKind.DATE: LookupResult("invalid_date", 400, {"error": "Invalid date components"}),
    ValidationErrorKind.CHECKSUM: LookupResult(
        "invalid_checksum", 400, {"error": "Luhn checksum validation failed"}
    ),
}

_OUTCOME_RESULTS: dict[Outcome, LookupResult] = {
    Outcome.PROTECTED: LookupResult("protected", 403, {"error": "Protected identity", "code": "PROTECTED"}),
    Outcome.NOT_FOUND: LookupResult(
        "not_found", 404, {"error": "Person not found", "code": "PERSON_NOT_FOUND"}
    ),
    Outcome.DECEASED: LookupResult(
        "deceased", 404, {"error": "Person deceased", "code": "PERSON_DECEASED"}
    ),
    Outcome.MALFORMED: LookupResult(
        "malformed",
        500,
        {"error": "Registry response did not carry a usable status", "code": CONTRACT_VIOLATION_CODE},
    ),
}

SERVICE_UNAVAILABLE = LookupResult(
    "service_unavailable",
    503,
    {"error": "Registry service unavailable", "code": "SERVICE_UNAVAILABLE"},
)

CONTRACT_VIOLATION = LookupResult(
    "upstream_contract_violation",
    500,
    {"error": "Registry response could not be interpreted", "code": CONTRACT_VIOLATION_CODE},
)


def _respond(result: LookupResult, details: str | None = None) -> LookupResult:
    # Each caller gets its own body; the contract tables stay untouched.
    body = copy.deepcopy(result.body)
    if details is not None:
        body["details"] = details
    return LookupResult(result.kind, result.status_code, body)


# ---------------------------------------------------------------------------
# LookupOrchestrator
# ---------------------------------------------------------------------------


class LookupOrchestrator:
    """Sequence one personnummer lookup against an injected gateway.

    Parameters
    ----------
    gateway:
        The registry collaborator.  Its lifecycle belongs to the caller.
    include_details:
        Add the failure reason to 500 bodies (development only).
    """

    def __init__(self, gateway: RegistryGateway, *, include_details: bool = False) -> None:
        self.gateway = gateway
        self.include_details = include_details

    async def lookup(self, raw: str | None) -> LookupResult:
        try:
            personnummer = normalize(raw)
        except PersonnummerError as exc:
            logger.info("lookup rejected: %s", exc.kind.value, extra={"event": "lookup.rejected"})
            return _respond(_VALIDATION_RESULTS[exc.kind])

        try:
            payload = await self._call_gateway(personnummer)
        except RegistryUnavailableError:
            return _respond(SERVICE_UNAVAILABLE)

        try:
            outcome = normalize_response(payload)
        except RegistryPayloadError as exc:
            logger.error("lookup: registry contract violation: %s", exc, extra={"event": "lookup.contract_violation"})
            return self._details(CONTRACT_VIOLATION, str(exc))
        except Exception as exc:
            logger.exception("lookup: unexpected error while normalizing registry response")
            return self._details(CONTRACT_VIOLATION, f"{type(exc).__name__}: {exc}")

        return self._render(outcome, personnummer)

    async def _call_gateway(self, personnummer: NormalizedPersonnummer) -> Any:
        masked = personnummer.masked()
        logger.info("registry call started", extra={"event": "registry.call", "personnummer": masked})
        start = time.monotonic()
        try:
            payload = await self.gateway.lookup(personnummer.value)
        except RegistryUnavailableError as exc:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning(
                "registry call failed after %d ms: %s",
                elapsed_ms,
                exc,
                extra={"event": "registry.unavailable", "personnummer": masked, "latency_ms": elapsed_ms},
            )
            raise
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "registry call finished in %d ms",
            elapsed_ms,
            extra={"event": "registry.response", "personnummer": masked, "latency_ms": elapsed_ms},
        )
        return payload

    def _render(self, outcome: LookupOutcome, personnummer: NormalizedPersonnummer) -> LookupResult:
        logger.info(
            "lookup finished: %s",
            outcome.outcome.value,
            extra={"event": "lookup.outcome", "personnummer": personnummer.masked(), "outcome": outcome.outcome.value},
        )
        if outcome.outcome is Outcome.FOUND:
            return LookupResult("found", 200, outcome.record.to_dict())
        result = _OUTCOME_RESULTS[outcome.outcome]
        if outcome.outcome is Outcome.MALFORMED:
            return self._details(result, outcome.reason)
        return _respond(result)

    def _details(self, result: LookupResult, details: str | None) -> LookupResult:
        return _respond(result, details if self.include_details else None)
