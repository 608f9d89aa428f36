"""GET /lookup — personnummer lookup against SPAR.

The route only renders: validation, the registry call and outcome
mapping all happen in :class:`app.lookup.orchestrator.LookupOrchestrator`.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.api.deps import get_lookup_orchestrator
from app.lookup.orchestrator import LookupOrchestrator

router = APIRouter(prefix="/lookup", tags=["lookup"])


@router.get("", summary="Look up a person by personnummer")
async def lookup_person(
    personnummer: str | None = Query(default=None, description="10 or 12 digits, separator optional"),
    orchestrator: LookupOrchestrator = Depends(get_lookup_orchestrator),
) -> JSONResponse:
    result = await orchestrator.lookup(personnummer)
    return JSONResponse(status_code=result.status_code, content=result.body)
