#!/usr/bin/env python3
"""Run one personnummer lookup against the configured SPAR endpoint.

Usage:
    python scripts/demo_lookup.py 900116-6959      # uses SPAR_* from env / .env
    SPAR_ENDPOINT_URL=... python scripts/demo_lookup.py 199001166959
"""
from __future__ import annotations

import asyncio
import json
import sys

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from app.core.logging import setup_logging
from app.core.settings import get_settings
from app.lookup.orchestrator import LookupOrchestrator, LookupResult
from app.registry.gateway import build_gateway


async def run_lookup(raw: str) -> LookupResult:
    """Build a gateway, perform one lookup and close the gateway again."""
    settings = get_settings()
    gateway = build_gateway(settings)
    try:
        return await LookupOrchestrator(gateway, include_details=True).lookup(raw)
    finally:
        await gateway.aclose()


def main() -> None:
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)

    setup_logging()
    result = asyncio.run(run_lookup(sys.argv[1]))
    print(f"HTTP {result.status_code} ({result.kind})")
    print(json.dumps(result.body, indent=2, ensure_ascii=False))
    sys.exit(0 if result.status_code < 400 else 1)


if __name__ == "__main__":
    main()
