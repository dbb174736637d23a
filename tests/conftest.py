from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest
from hypothesis import settings, Verbosity

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from find_available import Outcome  # noqa: E402

settings.register_profile("fast", max_examples=25, deadline=None, verbosity=Verbosity.quiet)
settings.load_profile("fast")


class FakeProbe:
    """Answers from a lookup table; addresses listed in `errors` raise."""

    def __init__(self, outcomes: Optional[Dict[str, Outcome]] = None,
                 errors: Iterable[str] = (), default: Outcome = Outcome.EXISTS,
                 delay: float = 0.0):
        self.outcomes = dict(outcomes or {})
        self.errors = set(errors)
        self.default = default
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def check(self, address: str) -> Outcome:
        self.calls.append(address)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if address in self.errors:
                raise ConnectionError(f"lookup failed for {address}")
            return self.outcomes.get(address, self.default)
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_probe():
    return FakeProbe()
