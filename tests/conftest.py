import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from normalizer import SalesRecord


@pytest.fixture
def make_record():
    """Factory for SalesRecord with the year filled in from the date."""
    from normalizer import extract_year

    def _make(store="Norte", product="Canto blanco", date="2024-01-15", qty=1, **kwargs):
        kwargs.setdefault("year", extract_year(date))
        return SalesRecord(store=store, product=product, date=date, qty=qty, **kwargs)

    return _make


class FakeCompletionService:
    """Records prompts and returns a canned reply (or raises it)."""

    def __init__(self, reply="<p>ok</p>"):
        self.reply = reply
        self.calls = []

    def complete(self, prompt, system_instruction):
        self.calls.append((prompt, system_instruction))
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


@pytest.fixture
def fake_service():
    return FakeCompletionService
