"""
Shared test fixtures for unit and integration tests.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from negotiation_eval.config.settings import get_settings
from negotiation_eval.models.calls import CallRecord, CallStatus
from negotiation_eval.state.simulator_state import MarketPrice, TripDetails


NEGOTIATION_TRANSCRIPT = (
    "Bot: Namaste, Koramangala se Airport ke liye cab chahiye, kitna lagega?\n"
    "Vendor: 1200 lagega madam.\n"
    "Bot: Thoda kam kar dijiye, 1000 mein ho jayega?\n"
    "Vendor: Chalo 1100 final."
)


@dataclass
class FakeResponse:
    content: str


class CannedLLM:
    """Always answers with the same content; records every prompt."""

    def __init__(self, content: Any):
        self._content = content if isinstance(content, str) else json.dumps(content)
        self.invocations = 0
        self.prompts: list[list[Any]] = []

    def invoke(self, messages):
        self.invocations += 1
        self.prompts.append(messages)
        return FakeResponse(content=self._content)


class ScriptedLLM:
    """Answers with the given contents in order, repeating the last one."""

    def __init__(self, contents: list[Any]):
        self._contents = [c if isinstance(c, str) else json.dumps(c) for c in contents]
        self.invocations = 0

    def invoke(self, messages):
        content = self._contents[min(self.invocations, len(self._contents) - 1)]
        self.invocations += 1
        return FakeResponse(content=content)


class FailingLLM:
    """Every request fails, like an unreachable completion service."""

    def __init__(self):
        self.invocations = 0

    def invoke(self, messages):
        self.invocations += 1
        raise ConnectionError("completion service unavailable")


@pytest.fixture
def canned_llm() -> Callable[[Any], CannedLLM]:
    return CannedLLM


@pytest.fixture
def scripted_llm() -> Callable[[list[Any]], ScriptedLLM]:
    return ScriptedLLM


@pytest.fixture
def failing_llm() -> FailingLLM:
    return FailingLLM()


@pytest.fixture
def make_call() -> Callable[..., CallRecord]:
    """Factory for call records; keyword overrides win over the defaults."""
    counter = {"n": 0}

    def _make(**overrides: Any) -> CallRecord:
        counter["n"] += 1
        n = counter["n"]
        fields: dict[str, Any] = {
            "id": f"row_{n}",
            "call_id": f"call_{n}",
            "vendor_name": f"Vendor {n}",
            "vendor_phone": "9800000000",
            "date_time": datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc),
            "duration": 60,
            "status": CallStatus.COMPLETED,
            "quoted_price": None,
            "negotiated_price": None,
            "transcript": None,
        }
        fields.update(overrides)
        return CallRecord(**fields)

    return _make


@pytest.fixture
def negotiation_transcript() -> str:
    return NEGOTIATION_TRANSCRIPT


@pytest.fixture
def trip_details() -> TripDetails:
    return TripDetails(
        from_location="Indiranagar, Bangalore",
        to_location="Kempegowda Airport",
        date="Tomorrow",
        time="6:00 AM",
        distance=38,
        vehicle_type="sedan",
        trip_type="one-way",
    )


@pytest.fixture
def market_price() -> MarketPrice:
    return MarketPrice(low=800, mid=1000, high=1200)


@pytest.fixture
def no_openai_key(monkeypatch):
    """Environment with no completion-service credentials."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
