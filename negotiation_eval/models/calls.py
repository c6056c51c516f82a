"""
Call-record data contract shared with the call history store.

The evaluation code only ever reads these records. Synthetic calls produced by
the simulator are converted into the same shape so both kinds flow through the
metrics engine identically.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


logger = logging.getLogger(__name__)

DataFilter = Literal["all", "actual", "synthetic"]


class CallStatus(str, Enum):
    COMPLETED = "completed"
    NO_ANSWER = "no_answer"
    BUSY = "busy"
    REJECTED = "rejected"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"


class CallRequirements(BaseModel):
    """Snapshot of what the customer asked for when the call was placed."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service: str = "cab"
    from_location: str = Field(default="", alias="from")
    to_location: str = Field(default="", alias="to")
    date: str = ""
    time: str = ""
    passengers: Optional[int] = None
    vehicle_type: Optional[str] = None
    trip_type: Optional[str] = None


class CallRecord(BaseModel):
    """One historical (or synthetic) vendor call."""
    model_config = ConfigDict(frozen=True)

    id: str
    call_id: str
    vendor_name: str
    vendor_phone: str = ""
    date_time: datetime
    duration: int = 0  # seconds
    status: CallStatus

    requirements: CallRequirements = Field(default_factory=CallRequirements)

    quoted_price: Optional[float] = None
    negotiated_price: Optional[float] = None
    transcript: Optional[str] = None
    recording_url: Optional[str] = None
    notes: Optional[str] = None

    session_id: str = ""
    ended_reason: Optional[str] = None
    is_synthetic: bool = False

    @field_validator("date_time")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps in older exports are UTC
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    @property
    def has_quote(self) -> bool:
        return self.quoted_price is not None and self.quoted_price > 0


_records_adapter = TypeAdapter(list[CallRecord])


def load_call_records(path: Path) -> list[CallRecord]:
    """Load call records from a JSON array file."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    records = _records_adapter.validate_python(raw)
    logger.info("Loaded %d call records from %s", len(records), path)
    return records


def dump_call_records(records: Iterable[CallRecord], path: Path) -> None:
    """Write call records as a JSON array (``from``/``to`` keep their wire names)."""
    payload = [r.model_dump(mode="json", by_alias=True) for r in records]
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    Path(path).write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def filter_calls(
    calls: Iterable[CallRecord],
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    data_filter: DataFilter = "all",
) -> list[CallRecord]:
    """
    Restrict calls to a date range and/or to real or synthetic calls.

    Both range bounds are inclusive; a missing bound is open.
    """
    result = []
    for call in calls:
        if data_filter == "actual" and call.is_synthetic:
            continue
        if data_filter == "synthetic" and not call.is_synthetic:
            continue
        if start is not None and call.date_time < start:
            continue
        if end is not None and call.date_time > end:
            continue
        result.append(call)
    return result
