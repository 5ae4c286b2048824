"""Data models for purge outcomes, parsed query files and query results.

Provides typed dataclasses for the purge aggregate and the parsed .kql
header, plus ISO-8601 timespan parsing for ad-hoc query runs.
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Any

from sentinel_th.errors import ValidationError

DEFAULT_TIMESPAN = "P1D"

_DURATION_RE = re.compile(
    r"^P(?:(?P<weeks>\d+)W)?(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def parse_timespan(value: str | None) -> timedelta:
    """Parse an ISO-8601 duration such as 'P1D', 'P7D' or 'PT12H'.

    None or an empty string means the default one-day window. Year and month
    designators are rejected since their length is ambiguous.
    """
    text = (value or DEFAULT_TIMESPAN).strip().upper()
    match = _DURATION_RE.match(text)
    if not match or text in ("P", "PT") or text.endswith("T"):
        raise ValidationError(f"Invalid timespan: '{value}'. Use an ISO-8601 duration like P1D")
    parts = {k: int(v) for k, v in match.groupdict().items() if v}
    delta = timedelta(**parts)
    if delta <= timedelta(0):
        raise ValidationError(f"Timespan must be positive: '{value}'")
    return delta


@dataclass
class CleanupOutcome:
    """Outcome of one purge class (saved searches or hunts).

    Exactly one of message/error is set. Counts are kept for logging and
    tests but only message/error reach the HTTP response.
    """

    message: str | None = None
    error: str | None = None
    deleted: int = 0
    failed: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        if self.error is not None:
            return {"error": self.error}
        return {"message": self.message}


@dataclass
class PurgeResult:
    """Transient aggregate of the two independent cleanup outcomes."""

    query_cleanup: CleanupOutcome
    hunt_cleanup: CleanupOutcome

    @property
    def has_errors(self) -> bool:
        return not (self.query_cleanup.ok and self.hunt_cleanup.ok)

    def to_dict(self) -> dict:
        return {
            "queryCleanup": self.query_cleanup.to_dict(),
            "huntCleanup": self.hunt_cleanup.to_dict(),
        }


@dataclass
class ParsedQueryFile:
    """Header fields and KQL body extracted from a .kql file."""

    query: str
    name: str = ""
    description: str = ""
    tactics: list[str] = field(default_factory=list)
    techniques: list[str] = field(default_factory=list)
    extid: str = ""

    def to_payload(self) -> dict[str, Any]:
        """Convert to the QueryInput shape accepted by the query builder."""
        payload = asdict(self)
        return {k: v for k, v in payload.items() if v}
