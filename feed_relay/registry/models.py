"""Data models for the feed registry."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from feed_relay.parsing import UNKNOWN_FEED_TITLE

FeedKey = Tuple[str, str]


@dataclass
class FeedEntry:
    """One monitored feed bound to one destination."""

    destination: str
    url: str
    interval: float
    last_checked: Optional[datetime] = None
    watermark: Optional[str] = None
    active: bool = True
    title: str = UNKNOWN_FEED_TITLE
    description: str = ""
    added_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> FeedKey:
        """Return the (destination, url) identity of the entry."""
        return (self.destination, self.url)

    def copy(self) -> "FeedEntry":
        """Return a detached copy of the entry."""
        return replace(self)


class FeedRecord(BaseModel):
    """Snapshot record of a feed entry.

    Accepts the legacy camelCase keys so older snapshots keep loading.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str
    interval_ms: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("interval_ms", "interval")
    )
    last_checked: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("last_checked", "lastChecked")
    )
    watermark: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("watermark", "lastPostId")
    )
    active: bool = True
    title: Optional[str] = None
    description: Optional[str] = None
    added_at: Optional[datetime] = None

    @classmethod
    def from_entry(cls, entry: FeedEntry) -> "FeedRecord":
        """Build a record from a registry entry."""
        return cls(
            url=entry.url,
            interval_ms=int(round(entry.interval * 1000)),
            last_checked=entry.last_checked,
            watermark=entry.watermark,
            active=entry.active,
            title=entry.title,
            description=entry.description,
            added_at=entry.added_at,
        )

    def to_entry(self, destination: str, default_interval: float) -> FeedEntry:
        """Build a registry entry, substituting defaults for missing fields."""
        entry = FeedEntry(
            destination=destination,
            url=self.url,
            interval=(
                self.interval_ms / 1000
                if self.interval_ms and self.interval_ms > 0
                else default_interval
            ),
            last_checked=_as_utc(self.last_checked),
            watermark=self.watermark,
            active=self.active,
            title=self.title or UNKNOWN_FEED_TITLE,
            description=self.description or "",
        )
        if self.added_at is not None:
            entry.added_at = _as_utc(self.added_at)
        return entry

    def to_json(self) -> Dict[str, Any]:
        """Return the JSON-compatible form written to the snapshot."""
        return self.model_dump(mode="json")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
