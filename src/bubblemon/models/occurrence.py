"""Inbound wire models.

An SDK submits a batch envelope holding up to 50 occurrences. Field
names follow the SDK wire format (``fp``, ``msg``...). Parsing is
lenient: anything the SDK sends that cannot be interpreted falls back to
its default instead of failing the whole batch.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

DIAGNOSTIC_FIELDS = (
    "browser_state",
    "memory_usage",
    "network_info",
    "performance_info",
)


def _coerce_text(value: Any) -> Optional[str]:
    """Scalars become strings, containers and empty values become None."""
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return str(value).lower()
    text = str(value)
    return text if text else None


class Breadcrumb(BaseModel):
    """One step of the diagnostic trail leading up to an error."""
    type: Optional[str] = Field(
        default=None,
        description="Breadcrumb category (click, navigation, console...)"
    )
    level: str = Field(
        default="info",
        description="Breadcrumb severity"
    )
    data: Any = Field(
        default=None,
        description="Opaque breadcrumb payload, stored as-is"
    )
    timestamp: Any = Field(
        default=None,
        description="Client epoch milliseconds, kept exactly as sent"
    )

    @field_validator("type", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return _coerce_text(v)

    @field_validator("level", mode="before")
    @classmethod
    def _level(cls, v: Any) -> str:
        return _coerce_text(v) or "info"


class Occurrence(BaseModel):
    """A single error occurrence as reported by the SDK."""
    fingerprint: Optional[str] = Field(
        default=None, alias="fp",
        description="Client-computed hash identifying the error signature"
    )
    code: Optional[str] = None
    message: Optional[str] = Field(default=None, alias="msg")
    level: Optional[str] = None
    count: int = Field(
        default=1,
        description="How many times the SDK saw this occurrence since the last flush"
    )
    priority: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    bubble: Any = None

    # Location
    page_name: Optional[str] = None
    workflow_id: Optional[str] = None
    element_bubble_id: Optional[str] = None
    element_name: Optional[str] = None
    event_path: Optional[str] = None
    source: str = "frontend"

    # Enhanced diagnostics (SDK schema v2+)
    enhanced_version: Optional[int] = None
    browser_state: Any = None
    memory_usage: Any = None
    network_info: Any = None
    performance_info: Any = None
    breadcrumbs: list[Breadcrumb] = Field(default_factory=list)

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator(
        "fingerprint", "code", "message", "level", "priority", "user_id",
        "session_id", "page_name", "workflow_id", "element_bubble_id",
        "element_name", "event_path",
        mode="before",
    )
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return _coerce_text(v)

    @field_validator("source", mode="before")
    @classmethod
    def _source(cls, v: Any) -> str:
        return _coerce_text(v) or "frontend"

    @field_validator("count", mode="before")
    @classmethod
    def _count(cls, v: Any) -> int:
        # Zero and negative counts are added as sent.
        if isinstance(v, bool):
            return 1
        if isinstance(v, int):
            return v
        if isinstance(v, float) and v.is_integer():
            return int(v)
        if isinstance(v, str):
            try:
                return int(v.strip())
            except ValueError:
                return 1
        return 1

    @field_validator("enhanced_version", mode="before")
    @classmethod
    def _enhanced_version(cls, v: Any) -> Optional[int]:
        try:
            return int(v) if v is not None else None
        except (TypeError, ValueError):
            return None

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}

    @field_validator("breadcrumbs", mode="before")
    @classmethod
    def _breadcrumbs(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [b for b in v if isinstance(b, dict)]

    @property
    def environment(self) -> str:
        env = self.metadata.get("environment")
        return str(env) if env else "unknown"

    def has_diagnostics(self) -> bool:
        return any(getattr(self, name) is not None for name in DIAGNOSTIC_FIELDS)

    def is_enhanced(self, batch_version: int) -> bool:
        """Enhanced schema requires both the envelope and the occurrence at v2+."""
        return batch_version >= 2 and (self.enhanced_version or 0) >= 2


class Batch(BaseModel):
    """A decoded, structurally valid batch envelope."""
    version: int = Field(
        default=1,
        description="SDK envelope schema version"
    )
    occurrences: list[Occurrence] = Field(
        default_factory=list,
        description="Occurrences in submission order"
    )
    received: int = Field(
        default=0,
        description="Number of entries in the submitted array, before dropping malformed ones"
    )

    @property
    def size(self) -> int:
        return len(self.occurrences)
