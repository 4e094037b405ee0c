"""Persistent record shapes.

These models describe the rows the pipeline writes to the Store. They
are built from an Occurrence plus the processing context and dumped to
plain JSON dicts at the Store boundary. Records are immutable once
built; the Store owns identity (ids are assigned on insert).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from bubblemon.models.occurrence import Breadcrumb, Occurrence


class Record(BaseModel):
    """Base for all Store rows."""

    class Config:
        frozen = True

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class App(BaseModel):
    """A client application allowed to submit batches."""
    id: str
    public_key: str
    secret: str

    class Config:
        frozen = True
        extra = "ignore"
        coerce_numbers_to_str = True


class GroupRecord(Record):
    """A new deduplicated error group. Identity is (app_id, fingerprint)."""
    app_id: str
    fingerprint: str
    code: Optional[str] = None
    message: Optional[str] = None
    log_level: Optional[str] = None
    priority: Optional[str] = None
    first_seen: datetime
    last_seen: datetime
    count: int
    source: str = "frontend"
    page_name: Optional[str] = None
    workflow_id: Optional[str] = None
    element_bubble_id: Optional[str] = None
    event_path: Optional[str] = None
    environment: str = "unknown"
    affected_user_count: int = 0

    @classmethod
    def from_occurrence(
        cls, app_id: str, occ: Occurrence, now: datetime
    ) -> GroupRecord:
        return cls(
            app_id=app_id,
            fingerprint=occ.fingerprint or "",
            code=occ.code,
            message=occ.message,
            log_level=occ.level,
            priority=occ.priority,
            first_seen=now,
            last_seen=now,
            count=occ.count,
            source=occ.source,
            page_name=occ.page_name,
            workflow_id=occ.workflow_id,
            element_bubble_id=occ.element_bubble_id,
            event_path=occ.event_path,
            environment=occ.environment,
        )


class GroupSessionRecord(Record):
    """A session observed for a group. Identity is (group_id, session_id)."""
    group_id: str
    session_id: str
    first_seen: datetime


class SampleRecord(Record):
    """A full-detail snapshot of one occurrence.

    There is no session_id column: the effective session id travels
    inside ``metadata``.
    """
    group_id: str
    user_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    bubble: Any = Field(default_factory=dict)
    created_at: datetime
    page_name: Optional[str] = None
    workflow_id: Optional[str] = None
    element_bubble_id: Optional[str] = None
    event_path: Optional[str] = None
    element_name: Optional[str] = None
    environment: str = "unknown"
    is_enhanced: bool = False
    breadcrumbs_count: int = 0

    @classmethod
    def from_occurrence(
        cls,
        group_id: str,
        occ: Occurrence,
        session_id: str,
        now: datetime,
        enhanced: bool,
    ) -> SampleRecord:
        return cls(
            group_id=group_id,
            user_id=occ.user_id or "",
            metadata={**occ.metadata, "session_id": session_id},
            bubble=occ.bubble if occ.bubble is not None else {},
            created_at=now,
            page_name=occ.page_name,
            workflow_id=occ.workflow_id,
            element_bubble_id=occ.element_bubble_id,
            event_path=occ.event_path,
            element_name=occ.element_name,
            environment=occ.environment,
            is_enhanced=enhanced,
            breadcrumbs_count=len(occ.breadcrumbs),
        )


class ErrorContextRecord(Record):
    """Enhanced diagnostic snapshot attached to a sample."""
    sample_id: str
    browser_state: Any = None
    memory_usage: Any = None
    network_info: Any = None
    performance_info: Any = None
    bubble_context: Any = None
    enhanced_version: int = 2

    @classmethod
    def from_occurrence(cls, sample_id: str, occ: Occurrence) -> ErrorContextRecord:
        return cls(
            sample_id=sample_id,
            browser_state=occ.browser_state,
            memory_usage=occ.memory_usage,
            network_info=occ.network_info,
            performance_info=occ.performance_info,
            bubble_context=occ.bubble,
            enhanced_version=occ.enhanced_version or 2,
        )


class BreadcrumbRecord(Record):
    """One stored breadcrumb row."""
    sample_id: str
    breadcrumb_type: Optional[str] = None
    breadcrumb_level: str = "info"
    breadcrumb_data: Any = None
    timestamp_ms: Any = None

    @classmethod
    def from_breadcrumb(cls, sample_id: str, crumb: Breadcrumb) -> BreadcrumbRecord:
        return cls(
            sample_id=sample_id,
            breadcrumb_type=crumb.type,
            breadcrumb_level=crumb.level,
            breadcrumb_data=crumb.data,
            timestamp_ms=crumb.timestamp,
        )
