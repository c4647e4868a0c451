# livebooth/schemas.py
"""
라이브 부스 도메인 타입

세션 슬롯, 세션 상태, 리마인더 종류는 닫힌 Enum으로 정의하여
알 수 없는 값이 저장소에 들어가지 않도록 합니다.
"""

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, TypedDict


class SessionSlot(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "SessionStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.SCHEDULED: frozenset({SessionStatus.IN_PROGRESS, SessionStatus.CANCELLED}),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}


class ReminderKind(str, Enum):
    """수업 시작 전 알림 종류 (순서 = 발송 순서)"""
    BEFORE_24H = "24h_before"
    BEFORE_2H = "2h_before"
    BEFORE_1H = "1h_before"
    BEFORE_30M = "30m_before"
    BEFORE_2M = "2m_before"
    CLASS_START = "class_start"


@dataclass(frozen=True)
class SlotTime:
    slot: SessionSlot
    at: time


@dataclass(frozen=True)
class ReminderRule:
    """
    리마인더 발송 규칙

    세션 시작까지 남은 시간이 [offset - tolerance, offset + tolerance]
    구간에 들어오면 해당 종류의 리마인더가 발송 대상이 됩니다.
    """
    kind: ReminderKind
    offset: timedelta
    tolerance: timedelta

    def is_due(self, time_until_session: timedelta) -> bool:
        return (
            self.offset - self.tolerance
            <= time_until_session
            <= self.offset + self.tolerance
        )

    @property
    def scan_window(self) -> timedelta:
        """스캐너가 실제로 볼 수 있는 창의 폭 (시작 시각 이후는 스캔 대상이 아님)"""
        return self.offset + self.tolerance - max(self.offset - self.tolerance, timedelta(0))


@dataclass(frozen=True)
class ContentItem:
    item_id: str
    ordinal_position: int
    title: str


@dataclass
class LiveClass:
    id: int
    content_source_ref: str
    cycle_cursor: int = 0
    is_active: bool = True
    title: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class ClassSession:
    live_class_id: int
    content_item_ref: str
    session_slot: SessionSlot
    scheduled_datetime: datetime
    is_free: bool
    status: SessionStatus = SessionStatus.SCHEDULED
    capacity: Optional[int] = None
    remaining: Optional[int] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class ReminderRecord:
    class_session_id: int
    reminder_kind: ReminderKind
    recipient_ref: str
    sent_at: datetime


@dataclass(frozen=True)
class Recipient:
    ref: str
    name: Optional[str] = None
    email: Optional[str] = None
    telegram_id: Optional[str] = None


@dataclass
class SessionContext:
    """리마인더 메시지 작성에 필요한 세션 정보"""
    session_id: int
    live_class_id: int
    session_slot: SessionSlot
    scheduled_datetime: datetime
    class_title: str
    lesson_title: str
    join_url: str
    extra: Dict[str, str] = field(default_factory=dict)


class ExtendSummary(TypedDict):
    classes_processed: int
    classes_extended: int
    classes_skipped: int
    classes_failed: int
    sessions_created: int


class ScanSummary(TypedDict):
    sessions_scanned: int
    due_pairs: int
    sent: int
    skipped: int
    failed: int
    failures: List[str]
