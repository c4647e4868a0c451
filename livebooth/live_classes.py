# livebooth/live_classes.py
"""
라이브 클래스 관리 작업

- 코스 → 라이브 클래스 전환 (첫 30일 일정 생성, 실패 시 보상 삭제)
- 단독 라이브 클래스 생성 (영상 1개짜리 카탈로그)
- 활성/비활성 전환
- 세션 상태 전환 (시작 / 완료 / 취소)
- 무료 세션 공개 목록 / 단건 조회
"""

from datetime import datetime
from typing import Dict, List

from livebooth.config import ScheduleConfig, get_config
from livebooth.database import ScheduleDB
from livebooth.errors import (
    AccessDeniedError,
    CatalogEmptyError,
    InvalidTransitionError,
    LiveClassExistsError,
    NotFoundError,
)
from livebooth.generator import ExtendOutcome, extend_live_class
from livebooth.schemas import SessionStatus

STANDALONE_PREFIX = "standalone:"


def convert_course(
    db: ScheduleDB,
    course_ref: str,
    title: str = None,
    now: datetime = None,
    config: ScheduleConfig = None,
) -> Dict:
    """
    코스를 라이브 클래스로 전환

    Args:
        db: 스케줄 DB
        course_ref: 콘텐츠 카탈로그 참조 (코스 ID)
        title: 라이브 클래스 제목

    Returns:
        {"live_class_id": ..., "sessions_created": ..., "total_lessons": ...}

    Raises:
        LiveClassExistsError: 이미 전환된 코스
        CatalogEmptyError: 레슨이 없는 코스
    """
    config = config or get_config()
    now = now or datetime.now()

    existing = db.find_live_class_by_source(course_ref)
    if existing:
        raise LiveClassExistsError(course_ref, existing.id)

    catalog = db.list_items(course_ref)
    if not catalog:
        raise CatalogEmptyError(course_ref)

    live_class_id = db.create_live_class(course_ref, title)
    sessions_created = _schedule_initial(db, live_class_id, now, config)

    print(f"✅ 코스 {course_ref} → 라이브 클래스 {live_class_id} 전환 완료 "
          f"(세션 {sessions_created}개)")
    return {
        'live_class_id': live_class_id,
        'sessions_created': sessions_created,
        'total_lessons': len(catalog),
    }


def create_standalone(
    db: ScheduleDB,
    title: str,
    video_ref: str,
    now: datetime = None,
    config: ScheduleConfig = None,
) -> Dict:
    """
    단독 라이브 클래스 생성

    코스에 속하지 않은 영상 1개로 카탈로그를 만들고 같은 방식으로 일정을 생성합니다.
    """
    title = (title or "").strip()
    if not title:
        raise ValueError("title is required")
    if not video_ref:
        raise ValueError("video_ref is required")

    config = config or get_config()
    now = now or datetime.now()

    source_ref = f"{STANDALONE_PREFIX}{video_ref}"
    existing = db.find_live_class_by_source(source_ref)
    if existing:
        raise LiveClassExistsError(source_ref, existing.id)

    if not db.list_items(source_ref):
        db.add_content_item(source_ref, video_ref, 0, title)

    live_class_id = db.create_live_class(source_ref, title)
    sessions_created = _schedule_initial(db, live_class_id, now, config)

    print(f"✅ 단독 라이브 클래스 {live_class_id} 생성 완료 (세션 {sessions_created}개)")
    return {'live_class_id': live_class_id, 'sessions_created': sessions_created}


def _schedule_initial(db: ScheduleDB, live_class_id: int, now: datetime,
                      config: ScheduleConfig) -> int:
    """첫 일정 생성 - 실패하면 방금 만든 라이브 클래스를 삭제하고 예외를 다시 던짐"""
    live_class = db.get_live_class(live_class_id)
    try:
        outcome, created = extend_live_class(db, live_class, now, config)
        if outcome is not ExtendOutcome.EXTENDED:
            raise RuntimeError(f"초기 세션 생성 실패 ({outcome.value})")
    except Exception:
        db.delete_live_class(live_class_id)
        print(f"❌ 라이브 클래스 {live_class_id}: 초기 세션 생성 실패, 생성 취소")
        raise
    return created


def set_active(db: ScheduleDB, live_class_id: int, is_active: bool):
    """활성/비활성 전환 (비활성 클래스는 연장/리마인더 대상에서 제외)"""
    if not db.set_live_class_active(live_class_id, is_active):
        raise NotFoundError(f"라이브 클래스를 찾을 수 없습니다: {live_class_id}")
    return db.get_live_class(live_class_id)


def transition_session(db: ScheduleDB, session_id: int, target: SessionStatus):
    """
    세션 상태 전환

    허용: scheduled → in_progress → completed, scheduled|in_progress → cancelled
    """
    session = db.get_session(session_id)
    if session is None:
        raise NotFoundError(f"세션을 찾을 수 없습니다: {session_id}")

    if not session.status.can_transition_to(target):
        raise InvalidTransitionError(
            f"세션 {session_id}: {session.status.value} → {target.value} 전환 불가"
        )

    if not db.update_session_status(session_id, session.status, target):
        raise InvalidTransitionError(f"세션 {session_id}: 상태가 이미 변경되었습니다")

    session.status = target
    return session


def start_session(db: ScheduleDB, session_id: int):
    return transition_session(db, session_id, SessionStatus.IN_PROGRESS)


def complete_session(db: ScheduleDB, session_id: int):
    return transition_session(db, session_id, SessionStatus.COMPLETED)


def cancel_session(db: ScheduleDB, session_id: int):
    return transition_session(db, session_id, SessionStatus.CANCELLED)


def list_free_sessions(db: ScheduleDB, now: datetime = None, limit: int = 100) -> List[Dict]:
    """활성 클래스의 다가오는 무료 세션 목록"""
    return db.list_free_sessions(now or datetime.now(), limit)


def get_public_session(db: ScheduleDB, session_id: int) -> Dict:
    """
    공개 세션 단건 조회

    Raises:
        NotFoundError: 세션이 없거나 클래스가 비활성
        AccessDeniedError: 유료 세션
    """
    detail = db.get_session_detail(session_id)
    if detail is None or not detail['class_is_active']:
        raise NotFoundError(f"세션을 찾을 수 없습니다: {session_id}")
    if not detail['is_free']:
        raise AccessDeniedError(f"세션 {session_id}: 인증이 필요한 세션입니다")

    detail.pop('class_is_active')
    return detail
