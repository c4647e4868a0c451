"""
라이브 클래스 관리 작업 테스트
"""

from datetime import datetime

import pytest

from conftest import NOW, add_catalog
from livebooth.errors import (
    AccessDeniedError,
    CatalogEmptyError,
    InvalidTransitionError,
    LiveClassExistsError,
    NotFoundError,
)
from livebooth.live_classes import (
    STANDALONE_PREFIX,
    cancel_session,
    complete_session,
    convert_course,
    create_standalone,
    get_public_session,
    list_free_sessions,
    set_active,
    start_session,
)
from livebooth.schemas import SessionStatus


def test_convert_course_schedules_first_month(db, config):
    add_catalog(db, "course-1", 5)

    result = convert_course(db, "course-1", title="파이썬 라이브", now=NOW, config=config)

    assert result['sessions_created'] == 90
    assert result['total_lessons'] == 5
    live_class = db.get_live_class(result['live_class_id'])
    assert live_class.title == "파이썬 라이브"
    assert live_class.is_active is True


def test_convert_course_twice_rejected(db, config):
    add_catalog(db, "course-1", 2)
    result = convert_course(db, "course-1", now=NOW, config=config)

    with pytest.raises(LiveClassExistsError) as exc_info:
        convert_course(db, "course-1", now=NOW, config=config)

    assert exc_info.value.live_class_id == result['live_class_id']


def test_convert_empty_course_rejected(db, config):
    with pytest.raises(CatalogEmptyError):
        convert_course(db, "course-empty", now=NOW, config=config)

    assert db.find_live_class_by_source("course-empty") is None


def test_convert_course_rolls_back_on_schedule_failure(db, config, monkeypatch):
    """초기 세션 생성이 실패하면 라이브 클래스도 남지 않음"""
    add_catalog(db, "course-1", 3)

    def broken_insert(*args, **kwargs):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(db, "insert_sessions_and_advance_cursor", broken_insert)

    with pytest.raises(RuntimeError):
        convert_course(db, "course-1", now=NOW, config=config)

    assert db.find_live_class_by_source("course-1") is None


def test_create_standalone(db, config):
    result = create_standalone(db, "  특강: 데이터 분석  ", "video-42", now=NOW, config=config)

    live_class = db.get_live_class(result['live_class_id'])
    assert live_class.content_source_ref == f"{STANDALONE_PREFIX}video-42"
    assert live_class.title == "특강: 데이터 분석"
    assert result['sessions_created'] == 90

    sessions = db.list_sessions(live_class.id)
    assert {s.content_item_ref for s in sessions} == {"video-42"}
    assert all(s.is_free for s in sessions)


def test_create_standalone_requires_title_and_video(db, config):
    with pytest.raises(ValueError):
        create_standalone(db, " ", "video-1", now=NOW, config=config)
    with pytest.raises(ValueError):
        create_standalone(db, "특강", "", now=NOW, config=config)


def test_set_active(db, config):
    add_catalog(db, "course-1", 2)
    live_class_id = convert_course(db, "course-1", now=NOW, config=config)['live_class_id']

    live_class = set_active(db, live_class_id, False)
    assert live_class.is_active is False
    assert list_free_sessions(db, now=NOW) == []

    with pytest.raises(NotFoundError):
        set_active(db, 9999, True)


def test_session_lifecycle(db, config):
    add_catalog(db, "course-1", 2)
    live_class_id = convert_course(db, "course-1", now=NOW, config=config)['live_class_id']
    session_id = db.list_sessions(live_class_id)[0].id

    assert start_session(db, session_id).status is SessionStatus.IN_PROGRESS
    assert complete_session(db, session_id).status is SessionStatus.COMPLETED
    assert db.get_session(session_id).status is SessionStatus.COMPLETED


def test_invalid_transitions(db, config):
    add_catalog(db, "course-1", 2)
    live_class_id = convert_course(db, "course-1", now=NOW, config=config)['live_class_id']
    first, second = [s.id for s in db.list_sessions(live_class_id)[:2]]

    with pytest.raises(InvalidTransitionError):
        complete_session(db, first)

    cancel_session(db, second)
    with pytest.raises(InvalidTransitionError):
        start_session(db, second)

    with pytest.raises(NotFoundError):
        start_session(db, 9999)


def test_list_free_sessions(db, config):
    add_catalog(db, "course-1", 4)
    convert_course(db, "course-1", now=NOW, config=config)

    sessions = list_free_sessions(db, now=NOW, limit=10)

    assert len(sessions) == 10
    assert all(s['is_free'] for s in sessions)
    assert {s['content_item_ref'] for s in sessions} <= {"lesson-0", "lesson-1"}
    times = [datetime.fromisoformat(s['scheduled_datetime']) for s in sessions]
    assert times == sorted(times)


def test_get_public_session(db, config):
    add_catalog(db, "course-1", 4)
    live_class_id = convert_course(db, "course-1", title="파이썬 라이브",
                                   now=NOW, config=config)['live_class_id']
    sessions = db.list_sessions(live_class_id)
    free = next(s for s in sessions if s.is_free)
    paid = next(s for s in sessions if not s.is_free)

    detail = get_public_session(db, free.id)
    assert detail['id'] == free.id
    assert detail['is_free'] is True
    assert detail['class_title'] == "파이썬 라이브"
    assert detail['lesson_title'] == f"Lesson {free.content_item_ref.split('-')[1]}"
    assert 'class_is_active' not in detail

    with pytest.raises(AccessDeniedError):
        get_public_session(db, paid.id)

    with pytest.raises(NotFoundError):
        get_public_session(db, 9999)

    set_active(db, live_class_id, False)
    with pytest.raises(NotFoundError):
        get_public_session(db, free.id)
