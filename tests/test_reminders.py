"""
리마인더 스캐너 테스트

세션 시작 T = 2026-10-20 13:00 (오후 슬롯), 허용 오차 ±5분 기준
"""

import sqlite3
from datetime import datetime, timedelta

import pytest

from conftest import FakeHttpSession, FakeResponse, FakeSender, add_catalog
from livebooth.config import default_reminder_rules
from livebooth.errors import StoreUnavailableError
from livebooth.live_classes import cancel_session, start_session
from livebooth.notification import TelegramSender
from livebooth.reminders import build_context, due_reminder_kinds, scan_reminders
from livebooth.schemas import ClassSession, Recipient, ReminderKind, SessionSlot

T = datetime(2026, 10, 20, 13, 0)


def _minutes_before(minutes):
    return T - timedelta(minutes=minutes)


@pytest.fixture
def session_id(db):
    """활성 클래스에 세션 1개 + 세션 권한 사용자 1명"""
    live_class_id = db.create_live_class("course-1", "파이썬 라이브")
    add_catalog(db, "course-1", 1)
    db.insert_sessions_and_advance_cursor(
        live_class_id,
        [ClassSession(
            live_class_id=live_class_id,
            content_item_ref="lesson-0",
            session_slot=SessionSlot.AFTERNOON,
            scheduled_datetime=T,
            is_free=True,
        )],
        expected_cursor=0,
        new_cursor=0,
    )
    sid = db.list_sessions(live_class_id)[0].id
    db.grant_session_access("user-a", sid)
    return sid


def test_due_reminder_kinds():
    rules = default_reminder_rules(5)

    assert due_reminder_kinds(T, _minutes_before(24 * 60 + 3), rules) == [ReminderKind.BEFORE_24H]
    assert due_reminder_kinds(T, _minutes_before(120), rules) == [ReminderKind.BEFORE_2H]
    assert due_reminder_kinds(T, _minutes_before(65), rules) == [ReminderKind.BEFORE_1H]
    assert due_reminder_kinds(T, _minutes_before(66), rules) == []
    assert due_reminder_kinds(T, _minutes_before(4), rules) == [
        ReminderKind.BEFORE_2M, ReminderKind.CLASS_START
    ]
    assert due_reminder_kinds(T, T + timedelta(minutes=4), rules) == [ReminderKind.CLASS_START]


def test_one_hour_reminder_sent_exactly_once(db, config, session_id):
    """T-61분, T-59분 두 번 스캔해도 1시간 전 알림은 한 번만"""
    sender = FakeSender()

    first = scan_reminders(db=db, sender=sender, now=_minutes_before(61), config=config)
    second = scan_reminders(db=db, sender=sender, now=_minutes_before(59), config=config)

    assert sender.calls == [("user-a", ReminderKind.BEFORE_1H, session_id)]
    assert first['sent'] == 1
    assert second['sent'] == 0 and second['skipped'] == 1

    records = db.list_reminders(session_id)
    assert len(records) == 1
    assert records[0]['reminder_kind'] == ReminderKind.BEFORE_1H.value
    assert records[0]['recipient_ref'] == "user-a"


def test_missed_window_is_not_caught_up(db, config, session_id):
    """1시간 전 창을 놓치면 나중에 보내지 않음"""
    sender = FakeSender()

    scan_reminders(db=db, sender=sender, now=_minutes_before(70), config=config)
    scan_reminders(db=db, sender=sender, now=_minutes_before(50), config=config)
    assert sender.calls == []

    scan_reminders(db=db, sender=sender, now=_minutes_before(30), config=config)
    assert sender.calls == [("user-a", ReminderKind.BEFORE_30M, session_id)]


def test_failed_send_retried_in_next_scan(db, config, session_id):
    failing = FakeSender(failing={"user-a"})
    summary = scan_reminders(db=db, sender=failing, now=_minutes_before(61), config=config)

    assert summary['failed'] == 1
    assert summary['failures'] == [f"{session_id}:1h_before:user-a"]
    assert db.list_reminders(session_id) == []

    healthy = FakeSender()
    summary = scan_reminders(db=db, sender=healthy, now=_minutes_before(59), config=config)

    assert summary['sent'] == 1
    assert healthy.calls == [("user-a", ReminderKind.BEFORE_1H, session_id)]


def test_one_recipient_failure_does_not_block_others(db, config, session_id):
    db.grant_session_access("user-b", session_id)
    db.grant_session_access("user-c", session_id)
    sender = FakeSender(raising={"user-b"})

    summary = scan_reminders(db=db, sender=sender, now=_minutes_before(30), config=config)

    assert [ref for ref, _, _ in sender.calls] == ["user-a", "user-b", "user-c"]
    assert summary['sent'] == 2
    assert summary['failed'] == 1
    assert {r['recipient_ref'] for r in db.list_reminders(session_id)} == {"user-a", "user-c"}


def test_session_and_class_grants_are_deduplicated(db, config, session_id):
    live_class_id = db.get_session(session_id).live_class_id
    db.grant_class_access("user-a", live_class_id)
    db.grant_class_access("user-full", live_class_id)
    sender = FakeSender()

    scan_reminders(db=db, sender=sender, now=_minutes_before(120), config=config)

    assert sorted(ref for ref, _, _ in sender.calls) == ["user-a", "user-full"]


def test_no_recipients_sends_nothing(db, config):
    live_class_id = db.create_live_class("course-2")
    db.insert_sessions_and_advance_cursor(
        live_class_id,
        [ClassSession(live_class_id, "lesson-0", SessionSlot.AFTERNOON, T, True)],
        0, 0,
    )
    sender = FakeSender()

    summary = scan_reminders(db=db, sender=sender, now=_minutes_before(60), config=config)

    assert summary['due_pairs'] == 1
    assert summary['sent'] == 0
    assert sender.calls == []


def test_inactive_class_gets_no_reminders(db, config, session_id):
    live_class_id = db.get_session(session_id).live_class_id
    db.set_live_class_active(live_class_id, False)
    sender = FakeSender()

    summary = scan_reminders(db=db, sender=sender, now=_minutes_before(60), config=config)

    assert summary['sessions_scanned'] == 0
    assert sender.calls == []


def test_sessions_outside_lookahead_ignored(db, config, session_id):
    sender = FakeSender()
    summary = scan_reminders(db=db, sender=sender, now=T - timedelta(hours=26), config=config)
    assert summary['sessions_scanned'] == 0


def test_context_contains_titles_and_join_url(db, config, session_id):
    session = db.list_upcoming_sessions(_minutes_before(60), T + timedelta(minutes=1))[0]
    context = build_context(session, config)

    assert context.class_title == "파이썬 라이브"
    assert context.lesson_title == "Lesson 0"
    assert context.session_slot is SessionSlot.AFTERNOON
    assert context.join_url == f"{config.app_url}/live-classes/session/{session_id}"


def test_store_unavailable_aborts_scan(db, config, monkeypatch):
    def broken(start, end):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(db, "list_upcoming_sessions", broken)

    with pytest.raises(StoreUnavailableError):
        scan_reminders(db=db, sender=FakeSender(), now=T, config=config)


@pytest.mark.parametrize("move", [cancel_session, start_session])
def test_session_leaving_scheduled_gets_no_reminders(db, config, session_id, move):
    """취소되거나 이미 시작된 세션은 발송 시점이어도 알림 없음"""
    move(db, session_id)
    sender = FakeSender(broadcast=[Recipient(ref="telegram:@channel", telegram_id="@channel")])

    for minutes in (61, 30, 2, 0):
        summary = scan_reminders(db=db, sender=sender, now=_minutes_before(minutes), config=config)
        assert summary['sessions_scanned'] == 0

    assert sender.calls == []
    assert db.list_reminders(session_id) == []


def test_channel_broadcast_posted_once_per_session_and_kind(db, config, session_id):
    """수강생 5명이어도 공지 채널에는 1건, 다음 스캔에서 다시 보내지 않음"""
    for ref in ("user-b", "user-c", "user-d", "user-e"):
        db.grant_session_access(ref, session_id)
    http = FakeHttpSession(FakeResponse({"ok": True}))
    sender = TelegramSender("token", chat_id="@channel", session=http)

    first = scan_reminders(db=db, sender=sender, now=_minutes_before(60), config=config)
    second = scan_reminders(db=db, sender=sender, now=_minutes_before(58), config=config)

    assert [payload["chat_id"] for _, payload in http.posts] == ["@channel"]
    assert first['sent'] == 1
    assert second['sent'] == 0 and second['skipped'] == 1
    assert [r['recipient_ref'] for r in db.list_reminders(session_id)] == ["telegram:@channel"]


def test_group_broadcast_at_class_start_without_grants(db, config):
    """권한 사용자가 없어도 시작 알림은 그룹에 전달"""
    live_class_id = db.create_live_class("course-3")
    db.insert_sessions_and_advance_cursor(
        live_class_id,
        [ClassSession(live_class_id, "lesson-0", SessionSlot.AFTERNOON, T, True)],
        0, 0,
    )
    http = FakeHttpSession(FakeResponse({"ok": True}))
    sender = TelegramSender("token", group_ids=("-100200",), session=http)

    scan_reminders(db=db, sender=sender, now=_minutes_before(60), config=config)
    assert http.posts == []

    summary = scan_reminders(db=db, sender=sender, now=_minutes_before(1), config=config)

    assert [payload["chat_id"] for _, payload in http.posts] == ["-100200"]
    assert summary['sent'] == 1
