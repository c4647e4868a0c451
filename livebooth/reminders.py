# livebooth/reminders.py
"""
리마인더 스캐너

주기적으로 실행되어 lookahead 구간 안의 세션을 살펴보고,
발송 시점이 된 (세션, 리마인더 종류) 조합마다 수신자에게 알림을 보냅니다.

중복 발송 방지:
- (세션, 종류, 수신자) 단위로 발송 기록을 남깁니다
- 기록은 발송 성공 직후에만 남기므로, 실패한 수신자는 같은 허용 오차 창 안의
  다음 스캔에서 다시 시도됩니다
- 창이 지나면 따라잡기 발송은 하지 않습니다
"""

import sqlite3
from datetime import datetime
from typing import Dict, List

from livebooth.config import ScheduleConfig, get_config
from livebooth.database import ScheduleDB, get_db
from livebooth.errors import NotificationError, StoreUnavailableError
from livebooth.notification import NotificationSender, build_sender
from livebooth.schemas import (
    Recipient,
    ReminderKind,
    ReminderRule,
    ScanSummary,
    SessionContext,
)


def due_reminder_kinds(
    scheduled_datetime: datetime,
    now: datetime,
    rules: List[ReminderRule],
) -> List[ReminderKind]:
    """
    지금 발송 시점인 리마인더 종류

    Args:
        scheduled_datetime: 세션 시작 시각
        now: 현재 시각
        rules: 리마인더 규칙 (정해진 순서)

    Returns:
        남은 시간이 [offset - tolerance, offset + tolerance] 에 들어가는 종류들
    """
    time_until_session = scheduled_datetime - now
    return [rule.kind for rule in rules if rule.is_due(time_until_session)]


def resolve_recipients(db: ScheduleDB, session_id: int, live_class_id: int) -> List[Recipient]:
    """세션 권한 + 클래스 전체 권한 사용자 (중복 제거)"""
    refs = db.list_session_recipients(session_id) | db.list_class_recipients(live_class_id)
    return db.get_recipients(refs)


def build_context(session: Dict, config: ScheduleConfig) -> SessionContext:
    return SessionContext(
        session_id=session['id'],
        live_class_id=session['live_class_id'],
        session_slot=session['session_slot'],
        scheduled_datetime=session['scheduled_datetime'],
        class_title=session.get('class_title') or "라이브 클래스",
        lesson_title=session.get('lesson_title') or "수업 세션",
        join_url=f"{config.app_url}/live-classes/session/{session['id']}",
    )


def scan_reminders(
    db: ScheduleDB = None,
    sender: NotificationSender = None,
    now: datetime = None,
    config: ScheduleConfig = None,
) -> ScanSummary:
    """
    리마인더 스캔 1회 실행

    동작:
    1. [now, now + lookahead) 구간의 scheduled 세션 조회
    2. 세션별로 발송 시점인 리마인더 종류 계산
    3. 수신자 결정 (세션 권한 ∪ 클래스 전체 권한, 발송기가 공지 채널을 추가)
    4. 수신자별: 이미 보냈으면 스킵, 아니면 발송 → 성공 시 기록

    한 수신자의 실패는 다른 수신자/세션 처리를 막지 않습니다.
    세션 목록을 읽지 못하면 StoreUnavailableError 로 실행을 중단합니다.
    """
    db = db or get_db()
    config = config or get_config()
    sender = sender or build_sender(config)
    now = now or datetime.now()

    summary: ScanSummary = {
        'sessions_scanned': 0,
        'due_pairs': 0,
        'sent': 0,
        'skipped': 0,
        'failed': 0,
        'failures': [],
    }

    try:
        sessions = db.list_upcoming_sessions(now, now + config.lookahead)
    except sqlite3.Error as e:
        raise StoreUnavailableError(f"예정 세션 조회 실패: {e}") from e

    for session in sessions:
        summary['sessions_scanned'] += 1
        kinds = due_reminder_kinds(session['scheduled_datetime'], now, config.reminder_rules)

        for kind in kinds:
            summary['due_pairs'] += 1
            _dispatch(db, sender, session, kind, now, config, summary)

    return summary


def _dispatch(
    db: ScheduleDB,
    sender: NotificationSender,
    session: Dict,
    kind: ReminderKind,
    now: datetime,
    config: ScheduleConfig,
    summary: ScanSummary,
):
    """
    (세션, 종류) 하나에 대해 수신자별 발송

    수신자 목록은 발송기가 정합니다. 권한이 있는 사용자가 없어도
    공지 채널 대상은 남을 수 있습니다.
    """
    session_id = session['id']

    try:
        users = resolve_recipients(db, session_id, session['live_class_id'])
        targets = sender.targets(kind, users)
    except Exception as e:
        print(f"❌ 세션 {session_id} [{kind.value}]: 수신자 조회 실패 - {e}")
        summary['failed'] += 1
        summary['failures'].append(f"{session_id}:{kind.value}:*")
        return

    if not targets:
        return

    context = build_context(session, config)

    for recipient in targets:
        try:
            if db.has_reminder(session_id, kind, recipient.ref):
                summary['skipped'] += 1
                continue

            print(f"📤 세션 {session_id} [{kind.value}] → {recipient.ref} 발송 중...")
            ok = sender.send(recipient, kind, context)
        except NotificationError as e:
            ok = False
            print(f"❌ 세션 {session_id} [{kind.value}] → {recipient.ref}: {e}")
        except Exception as e:
            ok = False
            print(f"❌ 세션 {session_id} [{kind.value}] → {recipient.ref}: 예상치 못한 오류 - {e}")

        if not ok:
            summary['failed'] += 1
            summary['failures'].append(f"{session_id}:{kind.value}:{recipient.ref}")
            continue

        try:
            recorded = db.record_reminder(session_id, kind, recipient.ref, now)
        except sqlite3.Error as e:
            # 발송은 됐지만 기록 실패 - 다음 스캔에서 한 번 더 보낼 수 있음
            print(f"⚠️  세션 {session_id} [{kind.value}] → {recipient.ref}: 발송 기록 실패 - {e}")
            summary['sent'] += 1
            continue

        if not recorded:
            print(f"⏭️  세션 {session_id} [{kind.value}] → {recipient.ref}: 다른 실행이 이미 기록함")
        summary['sent'] += 1
