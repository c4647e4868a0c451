# livebooth/generator.py
"""
라이브 클래스 세션 생성기

활성 라이브 클래스마다 미래 세션이 충분한지 확인하고,
부족하면 콘텐츠 카탈로그를 순환하며 세션을 일괄 추가합니다.

동작 (클래스별 독립 처리):
1. 미래 세션 수 / 하루 슬롯 수 = 남은 일수
2. 남은 일수 >= low_water_mark_days 이면 건너뜀
3. 마지막 미래 세션 다음날(없으면 내일)부터
4. extension_length_days 일 동안 (cycle_cursor + day) % cycle_length 번째 항목으로
   하루 슬롯 수만큼 세션 생성
5. 세션 저장과 cycle_cursor 갱신을 한 트랜잭션으로 처리
"""

import sqlite3
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple

from livebooth.access_policy import is_free
from livebooth.config import ScheduleConfig, get_config
from livebooth.database import ScheduleDB, get_db
from livebooth.errors import CatalogEmptyError, StoreUnavailableError
from livebooth.schemas import (
    ClassSession,
    ContentItem,
    ExtendSummary,
    LiveClass,
    SessionStatus,
)


class ExtendOutcome(str, Enum):
    EXTENDED = "extended"
    SKIPPED = "skipped"
    ALREADY_DONE = "already_done"


def compute_cycle_length(catalog_size: int, min_cycle_length: int, max_cycle_length: int) -> int:
    """
    순환 길이 계산

    짧은 카탈로그(단독 클래스)는 min_cycle_length 까지 늘리고,
    긴 카탈로그(코스 기반)는 max_cycle_length 로 자릅니다.
    """
    if catalog_size <= 0:
        raise ValueError("catalog_size must be positive")
    if catalog_size < min_cycle_length:
        return min_cycle_length
    return min(catalog_size, max_cycle_length)


def content_index(cycle_cursor: int, day: int, cycle_length: int) -> int:
    return (cycle_cursor + day) % cycle_length


def next_start_date(latest_future: Optional[datetime], now: datetime) -> date:
    """새 세션 시작일: 마지막 미래 세션 다음날, 없으면 내일 (과거 날짜는 불가)"""
    tomorrow = now.date() + timedelta(days=1)
    if latest_future is None:
        return tomorrow
    return max(latest_future.date() + timedelta(days=1), tomorrow)


def build_sessions(
    live_class: LiveClass,
    catalog: List[ContentItem],
    start_date: date,
    config: ScheduleConfig,
) -> Tuple[List[ClassSession], int]:
    """
    연장 구간의 세션 목록 생성 (저장하지 않음)

    Returns:
        (세션 리스트, 다음 cycle_cursor)
    """
    if not catalog:
        raise CatalogEmptyError(live_class.content_source_ref)

    cycle_length = compute_cycle_length(
        len(catalog), config.min_cycle_length, config.max_cycle_length
    )
    cursor = live_class.cycle_cursor % cycle_length

    sessions = []
    for day in range(config.extension_length_days):
        index = content_index(cursor, day, cycle_length)
        item = catalog[index % len(catalog)]
        session_date = start_date + timedelta(days=day)
        free = is_free(item.ordinal_position, config.free_threshold)

        for slot_time in config.slots:
            sessions.append(ClassSession(
                live_class_id=live_class.id,
                content_item_ref=item.item_id,
                session_slot=slot_time.slot,
                scheduled_datetime=datetime.combine(session_date, slot_time.at),
                is_free=free,
                status=SessionStatus.SCHEDULED,
                capacity=config.default_capacity,
                remaining=config.default_capacity,
            ))

    new_cursor = (cursor + config.extension_length_days) % cycle_length
    return sessions, new_cursor


def extend_live_class(
    db: ScheduleDB,
    live_class: LiveClass,
    now: datetime,
    config: ScheduleConfig,
) -> Tuple[ExtendOutcome, int]:
    """
    라이브 클래스 하나의 일정 연장

    Returns:
        (결과, 생성된 세션 수)

    Raises:
        CatalogEmptyError: 카탈로그가 비어 있음
        sqlite3.Error: 저장 실패 (제약 위반은 ALREADY_DONE 으로 처리)
    """
    count, latest = db.get_future_session_stats(live_class.id, now)
    days_remaining = count // config.slots_per_day

    if days_remaining >= config.low_water_mark_days:
        return ExtendOutcome.SKIPPED, 0

    start_date = next_start_date(latest, now)
    catalog = db.list_items(live_class.content_source_ref)
    sessions, new_cursor = build_sessions(live_class, catalog, start_date, config)

    inserted = db.insert_sessions_and_advance_cursor(
        live_class.id,
        sessions,
        expected_cursor=live_class.cycle_cursor,
        new_cursor=new_cursor,
    )
    if not inserted:
        return ExtendOutcome.ALREADY_DONE, 0

    live_class.cycle_cursor = new_cursor
    return ExtendOutcome.EXTENDED, len(sessions)


def extend_schedules(
    db: ScheduleDB = None,
    now: datetime = None,
    config: ScheduleConfig = None,
) -> ExtendSummary:
    """
    모든 활성 라이브 클래스의 일정 연장

    클래스 하나의 실패(빈 카탈로그, 저장 실패)는 출력 후 다음 클래스로 넘어갑니다.
    활성 클래스 목록 자체를 읽지 못하면 StoreUnavailableError 로 실행을 중단합니다.
    """
    db = db or get_db()
    config = config or get_config()
    now = now or datetime.now()

    summary: ExtendSummary = {
        'classes_processed': 0,
        'classes_extended': 0,
        'classes_skipped': 0,
        'classes_failed': 0,
        'sessions_created': 0,
    }

    try:
        live_classes = db.list_active_live_classes()
    except sqlite3.Error as e:
        raise StoreUnavailableError(f"활성 라이브 클래스 조회 실패: {e}") from e

    for live_class in live_classes:
        summary['classes_processed'] += 1
        try:
            outcome, created = extend_live_class(db, live_class, now, config)
        except CatalogEmptyError as e:
            print(f"⚠️  라이브 클래스 {live_class.id}: {e} (스킵)")
            summary['classes_failed'] += 1
            continue
        except Exception as e:
            print(f"❌ 라이브 클래스 {live_class.id}: 세션 생성 실패 - {e}")
            summary['classes_failed'] += 1
            continue

        if outcome is ExtendOutcome.EXTENDED:
            print(f"📅 라이브 클래스 {live_class.id}: 세션 {created}개 생성 "
                  f"(다음 커서: {live_class.cycle_cursor})")
            summary['classes_extended'] += 1
            summary['sessions_created'] += created
        elif outcome is ExtendOutcome.ALREADY_DONE:
            print(f"⏭️  라이브 클래스 {live_class.id}: 다른 실행이 이미 처리함 (스킵)")
            summary['classes_skipped'] += 1
        else:
            summary['classes_skipped'] += 1

    return summary
