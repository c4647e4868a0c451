# livebooth/database.py
"""
SQLite 스케줄 저장소

라이브 클래스, 수업 세션, 리마인더 발송 기록을 영구 저장합니다.
콘텐츠 카탈로그(content_items)와 수강 권한(live_class_access)은
외부 시스템 소유이지만 같은 DB 파일에서 읽어옵니다.

중복 방지는 애플리케이션이 아니라 저장소의 UNIQUE 제약으로 보장합니다:
- class_sessions: (live_class_id, scheduled_datetime, session_slot)
- class_reminders: (class_session_id, reminder_kind, recipient_ref)
"""

import sqlite3
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from livebooth.schemas import (
    ClassSession,
    ContentItem,
    LiveClass,
    Recipient,
    ReminderKind,
    SessionSlot,
    SessionStatus,
)

ACCESS_SESSION = "session"
ACCESS_FULL_CLASS = "full_class"


def to_db_datetime(value: datetime) -> str:
    """datetime -> 'YYYY-MM-DDTHH:MM:SS' (문자열 정렬 = 시간 순서)"""
    return value.replace(microsecond=0, tzinfo=None).isoformat()


def from_db_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _enum_values(enum_cls) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_cls)


class ScheduleDB:
    """
    라이브 부스 스케줄 데이터베이스

    하나의 연결을 스케줄러 스레드와 웹 서버 스레드가 공유하므로
    모든 접근은 내부 락으로 직렬화합니다.
    """

    def __init__(self, db_path: str = 'livebooth.db'):
        """
        DB 초기화 및 테이블 생성

        Args:
            db_path: DB 파일 경로 (기본: livebooth.db)
        """
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.execute("PRAGMA busy_timeout = 5000")
        self._lock = threading.RLock()
        self._create_tables()

    def _create_tables(self):
        """테이블 생성 (없을 경우에만)"""
        with self._lock, self.conn:
            cursor = self.conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS live_classes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content_source_ref TEXT NOT NULL UNIQUE,
                    title TEXT,
                    cycle_cursor INTEGER NOT NULL DEFAULT 0 CHECK (cycle_cursor >= 0),
                    is_active BOOLEAN NOT NULL DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP
                )
            ''')

            cursor.execute(f'''
                CREATE TABLE IF NOT EXISTS class_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    live_class_id INTEGER NOT NULL,
                    content_item_ref TEXT NOT NULL,
                    session_slot TEXT NOT NULL CHECK (session_slot IN ({_enum_values(SessionSlot)})),
                    scheduled_date TEXT NOT NULL,
                    scheduled_datetime TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'scheduled'
                        CHECK (status IN ({_enum_values(SessionStatus)})),
                    is_free BOOLEAN NOT NULL,
                    capacity INTEGER,
                    remaining INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (live_class_id) REFERENCES live_classes(id) ON DELETE CASCADE,
                    UNIQUE (live_class_id, scheduled_datetime, session_slot),
                    UNIQUE (live_class_id, scheduled_date, session_slot)
                )
            ''')
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_class_sessions_datetime
                ON class_sessions (scheduled_datetime, status)
            ''')

            cursor.execute(f'''
                CREATE TABLE IF NOT EXISTS class_reminders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    class_session_id INTEGER NOT NULL,
                    reminder_kind TEXT NOT NULL CHECK (reminder_kind IN ({_enum_values(ReminderKind)})),
                    recipient_ref TEXT NOT NULL,
                    sent_at TEXT NOT NULL,
                    FOREIGN KEY (class_session_id) REFERENCES class_sessions(id) ON DELETE CASCADE,
                    UNIQUE (class_session_id, reminder_kind, recipient_ref)
                )
            ''')

            # 외부 시스템 테이블 (카탈로그 / 권한 / 프로필)
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS content_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content_source_ref TEXT NOT NULL,
                    item_id TEXT NOT NULL,
                    ordinal_position INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    UNIQUE (content_source_ref, ordinal_position),
                    UNIQUE (content_source_ref, item_id)
                )
            ''')

            cursor.execute(f'''
                CREATE TABLE IF NOT EXISTS live_class_access (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_ref TEXT NOT NULL,
                    live_class_id INTEGER NOT NULL,
                    class_session_id INTEGER,
                    access_type TEXT NOT NULL
                        CHECK (access_type IN ('{ACCESS_SESSION}', '{ACCESS_FULL_CLASS}')),
                    granted_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (live_class_id) REFERENCES live_classes(id) ON DELETE CASCADE,
                    FOREIGN KEY (class_session_id) REFERENCES class_sessions(id) ON DELETE CASCADE
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS profiles (
                    user_ref TEXT PRIMARY KEY,
                    name TEXT,
                    email TEXT,
                    telegram_id TEXT
                )
            ''')

    # ------------------------------------------------------------------
    # live_classes
    # ------------------------------------------------------------------

    def create_live_class(self, content_source_ref: str, title: str = None) -> int:
        """
        라이브 클래스 생성 (cycle_cursor = 0, 활성 상태)

        Returns:
            생성된 라이브 클래스 ID
        """
        with self._lock, self.conn:
            cursor = self.conn.execute('''
                INSERT INTO live_classes (content_source_ref, title, cycle_cursor, is_active)
                VALUES (?, ?, 0, 1)
            ''', (content_source_ref, title))
            return cursor.lastrowid

    def delete_live_class(self, live_class_id: int):
        """최초 생성 실패 시 보상 삭제 용도로만 사용"""
        with self._lock, self.conn:
            self.conn.execute('DELETE FROM live_classes WHERE id = ?', (live_class_id,))

    def get_live_class(self, live_class_id: int) -> Optional[LiveClass]:
        with self._lock:
            row = self.conn.execute(
                'SELECT * FROM live_classes WHERE id = ?', (live_class_id,)
            ).fetchone()
        return self._row_to_live_class(row) if row else None

    def find_live_class_by_source(self, content_source_ref: str) -> Optional[LiveClass]:
        with self._lock:
            row = self.conn.execute(
                'SELECT * FROM live_classes WHERE content_source_ref = ?',
                (content_source_ref,)
            ).fetchone()
        return self._row_to_live_class(row) if row else None

    def list_active_live_classes(self) -> List[LiveClass]:
        with self._lock:
            rows = self.conn.execute('''
                SELECT * FROM live_classes
                WHERE is_active = 1
                ORDER BY id
            ''').fetchall()
        return [self._row_to_live_class(row) for row in rows]

    def set_live_class_active(self, live_class_id: int, is_active: bool) -> bool:
        """
        활성/비활성 전환

        Returns:
            대상 라이브 클래스가 존재하면 True
        """
        with self._lock, self.conn:
            cursor = self.conn.execute('''
                UPDATE live_classes
                SET is_active = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            ''', (1 if is_active else 0, live_class_id))
            return cursor.rowcount == 1

    @staticmethod
    def _row_to_live_class(row: sqlite3.Row) -> LiveClass:
        return LiveClass(
            id=row['id'],
            content_source_ref=row['content_source_ref'],
            cycle_cursor=row['cycle_cursor'],
            is_active=bool(row['is_active']),
            title=row['title'],
            created_at=row['created_at'],
        )

    # ------------------------------------------------------------------
    # class_sessions
    # ------------------------------------------------------------------

    def get_future_session_stats(
        self, live_class_id: int, now: datetime
    ) -> Tuple[int, Optional[datetime]]:
        """
        미래 세션 개수와 가장 늦은 세션 시각

        Returns:
            (개수, 마지막 scheduled_datetime 또는 None)
        """
        with self._lock:
            row = self.conn.execute('''
                SELECT COUNT(*) AS cnt, MAX(scheduled_datetime) AS latest
                FROM class_sessions
                WHERE live_class_id = ?
                AND scheduled_datetime >= ?
            ''', (live_class_id, to_db_datetime(now))).fetchone()

        latest = from_db_datetime(row['latest']) if row['latest'] else None
        return row['cnt'], latest

    def insert_sessions_and_advance_cursor(
        self,
        live_class_id: int,
        sessions: List[ClassSession],
        expected_cursor: int,
        new_cursor: int,
    ) -> bool:
        """
        세션 일괄 저장 + cycle_cursor 갱신 (단일 트랜잭션)

        커서는 expected_cursor 일 때만 갱신합니다. 동시에 실행된 다른 생성기가
        이미 같은 날짜를 채웠거나 커서를 옮겼다면 전체를 롤백하고 False를 반환합니다.

        Returns:
            저장 성공 시 True, 이미 다른 실행이 처리한 경우 False

        Raises:
            sqlite3.Error: 제약 위반 이외의 저장소 오류
        """
        rows = [
            (
                s.live_class_id,
                s.content_item_ref,
                s.session_slot.value,
                s.scheduled_datetime.date().isoformat(),
                to_db_datetime(s.scheduled_datetime),
                s.status.value,
                1 if s.is_free else 0,
                s.capacity,
                s.remaining,
            )
            for s in sessions
        ]

        with self._lock:
            try:
                with self.conn:
                    self.conn.executemany('''
                        INSERT INTO class_sessions
                        (live_class_id, content_item_ref, session_slot, scheduled_date,
                         scheduled_datetime, status, is_free, capacity, remaining)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ''', rows)

                    cursor = self.conn.execute('''
                        UPDATE live_classes
                        SET cycle_cursor = ?, updated_at = CURRENT_TIMESTAMP
                        WHERE id = ? AND cycle_cursor = ?
                    ''', (new_cursor, live_class_id, expected_cursor))

                    if cursor.rowcount != 1:
                        raise _CursorMoved()
            except (sqlite3.IntegrityError, _CursorMoved):
                return False
        return True

    def get_session(self, session_id: int) -> Optional[ClassSession]:
        with self._lock:
            row = self.conn.execute(
                'SELECT * FROM class_sessions WHERE id = ?', (session_id,)
            ).fetchone()
        return self._row_to_session(row) if row else None

    def list_sessions(
        self, live_class_id: int, since: Optional[datetime] = None
    ) -> List[ClassSession]:
        """라이브 클래스의 세션 목록 (시간 순)"""
        query = 'SELECT * FROM class_sessions WHERE live_class_id = ?'
        params: list = [live_class_id]
        if since is not None:
            query += ' AND scheduled_datetime >= ?'
            params.append(to_db_datetime(since))
        query += ' ORDER BY scheduled_datetime, id'

        with self._lock:
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_session(row) for row in rows]

    def list_upcoming_sessions(self, start: datetime, end: datetime) -> List[Dict]:
        """
        리마인더 대상 세션 조회

        Args:
            start: 구간 시작 (포함)
            end: 구간 끝 (미포함)

        Returns:
            status = scheduled 이고 활성 클래스에 속한 세션 (클래스/레슨 제목 포함)
        """
        with self._lock:
            rows = self.conn.execute('''
                SELECT s.*,
                       lc.title AS class_title,
                       lc.content_source_ref AS content_source_ref,
                       ci.title AS lesson_title
                FROM class_sessions s
                JOIN live_classes lc ON lc.id = s.live_class_id
                LEFT JOIN content_items ci
                    ON ci.content_source_ref = lc.content_source_ref
                    AND ci.item_id = s.content_item_ref
                WHERE s.status = ?
                AND lc.is_active = 1
                AND s.scheduled_datetime >= ?
                AND s.scheduled_datetime < ?
                ORDER BY s.scheduled_datetime, s.id
            ''', (
                SessionStatus.SCHEDULED.value,
                to_db_datetime(start),
                to_db_datetime(end),
            )).fetchall()

        sessions = []
        for row in rows:
            session = dict(row)
            session['scheduled_datetime'] = from_db_datetime(session['scheduled_datetime'])
            session['session_slot'] = SessionSlot(session['session_slot'])
            sessions.append(session)
        return sessions

    def update_session_status(
        self, session_id: int, expected: SessionStatus, target: SessionStatus
    ) -> bool:
        """
        세션 상태 변경 (현재 상태가 expected 일 때만)

        Returns:
            변경되었으면 True
        """
        with self._lock, self.conn:
            cursor = self.conn.execute('''
                UPDATE class_sessions
                SET status = ?
                WHERE id = ? AND status = ?
            ''', (target.value, session_id, expected.value))
            return cursor.rowcount == 1

    def list_free_sessions(self, since: datetime, limit: int = 100) -> List[Dict]:
        """활성 클래스의 무료 세션 (시간 순)"""
        with self._lock:
            rows = self.conn.execute('''
                SELECT s.id, s.live_class_id, s.content_item_ref, s.session_slot,
                       s.scheduled_datetime, s.status, s.is_free,
                       lc.title AS class_title, ci.title AS lesson_title
                FROM class_sessions s
                JOIN live_classes lc ON lc.id = s.live_class_id
                LEFT JOIN content_items ci
                    ON ci.content_source_ref = lc.content_source_ref
                    AND ci.item_id = s.content_item_ref
                WHERE lc.is_active = 1
                AND s.is_free = 1
                AND s.scheduled_datetime >= ?
                ORDER BY s.scheduled_datetime, s.id
                LIMIT ?
            ''', (to_db_datetime(since), limit)).fetchall()
        return [dict(row) for row in rows]

    def get_session_detail(self, session_id: int) -> Optional[Dict]:
        """세션 + 클래스 제목/활성 여부 + 레슨 제목"""
        with self._lock:
            row = self.conn.execute('''
                SELECT s.id, s.live_class_id, s.content_item_ref, s.session_slot,
                       s.scheduled_datetime, s.status, s.is_free,
                       s.capacity, s.remaining,
                       lc.title AS class_title, lc.is_active AS class_is_active,
                       ci.title AS lesson_title
                FROM class_sessions s
                JOIN live_classes lc ON lc.id = s.live_class_id
                LEFT JOIN content_items ci
                    ON ci.content_source_ref = lc.content_source_ref
                    AND ci.item_id = s.content_item_ref
                WHERE s.id = ?
            ''', (session_id,)).fetchone()
        if row is None:
            return None
        detail = dict(row)
        detail['is_free'] = bool(detail['is_free'])
        detail['class_is_active'] = bool(detail['class_is_active'])
        return detail

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> ClassSession:
        return ClassSession(
            id=row['id'],
            live_class_id=row['live_class_id'],
            content_item_ref=row['content_item_ref'],
            session_slot=SessionSlot(row['session_slot']),
            scheduled_datetime=from_db_datetime(row['scheduled_datetime']),
            status=SessionStatus(row['status']),
            is_free=bool(row['is_free']),
            capacity=row['capacity'],
            remaining=row['remaining'],
        )

    # ------------------------------------------------------------------
    # class_reminders
    # ------------------------------------------------------------------

    def has_reminder(self, session_id: int, kind: ReminderKind, recipient_ref: str) -> bool:
        """이미 발송된 리마인더인지 확인"""
        with self._lock:
            row = self.conn.execute('''
                SELECT 1 FROM class_reminders
                WHERE class_session_id = ?
                AND reminder_kind = ?
                AND recipient_ref = ?
            ''', (session_id, kind.value, recipient_ref)).fetchone()
        return row is not None

    def record_reminder(
        self,
        session_id: int,
        kind: ReminderKind,
        recipient_ref: str,
        sent_at: datetime,
    ) -> bool:
        """
        리마인더 발송 기록

        Returns:
            새로 기록했으면 True, 같은 (세션, 종류, 수신자) 기록이 이미 있으면 False
        """
        with self._lock:
            try:
                with self.conn:
                    self.conn.execute('''
                        INSERT INTO class_reminders
                        (class_session_id, reminder_kind, recipient_ref, sent_at)
                        VALUES (?, ?, ?, ?)
                    ''', (session_id, kind.value, recipient_ref, to_db_datetime(sent_at)))
            except sqlite3.IntegrityError:
                return False
        return True

    def list_reminders(self, session_id: int) -> List[Dict]:
        with self._lock:
            rows = self.conn.execute('''
                SELECT * FROM class_reminders
                WHERE class_session_id = ?
                ORDER BY id
            ''', (session_id,)).fetchall()
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # 외부 시스템: 콘텐츠 카탈로그
    # ------------------------------------------------------------------

    def add_content_item(
        self, content_source_ref: str, item_id: str, ordinal_position: int, title: str
    ):
        with self._lock, self.conn:
            self.conn.execute('''
                INSERT INTO content_items (content_source_ref, item_id, ordinal_position, title)
                VALUES (?, ?, ?, ?)
            ''', (content_source_ref, item_id, ordinal_position, title))

    def list_items(self, content_source_ref: str) -> List[ContentItem]:
        """카탈로그 항목 (ordinal_position 오름차순)"""
        with self._lock:
            rows = self.conn.execute('''
                SELECT item_id, ordinal_position, title
                FROM content_items
                WHERE content_source_ref = ?
                ORDER BY ordinal_position ASC
            ''', (content_source_ref,)).fetchall()
        return [
            ContentItem(row['item_id'], row['ordinal_position'], row['title'])
            for row in rows
        ]

    # ------------------------------------------------------------------
    # 외부 시스템: 수강 권한 / 프로필
    # ------------------------------------------------------------------

    def grant_session_access(self, user_ref: str, session_id: int):
        with self._lock, self.conn:
            self.conn.execute('''
                INSERT INTO live_class_access (user_ref, live_class_id, class_session_id, access_type)
                SELECT ?, live_class_id, id, ?
                FROM class_sessions WHERE id = ?
            ''', (user_ref, ACCESS_SESSION, session_id))

    def grant_class_access(self, user_ref: str, live_class_id: int):
        with self._lock, self.conn:
            self.conn.execute('''
                INSERT INTO live_class_access (user_ref, live_class_id, access_type)
                VALUES (?, ?, ?)
            ''', (user_ref, live_class_id, ACCESS_FULL_CLASS))

    def list_session_recipients(self, session_id: int) -> Set[str]:
        """특정 세션 권한을 가진 사용자"""
        with self._lock:
            rows = self.conn.execute('''
                SELECT DISTINCT user_ref FROM live_class_access
                WHERE class_session_id = ? AND access_type = ?
            ''', (session_id, ACCESS_SESSION)).fetchall()
        return {row['user_ref'] for row in rows}

    def list_class_recipients(self, live_class_id: int) -> Set[str]:
        """클래스 전체 권한을 가진 사용자"""
        with self._lock:
            rows = self.conn.execute('''
                SELECT DISTINCT user_ref FROM live_class_access
                WHERE live_class_id = ? AND access_type = ?
            ''', (live_class_id, ACCESS_FULL_CLASS)).fetchall()
        return {row['user_ref'] for row in rows}

    def upsert_profile(self, user_ref: str, name: str = None, email: str = None,
                       telegram_id: str = None):
        with self._lock, self.conn:
            self.conn.execute('''
                INSERT INTO profiles (user_ref, name, email, telegram_id)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (user_ref) DO UPDATE SET
                    name = excluded.name,
                    email = excluded.email,
                    telegram_id = excluded.telegram_id
            ''', (user_ref, name, email, telegram_id))

    def get_recipients(self, user_refs: Iterable[str]) -> List[Recipient]:
        """
        수신자 프로필 조회

        프로필이 없는 사용자도 ref 만 가진 Recipient 로 반환합니다.
        """
        refs = sorted(set(user_refs))
        if not refs:
            return []

        placeholders = ", ".join("?" for _ in refs)
        with self._lock:
            rows = self.conn.execute(
                f'SELECT * FROM profiles WHERE user_ref IN ({placeholders})', refs
            ).fetchall()
        profiles = {row['user_ref']: row for row in rows}

        recipients = []
        for ref in refs:
            row = profiles.get(ref)
            if row is None:
                recipients.append(Recipient(ref=ref))
            else:
                recipients.append(Recipient(
                    ref=ref,
                    name=row['name'],
                    email=row['email'],
                    telegram_id=row['telegram_id'],
                ))
        return recipients

    # ------------------------------------------------------------------

    def get_statistics(self) -> Dict:
        """
        통계 조회

        Returns:
            라이브 클래스 수, 상태별 세션 수, 발송된 리마인더 수
        """
        with self._lock:
            cursor = self.conn.cursor()

            cursor.execute('SELECT COUNT(*), COALESCE(SUM(is_active), 0) FROM live_classes')
            total_classes, active_classes = cursor.fetchone()

            cursor.execute('''
                SELECT status, COUNT(*)
                FROM class_sessions
                GROUP BY status
            ''')
            status_counts = dict(cursor.fetchall())

            cursor.execute('SELECT COUNT(*) FROM class_reminders')
            sent = cursor.fetchone()[0]

        return {
            'total_live_classes': total_classes,
            'active_live_classes': active_classes,
            'sessions_by_status': {
                status.value: status_counts.get(status.value, 0) for status in SessionStatus
            },
            'total_reminders_sent': sent,
        }

    def close(self):
        """DB 연결 종료"""
        with self._lock:
            self.conn.close()
        print("🔒 데이터베이스 연결 종료")


class _CursorMoved(Exception):
    """다른 실행이 이미 cycle_cursor 를 옮김"""


_db_instance = None


def get_db() -> ScheduleDB:
    """
    전역 DB 인스턴스 반환

    경로는 LIVEBOOTH_DB_PATH 설정을 따릅니다.
    """
    global _db_instance
    if _db_instance is None:
        from livebooth.config import get_config
        _db_instance = ScheduleDB(get_config().db_path)
    return _db_instance
