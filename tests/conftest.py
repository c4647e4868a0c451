import sqlite3
from datetime import datetime

import pytest

from livebooth.config import ScheduleConfig
from livebooth.database import ScheduleDB
from livebooth.errors import NotificationError

NOW = datetime(2026, 10, 19, 12, 0)


@pytest.fixture
def db(tmp_path):
    database = ScheduleDB(str(tmp_path / "test_livebooth.db"))
    yield database
    try:
        database.close()
    except sqlite3.ProgrammingError:
        pass


@pytest.fixture
def config():
    return ScheduleConfig()


def add_catalog(db, source_ref, size, prefix="lesson"):
    """ordinal_position 0..size-1 인 카탈로그 생성"""
    for i in range(size):
        db.add_content_item(source_ref, f"{prefix}-{i}", i, f"{prefix.title()} {i}")


class FakeSender:
    """발송 호출을 기록하는 테스트용 발송기"""

    def __init__(self, failing=(), raising=(), broadcast=()):
        self.calls = []
        self.broadcast = list(broadcast)
        self.failing = set(failing)
        self.raising = set(raising)

    def send(self, recipient, kind, context):
        self.calls.append((recipient.ref, kind, context.session_id))
        if recipient.ref in self.raising:
            raise NotificationError("channel down")
        return recipient.ref not in self.failing

    def targets(self, kind, recipients):
        return list(recipients) + list(self.broadcast)


class FakeResponse:
    def __init__(self, payload, ok=True):
        self.payload = payload
        self.ok = ok

    def json(self):
        return self.payload


class FakeHttpSession:
    """requests.Session 대역: post 호출을 기록"""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json))
        if self.error:
            raise self.error
        return self.response
