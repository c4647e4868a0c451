"""
웹 엔드포인트 테스트 (Flask test client)
"""

import sqlite3

import pytest

from conftest import NOW, FakeSender, add_catalog
from livebooth.config import ScheduleConfig
from livebooth.notification import ConsoleSender
from web.app import app
from web.web_server import ROUTES

CRON = {"Authorization": "Bearer cron-secret"}
ADMIN = {"Authorization": "Bearer admin-token"}

INJECTED_KEYS = ('LIVEBOOTH_DB', 'LIVEBOOTH_CONFIG', 'LIVEBOOTH_SENDER', 'LIVEBOOTH_CLOCK')


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def make_client(db, sender):
    def _make(config):
        app.config.update(
            TESTING=True,
            LIVEBOOTH_DB=db,
            LIVEBOOTH_CONFIG=config,
            LIVEBOOTH_SENDER=sender,
            LIVEBOOTH_CLOCK=lambda: NOW,
        )
        return app.test_client()

    yield _make

    for key in INJECTED_KEYS:
        app.config.pop(key, None)


@pytest.fixture
def client(make_client):
    return make_client(ScheduleConfig(cron_secret="cron-secret", admin_token="admin-token"))


def test_cron_requires_secret(client):
    assert client.post('/api/cron/extend-schedules').status_code == 401
    assert client.post(
        '/api/cron/scan-reminders', headers={"Authorization": "Bearer wrong"}
    ).status_code == 401


def test_cron_open_without_secret(make_client):
    client = make_client(ScheduleConfig())
    assert client.post('/api/cron/scan-reminders').status_code == 200


def test_cron_extend_schedules(client, db):
    db.create_live_class("course-1")
    add_catalog(db, "course-1", 5)

    response = client.post('/api/cron/extend-schedules', headers=CRON)

    assert response.status_code == 200
    data = response.get_json()
    assert data['success'] is True
    assert data['summary']['sessions_created'] == 90


def test_cron_scan_reminders(client):
    response = client.post('/api/cron/scan-reminders', headers=CRON)

    assert response.status_code == 200
    assert response.get_json()['summary']['sent'] == 0


def test_cron_store_unavailable(client, db, monkeypatch):
    def broken():
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(db, "list_active_live_classes", broken)

    response = client.post('/api/cron/extend-schedules', headers=CRON)
    assert response.status_code == 503


def test_admin_requires_token(client, make_client):
    assert client.post('/api/admin/live-booth/convert-course',
                       json={"courseId": "course-1"}).status_code == 403

    no_token = make_client(ScheduleConfig())
    assert no_token.post('/api/admin/live-booth/convert-course',
                         json={"courseId": "course-1"}).status_code == 403


def test_admin_convert_course(client, db):
    add_catalog(db, "course-1", 3)

    response = client.post('/api/admin/live-booth/convert-course',
                           json={"courseId": "course-1", "title": "파이썬 라이브"},
                           headers=ADMIN)
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['sessions_created'] == 90
    assert data['total_lessons'] == 3

    again = client.post('/api/admin/live-booth/convert-course',
                        json={"courseId": "course-1"}, headers=ADMIN)
    assert again.status_code == 400
    assert again.get_json()['liveClassId'] == data['live_class_id']


def test_admin_convert_course_validation(client):
    assert client.post('/api/admin/live-booth/convert-course',
                       json={}, headers=ADMIN).status_code == 400
    assert client.post('/api/admin/live-booth/convert-course',
                       json={"courseId": "empty"}, headers=ADMIN).status_code == 400


def test_admin_create_standalone(client):
    response = client.post('/api/admin/live-booth/create-standalone',
                           json={"title": "특강", "videoUrl": "https://video/1"},
                           headers=ADMIN)
    assert response.status_code == 200
    assert response.get_json()['data']['sessions_created'] == 90

    missing = client.post('/api/admin/live-booth/create-standalone',
                          json={"title": "특강"}, headers=ADMIN)
    assert missing.status_code == 400


def test_admin_toggle_active(client, db):
    live_class_id = db.create_live_class("course-1")

    response = client.post('/api/admin/live-booth/toggle-active',
                           json={"liveClassId": live_class_id, "isActive": False},
                           headers=ADMIN)
    assert response.status_code == 200
    assert response.get_json()['data']['isActive'] is False

    assert client.post('/api/admin/live-booth/toggle-active',
                       json={"liveClassId": live_class_id, "isActive": "no"},
                       headers=ADMIN).status_code == 400
    assert client.post('/api/admin/live-booth/toggle-active',
                       json={"liveClassId": 9999, "isActive": True},
                       headers=ADMIN).status_code == 404


def test_admin_session_transitions(client, db):
    add_catalog(db, "course-1", 2)
    client.post('/api/admin/live-booth/convert-course',
                json={"courseId": "course-1"}, headers=ADMIN)
    session_id = db.list_sessions(db.find_live_class_by_source("course-1").id)[0].id

    early_complete = client.post('/api/admin/live-booth/complete-session',
                                 json={"sessionId": session_id}, headers=ADMIN)
    assert early_complete.status_code == 409

    started = client.post('/api/admin/live-booth/start-session',
                          json={"sessionId": session_id}, headers=ADMIN)
    assert started.get_json()['data']['status'] == "in_progress"

    completed = client.post('/api/admin/live-booth/complete-session',
                            json={"sessionId": session_id}, headers=ADMIN)
    assert completed.get_json()['data']['status'] == "completed"

    assert client.post('/api/admin/live-booth/start-session',
                       json={"sessionId": 9999}, headers=ADMIN).status_code == 404


def test_public_free_sessions(client, db):
    add_catalog(db, "course-1", 4)
    client.post('/api/admin/live-booth/convert-course',
                json={"courseId": "course-1"}, headers=ADMIN)

    response = client.get('/api/live-classes/free-sessions')

    assert response.status_code == 200
    data = response.get_json()
    # 4개 순환 중 무료 항목(0, 1)이 30일 중 16일, 하루 3회
    assert data['count'] == 48
    assert all(s['is_free'] is True for s in data['data'])


def test_index_statistics(client, db):
    db.create_live_class("course-1")

    response = client.get('/')

    assert response.get_json()['statistics']['total_live_classes'] == 1


def test_public_session(client, db):
    add_catalog(db, "course-1", 4)
    client.post('/api/admin/live-booth/convert-course',
                json={"courseId": "course-1", "title": "파이썬 라이브"}, headers=ADMIN)
    live_class = db.find_live_class_by_source("course-1")
    sessions = db.list_sessions(live_class.id)
    free = next(s for s in sessions if s.is_free)
    paid = next(s for s in sessions if not s.is_free)

    response = client.get(f'/api/live-classes/session/{free.id}')
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['id'] == free.id
    assert data['class_title'] == "파이썬 라이브"
    assert data['is_free'] is True

    denied = client.get(f'/api/live-classes/session/{paid.id}')
    assert denied.status_code == 403
    assert denied.get_json()['message'] == 'This session requires authentication'

    assert client.get('/api/live-classes/session/9999').status_code == 404

    db.set_live_class_active(live_class.id, False)
    assert client.get(f'/api/live-classes/session/{free.id}').status_code == 404


def test_scan_reuses_built_sender(client):
    """발송기를 주입하지 않으면 첫 스캔에서 만든 것을 계속 사용"""
    app.config.pop('LIVEBOOTH_SENDER')

    client.post('/api/cron/scan-reminders', headers=CRON)
    built = app.config['LIVEBOOTH_SENDER']
    client.post('/api/cron/scan-reminders', headers=CRON)

    assert isinstance(built, ConsoleSender)
    assert app.config['LIVEBOOTH_SENDER'] is built


def test_listed_routes_are_registered():
    registered = {
        (method, rule.rule)
        for rule in app.url_map.iter_rules()
        for method in rule.methods
    }
    for method, path, _ in ROUTES:
        assert (method, path) in registered
