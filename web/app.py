# web/app.py
"""
라이브 부스 웹 서버 메인 앱

- 외부 cron 이 호출하는 트리거 엔드포인트 (일정 연장 / 리마인더 스캔)
- 관리자 엔드포인트 (코스 전환, 단독 클래스 생성, 활성 전환, 세션 시작/완료)
- 공개 무료 세션 목록 / 세션 단건 조회 (유료 세션은 403)
"""

import hmac
from datetime import datetime

from flask import Flask, current_app, jsonify, request

from livebooth.config import get_config
from livebooth.database import get_db
from livebooth.errors import (
    AccessDeniedError,
    CatalogEmptyError,
    InvalidTransitionError,
    LiveClassExistsError,
    NotFoundError,
    StoreUnavailableError,
)
from livebooth.generator import extend_schedules
from livebooth.live_classes import (
    complete_session,
    convert_course,
    create_standalone,
    get_public_session,
    list_free_sessions,
    set_active,
    start_session,
)
from livebooth.notification import build_sender
from livebooth.reminders import scan_reminders

app = Flask(__name__)
app.json.ensure_ascii = False  # 한글 JSON 응답 지원


# ------------------------------------------------------------------
# 의존성 (테스트에서는 app.config 로 교체)
# ------------------------------------------------------------------

def _db():
    return current_app.config.get('LIVEBOOTH_DB') or get_db()


def _config():
    return current_app.config.get('LIVEBOOTH_CONFIG') or get_config()


def _sender():
    """발송기는 처음 요청 때 한 번 만들어 재사용 (HTTP 세션 포함)"""
    sender = current_app.config.get('LIVEBOOTH_SENDER')
    if sender is None:
        sender = build_sender(_config())
        current_app.config['LIVEBOOTH_SENDER'] = sender
    return sender


def _now():
    clock = current_app.config.get('LIVEBOOTH_CLOCK')
    return clock() if clock else datetime.now()


def _bearer_matches(secret: str) -> bool:
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return False
    token = auth_header[len('Bearer '):]
    return hmac.compare_digest(token.encode(), secret.encode())


def _cron_authorized() -> bool:
    """CRON_SECRET 이 없으면 (로컬 테스트) 누구나 호출 가능"""
    secret = _config().cron_secret
    if not secret:
        return True
    return _bearer_matches(secret)


def _admin_authorized() -> bool:
    token = _config().admin_token
    return bool(token) and _bearer_matches(token)


def _error(message: str, status: int):
    return jsonify({'success': False, 'message': message}), status


# ------------------------------------------------------------------
# 트리거 엔드포인트
# ------------------------------------------------------------------

@app.route('/api/cron/extend-schedules', methods=['POST'])
def cron_extend_schedules():
    """
    일정 연장 트리거

    Returns:
        {"success": true, "message": "...", "summary": {...}}
    """
    if not _cron_authorized():
        return _error('Unauthorized', 401)

    try:
        summary = extend_schedules(db=_db(), now=_now(), config=_config())
    except StoreUnavailableError as e:
        print(f"❌ 일정 연장 실패: {e}")
        return _error('Schedule store unavailable', 503)

    return jsonify({
        'success': True,
        'message': 'Scheduling completed',
        'summary': summary,
    })


@app.route('/api/cron/scan-reminders', methods=['POST'])
def cron_scan_reminders():
    """리마인더 스캔 트리거"""
    if not _cron_authorized():
        return _error('Unauthorized', 401)

    try:
        summary = scan_reminders(db=_db(), sender=_sender(), now=_now(), config=_config())
    except StoreUnavailableError as e:
        print(f"❌ 리마인더 스캔 실패: {e}")
        return _error('Schedule store unavailable', 503)

    return jsonify({
        'success': True,
        'message': 'Reminders processed',
        'summary': summary,
    })


# ------------------------------------------------------------------
# 관리자 엔드포인트
# ------------------------------------------------------------------

@app.route('/api/admin/live-booth/convert-course', methods=['POST'])
def admin_convert_course():
    if not _admin_authorized():
        return _error('Forbidden - Admin access required', 403)

    body = request.get_json(silent=True) or {}
    course_id = body.get('courseId')
    if not course_id:
        return _error('Course ID is required', 400)

    try:
        result = convert_course(_db(), str(course_id), title=body.get('title'),
                                now=_now(), config=_config())
    except LiveClassExistsError as e:
        return jsonify({
            'success': False,
            'message': 'Course already converted to Live Booth',
            'liveClassId': e.live_class_id,
        }), 400
    except CatalogEmptyError:
        return _error('Course has no lessons', 400)
    except Exception as e:
        print(f"❌ 코스 전환 실패: {e}")
        return _error('Error scheduling classes', 500)

    return jsonify({
        'success': True,
        'message': 'Course converted to Live Booth successfully',
        'data': result,
    })


@app.route('/api/admin/live-booth/create-standalone', methods=['POST'])
def admin_create_standalone():
    if not _admin_authorized():
        return _error('Forbidden - Admin access required', 403)

    body = request.get_json(silent=True) or {}
    title = (body.get('title') or '').strip()
    video_ref = body.get('videoRef') or body.get('videoUrl')
    if not title:
        return _error('Title is required', 400)
    if not video_ref:
        return _error('Video reference is required', 400)

    try:
        result = create_standalone(_db(), title, video_ref, now=_now(), config=_config())
    except LiveClassExistsError as e:
        return jsonify({
            'success': False,
            'message': 'Standalone live class already exists',
            'liveClassId': e.live_class_id,
        }), 400
    except Exception as e:
        print(f"❌ 단독 클래스 생성 실패: {e}")
        return _error('Error creating class sessions', 500)

    return jsonify({
        'success': True,
        'message': 'Standalone live class created successfully',
        'data': result,
    })


@app.route('/api/admin/live-booth/toggle-active', methods=['POST'])
def admin_toggle_active():
    if not _admin_authorized():
        return _error('Forbidden - Admin access required', 403)

    body = request.get_json(silent=True) or {}
    live_class_id = body.get('liveClassId')
    is_active = body.get('isActive')
    if not live_class_id:
        return _error('liveClassId is required', 400)
    if not isinstance(is_active, bool):
        return _error('isActive must be a boolean', 400)

    try:
        live_class = set_active(_db(), int(live_class_id), is_active)
    except NotFoundError as e:
        return _error(str(e), 404)

    return jsonify({
        'success': True,
        'message': 'Live class activated' if is_active else 'Live class deactivated',
        'data': {
            'id': live_class.id,
            'isActive': live_class.is_active,
            'cycleCursor': live_class.cycle_cursor,
        },
    })


def _session_transition(action):
    if not _admin_authorized():
        return _error('Forbidden - Admin access required', 403)

    body = request.get_json(silent=True) or {}
    session_id = body.get('sessionId') or body.get('classSessionId')
    if not session_id:
        return _error('Session ID is required', 400)

    try:
        session = action(_db(), int(session_id))
    except NotFoundError:
        return _error('Session not found', 404)
    except InvalidTransitionError as e:
        return _error(str(e), 409)

    return jsonify({
        'success': True,
        'data': {'id': session.id, 'status': session.status.value},
    })


@app.route('/api/admin/live-booth/start-session', methods=['POST'])
def admin_start_session():
    return _session_transition(start_session)


@app.route('/api/admin/live-booth/complete-session', methods=['POST'])
def admin_complete_session():
    return _session_transition(complete_session)


# ------------------------------------------------------------------
# 공개 엔드포인트
# ------------------------------------------------------------------

@app.route('/api/live-classes/free-sessions')
def public_free_sessions():
    """다가오는 무료 세션 목록"""
    sessions = list_free_sessions(_db(), now=_now())
    for session in sessions:
        session['is_free'] = bool(session['is_free'])
    return jsonify({'success': True, 'data': sessions, 'count': len(sessions)})


@app.route('/api/live-classes/session/<int:session_id>')
def public_session(session_id):
    """
    세션 단건 조회

    Returns:
        200 무료 세션 상세 / 403 유료 세션 / 404 없음 또는 비활성 클래스
    """
    try:
        session = get_public_session(_db(), session_id)
    except NotFoundError:
        return _error('Session not found', 404)
    except AccessDeniedError:
        return _error('This session requires authentication', 403)

    return jsonify({'success': True, 'data': session})



@app.route('/')
def index():
    """상태 확인"""
    return jsonify({'success': True, 'statistics': _db().get_statistics()})


if __name__ == '__main__':
    print("=" * 60)
    print("🎓 라이브 부스 웹 서버")
    print("=" * 60)
    print()
    print("📍 URL: http://localhost:5000")
    print()

    app.run(debug=True, host='0.0.0.0', port=5000)
