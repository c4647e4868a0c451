#!/usr/bin/env python3
# web/web_server.py
"""
라이브 부스 웹 서버 실행 스크립트

외부 cron(예: 4분마다 scan-reminders, 하루 1회 extend-schedules)이
호출할 트리거 엔드포인트와 관리자 API를 띄웁니다.

사용법:
    livebooth-web
    python -m web.web_server --port 8080
"""

import argparse
import sys
import traceback

from web.app import app

ROUTES = [
    ("POST", "/api/cron/extend-schedules", "일정 연장"),
    ("POST", "/api/cron/scan-reminders", "리마인더 스캔"),
    ("POST", "/api/admin/live-booth/convert-course", "코스 전환"),
    ("POST", "/api/admin/live-booth/create-standalone", "단독 클래스 생성"),
    ("POST", "/api/admin/live-booth/toggle-active", "활성 전환"),
    ("POST", "/api/admin/live-booth/start-session", "세션 시작"),
    ("POST", "/api/admin/live-booth/complete-session", "세션 완료"),
    ("GET", "/api/live-classes/free-sessions", "무료 세션 목록"),
    ("GET", "/api/live-classes/session/<int:session_id>", "세션 조회"),
]


def main():
    parser = argparse.ArgumentParser(
        description="라이브 부스 웹 서버 (cron 트리거 / 관리자 API)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
cron 예시:
  */4 * * * * curl -X POST -H "Authorization: Bearer $CRON_SECRET" \\
      http://localhost:5000/api/cron/scan-reminders
        """
    )
    parser.add_argument('--port', type=int, default=5000, help='포트 (기본: 5000)')
    parser.add_argument('--host', default='0.0.0.0', help='호스트 (기본: 0.0.0.0)')
    parser.add_argument('--debug', action='store_true', help='Flask 디버그 모드')
    args = parser.parse_args()

    print("=" * 60)
    print("🎓 라이브 부스 웹 서버")
    print("=" * 60)
    print(f"📍 http://localhost:{args.port}")
    for method, path, label in ROUTES:
        print(f"🔗 {method:<4} {path}  ({label})")
    print()

    try:
        app.run(debug=args.debug, host=args.host, port=args.port)
    except KeyboardInterrupt:
        print("\n\n👋 웹 서버 종료")
    except Exception as e:
        print(f"\n❌ 웹 서버 오류: {e}")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
