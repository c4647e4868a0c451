#!/usr/bin/env python3
# scheduler_service.py
"""
라이브 부스 스케줄러 서비스

일정 연장(하루 1회)과 리마인더 스캔(수 분 간격)을 한 프로세스에서 실행합니다.
외부 cron 으로 돌리는 경우에는 web/web_server.py 의 트리거 엔드포인트를 사용하세요.

사용법:
    python3 scheduler_service.py                # 상시 실행
    python3 scheduler_service.py --test         # 두 작업 1회 실행 후 종료
    python3 scheduler_service.py --interval 30  # 리마인더 스캔 30초 간격
    python3 scheduler_service.py --stats        # DB 통계만 출력
"""

import argparse
import os
import sys
import traceback


def _print_stats():
    from livebooth.database import get_db

    stats = get_db().get_statistics()
    print(f"📊 라이브 클래스: {stats['total_live_classes']}개 "
          f"(활성 {stats['active_live_classes']}개)")
    for status, count in stats['sessions_by_status'].items():
        print(f"   - {status}: {count}개")
    print(f"📨 발송된 리마인더: {stats['total_reminders_sent']}건")


def main():
    parser = argparse.ArgumentParser(
        description="라이브 부스 스케줄러 서비스 (일정 연장 + 리마인더 스캔)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
환경 변수는 .env 에서도 읽습니다 (LIVEBOOTH_DB_PATH, TELEGRAM_BOT_TOKEN 등).

백그라운드 실행:
  $ nohup python3 scheduler_service.py > livebooth.log 2>&1 &
        """
    )
    parser.add_argument('--test', action='store_true',
                        help='일정 연장과 리마인더 스캔을 1회 실행하고 종료')
    parser.add_argument('--interval', type=int, metavar='SECONDS',
                        help='리마인더 스캔 간격 재정의 (초, 디버깅용)')
    parser.add_argument('--stats', action='store_true',
                        help='DB 통계 출력 후 종료')
    args = parser.parse_args()

    from livebooth.config import get_config
    from livebooth.errors import ConfigError

    try:
        config = get_config()
    except ConfigError as e:
        print(f"❌ 설정 오류: {e}")
        sys.exit(1)

    if not os.path.exists(config.db_path):
        print(f"⚠️  {config.db_path} 가 없어 새 DB를 만듭니다.\n")

    if args.stats:
        _print_stats()
        return

    from livebooth.scheduler import start_scheduler

    print("=" * 60)
    print("🚀 라이브 부스 스케줄러 서비스")
    print(f"   DB: {config.db_path} | 슬롯 {config.slots_per_day}개/일 | "
          f"스캔 {args.interval or config.scan_interval_minutes * 60}초 간격")
    print("=" * 60)
    print()

    try:
        start_scheduler(daemon=not args.test, test=args.test, interval=args.interval,
                        config=config)
    except KeyboardInterrupt:
        print("\n\n👋 사용자가 중지했습니다.")
    except Exception as e:
        print(f"\n❌ 스케줄러 오류: {e}")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
