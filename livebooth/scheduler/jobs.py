# livebooth/scheduler/jobs.py
"""
스케줄링 작업 함수들

트리거(APScheduler / HTTP cron 엔드포인트)가 실행하는 작업을 정의합니다.
각 작업은 독립적으로 재실행해도 안전합니다.
"""

import traceback
from datetime import datetime
from typing import Optional

from livebooth.errors import LiveBoothError
from livebooth.schemas import ExtendSummary, ScanSummary


def run_extend_schedules(now: datetime = None) -> Optional[ExtendSummary]:
    """
    라이브 클래스 일정 연장 작업 (하루 1회)

    동작:
    1. 활성 라이브 클래스 조회
    2. 미래 세션이 부족한 클래스만 30일치 추가
    3. 결과 요약 출력

    Returns:
        실행 요약, 실행 전체가 실패하면 None
    """
    from livebooth.generator import extend_schedules

    now = now or datetime.now()
    print(f"\n{'='*60}")
    print(f"📅 일정 연장 작업 시작: {now.isoformat(timespec='seconds')}")
    print(f"{'='*60}\n")

    try:
        summary = extend_schedules(now=now)
    except LiveBoothError as e:
        print(f"❌ 일정 연장 중단: {e}")
        return None
    except Exception as e:
        print(f"❌ 일정 연장 중 오류: {e}")
        traceback.print_exc()
        return None

    print(f"\n{'='*60}")
    print(f"✅ 연장 완료: 클래스 {summary['classes_processed']}개 중 "
          f"{summary['classes_extended']}개 연장, {summary['classes_skipped']}개 스킵, "
          f"{summary['classes_failed']}개 실패 (세션 {summary['sessions_created']}개 생성)")
    print(f"{'='*60}\n")
    return summary


def run_scan_reminders(now: datetime = None) -> Optional[ScanSummary]:
    """
    리마인더 스캔 작업 (수 분 간격)

    Returns:
        실행 요약, 실행 전체가 실패하면 None
    """
    from livebooth.reminders import scan_reminders

    now = now or datetime.now()

    try:
        summary = scan_reminders(now=now)
    except LiveBoothError as e:
        print(f"❌ 리마인더 스캔 중단: {e}")
        return None
    except Exception as e:
        print(f"❌ 리마인더 스캔 중 오류: {e}")
        traceback.print_exc()
        return None

    if summary['due_pairs']:
        print(f"📬 리마인더 스캔 ({now.strftime('%H:%M')}): 발송 {summary['sent']}건, "
              f"스킵 {summary['skipped']}건, 실패 {summary['failed']}건")
    return summary
