# livebooth/scheduler/scheduler.py
"""
라이브 부스 스케줄러 메인 클래스

APScheduler로 두 작업을 서로 다른 주기로 실행합니다.
- 일정 연장: 매일 지정 시각 (시작 직후 1회 추가 실행)
- 리마인더 스캔: scan_interval_minutes 마다

각 작업은 max_instances=1 로 등록되어 같은 작업이 겹쳐 실행되지 않습니다.
"""

import atexit
import time
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from livebooth.config import ScheduleConfig, get_config


class LiveBoothScheduler:
    """
    라이브 부스 백그라운드 스케줄러

    - extend_schedules: 하루 1회, 클래스별 미래 세션 보충
    - scan_reminders: 수 분 간격, 발송 창에 들어온 리마인더 처리
    """

    EXTEND_JOB_ID = 'extend_schedules'
    SCAN_JOB_ID = 'scan_reminders'

    def __init__(self, test_mode: bool = False, interval_seconds: Optional[int] = None,
                 config: Optional[ScheduleConfig] = None):
        """
        Args:
            test_mode: True 이면 start() 가 두 작업을 한 번씩만 실행
            interval_seconds: 리마인더 스캔 간격 재정의 (초 단위, 디버깅용)
            config: 스케줄 설정 (없으면 환경 변수에서 로드)
        """
        self.config = config or get_config()
        self.test_mode = test_mode
        self.interval_seconds = interval_seconds
        self.scheduler = BackgroundScheduler()
        self.is_running = False

        atexit.register(self.shutdown)

    def _scan_trigger(self):
        if self.interval_seconds:
            print(f"🔧 디버깅 모드: 리마인더 스캔 {self.interval_seconds}초 간격\n")
            return IntervalTrigger(seconds=self.interval_seconds), '리마인더 스캔 (디버깅)'

        minutes = self.config.scan_interval_minutes
        return IntervalTrigger(minutes=minutes), f'리마인더 스캔 ({minutes}분 간격)'

    def start(self):
        """
        작업 등록 후 백그라운드 실행

        동작:
        - test_mode: run_once() 만 호출하고 반환
        - 기본: 일정 연장(CronTrigger, 등록 즉시 1회) + 리마인더 스캔(IntervalTrigger)
        """
        if self.test_mode:
            print("🧪 테스트 모드: 일정 연장 → 리마인더 스캔 1회 실행\n")
            self.run_once()
            return

        from .jobs import run_extend_schedules, run_scan_reminders

        extend_hour = self.config.extend_hour
        self.scheduler.add_job(
            run_extend_schedules,
            CronTrigger(hour=extend_hour, minute=0),
            id=self.EXTEND_JOB_ID,
            name=f'일정 연장 (매일 {extend_hour:02d}:00)',
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        scan_trigger, scan_name = self._scan_trigger()
        self.scheduler.add_job(
            run_scan_reminders,
            scan_trigger,
            id=self.SCAN_JOB_ID,
            name=scan_name,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self.scheduler.start()
        self.is_running = True

        print(f"✅ 라이브 부스 스케줄러 시작 (작업 {len(self.scheduler.get_jobs())}개)")
        self._print_jobs()

    def _print_jobs(self):
        for job in self.scheduler.get_jobs():
            next_run = job.next_run_time
            when = next_run.strftime('%Y-%m-%d %H:%M:%S') if next_run else '-'
            print(f"📅 {job.name}: 다음 실행 {when}")
        print()

    def shutdown(self):
        """실행 중인 작업이 끝날 때까지 기다린 뒤 종료 (atexit 에서도 호출)"""
        if not self.is_running:
            return

        print("\n🛑 라이브 부스 스케줄러 종료 중... (진행 중인 작업 대기)")
        self.scheduler.shutdown(wait=True)
        self.is_running = False
        print("✅ 종료 완료")

    def run_forever(self):
        """Ctrl+C 가 들어올 때까지 메인 스레드를 유지"""
        if not self.is_running:
            self.start()

        print("🔄 대기 중... (Ctrl+C로 종료)")
        print(f"{'='*60}\n")

        try:
            while self.is_running:
                time.sleep(1)
        except (KeyboardInterrupt, SystemExit):
            print("\n\n⚠️  종료 신호 수신")
            self.shutdown()

    def run_once(self) -> Dict:
        """두 작업을 순서대로 한 번씩 실행 (연장 결과가 스캔 대상에 반영됨)"""
        from .jobs import run_extend_schedules, run_scan_reminders

        extend_summary = run_extend_schedules()
        scan_summary = run_scan_reminders()
        return {'extend': extend_summary, 'scan': scan_summary}

    def get_status(self) -> Dict:
        """등록된 작업과 다음 실행 시각"""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, 'next_run_time', None)
            jobs.append({
                'id': job.id,
                'name': job.name,
                'trigger': str(job.trigger),
                'next_run_time': next_run.isoformat() if next_run else None,
            })

        return {
            'is_running': self.is_running,
            'job_count': len(jobs),
            'jobs': jobs,
        }


def start_scheduler(daemon: bool = True, test: bool = False, interval: Optional[int] = None,
                    config: Optional[ScheduleConfig] = None):
    """
    스케줄러 실행 헬퍼

    Args:
        daemon: True 이면 run_forever() 로 블로킹
        test: True 이면 두 작업을 1회 실행 후 반환
        interval: 리마인더 스캔 간격 (초, 디버깅용)

    Returns:
        daemon=False 일 때 실행 중인 LiveBoothScheduler, 그 외 None

    Example:
        start_scheduler()                       # 프로덕션
        start_scheduler(test=True)              # 1회 실행
        start_scheduler(interval=60)            # 스캔 1분 간격
    """
    scheduler = LiveBoothScheduler(test_mode=test, interval_seconds=interval, config=config)

    if test:
        scheduler.start()
        return None

    scheduler.start()
    if daemon:
        scheduler.run_forever()
        return None
    return scheduler
