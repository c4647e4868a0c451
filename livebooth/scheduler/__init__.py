"""
라이브 부스 주기 실행 시스템

일정 연장과 리마인더 스캔을 서로 독립된 주기로 실행합니다.
"""

from .scheduler import LiveBoothScheduler, start_scheduler
from .jobs import run_extend_schedules, run_scan_reminders

__all__ = [
    'LiveBoothScheduler',
    'start_scheduler',
    'run_extend_schedules',
    'run_scan_reminders'
]
