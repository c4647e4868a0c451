# livebooth/config.py
"""
라이브 부스 스케줄링 설정

환경 변수(.env 포함)에서 읽어오며, 없으면 기본값을 사용합니다.

기본값:
- 하루 3회 수업 (06:30 / 13:00 / 19:30)
- 미래 세션이 7일치 미만이면 30일치 연장
- 카탈로그 순환 길이 최대 5개
- ordinal_position 0, 1 은 무료 수업
- 리마인더: 24시간 / 2시간 / 1시간 / 30분 / 2분 전, 시작 시점 (±5분)
- 리마인더 스캔 4분 간격 (시작 알림 창 [T-5분, T] 보다 짧아야 함)
"""

import os
from dataclasses import dataclass, field
from datetime import time, timedelta
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from livebooth.errors import ConfigError
from livebooth.schemas import ReminderKind, ReminderRule, SessionSlot, SlotTime

load_dotenv()

DEFAULT_SLOT_TIMES = {
    SessionSlot.MORNING: "06:30",
    SessionSlot.AFTERNOON: "13:00",
    SessionSlot.EVENING: "19:30",
}

# (종류, 시작 전 분)
DEFAULT_REMINDER_OFFSETS: List[Tuple[ReminderKind, int]] = [
    (ReminderKind.BEFORE_24H, 24 * 60),
    (ReminderKind.BEFORE_2H, 2 * 60),
    (ReminderKind.BEFORE_1H, 60),
    (ReminderKind.BEFORE_30M, 30),
    (ReminderKind.BEFORE_2M, 2),
    (ReminderKind.CLASS_START, 0),
]


def parse_clock(value: str) -> time:
    """'HH:MM' 문자열을 time으로 변환"""
    try:
        hour, minute = value.strip().split(":")
        return time(int(hour), int(minute))
    except ValueError as e:
        raise ConfigError(f"시간 형식이 잘못되었습니다 (HH:MM): {value!r}") from e


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} 값은 정수여야 합니다: {raw!r}") from e


def _list_env(key: str) -> Tuple[str, ...]:
    """쉼표로 구분된 값 목록"""
    raw = os.getenv(key) or ""
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def default_slots() -> List[SlotTime]:
    return [SlotTime(slot, parse_clock(at)) for slot, at in DEFAULT_SLOT_TIMES.items()]


def default_reminder_rules(tolerance_minutes: int = 5) -> List[ReminderRule]:
    tolerance = timedelta(minutes=tolerance_minutes)
    return [
        ReminderRule(kind, timedelta(minutes=offset), tolerance)
        for kind, offset in DEFAULT_REMINDER_OFFSETS
    ]


@dataclass(frozen=True)
class ScheduleConfig:
    """스케줄 생성기 / 리마인더 스캐너 공통 설정"""

    slots: List[SlotTime] = field(default_factory=default_slots)
    low_water_mark_days: int = 7
    extension_length_days: int = 30
    min_cycle_length: int = 1
    max_cycle_length: int = 5
    free_threshold: int = 2
    default_capacity: Optional[int] = 25

    reminder_rules: List[ReminderRule] = field(default_factory=default_reminder_rules)
    lookahead_hours: int = 25
    scan_interval_minutes: int = 4
    extend_hour: int = 2

    # 저장소 / 트리거
    db_path: str = "livebooth.db"
    cron_secret: Optional[str] = None
    admin_token: Optional[str] = None
    app_url: str = "http://localhost:5000"

    # 알림 채널
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    telegram_group_ids: Tuple[str, ...] = ()
    email_api_url: Optional[str] = None

    @property
    def slots_per_day(self) -> int:
        return len(self.slots)

    @property
    def lookahead(self) -> timedelta:
        return timedelta(hours=self.lookahead_hours)

    @classmethod
    def from_env(cls) -> "ScheduleConfig":
        """환경 변수에서 설정 로드"""
        slots = [
            SlotTime(
                slot,
                parse_clock(os.getenv(f"LIVEBOOTH_{slot.name}_TIME", default)),
            )
            for slot, default in DEFAULT_SLOT_TIMES.items()
        ]
        tolerance = _int_env("LIVEBOOTH_REMINDER_TOLERANCE_MINUTES", 5)

        return cls(
            slots=slots,
            low_water_mark_days=_int_env("LIVEBOOTH_LOW_WATER_MARK_DAYS", 7),
            extension_length_days=_int_env("LIVEBOOTH_EXTENSION_DAYS", 30),
            min_cycle_length=_int_env("LIVEBOOTH_MIN_CYCLE_LENGTH", 1),
            max_cycle_length=_int_env("LIVEBOOTH_MAX_CYCLE_LENGTH", 5),
            free_threshold=_int_env("LIVEBOOTH_FREE_THRESHOLD", 2),
            default_capacity=_int_env("LIVEBOOTH_DEFAULT_CAPACITY", 25) or None,
            reminder_rules=default_reminder_rules(tolerance),
            lookahead_hours=_int_env("LIVEBOOTH_LOOKAHEAD_HOURS", 25),
            scan_interval_minutes=_int_env("LIVEBOOTH_SCAN_INTERVAL_MINUTES", 4),
            extend_hour=_int_env("LIVEBOOTH_EXTEND_HOUR", 2),
            db_path=os.getenv("LIVEBOOTH_DB_PATH", "livebooth.db"),
            cron_secret=os.getenv("CRON_SECRET") or None,
            admin_token=os.getenv("ADMIN_TOKEN") or None,
            app_url=os.getenv("APP_URL", "http://localhost:5000").rstrip("/"),
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
            telegram_chat_id=os.getenv("TELEGRAM_CHANNEL_ID") or None,
            telegram_group_ids=_list_env("TELEGRAM_GROUP_IDS"),
            email_api_url=os.getenv("EMAIL_API_URL") or None,
        )

    def validate(self) -> "ScheduleConfig":
        """
        설정값 검증

        리마인더마다 스캐너가 볼 수 있는 창은 스캔 주기보다 넓어야 합니다.
        스캔은 [now, now + lookahead) 만 읽으므로 offset 이 tolerance 보다 작으면
        창이 [0, offset + tolerance] 로 줄어듭니다 (class_start 는 [T-5분, T]).
        """
        if not self.slots:
            raise ConfigError("하루 세션 슬롯이 최소 1개 필요합니다")
        if len({s.slot for s in self.slots}) != len(self.slots):
            raise ConfigError("세션 슬롯이 중복되었습니다")

        for name in ("low_water_mark_days", "extension_length_days",
                     "min_cycle_length", "max_cycle_length",
                     "lookahead_hours", "scan_interval_minutes"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} 값은 양수여야 합니다")

        if self.min_cycle_length > self.max_cycle_length:
            raise ConfigError("min_cycle_length 가 max_cycle_length 보다 큽니다")
        if not 0 <= self.extend_hour <= 23:
            raise ConfigError("extend_hour 는 0~23 사이여야 합니다")

        scan_interval = timedelta(minutes=self.scan_interval_minutes)
        for rule in self.reminder_rules:
            if rule.scan_window <= scan_interval:
                raise ConfigError(
                    f"{rule.kind.value}: 발송 창({rule.scan_window})이 "
                    f"스캔 주기({scan_interval})보다 넓어야 합니다"
                )
            if rule.offset + rule.tolerance > self.lookahead:
                raise ConfigError(
                    f"{rule.kind.value}: lookahead({self.lookahead})가 "
                    f"리마인더 창을 포함하지 못합니다"
                )
        return self


_config: Optional[ScheduleConfig] = None


def get_config() -> ScheduleConfig:
    """전역 설정 인스턴스 반환"""
    global _config
    if _config is None:
        _config = ScheduleConfig.from_env().validate()
    return _config
