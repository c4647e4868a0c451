# livebooth/notification/message.py
"""
리마인더 메시지 작성

세션 정보(클래스 제목, 레슨 제목, 슬롯, 시각, 입장 링크)로
채널에 관계없이 쓸 수 있는 제목/본문 텍스트를 만듭니다.
"""

from typing import Tuple

from livebooth.schemas import ReminderKind, SessionContext, SessionSlot

SLOT_EMOJI = {
    SessionSlot.MORNING: "🌅",
    SessionSlot.AFTERNOON: "☀️",
    SessionSlot.EVENING: "🌙",
}

SLOT_LABEL = {
    SessionSlot.MORNING: "오전",
    SessionSlot.AFTERNOON: "오후",
    SessionSlot.EVENING: "저녁",
}

TIME_LABEL = {
    ReminderKind.BEFORE_24H: "24시간",
    ReminderKind.BEFORE_2H: "2시간",
    ReminderKind.BEFORE_1H: "1시간",
    ReminderKind.BEFORE_30M: "30분",
    ReminderKind.BEFORE_2M: "2분",
}

WEEKDAY_LABEL = ["월", "화", "수", "목", "금", "토", "일"]


def format_session_time(context: SessionContext) -> Tuple[str, str]:
    """(날짜 문자열, 시각 문자열) 예: ('2026-10-20 (화)', '19:30')"""
    dt = context.scheduled_datetime
    day = f"{dt.strftime('%Y-%m-%d')} ({WEEKDAY_LABEL[dt.weekday()]})"
    return day, dt.strftime('%H:%M')


def build_message(kind: ReminderKind, context: SessionContext) -> Tuple[str, str]:
    """
    리마인더 제목과 본문 생성

    Args:
        kind: 리마인더 종류
        context: 세션 정보

    Returns:
        (title, body)
    """
    emoji = SLOT_EMOJI.get(context.session_slot, "📚")
    slot_label = SLOT_LABEL.get(context.session_slot, context.session_slot.value)
    day, clock = format_session_time(context)

    if kind is ReminderKind.CLASS_START:
        title = f"🎉 수업이 지금 시작합니다! - {context.class_title}"
        body = (
            f"📚 {context.class_title}\n"
            f"📖 {context.lesson_title}\n"
            f"{emoji} {slot_label} 세션\n"
            f"🕐 {clock}\n\n"
            f"👉 지금 입장하기: {context.join_url}"
        )
        return title, body

    time_label = TIME_LABEL[kind]
    title = f"⏰ 수업 {time_label} 전 알림 - {context.class_title}"
    body = (
        f"📚 {context.class_title}\n"
        f"📖 {context.lesson_title}\n"
        f"{emoji} {slot_label} 세션\n"
        f"📅 {day}\n"
        f"🕐 {clock}\n\n"
        f"👉 입장 링크: {context.join_url}"
    )
    return title, body
