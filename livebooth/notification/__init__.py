"""
리마인더 알림 발송

채널(이메일/텔레그램) 선택과 메시지 작성은 이 패키지가 담당합니다.
"""

from .message import build_message
from .senders import (
    ConsoleSender,
    EmailSender,
    NotificationSender,
    RoutingSender,
    TelegramSender,
    build_sender,
)

__all__ = [
    'build_message',
    'build_sender',
    'ConsoleSender',
    'EmailSender',
    'NotificationSender',
    'RoutingSender',
    'TelegramSender',
]
