# livebooth/notification/senders.py
"""
알림 발송기

수신자 1명에게 메시지 1건을 보내고 성공 여부를 반환합니다.
채널 API 호출이 실패하면 NotificationError 를 던집니다.
어떤 리마인더 종류를 어떤 채널로 보낼지는 RoutingSender 가 결정하며,
리마인더 스캐너는 채널을 알지 못합니다.

발송 대상은 targets() 로 정합니다.
- 권한이 있는 사용자 중 해당 채널 주소가 있는 사람
- 채널/그룹 공지: (세션, 종류)마다 한 번, ref 는 "telegram:<chat_id>"

채널:
- 이메일: 24시간 / 2시간 전 (플랫폼 이메일 API)
- 텔레그램: 1시간 / 30분 / 2분 전, 시작 알림 (Bot API)
  공지 채널(TELEGRAM_CHANNEL_ID)에는 모든 텔레그램 알림을,
  그룹(TELEGRAM_GROUP_IDS)에는 시작 알림만 보냅니다.
"""

from typing import Dict, List, Optional, Protocol, Sequence

import requests

from livebooth.config import ScheduleConfig
from livebooth.errors import NotificationError
from livebooth.notification.message import build_message
from livebooth.schemas import Recipient, ReminderKind, SessionContext

TELEGRAM_API = "https://api.telegram.org"
BROADCAST_PREFIX = "telegram:"

EMAIL_KINDS = (ReminderKind.BEFORE_24H, ReminderKind.BEFORE_2H)
TELEGRAM_KINDS = (
    ReminderKind.BEFORE_1H,
    ReminderKind.BEFORE_30M,
    ReminderKind.BEFORE_2M,
    ReminderKind.CLASS_START,
)


def broadcast_recipient(chat_id: str) -> Recipient:
    return Recipient(ref=f"{BROADCAST_PREFIX}{chat_id}", telegram_id=chat_id)


class NotificationSender(Protocol):
    def targets(self, kind: ReminderKind, recipients: Sequence[Recipient]) -> List[Recipient]:
        """이 종류의 알림을 실제로 받을 대상 (공지 채널 포함)"""
        ...

    def send(self, recipient: Recipient, kind: ReminderKind, context: SessionContext) -> bool:
        """발송 성공 시 True"""
        ...


class ConsoleSender:
    """로컬 실행용: 메시지를 콘솔에 출력"""

    def targets(self, kind: ReminderKind, recipients: Sequence[Recipient]) -> List[Recipient]:
        return list(recipients)

    def send(self, recipient: Recipient, kind: ReminderKind, context: SessionContext) -> bool:
        title, body = build_message(kind, context)
        print(f"📤 [{kind.value}] → {recipient.ref}")
        print(f"   제목: {title}")
        print(f"   내용: {body[:100]}...")
        return True


class TelegramSender:
    """
    텔레그램 Bot API 발송기

    telegram_id 가 있는 수강생에게는 개인 메시지를 보내고,
    공지 채널과 그룹에는 (세션, 종류)마다 한 번만 보냅니다.
    """

    def __init__(self, bot_token: str, chat_id: Optional[str] = None,
                 group_ids: Sequence[str] = (), timeout: int = 10,
                 session: Optional[requests.Session] = None):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.group_ids = tuple(group_ids)
        self.timeout = timeout
        self.session = session or requests.Session()

    def broadcast_targets(self, kind: ReminderKind) -> List[Recipient]:
        chats = [self.chat_id] if self.chat_id else []
        if kind is ReminderKind.CLASS_START:
            chats.extend(g for g in self.group_ids if g not in chats)
        return [broadcast_recipient(chat) for chat in chats]

    def targets(self, kind: ReminderKind, recipients: Sequence[Recipient]) -> List[Recipient]:
        direct = [r for r in recipients if r.telegram_id]
        return direct + self.broadcast_targets(kind)

    def send(self, recipient: Recipient, kind: ReminderKind, context: SessionContext) -> bool:
        if not recipient.telegram_id:
            print(f"⚠️  텔레그램 ID 없음: {recipient.ref}")
            return False

        title, body = build_message(kind, context)
        try:
            response = self.session.post(
                f"{TELEGRAM_API}/bot{self.bot_token}/sendMessage",
                json={
                    "chat_id": recipient.telegram_id,
                    "text": f"{title}\n\n{body}",
                    "disable_web_page_preview": False,
                },
                timeout=self.timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise NotificationError(f"텔레그램 발송 실패 ({recipient.ref}): {e}") from e

        if response.ok and data.get("ok"):
            return True

        raise NotificationError(
            f"텔레그램 API 오류 ({recipient.ref}): {data.get('description', 'Unknown error')}"
        )


class EmailSender:
    """플랫폼 이메일 API(/api/send-email 형식) 발송기"""

    def __init__(self, api_url: str, timeout: int = 10,
                 session: Optional[requests.Session] = None):
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def targets(self, kind: ReminderKind, recipients: Sequence[Recipient]) -> List[Recipient]:
        return [r for r in recipients if r.email]

    def send(self, recipient: Recipient, kind: ReminderKind, context: SessionContext) -> bool:
        if not recipient.email:
            print(f"⚠️  이메일 주소 없음: {recipient.ref}")
            return False

        title, body = build_message(kind, context)
        greeting = f"{recipient.name or '수강생'}님, 안녕하세요.\n\n"
        try:
            response = self.session.post(
                self.api_url,
                json={"to": recipient.email, "subject": title, "text": greeting + body},
                timeout=self.timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise NotificationError(f"이메일 발송 실패 ({recipient.email}): {e}") from e

        if response.ok and data.get("success"):
            return True

        raise NotificationError(
            f"이메일 API 오류 ({recipient.email}): {data.get('error', 'Unknown error')}"
        )


class RoutingSender:
    """리마인더 종류별로 채널 발송기를 선택"""

    def __init__(self, routes: Dict[ReminderKind, NotificationSender],
                 default: Optional[NotificationSender] = None):
        self.routes = dict(routes)
        self.default = default

    def _route(self, kind: ReminderKind) -> Optional[NotificationSender]:
        return self.routes.get(kind, self.default)

    def targets(self, kind: ReminderKind, recipients: Sequence[Recipient]) -> List[Recipient]:
        sender = self._route(kind)
        if sender is None:
            print(f"⚠️  {kind.value}: 발송 채널이 설정되지 않았습니다")
            return []
        return sender.targets(kind, recipients)

    def send(self, recipient: Recipient, kind: ReminderKind, context: SessionContext) -> bool:
        sender = self._route(kind)
        if sender is None:
            print(f"⚠️  {kind.value}: 발송 채널이 설정되지 않았습니다")
            return False
        return sender.send(recipient, kind, context)


def build_sender(config: ScheduleConfig) -> NotificationSender:
    """
    설정에 맞는 발송기 구성

    채널 설정이 하나도 없으면 콘솔 출력으로 대체합니다.
    """
    console = ConsoleSender()
    routes: Dict[ReminderKind, NotificationSender] = {}

    if config.email_api_url:
        email = EmailSender(config.email_api_url)
        routes.update({kind: email for kind in EMAIL_KINDS})

    if config.telegram_bot_token:
        telegram = TelegramSender(
            config.telegram_bot_token,
            chat_id=config.telegram_chat_id,
            group_ids=config.telegram_group_ids,
        )
        routes.update({kind: telegram for kind in TELEGRAM_KINDS})

    if not routes:
        return console
    return RoutingSender(routes, default=console)
