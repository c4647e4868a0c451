# livebooth/errors.py
"""
라이브 부스 예외 계층

클래스 단위/수신자 단위로 복구 가능한 오류와
실행 전체를 중단시키는 오류(저장소 장애)를 구분합니다.
"""


class LiveBoothError(Exception):
    """모든 라이브 부스 오류의 기본 클래스"""


class ConfigError(LiveBoothError):
    """설정값이 잘못됨 (예: 허용 오차 창이 스캔 주기보다 짧음)"""


class StoreUnavailableError(LiveBoothError):
    """저장소를 읽을 수 없음 - 이번 실행만 중단하고 다음 트리거에서 재시도"""


class CatalogEmptyError(LiveBoothError):
    """콘텐츠 카탈로그가 비어 있음 - 해당 클래스만 건너뜀"""

    def __init__(self, content_source_ref: str):
        super().__init__(f"콘텐츠 카탈로그가 비어 있습니다: {content_source_ref}")
        self.content_source_ref = content_source_ref


class NotFoundError(LiveBoothError):
    pass


class LiveClassExistsError(LiveBoothError):
    def __init__(self, content_source_ref: str, live_class_id: int):
        super().__init__(
            f"이미 라이브 클래스로 전환됨: {content_source_ref} (ID: {live_class_id})"
        )
        self.content_source_ref = content_source_ref
        self.live_class_id = live_class_id


class InvalidTransitionError(LiveBoothError):
    pass


class AccessDeniedError(LiveBoothError):
    """유료 세션을 인증 없이 조회"""


class NotificationError(LiveBoothError):
    """알림 전송 실패 (수신자 단위로 처리)"""
