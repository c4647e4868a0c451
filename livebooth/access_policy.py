# livebooth/access_policy.py
"""
무료/유료 판정

카탈로그 항목의 ordinal_position 만으로 결정되는 순수 함수입니다.
세션 생성 시점뿐 아니라 미리보기/목록 화면에서도 그대로 호출할 수 있습니다.
"""

DEFAULT_FREE_THRESHOLD = 2


def is_free(ordinal_position: int, free_threshold: int = DEFAULT_FREE_THRESHOLD) -> bool:
    """
    무료 수업 여부

    Args:
        ordinal_position: 카탈로그 내 순서 (0부터 시작)
        free_threshold: 이 값 미만의 순서는 무료

    Returns:
        ordinal_position < free_threshold

    예시:
        is_free(0) -> True, is_free(1) -> True, is_free(2) -> False
    """
    return ordinal_position < free_threshold
