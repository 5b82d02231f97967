# skinsano/core/exceptions.py
"""
분석 도메인에서 사용하는 예외 계층.

- InvalidInputError, QuotaExceededError, AnalysisNotFoundError,
  PersistenceUnavailableError: 호출자(API 계층)까지 전달됩니다.
- ProviderUnavailableError, ResponseParseError: 오케스트레이터 내부에서만
  사용되며, 항상 키워드 분류기 결과로 대체됩니다.
"""
from typing import Optional


class AnalysisError(Exception):
    """분석 도메인 예외의 기반 클래스."""
    error_code = "ANALYSIS_ERROR"


class InvalidInputError(AnalysisError):
    error_code = "VALIDATION_ERROR"


class QuotaExceededError(AnalysisError):
    """무료 등급 사용자가 분석 한도에 도달했을 때 발생합니다."""
    error_code = "QUOTA_EXCEEDED"

    def __init__(self, used: int, limit: int):
        self.used = used
        self.limit = limit
        super().__init__(
            f"Scan limit reached. You have used {used}/{limit} free scans. "
            "Upgrade to Premium for unlimited scans."
        )


class AnalysisNotFoundError(AnalysisError):
    error_code = "ANALYSIS_NOT_FOUND"


class PersistenceUnavailableError(AnalysisError):
    """원격 저장소와 로컬 저장소 모두 실패한 경우에만 발생합니다."""
    error_code = "PERSISTENCE_UNAVAILABLE"


class ProviderUnavailableError(AnalysisError):
    """AI 공급자 인증 정보가 없거나 호출이 실패(네트워크, 타임아웃)한 경우."""
    error_code = "PROVIDER_UNAVAILABLE"

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.cause = cause
        super().__init__(message)


class ResponseParseError(AnalysisError):
    """AI 응답에서 JSON 객체를 추출하거나 디코딩하지 못한 경우."""
    error_code = "RESPONSE_PARSE_ERROR"
