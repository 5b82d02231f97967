# skinsano/core/config.py

import os


def _env_int(key: str, default: int) -> int:
    """환경 변수를 정수로 읽습니다. 값이 없거나 잘못된 경우 기본값을 사용합니다."""
    try:
        return int(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # 인증 자체는 외부 ID 공급자가 담당하고, 여기서는 토큰 서명 검증에만 사용합니다.
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')

    # Firestore. 인증 파일이 없으면 저장소는 프로세스 내부 맵으로만 동작합니다.
    FIREBASE_CREDENTIALS_PATH = os.getenv('FIREBASE_CREDENTIALS_PATH')
    ANALYSES_COLLECTION = os.getenv('ANALYSES_COLLECTION', 'skin_analyses')

    # AI 텍스트 생성 공급자
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
    OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
    AI_TIMEOUT_SECONDS = _env_float('AI_TIMEOUT_SECONDS', 30.0)
    AI_MAX_RETRIES = _env_int('AI_MAX_RETRIES', 1)
    AI_MAX_OUTPUT_TOKENS = _env_int('AI_MAX_OUTPUT_TOKENS', 1500)
    AI_TEMPERATURE = _env_float('AI_TEMPERATURE', 0.3)

    # 분석 정책
    FREE_TIER_SCAN_LIMIT = _env_int('FREE_TIER_SCAN_LIMIT', 3)
    MIN_SYMPTOMS_LENGTH = _env_int('MIN_SYMPTOMS_LENGTH', 20)
    DEFAULT_LIST_LIMIT = _env_int('DEFAULT_LIST_LIMIT', 10)
    MAX_LIST_LIMIT = _env_int('MAX_LIST_LIMIT', 50)


class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True
    FIREBASE_CREDENTIALS_PATH = os.getenv('DEV_FIREBASE_CREDENTIALS_PATH', Config.FIREBASE_CREDENTIALS_PATH)


class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다. 외부 서비스는 모두 비활성화됩니다."""
    TESTING = True
    DEBUG = False
    JWT_SECRET_KEY = 'skinsano-testing-secret-key-0123456789'
    FIREBASE_CREDENTIALS_PATH = None
    OPENAI_API_KEY = None


class ProductionConfig(Config):
    DEBUG = False


config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    production=ProductionConfig
)
