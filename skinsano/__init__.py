# skinsano/__init__.py

# =====================================================================================
# 1. 환경 변수 로드 (가장 먼저 실행)
# =====================================================================================
from dotenv import load_dotenv
load_dotenv()

# =====================================================================================
# 2. 모듈 임포트 (Module Imports)
# =====================================================================================
import os
import logging
from typing import Optional
from flask import Flask, jsonify
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
import firebase_admin
from firebase_admin import credentials

# - 설정
from skinsano.core.config import config_by_name

# - API 블루프린트
from skinsano.api.analyses.routes import analyses_bp
from skinsano.api.health.routes import health_bp

# - 서비스 모듈
from skinsano.services.openai_service import OpenAIService
from skinsano.services.analysis_store import AnalysisStore
from skinsano.services.firestore_service import FirestoreAnalysisRepository
from skinsano.api.analyses.services import AnalysisService


def _init_firebase(app: Flask) -> bool:
    """
    Firebase 인증 파일이 있으면 초기화합니다.
    없으면 False를 반환하며, 이 경우 분석 기록은 프로세스 내부 저장소에만 보관됩니다.
    """
    if firebase_admin._apps:
        return True

    cred_path = app.config.get('FIREBASE_CREDENTIALS_PATH')
    if not cred_path or not os.path.exists(cred_path):
        logging.warning(f"Firebase 인증 파일을 찾을 수 없어 로컬 저장소 모드로 실행합니다: {cred_path}")
        return False

    try:
        firebase_admin.initialize_app(credentials.Certificate(cred_path))
        return True
    except (ValueError, OSError) as e:
        logging.error(f"Firebase 초기화 실패, 로컬 저장소 모드로 실행합니다: {e}", exc_info=True)
        return False


def create_app(config_name: Optional[str] = None):
    """
    Flask 애플리케이션 팩토리 함수.
    """
    # =====================================================================================
    # 3. Flask 앱 생성 및 기본 설정
    # =====================================================================================
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.json.ensure_ascii = False

    if not app.debug and not app.testing:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    # =====================================================================================
    # 4. 확장 기능 및 외부 서비스 초기화
    # =====================================================================================
    JWTManager(app)
    firebase_ready = _init_firebase(app)

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {}

    openai_instance = OpenAIService()
    openai_instance.init_app(app)
    app.services['openai'] = openai_instance

    remote_repository = None
    if firebase_ready:
        try:
            remote_repository = FirestoreAnalysisRepository(collection_name=app.config['ANALYSES_COLLECTION'])
        except Exception as e:
            logging.warning(f"Firestore 클라이언트 생성 실패, 로컬 저장소 모드로 실행합니다: {e}")
    app.services['analysis_store'] = AnalysisStore(remote=remote_repository)

    app.services['analyses'] = AnalysisService(
        store=app.services['analysis_store'],
        ai_service=app.services['openai'],
        free_tier_limit=app.config['FREE_TIER_SCAN_LIMIT'],
        min_symptoms_length=app.config['MIN_SYMPTOMS_LENGTH']
    )
    logging.info("Analysis service initialized successfully")

    # =====================================================================================
    # 6. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(analyses_bp, url_prefix='/api/analyses')
    app.register_blueprint(health_bp, url_prefix='/api/health')

    # =====================================================================================
    # 7. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err):
        response = {"error_code": "VALIDATION_ERROR", "details": err.messages}
        return jsonify(response), 400

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        # 라우팅 오류(404, 405 등)는 Flask 기본 응답을 유지
        if isinstance(err, HTTPException):
            return err
        # 다른 핸들러에서 처리되지 않은 모든 예외를 여기서 처리
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        response = {"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부에서 예상치 못한 오류가 발생했습니다."}
        return jsonify(response), 500

    logging.info(f"Flask app created for '{config_name}' environment.")

    return app
