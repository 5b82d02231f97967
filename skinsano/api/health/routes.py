# skinsano/api/health/routes.py
from flask import Blueprint, jsonify, current_app

health_bp = Blueprint('health_bp', __name__)


@health_bp.route('/db', methods=['GET'])
def check_database():
    """
    저장소 연결 상태를 확인합니다.
    원격 저장소가 없거나 실패해도 로컬 저장소로 동작하므로 항상 200을 반환합니다.
    """
    store = current_app.services['analysis_store']
    report = store.test_connection()
    mode = "remote" if report.get("remote_ok") else "local"
    return jsonify({"success": True, "mode": mode, **report}), 200
