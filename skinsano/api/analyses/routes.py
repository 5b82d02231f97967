# skinsano/api/analyses/routes.py
import logging
import uuid
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from skinsano.api.analyses.schemas import (
    AnalysisCreateSchema,
    AnalysisListQuerySchema,
    AnalysisResponseSchema,
    UsageQuerySchema,
    UsageResponseSchema
)
from skinsano.core.exceptions import (
    AnalysisError, AnalysisNotFoundError, InvalidInputError, PersistenceUnavailableError, QuotaExceededError
)

analyses_bp = Blueprint('analyses_bp', __name__)

_STATUS_BY_ERROR = (
    (InvalidInputError, 400),
    (QuotaExceededError, 403),
    (AnalysisNotFoundError, 404),
    (PersistenceUnavailableError, 503),
)


def _error_response(err: AnalysisError):
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(err, error_type):
            body = {"error_code": err.error_code, "message": str(err)}
            if isinstance(err, QuotaExceededError):
                body.update({"used": err.used, "limit": err.limit})
            return jsonify(body), status
    logging.error(f"처리되지 않은 분석 오류: {err}", exc_info=True)
    return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "분석 처리 중 오류가 발생했습니다."}), 500


def _resolve_owner(requested_owner):
    """로그인 토큰의 사용자 ID가 우선이며, 없으면 요청값을 사용합니다."""
    return get_jwt_identity() or requested_owner


@analyses_bp.route('/', methods=['POST'])
@jwt_required(optional=True)
def create_analysis():
    """
    증상 설명으로 피부 분석을 요청합니다.
    - AI 호출이 실패해도 키워드 분류 결과로 완료된 기록을 201과 함께 반환합니다.
    - 로그인하지 않은 요청은 owner 값 또는 새로 생성한 게스트 ID로 처리합니다.
    """
    service = current_app.services['analyses']
    try:
        data = AnalysisCreateSchema().load(request.get_json(silent=True) or {})
        owner = _resolve_owner(data.get('owner')) or f"guest-{uuid.uuid4().hex[:12]}"

        record = service.submit(
            owner=owner,
            symptoms=data['symptoms'],
            tier=data['tier'],
            image_count=data['image_count']
        )
        return jsonify(AnalysisResponseSchema().dump(record.to_dict())), 201

    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except AnalysisError as err:
        return _error_response(err)


@analyses_bp.route('/', methods=['GET'])
@jwt_required(optional=True)
def list_analyses():
    """
    사용자의 분석 기록을 최신순으로 조회합니다.

    쿼리 파라미터:
    - owner: 로그인하지 않은 경우 조회할 사용자(게스트) ID
    - limit: 조회 개수 (기본값 DEFAULT_LIST_LIMIT, 최대 MAX_LIST_LIMIT)
    """
    service = current_app.services['analyses']
    try:
        params = AnalysisListQuerySchema().load(request.args)
        owner = _resolve_owner(params.get('owner'))
        if not owner:
            return jsonify({"error_code": "VALIDATION_ERROR", "details": {"owner": ["사용자 ID가 필요합니다."]}}), 400

        limit = min(
            params.get('limit') or current_app.config['DEFAULT_LIST_LIMIT'],
            current_app.config['MAX_LIST_LIMIT']
        )
        records = service.list_by_owner(owner, limit)
        schema = AnalysisResponseSchema()
        return jsonify({"analyses": [schema.dump(r.to_dict()) for r in records]}), 200

    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except AnalysisError as err:
        return _error_response(err)


@analyses_bp.route('/usage', methods=['GET'])
@jwt_required(optional=True)
def get_usage():
    """무료 등급 분석 한도 사용 현황을 조회합니다."""
    service = current_app.services['analyses']
    try:
        params = UsageQuerySchema().load(request.args)
        owner = _resolve_owner(params.get('owner'))
        if not owner:
            return jsonify({"error_code": "VALIDATION_ERROR", "details": {"owner": ["사용자 ID가 필요합니다."]}}), 400

        quota = service.get_usage_quota(owner, params['tier'])
        return jsonify(UsageResponseSchema().dump({"owner": owner, **quota})), 200

    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except AnalysisError as err:
        return _error_response(err)


@analyses_bp.route('/<string:analysis_id>', methods=['GET'])
def get_analysis(analysis_id: str):
    """
    분석 기록 하나를 조회합니다. 처리 중인 기록은 status가 'pending'으로 반환됩니다.
    """
    service = current_app.services['analyses']
    try:
        record = service.get(analysis_id)
        return jsonify(AnalysisResponseSchema().dump(record.to_dict())), 200
    except AnalysisError as err:
        return _error_response(err)
