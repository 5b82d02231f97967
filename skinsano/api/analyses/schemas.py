# skinsano/api/analyses/schemas.py
from marshmallow import Schema, fields, validate, post_load

TIER_CHOICES = ["free", "premium"]


class AnalysisCreateSchema(Schema):
    """
    POST /api/analyses
    분석 요청 데이터 형식을 정의합니다. 증상 최소 길이는 서비스 계층에서 검사합니다.
    """
    symptoms = fields.Str(
        required=True,
        validate=validate.Length(max=2000),
        error_messages={"required": "증상 설명은 필수입니다."}
    )
    tier = fields.Str(load_default="free", validate=validate.OneOf(TIER_CHOICES))
    image_count = fields.Int(load_default=None, allow_none=True, validate=validate.Range(min=0))
    image_urls = fields.List(fields.Str(), load_default=list)
    owner = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=128))

    @post_load
    def resolve_image_count(self, data, **kwargs):
        # image_count가 없으면 첨부된 이미지 URL 수를 사용합니다. 이미지 자체는 저장하지 않습니다.
        if data.get('image_count') is None:
            data['image_count'] = len(data.get('image_urls') or [])
        data.pop('image_urls', None)
        return data


class AnalysisListQuerySchema(Schema):
    """GET /api/analyses 쿼리 파라미터"""
    owner = fields.Str(load_default=None)
    limit = fields.Int(load_default=None, validate=validate.Range(min=1, max=100))


class UsageQuerySchema(Schema):
    """GET /api/analyses/usage 쿼리 파라미터"""
    owner = fields.Str(load_default=None)
    tier = fields.Str(load_default="free", validate=validate.OneOf(TIER_CHOICES))


class TreatmentPhaseSchema(Schema):
    phase = fields.Int(required=True)
    title = fields.Str(required=True)
    duration = fields.Str(required=True)
    treatments = fields.List(fields.Str(), required=True)


class AnalysisResponseSchema(Schema):
    """
    분석 기록 응답을 위한 최종 JSON 형식을 정의합니다.
    (생성, 단건 조회, 목록 조회 시 모두 이 스키마를 사용)
    """
    id = fields.Str(attribute="analysis_id", required=True)
    owner = fields.Str(required=True)
    symptoms = fields.Str(required=True)
    image_count = fields.Int(required=True)
    tier = fields.Str(required=True)
    status = fields.Str(required=True)
    condition = fields.Str(required=True)
    confidence = fields.Int(allow_none=True)
    severity = fields.Str(required=True)
    description = fields.Str(required=True)
    recommendations = fields.List(fields.Str())
    risk_factors = fields.List(fields.Str())
    visual_findings = fields.List(fields.Str())
    treatment_plan = fields.List(fields.Nested(TreatmentPhaseSchema), allow_none=True)
    source = fields.Str(allow_none=True)
    error_message = fields.Str(allow_none=True)
    created_at = fields.DateTime(required=True)
    updated_at = fields.DateTime(required=True)


class UsageResponseSchema(Schema):
    owner = fields.Str(required=True)
    tier = fields.Str(required=True)
    used = fields.Int(required=True)
    limit = fields.Int(allow_none=True)
    remaining = fields.Int(allow_none=True)
    can_scan = fields.Bool(required=True)
