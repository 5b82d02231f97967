# skinsano/api/analyses/test_services.py
"""
분석 오케스트레이터 테스트

AI 공급자는 가짜 객체로 대체하며, 저장소는 테스트마다 독립된 인스턴스를 사용합니다.
사용법: python -m pytest skinsano/api/analyses/test_services.py -v
"""
import json

import pytest

from skinsano.api.analyses.services import AnalysisService
from skinsano.core.exceptions import (
    AnalysisNotFoundError, InvalidInputError, PersistenceUnavailableError, ProviderUnavailableError,
    QuotaExceededError
)
from skinsano.models.analysis import PENDING_CONDITION, AnalysisSource, AnalysisStatus, AnalysisTier
from skinsano.services.analysis_store import AnalysisStore, InMemoryAnalysisRepository

SYMPTOMS = "I have itchy red patches on both of my elbows"


class FakeAIService:
    """고정된 응답을 반환하거나 지정된 예외를 발생시키는 가짜 AI 서비스."""

    def __init__(self, response=None, error=None, configured=True):
        self.response = response
        self.error = error
        self.is_configured = configured
        self.prompts = []

    def generate_analysis_text(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.response


class FailingUpdateLocal(InMemoryAnalysisRepository):
    """최초 저장은 성공하고 이후 저장은 모두 실패하는 로컬 저장소."""

    def __init__(self):
        super().__init__()
        self.writes = 0

    def put(self, record):
        self.writes += 1
        if self.writes > 1:
            raise MemoryError("local store exhausted")
        return super().put(record)


def _ai_payload(**overrides):
    data = {
        "condition": "Atopic Dermatitis",
        "confidence": 90,
        "severity": "moderate",
        "description": "Chronic itchy inflammation",
        "recommendations": ["Moisturize twice daily", "Consult a dermatologist"],
        "riskFactors": ["Family history"],
        "visualFindings": ["Erythematous patches"],
    }
    data.update(overrides)
    return "Sure! Here it is:\n```json\n" + json.dumps(data) + "\n```"


def _service(ai_service=None, store=None, limit=3):
    return AnalysisService(
        store=store or AnalysisStore(),
        ai_service=ai_service or FakeAIService(configured=False),
        free_tier_limit=limit,
        min_symptoms_length=20
    )


def _assert_completed_invariants(record):
    assert record.status == AnalysisStatus.COMPLETED
    assert 70 <= record.confidence <= 95
    assert record.recommendations
    assert record.risk_factors
    assert record.visual_findings
    assert (record.treatment_plan is not None) == (record.tier == AnalysisTier.PREMIUM)


def test_submit_with_ai_response():
    ai = FakeAIService(response=_ai_payload())
    record = _service(ai).submit("user-1", SYMPTOMS, "free", 1)
    _assert_completed_invariants(record)
    assert record.condition == "Atopic Dermatitis"
    assert record.confidence == 90
    assert record.source == AnalysisSource.AI
    assert "Provide a confidence level between 70 and 95" in ai.prompts[0]


def test_provider_network_error_falls_back_to_classifier():
    """네트워크 오류 시 키워드 분류기 결과(Eczema)가 fallback 출처로 저장되어야 함"""
    ai = FakeAIService(error=ProviderUnavailableError("timeout"))
    record = _service(ai).submit("user-1", SYMPTOMS, "free", 1)
    _assert_completed_invariants(record)
    assert record.condition == "Eczema"
    assert record.source == AnalysisSource.FALLBACK


def test_non_finite_phase_numbers_keep_ai_result():
    """단계 번호가 NaN/Infinity여도 AI 결과가 fallback으로 바뀌지 않아야 함"""
    for bad_number in (float("nan"), float("inf")):
        plan = [{"phase": bad_number, "title": "Calm", "duration": "2 weeks", "treatments": ["Emollients"]}]
        ai = FakeAIService(response=_ai_payload(treatmentPlan=plan))
        record = _service(ai).submit("user-1", SYMPTOMS, "premium", 0)
        _assert_completed_invariants(record)
        assert record.source == AnalysisSource.AI
        assert record.condition == "Atopic Dermatitis"
        assert record.treatment_plan[0].phase == 1
        assert record.treatment_plan[0].treatments == ["Emollients"]


def test_pending_record_is_readable_while_provider_runs():
    """AI 호출 중에도 처리 중(pending) 기록을 id로 조회할 수 있어야 함"""
    store = AnalysisStore()
    seen = []

    class ReadingAIService(FakeAIService):
        def generate_analysis_text(self, prompt):
            listed, error = store.list_by_owner("user-1")
            assert error is None
            seen.append(service.get(listed[0].analysis_id))
            return super().generate_analysis_text(prompt)

    service = _service(ReadingAIService(response=_ai_payload()), store=store)
    record = service.submit("user-1", SYMPTOMS, "free", 0)

    assert len(seen) == 1
    pending = seen[0]
    assert pending.analysis_id == record.analysis_id
    assert pending.status == AnalysisStatus.PENDING
    assert pending.condition == PENDING_CONDITION
    assert pending.source is None
    assert service.get(record.analysis_id).status == AnalysisStatus.COMPLETED


def test_unexpected_provider_exception_falls_back():
    ai = FakeAIService(error=RuntimeError("boom"))
    record = _service(ai).submit("user-1", SYMPTOMS, "free", 0)
    assert record.source == AnalysisSource.FALLBACK
    assert record.status == AnalysisStatus.COMPLETED


def test_missing_credentials_fall_back_without_calling_provider():
    ai = FakeAIService(configured=False)
    record = _service(ai).submit("user-1", SYMPTOMS, "free", 0)
    assert record.source == AnalysisSource.FALLBACK
    assert ai.prompts == []


def test_unparsable_response_falls_back():
    ai = FakeAIService(response="I cannot provide a diagnosis.")
    record = _service(ai).submit("user-1", SYMPTOMS, "free", 0)
    assert record.source == AnalysisSource.FALLBACK
    assert record.condition == "Eczema"


def test_confidence_always_in_range():
    for value in (0, 50, 100, -10, "abc"):
        ai = FakeAIService(response=_ai_payload(confidence=value))
        record = _service(ai).submit("user-1", SYMPTOMS, "premium", 0)
        _assert_completed_invariants(record)


def test_empty_lists_from_provider_are_replaced():
    ai = FakeAIService(response=_ai_payload(recommendations=[], riskFactors=None, visualFindings=[]))
    record = _service(ai).submit("user-1", SYMPTOMS, "free", 0)
    _assert_completed_invariants(record)


def test_treatment_plan_present_only_for_premium():
    for tier in ("free", "premium"):
        for ai in (FakeAIService(response=_ai_payload()), FakeAIService(configured=False)):
            record = _service(ai).submit("user-1", SYMPTOMS, tier, 0)
            _assert_completed_invariants(record)


def test_short_symptoms_are_rejected_without_record():
    store = AnalysisStore()
    service = _service(store=store)
    with pytest.raises(InvalidInputError):
        service.submit("user-1", "   itchy skin      ", "free", 0)
    assert store.local.count() == 0


def test_invalid_inputs_are_rejected():
    service = _service()
    with pytest.raises(InvalidInputError):
        service.submit("", SYMPTOMS, "free", 0)
    with pytest.raises(InvalidInputError):
        service.submit("user-1", SYMPTOMS, "gold", 0)
    with pytest.raises(InvalidInputError):
        service.submit("user-1", SYMPTOMS, "free", -1)


def test_free_tier_quota_exceeded():
    store = AnalysisStore()
    service = _service(store=store, limit=3)
    for _ in range(3):
        service.submit("user-1", SYMPTOMS, "free", 0)

    with pytest.raises(QuotaExceededError) as exc_info:
        service.submit("user-1", SYMPTOMS, "free", 0)
    assert exc_info.value.used == 3
    assert exc_info.value.limit == 3
    assert store.local.count() == 3


def test_premium_tier_is_exempt_from_quota():
    service = _service(limit=1)
    for _ in range(4):
        record = service.submit("user-1", SYMPTOMS, "premium", 0)
        assert record.status == AnalysisStatus.COMPLETED

    quota = service.get_usage_quota("user-1", "premium")
    assert quota["can_scan"] is True
    assert quota["limit"] is None
    assert quota["used"] == 4


def test_usage_quota_for_free_tier():
    service = _service(limit=3)
    service.submit("user-1", SYMPTOMS, "free", 0)
    quota = service.get_usage_quota("user-1")
    assert quota == {"tier": "free", "used": 1, "limit": 3, "remaining": 2, "can_scan": True}


def test_get_and_list_by_owner():
    service = _service()
    first = service.submit("user-1", SYMPTOMS, "premium", 0)
    second = service.submit("user-1", SYMPTOMS, "premium", 0)
    service.submit("user-2", SYMPTOMS, "premium", 0)

    assert service.get(first.analysis_id).analysis_id == first.analysis_id
    records = service.list_by_owner("user-1")
    assert [r.analysis_id for r in records] == [second.analysis_id, first.analysis_id]
    assert len(service.list_by_owner("user-1", limit=1)) == 1

    with pytest.raises(AnalysisNotFoundError):
        service.get("analysis-unknown")


def test_persistence_failure_after_creation_surfaces():
    store = AnalysisStore(local=FailingUpdateLocal())
    with pytest.raises(PersistenceUnavailableError):
        _service(store=store).submit("user-1", SYMPTOMS, "free", 0)
