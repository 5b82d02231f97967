# skinsano/models/test_analysis.py
import re
from datetime import datetime, timezone

import pytest

from skinsano.models.analysis import (
    AnalysisRecord, AnalysisSource, AnalysisStatus, AnalysisTier, InvalidStatusTransition,
    Severity, clamp_confidence, generate_analysis_id
)
from skinsano.services.symptom_classifier import build_fallback_analysis

SYMPTOMS = "itchy red patches on my elbows and knees"


def test_generate_analysis_id_format():
    assert re.fullmatch(r"analysis-\d{13}-[a-z0-9]{9}", generate_analysis_id())
    assert generate_analysis_id() != generate_analysis_id()


def test_clamp_confidence():
    assert clamp_confidence(-5) == 70
    assert clamp_confidence(82.4) == 82
    assert clamp_confidence(200) == 95


def test_new_pending_record():
    record = AnalysisRecord.new_pending("user-1", SYMPTOMS, AnalysisTier.FREE, 2)
    assert record.status == AnalysisStatus.PENDING
    assert record.condition == "Processing"
    assert record.confidence is None
    assert record.source is None
    assert record.created_at == record.updated_at


def test_complete_is_terminal_and_advances_updated_at():
    record = AnalysisRecord.new_pending("user-1", SYMPTOMS, AnalysisTier.PREMIUM, 0)
    record.complete(build_fallback_analysis(SYMPTOMS, AnalysisTier.PREMIUM), AnalysisSource.FALLBACK)
    assert record.status == AnalysisStatus.COMPLETED
    assert record.updated_at > record.created_at
    assert record.treatment_plan

    with pytest.raises(InvalidStatusTransition):
        record.mark_failed("late failure")
    with pytest.raises(InvalidStatusTransition):
        record.complete(build_fallback_analysis(SYMPTOMS, AnalysisTier.PREMIUM), AnalysisSource.AI)


def test_free_tier_never_keeps_treatment_plan():
    record = AnalysisRecord.new_pending("user-1", SYMPTOMS, AnalysisTier.FREE, 0)
    record.complete(build_fallback_analysis(SYMPTOMS, AnalysisTier.PREMIUM), AnalysisSource.FALLBACK)
    assert record.treatment_plan is None


def test_mark_failed():
    record = AnalysisRecord.new_pending("user-1", SYMPTOMS, AnalysisTier.FREE, 0)
    record.mark_failed("storage down")
    assert record.status == AnalysisStatus.FAILED
    assert record.error_message == "storage down"


def test_dict_round_trip_from_storage_values():
    """Firestore에서 읽은 형태(문자열 Enum, ISO 문자열 시간, 추가 필드)를 복원할 수 있어야 함"""
    record = AnalysisRecord.new_pending("user-1", SYMPTOMS, AnalysisTier.PREMIUM, 1)
    record.complete(build_fallback_analysis(SYMPTOMS, AnalysisTier.PREMIUM), AnalysisSource.FALLBACK)
    data = record.to_dict()
    data['created_at'] = "2024-01-15T10:30:00Z"
    data['severity'] = "Severe"
    data['unknown_column'] = "ignored"

    restored = AnalysisRecord.from_dict(data)
    assert restored.tier == AnalysisTier.PREMIUM
    assert restored.status == AnalysisStatus.COMPLETED
    assert restored.source == AnalysisSource.FALLBACK
    assert restored.severity == Severity.SEVERE
    assert restored.created_at == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
    assert restored.treatment_plan[0].phase == 1
