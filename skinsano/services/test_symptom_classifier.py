# skinsano/services/test_symptom_classifier.py
"""
키워드 분류기 테스트

사용법: python -m pytest skinsano/services/test_symptom_classifier.py -v
"""

from skinsano.models.analysis import AnalysisTier, Severity
from skinsano.services.symptom_classifier import (
    GENERIC_CONDITION, GENERIC_CONFIDENCE, build_fallback_analysis, classify, derive_severity
)


def test_classify_eczema_keywords():
    """'itchy red patches'는 Eczema로 분류되어야 함"""
    result = classify("I have itchy red patches on both of my elbows")
    assert result.condition == "Eczema"
    assert result.confidence == 40
    assert "itchy" in result.matched_keywords
    assert "red patches" in result.matched_keywords


def test_classify_is_case_insensitive():
    result = classify("PIMPLES and BLACKHEADS all over my forehead")
    assert result.condition == "Acne"
    assert result.confidence == 40


def test_confidence_is_capped_at_85():
    """키워드가 많아도 85를 넘지 않아야 함"""
    symptoms = "pimples blackheads whiteheads breakouts oily skin comedones acne"
    assert classify(symptoms).confidence == 85


def test_tie_goes_to_first_declared_condition():
    """'scaly'는 Eczema와 Psoriasis 모두의 키워드 - 먼저 선언된 Eczema가 선택되어야 함"""
    result = classify("the skin on my arm has become scaly recently")
    assert result.condition == "Eczema"
    assert result.confidence == 20


def test_no_match_returns_generic_condition():
    result = classify("something strange is going on with my toenail")
    assert result.condition == GENERIC_CONDITION
    assert result.confidence == GENERIC_CONFIDENCE


def test_derive_severity():
    test_cases = [
        ("very painful swelling near the ear", Severity.SEVERE),
        ("severe burning sensation after shaving", Severity.SEVERE),
        ("mild redness around the nose", Severity.MILD),
        ("redness around the nose", Severity.MODERATE),
    ]
    for symptoms, expected in test_cases:
        assert derive_severity(symptoms) == expected


def test_severity_is_independent_from_condition_match():
    """질환이 매칭되지 않아도 심각도는 별도로 판단되어야 함"""
    result = classify("painful lump that appeared last week")
    assert result.condition == GENERIC_CONDITION
    assert result.severity == Severity.SEVERE


def test_fallback_analysis_clamps_confidence_and_fills_lists():
    parsed = build_fallback_analysis("the skin on my arm has become scaly recently", AnalysisTier.FREE)
    assert 70 <= parsed.confidence <= 95
    assert parsed.recommendations
    assert parsed.risk_factors
    assert parsed.visual_findings
    assert parsed.treatment_plan is None


def test_fallback_analysis_premium_has_treatment_plan():
    parsed = build_fallback_analysis("itchy red patches on my elbows and knees", AnalysisTier.PREMIUM)
    assert parsed.treatment_plan is not None
    assert [phase.phase for phase in parsed.treatment_plan] == [1, 2]
    assert all(phase.treatments for phase in parsed.treatment_plan)
