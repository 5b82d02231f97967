# skinsano/services/symptom_classifier.py
"""
키워드 기반 증상 분류기.

AI 공급자를 사용할 수 없거나 응답을 해석할 수 없을 때 최후의 수단으로 사용됩니다.
외부 호출이 없는 순수 함수만으로 구성되어 있어 언제나 결과를 만들어 낼 수 있습니다.
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple

from skinsano.models.analysis import (
    AnalysisTier, ParsedAnalysis, Severity, TreatmentPhase, clamp_confidence
)

GENERIC_CONDITION = "Dermatological Condition"
GENERIC_DESCRIPTION = "General skin condition requiring professional evaluation"
GENERIC_CONFIDENCE = 70

# 키워드 하나당 20점, 최대 85점. 분류기 결과가 실제 AI 답변만큼 확신에 차 보이지 않도록 상한을 둡니다.
KEYWORD_WEIGHT = 20
MAX_KEYWORD_CONFIDENCE = 85


@dataclass(frozen=True)
class ConditionProfile:
    condition: str
    description: str
    keywords: Tuple[str, ...]


# 선언 순서가 곧 동점 처리 순서입니다. 먼저 선언된 항목이 우선합니다.
CONDITION_TABLE: Tuple[ConditionProfile, ...] = (
    ConditionProfile(
        condition="Acne",
        description="Acne vulgaris - a common skin condition affecting hair follicles",
        keywords=("pimples", "blackheads", "whiteheads", "breakouts", "oily skin", "comedones", "acne"),
    ),
    ConditionProfile(
        condition="Eczema",
        description="Eczema (Atopic Dermatitis) - chronic inflammatory skin condition",
        keywords=("dry", "itchy", "red patches", "flaky", "scaly", "atopic dermatitis"),
    ),
    ConditionProfile(
        condition="Psoriasis",
        description="Psoriasis - autoimmune skin condition with rapid cell turnover",
        keywords=("thick", "scaly", "silvery", "plaques", "red patches", "scaling"),
    ),
    ConditionProfile(
        condition="Contact Dermatitis",
        description="Contact Dermatitis - skin inflammation from allergens or irritants",
        keywords=("contact", "allergic", "irritant", "rash", "inflammation", "burning"),
    ),
    ConditionProfile(
        condition="Rosacea",
        description="Rosacea - chronic inflammatory facial skin condition",
        keywords=("facial redness", "flushing", "bumps", "burning", "stinging", "face"),
    ),
)

SEVERE_TRIGGERS = ("severe", "painful")
MILD_TRIGGERS = ("mild",)

FALLBACK_RECOMMENDATIONS = [
    "Maintain gentle skincare routine with mild, fragrance-free products",
    "Avoid known triggers and irritants",
    "Keep the affected area clean and moisturized",
    "Consider over-the-counter treatments appropriate for your condition",
    "Schedule consultation with a dermatologist for proper diagnosis",
]

FALLBACK_RISK_FACTORS = [
    "Environmental factors (weather, pollution)",
    "Allergic reactions to products or substances",
    "Genetic predisposition",
    "Stress and lifestyle factors",
    "Hormonal changes",
]

FALLBACK_VISUAL_FINDINGS = [
    "Skin changes as described in symptoms",
    "Localized skin condition",
    "Consistent with common dermatological presentations",
]

FALLBACK_TREATMENT_PLAN = (
    TreatmentPhase(
        phase=1,
        title="Initial Care",
        duration="1-2 weeks",
        treatments=["Gentle cleansing routine", "Apply appropriate moisturizer", "Avoid known irritants"],
    ),
    TreatmentPhase(
        phase=2,
        title="Ongoing Management",
        duration="2-4 weeks",
        treatments=[
            "Continue gentle skincare routine",
            "Monitor for improvement",
            "Schedule dermatologist consultation if no improvement",
        ],
    ),
)


@dataclass(frozen=True)
class ClassificationResult:
    condition: str
    confidence: int
    severity: Severity
    description: str = GENERIC_DESCRIPTION
    matched_keywords: Tuple[str, ...] = ()


def score_conditions(symptoms: str) -> List[Tuple[ConditionProfile, int, Tuple[str, ...]]]:
    """각 질환별로 (프로필, 신뢰도, 일치한 키워드)를 선언 순서대로 반환합니다. 일치가 없는 질환은 제외합니다."""
    text = (symptoms or "").lower()
    scores = []
    for profile in CONDITION_TABLE:
        matched = tuple(keyword for keyword in profile.keywords if keyword in text)
        if matched:
            scores.append((profile, min(len(matched) * KEYWORD_WEIGHT, MAX_KEYWORD_CONFIDENCE), matched))
    return scores


def derive_severity(symptoms: str) -> Severity:
    """질환 매칭과는 별개로, 트리거 단어만 보고 심각도를 판단합니다."""
    text = (symptoms or "").lower()
    if any(trigger in text for trigger in SEVERE_TRIGGERS):
        return Severity.SEVERE
    if any(trigger in text for trigger in MILD_TRIGGERS):
        return Severity.MILD
    return Severity.MODERATE


def classify(symptoms: str) -> ClassificationResult:
    """
    증상 텍스트에서 가장 그럴듯한 질환과 신뢰도를 추정합니다.

    :param symptoms: 사용자가 입력한 증상 설명
    :return: 질환명, 신뢰도(최대 85), 심각도가 담긴 ClassificationResult
    """
    severity = derive_severity(symptoms)
    best: Optional[Tuple[ConditionProfile, int, Tuple[str, ...]]] = None
    for candidate in score_conditions(symptoms):
        # 엄격한 '>' 비교로 동점일 때 먼저 선언된 질환이 유지됩니다.
        if best is None or candidate[1] > best[1]:
            best = candidate

    if best is None:
        return ClassificationResult(
            condition=GENERIC_CONDITION,
            confidence=GENERIC_CONFIDENCE,
            severity=severity,
        )

    profile, confidence, matched = best
    return ClassificationResult(
        condition=profile.condition,
        confidence=confidence,
        severity=severity,
        description=profile.description,
        matched_keywords=matched,
    )


def build_fallback_analysis(symptoms: str, tier: AnalysisTier) -> ParsedAnalysis:
    """
    분류 결과를 완성된 분석 결과 형태로 확장합니다.
    신뢰도는 완료 기록의 허용 범위로 보정되고, 치료 계획은 프리미엄 등급에만 포함됩니다.
    """
    result = classify(symptoms)
    return ParsedAnalysis(
        condition=result.condition,
        confidence=clamp_confidence(result.confidence),
        severity=result.severity,
        description=result.description,
        recommendations=list(FALLBACK_RECOMMENDATIONS),
        risk_factors=list(FALLBACK_RISK_FACTORS),
        visual_findings=list(FALLBACK_VISUAL_FINDINGS),
        treatment_plan=[
            TreatmentPhase(phase.phase, phase.title, phase.duration, list(phase.treatments))
            for phase in FALLBACK_TREATMENT_PLAN
        ] if tier == AnalysisTier.PREMIUM else None,
    )
