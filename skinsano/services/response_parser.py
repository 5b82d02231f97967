# skinsano/services/response_parser.py
"""
AI 공급자 응답 파서.

공급자는 JSON 앞뒤에 설명 문장이나 코드 펜스를 붙이는 경우가 많기 때문에,
응답에서 디코딩되는 첫 번째 JSON 객체를 잘라낸 뒤 필드별로 검증합니다.
필드 하나가 잘못되었다고 전체 응답을 버리지 않고, 해당 필드만 기본값으로 대체합니다.
디코딩 자체가 실패하면 ResponseParseError를 발생시키며, 대체 정책은 호출자가 결정합니다.
"""
import json
import logging
import math
import re
from typing import Any, Dict, Iterator, List, Optional

from skinsano.core.exceptions import ResponseParseError
from skinsano.models.analysis import (
    AnalysisTier, ParsedAnalysis, Severity, TreatmentPhase, clamp_confidence
)
from skinsano.services.symptom_classifier import FALLBACK_TREATMENT_PLAN

DEFAULT_CONDITION = "Skin Condition Detected"
DEFAULT_CONFIDENCE = 80
DEFAULT_DESCRIPTION = "A skin condition has been identified based on the symptoms described."
DEFAULT_RECOMMENDATIONS = [
    "Consult with a dermatologist for professional evaluation",
    "Keep the affected area clean and dry",
    "Avoid harsh soaps or irritants",
    "Monitor for any changes in symptoms",
    "Apply gentle, fragrance-free moisturizer if skin is dry",
]
DEFAULT_RISK_FACTORS = ["Skin sensitivity", "Environmental factors", "Genetic predisposition"]
DEFAULT_VISUAL_FINDINGS = ["Skin changes consistent with described symptoms"]

_CODE_FENCE_RE = re.compile(r"^[ \t]*```[a-zA-Z]*[ \t]*$", re.MULTILINE)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def strip_code_fences(text: str) -> str:
    """줄 단위로 놓인 ```json ... ``` 코드 펜스 표시만 제거합니다. 문자열 값 안의 백틱은 유지합니다."""
    return _CODE_FENCE_RE.sub("", text or "").strip()


def iter_json_spans(text: str) -> Iterator[str]:
    """
    텍스트에서 괄호 짝이 맞는 {...} 구간을 앞에서부터 차례로 반환합니다.
    문자열 리터럴 내부의 괄호와 이스케이프 문자는 무시합니다.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = None
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    end = index
                    break
        if end is None:
            # 닫히지 않은 여는 괄호: 다음 후보부터 다시 탐색합니다.
            start = text.find("{", start + 1)
            continue
        yield text[start:end + 1]
        start = text.find("{", end + 1)


def extract_json_object(text: str) -> str:
    """괄호 짝이 맞는 첫 번째 {...} 구간을 반환합니다."""
    for span in iter_json_spans(text):
        return span
    raise ResponseParseError("응답에서 JSON 객체를 찾을 수 없습니다.")


def decode_response(raw_text: str) -> Dict[str, Any]:
    """
    코드 펜스 제거, JSON 구간 추출, 디코딩까지 수행하여 타입이 없는 딕셔너리를 반환합니다.
    앞쪽 구간이 JSON이 아니면({note} 같은 설명 문구) 다음 구간을 시도합니다.
    """
    if not raw_text or not raw_text.strip():
        raise ResponseParseError("AI 응답이 비어 있습니다.")
    last_error: Optional[Exception] = None
    found = False
    for span in iter_json_spans(strip_code_fences(raw_text)):
        found = True
        try:
            document = json.loads(span)
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(document, dict):
            return document
    if not found:
        raise ResponseParseError("응답에서 JSON 객체를 찾을 수 없습니다.")
    raise ResponseParseError(f"JSON 디코딩 실패: {last_error}") from last_error


def _first_present(document: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in document:
            return document[key]
    return None


def normalize_confidence(value: Any) -> int:
    """숫자, 숫자 문자열('88', '88%')을 받아 [70, 95]로 보정합니다. 해석할 수 없으면 기본값을 씁니다."""
    number: Optional[float] = None
    if isinstance(value, bool):
        number = None
    elif isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if match:
            number = float(match.group())
    if number is None or not math.isfinite(number):
        return clamp_confidence(DEFAULT_CONFIDENCE)
    return clamp_confidence(number)


def normalize_severity(value: Any) -> Severity:
    if isinstance(value, str):
        try:
            return Severity(value.strip().lower())
        except ValueError:
            pass
    return Severity.MODERATE


def normalize_text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def normalize_string_list(value: Any, default: List[str]) -> List[str]:
    """문자열 목록만 남기고, 결과가 비어 있으면 기본 목록의 복사본을 반환합니다."""
    if isinstance(value, str):
        value = [value]
    items = []
    if isinstance(value, list):
        items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return items or list(default)


def default_treatment_plan() -> List[TreatmentPhase]:
    return [
        TreatmentPhase(phase.phase, phase.title, phase.duration, list(phase.treatments))
        for phase in FALLBACK_TREATMENT_PLAN
    ]


def normalize_treatment_plan(value: Any, tier: AnalysisTier) -> Optional[List[TreatmentPhase]]:
    """
    치료 계획은 프리미엄 등급에만 존재합니다.
    잘못된 단계는 건너뛰고, 남는 단계가 없으면 기본 2단계 계획을 사용합니다.
    """
    if tier != AnalysisTier.PREMIUM:
        return None

    phases: List[TreatmentPhase] = []
    if isinstance(value, list):
        for index, item in enumerate(value, start=1):
            if not isinstance(item, dict):
                continue
            treatments = normalize_string_list(_first_present(item, 'treatments', 'steps'), [])
            if not treatments:
                continue
            phase_number = _first_present(item, 'phase', 'phaseNumber', 'phase_number')
            if (isinstance(phase_number, bool) or not isinstance(phase_number, (int, float))
                    or not math.isfinite(phase_number)):
                phase_number = index
            phases.append(TreatmentPhase(
                phase=int(phase_number),
                title=normalize_text(item.get('title'), f"Phase {index}"),
                duration=normalize_text(
                    _first_present(item, 'duration', 'durationLabel', 'duration_label'), "Ongoing"
                ),
                treatments=treatments,
            ))
    return phases or default_treatment_plan()


def parse_analysis_response(raw_text: str, tier: AnalysisTier = AnalysisTier.FREE) -> ParsedAnalysis:
    """
    AI 응답 원문을 정규화된 ParsedAnalysis로 변환합니다.

    :param raw_text: 공급자가 반환한 원문 텍스트
    :param tier: 분석 등급 (치료 계획 포함 여부 결정)
    :return: 모든 필드가 검증된 ParsedAnalysis
    :raises ResponseParseError: JSON 객체를 찾거나 디코딩할 수 없는 경우
    """
    document = decode_response(raw_text)

    parsed = ParsedAnalysis(
        condition=normalize_text(document.get('condition'), DEFAULT_CONDITION),
        confidence=normalize_confidence(document.get('confidence')),
        severity=normalize_severity(document.get('severity')),
        description=normalize_text(document.get('description'), DEFAULT_DESCRIPTION),
        recommendations=normalize_string_list(document.get('recommendations'), DEFAULT_RECOMMENDATIONS),
        risk_factors=normalize_string_list(
            _first_present(document, 'riskFactors', 'risk_factors'), DEFAULT_RISK_FACTORS
        ),
        visual_findings=normalize_string_list(
            _first_present(document, 'visualFindings', 'visual_findings'), DEFAULT_VISUAL_FINDINGS
        ),
        treatment_plan=normalize_treatment_plan(
            _first_present(document, 'treatmentPlan', 'treatment_plan'), tier
        ),
    )
    logging.info(f"AI 응답 파싱 성공 (condition: {parsed.condition}, confidence: {parsed.confidence})")
    return parsed
