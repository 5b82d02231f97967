# skinsano/services/prompt_builder.py
import json

from skinsano.models.analysis import AnalysisTier, CONFIDENCE_MIN, CONFIDENCE_MAX

ROLE_LINE = (
    "You are a dermatology assistant. Analyze the following skin condition symptoms "
    "and provide a structured preliminary assessment."
)

CONFIDENCE_INSTRUCTION = f"Provide a confidence level between {CONFIDENCE_MIN} and {CONFIDENCE_MAX}"

POLICY_LINES = (
    "Never output 100% confidence",
    "Always recommend professional consultation",
    "Base the assessment only on the symptoms described",
    "Return ONLY the JSON object, no additional text",
)

_BASE_SCHEMA = """{
  "condition": "Primary skin condition name",
  "confidence": 85,
  "severity": "mild|moderate|severe",
  "description": "Medical description of the condition",
  "recommendations": [
    "Primary care recommendation",
    "Follow-up guidance"
  ],
  "riskFactors": [
    "Primary risk factor",
    "Environmental factor"
  ],
  "visualFindings": [
    "Key visual characteristic",
    "Distribution pattern"
  ]"""

_TREATMENT_PLAN_SCHEMA = """,
  "treatmentPlan": [
    {
      "phase": 1,
      "title": "Initial Treatment",
      "duration": "1-2 weeks",
      "treatments": [
        "Primary treatment with specific instructions",
        "Supportive care measure"
      ]
    },
    {
      "phase": 2,
      "title": "Maintenance",
      "duration": "2-4 weeks",
      "treatments": [
        "Long-term management",
        "Prevention strategy"
      ]
    }
  ]"""


def build_analysis_prompt(symptoms: str, tier: AnalysisTier, image_count: int) -> str:
    """
    AI 공급자에게 보낼 지시문을 만듭니다. 같은 입력에는 항상 같은 문자열을 반환합니다.

    증상 텍스트는 JSON 문자열 리터럴로 삽입되므로 따옴표나 줄바꿈이 템플릿을 깨뜨리지 않습니다.

    :param symptoms: 사용자가 입력한 증상 설명
    :param tier: 분석 등급. PREMIUM이면 treatmentPlan 스키마가 추가됩니다.
    :param image_count: 첨부된 이미지 수
    """
    schema = _BASE_SCHEMA
    if tier == AnalysisTier.PREMIUM:
        schema += _TREATMENT_PLAN_SCHEMA
    schema += "\n}"

    lines = [
        ROLE_LINE,
        "",
        f"PATIENT SYMPTOMS: {json.dumps(symptoms, ensure_ascii=False)}",
        f"ANALYSIS TYPE: {tier.value}",
        f"IMAGES PROVIDED: {image_count}",
        "",
        "Provide your analysis in this EXACT JSON format:",
        "",
        schema,
        "",
        "IMPORTANT:",
        f"- {CONFIDENCE_INSTRUCTION}",
        "- Severity must be one of: mild, moderate, severe",
    ]
    lines.extend(f"- {line}" for line in POLICY_LINES)
    return "\n".join(lines) + "\n"
