# skinsano/models/analysis.py
import logging
import secrets
import string
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, List, Dict, Any

from skinsano.utils.datetime_utils import DateTimeUtils

PENDING_CONDITION = "Processing"
PENDING_DESCRIPTION = "Analysis in progress"

_ID_ALPHABET = string.ascii_lowercase + string.digits

# 완료된 기록의 신뢰도는 항상 이 범위 안에 있어야 합니다.
CONFIDENCE_MIN = 70
CONFIDENCE_MAX = 95


class AnalysisStatus(Enum):
    """분석 기록의 상태. PENDING에서 COMPLETED/FAILED 중 하나로 단 한 번 전이합니다."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class AnalysisTier(Enum):
    FREE = "free"
    PREMIUM = "premium"


class Severity(Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class AnalysisSource(Enum):
    """결과의 출처. AI 응답인지 키워드 분류기 결과인지 구분합니다."""
    AI = "ai"
    FALLBACK = "fallback"


class InvalidStatusTransition(ValueError):
    """종료 상태의 기록을 다시 변경하려고 할 때 발생합니다."""


def clamp_confidence(value: float) -> int:
    """신뢰도를 [CONFIDENCE_MIN, CONFIDENCE_MAX] 범위의 정수로 보정합니다."""
    return int(round(min(max(value, CONFIDENCE_MIN), CONFIDENCE_MAX)))


def generate_analysis_id() -> str:
    """'analysis-<epoch ms>-<9자리 base36>' 형식의 ID를 생성합니다."""
    suffix = ''.join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"analysis-{int(time.time() * 1000)}-{suffix}"


@dataclass
class TreatmentPhase:
    """프리미엄 등급에만 제공되는 치료 계획의 한 단계."""
    phase: int
    title: str
    duration: str
    treatments: List[str] = field(default_factory=list)


@dataclass
class ParsedAnalysis:
    """
    AI 응답 또는 키워드 분류기로부터 만들어진 정규화된 분석 결과.
    모든 필드는 이미 기본값 대체와 범위 보정이 끝난 상태입니다.
    """
    condition: str
    confidence: int
    severity: Severity
    description: str
    recommendations: List[str]
    risk_factors: List[str]
    visual_findings: List[str]
    treatment_plan: Optional[List[TreatmentPhase]] = None


@dataclass
class AnalysisRecord:
    """
    Firestore 'skin_analyses' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    analysis_id, owner, symptoms, image_count, tier는 생성 이후 변경되지 않습니다.
    """
    analysis_id: str
    owner: str
    symptoms: str
    image_count: int
    tier: AnalysisTier
    status: AnalysisStatus = AnalysisStatus.PENDING
    condition: str = PENDING_CONDITION
    confidence: Optional[int] = None
    severity: Severity = Severity.MODERATE
    description: str = PENDING_DESCRIPTION
    recommendations: List[str] = field(default_factory=list)
    risk_factors: List[str] = field(default_factory=list)
    visual_findings: List[str] = field(default_factory=list)
    treatment_plan: Optional[List[TreatmentPhase]] = None
    source: Optional[AnalysisSource] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=DateTimeUtils.now)
    updated_at: datetime = field(default_factory=DateTimeUtils.now)

    @classmethod
    def new_pending(cls, owner: str, symptoms: str, tier: AnalysisTier, image_count: int = 0) -> "AnalysisRecord":
        """AI 호출 전에 저장할 PENDING 상태의 기록을 만듭니다."""
        created_at = DateTimeUtils.now()
        return cls(
            analysis_id=generate_analysis_id(),
            owner=owner,
            symptoms=symptoms,
            image_count=image_count,
            tier=tier,
            created_at=created_at,
            updated_at=created_at
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in (AnalysisStatus.COMPLETED, AnalysisStatus.FAILED)

    def _touch(self):
        # updated_at은 변경될 때마다 반드시 증가해야 합니다.
        current = DateTimeUtils.now()
        if current <= self.updated_at:
            current = self.updated_at + timedelta(microseconds=1)
        self.updated_at = current

    def _ensure_pending(self, target: AnalysisStatus):
        if self.is_terminal:
            raise InvalidStatusTransition(
                f"'{self.status.value}' 상태의 분석({self.analysis_id})은 '{target.value}'(으)로 변경할 수 없습니다."
            )

    def complete(self, result: ParsedAnalysis, source: AnalysisSource):
        """정규화된 결과를 반영하고 COMPLETED 상태로 전이합니다."""
        self._ensure_pending(AnalysisStatus.COMPLETED)
        self.condition = result.condition
        self.confidence = result.confidence
        self.severity = result.severity
        self.description = result.description
        self.recommendations = list(result.recommendations)
        self.risk_factors = list(result.risk_factors)
        self.visual_findings = list(result.visual_findings)
        self.treatment_plan = list(result.treatment_plan) if self.tier == AnalysisTier.PREMIUM and result.treatment_plan else None
        self.source = source
        self.status = AnalysisStatus.COMPLETED
        self._touch()

    def mark_failed(self, reason: str):
        self._ensure_pending(AnalysisStatus.FAILED)
        self.status = AnalysisStatus.FAILED
        self.error_message = reason
        self.description = "Analysis failed. Please try again."
        self._touch()

    def to_dict(self) -> Dict[str, Any]:
        """저장 및 응답 직렬화를 위해 Enum을 문자열 값으로 바꾼 딕셔너리를 반환합니다."""
        data = asdict(self)
        data['tier'] = self.tier.value
        data['status'] = self.status.value
        data['severity'] = self.severity.value
        data['source'] = self.source.value if self.source else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisRecord":
        """
        저장소에서 읽은 딕셔너리로부터 AnalysisRecord 인스턴스를 생성합니다.
        문자열로 저장된 Enum 값과 Firestore Timestamp를 변환합니다.
        """
        processed = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}

        processed['tier'] = AnalysisTier(processed.get('tier') or AnalysisTier.FREE.value)
        processed['status'] = AnalysisStatus(processed.get('status') or AnalysisStatus.PENDING.value)

        severity = processed.get('severity')
        try:
            processed['severity'] = Severity(str(severity).lower()) if severity else Severity.MODERATE
        except ValueError:
            logging.warning(f"Invalid severity '{severity}' for analysis {processed.get('analysis_id')}. Defaulting to moderate.")
            processed['severity'] = Severity.MODERATE

        source = processed.get('source')
        processed['source'] = AnalysisSource(source) if source else None

        plan = processed.get('treatment_plan')
        if plan:
            processed['treatment_plan'] = [
                phase if isinstance(phase, TreatmentPhase) else TreatmentPhase(**phase)
                for phase in plan
            ]
        else:
            processed['treatment_plan'] = None

        for list_field in ('recommendations', 'risk_factors', 'visual_findings'):
            if processed.get(list_field) is None:
                processed[list_field] = []

        for ts_field in ('created_at', 'updated_at'):
            processed[ts_field] = DateTimeUtils.coerce_datetime(processed.get(ts_field)) or DateTimeUtils.now()

        return cls(**processed)
