# skinsano/api/analyses/services.py
import copy
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from skinsano.core.exceptions import (
    AnalysisNotFoundError, InvalidInputError, QuotaExceededError, ResponseParseError,
    ProviderUnavailableError
)
from skinsano.models.analysis import AnalysisRecord, AnalysisSource, AnalysisTier, ParsedAnalysis
from skinsano.services.analysis_store import AnalysisStore
from skinsano.services.openai_service import OpenAIService
from skinsano.services.prompt_builder import build_analysis_prompt
from skinsano.services.response_parser import parse_analysis_response
from skinsano.services.symptom_classifier import build_fallback_analysis


class AnalysisService:
    """
    피부 분석 요청의 전체 흐름을 조정하는 서비스 클래스.

    사용 한도 확인 -> PENDING 기록 저장 -> AI 호출 및 파싱 -> 완료 기록 저장.
    AI 경로의 어떤 실패도 호출자에게 전달하지 않고 키워드 분류기 결과로 대체합니다.
    호출자에게 전달되는 오류는 입력 검증, 사용 한도 초과, 저장소 전체 실패뿐입니다.

    사용 한도는 요청 시점의 기록 수를 읽어 판단하므로, 거의 동시에 들어온 두 요청이
    모두 한도 검사를 통과할 수 있습니다. 이 경쟁 상태는 허용합니다.
    """

    def __init__(self,
                 store: AnalysisStore,
                 ai_service: OpenAIService,
                 free_tier_limit: int = 3,
                 min_symptoms_length: int = 20):
        self.store = store
        self.ai_service = ai_service
        self.free_tier_limit = free_tier_limit
        self.min_symptoms_length = min_symptoms_length
        logging.info("AnalysisService initialized with dependencies.")

    @staticmethod
    def _coerce_tier(tier: Union[AnalysisTier, str, None]) -> AnalysisTier:
        if isinstance(tier, AnalysisTier):
            return tier
        try:
            return AnalysisTier((tier or AnalysisTier.FREE.value).lower())
        except (ValueError, AttributeError):
            raise InvalidInputError(f"'{tier}'은(는) 유효한 분석 등급이 아닙니다.")

    def _validate(self, owner: str, symptoms: str, image_count: int) -> str:
        if not owner or not str(owner).strip():
            raise InvalidInputError("사용자 ID가 필요합니다.")
        cleaned = (symptoms or "").strip()
        if len(cleaned) < self.min_symptoms_length:
            raise InvalidInputError(
                f"Please provide detailed symptoms (minimum {self.min_symptoms_length} characters)"
            )
        if isinstance(image_count, bool) or not isinstance(image_count, int) or image_count < 0:
            raise InvalidInputError("이미지 수는 0 이상의 정수여야 합니다.")
        return cleaned

    # ------------------------------------------------------------------
    # 사용 한도
    # ------------------------------------------------------------------
    def get_usage_quota(self, owner: str, tier: Union[AnalysisTier, str, None] = None) -> Dict[str, Any]:
        """사용자의 분석 기록 수를 무료 등급 한도와 비교합니다. 프리미엄 등급은 한도가 없습니다."""
        tier = self._coerce_tier(tier)
        records, error = self.store.list_by_owner(owner)
        if error:
            raise error
        used = len(records)
        if tier == AnalysisTier.PREMIUM:
            return {"tier": tier.value, "used": used, "limit": None, "remaining": None, "can_scan": True}
        return {
            "tier": tier.value,
            "used": used,
            "limit": self.free_tier_limit,
            "remaining": max(self.free_tier_limit - used, 0),
            "can_scan": used < self.free_tier_limit,
        }

    # ------------------------------------------------------------------
    # 분석 요청
    # ------------------------------------------------------------------
    def submit(self,
               owner: str,
               symptoms: str,
               tier: Union[AnalysisTier, str, None] = AnalysisTier.FREE,
               image_count: int = 0) -> AnalysisRecord:
        """
        분석을 요청하고 COMPLETED 상태의 기록을 반환합니다.

        :raises InvalidInputError: 증상 설명이 너무 짧거나 입력값이 잘못된 경우
        :raises QuotaExceededError: 무료 등급 사용자가 한도에 도달한 경우
        :raises PersistenceUnavailableError: 원격/로컬 저장소가 모두 실패한 경우
        """
        tier = self._coerce_tier(tier)
        symptoms = self._validate(owner, symptoms, image_count)

        if tier == AnalysisTier.FREE:
            quota = self.get_usage_quota(owner, tier)
            if not quota["can_scan"]:
                logging.info(f"무료 분석 한도 초과 (owner: {owner}, used: {quota['used']}/{quota['limit']})")
                raise QuotaExceededError(used=quota["used"], limit=quota["limit"])

        # 1. 처리 중에도 id로 조회할 수 있도록 AI 호출 전에 기록을 먼저 저장합니다.
        record = AnalysisRecord.new_pending(owner=owner, symptoms=symptoms, tier=tier, image_count=image_count)
        _, create_error = self.store.create(record)
        if create_error:
            raise create_error
        logging.info(f"Analysis record created: {record.analysis_id} (owner: {owner}, tier: {tier.value})")

        # 2. AI 경로 시도, 실패 시 키워드 분류기로 대체
        result, provider_error = self._try_provider(record)
        source = AnalysisSource.AI
        if provider_error is not None:
            logging.warning(
                f"AI 분석 실패, 키워드 분류기로 대체합니다 (id: {record.analysis_id}, "
                f"reason: {type(provider_error).__name__}: {provider_error})"
            )
            result = self._use_fallback(record)
            source = AnalysisSource.FALLBACK

        # 3. 완료 기록 저장
        completed = copy.deepcopy(record)
        completed.complete(result, source)
        _, update_error = self.store.update(completed)
        if update_error:
            record.mark_failed(str(update_error))
            self.store.update(record)
            raise update_error

        logging.info(
            f"Analysis completed: {completed.analysis_id} (condition: {completed.condition}, "
            f"confidence: {completed.confidence}, source: {source.value})"
        )
        return completed

    def _try_provider(self, record: AnalysisRecord) -> Tuple[Optional[ParsedAnalysis], Optional[Exception]]:
        """프롬프트 생성 -> 공급자 호출 -> 응답 파싱. 실패는 예외를 던지지 않고 (None, 오류)로 반환합니다."""
        if not self.ai_service.is_configured:
            return None, ProviderUnavailableError("OpenAI API 키가 설정되지 않았습니다.")
        try:
            prompt = build_analysis_prompt(record.symptoms, record.tier, record.image_count)
            raw_text = self.ai_service.generate_analysis_text(prompt)
            return parse_analysis_response(raw_text, record.tier), None
        except (ProviderUnavailableError, ResponseParseError) as e:
            return None, e
        except Exception as e:
            logging.error(f"AI 분석 중 예상치 못한 오류 (id: {record.analysis_id}): {e}", exc_info=True)
            return None, e

    def _use_fallback(self, record: AnalysisRecord) -> ParsedAnalysis:
        return build_fallback_analysis(record.symptoms, record.tier)

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------
    def get(self, analysis_id: str) -> AnalysisRecord:
        record, error = self.store.get_by_id(analysis_id)
        if error:
            raise error
        if record is None:
            raise AnalysisNotFoundError(f"분석을 찾을 수 없습니다: {analysis_id}")
        return record

    def list_by_owner(self, owner: str, limit: Optional[int] = None) -> List[AnalysisRecord]:
        """사용자의 분석 기록을 최신순으로 반환합니다."""
        records, error = self.store.list_by_owner(owner, limit)
        if error:
            raise error
        return records
