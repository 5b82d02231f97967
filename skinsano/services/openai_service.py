# skinsano/services/openai_service.py
import logging
from typing import Optional
from flask import Flask
from openai import OpenAI, OpenAIError

from skinsano.core.exceptions import ProviderUnavailableError

PLACEHOLDER_PREFIX = "your-"


class OpenAIService:
    """
    OpenAI 텍스트 생성 API 연동을 담당하는 서비스 클래스.
    피부 증상 분석 프롬프트를 전달하고 응답 원문을 그대로 반환합니다.
    """

    def __init__(self):
        """
        OpenAI 클라이언트를 None으로 초기화합니다.
        실제 클라이언트는 init_app 메서드를 통해 설정됩니다.
        """
        self.client: Optional[OpenAI] = None
        self.model = "gpt-4o-mini"
        self.max_output_tokens = 1500
        self.temperature = 0.3

    def init_app(self, app: Flask):
        """
        Flask 앱 초기화 과정에서 호출되어 OpenAI 클라이언트를 설정합니다.
        API 키가 없으면 클라이언트 없이 남겨 두며, 분석은 키워드 분류기로 대체됩니다.

        :param app: Flask 애플리케이션 객체
        """
        self.model = app.config.get('OPENAI_MODEL', self.model)
        self.max_output_tokens = app.config.get('AI_MAX_OUTPUT_TOKENS', self.max_output_tokens)
        self.temperature = app.config.get('AI_TEMPERATURE', self.temperature)

        api_key = app.config.get('OPENAI_API_KEY')
        if not api_key or api_key.startswith(PLACEHOLDER_PREFIX):
            logging.warning("OpenAIService: OPENAI_API_KEY가 설정되지 않아 키워드 분류기만 사용합니다.")
            return

        self.client = OpenAI(
            api_key=api_key,
            timeout=app.config.get('AI_TIMEOUT_SECONDS', 30.0),
            max_retries=app.config.get('AI_MAX_RETRIES', 1)
        )
        logging.info(f"OpenAIService: OpenAI API 서비스가 성공적으로 초기화되었습니다. (model: {self.model})")

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def generate_analysis_text(self, prompt: str) -> str:
        """
        분석 프롬프트를 전달하고 모델이 생성한 텍스트를 반환합니다.

        :param prompt: prompt_builder가 만든 지시문
        :return: 모델 응답 원문 (JSON이 포함되어 있을 것으로 기대)
        :raises ProviderUnavailableError: 클라이언트가 없거나 호출이 실패한 경우
        """
        if not self.client:
            raise ProviderUnavailableError("OpenAI API 키가 설정되지 않았습니다.")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_output_tokens,
                temperature=self.temperature
            )
        except OpenAIError as e:
            logging.error(f"OpenAI 분석 호출 실패: {e}", exc_info=True)
            raise ProviderUnavailableError(f"OpenAI 호출 실패: {type(e).__name__}", cause=e) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderUnavailableError("OpenAI 응답이 비어 있습니다.")

        logging.info(f"OpenAI 응답 수신 (length: {len(content)})")
        return content
