"""
HTTP client for the personality inference service
"""

import json
import re
import time

import requests
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from message_trust.services.exceptions import (
    InferenceError,
    InferenceServiceError,
    InferenceTimeout,
    InvalidResponseShape,
    RateLimited,
)
from message_trust.shared.logging_config import get_project_logger
from message_trust.shared.models import TRAIT_NAMES, PersonalityTraits
from message_trust.shared.settings import InferenceSettings


JSON_OBJECT_RE = re.compile(r'\{.*\}', re.DOTALL)

PROMPT_TEMPLATE = """You are a psychological assessment expert specializing in the Big Five personality model. Analyze the following text messages and extract personality traits.

IMPORTANT INSTRUCTIONS:
1. Focus only on personality traits, not demographic characteristics
2. Base analysis on communication patterns, word choice, and expressed attitudes
3. Avoid bias based on topics discussed or cultural references
4. Placeholders such as [PERSON_1] or [PHONE_2] stand for redacted details; do not speculate about them

TEXT TO ANALYZE:
{messages}

Provide scores (0-100) for each Big Five trait:

1. CONSCIENTIOUSNESS: Organization, responsibility, self-discipline, goal-orientation
2. NEUROTICISM: Emotional instability, anxiety, moodiness, stress sensitivity
3. AGREEABLENESS: Cooperation, trust, empathy, altruism
4. OPENNESS: Creativity, curiosity, openness to experience, intellectual interests
5. EXTRAVERSION: Sociability, assertiveness, energy, positive emotions

Respond with ONLY a JSON object in this exact format:
{{
  "conscientiousness": <score 0-100>,
  "neuroticism": <score 0-100>,
  "agreeableness": <score 0-100>,
  "openness": <score 0-100>,
  "extraversion": <score 0-100>,
  "confidence": <overall confidence 0-100>
}}

Base confidence on text quantity, text quality and how clearly the traits show."""


class TraitInferenceClient:
    """
    Sends sanitized message bodies to the inference service and validates the answer

    Transient failures (rate limits, timeouts, connection problems, 5xx) are
    retried with exponential backoff up to ``settings.max_attempts`` total
    attempts. A response that breaks the trait contract is never retried.
    """

    def __init__(self, settings: InferenceSettings, logger=None, session=None, sleep=time.sleep):
        self.settings = settings
        self.logger = logger or get_project_logger(__name__)
        self.session = session or requests.Session()
        self.sleep = sleep

    @property
    def generate_url(self) -> str:
        return f"{self.settings.base_url.rstrip('/')}/api/generate"

    def check_available(self) -> bool:
        """Check whether the inference service answers at all"""
        try:
            response = self.session.get(f"{self.settings.base_url.rstrip('/')}/api/tags", timeout=5)
        except requests.exceptions.RequestException as e:
            self.logger.info(f"Inference service not available at {self.settings.base_url}: {e}")
            return False
        if response.status_code == 200:
            try:
                models = response.json().get('models', [])
            except ValueError:
                models = []
            self.logger.info(f"Inference service available at {self.settings.base_url} with {len(models)} models")
            return True
        self.logger.info(f"Inference service at {self.settings.base_url} answered {response.status_code}")
        return False

    def prepare_messages(self, bodies: list[str]) -> list[str]:
        """Normalize whitespace, drop empty bodies and keep the most recent ones"""
        cleaned = [' '.join(body.split()) for body in bodies]
        cleaned = [body for body in cleaned if body]
        if len(cleaned) > self.settings.max_messages:
            cleaned = cleaned[-self.settings.max_messages:]
        return cleaned

    def build_prompt(self, bodies: list[str]) -> str:
        return PROMPT_TEMPLATE.format(messages='\n\n'.join(bodies))

    def infer_traits(self, bodies: list[str]) -> PersonalityTraits:
        """
        Infer Big-Five traits from sanitized message bodies

        Args:
            bodies: Sanitized message bodies in source order

        Returns:
            PersonalityTraits validated against the trait contract

        Raises:
            InvalidResponseShape: When the service answers with an unusable payload
            InferenceError: When every attempt failed; the last error is raised
        """
        messages = self.prepare_messages(bodies)
        if not messages:
            raise InvalidResponseShape("No message content to analyze")

        payload = {
            'model': self.settings.model,
            'prompt': self.build_prompt(messages),
            'stream': False,
            'options': {
                'temperature': self.settings.temperature,
                'top_p': 0.9,
            },
        }

        retrying = Retrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.settings.max_attempts),
            wait=self._backoff,
            sleep=self.sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    traits = self.parse_traits(self._request(payload))
        except InvalidResponseShape as e:
            self.logger.critical(f"Inference service broke the trait contract: {e}")
            raise
        except InferenceError as e:
            if e.retryable:
                self.logger.error(f"Inference failed after {self.settings.max_attempts} attempts: {e}")
            else:
                self.logger.error(f"Inference failed with non-retryable error: {e}")
            raise

        self.logger.info(
            f"Inferred traits from {len(messages)} messages on attempt {attempt.retry_state.attempt_number} "
            f"(confidence {traits.confidence})"
        )
        return traits

    def _backoff(self, retry_state: RetryCallState) -> float:
        """Exponential backoff, stretched to the server's Retry-After when that is longer"""
        delay = wait_exponential(multiplier=self.settings.backoff_base_seconds, exp_base=2)(retry_state)
        retry_after = getattr(retry_state.outcome.exception(), 'retry_after', None)
        if retry_after is not None and retry_after > delay:
            return retry_after
        return delay

    def _log_retry(self, retry_state: RetryCallState):
        self.logger.warning(
            f"Inference attempt {retry_state.attempt_number}/{self.settings.max_attempts} failed: "
            f"{retry_state.outcome.exception()}; retrying in {retry_state.next_action.sleep:.1f}s"
        )

    def _request(self, payload: dict) -> str:
        headers = {'Content-Type': 'application/json'}
        if self.settings.api_key:
            headers['Authorization'] = f"Bearer {self.settings.api_key}"

        try:
            response = self.session.post(
                self.generate_url,
                json=payload,
                headers=headers,
                timeout=self.settings.timeout_seconds,
            )
        except requests.exceptions.Timeout as e:
            raise InferenceTimeout(f"Inference request timed out after {self.settings.timeout_seconds}s") from e
        except requests.exceptions.ConnectionError as e:
            raise InferenceServiceError(f"Unable to reach inference service: {e}") from e
        except requests.exceptions.RequestException as e:
            raise InferenceServiceError(f"Inference request failed: {e}", retryable=False) from e

        if response.status_code == 429:
            raise RateLimited(retry_after=self._parse_retry_after(response.headers.get('Retry-After')))
        if response.status_code >= 500:
            raise InferenceServiceError(
                f"Inference service error {response.status_code}", status_code=response.status_code
            )
        if response.status_code >= 400:
            raise InferenceServiceError(
                f"Inference request rejected with {response.status_code}",
                status_code=response.status_code,
                retryable=False,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise InvalidResponseShape("Inference service did not return JSON") from e
        if not isinstance(body, dict) or not isinstance(body.get('response'), str):
            raise InvalidResponseShape("Inference service response has no 'response' text")
        return body['response']

    @staticmethod
    def _parse_retry_after(value) -> float | None:
        if not value:
            return None
        try:
            return max(float(value), 0.0)
        except ValueError:
            return None

    @staticmethod
    def parse_traits(text: str) -> PersonalityTraits:
        """Extract and validate the trait JSON object embedded in the model output"""
        match = JSON_OBJECT_RE.search(text or '')
        if not match:
            raise InvalidResponseShape("No JSON object found in inference output")
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise InvalidResponseShape(f"Inference output is not valid JSON: {e.msg}") from e
        if not isinstance(parsed, dict):
            raise InvalidResponseShape("Inference output is not a JSON object")

        values = {}
        for name in TRAIT_NAMES + ('confidence',):
            value = parsed.get(name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidResponseShape(f"Invalid {name} value: {value!r}")
            if not 0 <= value <= 100:
                raise InvalidResponseShape(f"{name} out of range: {value}")
            values[name] = value
        return PersonalityTraits(**values)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, InferenceError) and error.retryable
