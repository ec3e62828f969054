"""
Persistence API service module.

Sends per-question body-language aggregates and proctoring violations to the
interview backend. Expressions are re-encoded into the backend's vocabulary
(happy / sad / nervous / neutral / shocked) before transmission. Failures are
logged and reported as False; nothing here raises into the frame loop.
"""

import logging
import threading
import time
from typing import Any, Dict, Optional

import requests

import config
from utils.behavior_state_tracker import Expression
from utils.sampling_controller import AggregatedScores

logger = logging.getLogger(__name__)

BODY_LANGUAGE_PATH = "/api/interview/body-language"
VIOLATION_PATH = "/api/interview/log-violation"

# Internal classification -> backend vocabulary
EXPRESSION_VOCABULARY: Dict[str, str] = {
    Expression.CONFIDENT.value: "happy",
    Expression.NERVOUS.value: "nervous",
    Expression.DISTRACTED.value: "sad",
}
DEFAULT_EXTERNAL_EXPRESSION = "neutral"


def to_external_expression(expression) -> str:
    """Map an Expression (or its string value) to the backend vocabulary."""
    if expression is None:
        return DEFAULT_EXTERNAL_EXPRESSION
    value = expression.value if isinstance(expression, Expression) else str(expression).lower()
    return EXPRESSION_VOCABULARY.get(value, DEFAULT_EXTERNAL_EXPRESSION)


def build_body_language_payload(session_id: str, question_index: int, aggregate: AggregatedScores,
                                timestamp_ms: Optional[float] = None) -> Dict[str, Any]:
    """Payload for one question's aggregate."""
    mapped = to_external_expression(aggregate.dominant_expression)
    return {
        "sessionId": session_id,
        "questionIndex": question_index,
        "eyeContact": aggregate.eye_contact,
        "engagement": aggregate.engagement,
        "attention": aggregate.attention,
        "stability": aggregate.stability,
        "expression": mapped,
        "expressionConfidence": aggregate.expression_confidence,
        "dominantExpression": mapped,
        "sampleCount": aggregate.sample_count,
        "timestamp": int(timestamp_ms if timestamp_ms is not None else time.time() * 1000),
    }


class PersistenceAPIService:
    """
    Client for the interview backend.

    Usage:
        service = get_persistence_service()
        service.save_body_language(session_id, 2, aggregate)
    """

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[float] = None, async_submit: Optional[bool] = None):
        self.base_url = (base_url if base_url is not None else config.PERSISTENCE_API_URL).rstrip("/")
        self.token = token if token is not None else config.PERSISTENCE_API_TOKEN
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT_SEC
        self.async_submit = config.PERSISTENCE_ASYNC if async_submit is None else async_submit

    def is_available(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _post(self, path: str, payload: Dict[str, Any]) -> bool:
        if not self.is_available():
            logger.warning("Persistence API not configured; dropping POST %s", path)
            return False
        url = f"{self.base_url}{path}"
        try:
            response = requests.post(url, headers=self._headers(), json=payload, timeout=self.timeout)
            if response.status_code >= 400:
                message = ""
                try:
                    body = response.json()
                    if isinstance(body, dict):
                        message = body.get("message") or body.get("error") or ""
                except ValueError:
                    pass
                logger.warning("Persistence API %s returned %s %s", path, response.status_code, message)
                return False
            return True
        except requests.RequestException as e:
            logger.warning("Persistence API %s failed: %s", path, e)
            return False

    def _submit(self, path: str, payload: Dict[str, Any]) -> bool:
        if not self.async_submit:
            return self._post(path, payload)
        thread = threading.Thread(target=self._post, args=(path, payload), daemon=True)
        thread.start()
        return True

    def save_body_language(self, session_id: str, question_index: int, aggregate: AggregatedScores,
                           timestamp_ms: Optional[float] = None) -> bool:
        """POST one question's aggregate. Returns False on failure (sync mode) or when unconfigured."""
        if not self.is_available():
            logger.warning("Persistence API not configured; question %s aggregate not saved", question_index)
            return False
        payload = build_body_language_payload(session_id, question_index, aggregate, timestamp_ms)
        return self._submit(BODY_LANGUAGE_PATH, payload)

    def report_violation(self, interview_id: str, violation_type: str, action_taken: str,
                         screenshot: Optional[str] = None, user_id: Optional[str] = None) -> bool:
        """POST a proctoring violation (optionally with a base64 screenshot)."""
        payload: Dict[str, Any] = {
            "interviewId": interview_id,
            "violationType": violation_type,
            "actionTaken": action_taken,
            "screenshot": screenshot,
        }
        if user_id:
            payload["userId"] = user_id
        return self._submit(VIOLATION_PATH, payload)


_persistence_service: Optional[PersistenceAPIService] = None


def get_persistence_service() -> PersistenceAPIService:
    """Return the shared Persistence API client, creating it on first call."""
    global _persistence_service
    if _persistence_service is None:
        _persistence_service = PersistenceAPIService()
    return _persistence_service
