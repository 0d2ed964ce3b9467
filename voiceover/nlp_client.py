"""
Voice NLP client

Talks to the `voice-nlp` edge function for input correction and relevance
checks. Every call is best effort: failures raise CollaboratorUnavailableError
and the interpreter falls back to local behaviour.

Request:  POST {"type": ..., "transcript": ..., "context": {...}}
Response: {"result": "<string>"}
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional, Dict, Any

import httpx

from .config_manager import NLPConfig
from .error_handling import CircuitBreaker, CircuitBreakerConfig, CollaboratorUnavailableError
from .state import RelevanceVerdict
from .structured_logging import VoiceOverLogger

logger = logging.getLogger(__name__)

SERVICE_NAME = "voice-nlp"


class VoiceNLPClient:
    """TextCorrector and RelevanceChecker backed by the voice-nlp endpoint"""

    def __init__(self, config: NLPConfig, transport: Optional[httpx.AsyncBaseTransport] = None,
                 event_logger: Optional[VoiceOverLogger] = None):
        if not config.base_url:
            raise ValueError("voice-nlp URL is required. Set VOICEOVER_NLP_URL or SUPABASE_URL.")
        self.config = config
        self.event_logger = event_logger
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None
        self.circuit_breaker = CircuitBreaker(
            SERVICE_NAME,
            CircuitBreakerConfig(failure_threshold=config.failure_threshold, reset_timeout=config.reset_timeout),
        )

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'avg_response_time': 0.0,
        }

    async def initialize(self) -> None:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout),
            headers=headers,
            transport=self._transport,
        )
        logger.info(f"🧠 Voice NLP client ready ({self.config.base_url})")

    async def aclose(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    @asynccontextmanager
    async def _ensure_client(self):
        if not self.client:
            await self.initialize()
        yield self.client

    async def _call(self, body: Dict[str, Any]) -> str:
        """POST one request through the circuit breaker and return the result string"""
        self.stats['total_requests'] += 1
        start_time = time.time()
        try:
            result = await self.circuit_breaker.call(lambda: self._post(body))
        except CollaboratorUnavailableError as e:
            self.stats['failed_requests'] += 1
            if self.event_logger:
                self.event_logger.log_collaborator_failure(SERVICE_NAME, e)
            raise

        self.stats['successful_requests'] += 1
        elapsed = time.time() - start_time
        count = self.stats['successful_requests']
        self.stats['avg_response_time'] += (elapsed - self.stats['avg_response_time']) / count
        return result

    async def _post(self, body: Dict[str, Any]) -> str:
        """Bound the whole exchange so a hung endpoint counts as a failure"""
        try:
            return await asyncio.wait_for(self._request(body), self.config.timeout)
        except asyncio.TimeoutError as e:
            raise CollaboratorUnavailableError(
                SERVICE_NAME, f"no answer within {self.config.timeout}s", original_exception=e
            )

    async def _request(self, body: Dict[str, Any]) -> str:
        async with self._ensure_client() as client:
            try:
                response = await client.post(self.config.base_url, json=body)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                raise CollaboratorUnavailableError(
                    SERVICE_NAME, f"HTTP {e.response.status_code}", original_exception=e
                )
            except (httpx.HTTPError, ValueError) as e:
                raise CollaboratorUnavailableError(SERVICE_NAME, f"request failed: {e}", original_exception=e)

        result = data.get('result') if isinstance(data, dict) else None
        if not result:
            raise CollaboratorUnavailableError(SERVICE_NAME, f"empty result for {body.get('type')}")
        return result

    async def correct_value(self, raw_text: str, semantic_type: str, label: str = "") -> str:
        """Clean up a dictated input value; names get their own correction"""
        if semantic_type == "name":
            body = {'type': 'correct_name', 'transcript': raw_text}
        else:
            body = {
                'type': 'correct_input',
                'transcript': raw_text,
                'context': {'fieldLabel': label, 'fieldType': semantic_type},
            }
        result = await self._call(body)
        return result.strip() if isinstance(result, str) else str(result)

    async def check_relevance(self, transcript: str, screen_id: str,
                              screen_purpose: str, flow_step: str) -> RelevanceVerdict:
        result = await self._call({
            'type': 'check_relevance',
            'transcript': transcript,
            'context': {'screen': screen_id, 'screenPurpose': screen_purpose, 'flowStep': flow_step},
        })

        try:
            payload = json.loads(result) if isinstance(result, str) else result
            return RelevanceVerdict(
                relevant=bool(payload.get('relevant', True)),
                summary=payload.get('summary') or None,
                redirect_message=payload.get('redirect_message') or None,
            )
        except (ValueError, AttributeError) as e:
            raise CollaboratorUnavailableError(SERVICE_NAME, f"unreadable relevance verdict: {e}",
                                               original_exception=e)

    def get_status(self) -> Dict[str, Any]:
        return {**self.stats, 'circuit_breaker': self.circuit_breaker.get_state_info()}
