"""Remote extraction endpoint client (HTTP) for the conversation engine."""

import logging
from typing import Any, Optional

import httpx

from service_notes.core.conversation_steps import STEP_IDS
from service_notes.core.field_extractor import ExtractionResult, parse_extraction_output
from service_notes.core.field_schema import normalize_fields
from service_notes.core.narrative_builder import build_summary
from service_notes.errors import ExtractionFailure, ValidationError

logger = logging.getLogger(__name__)

ERROR_BODY_EXCERPT = 200


class RemoteFieldExtractor:
    """
    Field extraction through an HTTP endpoint.

    POSTs {"stepId", "answer", "current"} and expects the complete updated
    record back, either bare or as {"fields": {...}}. Network errors,
    non-2xx statuses and non-JSON bodies all become ExtractionFailure.
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None
    ):
        """
        Initialize remote extractor.

        Args:
            url: Extraction endpoint URL
            api_key: Optional bearer token (also sent as 'apikey')
            timeout: Request timeout in seconds
            client: Pre-built httpx.Client (tests inject a MockTransport)
        """
        if not url:
            raise ValueError("url is required for RemoteFieldExtractor")

        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

        logger.info(f"Remote field extractor initialized: {url}")

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key
        return headers

    def extract(self, step_id: str, answer: str, current: Any) -> ExtractionResult:
        if step_id not in STEP_IDS:
            raise ValidationError(f"Unknown step id: {step_id!r}")
        if not isinstance(answer, str) or not answer.strip():
            raise ValidationError("answer is required")

        current_fields = normalize_fields(current)
        payload = {
            "stepId": step_id,
            "answer": answer.strip(),
            "current": current_fields.to_dict(),
        }

        try:
            response = self.client.post(self.url, json=payload, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text[:ERROR_BODY_EXCERPT]
            logger.error(f"[{step_id}] Extraction endpoint returned {status}: {body}")
            raise ExtractionFailure(
                f"Extraction endpoint returned {status} {body}".strip(),
                step_id=step_id,
                status_code=status
            ) from e
        except httpx.RequestError as e:
            logger.error(f"[{step_id}] Could not reach extraction endpoint: {e}")
            raise ExtractionFailure(
                f"Could not reach extraction endpoint: {e}", step_id=step_id
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"[{step_id}] Extraction endpoint returned non-JSON body")
            raise ExtractionFailure(
                "Extraction endpoint returned a non-JSON response",
                step_id=step_id,
                status_code=response.status_code
            ) from e

        fields = parse_extraction_output(data, step_id, current_fields)
        return ExtractionResult(fields=fields, summary=build_summary(fields))

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "RemoteFieldExtractor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
