"""
Tenjin Gemini Audit Adapter
Deep-analysis collaborator: one request per frame, JSON response validated
against WellnessAudit. No retries here; the next sampler tick tries again.
"""

import logging
from typing import Optional, Type

from google import genai
from google.genai import types
from pydantic import ValidationError

from tenjin.core.config import settings
from tenjin.core.exceptions import AnalysisError
from tenjin.models.schemas import AUDIT_RESPONSE_SCHEMA, WellnessAudit

logger = logging.getLogger("tenjin.gemini.audit")


class GeminiAuditClient:

    def __init__(self, api_key: str = settings.GEMINI_API_KEY, model: str = settings.AUDIT_MODEL,
                 client: Optional[genai.Client] = None):
        self.model = model
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise AnalysisError("GEMINI_API_KEY is not configured")
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def analyze(self, image: bytes, instruction: str,
                      schema: Type[WellnessAudit] = WellnessAudit) -> WellnessAudit:
        client = self._get_client()
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=image, mime_type="image/jpeg"),
                    instruction,
                ],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=AUDIT_RESPONSE_SCHEMA,
                ),
            )
        except Exception as exc:
            raise AnalysisError(f"generate_content failed: {exc}") from exc

        text = response.text
        if not text:
            raise AnalysisError("empty response from audit model")
        try:
            audit = schema.model_validate_json(text)
        except ValidationError as exc:
            raise AnalysisError(f"audit failed schema validation: {exc.error_count()} error(s)") from exc

        logger.debug("Audit received: %s", audit.summary)
        return audit
