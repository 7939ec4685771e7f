"""
Natural-language to structured-query translation.

Builds prompts, asks the text2sql model for a JSON query object, parses it,
fills in defaults and placeholders and runs the security validator. Free text
never reaches the data store; only a validated StructuredQuery leaves here.
"""

import asyncio
import json
import logging
import time
from typing import Optional

from pydantic import ValidationError

from query_agent.config import QuerySettings
from query_agent.core.errors import Messages, RequestCancelled, ensure_not_cancelled
from query_agent.core.interfaces import IModelClient
from query_agent.core.models import ChatMessage, StructuredQuery, TranslationResult
from query_agent.query.placeholders import resolve_placeholders
from query_agent.query.prompt_generator import PromptGenerator
from query_agent.schema.catalog import SchemaCatalog
from query_agent.validation.security import SecurityValidator

logger = logging.getLogger(__name__)

_DECODER = json.JSONDecoder()


def extract_json_object(text: Optional[str]) -> Optional[str]:
    """
    Return the first complete JSON object embedded in text, or None.

    Model replies often wrap the object in prose or code fences, and the
    prose may itself contain braces, so each '{' is tried in turn until one
    decodes to an object.
    """
    if not text or not text.strip():
        return None
    start = text.find("{")
    while start >= 0:
        try:
            value, end = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return text[start:end]
        start = text.find("{", end)
    return None


class QueryTranslator:
    """
    Translates utterances into validated structured queries.

    `translate` never raises for expected failures; every outcome is a
    TranslationResult. Only cancellation propagates.
    """

    def __init__(
        self,
        client: IModelClient,
        catalog: SchemaCatalog,
        security: Optional[SecurityValidator] = None,
        settings: Optional[QuerySettings] = None,
        prompts: Optional[PromptGenerator] = None,
    ):
        """
        Initialize query translator.

        Args:
            client: Model client for the text2sql purpose
            catalog: Schema catalog used for prompts
            security: Validator applied to raw text and to the parsed query
            settings: Query limits (default row count, max rows)
            prompts: Prompt generator; built from catalog and settings if omitted
        """
        self.client = client
        self.catalog = catalog
        self.settings = settings or QuerySettings()
        self.security = security or SecurityValidator(catalog, self.settings)
        self.prompts = prompts or PromptGenerator(catalog, self.settings)

    async def translate(
        self,
        utterance: str,
        context: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TranslationResult:
        """
        Translate an utterance into a structured query.

        Args:
            utterance: The user's natural-language request
            context: Recent conversation turns, one `role: content` per line
            cancel_event: Cooperative cancellation signal

        Returns:
            TranslationResult carrying the corrected query on success
        """
        started = time.perf_counter()

        def elapsed() -> int:
            return int((time.perf_counter() - started) * 1000)

        raw_check = self.security.validate_raw_text(utterance)
        if not raw_check.is_valid:
            return TranslationResult(
                success=False, error_message=raw_check.error_text, processing_ms=elapsed()
            )

        response_text: Optional[str] = None
        try:
            ensure_not_cancelled(cancel_event)
            messages = [
                ChatMessage.system(self.prompts.generate_system_prompt()),
                ChatMessage.user(self.prompts.generate_user_prompt(utterance, context)),
            ]
            response_text = await self.client.complete(messages, cancel_event=cancel_event)
            logger.debug(f"Translator response: {response_text}")

            query = self.parse_response(response_text, utterance)
            if query is None:
                return TranslationResult(
                    success=False,
                    error_message=Messages.UNPARSEABLE_QUERY,
                    raw_response=response_text,
                    processing_ms=elapsed(),
                )

            validation = self.security.validate(query)
            if not validation.is_valid:
                return TranslationResult(
                    success=False,
                    error_message=validation.error_text,
                    raw_response=response_text,
                    processing_ms=elapsed(),
                )

            return TranslationResult(
                success=True,
                query=validation.corrected_query or query,
                raw_response=response_text,
                processing_ms=elapsed(),
            )
        except (RequestCancelled, asyncio.CancelledError):
            raise
        except Exception:
            logger.exception(f"Translation failed for: {utterance}")
            return TranslationResult(
                success=False,
                error_message=Messages.TRANSLATION_ERROR,
                raw_response=response_text,
                processing_ms=elapsed(),
            )

    def parse_response(self, text: Optional[str], utterance: str) -> Optional[StructuredQuery]:
        """
        Parse model output into a query with defaults and placeholders applied.

        Returns:
            The parsed query, or None when the output holds no usable JSON object
        """
        payload = extract_json_object(text)
        if payload is None:
            logger.warning(f"No JSON object in translator output: {text!r}")
            return None
        try:
            data = json.loads(payload)
            if not isinstance(data, dict):
                return None
            query = StructuredQuery.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning(f"Unparseable translator output: {exc}")
            return None

        query.original_text = utterance
        if query.limit <= 0:
            query.limit = self.settings.default_result_rows
        return resolve_placeholders(query)
