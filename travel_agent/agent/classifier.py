from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from pydantic import ValidationError

from travel_agent.agent import intents, prompts
from travel_agent.agent.llm import CompletionService, parse_json_reply
from travel_agent.agent.schemas import ConversationTurn, ExtractedParameters
from travel_agent.utils.config import settings

logger = logging.getLogger(__name__)


class ExtractionTier(str, Enum):
    """Which step of the extraction ladder produced the result."""

    EXTRACTING = "extracting"
    RECLASSIFYING = "reclassifying"
    DEFAULTED = "defaulted"


@dataclass(frozen=True)
class ExtractionOutcome:
    parameters: ExtractedParameters
    tier: ExtractionTier


class ExtractionRejected(ValueError):
    """Structured extraction produced output the ladder must not accept."""


class IntentExtractor:
    """Intent classification + parameter extraction with a two-step fallback.

    1. Structured extraction: full intent table in the prompt, pure JSON reply.
    2. If that reply is not JSON or names an unknown intent: a narrow
       classification-only call returning a single label.
    3. If that call fails too: ``general_question``.

    ``extract`` never raises.
    """

    def __init__(
        self,
        completion: CompletionService,
        extraction_temperature: Optional[float] = None,
        extraction_max_tokens: Optional[int] = None,
        classification_temperature: Optional[float] = None,
        classification_max_tokens: Optional[int] = None,
    ) -> None:
        self._completion = completion
        self._extraction_temperature = (
            extraction_temperature if extraction_temperature is not None else settings.EXTRACTION_TEMPERATURE
        )
        self._extraction_max_tokens = extraction_max_tokens or settings.LLM_MAX_TOKENS
        self._classification_temperature = (
            classification_temperature if classification_temperature is not None else settings.CLASSIFICATION_TEMPERATURE
        )
        self._classification_max_tokens = classification_max_tokens or settings.CLASSIFICATION_MAX_TOKENS

    async def extract(
        self,
        message: str,
        history: Sequence[ConversationTurn] = (),
        time_context: Optional[str] = None,
    ) -> ExtractionOutcome:
        try:
            params = await self._extract_structured(message, history, time_context)
            outcome = ExtractionOutcome(params, ExtractionTier.EXTRACTING)
        except Exception as e:
            logger.warning("Parameter extraction failed, reclassifying: %s", e)
            try:
                label = await self._classify_only(message)
                outcome = ExtractionOutcome(ExtractedParameters(intent=label), ExtractionTier.RECLASSIFYING)
            except Exception as e2:
                logger.warning("Intent reclassification failed, defaulting: %s", e2)
                outcome = ExtractionOutcome(
                    ExtractedParameters(intent=intents.GENERAL_QUESTION), ExtractionTier.DEFAULTED
                )

        logger.info("Intent %s via %s", outcome.parameters.intent, outcome.tier.value)
        logger.debug("Extracted parameters: %s", outcome.parameters.to_payload())
        return outcome

    async def _extract_structured(
        self,
        message: str,
        history: Sequence[ConversationTurn],
        time_context: Optional[str],
    ) -> ExtractedParameters:
        turns: List[ConversationTurn] = [*history, ConversationTurn(role="user", text=message)]
        reply = await self._completion.complete(
            system=prompts.with_time_context(prompts.extraction_prompt(), time_context),
            messages=turns,
            temperature=self._extraction_temperature,
            max_tokens=self._extraction_max_tokens,
        )
        data = parse_json_reply(reply)
        if not isinstance(data, dict):
            raise ExtractionRejected(f"Expected a JSON object, got {type(data).__name__}")

        declared = data.get("intent")
        if not isinstance(declared, str) or not intents.is_valid_intent(declared.strip()):
            raise ExtractionRejected(f"Unrecognized intent label: {declared!r}")
        data["intent"] = declared.strip()

        try:
            return ExtractedParameters.model_validate(data)
        except ValidationError as e:
            raise ExtractionRejected(f"Extracted parameters failed validation: {e}") from e

    async def _classify_only(self, message: str) -> str:
        reply = await self._completion.complete(
            system=prompts.classification_prompt(),
            messages=[ConversationTurn(role="user", text=message)],
            temperature=self._classification_temperature,
            max_tokens=self._classification_max_tokens,
        )
        return intents.coerce_intent(reply.strip().rstrip("."))
