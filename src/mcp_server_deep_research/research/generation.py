"""Language generation adapter over browser-use chat models."""

import logging
from typing import TYPE_CHECKING, TypeVar

import pydantic
from browser_use.llm.messages import SystemMessage, UserMessage
from pydantic import BaseModel

from ..exceptions import GenerationError
from .prompts import RESEARCH_SYSTEM_PROMPT

if TYPE_CHECKING:
    from browser_use.llm.base import BaseChatModel

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class Generator:
    """Turns a prompt (and optional output schema) into text or a validated model.

    Every provider failure surfaces as GenerationError.
    """

    def __init__(self, llm: "BaseChatModel", system_prompt: str | None = RESEARCH_SYSTEM_PROMPT):
        self.llm = llm
        self.system_prompt = system_prompt

    def _messages(self, prompt: str, system: str | None) -> list:
        system = system if system is not None else self.system_prompt
        messages: list = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(UserMessage(content=prompt))
        return messages

    async def generate_object(self, prompt: str, schema: type[ModelT], system: str | None = None) -> ModelT:
        """Generate structured output validated against ``schema``."""
        try:
            response = await self.llm.ainvoke(self._messages(prompt, system), output_format=schema)
        except Exception as e:
            raise GenerationError(f"Structured generation ({schema.__name__}) failed: {e}") from e

        completion = response.completion
        if isinstance(completion, schema):
            return completion
        try:
            if isinstance(completion, str):
                return schema.model_validate_json(completion)
            return schema.model_validate(completion)
        except pydantic.ValidationError as e:
            logger.warning(f"Model output did not match {schema.__name__}: {str(completion)[:200]}")
            raise GenerationError(f"Model output did not match {schema.__name__}") from e

    async def generate_text(self, prompt: str, system: str | None = None) -> str:
        """Generate free text. An empty completion is an error."""
        try:
            response = await self.llm.ainvoke(self._messages(prompt, system))
        except Exception as e:
            raise GenerationError(f"Text generation failed: {e}") from e

        text = str(response.completion or "").strip()
        if not text:
            raise GenerationError("Model returned an empty completion")
        return text
