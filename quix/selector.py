"""
Quix - Tool category selection.

One structured model call decides which tool categories, if any, a user
message needs. The answer is constrained to the configured category keys
plus the ``none`` sentinel.
"""

import logging
from typing import Literal, Optional

from pydantic import BaseModel, Field, create_model

from .exceptions import SelectionError
from .llm import ChatModel
from .models import SelectionResult, ToolCategory, TranscriptMessage
from .prompts import (
    NONE_CATEGORY,
    REASON_DESCRIPTION,
    TOOL_SELECTION_DESCRIPTION,
    base_prompt,
    selection_prompt,
)
from .redact import strip_secrets

logger = logging.getLogger("quix.selector")

SELECTION_FUNCTION = "select_tool_categories"


def selection_schema(keys: list[str]) -> type[BaseModel]:
    """Build the closed-enumeration output schema for *keys*."""
    choice = Literal[tuple(keys) + (NONE_CATEGORY,)]
    return create_model(
        "ToolSelection",
        tool_categories=(
            list[choice],
            Field(..., description="The tool categories required to answer the query."),
        ),
        reason=(str, Field(..., description=REASON_DESCRIPTION)),
        answer=(
            Optional[str],
            Field(None, description=f"Direct answer to the user when '{NONE_CATEGORY}' is selected."),
        ),
    )


class ToolCategorySelector:
    """Decides which tool categories apply to a message."""

    def __init__(self, model: ChatModel, assistant_name: str = "Quix") -> None:
        self._model = model
        self._assistant_name = assistant_name

    async def select(
        self,
        message: str,
        history: list[TranscriptMessage],
        categories: list[ToolCategory],
        author_name: Optional[str] = None,
    ) -> SelectionResult:
        """Return the selected category keys, or NONE with a direct answer.

        Raises:
            ValueError: If *categories* is empty or uses a reserved key.
            SelectionError: If the model call fails or returns invalid output.
        """
        if not categories:
            raise ValueError("At least one tool category is required for selection")
        keys = [c.key for c in categories]
        if NONE_CATEGORY in keys:
            raise ValueError(f"'{NONE_CATEGORY}' is reserved and cannot be a category key")

        system = selection_prompt(
            base_prompt(author_name, self._assistant_name),
            [c.selection_prompt for c in categories],
        )
        messages = list(history)
        custom = [c.default_instructions for c in categories if c.default_instructions]
        if custom:
            messages.append(TranscriptMessage.user("\n".join(custom)))
        messages.append(TranscriptMessage.user(message))

        try:
            output = await self._model.invoke_structured(
                system,
                messages,
                selection_schema(keys),
                name=SELECTION_FUNCTION,
                description=TOOL_SELECTION_DESCRIPTION,
            )
        except Exception as e:
            logger.error("Tool selection failed: %s", strip_secrets(str(e)))
            raise SelectionError(f"Tool category selection failed: {e}") from e

        selected: list[str] = []
        for key in output.tool_categories:
            if key != NONE_CATEGORY and key not in selected:
                selected.append(key)

        logger.info("Tool selection complete: %s", selected or NONE_CATEGORY)
        if not selected:
            return SelectionResult(
                categories=None,
                rationale=output.reason,
                direct_answer=output.answer or output.reason,
            )
        return SelectionResult(categories=tuple(selected), rationale=output.reason)
