"""
Quix - Built-in ``common`` tool category.
"""

from datetime import datetime, timezone

from .models import SideEffect, ToolCategory
from .tools import define_tool

COMMON_CATEGORY = "common"

COMMON_SELECTION_PROMPT = """
common: When the user references relative dates like "today", "tomorrow", or "now", you must select this category to resolve the actual date.
Do not assume the current date; always call the tool to get it.
"""


@define_tool(
    description=(
        "Use this tool to resolve expressions like 'today', 'tomorrow', 'next week', "
        "or 'current time' into exact date and time values."
    ),
    side_effect=SideEffect.READ,
)
def get_current_date_time() -> dict:
    return {"success": True, "data": {"date": datetime.now(timezone.utc).isoformat()}}


def common_category() -> ToolCategory:
    """A fresh ``common`` category holding the date/time tool."""
    return ToolCategory(
        key=COMMON_CATEGORY,
        tools=[get_current_date_time],
        selection_prompt=COMMON_SELECTION_PROMPT,
    )
