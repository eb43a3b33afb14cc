"""
Quix - Prompt templates for selection, planning, and execution.
"""

import json
from typing import Optional

from .models import ToolDescriptor

NONE_CATEGORY = "none"

SLACK_FORMATTING = """
Format every response as a Slack message using Slack's supported markdown:
- Use <URL|Text> for links instead of [text](URL).
- Use *bold* instead of **bold**.
- Separate list items with blank lines.
- Keep code in triple-backtick blocks.
"""


def base_prompt(author_name: Optional[str] = None, assistant_name: str = "Quix") -> str:
    """Persona shared by every stage of a run."""
    prompt = f"""
You are {assistant_name}, a helpful assistant that must use the available tools when relevant to answer the user's queries. These queries are sent to you either directly or by tagging you on Slack.
You must not make up information; use the tools to answer questions about the connected systems.
You must answer the user's queries in a clear and concise manner.
You should ask the user to provide more information only if it is required to answer the question or to perform the task.
"""
    if author_name:
        prompt += f"The user you are talking to is {author_name}.\n"
    return prompt + SLACK_FORMATTING


TOOL_SELECTION_DESCRIPTION = (
    "Select the tool categories needed to answer the user's query. "
    f"If no category is needed, select '{NONE_CATEGORY}' and put a direct answer "
    "to the user's query in the answer field."
)

REASON_DESCRIPTION = (
    "An explanation of why the selected tool categories were chosen. If no tools were "
    "selected, this must include a direct answer to the user's query using general knowledge."
)


def selection_prompt(base: str, category_prompts: list[str]) -> str:
    prompts = "\n".join(p.strip() for p in category_prompts if p and p.strip())
    return f"{base}\n{prompts}\n\n{TOOL_SELECTION_DESCRIPTION}"


def format_tool_catalog(tools: list[ToolDescriptor]) -> str:
    """Serialize name, description, and parameter schema of each tool."""
    return "\n".join(
        f"{t.name}: {t.description} Args: {json.dumps(t.parameter_schema, indent=2)}\n"
        for t in tools
    )


def planner_prompt(tools: list[ToolDescriptor], custom_instructions: list[str]) -> str:
    prompt = f"""
You are a planner. Break the user's request into an ordered list of steps.
Each step is either:
- a tool step: {{"type": "tool", "tool": "<tool name>", "args": {{...}}, "input": "<what this call is for>"}}
- a reasoning step: {{"type": "reason", "input": "<what to think about or tell the user>"}}

Only use tools from this list:
{format_tool_catalog(tools)}
Return an empty list of steps if the request can be answered without tools.
Use the conversation history to fill in arguments the user has already provided.
"""
    if custom_instructions:
        prompt += "\nFollow these workspace instructions:\n" + "\n".join(custom_instructions) + "\n"
    return prompt


def single_category_prompt(
    base: str,
    category: str,
    formatted_plan: str,
    custom_instructions: list[str],
) -> str:
    prompt = f"{base}\nYou are now using the tools from {category} to respond to the user's query.\n"
    if formatted_plan:
        prompt += f"\nSuggested approach:\n{formatted_plan}\n"
    if custom_instructions:
        prompt += "\nAdditional instructions:\n" + "\n".join(custom_instructions) + "\n"
    return prompt


def multi_step_prompt(base: str, formatted_plan: str, custom_instructions: list[str]) -> str:
    prompt = f"""{base}
The user's request spans several systems. Work through this plan step by step, using the result of each step to inform the next:
{formatted_plan or "(no plan was produced; decide the steps yourself)"}

If a step fails, explain what went wrong instead of inventing a result.
When every step is done, reply to the user with a single consolidated answer.
"""
    if custom_instructions:
        prompt += "\nAdditional instructions:\n" + "\n".join(custom_instructions) + "\n"
    return prompt
