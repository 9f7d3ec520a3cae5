"""LLM prompt template for behavior classification.

The prompt asks a downstream model for a JSON judgment about the
session. Nothing here calls a model; the prompt is handed to whichever
relay the caller uses.
"""

from __future__ import annotations

import json
from typing import Any

BEHAVIOR_PROMPT_TEMPLATE = """You are a UX behavior analyst.
Classify the user session into one primary behavior type and up to two secondary types.
Then provide evidence-based reasoning and 3 actionable UX recommendations.
Output JSON only.
Schema:
{schema}
Session summary:
{summary_block}"""

JUDGMENT_SCHEMA = (
    '{"primary_type":"...","secondary_types":["..."],"confidence":0-1,'
    '"evidence":["..."],"recommendations":["..."]}'
)


def build_behavior_prompt(summary: dict[str, Any]) -> str:
    """Render the classification prompt for a wire-format session summary.

    Args:
        summary: The camelCase summary dict (``SessionSummary.to_wire()``).

    Returns:
        The prompt string.
    """
    return BEHAVIOR_PROMPT_TEMPLATE.format(
        schema=JUDGMENT_SCHEMA,
        summary_block=json.dumps(summary, indent=2, ensure_ascii=False),
    )
