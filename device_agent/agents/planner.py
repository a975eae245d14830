# device_agent/agents/planner.py
import logging
import re
from typing import List

import yaml

from device_agent.agents.prompts import get_task_planning_prompt

logger = logging.getLogger(__name__)


def _extract_raw_block(text: str) -> str:
    """
    Normalize model output:
    - If it contains a fenced block (```json, ```yaml or bare ```), extract the inner text.
    - Otherwise, return the text as-is.
    """
    if not text:
        return text

    fence_pattern = re.compile(
        r"```(?:json|yaml|yml)?\s*(.*?)```",
        re.DOTALL | re.IGNORECASE
    )
    m = fence_pattern.search(text)
    if m:
        return m.group(1).strip()

    return text.strip()


class Planner:
    """
    Splits an instruction into short steps with a text-only model call.
    The plan is advisory: it is shown to the VLM, it does not drive execution.
    """

    def __init__(self, model, language: str = "en"):
        self.model = model
        self.language = language

    def plan(self, instruction: str) -> List[str]:
        raw_text = self.model.invoke_text_only(get_task_planning_prompt(self.language), instruction)
        text = _extract_raw_block(raw_text)

        # the expected JSON is valid YAML, and YAML tolerates the model's looser output
        try:
            parsed = yaml.safe_load(text)
        except yaml.YAMLError as e:
            logger.error("Planner returned unparseable output: %s", raw_text)
            raise ValueError(f"Planner returned unparseable output: {e}") from e

        if not isinstance(parsed, dict) or not isinstance(parsed.get("steps"), list):
            logger.error("Planner returned invalid structure: %s", raw_text)
            raise ValueError("Planner returned invalid structure (expected a 'steps' list)")

        steps = [str(s).strip() for s in parsed["steps"] if str(s).strip()]
        logger.info("Planner produced %d step(s)", len(steps))
        return steps
