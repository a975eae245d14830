# device_agent/core/history.py
from typing import List, Sequence, Tuple

from device_agent.core.models import ConversationTurn


def trim_history(
    conversations: Sequence[ConversationTurn],
    max_images: int,
) -> Tuple[List[ConversationTurn], List[str]]:
    """
    Context window sent to the model: the instruction turn plus the turns of
    the last `max_images` rounds, and the screenshots those rounds carry.

    Pure function of its inputs, so the same history always yields the same prompt.
    """
    if not conversations:
        return [], []

    head, rest = list(conversations[:1]), list(conversations[1:])

    # round boundaries: every human turn carrying a screenshot starts a round
    starts = [i for i, turn in enumerate(rest) if turn.screenshot_base64 is not None]
    if max_images > 0 and len(starts) > max_images:
        rest = rest[starts[-max_images]:]
    elif max_images <= 0 and starts:
        rest = rest[starts[-1]:]

    trimmed = head + rest
    images = [t.screenshot_base64 for t in trimmed if t.screenshot_base64 is not None]
    return trimmed, images
