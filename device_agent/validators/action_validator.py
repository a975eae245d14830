# device_agent/validators/action_validator.py
from typing import Any, Dict, Optional

from device_agent.core.models import ActionType, ParsedAction, Point, ScreenshotContext

# actions that cannot run without a target point
NEEDS_START = {
    ActionType.CLICK.value,
    ActionType.DOUBLE_CLICK.value,
    ActionType.RIGHT_CLICK.value,
    ActionType.DRAG.value,
}
NEEDS_END = {ActionType.DRAG.value}


class ActionValidator:
    """Checks a parsed action is executable in the current frame before it reaches the operator."""

    def validate(self, action: ParsedAction, context: Optional[ScreenshotContext] = None) -> Dict[str, Any]:
        if action.action_type in NEEDS_START and action.start is None:
            return {"validation_status": "fail", "reason": f"{action.action_type} has no start_box"}
        if action.action_type in NEEDS_END and action.end is None:
            return {"validation_status": "fail", "reason": f"{action.action_type} has no end_box"}

        if context is not None:
            for label, point in (("start", action.start), ("end", action.end)):
                if point is not None and not self._inside(point, context):
                    return {
                        "validation_status": "fail",
                        "reason": f"{label} point ({point.x}, {point.y}) is outside the screen",
                    }

        return {"validation_status": "pass", "reason": "action is executable"}

    @staticmethod
    def _inside(point: Point, context: ScreenshotContext) -> bool:
        scale = context.scale_factor or 1.0
        return (0 <= point.x <= context.pixel_width / scale
                and 0 <= point.y <= context.pixel_height / scale)
