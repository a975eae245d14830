# device_agent/repos/desktop_operator.py
import base64
import io
import logging
import re
import sys
import time
from typing import Optional

from device_agent.core.adapters import BaseOperator
from device_agent.core.errors import CaptureError, ExecutionError
from device_agent.core.integration_contract import DeviceKind
from device_agent.core.models import ActionType, ParsedAction, ScreenshotOutput
from device_agent.tools.pyautogui.py_auto_tool import normalize_keys

logger = logging.getLogger(__name__)

_TRAILING_NEWLINES = re.compile(r"(?:\\n|\n)+$")


class DesktopOperator(BaseOperator):
    """Drives the local desktop through pyautogui."""

    DEVICE_KIND = DeviceKind.DESKTOP.value
    ACTION_SPACES = [
        "click(start_box='[x1, y1, x2, y2]')",
        "left_double(start_box='[x1, y1, x2, y2]')",
        "right_single(start_box='[x1, y1, x2, y2]')",
        "drag(start_box='[x1, y1, x2, y2]', end_box='[x3, y3, x4, y4]')",
        "hotkey(key='')",
        "type(content='') #If you want to submit your input, use \"\\n\" at the end of `content`.",
        "scroll(start_box='[x1, y1, x2, y2]', direction='down or up or right or left')",
        "wait() #Sleep for 5s and take a screenshot to check for any changes.",
        "finished()",
        "call_user() # Submit the task and call the user when the task is unsolvable, or when you need the user's help.",
    ]

    def __init__(self, tool=None, scale_factor: Optional[float] = None, wait_seconds: float = 5.0,
                 platform: Optional[str] = None, jpeg_quality: int = 75):
        self._tool = tool
        self.scale_factor = scale_factor
        self.wait_seconds = wait_seconds
        self.platform = platform or sys.platform
        self.jpeg_quality = jpeg_quality

    @property
    def tool(self):
        if self._tool is None:
            from device_agent.tools.pyautogui.py_auto_tool import PyAutoTool
            self._tool = PyAutoTool()
        return self._tool

    # ------------------------------------------------------------------
    # screenshot
    # ------------------------------------------------------------------
    def screenshot(self) -> ScreenshotOutput:
        try:
            logical_w, logical_h = self.tool.logical_size()
            image = self.tool.screenshot()
        except Exception as e:
            logger.error("[DesktopOperator] Screenshot error: %s", e)
            raise CaptureError(f"desktop capture failed: {e}") from e

        if not logical_w or not logical_h:
            raise CaptureError("display reported an empty logical size")

        scale = self.scale_factor or round(image.width / logical_w, 4)
        physical = (round(logical_w * scale), round(logical_h * scale))
        logger.info("[DesktopOperator] logical=%sx%s scale=%s physical=%sx%s",
                    logical_w, logical_h, scale, physical[0], physical[1])
        if image.size != physical:
            image = image.resize(physical)

        buf = io.BytesIO()
        image.convert("RGB").save(buf, format="JPEG", quality=self.jpeg_quality)
        return ScreenshotOutput(base64=base64.b64encode(buf.getvalue()).decode("ascii"), scale_factor=scale)

    # ------------------------------------------------------------------
    # execute
    # ------------------------------------------------------------------
    def execute(self, action: ParsedAction) -> None:
        action_type = action.action_type
        logger.info("[DesktopOperator] execute %s %s", action_type, action.action_inputs)
        try:
            self._dispatch(action)
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(f"desktop injection failed: {e}", action_type=action_type) from e

    def _dispatch(self, action: ParsedAction):
        t = action.action_type
        start = action.start

        if t == ActionType.CLICK:
            self.tool.click(round(start.x), round(start.y))
        elif t == ActionType.DOUBLE_CLICK:
            self.tool.double_click(round(start.x), round(start.y))
        elif t == ActionType.RIGHT_CLICK:
            self.tool.right_click(round(start.x), round(start.y))
        elif t == ActionType.DRAG:
            end = action.end
            self.tool.drag(round(start.x), round(start.y), round(end.x), round(end.y))
        elif t == ActionType.TYPE:
            self._type(action.content or "")
        elif t == ActionType.HOTKEY:
            keys = normalize_keys(action.key or "")
            if not keys:
                raise ExecutionError("hotkey without keys", action_type=t)
            self.tool.hotkey(keys)
        elif t == ActionType.PRESS_KEY:
            keys = normalize_keys(action.key or "")
            if not keys:
                raise ExecutionError("press without key", action_type=t)
            self.tool.keypress(keys[0])
        elif t == ActionType.SCROLL:
            x, y = (round(start.x), round(start.y)) if start else (None, None)
            self.tool.scroll(action.direction, x, y)
        elif t == ActionType.WAIT:
            time.sleep(self.wait_seconds)
        else:
            logger.warning("[DesktopOperator] Unsupported action: %s", t)

    def _uses_clipboard(self, text: str) -> bool:
        # native key events cannot produce non-ASCII text, and drop characters on Windows
        return self.platform.startswith("win") or not text.isascii()

    def _type(self, content: str):
        submit = bool(_TRAILING_NEWLINES.search(content))
        text = _TRAILING_NEWLINES.sub("", content)

        if text:
            if self._uses_clipboard(text):
                modifier = "command" if self.platform == "darwin" else "ctrl"
                self.tool.paste_text(text, modifier=modifier)
            else:
                self.tool.type_text(text)
        if submit:
            self.tool.keypress("enter")
