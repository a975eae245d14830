# device_agent/repos/adb_operator.py
import base64
import logging
import time
from typing import Optional

from device_agent.core.adapters import BaseOperator
from device_agent.core.errors import CaptureError, ConfigurationError, ExecutionError
from device_agent.core.integration_contract import DeviceKind
from device_agent.core.models import ActionType, ParsedAction, ScreenshotOutput
from device_agent.tools.adb.adb_tool import AdbCommandError, AdbTool, get_android_device_id

logger = logging.getLogger(__name__)

ADB_IME = "com.android.adbkeyboard/.AdbIME"
CLEAR_FIELD_PRESSES = 50
SCROLL_DISTANCE = 200

# Key vocabulary advertised to the model in the hotkey() manifest entry.
KEYEVENTS = {
    "enter": "KEYCODE_ENTER",
    "back": "KEYCODE_BACK",
    "home": "KEYCODE_HOME",
    "backspace": "67",
    "delete": "112",
    "menu": "KEYCODE_MENU",
    "power": "KEYCODE_POWER",
    "volume_up": "KEYCODE_VOLUME_UP",
    "volume_down": "KEYCODE_VOLUME_DOWN",
    "mute": "KEYCODE_VOLUME_MUTE",
    "lock": "26",
}
# press(key=...) additionally knows the recent-apps button
PRESS_KEYEVENTS = dict(KEYEVENTS, recent="KEYCODE_APP_SWITCH")


class AdbOperator(BaseOperator):
    """Drives an attached Android device through adb shell commands."""

    DEVICE_KIND = DeviceKind.MOBILE.value
    ACTION_SPACES = [
        "click(start_box='[x1, y1, x2, y2]')",
        "type(content='')",
        "swipe(start_box='[x1, y1, x2, y2]', end_box='[x3, y3, x4, y4]')",
        "scroll(start_box='[x1, y1, x2, y2]', direction='down or up or right or left') # You must spesify the start_box",
        "hotkey(key='') # The available keys: enter,back,home,backspace,delete,menu,power,volume_up,volume_down,mute,lock",
        "wait() #Sleep for 2s and take a screenshot to check for any changes.",
        "press_home() # Press the home key",
        "open_app(package_name='') # Open an app by its package name",
        "finished()",
        "call_user() # Submit the task and call the user when the task is unsolvable, or when you need the user's help.",
    ]

    def __init__(self, device_id: Optional[str] = None, tool: Optional[AdbTool] = None,
                 wait_seconds: float = 2.0, adb_path: str = "adb"):
        if tool is None:
            device_id = device_id or get_android_device_id(adb_path)
            tool = AdbTool(device_id, adb_path=adb_path)
        self.tool = tool
        self.device_id = tool.device_id
        self.wait_seconds = wait_seconds
        self._adb_ime_ready = False

    # ------------------------------------------------------------------
    # screenshot
    # ------------------------------------------------------------------
    def screenshot(self) -> ScreenshotOutput:
        logger.info("[AdbOperator] Taking screenshot of %s", self.device_id)
        try:
            data = self.tool.exec_out("screencap", "-p")
        except AdbCommandError as e:
            logger.error("[AdbOperator] Screenshot error: %s", e)
            raise CaptureError(f"screencap failed on {self.device_id}: {e}") from e
        if not data:
            raise CaptureError(f"screencap returned no data for {self.device_id}")
        return ScreenshotOutput(base64=base64.b64encode(data).decode("ascii"), scale_factor=1.0)

    # ------------------------------------------------------------------
    # execute
    # ------------------------------------------------------------------
    def execute(self, action: ParsedAction) -> None:
        action_type = action.action_type
        logger.info("[AdbOperator] Executing action: %s %s", action_type, action.action_inputs)
        try:
            self._dispatch(action)
        except ExecutionError:
            raise
        except Exception as e:
            logger.error("[AdbOperator] Error: %s", e)
            raise ExecutionError(str(e), action_type=action_type) from e

    def _dispatch(self, action: ParsedAction):
        t = action.action_type
        start = action.start

        if t == ActionType.CLICK:
            self.tool.shell("input", "tap", round(start.x), round(start.y))

        elif t == ActionType.DRAG:
            end = action.end
            self.tool.shell("input", "swipe", round(start.x), round(start.y),
                            round(end.x), round(end.y), 300)

        elif t == ActionType.SCROLL:
            self._scroll(action)

        elif t == ActionType.TYPE:
            self._type(action.content or "")

        elif t == ActionType.HOTKEY:
            self._keyevent(action.key, KEYEVENTS)

        elif t == ActionType.PRESS_KEY:
            self._keyevent(action.key, PRESS_KEYEVENTS)

        elif t == ActionType.OPEN_APP:
            if not action.package_name:
                logger.warning("[AdbOperator] No package name provided for open_app action")
                return
            logger.info("[AdbOperator] Opening app: %s", action.package_name)
            self.tool.shell("monkey", "-p", action.package_name,
                            "-c", "android.intent.category.LAUNCHER", "1")

        elif t == ActionType.WAIT:
            time.sleep(self.wait_seconds)

        else:
            logger.warning("[AdbOperator] Unsupported action: %s", t)

    def _keyevent(self, key: Optional[str], table):
        code = table.get((key or "").strip().lower())
        if code is None:
            logger.warning("[AdbOperator] Unsupported key: %s", key)
            return
        self.tool.shell("input", "keyevent", code)

    def _scroll(self, action: ParsedAction):
        start = action.start
        if start is None:
            raise ExecutionError("The start_box is required for scroll action.", action_type=action.action_type)

        x, y = start.x, start.y
        # content follows the finger, so the swipe goes against the scroll direction
        end_x, end_y = {
            "up": (x, y + SCROLL_DISTANCE),
            "down": (x, y - SCROLL_DISTANCE),
            "left": (x + SCROLL_DISTANCE, y),
            "right": (x - SCROLL_DISTANCE, y),
        }.get(action.direction, (x, y))
        self.tool.shell("input", "swipe", round(x), round(y), round(end_x), round(end_y), 100)

    # ------------------------------------------------------------------
    # text input via ADB Keyboard
    # ------------------------------------------------------------------
    def _ensure_adb_ime(self):
        if self._adb_ime_ready:
            return
        installed = self.tool.shell("ime", "list", "-a")
        if "adbkeyboard" not in installed:
            raise ConfigurationError(
                f"ADB Keyboard ({ADB_IME}) is not installed on device {self.device_id}; "
                "install it to enable text input",
                action_type=ActionType.TYPE.value,
            )
        current = self.tool.shell("settings", "get", "secure", "default_input_method")
        if ADB_IME not in current:
            self.tool.shell("ime", "enable", ADB_IME)
            self.tool.shell("ime", "set", ADB_IME)
        self._adb_ime_ready = True

    def _type(self, content: str):
        text = content.replace("\\n", "").replace("\n", "")
        if not text:
            logger.warning("[AdbOperator] Empty content for type action, nothing to input")
            return

        self._ensure_adb_ime()
        # clear whatever the focused field already holds
        self.tool.shell("input", "keyevent", *(["KEYCODE_DEL"] * CLEAR_FIELD_PRESSES))

        encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
        logger.info("[AdbOperator] Input base64 content %s (origin: %r)", encoded, content)
        self.tool.shell("am", "broadcast", "-a", "ADB_INPUT_B64", "--es", "msg", encoded)
