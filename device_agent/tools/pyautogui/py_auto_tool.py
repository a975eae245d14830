# device_agent/tools/pyautogui/py_auto_tool.py
import logging
import sys
import time
from typing import Sequence, Tuple

logger = logging.getLogger(__name__)

# names the model uses -> pyautogui key names
KEY_ALIASES = {
    "control": "ctrl",
    "cmd": "command",
    "meta": "command" if sys.platform == "darwin" else "win",
    "super": "win",
    "option": "alt",
    "arrowup": "up",
    "arrowdown": "down",
    "arrowleft": "left",
    "arrowright": "right",
    "escape": "esc",
    "return": "enter",
    "space": "space",
    "pagedown": "pagedown",
    "pageup": "pageup",
}

SCROLL_CLICKS = 5


def normalize_keys(combo: str) -> list:
    parts = [p for p in combo.replace("+", " ").split() if p]
    return [KEY_ALIASES.get(p.lower(), p.lower()) for p in parts]


class PyAutoTool:
    """Thin wrapper over pyautogui (and pyperclip for the clipboard) used by the desktop operator."""

    def __init__(self, delay=0.2, move_duration=0.15, gui=None, clipboard=None):
        # imported here: pyautogui needs a live display at import time
        if gui is None:
            import pyautogui as gui
        if clipboard is None:
            import pyperclip as clipboard

        self.gui = gui
        self.clipboard = clipboard
        self.delay = delay
        self.move_duration = move_duration
        gui.FAILSAFE = False
        gui.PAUSE = 0.05
        logger.debug("PyAutoGUI tool initialized")

    # ------------------------------------------------------------------
    # capture
    # ------------------------------------------------------------------
    def logical_size(self) -> Tuple[int, int]:
        size = self.gui.size()
        return int(size[0]), int(size[1])

    def screenshot(self):
        """PIL image of the primary display."""
        return self.gui.screenshot()

    # ------------------------------------------------------------------
    # pointer
    # ------------------------------------------------------------------
    def _move_and_wait(self, x, y):
        self.gui.moveTo(x, y, duration=self.move_duration)
        time.sleep(0.05)

    def click(self, x, y):
        logger.info("click(%s, %s)", x, y)
        self._move_and_wait(x, y)
        self.gui.click()

    def double_click(self, x, y):
        logger.info("double_click(%s, %s)", x, y)
        self._move_and_wait(x, y)
        self.gui.doubleClick()
        time.sleep(self.delay)

    def right_click(self, x, y):
        logger.info("right_click(%s, %s)", x, y)
        self._move_and_wait(x, y)
        self.gui.rightClick()

    def drag(self, x1, y1, x2, y2, duration=0.3):
        logger.info("drag(%s, %s -> %s, %s)", x1, y1, x2, y2)
        self._move_and_wait(x1, y1)
        self.gui.dragTo(x2, y2, duration=duration, button="left")

    def scroll(self, direction, x=None, y=None, clicks=SCROLL_CLICKS):
        logger.info("scroll(%s) at (%s, %s)", direction, x, y)
        if x is not None and y is not None:
            self._move_and_wait(x, y)
        if direction == "up":
            self.gui.scroll(clicks)
        elif direction == "down":
            self.gui.scroll(-clicks)
        elif direction == "left":
            self.gui.hscroll(-clicks)
        elif direction == "right":
            self.gui.hscroll(clicks)

    # ------------------------------------------------------------------
    # keyboard
    # ------------------------------------------------------------------
    def type_text(self, text, interval=0.02):
        logger.info("type_text(%r)", text)
        self.gui.write(text, interval=interval)

    def paste_text(self, text, modifier="ctrl"):
        """Type through the clipboard, restoring whatever it held before."""
        logger.info("paste_text(%r)", text)
        original = self.clipboard.paste()
        try:
            self.clipboard.copy(text)
            self.gui.hotkey(modifier, "v")
            time.sleep(0.05)
        finally:
            self.clipboard.copy(original)

    def hotkey(self, keys: Sequence[str]):
        logger.info("hotkey(%s)", keys)
        self.gui.hotkey(*keys)

    def keypress(self, key):
        logger.info("keypress(%s)", key)
        self.gui.press(key)
