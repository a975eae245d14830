import base64
import io

import pytest
from PIL import Image

from device_agent.core.errors import CaptureError, ExecutionError
from device_agent.core.models import ParsedAction, Point
from device_agent.repos.desktop_operator import DesktopOperator
from device_agent.tools.pyautogui.py_auto_tool import normalize_keys


class FakeGuiTool:
    def __init__(self, logical=(1440, 900), physical=(2880, 1800)):
        self.logical = logical
        self.physical = physical
        self.calls = []

    def logical_size(self):
        return self.logical

    def screenshot(self):
        return Image.new("RGB", self.physical, color=(0, 0, 0))

    def __getattr__(self, name):
        def record(*args, **kwargs):
            self.calls.append((name, args, kwargs))
        return record


def action(action_type, **kwargs):
    return ParsedAction(action_type=action_type, raw_type=action_type, **kwargs)


@pytest.fixture
def tool():
    return FakeGuiTool()


def make(tool, platform="linux"):
    return DesktopOperator(tool=tool, platform=platform, wait_seconds=0)


def test_screenshot_reports_scale_and_physical_size(tool):
    shot = make(tool).screenshot()
    assert shot.scale_factor == 2.0
    img = Image.open(io.BytesIO(base64.b64decode(shot.base64)))
    assert img.format == "JPEG"
    assert img.size == (2880, 1800)


def test_screenshot_resized_to_configured_scale():
    tool = FakeGuiTool(logical=(1000, 500), physical=(1000, 500))
    shot = DesktopOperator(tool=tool, scale_factor=1.5).screenshot()
    img = Image.open(io.BytesIO(base64.b64decode(shot.base64)))
    assert img.size == (1500, 750)
    assert shot.scale_factor == 1.5


def test_screenshot_failure_is_capture_error():
    class Broken(FakeGuiTool):
        def screenshot(self):
            raise OSError("no display")

    with pytest.raises(CaptureError):
        make(Broken()).screenshot()


def test_clicks_use_rounded_points(tool):
    op = make(tool)
    op.execute(action("click", start=Point(x=10.4, y=20.6)))
    op.execute(action("double_click", start=Point(x=1, y=2)))
    op.execute(action("right_click", start=Point(x=3, y=4)))
    assert [(name, args) for name, args, _ in tool.calls] == [
        ("click", (10, 21)), ("double_click", (1, 2)), ("right_click", (3, 4)),
    ]


def test_drag(tool):
    make(tool).execute(action("drag", start=Point(x=1, y=2), end=Point(x=3, y=4)))
    assert tool.calls[0][:2] == ("drag", (1, 2, 3, 4))


def test_ascii_text_is_typed(tool):
    make(tool).execute(action("type", content="hello"))
    assert tool.calls == [("type_text", ("hello",), {})]


@pytest.mark.parametrize("content", ["search\\n", "search\n"])
def test_trailing_newline_submits(tool, content):
    make(tool).execute(action("type", content=content))
    assert tool.calls == [("type_text", ("search",), {}), ("keypress", ("enter",), {})]


def test_non_ascii_text_goes_through_clipboard(tool):
    make(tool).execute(action("type", content="你好"))
    assert tool.calls == [("paste_text", ("你好",), {"modifier": "ctrl"})]


def test_windows_always_pastes(tool):
    make(tool, platform="win32").execute(action("type", content="hello"))
    assert tool.calls[0][0] == "paste_text"


def test_macos_pastes_with_command(tool):
    make(tool, platform="darwin").execute(action("type", content="café"))
    assert tool.calls == [("paste_text", ("café",), {"modifier": "command"})]


def test_hotkey_normalizes_keys(tool):
    make(tool).execute(action("hotkey", key="Control+ArrowUp"))
    assert tool.calls == [("hotkey", (["ctrl", "up"],), {})]


def test_hotkey_without_keys_fails(tool):
    with pytest.raises(ExecutionError) as exc:
        make(tool).execute(action("hotkey", key=" "))
    assert exc.value.action_type == "hotkey"


def test_scroll_at_point(tool):
    make(tool).execute(action("scroll", start=Point(x=5, y=6), direction="down"))
    assert tool.calls == [("scroll", ("down", 5, 6), {})]


def test_scroll_without_point(tool):
    make(tool).execute(action("scroll", direction="left"))
    assert tool.calls == [("scroll", ("left", None, None), {})]


def test_unknown_action_is_a_no_op(tool):
    make(tool).execute(action("open_app", package_name="com.x"))
    assert tool.calls == []


def test_injection_errors_are_wrapped():
    class Broken(FakeGuiTool):
        def click(self, x, y):
            raise RuntimeError("fail-safe triggered")

    with pytest.raises(ExecutionError) as exc:
        make(Broken()).execute(action("click", start=Point(x=1, y=1)))
    assert exc.value.action_type == "click"


def test_normalize_keys():
    assert normalize_keys("cmd space") == ["command", "space"]
    assert normalize_keys("ctrl+shift+Escape") == ["ctrl", "shift", "esc"]
    assert normalize_keys("") == []
