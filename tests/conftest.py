import base64
import io
from pathlib import Path

import pytest
from PIL import Image

from device_agent.agents.model_client import InvokeOutput
from device_agent.core.adapters import BaseOperator
from device_agent.core.errors import CaptureError
from device_agent.core.models import ScreenshotOutput
from device_agent.core.registry import registry


@pytest.fixture(autouse=True)
def isolate_registry():
    """
    Save & restore registered operators around each test to avoid cross-test leakage.
    """
    saved_operators = dict(registry._operators)
    saved_contracts = dict(registry._contracts)
    try:
        yield
    finally:
        registry._operators.clear()
        registry._operators.update(saved_operators)
        registry._contracts.clear()
        registry._contracts.update(saved_contracts)


@pytest.fixture
def tmp_image(tmp_path: Path):
    """
    Create a small plain PNG on disk.
    """
    img_path = tmp_path / "sample.png"
    img = Image.new("RGB", (200, 200), color=(255, 255, 255))
    img.save(img_path)
    return str(img_path)


def png_base64(width=1080, height=2400, color=(255, 255, 255)) -> str:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=color).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.fixture(scope="session")
def phone_screenshot():
    """A 1080x2400 screenshot, base64 PNG."""
    return png_base64(1080, 2400)


class FakeOperator(BaseOperator):
    """In-memory device: records executed actions, replays queued screenshot failures."""

    DEVICE_KIND = "mobile"
    ACTION_SPACES = ["click(start_box='[x1, y1, x2, y2]')", "open_app(package_name='')", "finished()"]

    def __init__(self, screenshot_b64, scale_factor=1.0, screenshot_errors=0, execute_error=None):
        self.screenshot_b64 = screenshot_b64
        self.scale_factor = scale_factor
        self.screenshot_errors = screenshot_errors
        self.execute_error = execute_error
        self.screenshot_calls = 0
        self.executed = []

    def screenshot(self):
        self.screenshot_calls += 1
        if self.screenshot_errors:
            self.screenshot_errors -= 1
            raise CaptureError("device offline")
        return ScreenshotOutput(base64=self.screenshot_b64, scale_factor=self.scale_factor)

    def execute(self, action):
        self.executed.append(action)
        if self.execute_error is not None:
            raise self.execute_error


class FakeModel:
    """Returns queued predictions in order; an Exception in the queue is raised instead."""

    def __init__(self, predictions):
        self.predictions = list(predictions)
        self.calls = []

    def invoke(self, conversations, images, system_prompt=None):
        self.calls.append({"conversations": list(conversations), "images": list(images),
                           "system_prompt": system_prompt})
        item = self.predictions.pop(0) if len(self.predictions) > 1 else self.predictions[0]
        if isinstance(item, Exception):
            raise item
        return InvokeOutput(prediction=item, cost_ms=1.0)

    def invoke_text_only(self, system_prompt, user_message):
        self.calls.append({"system_prompt": system_prompt, "user": user_message})
        item = self.predictions.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def make_operator(phone_screenshot):
    def _make(screenshot_b64=None, **kwargs):
        return FakeOperator(screenshot_b64 or phone_screenshot, **kwargs)
    return _make


@pytest.fixture
def make_model():
    return FakeModel
