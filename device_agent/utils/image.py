# device_agent/utils/image.py
import base64
import io
from typing import Sequence, Tuple

from PIL import Image, ImageDraw

from device_agent.core.models import ParsedAction, Point, ScreenshotContext


def decode_screenshot(b64: str) -> Image.Image:
    img = Image.open(io.BytesIO(base64.b64decode(b64)))
    img.load()
    return img


def screenshot_context(b64: str, scale_factor: float) -> ScreenshotContext:
    """Frame of a base64 screenshot; raises if the bytes are not an image."""
    with decode_screenshot(b64) as img:
        width, height = img.size
    return ScreenshotContext(pixel_width=width, pixel_height=height, scale_factor=scale_factor or 1.0)


def _to_pixels(point: Point, context: ScreenshotContext) -> Tuple[float, float]:
    scale = context.scale_factor or 1.0
    return point.x * scale, point.y * scale


def draw_big_dot(draw: ImageDraw.ImageDraw, point, color="red", r=12):
    x, y = point
    draw.ellipse([x - r, y - r, x + r, y + r], outline=color, width=4)
    draw.ellipse([x - 3, y - 3, x + 3, y + 3], fill=color)


def mark_click_position(b64: str, context: ScreenshotContext, actions: Sequence[ParsedAction]) -> str:
    """
    Set-of-Marks overlay: the screenshot with every predicted target marked,
    and drag/swipe paths drawn start to end. Returns base64 PNG.
    """
    img = decode_screenshot(b64).convert("RGB")
    draw = ImageDraw.Draw(img)

    for action in actions:
        if action.start is None:
            continue
        start = _to_pixels(action.start, context)
        draw_big_dot(draw, start)
        if action.end is not None:
            end = _to_pixels(action.end, context)
            draw.line([start, end], fill="red", width=4)
            draw_big_dot(draw, end, color="blue")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")
