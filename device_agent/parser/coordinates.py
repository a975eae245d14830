# device_agent/parser/coordinates.py
import re
from typing import List, Sequence, Tuple

from device_agent.core.errors import BoxParseError
from device_agent.core.models import Point, ScreenshotContext

_BOX_TOKENS = re.compile(r"<\|box_start\|>(.*?)<\|box_end\|>", re.DOTALL)
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def parse_box(box: str) -> Tuple[float, float, float, float]:
    """
    Read a model box string into (x1, y1, x2, y2) in the model's quantized space.

    Accepts '[x1, y1, x2, y2]', '(x1,y1,x2,y2)', a bare point '(x, y)' (x2=x1, y2=y1)
    and the same wrapped in <|box_start|>...<|box_end|>.
    """
    if not isinstance(box, str) or not box.strip():
        raise BoxParseError(f"empty box: {box!r}")

    m = _BOX_TOKENS.search(box)
    inner = m.group(1) if m else box
    nums: List[float] = [float(n) for n in _NUMBER.findall(inner)]

    if len(nums) == 2:
        return nums[0], nums[1], nums[0], nums[1]
    if len(nums) == 4:
        return nums[0], nums[1], nums[2], nums[3]
    raise BoxParseError(f"expected 2 or 4 numbers in box, got {len(nums)}: {box!r}")


def _clamp01(v: float) -> float:
    return min(1.0, max(0.0, v))


def map_box_to_point(box: str, factors: Sequence[int], context: ScreenshotContext) -> Point:
    """
    Centre of a quantized box, in absolute device coordinates of `context`'s frame.

    Pixel sizes are those of the captured image; dividing by the scale factor
    moves the point into the coordinate space the device injects in.
    """
    width_factor, height_factor = factors
    x1, y1, x2, y2 = parse_box(box)

    rx = _clamp01((x1 + x2) / 2 / width_factor)
    ry = _clamp01((y1 + y2) / 2 / height_factor)

    scale = context.scale_factor or 1.0
    x = round(rx * context.pixel_width / scale, 3)
    y = round(ry * context.pixel_height / scale, 3)
    return Point(x=x, y=y)
