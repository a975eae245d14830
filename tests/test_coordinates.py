import pytest

from device_agent.core.errors import BoxParseError
from device_agent.core.models import ScreenshotContext
from device_agent.parser.coordinates import map_box_to_point, parse_box

PHONE = ScreenshotContext(pixel_width=1080, pixel_height=2400, scale_factor=1.0)


def test_maps_box_centre_to_device_pixels():
    point = map_box_to_point("[500,500,600,600]", (1000, 1000), PHONE)
    assert (point.x, point.y) == (594, 1320)


def test_mapping_is_deterministic():
    a = map_box_to_point("[123, 456, 789, 901]", (1000, 1000), PHONE)
    b = map_box_to_point("[123, 456, 789, 901]", (1000, 1000), PHONE)
    assert a == b


@pytest.mark.parametrize("box", [
    "[0,0,0,0]",
    "[1000,1000,1000,1000]",
    "[999,1,3,998]",
    "[-50,-50,20,20]",
    "[1500,2000,1800,2500]",
])
def test_mapped_point_stays_inside_screen(box):
    point = map_box_to_point(box, (1000, 1000), PHONE)
    assert 0 <= point.x <= PHONE.pixel_width
    assert 0 <= point.y <= PHONE.pixel_height


def test_point_box_and_tokens():
    assert parse_box("(250,750)") == (250, 750, 250, 750)
    assert parse_box("<|box_start|>(100,200)<|box_end|>") == (100, 200, 100, 200)
    assert parse_box("<|box_start|>(1,2,3,4)<|box_end|>") == (1, 2, 3, 4)


def test_scale_factor_moves_point_to_logical_space():
    retina = ScreenshotContext(pixel_width=2880, pixel_height=1800, scale_factor=2.0)
    point = map_box_to_point("[500,500,500,500]", (1000, 1000), retina)
    assert (point.x, point.y) == (720, 450)


def test_custom_factors():
    point = map_box_to_point("[14,14,14,14]", (28, 28), PHONE)
    assert (point.x, point.y) == (540, 1200)


def test_rounds_to_three_decimals():
    ctx = ScreenshotContext(pixel_width=1000, pixel_height=1000, scale_factor=3.0)
    point = map_box_to_point("[100,100,100,100]", (1000, 1000), ctx)
    assert point.x == 33.333


@pytest.mark.parametrize("box", ["", "[1,2,3]", "no numbers here", "[1,2,3,4,5]"])
def test_malformed_box_raises(box):
    with pytest.raises(BoxParseError):
        map_box_to_point(box, (1000, 1000), PHONE)
