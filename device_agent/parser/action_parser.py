# device_agent/parser/action_parser.py
import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from device_agent.core.config import DEFAULT_FACTORS
from device_agent.core.errors import BoxParseError, ParseError
from device_agent.core.models import ActionType, ParsedAction, ScreenshotContext
from device_agent.parser.coordinates import map_box_to_point

logger = logging.getLogger(__name__)

# model vocabulary -> canonical action type
ACTION_ALIASES: Dict[str, ActionType] = {
    "click": ActionType.CLICK,
    "left_single": ActionType.CLICK,
    "tap": ActionType.CLICK,
    "double_click": ActionType.DOUBLE_CLICK,
    "left_double": ActionType.DOUBLE_CLICK,
    "right_click": ActionType.RIGHT_CLICK,
    "right_single": ActionType.RIGHT_CLICK,
    "drag": ActionType.DRAG,
    "swipe": ActionType.DRAG,
    "type": ActionType.TYPE,
    "hotkey": ActionType.HOTKEY,
    "scroll": ActionType.SCROLL,
    "wait": ActionType.WAIT,
    "open_app": ActionType.OPEN_APP,
    "press": ActionType.PRESS_KEY,
    "press_key": ActionType.PRESS_KEY,
    "press_home": ActionType.PRESS_KEY,
    "press_back": ActionType.PRESS_KEY,
    "finished": ActionType.FINISHED,
    "call_user": ActionType.CALL_USER,
    "error": ActionType.ERROR,
    "error_env": ActionType.ERROR,
}

# actions whose name already says which key to press
IMPLIED_KEYS = {"press_home": "home", "press_back": "back"}

# argument a lone positional value is assigned to, e.g. hotkey('enter')
PRIMARY_ARGS = {
    ActionType.CLICK: "start_box",
    ActionType.DOUBLE_CLICK: "start_box",
    ActionType.RIGHT_CLICK: "start_box",
    ActionType.TYPE: "content",
    ActionType.HOTKEY: "key",
    ActionType.PRESS_KEY: "key",
    ActionType.OPEN_APP: "package_name",
    ActionType.FINISHED: "content",
}

SCROLL_DIRECTIONS = ("up", "down", "left", "right")

# a call closes at the ')' that ends its line or precedes the next call, so values may
# hold unescaped quotes and parentheses ("type(content='what's up (now)')")
_CALL = re.compile(r"([A-Za-z_]\w*)\((.*?)\)(?=[ \t]*(?:\n|$|#)|\s*[A-Za-z_]\w*\()", re.DOTALL)
_ARG_SPLIT = re.compile(r",\s*(?=\w+\s*=)")
_KWARG = re.compile(r"^\s*(\w+)\s*=\s*(.*?)\s*$", re.DOTALL)
_ACTION_LINE = re.compile(r"(?:^|\n)[ \t]*Action:[ \t]*")


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        quote = value[0]
        inner = value[1:-1]
        return inner.replace("\\" + quote, quote).replace("\\\\", "\\")
    return value


def _segment(text: str, label: str, stops: Sequence[str]) -> Optional[str]:
    start = text.find(label)
    if start < 0:
        return None
    start += len(label)
    end = len(text)
    for stop in stops:
        idx = text.find(stop, start)
        if 0 <= idx < end:
            end = idx
    return text[start:end].strip()


def split_prediction(text: str) -> Tuple[str, Optional[str], Optional[str]]:
    """
    Split a raw prediction into (thought, reflection, action_text).
    action_text is None when the response has no Action segment.
    """
    m = _ACTION_LINE.search(text)
    if m:
        head, action_text = text[:m.start()], text[m.end():]
    else:
        idx = text.rfind("Action:")
        if idx < 0:
            return text.strip(), None, None
        head, action_text = text[:idx], text[idx + len("Action:"):]

    reflection = _segment(head, "Reflection:", ("Action_Summary:", "Thought:"))
    thought = _segment(head, "Thought:", ("Reflection:",))
    if thought is None:
        thought = _segment(head, "Action_Summary:", ("Reflection:", "Thought:"))
    if thought is None:
        thought = head.strip()
    return thought, reflection, action_text.strip()


def _parse_args(raw_args: str) -> Dict[str, str]:
    args: Dict[str, str] = {}
    if not raw_args.strip():
        return args
    for piece in _ARG_SPLIT.split(raw_args):
        kw = _KWARG.match(piece)
        if kw:
            args[kw.group(1)] = _unquote(kw.group(2))
    if not args:
        # lone positional value, e.g. hotkey('enter')
        args[""] = _unquote(raw_args)
    return args


def parse_invocations(action_text: str) -> List[Tuple[str, Dict[str, str]]]:
    """`name(arg='value', ...)` calls in source order, with unquoted argument values."""
    return [(m.group(1), _parse_args(m.group(2))) for m in _CALL.finditer(action_text)]


class ActionParser:
    """
    Turns model text into ParsedAction values whose coordinates are already
    expressed in device pixels of the screenshot the prediction was made on.
    """

    def __init__(self, factors: Sequence[int] = DEFAULT_FACTORS):
        if len(factors) != 2 or min(factors) <= 0:
            raise ValueError(f"factors must be two positive numbers, got {factors!r}")
        self.factors = (factors[0], factors[1])

    def parse(self, text: str, context: Optional[ScreenshotContext]) -> List[ParsedAction]:
        if not text or not text.strip():
            return []
        try:
            thought, reflection, action_text = split_prediction(text)
            if action_text is None:
                raise ParseError("no Action segment in prediction")
            calls = parse_invocations(action_text)
            if not calls:
                raise ParseError(f"no action invocation in {action_text!r}")
        except ParseError as e:
            logger.warning("[ActionParser] %s", e)
            return []

        return [self._build(name, args, context, thought, reflection) for name, args in calls]

    def _build(self, name: str, args: Dict[str, str], context: Optional[ScreenshotContext],
               thought: str, reflection: Optional[str]) -> ParsedAction:
        canonical = ACTION_ALIASES.get(name)
        action_type = canonical.value if canonical else name

        if "" in args:
            positional = args.pop("")
            primary = PRIMARY_ARGS.get(canonical) if canonical else None
            if primary:
                args[primary] = positional

        fields = dict(
            action_type=action_type,
            raw_type=name,
            action_inputs=dict(args),
            thought=thought,
            reflection=reflection,
        )

        def _reject(message: str) -> ParsedAction:
            logger.warning("[ActionParser] %s(%s): %s", name, args, message)
            return ParsedAction(**fields, parse_error=message)

        try:
            for arg_name, target in (("start_box", "start"), ("end_box", "end")):
                box = args.get(arg_name)
                if not box:
                    continue
                if context is None:
                    return _reject(f"{arg_name} given but no screenshot context to map it into")
                fields[target] = map_box_to_point(box, self.factors, context)
        except BoxParseError as e:
            return _reject(str(e))

        if canonical == ActionType.TYPE:
            if "content" not in args:
                return _reject("type requires 'content'")
            fields["content"] = args["content"]

        elif canonical == ActionType.HOTKEY:
            key = args.get("key") or args.get("hotkey")
            if not key:
                return _reject("hotkey requires 'key'")
            fields["key"] = key.strip()

        elif canonical == ActionType.PRESS_KEY:
            key = IMPLIED_KEYS.get(name) or args.get("key")
            if not key:
                return _reject("press requires 'key'")
            fields["key"] = key.strip().lower()

        elif canonical == ActionType.SCROLL:
            direction = (args.get("direction") or "").strip().lower()
            if not direction:
                return _reject("scroll requires 'direction'")
            if direction not in SCROLL_DIRECTIONS:
                return _reject(f"unknown scroll direction '{direction}'")
            fields["direction"] = direction

        elif canonical == ActionType.OPEN_APP:
            fields["package_name"] = args.get("package_name") or args.get("app_name")

        elif canonical == ActionType.FINISHED:
            fields["content"] = args.get("content")

        elif canonical == ActionType.ERROR:
            fields["error"] = args.get("message") or args.get("content") or "model reported an environment error"

        return ParsedAction(**fields)


def parse_prediction(
    text: str,
    context: Optional[ScreenshotContext],
    factors: Sequence[int] = DEFAULT_FACTORS,
) -> List[ParsedAction]:
    return ActionParser(factors).parse(text, context)
