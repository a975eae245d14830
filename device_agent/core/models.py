# device_agent/core/models.py
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StatusEnum(str, Enum):
    INIT = "init"
    RUNNING = "running"
    MAX_LOOP_EXCEEDED = "max_loop_exceeded"
    ERROR = "error"
    CALL_USER = "call_user"
    FINISHED = "finished"
    USER_ABORTED = "user_aborted"


TERMINAL_STATUSES = frozenset({
    StatusEnum.MAX_LOOP_EXCEEDED,
    StatusEnum.ERROR,
    StatusEnum.CALL_USER,
    StatusEnum.FINISHED,
    StatusEnum.USER_ABORTED,
})


class ActionType(str, Enum):
    CLICK = "click"
    DOUBLE_CLICK = "double_click"
    RIGHT_CLICK = "right_click"
    DRAG = "drag"
    TYPE = "type"
    HOTKEY = "hotkey"
    SCROLL = "scroll"
    WAIT = "wait"
    OPEN_APP = "open_app"
    PRESS_KEY = "press_key"
    FINISHED = "finished"
    CALL_USER = "call_user"
    ERROR = "error"


class Role(str, Enum):
    HUMAN = "human"
    AGENT = "agent"


class Point(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class ScreenshotOutput(BaseModel):
    base64: str
    scale_factor: float = 1.0


class ScreenshotContext(BaseModel):
    """Frame of one captured screenshot; the parser maps boxes into it."""

    model_config = ConfigDict(frozen=True)

    pixel_width: int
    pixel_height: int
    scale_factor: float = 1.0


class ParsedAction(BaseModel):
    # known vocabulary is normalized to ActionType values; anything else keeps the model's name
    action_type: str
    raw_type: str = ""
    action_inputs: Dict[str, str] = Field(default_factory=dict)
    start: Optional[Point] = None
    end: Optional[Point] = None
    content: Optional[str] = None
    key: Optional[str] = None
    direction: Optional[str] = None
    package_name: Optional[str] = None
    thought: str = ""
    reflection: Optional[str] = None
    error: Optional[str] = None
    # set when the invocation could not be turned into something executable
    parse_error: Optional[str] = None

    @property
    def executable(self) -> bool:
        return self.parse_error is None


class Timing(BaseModel):
    start: float
    end: float
    cost: float


class ConversationTurn(BaseModel):
    from_: Role = Field(alias="from")
    value: str
    screenshot_base64: Optional[str] = None
    screenshot_context: Optional[ScreenshotContext] = None
    predictions: List[ParsedAction] = Field(default_factory=list)
    timing: Optional[Timing] = None
    screenshot_with_marker: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class RoundState(BaseModel):
    index: int
    status: StatusEnum
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class GUIAgentData(BaseModel):
    status: StatusEnum
    round_index: int
    instruction: str
    conversations: List[ConversationTurn] = Field(default_factory=list)
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
