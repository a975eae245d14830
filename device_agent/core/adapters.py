# device_agent/core/adapters.py
from abc import ABC, abstractmethod
from typing import ClassVar, List

from device_agent.core.models import ParsedAction, ScreenshotOutput


class BaseOperator(ABC):
    # Metadata each operator overrides; read by the registry to build its contract.
    DEVICE_KIND: ClassVar[str] = "unknown"
    ACTION_SPACES: ClassVar[List[str]] = []

    @abstractmethod
    def screenshot(self) -> ScreenshotOutput:
        """Capture the current screen. Raises CaptureError when the device cannot be reached."""

    @abstractmethod
    def execute(self, action: ParsedAction) -> None:
        """
        Inject one action. Raises ExecutionError on failure; unknown action
        types are logged and ignored.
        """

    @classmethod
    def manual(cls) -> str:
        return "\n".join(cls.ACTION_SPACES)
