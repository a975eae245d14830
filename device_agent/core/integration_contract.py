# device_agent/core/integration_contract.py
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class DeviceKind(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"


class OperatorContract(BaseModel):
    name: str
    operator_class: str
    device_kind: str = "unknown"
    action_spaces: List[str] = []
    description: Optional[str] = None
