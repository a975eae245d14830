# device_agent/core/registry.py
from typing import Any, Dict, List, Optional

from device_agent.core.errors import ConfigurationError
from device_agent.core.integration_contract import OperatorContract


class Registry:
    def __init__(self):
        self._operators: Dict[str, Any] = {}
        self._contracts: Dict[str, OperatorContract] = {}

    def register_operator(self, name: str, obj: Any):
        """
        obj may be an operator class or an operator factory/instance.
        We store the object and auto-generate a contract from its metadata.
        """
        self._operators[name] = obj

        # resolve class (if instance or factory, use its class)
        operator_cls = obj if isinstance(obj, type) else obj.__class__

        doc = (operator_cls.__doc__ or "").strip().splitlines()
        contract = OperatorContract(
            name=name,
            operator_class=f"{operator_cls.__module__}.{operator_cls.__name__}",
            device_kind=str(getattr(operator_cls, "DEVICE_KIND", "unknown")),
            action_spaces=list(getattr(operator_cls, "ACTION_SPACES", [])),
            description=doc[0] if doc else None,
        )
        self._contracts[name] = contract

    def get_operator(self, name: str) -> Optional[Any]:
        return self._operators.get(name)

    def create_operator(self, name: str, **kwargs):
        factory = self._operators.get(name)
        if factory is None:
            raise ConfigurationError(
                f"Operator '{name}' is not registered (available: {', '.join(self.list_operators()) or 'none'})"
            )
        return factory(**kwargs) if callable(factory) else factory

    def get_contract(self, name: str) -> Optional[OperatorContract]:
        return self._contracts.get(name)

    def list_operators(self) -> List[str]:
        return list(self._operators.keys())

    def list_contracts(self):
        return {k: v.model_dump() for k, v in self._contracts.items()}


# global registry instance; populated once with the built-in operators
registry = Registry()


def register_builtin_operators():
    from device_agent.repos.adb_operator import AdbOperator
    from device_agent.repos.desktop_operator import DesktopOperator

    if registry.get_operator("desktop") is None:
        registry.register_operator("desktop", DesktopOperator)
    if registry.get_operator("adb") is None:
        registry.register_operator("adb", AdbOperator)
