from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional

from errors import UnboundIdentifierError
from values import Value


@dataclass(eq=False)
class Environment:
    parent: Optional["Environment"] = None
    values: Dict[str, Value] = field(default_factory=dict)

    def _find_env(self, name: str) -> Optional["Environment"]:
        env: Optional[Environment] = self
        while env is not None:
            if name in env.values:
                return env
            env = env.parent
        return None

    def assign(self, name: str, value: Value) -> None:
        """Rebind the nearest existing ``name``, else bind it in this frame."""
        env = self._find_env(name)
        if env is not None:
            env.values[name] = value
            return
        self.values[name] = value

    def define(self, name: str, value: Value) -> None:
        self.values[name] = value

    def resolve(self, name: str) -> Value:
        env = self._find_env(name)
        if env is not None:
            return env.values[name]
        raise UnboundIdentifierError(f"no such variable: {name}", rule="IDENT")

    def child(self) -> "Environment":
        return Environment(parent=self)

    def snapshot(self) -> Dict[str, str]:
        def _render(val: Value) -> str:
            rendered = val.render()
            if len(rendered) > 80:
                rendered = rendered[:77] + "..."
            return f"{val.type}:{rendered}"

        return {k: _render(v) for k, v in self.values.items()}
