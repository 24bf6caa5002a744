"""
Environment Models

The effective process environment is modelled as a value: a base snapshot plus
overrides accumulated by each phase, applied once at the subprocess boundary.
"""

import builtins
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Set


@dataclass
class EnvironmentOverrides:
    """Variables to set and variables to remove from a base environment."""

    set: Dict[str, str] = field(default_factory=dict)
    unset: Set[str] = field(default_factory=builtins.set)

    def set_var(self, name: str, value: str) -> "EnvironmentOverrides":
        self.set[name] = value
        self.unset.discard(name)
        return self

    def unset_var(self, name: str) -> "EnvironmentOverrides":
        self.unset.add(name)
        self.set.pop(name, None)
        return self

    def update(self, values: Mapping[str, str]) -> "EnvironmentOverrides":
        for name, value in values.items():
            self.set_var(name, value)
        return self

    def remove(self, names: Iterable[str]) -> "EnvironmentOverrides":
        for name in names:
            self.unset_var(name)
        return self

    def merge(self, other: "EnvironmentOverrides") -> "EnvironmentOverrides":
        """Fold another set of overrides into this one; the other one wins."""
        for name in other.unset:
            self.unset_var(name)
        for name, value in other.set.items():
            self.set_var(name, value)
        return self

    def apply(self, base: Mapping[str, str]) -> Dict[str, str]:
        """Return a new environment dict with these overrides applied to base."""
        env = {k: v for k, v in base.items() if k not in self.unset}
        env.update(self.set)
        return env

    def get(self, name: str, base: Mapping[str, str]) -> Optional[str]:
        """Look up a variable as it would appear in the effective environment."""
        if name in self.set:
            return self.set[name]
        if name in self.unset:
            return None
        return base.get(name)

    def __bool__(self) -> bool:
        return bool(self.set or self.unset)
