"""Placeholders for hyperparameters that are filled in by the tuner."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .errors import UnresolvedParameter


@dataclass(frozen=True)
class TuneParameter:
    id: str | None = None

    def __repr__(self) -> str:
        return f"tune({self.id!r})" if self.id else "tune()"


def tune(id: str | None = None) -> TuneParameter:
    """Mark an argument as tunable; `id` defaults to the argument name."""
    return TuneParameter(id)


def is_tunable(value: Any) -> bool:
    return isinstance(value, TuneParameter)


def placeholders(args: Mapping[str, Any]) -> dict[str, str]:
    """Map of placeholder id -> argument name for every tune() value in `args`."""
    return {
        (value.id or name): name
        for name, value in args.items()
        if is_tunable(value)
    }


def substitute(args: Mapping[str, Any], values: Mapping[str, Any], strict: bool = True) -> dict[str, Any]:
    """
    Replace tune() placeholders in `args` with entries from `values`.

    With `strict`, a placeholder without a value raises UnresolvedParameter.
    """
    resolved = dict(args)
    for param_id, name in placeholders(args).items():
        if param_id in values:
            resolved[name] = values[param_id]
        elif strict:
            raise UnresolvedParameter(f"No value supplied for tunable parameter '{param_id}'")
    return resolved
