"""
Search configuration: defaults, environment overrides and YAML files.
"""

import dataclasses
import numbers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .errors import ConfigurationError
from .metrics import BaseMetric, get_metric
from .sort_policies import FurthestNeighborSort, NearestNeighborSort
from .tree.binary_space_tree import DEFAULT_MAX_DEPTH
from .utils.profiling import parse_flag

_ENV_PREFIX = "NEIGHBOR_SEARCH_"
_DEFAULT_LEAF_SIZE = 20
_DEFAULT_METRIC = "euclidean"


def _parse_int(raw: str, name: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _parse_bool(raw: Optional[str], name: str, default: bool) -> bool:
    try:
        return parse_flag(raw, default=default)
    except ValueError as exc:
        raise ConfigurationError(f"{name}: {exc}") from None


def _coerce_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return _parse_bool(value, name, False)
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _coerce_int(value: Any, name: str) -> int:
    # bool is an int subclass
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, str):
        return _parse_int(value, name)
    raise ConfigurationError(f"{name} must be an integer, got {value!r}")


_BOOL_FIELDS = ("naive", "single_mode", "furthest", "profile")
_INT_FIELDS = ("leaf_size", "max_depth")


@dataclass(frozen=True)
class SearchConfig:
    """
    Options controlling how a ``NeighborSearch`` is built and run.

    ``naive`` overrides ``single_mode``; ``leaf_size`` and ``max_depth``
    only matter for trees the engine builds itself.
    """

    naive: bool = False
    single_mode: bool = False
    leaf_size: int = _DEFAULT_LEAF_SIZE
    max_depth: int = DEFAULT_MAX_DEPTH
    metric: str = _DEFAULT_METRIC
    furthest: bool = False
    profile: bool = False

    def __post_init__(self) -> None:
        # Values from YAML or callers may be strings; normalise in place
        for name in _BOOL_FIELDS:
            object.__setattr__(self, name, _coerce_bool(getattr(self, name), name))
        for name in _INT_FIELDS:
            object.__setattr__(self, name, _coerce_int(getattr(self, name), name))
        if not isinstance(self.metric, str):
            raise ConfigurationError(f"metric must be a string, got {self.metric!r}")

        if self.leaf_size < 1:
            raise ConfigurationError(f"leaf_size must be >= 1, got {self.leaf_size}")
        if self.max_depth < 0:
            raise ConfigurationError(f"max_depth must be >= 0, got {self.max_depth}")
        try:
            get_metric(self.metric)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SearchConfig":
        """Defaults overridden by ``NEIGHBOR_SEARCH_*`` environment variables."""
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            return env.get(_ENV_PREFIX + name)

        values: Dict[str, Any] = {
            "naive": _parse_bool(get("NAIVE"), "NAIVE", False),
            "single_mode": _parse_bool(get("SINGLE_MODE"), "SINGLE_MODE", False),
            "furthest": _parse_bool(get("FURTHEST"), "FURTHEST", False),
            "profile": _parse_bool(get("PROFILE"), "PROFILE", False),
        }
        if get("LEAF_SIZE") is not None:
            values["leaf_size"] = _parse_int(get("LEAF_SIZE"), "LEAF_SIZE")
        if get("MAX_DEPTH") is not None:
            values["max_depth"] = _parse_int(get("MAX_DEPTH"), "MAX_DEPTH")
        if get("METRIC"):
            values["metric"] = get("METRIC").strip().lower()
        return cls(**values)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SearchConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}")
        return cls(**dict(data))

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SearchConfig":
        """Load a YAML mapping of field names to values."""
        with Path(path).open("r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"{path}: invalid YAML: {exc}") from None
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path}: expected a mapping at the top level")
        return cls.from_mapping(data)

    def replace(self, **changes: Any) -> "SearchConfig":
        return dataclasses.replace(self, **changes)

    def metric_instance(self) -> BaseMetric:
        return get_metric(self.metric)

    def sort_policy_instance(self):
        return FurthestNeighborSort() if self.furthest else NearestNeighborSort()

    def as_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)
