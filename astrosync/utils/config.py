# astrosync/utils/config.py
from __future__ import annotations

import os
from typing import Any

import yaml

__all__ = ["AttrDict", "load_config", "DEFAULT_CONFIG_PATH"]

DEFAULT_CONFIG_PATH = os.path.join("config", "defaults.yaml")


class AttrDict(dict):
    """Dict that also supports attribute access: cfg.windows and cfg['windows'] both work."""
    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e

    def __setattr__(self, key, value):
        self[key] = value


def _to_attr(obj: Any) -> Any:
    if isinstance(obj, dict):
        return AttrDict({k: _to_attr(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_attr(x) for x in obj]
    return obj


def load_config(path: str = DEFAULT_CONFIG_PATH) -> AttrDict:
    """
    Load YAML config from `path`.
    Optional env overrides:
      - ASTRO_HORIZON_DAYS   (windows.horizon_days)
      - ASTRO_HOUSE_SYSTEM   (houses.default_system)
    Returns an AttrDict for convenient access.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config root must be a mapping: {path}")

    horizon = os.getenv("ASTRO_HORIZON_DAYS")
    if horizon:
        data.setdefault("windows", {})["horizon_days"] = int(horizon)
    system = os.getenv("ASTRO_HOUSE_SYSTEM")
    if system:
        data.setdefault("houses", {})["default_system"] = system

    return _to_attr(data)
