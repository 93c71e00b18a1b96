"""YAML configuration for calgym.

Shipped defaults live in ``calgym/config/default.yaml``. An optional
``local.yaml`` beside it, then any files named by the caller, are layered on
top; nested mappings merge key by key and later files win.
"""

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

LOG = logging.getLogger(__name__)

ConfigType = dict[str, Any]

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

_MISSING = object()


def _merge(base: Any, overlay: Any) -> Any:
    if not (isinstance(base, dict) and isinstance(overlay, dict)):
        return copy.deepcopy(overlay)
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        merged[key] = _merge(base[key], value) if key in base else copy.deepcopy(value)
    return merged


def load_configs(*paths) -> ConfigType:
    """
    Layer YAML files in order, skipping any that do not exist.

    Raises:
        TypeError: A file holds something other than a mapping
        ValueError: None of the files could be read
    """
    config: ConfigType = {}
    for path in paths:
        path = Path(path)
        if not path.is_file():
            LOG.debug(f"No config file at {path}, skipping")
            continue
        LOG.info(f"Reading config {path}")
        with open(path, "r", encoding="utf-8") as f:
            layer = yaml.safe_load(f)
        if not isinstance(layer, dict):
            raise TypeError(f"YAML config file {path} must be a dict")
        config = _merge(config, layer)

    if not config:
        raise ValueError("No configs loaded")
    return config


def load_default_configs(*extra_paths) -> ConfigType:
    """Shipped defaults, then ``local.yaml``, then ``extra_paths`` (e.g. ``--config``)."""
    return load_configs(CONFIG_DIR / "default.yaml", CONFIG_DIR / "local.yaml", *extra_paths)


def get_config(key: str, config: ConfigType = None, default: Any = _MISSING) -> Any:
    """
    Look up a dotted key such as ``"limits.max_backups"``.

    A missing key returns ``default`` when one is given and raises KeyError
    otherwise. Without ``config`` the shipped defaults are read.
    """
    if config is None:
        config = load_default_configs()

    value = config
    parts = key.split('.')
    for depth, part in enumerate(parts):
        if not isinstance(value, dict) or part not in value:
            if default is not _MISSING:
                return default
            if not isinstance(value, dict):
                raise KeyError(f"Cannot read {part}: {'.'.join(parts[:depth])} is not a mapping")
            raise KeyError(f"Key {key} not found in configuration")
        value = value[part]
    return value
