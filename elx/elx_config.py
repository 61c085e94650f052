"""
Runtime configuration.

Settings come from the dataclass defaults, then an optional YAML file, then
``ELX_*`` environment variables::

    legacy_coercion: false   # ELX_LEGACY_COERCION
    cache_keepalive: 256     # ELX_CACHE_KEEPALIVE
    debug: false             # ELX_DEBUG
"""
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from elx.elx_cache import DEFAULT_KEEPALIVE

ENV_PREFIX = "ELX_"

# Keys accepted in a factory ``properties`` mapping
LEGACY_COERCION_PROPERTY = "elx.legacy-coercion"
CACHE_KEEPALIVE_PROPERTY = "elx.cache-keepalive"

_TRUE = {"1", "true", "yes", "on"}


@dataclass
class ELConfig:
    legacy_coercion: bool = False
    cache_keepalive: int = DEFAULT_KEEPALIVE
    debug: bool = False

    @classmethod
    def from_properties(cls, properties: Optional[Mapping[str, Any]]) -> 'ELConfig':
        config = cls()
        if not properties:
            return config
        if LEGACY_COERCION_PROPERTY in properties:
            config.legacy_coercion = str(properties[LEGACY_COERCION_PROPERTY]).lower() == "true"
        if CACHE_KEEPALIVE_PROPERTY in properties:
            config.cache_keepalive = int(properties[CACHE_KEEPALIVE_PROPERTY])
        return config


def _parse(field_type, raw: Any):
    if field_type is bool or field_type == 'bool':
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in _TRUE
    if field_type is int or field_type == 'int':
        return int(raw)
    return raw


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> ELConfig:
    """Builds an ELConfig from defaults, an optional YAML file and the environment."""
    config = ELConfig()
    known = {f.name: f.type for f in fields(ELConfig)}

    if path is not None:
        p = Path(path)
        with open(p, 'r', encoding='utf-8') as fh:
            raw: Dict[str, Any] = yaml.safe_load(fh) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config file {p} must contain a mapping, got {type(raw).__name__}")
        for key, value in raw.items():
            name = key.replace('-', '_')
            if name not in known:
                raise ValueError(f"Unknown config key '{key}' in {p}")
            setattr(config, name, _parse(known[name], value))

    env = os.environ if env is None else env
    for name, field_type in known.items():
        value = env.get(ENV_PREFIX + name.upper())
        if value is not None:
            setattr(config, name, _parse(field_type, value))
    return config
