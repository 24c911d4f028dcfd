"""
Run configuration for the etcd flood harness

Design Notes:
- One dataclass holds every knob a run consumes: the version selector, the
  flood sizing passed straight through to the load generator, scratch/binary
  paths and the liveness probe timing
- YAML files (PyYAML safe_load) for checked-in run profiles
- Environment variable overrides (ETCD_FLOOD_<FIELD>) for CI
- Clear error messages naming the offending file and field
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from ..cluster.versions import ProtocolVersion
from .exceptions import ConfigurationError

LOG = logging.getLogger(__name__)

ENV_PREFIX = "ETCD_FLOOD_"

DEFAULT_DATA_DIR = "./data-dir"
DEFAULT_ETCD_ROOT = "etcd"


@dataclass
class FloodConfig:
    """Validated configuration for one harness run"""
    version: str = "v0.5"
    store_size: int = 30000
    concurrency: int = 300
    heavy_readers: int = 2
    light_readers: int = 50
    watchers: int = 0
    cluster_size: int = 3
    data_dir: str = DEFAULT_DATA_DIR
    etcd_root: str = DEFAULT_ETCD_ROOT
    probe_timeout: float = 5.0
    probe_interval: float = 0.1
    request_timeout: float = 1.0
    extra_args: list = field(default_factory=list)

    @classmethod
    def field_names(cls):
        return [f.name for f in dataclasses.fields(cls)]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], source: str = "<mapping>") -> "FloodConfig":
        """Build a config from a plain mapping, coercing values to field types."""
        known = {f.name: f for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys in {source}: {', '.join(unknown)}",
                config_file=source,
                field=unknown[0]
            )

        values = {}
        for name, value in data.items():
            values[name] = _coerce(known[name], value, source)
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "FloodConfig":
        path = Path(path)
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {path}", config_file=str(path))
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", config_file=str(path))

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file {path} must contain a mapping, got {type(data).__name__}",
                config_file=str(path)
            )

        LOG.info(f"Loaded run configuration from {path}")
        return cls.from_mapping(data, source=str(path))

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "FloodConfig":
        """Return a copy with ETCD_FLOOD_<FIELD> variables applied."""
        environ = os.environ if environ is None else environ
        overrides = {}
        for name in self.field_names():
            env_key = ENV_PREFIX + name.upper()
            if env_key in environ:
                raw = environ[env_key]
                if name == "extra_args":
                    overrides[name] = raw.split()
                else:
                    overrides[name] = raw
                LOG.debug(f"Applying environment override {env_key}={raw}")

        if not overrides:
            return self

        known = {f.name: f for f in dataclasses.fields(self)}
        coerced = {
            name: _coerce(known[name], value, "environment")
            for name, value in overrides.items()
        }
        return dataclasses.replace(self, **coerced)

    def with_overrides(self, **overrides: Any) -> "FloodConfig":
        """Return a copy with every non-None keyword applied (CLI flags)."""
        applied = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **applied) if applied else self

    def validate(self) -> "FloodConfig":
        ProtocolVersion.parse(self.version)

        for name in ("store_size", "cluster_size"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1", field=name)
        for name in ("concurrency", "heavy_readers", "light_readers", "watchers"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be >= 0", field=name)
        for name in ("probe_timeout", "probe_interval", "request_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive", field=name)
        if self.probe_interval >= self.probe_timeout:
            raise ConfigurationError(
                "probe_interval must be shorter than probe_timeout",
                field="probe_interval"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


def _coerce(f: dataclasses.Field, value: Any, source: str) -> Any:
    """Coerce a raw value to the declared type of a FloodConfig field."""
    target = {
        "version": str,
        "data_dir": str,
        "etcd_root": str,
    }.get(f.name)
    if target is None:
        target = type(f.default) if f.default is not dataclasses.MISSING else list

    if target is list:
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value]
        raise ConfigurationError(
            f"Field '{f.name}' in {source} must be a list",
            config_file=source,
            field=f.name
        )

    if isinstance(value, bool) and target is not bool:
        raise ConfigurationError(
            f"Field '{f.name}' in {source} must be {target.__name__}, got bool",
            config_file=source,
            field=f.name
        )

    try:
        return target(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Field '{f.name}' in {source} must be {target.__name__}, got {value!r}",
            config_file=source,
            field=f.name
        )
