"""Traversal configuration.

A :class:`TraversalConfig` is validated eagerly when it is created and never
changes afterwards. Use :meth:`TraversalConfig.with_overrides` to derive a
modified copy.

Configurations can be loaded from dictionaries, from YAML/JSON files and from
environment variables, using the dataknobs_config conventions:

```yaml
# traversal.yaml
traversal:
  - name: nightly
    batch_size: 500
    max_concurrent_batch_count: 4
    sleep_between_batches: true
    sleep_time_between_batches: 0.25
```

```bash
export DATAKNOBS_TRAVERSAL__NIGHTLY__BATCH_SIZE=100
```
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dataknobs_common import DataknobsError
from dataknobs_config import Config
from dataknobs_config.environment import EnvironmentOverrides

from .exceptions import ConfigurationError

DEFAULT_BATCH_SIZE = 250
CONFIG_TYPE = "traversal"
_NUMERIC_FIELDS = ("batch_size", "max_concurrent_batch_count", "max_doc_count", "sleep_time_between_batches")


def _check_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(name, f"must be an integer, got {type(value).__name__}")


@dataclass(frozen=True)
class TraversalConfig:
    """Configuration for a traversal.

    Attributes:
        batch_size: Number of documents requested per page. Must be positive.
        max_concurrent_batch_count: Maximum number of batch handlers that may be
            in flight at once. 1 means fully sequential processing.
        max_doc_count: Maximum number of documents to visit. 0 means unlimited.
        sleep_between_batches: Whether to pause after each batch dispatch.
        sleep_time_between_batches: Length of the pause in seconds. Must be
            positive when ``sleep_between_batches`` is set.
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    max_concurrent_batch_count: int = 1
    max_doc_count: int = 0
    sleep_between_batches: bool = False
    sleep_time_between_batches: float = 0.0

    def __post_init__(self):
        """Validate configuration."""
        _check_int("batch_size", self.batch_size)
        if self.batch_size <= 0:
            raise ConfigurationError("batch_size", "must be positive")

        _check_int("max_concurrent_batch_count", self.max_concurrent_batch_count)
        if self.max_concurrent_batch_count < 1:
            raise ConfigurationError("max_concurrent_batch_count", "must be at least 1")

        _check_int("max_doc_count", self.max_doc_count)
        if self.max_doc_count < 0:
            raise ConfigurationError("max_doc_count", "must be non-negative (0 means unlimited)")

        if not isinstance(self.sleep_between_batches, bool):
            raise ConfigurationError("sleep_between_batches", "must be a boolean")

        sleep_time = self.sleep_time_between_batches
        if isinstance(sleep_time, bool) or not isinstance(sleep_time, (int, float)):
            raise ConfigurationError("sleep_time_between_batches", "must be a number of seconds")
        if sleep_time < 0:
            raise ConfigurationError("sleep_time_between_batches", "must be non-negative")
        if self.sleep_between_batches and sleep_time <= 0:
            raise ConfigurationError(
                "sleep_time_between_batches",
                "must be positive when sleep_between_batches is enabled",
            )

    @property
    def is_sequential(self) -> bool:
        """True when batches are processed strictly one at a time."""
        return self.max_concurrent_batch_count == 1

    @property
    def has_doc_limit(self) -> bool:
        """True when ``max_doc_count`` caps the traversal."""
        return self.max_doc_count > 0

    def with_overrides(self, **changes: Any) -> TraversalConfig:
        """Create a new validated config with some fields replaced.

        Args:
            **changes: Field values to replace

        Returns:
            New TraversalConfig instance
        """
        _check_keys(changes)
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a plain dictionary."""
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TraversalConfig:
        """Create a config from a dictionary.

        Args:
            data: Mapping of field names to values. Missing fields use defaults.

        Returns:
            TraversalConfig instance

        Raises:
            ConfigurationError: If a key is unknown or a value is invalid
        """
        _check_keys(data)
        return cls(**data)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        name_or_index: str | int = 0,
        use_env: bool = False,
    ) -> TraversalConfig:
        """Load a config from a YAML or JSON file.

        The file uses the dataknobs_config layout: traversal configs live under
        a top-level ``traversal`` key, either as one mapping or as a list of
        named mappings. A ``settings`` section can supply defaults such as
        ``traversal.batch_size``.

        Args:
            path: Path to a ``.yaml``, ``.yml`` or ``.json`` file
            name_or_index: Which traversal config to use when the file has several
            use_env: Apply ``DATAKNOBS_TRAVERSAL__...`` environment overrides

        Returns:
            TraversalConfig instance

        Raises:
            ConfigurationError: If the file cannot be loaded or has no such
                traversal config
        """
        try:
            config = Config(path, use_env=use_env)
            data = config.get(CONFIG_TYPE, name_or_index)
        except DataknobsError as e:
            raise ConfigurationError("path", f"cannot load {CONFIG_TYPE} config from {path}: {e}") from e
        data = _strip_metadata(data)
        return cls.from_dict(_coerce_numbers(data) if use_env else data)

    @classmethod
    def from_env(
        cls,
        name_or_index: str | int = 0,
        base: TraversalConfig | None = None,
        prefix: str | None = None,
    ) -> TraversalConfig:
        """Create a config with environment variable overrides applied.

        Variables follow the dataknobs_config format
        ``<prefix>TRAVERSAL__<NAME_OR_INDEX>__<FIELD>``, for example
        ``DATAKNOBS_TRAVERSAL__0__MAX_DOC_COUNT=1000`` or
        ``DATAKNOBS_TRAVERSAL__NIGHTLY__BATCH_SIZE=500``.

        Args:
            name_or_index: Which traversal config the variables must address
            base: Config to apply overrides to (defaults to ``TraversalConfig()``)
            prefix: Environment variable prefix (default: ``DATAKNOBS_``)

        Returns:
            TraversalConfig instance
        """
        base = base or cls()
        if isinstance(name_or_index, str):
            name_or_index = name_or_index.lower()

        env = EnvironmentOverrides(prefix)
        overrides = {}
        for ref, value in env.get_overrides().items():
            type_name, selector, attribute = env.parse_env_reference(ref)
            if type_name == CONFIG_TYPE and selector == name_or_index and attribute:
                overrides[attribute] = value
        if not overrides:
            return base
        return base.with_overrides(**_coerce_numbers(overrides))


def _check_keys(data: dict[str, Any]) -> None:
    known = {f.name for f in dataclasses.fields(TraversalConfig)}
    for key in data:
        if key not in known:
            raise ConfigurationError(str(key), "unknown configuration key")


def _strip_metadata(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key not in ("type", "name")}


def _coerce_numbers(data: dict[str, Any]) -> dict[str, Any]:
    """Turn booleans back into numbers for numeric fields.

    EnvironmentOverrides parses "1" and "0" as booleans.
    """
    result = dict(data)
    for name in _NUMERIC_FIELDS:
        if isinstance(result.get(name), bool):
            result[name] = int(result[name])
    return result


def resolve_config(
    config: TraversalConfig | dict[str, Any] | None = None,
    **overrides: Any,
) -> TraversalConfig:
    """Normalize the config argument accepted by the factory functions.

    Args:
        config: A TraversalConfig, a dictionary of config values, or None
        **overrides: Field values applied on top

    Returns:
        TraversalConfig instance
    """
    if config is None:
        resolved = TraversalConfig()
    elif isinstance(config, TraversalConfig):
        resolved = config
    elif isinstance(config, dict):
        resolved = TraversalConfig.from_dict(config)
    else:
        raise ConfigurationError("config", f"unsupported config type: {type(config).__name__}")

    if overrides:
        resolved = resolved.with_overrides(**overrides)
    return resolved
