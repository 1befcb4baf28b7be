"""Unified settings — init kwargs, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — passed to :meth:`OplineSettings.load` or ``configure()``
  2. Env vars     — ``OPLINE_*`` prefix, ``__`` for nested sections
  3. TOML file    — ``opline.toml`` discovered via walk-up
  4. Code defaults — baked into the section models

Uses Pydantic Settings v2 with a custom :class:`TomlSettingsSource` that
reuses the ``find_config`` walk-up discovery from
:mod:`opline.config.discovery`.
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field, ImportString, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from opline.config.discovery import find_config
from opline.config.models import LockConfig, LogConfig
from opline.errors import ConfigurationError


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from an ``opline.toml`` file."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise ConfigurationError(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        """Return the full TOML data dict for Pydantic to merge."""
        return self._data


# Thread-local storage for TOML path during construction.
_tls = threading.local()


class OplineSettings(BaseSettings):
    """Process-wide pipeline settings, frozen after construction.

    Attributes:
        config_path: TOML file the settings were read from, if any.
        lock: Mutex TTL default and lock-provider retry budget.
        log: Logging switches consumed by ``configure_logging``.
        expected_errors: Extra exception classes that ``run_safe`` turns
            into failure values. Accepts classes or dotted import paths.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "OPLINE_",
        "env_nested_delimiter": "__",
    }

    config_path: Path | None = None

    lock: LockConfig = Field(default_factory=LockConfig)
    log: LogConfig = Field(default_factory=LogConfig)
    expected_errors: list[ImportString] = Field(default_factory=list)

    @field_validator("expected_errors")
    @classmethod
    def _exception_classes_only(cls, value: list[Any]) -> list[Any]:
        for item in value:
            if not (isinstance(item, type) and issubclass(item, BaseException)):
                msg = f"expected_errors entries must be exception classes, got {item!r}"
                raise ValueError(msg)
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def load(
        cls,
        *,
        config_path: str | Path | None = None,
        start: Path | None = None,
        **overrides: Any,
    ) -> OplineSettings:
        """Construct settings from the environment and an optional TOML file.

        Uses *config_path* when given, otherwise discovers ``opline.toml``
        by walking up from *start*. *overrides* win over every other source.
        """
        toml_path: Path | None = None
        if config_path:
            p = Path(config_path)
            if p.is_file():
                toml_path = p
        else:
            toml_path = find_config(start)

        _tls.toml_path = toml_path
        try:
            return cls(config_path=toml_path, **overrides)
        finally:
            _tls.toml_path = None
