"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, opline.toml only contains overrides.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class LockConfig(BaseModel):
    """[lock] section — distributed mutex provider and retry budget."""

    model_config = {"frozen": True}

    redis_url: str | None = None
    mutex_expire_milliseconds: int = Field(default=1500, gt=0)
    retry_count: int = Field(default=6, ge=0)
    retry_delay_ms: int = Field(default=500, ge=0)
    retry_jitter_ms: int = Field(default=50, ge=0)
    timeout_s: float = Field(default=0.1, gt=0)


class LogConfig(BaseModel):
    """[log] section. ``enabled`` lets ``runtime.configure`` install the handler."""

    model_config = {"frozen": True}

    enabled: bool = False
    verbose: bool = False
    json_output: bool = False
