"""Tests for the transaction stage."""

from __future__ import annotations

import pytest

from opline.config import runtime
from opline.config.settings import OplineSettings
from opline.errors import ConfigurationError
from opline.infrastructure.sql import current_transaction
from opline.pipeline.transaction import DEFAULT, resolve_target, within_transaction


class TestResolveTarget:
    def test_explicit_resource_returned(self, resource) -> None:
        assert resolve_target(resource) is resource

    def test_default_uses_runtime(self, resource) -> None:
        runtime.configure(OplineSettings(), default_transaction=resource)
        assert resolve_target(DEFAULT) is resource

    def test_default_unconfigured(self) -> None:
        with pytest.raises(ConfigurationError):
            resolve_target(DEFAULT)


class TestWithinTransaction:
    def test_none_runs_directly(self) -> None:
        assert within_transaction(None, lambda: current_transaction()) is None

    def test_commit(self, resource) -> None:
        assert within_transaction(resource, lambda: current_transaction()) is resource
        assert resource.events == ["begin", "commit"]

    def test_rollback_propagates(self, resource) -> None:
        def body() -> None:
            raise RuntimeError("declined")

        with pytest.raises(RuntimeError, match="declined"):
            within_transaction(resource, body)
        assert resource.events == ["begin", "rollback"]

    def test_default_target(self, resource) -> None:
        runtime.configure(OplineSettings(), default_transaction=resource)
        within_transaction(DEFAULT, lambda: None)
        assert resource.entered == 1
