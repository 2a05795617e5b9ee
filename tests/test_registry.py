"""Tests for auditomatic.registry."""

from __future__ import annotations

import pytest

from auditomatic.config import RunConfig
from auditomatic.models import RunState, RunStatus
from auditomatic.registry import (
    RegistryError,
    RunExistsError,
    RunHandle,
    RunNotFoundError,
    RunRegistry,
)


def _handle(run_id: str, status: RunStatus = RunStatus.RUNNING) -> RunHandle:
    return RunHandle(run_id=run_id, config=RunConfig(), state=RunState(total_tasks=0, status=status))


# ---------------------------------------------------------------------------
# RunHandle
# ---------------------------------------------------------------------------


class TestRunHandle:
    def test_defaults(self) -> None:
        h = _handle("r1")
        assert not h.token.cancelled
        assert h.results == []
        assert h.costs.get_total() == 0.0
        assert not h.wakeup.is_set()
        assert not h.terminal

    def test_terminal(self) -> None:
        assert _handle("r1", RunStatus.COMPLETED).terminal


# ---------------------------------------------------------------------------
# RunRegistry
# ---------------------------------------------------------------------------


class TestRunRegistry:
    def test_register_and_get(self) -> None:
        reg = RunRegistry()
        h = reg.register(_handle("r1"))
        assert reg.get("r1") is h
        assert "r1" in reg
        assert len(reg) == 1

    def test_duplicate_rejected(self) -> None:
        reg = RunRegistry()
        reg.register(_handle("r1"))
        with pytest.raises(RunExistsError, match="r1"):
            reg.register(_handle("r1"))

    def test_duplicate_rejected_even_when_terminal(self) -> None:
        reg = RunRegistry()
        reg.register(_handle("r1", RunStatus.COMPLETED))
        with pytest.raises(RunExistsError):
            reg.register(_handle("r1"))

    def test_get_missing(self) -> None:
        with pytest.raises(RunNotFoundError):
            RunRegistry().get("nope")

    def test_find_missing_is_none(self) -> None:
        assert RunRegistry().find("nope") is None

    def test_remove(self) -> None:
        reg = RunRegistry()
        reg.register(_handle("r1"))
        reg.remove("r1")
        assert "r1" not in reg
        reg.register(_handle("r1"))

    def test_remove_missing(self) -> None:
        with pytest.raises(RunNotFoundError):
            RunRegistry().remove("nope")

    def test_list_all_in_order(self) -> None:
        reg = RunRegistry()
        for rid in ("b", "a", "c"):
            reg.register(_handle(rid))
        assert reg.list_all() == ["b", "a", "c"]

    def test_list_with_status(self) -> None:
        reg = RunRegistry()
        reg.register(_handle("run", RunStatus.RUNNING))
        reg.register(_handle("pause", RunStatus.PAUSED))
        reg.register(_handle("done", RunStatus.COMPLETED))
        assert reg.list_with_status(RunStatus.RUNNING, RunStatus.PAUSED) == ["run", "pause"]
        assert reg.list_with_status(RunStatus.COMPLETED) == ["done"]

    def test_errors_share_base(self) -> None:
        assert issubclass(RunExistsError, RegistryError)
        assert issubclass(RunNotFoundError, RegistryError)

    def test_name_in_error(self) -> None:
        reg = RunRegistry(name="primary")
        with pytest.raises(RunNotFoundError, match="primary"):
            reg.get("x")
