"""Outcome / attempt / collect_or_raise 单元测试"""

from __future__ import annotations

import pytest

from wsmgr.core.exceptions import ConfigError, ImportFailure
from wsmgr.core.result import Outcome, attempt, collect_or_raise


class TestOutcome:
    def test_success(self) -> None:
        outcome = attempt(lambda x: x * 2, 21)
        assert outcome.ok and outcome.unwrap() == 42

    def test_recoverable_failure_wrapped(self) -> None:
        def fail() -> None:
            raise ImportFailure("pkg", "network down")

        outcome = attempt(fail)
        assert not outcome.ok
        with pytest.raises(ImportFailure, match="pkg: network down"):
            outcome.unwrap()

    def test_other_errors_propagate(self) -> None:
        def fail() -> None:
            raise ConfigError("bad")

        with pytest.raises(ConfigError):
            attempt(fail)

    def test_interrupt_propagates(self) -> None:
        def interrupt() -> None:
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            attempt(interrupt)

    def test_collect_or_raise(self) -> None:
        failures: list[Exception] = []
        failure = ImportFailure("pkg", "boom")
        assert collect_or_raise(Outcome(value=1), failures, keep_going=False)
        assert not collect_or_raise(Outcome(failure=failure), failures, keep_going=True)
        assert failures == [failure]
        with pytest.raises(ImportFailure):
            collect_or_raise(Outcome(failure=failure), failures, keep_going=False)
