"""显式的成功/失败结果

keep_going 分支不再依赖异常做控制流: 可恢复的失败被包装成 Outcome，
调用方决定是 unwrap() 立即抛出还是收集到失败列表中。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from wsmgr.core.exceptions import ImportFailure

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    failure: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap(self) -> T | None:
        if self.failure is not None:
            raise self.failure
        return self.value


def attempt(
    fn: Callable[..., T],
    *args: object,
    recoverable: tuple[type[Exception], ...] = (ImportFailure,),
    **kwargs: object,
) -> Outcome[T]:
    """调用 fn，仅把 recoverable 中的异常转换为失败结果

    其他异常（包括 ConfigError 与 KeyboardInterrupt）原样抛出。
    """
    try:
        return Outcome(value=fn(*args, **kwargs))
    except recoverable as e:
        return Outcome(failure=e)


def collect_or_raise(outcome: Outcome[T], failures: list[Exception], keep_going: bool) -> bool:
    """keep_going 时把失败记入 failures 并返回 False，否则直接抛出"""
    if outcome.failure is None:
        return True
    if not keep_going:
        raise outcome.failure
    failures.append(outcome.failure)
    return False
