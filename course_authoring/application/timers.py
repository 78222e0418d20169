from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


CallLater = Callable[..., TimerHandle]


def loop_call_later(delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback, *args)


class Debouncer:
    """Таймеры с ключом: повторный schedule по тому же ключу сбрасывает отсчёт.

    Источник времени подставляется через call_later (сигнатура как у
    asyncio.AbstractEventLoop.call_later), поэтому в тестах его можно
    заменить фейковыми часами.
    """

    def __init__(self, delay: float, call_later: CallLater | None = None):
        self.delay = delay
        self._call_later = call_later or loop_call_later
        self._handles: dict[str, TimerHandle] = {}

    def schedule(self, key: str, fn: Callable[[], Any], delay: float | None = None) -> None:
        self.cancel(key)
        wait = self.delay if delay is None else delay
        self._handles[key] = self._call_later(wait, self._fire, key, fn)

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._handles):
            self.cancel(key)

    def pending(self, key: str) -> bool:
        return key in self._handles

    def keys(self) -> list[str]:
        return list(self._handles)

    def _fire(self, key: str, fn: Callable[[], Any]) -> None:
        self._handles.pop(key, None)
        fn()
