from collections import defaultdict
from typing import Any, Callable

Callback = Callable[..., Any]


class Events:
    """Minimal observer mixin: on/off/trigger by event name."""

    def __init__(self) -> None:
        self._callbacks: dict[str, list[Callback]] = defaultdict(list)

    def on(self, event: str, callback: Callback) -> None:
        self._callbacks[event].append(callback)

    def off(self, event: str, callback: Callback | None = None) -> None:
        if callback is None:
            self._callbacks.pop(event, None)
            return
        callbacks = self._callbacks.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def trigger(self, event: str, *args: Any) -> None:
        # copy so a callback may unsubscribe itself
        for callback in list(self._callbacks.get(event, [])):
            callback(*args)
