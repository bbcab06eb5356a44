"""Progress and notification sinks."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ProgressDebouncer:
    """Pass progress through only when it crosses a new 10% milestone."""

    MILESTONES = (0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100)

    def __init__(self):
        self.last_milestone = -1

    def update(self, progress: float, callback: Callable[[int], None]) -> None:
        # Report the highest milestone reached in one go
        reached = max(
            (m for m in self.MILESTONES if progress >= m and m > self.last_milestone),
            default=None,
        )
        if reached is not None:
            self.last_milestone = reached
            callback(reached)

    def clear(self) -> None:
        self.last_milestone = -1


class Notifier(ABC):
    """Receives user-facing messages and progress updates."""

    @abstractmethod
    def notify(self, message: str) -> None:
        """Show a transient message to the user."""

    def start(self, item_id: str) -> None:
        pass

    def on_progress(self, item_id: str, percent: float) -> None:
        pass

    def finish(self, item_id: str) -> None:
        pass


class LoggingNotifier(Notifier):
    """Notifier that logs messages and keeps an aggregate status line."""

    def __init__(self, echo: Optional[Callable[[str], None]] = None):
        self.echo = echo
        self.messages: list[str] = []
        self.status_text = ""
        self._total = 0
        self._done = 0
        self._progress: dict[str, float] = {}
        self._lock = threading.Lock()

    def notify(self, message: str) -> None:
        with self._lock:
            self.messages.append(message)
        logger.info(message)
        if self.echo:
            self.echo(message)

    def start(self, item_id: str) -> None:
        with self._lock:
            self._total += 1
            self._progress[item_id] = 0
            self._refresh()

    def on_progress(self, item_id: str, percent: float) -> None:
        with self._lock:
            if item_id not in self._progress:
                return
            self._progress[item_id] = percent
            self._refresh()

    def finish(self, item_id: str) -> None:
        with self._lock:
            if self._progress.pop(item_id, None) is None:
                return
            self._done += 1
            if self._done >= self._total:
                self._total = 0
                self._done = 0
            self._refresh()

    def _refresh(self) -> None:
        if self._total == 0:
            self.status_text = ""
            return
        average = 0
        if self._progress:
            average = round(sum(self._progress.values()) / len(self._progress))
        self.status_text = f"📤 {self._done}/{self._total} ({average}%)"
        logger.debug(self.status_text)
