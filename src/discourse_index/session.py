"""Interactive session state: navigation history and debounced analysis refresh."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from .errors import ScanError
from .service import DiscourseIndex, NodeAnalysis

logger = logging.getLogger(__name__)


class NavigationHistory:
    """Bounded back/forward history of visited node ids."""

    def __init__(self, max_size: int = 100):
        self.max_size = max_size
        self._back: list[str] = []
        self._forward: list[str] = []
        self.current: str | None = None

    def visit(self, node_id: str) -> None:
        if node_id == self.current:
            return
        if self.current is not None:
            self._back.append(self.current)
            del self._back[: -self.max_size]
        self.current = node_id
        self._forward.clear()

    def back(self) -> str | None:
        if not self._back:
            return None
        if self.current is not None:
            self._forward.append(self.current)
        self.current = self._back.pop()
        return self.current

    def forward(self) -> str | None:
        if not self._forward:
            return None
        if self.current is not None:
            self._back.append(self.current)
        self.current = self._forward.pop()
        return self.current

    @property
    def can_go_back(self) -> bool:
        return bool(self._back)

    @property
    def can_go_forward(self) -> bool:
        return bool(self._forward)

    def clear(self) -> None:
        self._back.clear()
        self._forward.clear()
        self.current = None


class Debouncer:
    """Runs `fn` after `delay` seconds of quiet.

    Scheduling again before the timer fires cancels the pending call: the last
    request wins.
    """

    def __init__(self, delay: float, fn: Callable[..., Any]):
        self.delay = delay
        self.fn = fn
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    def schedule(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.delay, self._fire, args=(args, kwargs))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self, args: tuple, kwargs: dict) -> None:
        with self._lock:
            if self._timer is not threading.current_thread():
                return
            self._timer = None
        self.fn(*args, **kwargs)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None


class Session:
    """Owns the history and refresh state of one interactive client."""

    def __init__(
        self,
        index: DiscourseIndex,
        *,
        refresh_delay: float = 0.5,
        history_size: int = 100,
        on_refresh: Callable[[NodeAnalysis], None] | None = None,
    ):
        self.index = index
        self.history = NavigationHistory(history_size)
        self.on_refresh = on_refresh
        self.latest: NodeAnalysis | None = None
        self._refresher = Debouncer(refresh_delay, self.refresh_now)

    def open(self, node_id: str) -> bool:
        if self.index.get(node_id) is None:
            return False
        self.history.visit(node_id)
        self.request_refresh(node_id)
        return True

    def back(self) -> str | None:
        node_id = self.history.back()
        if node_id is not None:
            self.request_refresh(node_id)
        return node_id

    def forward(self) -> str | None:
        node_id = self.history.forward()
        if node_id is not None:
            self.request_refresh(node_id)
        return node_id

    def request_refresh(self, node_id: str) -> None:
        self._refresher.schedule(node_id)

    def document_saved(self, path: str) -> None:
        """Re-index a saved document, then refresh the node on display."""
        try:
            self.index.update_document(path)
        except ScanError as e:
            logger.warning("Skipping %s: %s", path, e)
        if self.history.current is not None:
            self.request_refresh(self.history.current)

    def refresh_now(self, node_id: str) -> NodeAnalysis | None:
        try:
            analysis = self.index.analyze_node(node_id)
        except Exception:
            logger.exception("Refreshing analysis for %s failed", node_id)
            return None
        if analysis is None:
            return None
        self.latest = analysis
        if self.on_refresh is not None:
            self.on_refresh(analysis)
        return analysis

    def close(self) -> None:
        self._refresher.cancel()
        self.history.clear()
        self.latest = None

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
