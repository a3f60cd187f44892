"""Statistics registry that fans counter updates out to listeners."""
import logging
import threading
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


class StatsListener:
    """
    Receiver of statistics updates.

    Every method is a no-op here; listeners override the ones they care about.
    ``site`` is None for global (site-less) statistics.
    """

    def counter_inc(self, site: Optional[str], key: str, inc: int) -> None:
        pass

    def counter_dec(self, site: Optional[str], key: str, dec: int) -> None:
        pass

    def highwater_mark_set(self, site: Optional[str], key: str, value: int) -> None:
        pass

    def lowwater_mark_set(self, site: Optional[str], key: str, value: int) -> None:
        pass

    def all_cleared(self, site: Optional[str]) -> None:
        pass

    def cleared(self, site: Optional[str], key_prefix: str) -> None:
        pass


class StatsRegistry:
    """
    Delivers each statistics call to every registered listener.

    Calls are delivered synchronously and in listener registration order.
    The registry keeps no counters of its own.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: Tuple[StatsListener, ...] = ()

    @property
    def listeners(self) -> Tuple[StatsListener, ...]:
        return self._listeners

    def add_listener(self, listener: StatsListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners = self._listeners + (listener,)

    def remove_listener(self, listener: StatsListener) -> None:
        with self._lock:
            self._listeners = tuple(l for l in self._listeners if l is not listener)

    def _notify(self, method: str, *args) -> None:
        # Snapshot so listeners can (un)subscribe while we iterate
        for listener in self._listeners:
            try:
                getattr(listener, method)(*args)
            except Exception as e:
                logger.error(
                    f"Stats listener {type(listener).__name__} failed: {e}",
                    extra={"listener_method": method},
                    exc_info=True
                )

    def counter_inc(self, site: Optional[str], key: str, inc: int = 1) -> None:
        self._notify("counter_inc", site, key, inc)

    def counter_dec(self, site: Optional[str], key: str, dec: int = 1) -> None:
        self._notify("counter_dec", site, key, dec)

    def highwater_mark_set(self, site: Optional[str], key: str, value: int) -> None:
        self._notify("highwater_mark_set", site, key, value)

    def lowwater_mark_set(self, site: Optional[str], key: str, value: int) -> None:
        self._notify("lowwater_mark_set", site, key, value)

    def clear_all(self, site: Optional[str] = None) -> None:
        """Clear every statistic, or only those of one site."""
        self._notify("all_cleared", site)

    def clear(self, key_prefix: str, site: Optional[str] = None) -> None:
        """Clear statistics whose key starts with key_prefix."""
        self._notify("cleared", site, key_prefix)
