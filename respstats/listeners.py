"""In-memory stats listener used to serve counters over the API."""
import threading
from typing import Dict, List, Optional, Tuple

from respstats.registry import StatsListener

StatKey = Tuple[Optional[str], str]


class InMemoryStats(StatsListener):
    """Keeps every statistic in a dict keyed by (site, key)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._stats: Dict[StatKey, int] = {}

    def counter_inc(self, site, key, inc):
        with self._lock:
            self._stats[(site, key)] = self._stats.get((site, key), 0) + inc

    def counter_dec(self, site, key, dec):
        with self._lock:
            self._stats[(site, key)] = self._stats.get((site, key), 0) - dec

    def highwater_mark_set(self, site, key, value):
        with self._lock:
            current = self._stats.get((site, key))
            if current is None or value > current:
                self._stats[(site, key)] = value

    def lowwater_mark_set(self, site, key, value):
        with self._lock:
            current = self._stats.get((site, key))
            if current is None or value < current:
                self._stats[(site, key)] = value

    def all_cleared(self, site):
        with self._lock:
            if site is None:
                self._stats.clear()
            else:
                self._stats = {k: v for k, v in self._stats.items() if k[0] != site}

    def cleared(self, site, key_prefix):
        # site None clears the prefix everywhere, like all_cleared(None)
        with self._lock:
            self._stats = {
                (s, key): v for (s, key), v in self._stats.items()
                if not (site in (None, s) and key.startswith(key_prefix))
            }

    def get_stat(self, site: Optional[str], key: str) -> Optional[int]:
        with self._lock:
            return self._stats.get((site, key))

    def get_stats(self, key_prefix: str = "") -> Dict[str, int]:
        """Global (site-less) statistics."""
        return self.get_site_stats(None, key_prefix)

    def get_site_stats(self, site: Optional[str], key_prefix: str = "") -> Dict[str, int]:
        with self._lock:
            return {
                key: v for (s, key), v in self._stats.items()
                if s == site and key.startswith(key_prefix)
            }

    def get_all_site_stats(self, key_prefix: str = "") -> Dict[str, Dict[str, int]]:
        result: Dict[str, Dict[str, int]] = {}
        with self._lock:
            for (site, key), v in self._stats.items():
                if site is not None and key.startswith(key_prefix):
                    result.setdefault(site, {})[key] = v
        return result

    def sites(self) -> List[str]:
        with self._lock:
            return sorted({site for site, _ in self._stats if site is not None})
