"""Passive observer that counts response codes, content types and timings per site."""
import logging
from typing import Any, List, Optional

from respstats.content_type import canonicalize_content_type
from respstats.exchange import Exchange
from respstats.registry import StatsRegistry

logger = logging.getLogger(__name__)

CODE_STATS_PREFIX = "stats.code."
CONTENT_TYPE_STATS_PREFIX = "stats.contenttype."
RESPONSE_TIME_STATS_PREFIX = "stats.responseTime."

CONTENT_TYPE_HEADER = "Content-Type"


def status_code_key(status_code: Optional[int]) -> str:
    """Decimal status text; a missing or negative status is recorded as 0."""
    if status_code is None or status_code < 0:
        return "0"
    return str(status_code)


def content_type_keys(values: List[str]) -> List[str]:
    """Distinct canonical content types, in first-seen order."""
    keys: List[str] = []
    for raw in values:
        canonical = canonicalize_content_type(raw)
        if canonical and canonical not in keys:
            keys.append(canonical)
    return keys


class ResponseStatsObserver:
    """
    Counts every observed response against the site it came from.

    Stateless apart from the injected registry, so one instance can be
    shared by concurrent workers.
    """

    def __init__(self, registry: StatsRegistry):
        self.registry = registry

    def counter_keys(self, exchange: Exchange, elapsed_ms: int) -> List[str]:
        """Every counter key one exchange increments: code, content types, response time."""
        response = exchange.response
        keys = [CODE_STATS_PREFIX + status_code_key(response.status_code)]
        keys.extend(
            CONTENT_TYPE_STATS_PREFIX + content_type
            for content_type in content_type_keys(response.header_values(CONTENT_TYPE_HEADER))
        )
        keys.append(RESPONSE_TIME_STATS_PREFIX + str(int(elapsed_ms)))
        return keys

    def observe(self, exchange: Exchange, elapsed_ms: int, parsed_body: Any = None) -> None:
        """
        Record stats for one completed exchange.

        parsed_body is accepted for the scan dispatcher's calling convention
        and is not inspected. All keys are derived before the first increment,
        so a bad exchange records nothing rather than part of its counters.
        Errors are logged, never raised.
        """
        try:
            site = exchange.request.site
            keys = self.counter_keys(exchange, elapsed_ms)
        except Exception as e:
            logger.error(
                f"Failed to record response stats: {e}",
                extra={"uri": getattr(getattr(exchange, "request", None), "uri", None)},
                exc_info=True
            )
            return

        for key in keys:
            self.registry.counter_inc(site, key)

        logger.debug(
            "Response stats recorded",
            extra={
                "site": site,
                "status": exchange.response.status_code,
                "elapsed_ms": elapsed_ms
            }
        )
