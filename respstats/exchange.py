"""Read-only view of a proxied HTTP exchange."""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from starlette.datastructures import URL, Headers

DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}


def site_key(uri: str) -> str:
    """Return ``scheme://host[:port]`` for a request URI, omitting default ports."""
    url = URL(uri)
    scheme = url.scheme.lower()
    host = url.hostname or ""
    if ":" in host:
        host = f"[{host}]"

    try:
        port = url.port
    except ValueError:
        port = None

    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


@dataclass(frozen=True)
class HttpRequest:
    uri: str

    @property
    def site(self) -> str:
        return site_key(self.uri)


@dataclass(frozen=True)
class HttpResponse:
    """Response half of an exchange; status_code is None when none was obtained."""
    status_code: Optional[int] = None
    headers: Headers = field(default_factory=Headers)

    @classmethod
    def from_header_pairs(
        cls,
        status_code: Optional[int],
        pairs: Iterable[Tuple[str, str]]
    ) -> "HttpResponse":
        """Build from (name, value) pairs; raises UnicodeEncodeError on non-latin-1 text."""
        raw = [
            (name.lower().encode("latin-1"),
             value.encode("latin-1"))
            for name, value in pairs
        ]
        return cls(status_code=status_code, headers=Headers(raw=raw))

    def header_values(self, name: str) -> List[str]:
        """All values of a header, in the order they were received."""
        return self.headers.getlist(name)


@dataclass(frozen=True)
class Exchange:
    """One completed HTTP round-trip as seen by the proxy."""
    request: HttpRequest
    response: HttpResponse
