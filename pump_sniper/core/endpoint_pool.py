"""
Endpoint Pool

Round-robin selection over HTTP and streaming RPC endpoints with
per-kind failure tracking. Failed endpoints are skipped until every
endpoint of that kind has failed, at which point the pool resets.
"""

import logging
import time
from collections import OrderedDict
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..exceptions import ConfigurationException

logger = logging.getLogger(__name__)


class EndpointKind(str, Enum):
    HTTP = "http"
    STREAM = "stream"


def _unique(urls: Iterable[str]) -> List[str]:
    seen = []
    for url in urls or []:
        url = (url or "").strip()
        if url and url not in seen:
            seen.append(url)
    return seen


class EndpointPool:
    """
    Ordered endpoint lists with independent round-robin cursors.

    Usage:
        pool = EndpointPool(["https://a", "https://b"], ["wss://a"])
        url = pool.next_endpoint()
        pool.mark_failed(url)
    """

    def __init__(self, http_endpoints: Iterable[str], stream_endpoints: Iterable[str] = ()):
        self._endpoints: Dict[EndpointKind, List[str]] = {
            EndpointKind.HTTP: _unique(http_endpoints),
            EndpointKind.STREAM: _unique(stream_endpoints),
        }
        if not self._endpoints[EndpointKind.HTTP]:
            raise ConfigurationException("No HTTP RPC endpoints configured")

        self._cursor: Dict[EndpointKind, int] = {kind: 0 for kind in EndpointKind}
        # url -> time of last failure, oldest first
        self._failed: Dict[EndpointKind, "OrderedDict[str, float]"] = {
            kind: OrderedDict() for kind in EndpointKind
        }

    def endpoints(self, kind: EndpointKind = EndpointKind.HTTP) -> List[str]:
        return list(self._endpoints[kind])

    def kind_of(self, url: str) -> Optional[EndpointKind]:
        for kind, urls in self._endpoints.items():
            if url in urls:
                return kind
        return None

    def next_endpoint(self, kind: EndpointKind = EndpointKind.HTTP) -> str:
        """Return the next usable endpoint of ``kind``."""
        urls = self._endpoints[kind]
        if not urls:
            raise ConfigurationException(f"No {kind.value} endpoints configured")

        failed = self._failed[kind]
        available = [url for url in urls if url not in failed]
        if not available:
            logger.warning(f"All {kind.value} endpoints failed, resetting failure list")
            failed.clear()
            available = list(urls)

        url = available[self._cursor[kind] % len(available)]
        self._cursor[kind] += 1
        return url

    def mark_failed(self, url: str):
        """Flag ``url`` as failed so selection skips it."""
        kind = self.kind_of(url)
        if kind is None:
            logger.debug(f"Ignoring failure report for unknown endpoint {url}")
            return

        failed = self._failed[kind]
        failed.pop(url, None)
        failed[url] = time.time()

        urls = self._endpoints[kind]
        if len(urls) - len(failed) < 1:
            # keep only the most recent failure so something stays selectable
            failed.clear()
            failed[url] = time.time()
            if len(urls) > 1:
                logger.info(f"Most {kind.value} endpoints failed, keeping only {url} excluded")

        logger.debug(f"Marked {kind.value} endpoint failed: {url} ({len(failed)}/{len(urls)} failed)")

    def failed_endpoints(self, kind: EndpointKind = EndpointKind.HTTP) -> List[str]:
        return list(self._failed[kind])

    def available_count(self, kind: EndpointKind = EndpointKind.HTTP) -> int:
        failed = self._failed[kind]
        return sum(1 for url in self._endpoints[kind] if url not in failed)

    def get_status(self) -> Dict[str, Dict[str, object]]:
        return {
            kind.value: {
                "total": len(self._endpoints[kind]),
                "available": self.available_count(kind),
                "failed": self.failed_endpoints(kind),
            }
            for kind in EndpointKind
        }
