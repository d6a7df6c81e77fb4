import json
import logging
import time
from threading import Lock
from typing import Any

import httpx

from dashboard.core import config
from dashboard.core.errors import NotFound, UpstreamFailure

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SECONDS = 3600


def _decode(text: str) -> Any:
    return json.loads(text, parse_constant=lambda _token: None)


def parse_feed_json(text: str) -> Any:
    """Parse a data feed payload.

    The feeds are produced by pandas exports and may contain bare `NaN` or
    `Infinity` tokens and, occasionally, shell error output before the
    document. Those tokens become `None`. When the text is not a document on
    its own, parsing is retried from the first `{` and then from the first
    `[`, since the error output itself can contain brackets.
    """
    try:
        return _decode(text)
    except ValueError:
        pass

    starts = []
    for marker in ('{', '['):
        index = text.find(marker)
        if index >= 0 and index not in starts:
            starts.append(index)
    if not starts:
        raise UpstreamFailure('Data feed returned no JSON document')

    for start in starts:
        try:
            data = _decode(text[start:])
        except ValueError:
            continue
        logger.info('Discarded %d leading characters before the JSON document', start)
        return data
    raise UpstreamFailure('Failed to parse data feed response')


class DataFeedClient:
    """Read-only client for the public blob container holding the country datasets."""

    def __init__(
        self,
        base_url: str,
        http_client: httpx.Client | None = None,
        timeout: float = 15.0,
        cache_seconds: int = DEFAULT_CACHE_SECONDS,
    ):
        self.http = http_client or httpx.Client(base_url=base_url, timeout=timeout)
        self.cache_seconds = cache_seconds
        self._cache: dict[str, tuple[float, Any]] = {}
        self._cache_lock = Lock()

    @classmethod
    def from_config(cls) -> 'DataFeedClient':
        return cls(base_url=config.DATA_FEED_BASE_URL, timeout=config.DATA_FEED_TIMEOUT_SECONDS)

    def close(self) -> None:
        self.http.close()

    def fetch_json(self, path: str, cache: bool = False) -> Any:
        if cache:
            with self._cache_lock:
                cached = self._cache.get(path)
            if cached and time.monotonic() - cached[0] < self.cache_seconds:
                return cached[1]

        try:
            response = self.http.get(path, headers={'Accept': 'application/json'})
        except httpx.HTTPError as exc:
            logger.warning('Data feed request failed for %s: %s', path, exc.__class__.__name__)
            raise UpstreamFailure() from exc

        if response.status_code == 404:
            raise NotFound(f'Dataset not found: {path}')
        if response.is_error:
            logger.warning('Data feed returned %s for %s', response.status_code, path)
            raise UpstreamFailure(f'HTTP error! status: {response.status_code}')

        data = parse_feed_json(response.text)
        if cache:
            with self._cache_lock:
                self._cache[path] = (time.monotonic(), data)
        return data
