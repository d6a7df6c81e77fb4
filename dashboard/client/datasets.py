import logging
from threading import Lock

from dashboard.client.api_client import DashboardApiClient
from dashboard.core.errors import DashboardError

logger = logging.getLogger(__name__)


class DatasetView:
    """Holds the dataset for the currently selected country.

    Each request takes a ticket from `begin`; `resolve` only accepts the
    result for the newest ticket, so a slow response for a country the user
    has already moved away from never replaces newer data.
    """

    def __init__(self, api: DashboardApiClient, path: str):
        self.api = api
        self.path = path
        self.country: str | None = None
        self.data = None
        self.error: str | None = None
        self.loading = False
        self._generation = 0
        self._lock = Lock()

    def begin(self, country: str) -> int:
        with self._lock:
            self._generation += 1
            self.country = country
            self.loading = True
            self.error = None
            return self._generation

    def resolve(self, ticket: int, data=None, error: str | None = None) -> bool:
        with self._lock:
            if ticket != self._generation:
                logger.debug("Dropping stale %s response", self.path)
                return False
            self.data = data if error is None else None
            self.error = error
            self.loading = False
            return True

    def load(self, country: str, **params) -> bool:
        ticket = self.begin(country)
        try:
            data = self.api.get_json(self.path, params={"country": country, **params})
        except DashboardError as exc:
            return self.resolve(ticket, error=exc.message)
        return self.resolve(ticket, data=data)
