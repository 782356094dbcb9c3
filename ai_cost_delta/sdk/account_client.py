"""
Account endpoint client.

Reads the remote account's cumulative spend totals.
"""

import logging
from typing import Optional

import requests

from ..config.loader import DEFAULT_ENDPOINT, DEFAULT_REQUEST_TIMEOUT, CostDeltaConfig
from ..storage.models import AccountSnapshot

logger = logging.getLogger(__name__)


class AccountSnapshotSource:
    """Fetches AccountSnapshot objects from the billing endpoint.

    fetch() never raises: a missing API key, a transport error, a non-2xx
    status or an undecodable body all come back as None, which callers
    treat as "every field unknown".
    """

    def __init__(
        self,
        api_key: Optional[str],
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        """Initialize the client.

        Args:
            api_key: Bearer credential; without one nothing is fetched
            endpoint: Account info URL
            timeout: Request timeout in seconds
        """
        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.endpoint = endpoint
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: CostDeltaConfig) -> "AccountSnapshotSource":
        return cls(
            api_key=config.api_key,
            endpoint=config.endpoint,
            timeout=config.request_timeout,
        )

    def fetch(self) -> Optional[AccountSnapshot]:
        """Fetch the current account totals.

        Returns:
            Parsed AccountSnapshot, or None if unavailable
        """
        if not self.api_key:
            logger.debug("No API key configured; skipping account fetch")
            return None

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        try:
            response = requests.get(self.endpoint, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Account fetch failed: %s", e)
            return None

        if not response.ok:
            logger.warning("Account fetch returned HTTP %s", response.status_code)
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Account fetch returned a body that is not JSON")
            return None

        if not isinstance(payload, dict):
            logger.warning("Account fetch returned %s instead of an object", type(payload).__name__)
            return None
        return AccountSnapshot.from_payload(payload)
