"""
Theme Park Crowd Tracker - Queue-Times.com API Client
Fetches the park catalog and per-park ride status with retry logic using tenacity.
"""

import threading
import weakref
import requests
from typing import Dict, List, Optional
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from utils.config import (
    QUEUE_TIMES_API_BASE_URL, QUEUE_TIMES_TIMEOUT_SECONDS, MAX_RETRY_ATTEMPTS,
    RETRY_BACKOFF_MULTIPLIER, RETRY_MIN_WAIT_SECONDS, RETRY_MAX_WAIT_SECONDS
)
from utils.logger import logger


class QueueTimesClient:
    """
    Client for Queue-Times.com API with automatic retry logic.

    Implements exponential backoff for transient failures (network, timeouts).
    HTTP error statuses are not retried and surface as requests.HTTPError.

    The sampler calls one client from several worker threads; each thread
    gets its own requests.Session.
    """

    def __init__(self, base_url: str = QUEUE_TIMES_API_BASE_URL,
                 timeout: float = QUEUE_TIMES_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._local = threading.local()
        # Sessions of finished worker threads are garbage collected with them
        self._sessions: "weakref.WeakSet[requests.Session]" = weakref.WeakSet()
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """HTTP session of the calling thread."""
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            session.headers.update({
                'User-Agent': 'ThemeParkCrowdTracker/1.0 (Data Collection Bot)',
                'Accept': 'application/json'
            })
            self._local.session = session
            with self._sessions_lock:
                self._sessions.add(session)
        return session

    @property
    def parks_url(self) -> str:
        return f"{self.base_url}/parks.json"

    @retry(
        stop=stop_after_attempt(MAX_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=RETRY_BACKOFF_MULTIPLIER,
                              min=RETRY_MIN_WAIT_SECONDS, max=RETRY_MAX_WAIT_SECONDS),
        retry=retry_if_exception_type((requests.Timeout, requests.ConnectionError))
    )
    def get_parks(self) -> List[Dict]:
        """
        Fetch all park groups with their nested parks.

        Returns:
            List of group dictionaries, each with a "parks" list

        Raises:
            requests.HTTPError: If API returns error status
            requests.Timeout: If request times out (after retries)
            ValueError: If the body is not a JSON array
        """
        logger.debug(f"Fetching park catalog from {self.parks_url}")

        response = self.session.get(self.parks_url, timeout=self.timeout)
        response.raise_for_status()

        groups = response.json()
        if not isinstance(groups, list):
            raise ValueError(f"Expected a list of park groups, got {type(groups).__name__}")

        logger.info(f"Fetched {len(groups)} park groups from Queue-Times.com")
        return groups

    @retry(
        stop=stop_after_attempt(MAX_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=RETRY_BACKOFF_MULTIPLIER,
                              min=RETRY_MIN_WAIT_SECONDS, max=RETRY_MAX_WAIT_SECONDS),
        retry=retry_if_exception_type((requests.Timeout, requests.ConnectionError))
    )
    def get_park_queue_times(self, park_external_id: int) -> Dict:
        """
        Fetch current ride status for one park.

        Args:
            park_external_id: Queue-Times.com park ID

        Returns:
            Dictionary with "lands" (each with nested "rides") and/or a
            top-level "rides" list

        Raises:
            requests.HTTPError: If API returns error status
            requests.Timeout: If request times out (after retries)
            ValueError: If the body is not a JSON object
        """
        url = f"{self.base_url}/parks/{park_external_id}/queue_times.json"
        logger.debug(f"Fetching queue times for park {park_external_id}")

        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(
                f"Expected a queue times object for park {park_external_id}, "
                f"got {type(data).__name__}"
            )
        return data

    def close(self):
        """Close the HTTP sessions of every thread."""
        with self._sessions_lock:
            sessions = list(self._sessions)
            self._sessions.clear()
        for session in sessions:
            session.close()
        self._local = threading.local()


# Singleton instance
_client: Optional[QueueTimesClient] = None


def get_queue_times_client() -> QueueTimesClient:
    """
    Get or create singleton Queue-Times API client.

    Returns:
        QueueTimesClient instance
    """
    global _client
    if _client is None:
        _client = QueueTimesClient()
    return _client
