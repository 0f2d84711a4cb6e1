"""JSON-over-HTTP client with retry and exponential backoff."""
import logging
import time
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

# Statuses worth another attempt; everything else fails fast
RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class JsonApiClient:
    """Base class for the REST APIs the importer talks to."""

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        max_retries: int = 3,
        base_delay: float = 1,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the API client.

        Args:
            base_url: API root, without trailing slash
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per request before giving up (default: 3)
            base_delay: First backoff delay in seconds, doubled per attempt
            session: Optional requests session to reuse
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {'Accept': 'application/json'}

    def _request(
        self,
        method: str,
        path: str,
        allow_not_found: bool = False,
        **kwargs: Any,
    ) -> Optional[requests.Response]:
        """
        Send a request, retrying transient failures with exponential backoff.

        Args:
            method: HTTP method
            path: Path relative to base_url
            allow_not_found: Return None instead of raising on 404
            **kwargs: Passed through to requests (params, json, ...)

        Returns:
            Response object, or None for an allowed 404

        Raises:
            requests.RequestException: If the request fails permanently
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {**self._headers(), **kwargs.pop('headers', {})}

        for attempt in range(self.max_retries):
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=headers,
                    timeout=self.timeout,
                    **kwargs
                )
                if allow_not_found and response.status_code == 404:
                    return None
                response.raise_for_status()
                return response

            except requests.RequestException as e:
                status = e.response.status_code if e.response is not None else None
                retryable = status is None or status in RETRYABLE_STATUSES

                if retryable and attempt < self.max_retries - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"{method} {url} failed (attempt {attempt + 1}/"
                        f"{self.max_retries}): {e}. Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                    continue

                logger.error(
                    f"{method} {url} failed after {attempt + 1} attempt(s): {e}"
                )
                raise

    def _get_json(self, path: str, allow_not_found: bool = False, **kwargs: Any) -> Any:
        """GET ``path`` and decode the JSON body (None for an allowed 404)."""
        response = self._request('GET', path, allow_not_found=allow_not_found, **kwargs)
        if response is None:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ValueError(f"Malformed JSON from {response.url}: {e}") from e
