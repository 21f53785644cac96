"""HTTP fetcher for schedule sources with bounded retries."""
import logging
import time
from typing import Dict, Optional

import requests

from processor.errors import FetchFailure

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (compatible; DenverRinkScheduler/1.0)'


class SourceFetcher:
    """Fetches raw source payloads over HTTP."""

    def __init__(self, timeout: int = 30, max_retries: int = 3, base_delay: float = 1.0,
                 session: Optional[requests.Session] = None):
        """
        Initialize the fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Total attempts per fetch (default: 3)
            base_delay: First backoff delay in seconds, doubled per attempt
            session: Optional requests session to reuse connections
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.session = session or requests.Session()

    def fetch(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[int] = None,
        method: str = 'GET',
        data: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Fetch a source payload with retry logic.

        Transient failures (timeouts, connection errors, 5xx and 429) are
        retried with exponential backoff; other HTTP errors fail at once.

        Args:
            url: Source URL
            headers: Extra request headers
            timeout: Per-request timeout overriding the default
            method: HTTP method
            data: Optional form body for POST sources

        Returns:
            Response body as text

        Raises:
            FetchFailure: If the fetch fails after all attempts
        """
        request_headers = {'User-Agent': USER_AGENT}
        request_headers.update(headers or {})
        timeout = timeout or self.timeout

        for attempt in range(self.max_retries):
            try:
                logger.info(f"Fetching {url} (attempt {attempt + 1}/{self.max_retries})")
                response = self.session.request(
                    method,
                    url,
                    headers=request_headers,
                    data=data,
                    timeout=timeout
                )
                response.raise_for_status()
                return response.text

            except requests.Timeout as e:
                failure = FetchFailure(url, 'timeout', message=str(e))
            except requests.ConnectionError as e:
                failure = FetchFailure(url, 'connection', message=str(e))
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                failure = FetchFailure(url, 'http', status_code=status, message=str(e))
            except requests.RequestException as e:
                failure = FetchFailure(url, 'request', message=str(e))

            if not failure.retryable:
                logger.error(f"Non-retryable failure fetching {url}: {failure}")
                raise failure

            if attempt < self.max_retries - 1:
                # Calculate exponential backoff delay
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    f"Request failed (attempt {attempt + 1}/{self.max_retries}): {failure}. "
                    f"Retrying in {delay} seconds..."
                )
                time.sleep(delay)
            else:
                logger.error(
                    f"All {self.max_retries} retry attempts failed. Last error: {failure}"
                )
                raise failure
