"""
REST API client used by the scenario steps.

One client is created per scenario and closed when the scenario ends, so no
connection-pool state is shared between scenarios. Requests are never retried.
"""
import requests
from typing import Dict, Any, Optional
import time
import json
import urllib3

from api.response_snapshot import ResponseSnapshot
from utils.config_loader import ApiConfig
from utils.custom_exceptions import TransportError
from utils.logger import api_logger, log_performance

# Disable SSL warnings for test environments
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


class RestClient:
    """
    Thin wrapper over a `requests.Session`.

    Every call returns a `ResponseSnapshot` with the elapsed wall-clock time
    measured between dispatch and receipt. Authentication is supplied by the
    caller as plain headers.
    """

    SUPPORTED_METHODS = ('GET', 'POST', 'PUT', 'DELETE')

    def __init__(self, config: ApiConfig):
        """
        Initialize REST client.

        Args:
            config: API settings (base URL, timeout, SSL verification, headers).
        """
        self.config = config
        self.base_url = config.base_url.rstrip('/')
        self.default_timeout = config.timeout
        self.verify_ssl = config.verify_ssl

        self.session = requests.Session()

        self.default_headers = {
            'User-Agent': config.user_agent,
            'Accept': 'application/json',
        }
        self.default_headers.update(config.headers)

        api_logger.debug(f"REST client initialized with base URL: {self.base_url}")

    def _build_url(self, endpoint: str) -> str:
        """Build full URL from endpoint."""
        if endpoint.startswith(('http://', 'https://')):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _prepare_headers(self, headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        request_headers = self.default_headers.copy()
        if headers:
            request_headers.update(headers)
        return request_headers

    def request(self,
                method: str,
                endpoint: str,
                headers: Optional[Dict[str, str]] = None,
                json_data: Optional[Any] = None,
                timeout: Optional[float] = None) -> ResponseSnapshot:
        """
        Execute one HTTP request.

        Args:
            method: HTTP method name
            endpoint: Path relative to the base URL, or an absolute URL
            headers: Extra headers for this call (auth, content negotiation)
            json_data: Body serialized as JSON for write requests
            timeout: Per-call timeout in seconds

        Returns:
            ResponseSnapshot of the response

        Raises:
            TransportError: the request could not be completed
        """
        method = method.upper()
        if method not in self.SUPPORTED_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")

        url = self._build_url(endpoint)
        request_headers = self._prepare_headers(headers)

        api_logger.info(f"{method} {url}")
        if json_data is not None:
            api_logger.debug(f"Request body: {json.dumps(json_data, indent=2)}")

        start = time.perf_counter()
        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=request_headers,
                json=json_data,
                timeout=timeout or self.default_timeout,
                verify=self.verify_ssl
            )
        except requests.exceptions.RequestException as e:
            api_logger.error(f"Request failed: {type(e).__name__} - {e}")
            raise TransportError(f"{method} {url} failed: {type(e).__name__}: {e}",
                                 method=method, url=url) from e
        elapsed_ms = (time.perf_counter() - start) * 1000

        snapshot = ResponseSnapshot.from_response(response, elapsed_ms)
        api_logger.info(f"Response: {snapshot.status_code} in {elapsed_ms:.2f}ms")
        log_performance(f"{method} {endpoint}", elapsed_ms, status_code=snapshot.status_code)
        return snapshot

    def close(self):
        """Close the session."""
        self.session.close()
        api_logger.debug("REST client session closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
