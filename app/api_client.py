"""
API Client Utilities
Generic HTTP client with retry logic and timeout, used outside the
book aggregation path (QR code images, ad hoc upstream calls).
"""

import time
import logging
from typing import Any, Dict, Optional

import requests

from constants import USER_AGENT
from exceptions import ApiError

logger = logging.getLogger("main")


class ApiClient:
    """Client with a base URL, default headers and linear retry backoff"""

    def __init__(self, base_url: str, timeout: float = 30, retries: int = 3, retry_delay: float = 1.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self.default_headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    def request(self, endpoint: str, method: str = "GET", data: Any = None, headers: Optional[Dict] = None,
                timeout: Optional[float] = None, retries: Optional[int] = None,
                retry_delay: Optional[float] = None, raw: bool = False) -> Any:
        """
        Make an HTTP request with retry logic and timeout

        Timeouts and 401/403 answers are not retried.

        Returns:
            Decoded JSON body, or the text body when raw=True
        """
        timeout = self.timeout if timeout is None else timeout
        retries = self.retries if retries is None else retries
        retry_delay = self.retry_delay if retry_delay is None else retry_delay

        url = self.build_url(endpoint)
        request_headers = {**self.default_headers, **(headers or {})}
        logger.debug(f"API Request: {method} {url}")

        last_error = None
        for attempt in range(retries + 1):
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=request_headers,
                    json=data,
                    timeout=timeout,
                )
                if not response.ok:
                    raise ApiError(f"HTTP {response.status_code}: {response.reason}", response.status_code)

                logger.debug(f"API Response: {response.status_code}")
                return response.text if raw else response.json()

            except requests.Timeout as e:
                last_error = ApiError(f"Request timed out after {timeout}s", 0)
                logger.warning(f"API Request timed out (attempt {attempt + 1}/{retries + 1}): {e}")
                break
            except ApiError as e:
                last_error = e
                logger.warning(f"API Request failed (attempt {attempt + 1}/{retries + 1}): {e.message}")
                if e.status in (401, 403):
                    break
            except requests.RequestException as e:
                last_error = ApiError(f"Request failed: {e}", 0)
                logger.warning(f"API Request failed (attempt {attempt + 1}/{retries + 1}): {e}")
            except ValueError as e:
                last_error = ApiError(f"Invalid JSON response: {e}", 502)
                break

            if attempt < retries:
                time.sleep(retry_delay * (attempt + 1))

        raise last_error

    def get(self, endpoint: str, **kwargs) -> Any:
        return self.request(endpoint, method="GET", **kwargs)

    def post(self, endpoint: str, data: Any = None, **kwargs) -> Any:
        return self.request(endpoint, method="POST", data=data, **kwargs)

    def put(self, endpoint: str, data: Any = None, **kwargs) -> Any:
        return self.request(endpoint, method="PUT", data=data, **kwargs)

    def delete(self, endpoint: str, **kwargs) -> Any:
        return self.request(endpoint, method="DELETE", **kwargs)

    def build_url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def set_default_headers(self, headers: Dict[str, str]):
        self.default_headers.update(headers)

    def set_auth_header(self, token: str, auth_type: str = "Bearer"):
        self.default_headers["Authorization"] = f"{auth_type} {token}"

    def remove_auth_header(self):
        self.default_headers.pop("Authorization", None)

    def get_base_url(self) -> str:
        return self.base_url

    def set_base_url(self, base_url: str):
        self.base_url = base_url.rstrip("/")
        logger.debug(f"API Base URL updated to: {self.base_url}")
