"""
Proxy Forwarder - relays requests to the upstream library API

Pure pass-through: the forwarder never interprets payloads, it only shapes
the outbound request and wraps the upstream answer in a uniform envelope.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urljoin, urlsplit

import requests
import structlog

from constants import USER_AGENT
from exceptions import UpstreamException
from utils import sanitize_sensitive_data

logger = structlog.get_logger("proxy")

BODYLESS_METHODS = ("GET", "HEAD")


@dataclass
class ProxyResult:
    """Uniform envelope for an upstream answer"""

    success: bool
    status: int
    data: Any
    headers: Dict[str, str] = field(default_factory=dict)
    status_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status,
            "data": self.data,
            "headers": self.headers,
        }


class ProxyForwarder:
    """Forwards {endpoint, method, headers, data} to a fixed upstream base URL"""

    def __init__(self, base_url: str, timeout: float = 30, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_url(self, endpoint: str) -> str:
        """
        Resolve endpoint against the base URL.

        Raises:
            ValueError: the endpoint resolves to another scheme or host
        """
        url = urljoin(self.base_url + "/", endpoint)
        target, base = urlsplit(url), urlsplit(self.base_url)
        if (target.scheme, target.netloc) != (base.scheme, base.netloc):
            raise ValueError("Endpoint must be a path on the library API")
        return url

    def build_headers(self, headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        merged = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        merged.update(headers or {})
        # Never serve upstream answers from an intermediate cache
        merged.setdefault("Cache-Control", "no-cache")
        merged.setdefault("Pragma", "no-cache")
        return merged

    def forward(
        self,
        endpoint: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        data: Any = None,
    ) -> ProxyResult:
        """
        Relay a single request upstream.

        Raises:
            ValueError: missing endpoint or one outside the library API
            UpstreamException: the upstream could not be reached
        """
        if not endpoint:
            raise ValueError("Endpoint is required")

        method = (method or "GET").upper()
        url = self.build_url(endpoint)
        request_headers = self.build_headers(headers)

        body = None
        if method not in BODYLESS_METHODS and data is not None:
            body = json.dumps(data)

        logger.debug(f"Proxy {method} request to: {url}")
        if "X-CSRF-Token" in request_headers:
            logger.debug("CSRF token included in headers", headers=sanitize_sensitive_data(request_headers))

        try:
            response = self.session.request(
                method,
                url,
                headers=request_headers,
                data=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamException(f"{method} {url} failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        return ProxyResult(
            success=response.ok,
            status=response.status_code,
            data=payload,
            headers=dict(response.headers),
            status_text=response.reason or "",
        )
