"""
JSON client for collaborator services (identity, catalog, notifications,
payments) with support for retries on rate limiting, timeouts and 5xx.
"""

import time
from typing import Any, Dict, Optional, Tuple, cast
from urllib.parse import urljoin

import requests
import structlog

from stay_reservations.config import UPSTREAM_TIMEOUT_SECONDS
from stay_reservations.errors import UpstreamUnavailable
from stay_reservations.metrics import upstream_latency, upstream_requests

logger = structlog.get_logger(__name__)

MAX_RETRIES = 2
RETRY_DELAY = 0.5


def should_retry(res: Optional[requests.Response], err: Optional[Exception]) -> bool:
    """
    Determine whether the request should be retried based on response or error.

    Args:
        res (Optional[requests.Response]): Response object if available.
        err (Optional[Exception]): Exception raised by the request, if any.

    Returns:
        bool: True if the request should be retried, False otherwise.
    """
    if res is not None and res.status_code == 429:
        return True
    if isinstance(err, (requests.Timeout, requests.ConnectionError)):
        return True
    if res is not None and 500 <= res.status_code < 600:
        return True
    return False


def request_json(
    service: str,
    method: str,
    base_url: str,
    path: str,
    json: Optional[Dict[str, Any]] = None,
    auth: Optional[Tuple[str, str]] = None,
    timeout: float = UPSTREAM_TIMEOUT_SECONDS,
) -> Optional[Dict[str, Any]]:
    """
    Call a collaborator endpoint and decode its JSON body.

    Args:
        service (str): Collaborator name, used for metrics and errors.
        method (str): HTTP method.
        base_url (str): Collaborator base URL.
        path (str): Path relative to base_url.
        json (Optional[Dict[str, Any]]): JSON request body.
        auth (Optional[Tuple[str, str]]): HTTP Basic credentials.
        timeout (float): Per-attempt timeout in seconds.

    Returns:
        Optional[Dict[str, Any]]: Decoded body, or None on 404 or an empty body.

    Raises:
        UpstreamUnavailable: If the service cannot be reached or keeps failing.
    """
    url = urljoin(base_url.rstrip("/") + "/", path)
    retries = 0

    while True:
        res: Optional[requests.Response] = None
        try:
            start_time = time.time()
            res = requests.request(method, url, json=json, auth=auth, timeout=timeout)
            upstream_latency.labels(service=service).observe(time.time() - start_time)
            upstream_requests.labels(service=service, status_code=str(res.status_code)).inc()

            if res.status_code == 404:
                return None

            res.raise_for_status()
            if not res.content:
                return None
            return cast(Dict[str, Any], res.json())

        except requests.RequestException as err:
            if res is None:
                upstream_requests.labels(service=service, status_code="error").inc()
            logger.warning(
                "upstream_request_failed",
                service=service,
                method=method,
                url=url,
                attempt=retries + 1,
                error=str(err),
            )
            retries += 1
            if retries > MAX_RETRIES or not should_retry(res, err):
                raise UpstreamUnavailable(service) from err
            time.sleep(RETRY_DELAY * retries)
