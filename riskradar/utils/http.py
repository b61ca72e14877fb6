# riskradar/utils/http.py
# Purpose: Blocking JSON GET with small retries. Callers run it in a worker thread
# and put it behind the resilience coordinator, which owns rate limits and breakers.
from __future__ import annotations

import logging
import random
import time
from typing import Any, Dict, Optional

import requests

from riskradar.errors import ProviderError

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)
USER_AGENT = "WalletRiskRadar/1.0"


def http_get_json(
    service: str,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    timeout: float = 10,
    attempts: int = 3,
    session: Optional[requests.Session] = None,
) -> Any:
    """
    GET with retries on 429/5xx and network errors, jittered backoff.
    Returns response.json() or raises ProviderError with the last failure.
    """
    http = session or requests
    backoff = 0.5
    last_error = "no attempt made"
    last_status: Optional[int] = None
    for attempt in range(max(1, attempts)):
        try:
            resp = http.get(
                url,
                params=params,
                timeout=timeout,
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            )
        except requests.RequestException as e:
            last_error, last_status = str(e), None
            logger.debug("[HTTP] %s attempt %d network error: %s", service, attempt + 1, e)
        else:
            status = resp.status_code
            if status == 200:
                try:
                    return resp.json()
                except ValueError as e:
                    raise ProviderError(service, f"invalid JSON: {e}", status=status)
            last_error, last_status = f"HTTP {status}", status
            if status not in RETRY_STATUSES:
                break
            logger.debug("[HTTP] %s attempt %d got %d, retrying", service, attempt + 1, status)
        if attempt + 1 < attempts:
            time.sleep(backoff + random.uniform(0, 0.2))
            backoff = min(backoff * 2, 4.0)
    raise ProviderError(service, last_error, status=last_status)


__all__ = ["http_get_json", "RETRY_STATUSES"]
