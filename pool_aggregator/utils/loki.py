from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional

from pool_aggregator.config import Settings
from pool_aggregator.http import HttpClient

logger = logging.getLogger(__name__)


def loki_payload(level: str, message: str, labels: Dict[str, str], extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    ts_ns = str(int(time.time() * 1_000_000_000))
    return {
        "streams": [
            {
                "stream": labels,
                "values": [[ts_ns, json.dumps({"message": message, **(extra or {})})]],
            }
        ]
    }


async def loki_log(
    http: HttpClient,
    settings: Settings,
    level: str,
    message: str,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Push one log line to Loki's push API. No-op unless ``LOKI_URL`` is set.

    Delivery is best-effort: a failed push is logged locally and dropped.
    """
    if not settings.LOKI_URL:
        return
    labels = {"service": "pool-aggregator", "env": settings.ENV, "level": level}
    url = f"{settings.LOKI_URL.rstrip('/')}/loki/api/v1/push"
    try:
        await http.post(url, json=loki_payload(level, message, labels, extra), timeout=2.0)
    except Exception as e:
        logger.debug(f"Loki push failed: {e}")
