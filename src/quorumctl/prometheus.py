"""
Prometheus query client for quorumctl

Reads a single scalar for a custom scaling metric through the instant query API.
An unreachable or unhappy server never stops the autoscaling cycle: the client
substitutes a configured fallback value and marks the result as such.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from .config import FallbackValues
from .constants import PROMETHEUS_QUERY_PATH
from .errors import MetricsQueryError
from .log import get_logger
from .models import ExternalMetric

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class PrometheusClient:
    """
    Instant-query client using an injected httpx.Client

    The client is shared by every reconcile worker and owned by the
    ControllerContext; its timeout bounds every request.
    """

    http: httpx.Client
    default_url: str
    fallbacks: FallbackValues
    timeout: float | None = None
    now: Callable[[], datetime] = _utcnow

    def query_scalar(
        self, query: str, server_url: str | None = None
    ) -> ExternalMetric:
        """
        Evaluate an instant query and return its first sample

        Args:
            query: PromQL expression expected to yield one sample
            server_url: Prometheus base URL; the configured default if omitted

        Returns:
            ExternalMetric; fallback=True when a substitute value was used

        Raises:
            MetricsQueryError: If the server answered successfully with a
                payload that cannot be interpreted
        """
        base_url = (server_url or self.default_url).rstrip("/")
        params = {"query": query, "time": f"{self.now().timestamp():.3f}"}
        kwargs: dict[str, Any] = {"params": params}
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout

        try:
            response = self.http.get(f"{base_url}{PROMETHEUS_QUERY_PATH}", **kwargs)
        except httpx.HTTPError as e:
            return self._fallback(query, base_url, f"request failed: {e}")

        if response.status_code != 200:
            return self._fallback(
                query, base_url, f"HTTP status {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise MetricsQueryError(f"Invalid JSON from {base_url}: {e}") from e

        if not isinstance(payload, dict):
            raise MetricsQueryError(f"Unexpected payload from {base_url}")
        if payload.get("status") != "success":
            return self._fallback(
                query, base_url, f"query status {payload.get('status')!r}"
            )

        data = payload.get("data")
        if not isinstance(data, dict) or not isinstance(data.get("result"), list):
            raise MetricsQueryError(
                f"Missing result in response from {base_url}"
            )
        result_type = data.get("resultType")
        result = data["result"]
        if result_type not in ("vector", "scalar"):
            return self._fallback(
                query, base_url, f"unsupported result type {result_type!r}"
            )
        if not result:
            return self._fallback(query, base_url, "empty result")

        # Samples arrive as [timestamp, "string_value"]; a vector wraps them
        try:
            sample = result if result_type == "scalar" else result[0]["value"]
            value = float(sample[1])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise MetricsQueryError(
                f"Malformed sample in response from {base_url}: {e}"
            ) from e

        logger.debug(
            "Prometheus query succeeded",
            extra={"query": query, "server_url": base_url, "value": value},
        )
        return ExternalMetric(query=query, server_url=base_url, value=value)

    def _fallback(self, query: str, server_url: str, why: str) -> ExternalMetric:
        value = self.fallbacks.for_query(query)
        logger.warning(
            "Prometheus query failed, using fallback value",
            extra={
                "query": query,
                "server_url": server_url,
                "reason": why,
                "fallback": value,
            },
        )
        return ExternalMetric(
            query=query, server_url=server_url, value=value, fallback=True
        )
