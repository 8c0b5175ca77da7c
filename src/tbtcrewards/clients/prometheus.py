"""
tbtcrewards/clients/prometheus.py

Prometheus client for operator metrics.

Range queries are filtered by the service discovery job and the
operator's chain address. Every series returned for a metric is merged
into one ascending list of samples that keep the series labels, so
client_info can carry the reported version as a label.

Usage:
    client = PrometheusClient(api_url, job="keep-discovered-nodes")
    samples = client.sample_metric("up", "0xabc...", start, end, 60)
    operators = client.discover_operators(start, end)
"""

import logging
import threading
from typing import Any, Dict, List, Optional

import requests

from ..config import OPERATORS_SEARCH_QUERY_STEP, PROMETHEUS_API_DEFAULT, PROMETHEUS_JOB_DEFAULT
from ..errors import MetricUnavailable
from ..sampler import MetricSample

logger = logging.getLogger("tbtcrewards.clients.prometheus")


OPERATOR_LABEL = "chain_address"


class PrometheusClient:
    """
    Metrics client backed by the Prometheus HTTP API.

    Operators are sampled from several worker threads at once, so unless a
    session is injected each thread gets its own requests.Session.

    Attributes:
        api_url: Prometheus API base URL (ending in /api/v1)
        job: Service discovery job name
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        api_url: str = PROMETHEUS_API_DEFAULT,
        job: str = PROMETHEUS_JOB_DEFAULT,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.job = job
        self.timeout = timeout
        self._session = session
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = requests.Session()
        return session

    def _query_range(self, query: str, start: int, end: int, step: int) -> List[Dict[str, Any]]:
        params = {"query": query, "start": start, "end": end, "step": step}
        try:
            response = self.session.get(
                f"{self.api_url}/query_range", params=params, timeout=self.timeout
            )
            response.raise_for_status()
            payload = response.json()
        except requests.Timeout as e:
            raise MetricUnavailable(f"Prometheus query timed out after {self.timeout}s: {query}") from e
        except requests.RequestException as e:
            raise MetricUnavailable(f"Prometheus query failed: {e}") from e
        except ValueError as e:
            raise MetricUnavailable(f"Invalid Prometheus response: {e}") from e

        if not isinstance(payload, dict) or payload.get("status") != "success":
            error = payload.get("error") if isinstance(payload, dict) else payload
            raise MetricUnavailable(f"Prometheus query unsuccessful: {error}")

        result = (payload.get("data") or {}).get("result")
        if not isinstance(result, list):
            raise MetricUnavailable(f"Malformed Prometheus result for {query}")
        return result

    def selector(self, metric: str, operator_address: str) -> str:
        return f'{metric}{{job="{self.job}",{OPERATOR_LABEL}="{operator_address}"}}'

    def sample_metric(
        self,
        name: str,
        operator_address: str,
        start: int,
        end: int,
        resolution: int,
    ) -> List[MetricSample]:
        """
        Get raw samples of a metric for an operator.

        Returns:
            Samples ascending by timestamp; gaps are left as gaps

        Raises:
            MetricUnavailable: If Prometheus is unreachable or the payload
                is malformed
        """
        query = self.selector(name, operator_address)
        series = self._query_range(query, start, end, resolution)

        samples = []
        for entry in series:
            try:
                labels = {str(k): str(v) for k, v in (entry.get("metric") or {}).items()}
                for timestamp, value in entry.get("values", []):
                    samples.append(MetricSample(
                        timestamp=int(float(timestamp)),
                        value=float(value),
                        labels=labels,
                    ))
            except (AttributeError, TypeError, ValueError) as e:
                raise MetricUnavailable(
                    f"Malformed {name} series for {operator_address}: {e}",
                    metric=name,
                    operator=operator_address,
                ) from e

        samples.sort(key=lambda s: s.timestamp)
        logger.debug(f"{name} for {operator_address}: {len(samples)} samples from {len(series)} series")
        return samples

    def discover_operators(
        self,
        start: int,
        end: int,
        step: int = OPERATORS_SEARCH_QUERY_STEP,
    ) -> List[str]:
        """
        List operators seen by the discovery job during [start, end].

        Raises:
            MetricUnavailable: If Prometheus cannot be queried
        """
        series = self._query_range(f'up{{job="{self.job}"}}', start, end, step)
        operators = sorted({
            (entry.get("metric") or {}).get(OPERATOR_LABEL)
            for entry in series
            if (entry.get("metric") or {}).get(OPERATOR_LABEL)
        })
        logger.info(f"Discovered {len(operators)} operators in job {self.job}")
        return operators
