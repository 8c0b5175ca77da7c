"""
tbtcrewards/clients/etherscan.py

Etherscan client for resolving timestamps to block numbers.

Usage:
    client = EtherscanClient(api_key="...", network="mainnet")
    block = client.resolve_block_for_timestamp(1664582400)
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..errors import BlockResolutionError

logger = logging.getLogger("tbtcrewards.clients.etherscan")


ETHERSCAN_APIS: Dict[str, str] = {
    "mainnet": "https://api.etherscan.io",
    "goerli": "https://api-goerli.etherscan.io",
    "sepolia": "https://api-sepolia.etherscan.io",
}


class EtherscanClient:
    """
    Block explorer client.

    Attributes:
        api_url: Etherscan API base URL
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        api_key: str,
        api_url: Optional[str] = None,
        network: str = "mainnet",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize EtherscanClient.

        Args:
            api_key: Etherscan API key token
            api_url: API base URL (default: derived from network)
            network: Network name used when api_url is not given
            timeout: Per-request timeout in seconds
            session: Optional requests session (for connection reuse)
        """
        if api_url is None:
            if network not in ETHERSCAN_APIS:
                raise ValueError(
                    f"Unknown network: {network}. Valid options: {', '.join(ETHERSCAN_APIS)}"
                )
            api_url = ETHERSCAN_APIS[network]
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params = dict(params, apikey=self.api_key)
        try:
            response = self.session.get(f"{self.api_url}/api", params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.Timeout as e:
            raise BlockResolutionError(f"Etherscan request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise BlockResolutionError(f"Etherscan request failed: {e}") from e
        except ValueError as e:
            raise BlockResolutionError(f"Invalid Etherscan response: {e}") from e

    def resolve_block_for_timestamp(self, timestamp: int) -> int:
        """
        Get the first block mined at or after a timestamp.

        Raises:
            BlockResolutionError: If no such block exists or the lookup fails
        """
        data = self._get({
            "module": "block",
            "action": "getblocknobytime",
            "timestamp": int(timestamp),
            "closest": "after",
        })

        result = data.get("result")
        if str(data.get("status")) != "1":
            raise BlockResolutionError(
                f"No block at or after {timestamp}: {data.get('message', '')} {result}"
            )
        try:
            block = int(result)
        except (TypeError, ValueError):
            raise BlockResolutionError(f"Invalid block number for {timestamp}: {result!r}")

        logger.info(f"Resolved timestamp {timestamp} to block {block}")
        return block
