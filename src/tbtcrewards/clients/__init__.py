"""
tbtcrewards/clients/

HTTP clients for the upstream services the engine consumes.
"""

from .etherscan import EtherscanClient, ETHERSCAN_APIS
from .prometheus import PrometheusClient
from .github import GitHubReleaseClient

__all__ = [
    "EtherscanClient",
    "ETHERSCAN_APIS",
    "PrometheusClient",
    "GitHubReleaseClient",
]
