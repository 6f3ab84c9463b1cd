"""
rewarddist/rpc - Failover JSON-RPC access to EVM chain endpoints.

Provides balance, nonce, gas price, header and contract-call queries with
ordered endpoint failover and retry, plus single-shot transaction submission.
"""

from .connection import EndpointConnection
from .gateway import (
    Gateway,
    GatewayCancelled,
    GatewayError,
    READ_OPERATIONS,
    create_gateway,
)

__all__ = [
    "EndpointConnection",
    "Gateway",
    "GatewayCancelled",
    "GatewayError",
    "READ_OPERATIONS",
    "create_gateway",
]
