"""
rewarddist/rpc/connection.py

Low-level HTTP JSON-RPC connection handling for a single chain endpoint.
"""

import logging
from typing import Optional

import requests
from web3 import Web3
from web3.providers.rpc import HTTPProvider

from ..config import DEFAULT_RPC_TIMEOUT

logger = logging.getLogger("rewarddist.rpc.connection")


class EndpointConnection:
    """
    Manages the Web3 client for one RPC endpoint.

    The connection is considered established once the endpoint answered
    a liveness probe; after that every request goes through ``w3``.
    """

    def __init__(self, url: str, timeout: float = DEFAULT_RPC_TIMEOUT):
        """
        Initialize connection parameters.

        Args:
            url: HTTP(S) JSON-RPC endpoint URL
            timeout: Request timeout in seconds
        """
        self.url = url
        self.timeout = timeout

        self._w3: Optional[Web3] = None
        self._session: Optional[requests.Session] = None
        self._connected = False

    @property
    def connected(self) -> bool:
        """Check if connection is active."""
        return self._connected

    @property
    def w3(self) -> Web3:
        """Web3 client bound to this endpoint."""
        if self._w3 is None:
            raise ConnectionError(f"Endpoint {self.url} is not connected")
        return self._w3

    def connect(self) -> bool:
        """
        Establish the connection and probe the endpoint.

        Returns:
            True if the endpoint answered
        """
        try:
            self._session = requests.Session()
            provider = HTTPProvider(
                self.url,
                request_kwargs={"timeout": self.timeout},
                session=self._session,
            )
            w3 = Web3(provider)
            if not w3.is_connected():
                logger.error(f"Endpoint {self.url} did not answer the connection probe")
                self.close()
                return False

            self._w3 = w3
            self._connected = True
            logger.debug(f"Connection established to {self.url}")
            return True

        except Exception as e:
            logger.error(f"Connection failed to {self.url}: {e}")
            self.close()
            return False

    def close(self) -> None:
        """Close the connection and its HTTP session."""
        if self._session is not None:
            self._session.close()
            self._session = None
        self._connected = False
        self._w3 = None

    def __repr__(self) -> str:
        return f"EndpointConnection({self.url!r}, connected={self._connected})"

    def __enter__(self) -> "EndpointConnection":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
