"""
rewarddist/rpc/gateway.py

Failover gateway over an ordered list of equivalent JSON-RPC endpoints.

Provides methods for:
- Read queries (balance, nonce, gas price, headers, contract calls)
- Bounded retry for staleness-tolerant reads
- Cancellable unbounded retry for values a run cannot proceed without
- Single-shot transaction submission
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Union

from web3 import Web3
from web3.exceptions import Web3Exception

from ..config import (
    DEFAULT_RPC_RETRY_COUNT,
    DEFAULT_RPC_RETRY_INTERVAL,
    DEFAULT_RPC_TIMEOUT,
)
from .connection import EndpointConnection

logger = logging.getLogger("rewarddist.rpc.gateway")

BlockRef = Optional[Union[int, str]]

# Connectivity and node-side failures; anything else is raised at once
RETRYABLE_ERRORS = (Web3Exception, OSError)


# ============================================================================
# ERRORS
# ============================================================================

class GatewayError(Exception):
    """Exception raised for gateway connectivity errors."""
    pass


class GatewayCancelled(GatewayError):
    """Raised when a retry wait is interrupted by cancellation or deadline."""
    pass


# ============================================================================
# OPERATIONS
# ============================================================================

def _block_id(block: BlockRef) -> Union[int, str]:
    return "latest" if block is None else block


def _balance(w3: Web3, account: str, block: BlockRef = None) -> int:
    return w3.eth.get_balance(Web3.to_checksum_address(account), block_identifier=_block_id(block))


def _nonce(w3: Web3, account: str) -> int:
    return w3.eth.get_transaction_count(Web3.to_checksum_address(account), "pending")


def _gas_price(w3: Web3) -> int:
    return w3.eth.gas_price


def _chain_id(w3: Web3) -> int:
    return w3.eth.chain_id


def _header(w3: Web3, block: BlockRef = None) -> Any:
    return w3.eth.get_block(_block_id(block), full_transactions=False)


def _block(w3: Web3, block: BlockRef = None) -> Any:
    return w3.eth.get_block(_block_id(block), full_transactions=True)


def _receipt(w3: Web3, tx_hash: str) -> Any:
    return w3.eth.get_transaction_receipt(tx_hash)


def _call_contract(w3: Web3, contract: str, data: bytes, block: BlockRef = None) -> bytes:
    msg = {"to": Web3.to_checksum_address(contract), "data": data}
    return bytes(w3.eth.call(msg, block_identifier=_block_id(block)))


def _sync_progress(w3: Web3) -> Any:
    return w3.eth.syncing


def _send_raw_transaction(w3: Web3, raw_tx: bytes) -> str:
    return Web3.to_hex(w3.eth.send_raw_transaction(raw_tx))


# Read operations; submission goes through Gateway.submit only
READ_OPERATIONS: Dict[str, Callable[..., Any]] = {
    "balance": _balance,
    "nonce": _nonce,
    "gas_price": _gas_price,
    "chain_id": _chain_id,
    "header": _header,
    "block": _block,
    "receipt": _receipt,
    "call_contract": _call_contract,
    "sync_progress": _sync_progress,
}


# ============================================================================
# GATEWAY
# ============================================================================

class Gateway:
    """
    Ordered failover over redundant RPC endpoints.

    Endpoints keep their dial order for the gateway's lifetime. A failing
    endpoint is only skipped for the current call, never demoted.

    Example:
        gateway = Gateway(retry_count=3, retry_interval=1.0)
        gateway.dial(["https://rpc1.example.org", "https://rpc2.example.org"])

        balance = gateway.call_with_retry("balance", "0xabc...")
        tx_hash = gateway.submit(signed_raw_tx)

        gateway.close()
    """

    def __init__(
        self,
        retry_count: int = DEFAULT_RPC_RETRY_COUNT,
        retry_interval: float = DEFAULT_RPC_RETRY_INTERVAL,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
        timeout: float = DEFAULT_RPC_TIMEOUT,
    ):
        """
        Initialize the gateway.

        Args:
            retry_count: Attempts made by call_with_retry
            retry_interval: Seconds to wait between failed attempts
            cancel_event: Event that aborts any retry wait once set
            deadline: Optional time.monotonic() value after which waits abort
            timeout: Per-request HTTP timeout in seconds
        """
        if retry_count < 1:
            raise ValueError("retry_count must be at least 1")

        self.retry_count = retry_count
        self.retry_interval = retry_interval
        self.deadline = deadline
        self.timeout = timeout

        self._cancel = cancel_event or threading.Event()
        self._connections: List[EndpointConnection] = []

    @property
    def connected(self) -> bool:
        """Check if at least one endpoint is connected."""
        return any(conn.connected for conn in self._connections)

    @property
    def urls(self) -> List[str]:
        return [conn.url for conn in self._connections]

    def dial(self, urls: List[str], wait_ready: bool = True) -> None:
        """
        Connect to every endpoint, in order.

        Args:
            urls: Endpoint URLs in failover order
            wait_ready: Block until the latest block header can be fetched

        Raises:
            GatewayError: On the first endpoint that cannot be reached, or
                if cancelled before a header arrived. Connections opened so
                far are closed again.
        """
        if not urls:
            raise GatewayError("No RPC endpoints given")

        for url in urls:
            connection = EndpointConnection(url, timeout=self.timeout)
            if not connection.connect():
                logger.error(f"RPC endpoint connection error: {url}")
                self.close()
                raise GatewayError(f"Failed to connect to RPC endpoint {url}")

            logger.info(f"RPC endpoint connection succeed: {url}")
            self._connections.append(connection)

        if wait_ready:
            try:
                self.wait_for_latest_header()
            except GatewayError:
                self.close()
                raise

    def wait_for_latest_header(self) -> Any:
        """Block until some endpoint returns the latest block header."""
        header = self.call_until_success("header")
        logger.info(f"get latest block header succeed, number: {header.get('number')}")
        return header

    def close(self) -> None:
        """Release all endpoint connections."""
        for connection in self._connections:
            connection.close()
        self._connections = []

    def cancel(self) -> None:
        """Abort pending and future retry waits."""
        self._cancel.set()

    # ========================================================================
    # INVOCATION
    # ========================================================================

    def _first_success(self, name: str, func: Callable[..., Any], *args) -> Any:
        if not self._connections:
            raise GatewayError("Not connected to any RPC endpoint")

        last_error: Optional[Exception] = None
        for connection in self._connections:
            try:
                return func(connection.w3, *args)
            except Exception as e:
                logger.debug(f"{name} failed on {connection.url}: {e}")
                last_error = e

        raise last_error

    def _wait(self, interval: float) -> None:
        if self.deadline is not None:
            remaining = self.deadline - time.monotonic()
            if remaining <= 0:
                raise GatewayCancelled("Gateway deadline exceeded")
            interval = min(interval, remaining)

        if self._cancel.wait(interval):
            raise GatewayCancelled("Gateway operation cancelled")

    def call(self, operation: str, *args) -> Any:
        """
        Run a read operation on the first endpoint that succeeds.

        Args:
            operation: Name from READ_OPERATIONS
            *args: Operation arguments

        Returns:
            Result of the first successful endpoint

        Raises:
            The last endpoint's error if every endpoint failed.
        """
        func = READ_OPERATIONS.get(operation)
        if func is None:
            raise GatewayError(f"Unknown RPC operation: {operation}")
        return self._first_success(operation, func, *args)

    def call_with_retry(
        self,
        operation: str,
        *args,
        retry_count: Optional[int] = None,
        retry_interval: Optional[float] = None,
    ) -> Any:
        """
        Run a read operation with a bounded retry loop.

        Waits retry_interval after each failed attempt except the last.
        Only connectivity and RPC errors are retried.
        """
        attempts = retry_count if retry_count is not None else self.retry_count
        interval = retry_interval if retry_interval is not None else self.retry_interval

        for attempt in range(1, attempts + 1):
            try:
                return self.call(operation, *args)
            except RETRYABLE_ERRORS as e:
                if attempt >= attempts:
                    raise
                logger.warning(f"{operation} attempt {attempt}/{attempts} failed: {e}")
                self._wait(interval)

    def call_until_success(self, operation: str, *args) -> Any:
        """
        Run a read operation until it succeeds.

        Only connectivity and RPC errors are retried; only the cancel event
        or the deadline ends the loop early.

        Raises:
            GatewayCancelled: If cancelled while waiting
        """
        while True:
            try:
                return self.call(operation, *args)
            except RETRYABLE_ERRORS as e:
                logger.warning(f"{operation} failed, retrying in {self.retry_interval}s: {e}")
                self._wait(self.retry_interval)

    def submit(self, raw_tx: bytes) -> str:
        """
        Submit a signed transaction.

        Each endpoint is tried once in order; there is no retry, resubmitting
        is up to the caller.

        Returns:
            Transaction hash (hex)
        """
        return self._first_success("send_raw_transaction", _send_raw_transaction, raw_tx)

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def balance_at(self, account: str, block: BlockRef = None) -> int:
        return self.call("balance", account, block)

    def get_account_nonce(self, account: str) -> int:
        """Pending nonce of an account."""
        return self.call("nonce", account)

    def suggest_gas_price(self) -> int:
        return self.call("gas_price")

    def get_chain_id(self) -> int:
        return self.call("chain_id")

    def header_by_number(self, block: BlockRef = None) -> Any:
        return self.call("header", block)

    def block_by_number(self, block: BlockRef = None) -> Any:
        return self.call("block", block)

    def get_transaction_receipt(self, tx_hash: str) -> Any:
        return self.call("receipt", tx_hash)

    def do_call(self, contract: str, data: bytes, block: BlockRef = None) -> bytes:
        return self.call("call_contract", contract, data, block)

    def sync_progress(self) -> Any:
        return self.call("sync_progress")

    def get_sync_progress(self) -> Any:
        """Block until a full node answers eth_syncing."""
        progress = self.call_until_success("sync_progress")
        logger.info(f"call eth_syncing success, progress: {progress}")
        return progress

    def send_transaction(self, raw_tx: bytes) -> str:
        return self.submit(raw_tx)

    # ========================================================================
    # CONTEXT MANAGER
    # ========================================================================

    def __enter__(self) -> "Gateway":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def create_gateway(
    urls: List[str],
    retry_count: int = DEFAULT_RPC_RETRY_COUNT,
    retry_interval: float = DEFAULT_RPC_RETRY_INTERVAL,
    cancel_event: Optional[threading.Event] = None,
) -> Gateway:
    """
    Create and dial a gateway.

    Raises:
        GatewayError: If any endpoint cannot be reached
    """
    gateway = Gateway(
        retry_count=retry_count,
        retry_interval=retry_interval,
        cancel_event=cancel_event,
    )
    gateway.dial(urls)
    return gateway
