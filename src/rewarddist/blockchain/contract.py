"""
rewarddist/blockchain/contract.py

Read-only contract and account queries built on the gateway.

Balances and contract calls go through the gateway's bounded retry since a
slightly stale answer is acceptable for them. Errors are logged with the
contract and block used and then propagated unchanged.
"""

import logging
from typing import Optional, TYPE_CHECKING

from ..config import ZERO_ADDRESS
from .abi import (
    decode_address,
    decode_string,
    decode_uint,
    decode_uint8,
    encode_function,
)

if TYPE_CHECKING:
    from ..rpc.gateway import BlockRef, Gateway

logger = logging.getLogger("rewarddist.blockchain.contract")


class ContractCaller:
    """
    Contract call helper for ERC20 tokens and exchange contracts.

    Example:
        caller = ContractCaller(gateway)
        balance = caller.get_token_balance(token, account)
        decimals = caller.get_erc20_decimals(token)
    """

    def __init__(self, gateway: "Gateway"):
        self.gateway = gateway

    # ========================================================================
    # RAW CALLS
    # ========================================================================

    def call_contract(
        self,
        contract: str,
        data: bytes,
        block: "BlockRef" = None,
    ) -> bytes:
        """
        Call a contract with retry.

        Args:
            contract: Contract address
            data: ABI encoded call data
            block: Block number or tag (None = latest)

        Returns:
            Raw call result
        """
        try:
            return self.gateway.call_with_retry("call_contract", contract, data, block)
        except Exception as e:
            logger.error(f"CallContract error, contract: {contract}, block: {block}, err: {e}")
            raise

    def _call_function(
        self,
        contract: str,
        name: str,
        *args,
        block: "BlockRef" = None,
    ) -> bytes:
        return self.call_contract(contract, encode_function(name, *args), block)

    # ========================================================================
    # COIN AND TOKEN BALANCES
    # ========================================================================

    def get_coin_balance(self, account: str, block: "BlockRef" = None) -> int:
        """Native coin balance of an account."""
        try:
            return self.gateway.call_with_retry("balance", account, block)
        except Exception as e:
            logger.warning(f"GetCoinBalance error, account: {account}, block: {block}, err: {e}")
            raise

    def get_token_total_supply(self, token: str, block: "BlockRef" = None) -> int:
        try:
            res = self._call_function(token, "totalSupply", block=block)
        except Exception as e:
            logger.warning(f"GetTokenTotalSupply error, token: {token}, block: {block}, err: {e}")
            raise
        return decode_uint(res, 0)

    def get_token_balance(self, token: str, account: str, block: "BlockRef" = None) -> int:
        """ERC20 balance of ``account`` in ``token``."""
        try:
            res = self._call_function(token, "balanceOf", account, block=block)
        except Exception as e:
            logger.warning(
                f"GetTokenBalance error, token: {token}, account: {account}, "
                f"block: {block}, err: {e}"
            )
            raise
        return decode_uint(res, 0)

    def get_exchange_liquidity(self, exchange: str, block: "BlockRef" = None) -> int:
        """Total liquidity of an exchange (its LP token supply)."""
        return self.get_token_total_supply(exchange, block)

    def get_exchange_token_balance(self, exchange: str, token: str, block: "BlockRef" = None) -> int:
        return self.get_token_balance(token, exchange, block)

    def get_liquidity_balance(self, exchange: str, account: str, block: "BlockRef" = None) -> int:
        return self.get_token_balance(exchange, account, block)

    # ========================================================================
    # EXCHANGE METADATA
    # ========================================================================

    def get_exchange_token_address(self, exchange: str) -> str:
        """Token traded by an exchange; the zero address if the call fails."""
        try:
            res = self._call_function(exchange, "tokenAddress")
            return decode_address(res, 0)
        except Exception as e:
            logger.warning(f"get tokenAddress failed, exchange: {exchange}, err: {e}")
            return ZERO_ADDRESS

    def get_exchange_factory_address(self, exchange: str) -> str:
        """Factory that created an exchange; the zero address if the call fails."""
        try:
            res = self._call_function(exchange, "factoryAddress")
            return decode_address(res, 0)
        except Exception as e:
            logger.warning(f"get factoryAddress failed, exchange: {exchange}, err: {e}")
            return ZERO_ADDRESS

    # ========================================================================
    # ERC20 METADATA
    # ========================================================================

    def get_erc20_name(self, token: str) -> str:
        return decode_string(self._call_function(token, "name"), 0)

    def get_erc20_symbol(self, token: str) -> str:
        return decode_string(self._call_function(token, "symbol"), 0)

    def get_erc20_decimals(self, token: str) -> int:
        return decode_uint8(self._call_function(token, "decimals"), 0)

    def get_erc20_total_supply(self, token: str, block: Optional["BlockRef"] = None) -> int:
        return decode_uint(self._call_function(token, "totalSupply", block=block), 0)
