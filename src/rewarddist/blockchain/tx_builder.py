"""
rewarddist/blockchain/tx_builder.py

Transaction builder for reward transfers using the gateway + eth-account.

Builds, signs and submits legacy (EIP-155) transfer transactions from a
single sender whose key is decrypted from a keystore file. Supports:
- ERC20 token transfers (transfer(address,uint256))
- Native coin transfers
- Nonce tracking with reconciliation against the live pending nonce

Lifecycle:
    UNRESOLVED -> RESOLVED -> SIGNED -> SUBMITTED -> SIGNED -> ...
"""

import json
import logging
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Any, Dict, Optional, Union, TYPE_CHECKING

from eth_account import Account
from web3 import Web3

from ..config import DEFAULT_GAS_LIMIT
from .abi import encode_function

if TYPE_CHECKING:
    from ..rpc.gateway import Gateway

logger = logging.getLogger("rewarddist.blockchain.tx_builder")


# ============================================================================
# ERRORS
# ============================================================================

class TxBuilderError(Exception):
    """Base exception for transaction building."""
    pass


class DecryptionError(TxBuilderError):
    """Keystore missing, malformed, or wrong passphrase."""
    pass


class IdentityMismatch(TxBuilderError):
    """Declared sender differs from the keystore address."""
    pass


class SigningError(TxBuilderError):
    pass


class SubmissionError(TxBuilderError):
    pass


# ============================================================================
# DATA STRUCTURES
# ============================================================================

class BuilderState(Enum):
    UNRESOLVED = auto()
    RESOLVED = auto()
    SIGNED = auto()
    SUBMITTED = auto()


@dataclass
class BuildTxArgs:
    """Caller-supplied transaction arguments; unset values are resolved."""
    sender: str = ""
    keystore_file: str = ""
    password_file: str = ""
    nonce: Optional[int] = None
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None


@dataclass(frozen=True)
class UnsignedTransfer:
    """A transfer transaction ready for signing."""
    nonce: int
    to: str
    value: int
    gas: int
    gas_price: int
    data: bytes
    chain_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nonce": self.nonce,
            "to": self.to,
            "value": self.value,
            "gas": self.gas,
            "gasPrice": self.gas_price,
            "data": self.data,
            "chainId": self.chain_id,
        }


@dataclass(frozen=True)
class SignedTransfer:
    """A signed transfer and its raw encoding."""
    tx: UnsignedTransfer
    raw_transaction: bytes
    tx_hash: str


# ============================================================================
# SIGNER
# ============================================================================

class ChainSigner:
    """EIP-155 signer bound to one chain id."""

    def __init__(self, chain_id: int):
        self.chain_id = chain_id

    def sign(self, tx: UnsignedTransfer, private_key: bytes) -> SignedTransfer:
        if tx.chain_id != self.chain_id:
            raise SigningError(
                f"Transaction chain id {tx.chain_id} does not match signer chain id {self.chain_id}"
            )
        signed = Account.sign_transaction(tx.to_dict(), private_key)
        return SignedTransfer(
            tx=tx,
            raw_transaction=bytes(signed.raw_transaction),
            tx_hash=Web3.to_hex(signed.hash),
        )


# ============================================================================
# TRANSACTION BUILDER
# ============================================================================

class TransactionBuilder:
    """
    Builds and sends reward transfers from one sender.

    Owns the decrypted signing key for the duration of a run; call close()
    (or use it as a context manager) to drop it.

    Example:
        builder = TransactionBuilder(gateway, BuildTxArgs(
            keystore_file="key.json",
            password_file="pass.txt",
        ))
        builder.check()
        tx_hash = builder.send_reward(account, 10**18, token=reward_token)
        builder.close()
    """

    def __init__(
        self,
        gateway: "Gateway",
        args: Optional[BuildTxArgs] = None,
        dry_run: bool = False,
    ):
        """
        Initialize transaction builder.

        Args:
            gateway: Connected gateway
            args: Sender, keystore paths and optional explicit parameters
            dry_run: Tolerate identity errors and never sign or submit
        """
        self.gateway = gateway
        self.args = args or BuildTxArgs()
        self.dry_run = dry_run

        self.nonce: Optional[int] = self.args.nonce
        self.gas_limit: Optional[int] = self.args.gas_limit
        self.gas_price: Optional[int] = self.args.gas_price
        self.chain_id: Optional[int] = None
        self.signer: Optional[ChainSigner] = None
        self.state = BuilderState.UNRESOLVED

        self._private_key: Optional[bytes] = None
        self._from_address = ""

    @property
    def sender(self) -> str:
        """Sender address; derived from the keystore once it is loaded."""
        return self._from_address

    @property
    def has_key(self) -> bool:
        return self._private_key is not None

    # ========================================================================
    # IDENTITY
    # ========================================================================

    def resolve_identity(
        self,
        keystore_data: Union[str, bytes, Dict[str, Any]],
        passphrase: str,
    ) -> str:
        """
        Decrypt the signing key and derive the sender address.

        Args:
            keystore_data: Keystore JSON (text, bytes or parsed dict)
            passphrase: Keystore passphrase

        Returns:
            Sender address

        Raises:
            DecryptionError: Wrong passphrase or malformed keystore
            IdentityMismatch: Declared sender differs (outside dry run)
        """
        if isinstance(keystore_data, bytes):
            keystore_data = keystore_data.decode("utf-8", errors="replace")

        try:
            if isinstance(keystore_data, str):
                keystore_data = json.loads(keystore_data)
            private_key = bytes(Account.decrypt(keystore_data, passphrase))
        except Exception as e:
            logger.error(f"key decrypt fail: {e}")
            raise DecryptionError(f"Failed to decrypt keystore: {e}") from e

        address = Account.from_key(private_key).address
        declared = self.args.sender

        if declared and declared.lower() != address.lower():
            message = (
                f"sender mismatch. sender from args = '{declared}', "
                f"sender from keystore = '{address}'"
            )
            if not self.dry_run:
                raise IdentityMismatch(message)
            logger.warning(f"{message}, ignored in dry run")
            self._from_address = Web3.to_checksum_address(declared)
            return self._from_address

        self._private_key = private_key
        self._from_address = address
        return address

    def load_keystore(self) -> str:
        """Read the keystore and passphrase files and resolve the identity."""
        if not self.args.keystore_file or not self.args.password_file:
            raise DecryptionError("keystore file and password file are required")

        try:
            with open(self.args.keystore_file, "r") as f:
                keystore_data = f.read()
            with open(self.args.password_file, "r") as f:
                passphrase = f.read().strip()
        except OSError as e:
            logger.error(f"read keystore fail: {e}")
            raise DecryptionError(f"Failed to read keystore: {e}") from e

        logger.info("decrypt keystore ......")
        return self.resolve_identity(keystore_data, passphrase)

    def check(self) -> None:
        """
        Validate the sender, load the key and resolve network parameters.

        In dry run an unreadable keystore is tolerated as long as a sender
        address was declared.
        """
        declared = self.args.sender
        if declared and not Web3.is_address(declared):
            raise TxBuilderError(f"wrong sender address '{declared}'")

        try:
            self.load_keystore()
        except DecryptionError as e:
            if not self.dry_run:
                raise
            if not declared:
                raise TxBuilderError("dry run without keystore requires a sender address") from e
            self._from_address = Web3.to_checksum_address(declared)
            logger.warning(f"check build tx args failed, but ignore in dry run: {e}")

        logger.info(f"get build transaction's sender: {self.sender}")
        self.resolve_parameters()

    # ========================================================================
    # PARAMETERS
    # ========================================================================

    def resolve_parameters(self) -> None:
        """
        Resolve chain id, nonce and gas price through the gateway.

        Each value is retried until it is available (or the gateway is
        cancelled). Values supplied explicitly are never queried.
        """
        if not self.sender:
            raise TxBuilderError("sender is not resolved")

        if self.chain_id is None:
            self.chain_id = self.gateway.call_until_success("chain_id")
            self.signer = ChainSigner(self.chain_id)
        logger.info(f"get chain ID succeed, chainID: {self.chain_id}")

        if self.nonce is None:
            self.nonce = self.gateway.call_until_success("nonce", self.sender)
        logger.info(f"get nonce succeed, from: {self.sender}, nonce: {self.nonce}")

        if self.gas_price is None:
            self.gas_price = self.gateway.call_until_success("gas_price")
        logger.info(f"get gas price succeed, gasPrice: {self.gas_price}")

        if self.gas_limit is None:
            self.gas_limit = DEFAULT_GAS_LIMIT
        logger.info(f"get gas limit succeed, gasLimit: {self.gas_limit}")

        self.state = BuilderState.RESOLVED

    # ========================================================================
    # BUILD / SIGN / SUBMIT
    # ========================================================================

    def build_transfer(
        self,
        recipient: str,
        amount: int,
        token: Optional[str] = None,
    ) -> UnsignedTransfer:
        """
        Build an unsigned transfer at the current nonce.

        Args:
            recipient: Receiving account
            amount: Amount in the smallest unit
            token: ERC20 token address, or None for a native transfer
        """
        if self.state == BuilderState.UNRESOLVED:
            raise TxBuilderError("transaction parameters are not resolved")
        if not Web3.is_address(recipient):
            raise TxBuilderError(f"wrong recipient address '{recipient}'")
        if amount <= 0:
            raise TxBuilderError(f"transfer amount must be positive, got {amount}")

        recipient = Web3.to_checksum_address(recipient)
        if token:
            to = Web3.to_checksum_address(token)
            value = 0
            data = encode_function("transfer", recipient, amount)
        else:
            to = recipient
            value = amount
            data = b""

        return UnsignedTransfer(
            nonce=self.nonce,
            to=to,
            value=value,
            gas=self.gas_limit,
            gas_price=self.gas_price,
            data=data,
            chain_id=self.chain_id,
        )

    def sign(self, tx: UnsignedTransfer) -> Optional[SignedTransfer]:
        """
        Sign with the owned key.

        Returns None in dry run when no key is loaded.
        """
        if self._private_key is None:
            if self.dry_run:
                logger.info(f"dry run, skip signing transaction with nonce {tx.nonce}")
                return None
            raise SigningError("no signing key loaded")

        try:
            signed = self.signer.sign(tx, self._private_key)
        except SigningError:
            raise
        except Exception as e:
            raise SigningError(f"sign tx failed, {e}") from e

        self.state = BuilderState.SIGNED
        return signed

    def _query_live_nonce(self) -> Optional[int]:
        try:
            return self.gateway.call("nonce", self.sender)
        except Exception as e:
            logger.warning(f"get live nonce failed, use cached nonce {self.nonce}: {e}")
            return None

    def submit_and_advance(self, signed: SignedTransfer) -> str:
        """
        Submit a signed transfer and advance the nonce by one.

        The live pending nonce is queried first; if another transaction
        from this sender was seen, the higher nonce is adopted and the
        transfer is signed again with it.

        Returns:
            Transaction hash
        """
        live_nonce = self._query_live_nonce()
        if live_nonce is not None and live_nonce > self.nonce:
            logger.info(f"adopt live nonce {live_nonce}, cached nonce was {self.nonce}")
            self.nonce = live_nonce

        if signed.tx.nonce != self.nonce:
            signed = self.sign(replace(signed.tx, nonce=self.nonce))

        try:
            self.gateway.submit(signed.raw_transaction)
        except Exception as e:
            raise SubmissionError(f"send tx failed, {e}") from e

        self.nonce += 1
        self.state = BuilderState.SUBMITTED
        return signed.tx_hash

    def send_reward(
        self,
        account: str,
        reward: int,
        token: Optional[str] = None,
    ) -> Optional[str]:
        """
        Send one reward transfer.

        Returns:
            Transaction hash, or None in dry run
        """
        if self.dry_run:
            logger.info(f"sendRewards dry run, account: {account}, reward: {reward}")
            return None

        tx = self.build_transfer(account, reward, token)
        signed = self.sign(tx)
        tx_hash = self.submit_and_advance(signed)
        logger.info(f"sendRewards success, account: {account}, reward: {reward}, txHash: {tx_hash}")
        return tx_hash

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def close(self) -> None:
        """Drop the signing key."""
        self._private_key = None

    def __enter__(self) -> "TransactionBuilder":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
