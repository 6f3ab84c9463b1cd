"""
Tests for rewarddist/blockchain/tx_builder.py

Tests identity resolution, parameter resolution, signing and nonce handling
of the reward transaction builder.
"""

import json

import pytest
from unittest.mock import Mock, patch

from eth_account import Account

from rewarddist.blockchain.abi import encode_function
from rewarddist.blockchain.tx_builder import (
    BuildTxArgs,
    BuilderState,
    ChainSigner,
    DecryptionError,
    IdentityMismatch,
    SigningError,
    SubmissionError,
    TransactionBuilder,
    TxBuilderError,
    UnsignedTransfer,
)
from rewarddist.config import DEFAULT_GAS_LIMIT


# ============================================================================
# TEST DATA
# ============================================================================

PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
PASSWORD = "correct horse"
SENDER = Account.from_key(PRIVATE_KEY).address
OTHER = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
RECIPIENT = "0xA478c2975Ab1Ea89e8196811F51A7B7Ade33eB11"
TOKEN = "0x6B175474E89094C44Da98b954EedeAC495271d0F"

CHAIN_ID = 1
NONCE = 7
GAS_PRICE = 10**9

# Cheap KDF so decrypting stays fast
KEYSTORE = Account.encrypt(PRIVATE_KEY, PASSWORD, kdf="pbkdf2", iterations=2)


def create_mock_gateway(nonce: int = NONCE, live_nonce=None) -> Mock:
    """Create a gateway answering parameter queries."""
    values = {"chain_id": CHAIN_ID, "nonce": nonce, "gas_price": GAS_PRICE}
    gateway = Mock()
    gateway.call_until_success.side_effect = lambda op, *args: values[op]
    if isinstance(live_nonce, Exception):
        gateway.call.side_effect = live_nonce
    else:
        gateway.call.return_value = nonce if live_nonce is None else live_nonce
    gateway.submit.return_value = "0x" + "ab" * 32
    return gateway


def create_resolved_builder(gateway=None, **kwargs) -> TransactionBuilder:
    """Create a builder with the test key loaded and parameters resolved."""
    gateway = gateway or create_mock_gateway()
    builder = TransactionBuilder(gateway, BuildTxArgs(**kwargs))
    builder.resolve_identity(KEYSTORE, PASSWORD)
    builder.resolve_parameters()
    return builder


@pytest.fixture
def keystore_files(tmp_path):
    """Write the keystore and password files."""
    keystore_file = tmp_path / "key.json"
    keystore_file.write_text(json.dumps(KEYSTORE))
    password_file = tmp_path / "pass.txt"
    password_file.write_text(PASSWORD + "\n")
    return str(keystore_file), str(password_file)


# ============================================================================
# IDENTITY TESTS
# ============================================================================

class TestIdentity:
    """Tests for keystore decryption and sender resolution."""

    def test_resolve_identity(self):
        """Test the sender is derived from the keystore."""
        builder = TransactionBuilder(Mock())
        address = builder.resolve_identity(KEYSTORE, PASSWORD)

        assert address == SENDER
        assert builder.sender == SENDER
        assert builder.has_key is True

    def test_resolve_identity_from_json_text(self):
        """Test keystore given as JSON text."""
        builder = TransactionBuilder(Mock())
        assert builder.resolve_identity(json.dumps(KEYSTORE), PASSWORD) == SENDER

    def test_wrong_passphrase(self):
        """Test a wrong passphrase raises DecryptionError."""
        builder = TransactionBuilder(Mock())
        with pytest.raises(DecryptionError):
            builder.resolve_identity(KEYSTORE, "wrong")
        assert builder.has_key is False

    def test_malformed_keystore(self):
        """Test malformed keystore data raises DecryptionError."""
        builder = TransactionBuilder(Mock())
        with pytest.raises(DecryptionError):
            builder.resolve_identity(b"not json", PASSWORD)

    def test_declared_sender_matches(self):
        """Test a declared sender in any case matches the keystore."""
        builder = TransactionBuilder(Mock(), BuildTxArgs(sender=SENDER.lower()))
        assert builder.resolve_identity(KEYSTORE, PASSWORD) == SENDER

    def test_declared_sender_mismatch(self):
        """Test a different declared sender is rejected."""
        builder = TransactionBuilder(Mock(), BuildTxArgs(sender=OTHER))
        with pytest.raises(IdentityMismatch):
            builder.resolve_identity(KEYSTORE, PASSWORD)
        assert builder.has_key is False

    def test_declared_sender_mismatch_dry_run(self):
        """Test dry run keeps the declared sender and drops the key."""
        builder = TransactionBuilder(Mock(), BuildTxArgs(sender=OTHER), dry_run=True)

        assert builder.resolve_identity(KEYSTORE, PASSWORD) == OTHER
        assert builder.sender == OTHER
        assert builder.has_key is False

    def test_load_keystore(self, keystore_files):
        """Test reading keystore and password files."""
        keystore_file, password_file = keystore_files
        builder = TransactionBuilder(Mock(), BuildTxArgs(
            keystore_file=keystore_file,
            password_file=password_file,
        ))
        assert builder.load_keystore() == SENDER

    def test_load_keystore_missing_paths(self):
        """Test keystore and password paths are required."""
        builder = TransactionBuilder(Mock())
        with pytest.raises(DecryptionError):
            builder.load_keystore()

    def test_load_keystore_unreadable(self, tmp_path):
        """Test a missing keystore file."""
        builder = TransactionBuilder(Mock(), BuildTxArgs(
            keystore_file=str(tmp_path / "missing.json"),
            password_file=str(tmp_path / "missing.txt"),
        ))
        with pytest.raises(DecryptionError):
            builder.load_keystore()


# ============================================================================
# CHECK / PARAMETER TESTS
# ============================================================================

class TestCheck:
    """Tests for check() and parameter resolution."""

    def test_check_resolves_parameters(self, keystore_files):
        """Test check loads the key and queries chain parameters."""
        keystore_file, password_file = keystore_files
        builder = TransactionBuilder(create_mock_gateway(), BuildTxArgs(
            keystore_file=keystore_file,
            password_file=password_file,
        ))
        builder.check()

        assert builder.state == BuilderState.RESOLVED
        assert builder.chain_id == CHAIN_ID
        assert builder.nonce == NONCE
        assert builder.gas_price == GAS_PRICE
        assert builder.gas_limit == DEFAULT_GAS_LIMIT
        assert builder.signer.chain_id == CHAIN_ID

    def test_explicit_parameters_not_queried(self):
        """Test supplied nonce, gas price and gas limit are kept."""
        gateway = create_mock_gateway()
        builder = create_resolved_builder(gateway, nonce=3, gas_price=5, gas_limit=21000)

        assert builder.nonce == 3
        assert builder.gas_price == 5
        assert builder.gas_limit == 21000
        queried = [c[0][0] for c in gateway.call_until_success.call_args_list]
        assert queried == ["chain_id"]

    def test_check_invalid_sender(self):
        """Test a malformed declared sender."""
        builder = TransactionBuilder(Mock(), BuildTxArgs(sender="0x1234"))
        with pytest.raises(TxBuilderError):
            builder.check()

    def test_check_without_keystore(self):
        """Test a missing keystore fails outside dry run."""
        builder = TransactionBuilder(Mock(), BuildTxArgs(sender=SENDER))
        with pytest.raises(DecryptionError):
            builder.check()

    def test_check_dry_run_without_keystore(self):
        """Test dry run tolerates a missing keystore when a sender is declared."""
        builder = TransactionBuilder(create_mock_gateway(), BuildTxArgs(sender=SENDER), dry_run=True)
        builder.check()

        assert builder.sender == SENDER
        assert builder.has_key is False
        assert builder.state == BuilderState.RESOLVED

    def test_check_dry_run_without_sender(self):
        """Test dry run still needs some sender address."""
        builder = TransactionBuilder(Mock(), dry_run=True)
        with pytest.raises(TxBuilderError):
            builder.check()

    def test_resolve_parameters_without_sender(self):
        """Test parameters cannot be resolved without a sender."""
        builder = TransactionBuilder(Mock())
        with pytest.raises(TxBuilderError):
            builder.resolve_parameters()


# ============================================================================
# BUILD / SIGN TESTS
# ============================================================================

class TestBuildAndSign:
    """Tests for transfer building and signing."""

    def test_build_token_transfer(self):
        """Test an ERC20 transfer targets the token contract."""
        builder = create_resolved_builder()
        tx = builder.build_transfer(RECIPIENT, 500, token=TOKEN)

        assert tx.to == TOKEN
        assert tx.value == 0
        assert tx.data == encode_function("transfer", RECIPIENT, 500)
        assert tx.nonce == NONCE
        assert tx.gas == DEFAULT_GAS_LIMIT
        assert tx.chain_id == CHAIN_ID

    def test_build_native_transfer(self):
        """Test a native transfer sends value to the recipient."""
        builder = create_resolved_builder()
        tx = builder.build_transfer(RECIPIENT.lower(), 500)

        assert tx.to == RECIPIENT
        assert tx.value == 500
        assert tx.data == b""

    def test_build_before_resolve(self):
        """Test building requires resolved parameters."""
        builder = TransactionBuilder(Mock())
        with pytest.raises(TxBuilderError):
            builder.build_transfer(RECIPIENT, 1)

    def test_build_invalid_amount_or_recipient(self):
        """Test non-positive amounts and bad recipients."""
        builder = create_resolved_builder()
        with pytest.raises(TxBuilderError):
            builder.build_transfer(RECIPIENT, 0)
        with pytest.raises(TxBuilderError):
            builder.build_transfer("0xnothex", 1)

    def test_sign(self):
        """Test signing recovers to the sender."""
        builder = create_resolved_builder()
        signed = builder.sign(builder.build_transfer(RECIPIENT, 500, token=TOKEN))

        assert builder.state == BuilderState.SIGNED
        assert signed.tx_hash.startswith("0x")
        assert len(signed.tx_hash) == 66
        assert Account.recover_transaction(signed.raw_transaction) == SENDER

    def test_sign_without_key(self):
        """Test signing without a key outside dry run."""
        builder = TransactionBuilder(create_mock_gateway(), BuildTxArgs(sender=SENDER))
        builder._from_address = SENDER
        builder.resolve_parameters()

        with pytest.raises(SigningError):
            builder.sign(builder.build_transfer(RECIPIENT, 1))

    def test_sign_without_key_dry_run(self):
        """Test dry run skips signing without a key."""
        builder = TransactionBuilder(create_mock_gateway(), BuildTxArgs(sender=SENDER), dry_run=True)
        builder.check()

        assert builder.sign(builder.build_transfer(RECIPIENT, 1)) is None

    def test_signer_chain_mismatch(self):
        """Test the signer rejects transactions for another chain."""
        tx = UnsignedTransfer(
            nonce=0, to=RECIPIENT, value=1, gas=21000,
            gas_price=GAS_PRICE, data=b"", chain_id=5,
        )
        with pytest.raises(SigningError):
            ChainSigner(CHAIN_ID).sign(tx, Account.from_key(PRIVATE_KEY).key)


# ============================================================================
# SUBMISSION / NONCE TESTS
# ============================================================================

class TestSubmitAndAdvance:
    """Tests for submission and nonce tracking."""

    def test_submit_advances_nonce(self):
        """Test a successful submission increments the nonce."""
        gateway = create_mock_gateway()
        builder = create_resolved_builder(gateway)
        signed = builder.sign(builder.build_transfer(RECIPIENT, 500, token=TOKEN))

        tx_hash = builder.submit_and_advance(signed)

        assert tx_hash == signed.tx_hash
        assert builder.nonce == NONCE + 1
        assert builder.state == BuilderState.SUBMITTED
        gateway.submit.assert_called_once_with(signed.raw_transaction)

    def test_consecutive_nonces(self):
        """Test successive rewards use consecutive nonces."""
        builder = create_resolved_builder()
        builder.gateway.call.side_effect = lambda op, *args: builder.nonce

        first = builder.build_transfer(RECIPIENT, 1)
        builder.submit_and_advance(builder.sign(first))
        second = builder.build_transfer(RECIPIENT, 2)

        assert second.nonce == first.nonce + 1

    def test_adopt_higher_live_nonce(self):
        """Test a higher live nonce (7 -> 9) is adopted and the transfer re-signed."""
        gateway = create_mock_gateway(nonce=7, live_nonce=9)
        builder = create_resolved_builder(gateway)
        signed = builder.sign(builder.build_transfer(RECIPIENT, 500, token=TOKEN))
        assert signed.tx.nonce == 7

        with patch.object(builder, "sign", wraps=builder.sign) as sign_spy:
            builder.submit_and_advance(signed)

        assert sign_spy.call_args[0][0].nonce == 9
        submitted = gateway.submit.call_args[0][0]
        assert submitted != signed.raw_transaction
        assert builder.nonce == 10

    def test_lower_live_nonce_ignored(self):
        """Test a lower live nonce does not move the cached one back."""
        gateway = create_mock_gateway(nonce=7, live_nonce=5)
        builder = create_resolved_builder(gateway)
        signed = builder.sign(builder.build_transfer(RECIPIENT, 1))

        builder.submit_and_advance(signed)

        gateway.submit.assert_called_once_with(signed.raw_transaction)
        assert builder.nonce == 8

    def test_live_nonce_query_failure(self):
        """Test a failed live nonce query falls back to the cached nonce."""
        gateway = create_mock_gateway(nonce=7, live_nonce=ConnectionError("down"))
        builder = create_resolved_builder(gateway)
        signed = builder.sign(builder.build_transfer(RECIPIENT, 1))

        builder.submit_and_advance(signed)
        assert builder.nonce == 8

    def test_submit_failure_keeps_nonce(self):
        """Test a failed submission raises and leaves the nonce unchanged."""
        gateway = create_mock_gateway()
        gateway.submit.side_effect = ValueError("insufficient funds for gas")
        builder = create_resolved_builder(gateway)
        signed = builder.sign(builder.build_transfer(RECIPIENT, 1))

        with pytest.raises(SubmissionError):
            builder.submit_and_advance(signed)
        assert builder.nonce == NONCE


# ============================================================================
# SEND REWARD TESTS
# ============================================================================

class TestSendReward:
    """Tests for the one-call reward send."""

    def test_send_reward(self):
        """Test send_reward builds, signs and submits."""
        gateway = create_mock_gateway()
        builder = create_resolved_builder(gateway)

        tx_hash = builder.send_reward(RECIPIENT, 500, token=TOKEN)

        assert tx_hash.startswith("0x")
        gateway.submit.assert_called_once()
        assert builder.nonce == NONCE + 1

    def test_send_reward_dry_run(self):
        """Test dry run never submits."""
        gateway = create_mock_gateway()
        builder = TransactionBuilder(gateway, BuildTxArgs(sender=SENDER), dry_run=True)
        builder.check()

        assert builder.send_reward(RECIPIENT, 500, token=TOKEN) is None
        gateway.submit.assert_not_called()

    def test_close_drops_key(self):
        """Test leaving the context drops the signing key."""
        with create_resolved_builder() as builder:
            assert builder.has_key is True
        assert builder.has_key is False
