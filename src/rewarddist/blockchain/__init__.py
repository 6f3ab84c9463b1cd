"""
rewarddist/blockchain/

Contract queries and transaction building for EVM chains.
"""

from .abi import (
    AbiDecodeError,
    decode_address,
    decode_fixed_word,
    decode_string,
    decode_uint,
    decode_uint8,
    encode_call,
    encode_function,
)

from .contract import ContractCaller

from .tx_builder import (
    BuildTxArgs,
    BuilderState,
    ChainSigner,
    DecryptionError,
    IdentityMismatch,
    SignedTransfer,
    SigningError,
    SubmissionError,
    TransactionBuilder,
    TxBuilderError,
    UnsignedTransfer,
)

__all__ = [
    # ABI helpers
    "AbiDecodeError",
    "decode_address",
    "decode_fixed_word",
    "decode_string",
    "decode_uint",
    "decode_uint8",
    "encode_call",
    "encode_function",
    # Contract queries
    "ContractCaller",
    # Transaction building
    "BuildTxArgs",
    "BuilderState",
    "ChainSigner",
    "DecryptionError",
    "IdentityMismatch",
    "SignedTransfer",
    "SigningError",
    "SubmissionError",
    "TransactionBuilder",
    "TxBuilderError",
    "UnsignedTransfer",
]
