"""
rewarddist - Batch reward distribution for EVM chains

Built on web3.py and eth-account with:
- Ordered failover across redundant JSON-RPC endpoints
- Bounded and cancellable retry for chain queries
- Fixed-shape ABI calls for ERC20 and exchange contracts
- Keystore-backed signing with nonce reconciliation
- Fail-fast batch sending with an append-only ledger

Usage:
    from rewarddist import Gateway, TransactionBuilder, BuildTxArgs
    from rewarddist import ContractCaller, RewardDistributor, Option

    gateway = Gateway()
    gateway.dial(["https://rpc1.example.org", "https://rpc2.example.org"])

    builder = TransactionBuilder(gateway, BuildTxArgs(
        keystore_file="key.json",
        password_file="pass.txt",
    ))
    builder.check()

    option = Option(input_file="rewards.txt", output_file="sent.txt",
                    reward_token="0x...")
    RewardDistributor(option, builder, ContractCaller(gateway)).send_rewards_from_file()

    gateway.close()

CLI Usage:
    rewarddist sendrewards --gateway https://rpc1.example.org --input rewards.txt ...
"""

from .config import AccountStat, Option
from .rpc import Gateway, GatewayCancelled, GatewayError, create_gateway
from .blockchain import (
    BuildTxArgs,
    ContractCaller,
    TransactionBuilder,
    TxBuilderError,
)
from .distributor import (
    BatchAborted,
    InsufficientBalance,
    JsonLinesRewardStore,
    RewardDistributor,
    RewardLedger,
    ValidationError,
)

__version__ = "1.0.0"

__all__ = [
    "AccountStat",
    "Option",
    "Gateway",
    "GatewayCancelled",
    "GatewayError",
    "create_gateway",
    "BuildTxArgs",
    "ContractCaller",
    "TransactionBuilder",
    "TxBuilderError",
    "BatchAborted",
    "InsufficientBalance",
    "JsonLinesRewardStore",
    "RewardDistributor",
    "RewardLedger",
    "ValidationError",
]
