"""
rewarddist/distributor/

Reward batch validation, sending, and the output ledger.
"""

from .ledger import (
    RewardLedger,
    ValidationError,
    add_txhash_field_to_title_line,
    check_title_line,
    load_reward_file,
)

from .reward_sender import (
    BatchAborted,
    InsufficientBalance,
    RewardDistributor,
    RewardOutcome,
    validate_batch,
)

from .store import (
    DistributeRecord,
    JsonLinesRewardStore,
    RewardStore,
)

__all__ = [
    # Input / ledger
    "RewardLedger",
    "ValidationError",
    "add_txhash_field_to_title_line",
    "check_title_line",
    "load_reward_file",
    # Distribution
    "BatchAborted",
    "InsufficientBalance",
    "RewardDistributor",
    "RewardOutcome",
    "validate_batch",
    # Storage
    "DistributeRecord",
    "JsonLinesRewardStore",
    "RewardStore",
]
