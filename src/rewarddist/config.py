"""
rewarddist/config.py

Configuration constants and data classes for rewarddist.
"""

from dataclasses import dataclass
from typing import Dict, Tuple


# RPC gateway defaults
DEFAULT_RPC_RETRY_COUNT = 3         # attempts for staleness-tolerant reads
DEFAULT_RPC_RETRY_INTERVAL = 1.0    # seconds between failed attempts
DEFAULT_RPC_TIMEOUT = 30.0          # HTTP request timeout per endpoint

# Transaction defaults
DEFAULT_GAS_LIMIT = 90000
ZERO_ADDRESS = "0x" + "00" * 20

# ABI layout
WORD_SIZE = 32
SELECTOR_SIZE = 4

# Reward file layout
TITLE_LINE_MIN_PARTS = 5
TITLE_LINE_BY_WHAT_INDEX = 2
FALLBACK_TITLE_LINE = "#account,reward,txhash"


# Argument / return shapes used by the selector table
ARG_NONE = ()
ARG_ADDRESS = ("address",)
ARG_ADDRESS_UINT = ("address", "uint256")

RET_UINT = "uint256"
RET_UINT8 = "uint8"
RET_ADDRESS = "address"
RET_STRING = "string"
RET_BOOL = "bool"


@dataclass(frozen=True)
class ContractFunction:
    """A fixed contract function: selector plus argument and return shapes."""
    name: str
    selector: bytes
    args: Tuple[str, ...] = ARG_NONE
    returns: str = RET_UINT


FUNCTION_SELECTORS: Dict[str, ContractFunction] = {
    "totalSupply": ContractFunction("totalSupply", bytes.fromhex("18160ddd"), ARG_NONE, RET_UINT),
    "balanceOf": ContractFunction("balanceOf", bytes.fromhex("70a08231"), ARG_ADDRESS, RET_UINT),
    "tokenAddress": ContractFunction("tokenAddress", bytes.fromhex("9d76ea58"), ARG_NONE, RET_ADDRESS),
    "factoryAddress": ContractFunction("factoryAddress", bytes.fromhex("966dae0e"), ARG_NONE, RET_ADDRESS),
    "name": ContractFunction("name", bytes.fromhex("06fdde03"), ARG_NONE, RET_STRING),
    "symbol": ContractFunction("symbol", bytes.fromhex("95d89b41"), ARG_NONE, RET_STRING),
    "decimals": ContractFunction("decimals", bytes.fromhex("313ce567"), ARG_NONE, RET_UINT8),
    "transfer": ContractFunction("transfer", bytes.fromhex("a9059cbb"), ARG_ADDRESS_UINT, RET_BOOL),
}


# Reward classification ("by what") and accepted spellings
BY_LIQUIDITY = "liquidity"
BY_VOLUME = "volume"

BY_WHAT_ALIASES: Dict[str, str] = {
    "liquid": BY_LIQUIDITY,
    "liquidity": BY_LIQUIDITY,
    "lp": BY_LIQUIDITY,
    "volume": BY_VOLUME,
    "vol": BY_VOLUME,
    "trade": BY_VOLUME,
}


def get_standard_by_what(value: str) -> str:
    """Normalize a classification spelling, '' if unknown."""
    return BY_WHAT_ALIASES.get(value.strip().lower(), "")


@dataclass
class AccountStat:
    """One reward entry: account address and amount in the token's smallest unit."""
    account: str
    reward: int

    def to_dict(self) -> dict:
        return {
            "account": self.account,
            "reward": self.reward,
        }


@dataclass
class Option:
    """Run configuration for one reward distribution."""
    input_file: str = ""
    output_file: str = ""
    dry_run: bool = False
    save_db: bool = False
    by_what: str = ""
    exchange: str = ""
    reward_token: str = ""
    start_height: int = 0
    end_height: int = 0

    # accumulated during the run
    total_value: int = 0
    rewards_sent: int = 0
    sent_count: int = 0

    def set_by_what(self, value: str) -> None:
        """Set the classification from any accepted spelling."""
        standard = get_standard_by_what(value)
        if not standard:
            raise ValueError(
                f"Unknown reward type: {value}. "
                f"Valid options: {BY_LIQUIDITY}, {BY_VOLUME}"
            )
        self.by_what = standard

    @property
    def all_rewards_sent(self) -> bool:
        return self.rewards_sent == self.total_value

    def to_dict(self) -> dict:
        return {
            "input_file": self.input_file,
            "output_file": self.output_file,
            "dry_run": self.dry_run,
            "save_db": self.save_db,
            "by_what": self.by_what,
            "exchange": self.exchange,
            "reward_token": self.reward_token,
            "start_height": self.start_height,
            "end_height": self.end_height,
            "total_value": self.total_value,
            "rewards_sent": self.rewards_sent,
        }
