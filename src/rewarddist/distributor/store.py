"""
rewarddist/distributor/store.py

Persistence of sent rewards.

The store is an external collaborator; RewardStore is the interface the
pipeline writes through and JsonLinesRewardStore a file-backed default.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import List, Optional

logger = logging.getLogger("rewarddist.distributor.store")


@dataclass
class DistributeRecord:
    """One sent reward with the context it was computed in."""
    account: str
    reward: int
    tx_hash: str
    by_what: str
    exchange: str
    reward_token: str
    start_height: int
    end_height: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DistributeRecord":
        return cls(**data)


class RewardStore(ABC):
    """Abstract sink for sent rewards."""

    @abstractmethod
    def add_distribute_info(self, record: DistributeRecord) -> None:
        """Persist one sent reward."""
        pass


class JsonLinesRewardStore(RewardStore):
    """Append each record as one JSON line."""

    def __init__(self, path: str):
        self.path = path

    def add_distribute_info(self, record: DistributeRecord) -> None:
        with open(self.path, "a") as f:
            f.write(json.dumps(record.to_dict(), sort_keys=True) + "\n")
        logger.debug(f"Stored distribute info for {record.account}: {record.tx_hash}")

    def load(self, account: Optional[str] = None) -> List[DistributeRecord]:
        """Read back stored records, optionally for one account."""
        records: List[DistributeRecord] = []
        try:
            with open(self.path, "r") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    record = DistributeRecord.from_dict(json.loads(line))
                    if account is None or record.account.lower() == account.lower():
                        records.append(record)
        except FileNotFoundError:
            return []
        return records
