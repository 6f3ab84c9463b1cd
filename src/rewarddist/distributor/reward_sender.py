"""
rewarddist/distributor/reward_sender.py

Batch reward distribution from a verified reward file.

Flow:
    load reward file -> check title line -> total reward
    -> check sender balance -> write ledger title
    -> one transfer per positive reward, strictly in order

A failed transfer aborts the remaining batch; the ledger then holds exactly
the transfers that were submitted, which is what an operator resumes from.

Usage:
    from rewarddist.distributor import RewardDistributor

    distributor = RewardDistributor(option, builder, ContractCaller(gateway))
    distributor.send_rewards_from_file()
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from web3 import Web3

from ..blockchain.contract import ContractCaller
from ..blockchain.tx_builder import TransactionBuilder
from ..config import FALLBACK_TITLE_LINE, AccountStat, Option, get_standard_by_what
from .ledger import (
    RewardLedger,
    ValidationError,
    add_txhash_field_to_title_line,
    check_title_line,
    load_reward_file,
)
from .store import DistributeRecord, RewardStore

logger = logging.getLogger("rewarddist.distributor.reward_sender")


# ============================================================================
# ERRORS
# ============================================================================

class InsufficientBalance(ValidationError):
    """Sender balance does not cover the batch total."""

    def __init__(self, sender: str, balance: int, required: int):
        self.sender = sender
        self.balance = balance
        self.required = required
        super().__init__(
            f"insufficient balance of {sender}: have {balance}, need {required}"
        )


class BatchAborted(Exception):
    """A transfer failed; the rest of the batch was not attempted."""

    def __init__(
        self,
        account: str,
        reward: int,
        sent: int,
        total: int,
        sent_amount: int,
        total_amount: int,
    ):
        self.account = account
        self.reward = reward
        self.sent = sent
        self.total = total
        self.sent_amount = sent_amount
        self.total_amount = total_amount
        super().__init__(
            f"send tx failed for account {account} (reward {reward}): "
            f"{sent} of {total} sent, {sent_amount} of {total_amount} rewards sent"
        )


# ============================================================================
# DATA STRUCTURES
# ============================================================================

STATUS_SENT = "sent"
STATUS_DRY_RUN = "dry_run"
STATUS_SKIPPED = "skipped"


@dataclass
class RewardOutcome:
    """Result of processing one reward entry."""
    account: str
    reward: int
    status: str
    tx_hash: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "account": self.account,
            "reward": self.reward,
            "status": self.status,
            "tx_hash": self.tx_hash,
        }


# ============================================================================
# VALIDATION
# ============================================================================

def validate_batch(stats: Sequence[AccountStat]) -> int:
    """
    Validate reward entries and compute the total to send.

    Only positive rewards count towards the total; zero or negative
    entries are skipped when sending. Negative entries never lower the
    total, so it is not the plain sum of every amount in the file.

    Returns:
        Total reward, 0 for an empty batch

    Raises:
        ValidationError: On a malformed entry
    """
    total = 0
    for index, stat in enumerate(stats):
        reward = stat.reward
        if isinstance(reward, bool) or not isinstance(reward, int):
            raise ValidationError(f"entry {index}: malformed reward {reward!r} for {stat.account}")
        if not isinstance(stat.account, str) or not Web3.is_address(stat.account):
            raise ValidationError(f"entry {index}: wrong account address {stat.account!r}")
        if reward > 0:
            total += reward
    return total


def count_positive(stats: Sequence[AccountStat]) -> int:
    return sum(1 for stat in stats if stat.reward > 0)


# ============================================================================
# DISTRIBUTOR
# ============================================================================

class RewardDistributor:
    """
    Sends a batch of rewards one transfer at a time.

    Transfers are strictly sequential: nonces from one sender must be
    used in increasing order.
    """

    def __init__(
        self,
        option: Option,
        builder: TransactionBuilder,
        contract_caller: ContractCaller,
        ledger: Optional[RewardLedger] = None,
        store: Optional[RewardStore] = None,
    ):
        """
        Initialize RewardDistributor.

        Args:
            option: Run configuration
            builder: Transaction builder holding the sender key
            contract_caller: Contract call helper for balance checks
            ledger: Output ledger (defaults to option.output_file)
            store: Optional persistence for sent rewards
        """
        self.option = option
        self.builder = builder
        self.caller = contract_caller
        self.ledger = ledger or RewardLedger(option.output_file)
        self.store = store

    @property
    def dry_run(self) -> bool:
        return self.option.dry_run

    # ========================================================================
    # CHECKS
    # ========================================================================

    def check_sender_balance(self, total_reward: int) -> int:
        """
        Check the sender holds at least ``total_reward`` of the reward token
        (or native coin when no reward token is configured).

        Returns:
            The sender balance

        Raises:
            InsufficientBalance: If the balance is lower than the total
            ValidationError: If the balance cannot be read (e.g. the reward
                token is not a contract)
        """
        sender = self.builder.sender
        token = self.option.reward_token
        try:
            if token:
                balance = self.caller.get_token_balance(token, sender)
            else:
                balance = self.caller.get_coin_balance(sender)
        except Exception as e:
            asset = f"reward token {token}" if token else "coin"
            logger.error(f"get {asset} balance of sender {sender} failed: {e}")
            raise ValidationError(f"can not get {asset} balance of sender {sender}: {e}") from e

        logger.info(f"sender {sender} balance {balance}, total reward {total_reward}")
        if balance < total_reward:
            logger.error(f"sender {sender} has insufficient balance {balance} < {total_reward}")
            raise InsufficientBalance(sender, balance, total_reward)
        return balance

    def check_basic(self) -> None:
        """
        Check the options needed to record rewards in the store.

        Raises:
            ValidationError: Naming the first missing or invalid option
        """
        opt = self.option
        if not get_standard_by_what(opt.by_what or ""):
            raise ValidationError(f"unknown reward type '{opt.by_what}'")
        if not opt.exchange or not Web3.is_address(opt.exchange):
            raise ValidationError(f"wrong exchange address '{opt.exchange}'")
        if not opt.reward_token or not Web3.is_address(opt.reward_token):
            raise ValidationError(f"wrong reward token address '{opt.reward_token}'")
        if opt.start_height >= opt.end_height:
            raise ValidationError(
                f"wrong height range, start {opt.start_height} >= end {opt.end_height}"
            )

    def check_send_rewards_from_file(self) -> Tuple[List[AccountStat], bool]:
        """
        Load and validate the reward file and write the ledger title.

        Returns:
            (account_stats, can_save_db); empty stats mean nothing to do
        """
        opt = self.option
        if not opt.input_file:
            raise ValidationError("must specify input file")

        try:
            title_line, stats = load_reward_file(opt.input_file)
        except (OSError, ValidationError) as e:
            logger.error(f"get accounts and rewards from input file failed, inputfile: {opt.input_file}, err: {e}")
            raise

        if not stats:
            logger.warning("empty account list, no need to send reward")
            return [], False

        try:
            opt.by_what = check_title_line(title_line, opt.by_what)
        except ValidationError as e:
            logger.error(f"check title line failed, titleLine: {title_line}, err: {e}")
            raise

        opt.total_value = validate_batch(stats)
        self.check_sender_balance(opt.total_value)

        can_save_db = True
        try:
            self.check_basic()
        except ValidationError as e:
            can_save_db = False
            if opt.save_db:
                raise ValidationError(f"can not savedb as error {e}") from e
        if opt.save_db and self.store is None:
            raise ValidationError("can not savedb without a reward store")

        if opt.dry_run:
            self.ledger.write_title(title_line)
        elif can_save_db:
            self.ledger.write_title(add_txhash_field_to_title_line(title_line))
        else:
            self.ledger.write_title(FALLBACK_TITLE_LINE)

        return stats, can_save_db

    # ========================================================================
    # SENDING
    # ========================================================================

    def _record(self, stat: AccountStat, tx_hash: str) -> None:
        opt = self.option
        self.store.add_distribute_info(DistributeRecord(
            account=stat.account,
            reward=stat.reward,
            tx_hash=tx_hash,
            by_what=opt.by_what,
            exchange=opt.exchange,
            reward_token=opt.reward_token,
            start_height=opt.start_height,
            end_height=opt.end_height,
        ))

    def run_batch(self, stats: Sequence[AccountStat], can_save_db: bool = False) -> List[RewardOutcome]:
        """
        Send one transfer per positive reward, in input order.

        Raises:
            BatchAborted: On the first failed transfer
        """
        opt = self.option
        total_count = count_positive(stats)
        outcomes: List[RewardOutcome] = []

        for stat in stats:
            account, reward = stat.account, stat.reward
            if reward <= 0:
                logger.info(f"ignore zero reward line, account: {account}")
                outcomes.append(RewardOutcome(account, reward, STATUS_SKIPPED))
                continue

            if opt.dry_run:
                logger.info(f"sendRewards dry run, account: {account}, reward: {reward}")
                opt.rewards_sent += reward
                opt.sent_count += 1
                self.ledger.write_row(account, reward)
                outcomes.append(RewardOutcome(account, reward, STATUS_DRY_RUN))
                continue

            try:
                tx_hash = self.builder.send_reward(account, reward, opt.reward_token or None)
            except Exception as e:
                logger.info(
                    f"rewards sended, totalRewards: {opt.total_value}, rewardsSended: {opt.rewards_sent}, "
                    f"allRewardsSended: {opt.all_rewards_sent}"
                )
                logger.error(f"send tx failed, account: {account}, reward: {reward}, dryrun: {opt.dry_run}, err: {e}")
                raise BatchAborted(
                    account=account,
                    reward=reward,
                    sent=opt.sent_count,
                    total=total_count,
                    sent_amount=opt.rewards_sent,
                    total_amount=opt.total_value,
                ) from e

            opt.rewards_sent += reward
            opt.sent_count += 1
            self.ledger.write_row(account, reward, tx_hash)

            if opt.save_db and can_save_db:
                self._record(stat, tx_hash)
            outcomes.append(RewardOutcome(account, reward, STATUS_SENT, tx_hash))

        logger.info(
            f"rewards sended, totalRewards: {opt.total_value}, rewardsSended: {opt.rewards_sent}, "
            f"allRewardsSended: {opt.all_rewards_sent}"
        )
        return outcomes

    def send_rewards_from_file(self) -> List[RewardOutcome]:
        """
        Distribute the rewards listed in the option's input file.

        Returns:
            Per-entry outcomes (empty if the file lists no accounts)
        """
        stats, can_save_db = self.check_send_rewards_from_file()
        if not stats:
            return []

        logger.info(f"call SendRewardsFromFile, option: {self.option.to_dict()}")
        try:
            return self.run_batch(stats, can_save_db)
        finally:
            self.builder.close()
