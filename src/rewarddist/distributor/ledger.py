"""
rewarddist/distributor/ledger.py

Reward list input and the append-only output ledger.

Input format:
    #<title line: at least 5 comma/blank separated fields, 3rd = reward type>
    <address> <reward> [extra columns ignored]

Output format:
    <title line>
    <account>,<reward>[,<txhash>]
"""

import logging
import re
from typing import List, Optional, Tuple

from web3 import Web3

from ..config import (
    AccountStat,
    TITLE_LINE_BY_WHAT_INDEX,
    TITLE_LINE_MIN_PARTS,
    get_standard_by_what,
)

logger = logging.getLogger("rewarddist.distributor.ledger")

BLANK_OR_COMMA_SEP = re.compile(r"[\s,]+")
COMMENT_PREFIX = "#"


class ValidationError(ValueError):
    """Raised when input or run options are invalid."""
    pass


def is_commented_line(line: str) -> bool:
    return line.lstrip().startswith(COMMENT_PREFIX)


def split_line(line: str) -> List[str]:
    return [part for part in BLANK_OR_COMMA_SEP.split(line.strip()) if part]


# ============================================================================
# INPUT
# ============================================================================

def parse_reward(text: str) -> int:
    """Parse a reward amount in the token's smallest unit."""
    try:
        return int(text, 10)
    except ValueError:
        raise ValidationError(f"malformed reward '{text}'")


def load_reward_file(path: str) -> Tuple[str, List[AccountStat]]:
    """
    Load the title line and reward entries from a reward file.

    Returns:
        (title_line, account_stats). The title is '' if the file has none.

    Raises:
        ValidationError: On a malformed data line
    """
    title_line = ""
    stats: List[AccountStat] = []

    with open(path, "r") as f:
        for lineno, raw in enumerate(f, start=1):
            line = raw.strip()
            if not line:
                continue
            if is_commented_line(line):
                if not title_line and not stats:
                    title_line = line
                continue

            parts = split_line(line)
            if len(parts) < 2:
                raise ValidationError(f"{path}:{lineno}: expected '<address> <reward>', got '{line}'")

            account, reward_text = parts[0], parts[1]
            if not Web3.is_address(account):
                raise ValidationError(f"{path}:{lineno}: wrong account address '{account}'")
            try:
                reward = parse_reward(reward_text)
            except ValidationError as e:
                raise ValidationError(f"{path}:{lineno}: {e}") from e

            stats.append(AccountStat(account=Web3.to_checksum_address(account), reward=reward))

    logger.info(f"loaded {len(stats)} reward entries from {path}")
    return title_line, stats


def check_title_line(title_line: str, by_what: str = "") -> str:
    """
    Validate the title line and the reward type it declares.

    Args:
        title_line: Title line of the reward file
        by_what: Configured reward type ('' to adopt the file's)

    Returns:
        The standard reward type for the run

    Raises:
        ValidationError: Not a comment line, too few fields, unknown type,
            or type differing from ``by_what``
    """
    if not is_commented_line(title_line):
        raise ValidationError(f"title line '{title_line}' is not comment line")

    parts = BLANK_OR_COMMA_SEP.split(title_line.strip())
    if len(parts) < TITLE_LINE_MIN_PARTS:
        raise ValidationError(f"title line parts is less than {TITLE_LINE_MIN_PARTS}. {title_line}")

    method_id = parts[TITLE_LINE_BY_WHAT_INDEX]
    from_file = get_standard_by_what(method_id)
    if not by_what:
        if not from_file:
            raise ValidationError(f"unknown reward type '{method_id}' in title line")
        return from_file

    if get_standard_by_what(by_what) != from_file:
        raise ValidationError(f"byWhat mismatch. from arg {by_what}, from file {method_id}")
    return from_file


def add_txhash_field_to_title_line(title_line: str) -> str:
    """Insert a txhash column before the last (extra info) column."""
    parts = BLANK_OR_COMMA_SEP.split(title_line)
    if len(parts) <= 1:
        return title_line + ",txhash"
    return ",".join(parts[:-1]) + ",txhash," + parts[-1]


# ============================================================================
# OUTPUT
# ============================================================================

class RewardLedger:
    """
    Append-only record of processed reward entries.

    Lines are appended and flushed one at a time so the file always
    reflects every transfer that was submitted. Without a path the
    lines are logged instead.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or ""
        self.rows_written = 0

    def write_line(self, line: str) -> None:
        if not self.path:
            logger.info(f"[ledger] {line}")
            return
        with open(self.path, "a") as f:
            f.write(line + "\n")

    def write_title(self, title_line: str) -> None:
        self.write_line(title_line)

    def write_row(self, account: str, reward: int, tx_hash: Optional[str] = None) -> None:
        fields = [account, str(reward)]
        if tx_hash:
            fields.append(tx_hash)
        self.write_line(",".join(fields))
        self.rows_written += 1
