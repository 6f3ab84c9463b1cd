"""
rewarddist/cli.py

Command line entry point.

Usage:
    rewarddist sendrewards --gateway https://rpc.example.org \\
        --input rewards.txt --output sent.txt \\
        --reward-token 0x... --keystore key.json --password pass.txt
"""

import logging
import threading
from typing import List, Optional, Tuple

import click

from .blockchain.contract import ContractCaller
from .blockchain.tx_builder import BuildTxArgs, TransactionBuilder, TxBuilderError
from .config import (
    DEFAULT_RPC_RETRY_COUNT,
    DEFAULT_RPC_RETRY_INTERVAL,
    Option,
)
from .distributor.ledger import ValidationError
from .distributor.reward_sender import BatchAborted, RewardDistributor
from .distributor.store import JsonLinesRewardStore
from .rpc.gateway import Gateway, GatewayError

logger = logging.getLogger("rewarddist.cli")

LOG_FORMAT = "%(asctime)s [REWARDDIST] %(levelname)s: %(message)s"


def split_urls(values: Tuple[str, ...]) -> List[str]:
    """Flatten repeated and comma separated --gateway values, keeping order."""
    urls: List[str] = []
    for value in values:
        for url in value.split(","):
            url = url.strip()
            if url and url not in urls:
                urls.append(url)
    return urls


def _set_by_what(ctx, param, value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    option = Option()
    try:
        option.set_by_what(value)
    except ValueError as e:
        raise click.BadParameter(str(e))
    return option.by_what


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="info",
    help="Logging verbosity",
)
def main(log_level: str):
    """Distribute token rewards through JSON-RPC gateways."""
    logging.basicConfig(level=getattr(logging, log_level.upper()), format=LOG_FORMAT)


@main.command("sendrewards")
@click.option("--gateway", "gateways", multiple=True, required=True, envvar="REWARDDIST_GATEWAY",
              help="RPC endpoint URL (repeatable or comma separated)")
@click.option("--reward-type", "by_what", default=None, callback=_set_by_what,
              help="Reward type: liquidity or volume (defaults to the input file's)")
@click.option("--exchange", default="", help="Exchange address")
@click.option("--reward-token", default="", help="Reward token address (native coin if omitted)")
@click.option("--start", "start_height", type=int, default=0, help="Start block height")
@click.option("--end", "end_height", type=int, default=0, help="End block height")
@click.option("--input", "input_file", required=True, type=click.Path(dir_okay=False),
              help="Verified reward file: <address> <reward> per line")
@click.option("--output", "output_file", default="", type=click.Path(dir_okay=False),
              help="Output ledger file (appended)")
@click.option("--sender", default="", help="Sender address")
@click.option("--keystore", "keystore_file", default="", envvar="REWARDDIST_KEYSTORE",
              help="Keystore file of the sender")
@click.option("--password", "password_file", default="", envvar="REWARDDIST_PASSWORD",
              help="File holding the keystore passphrase")
@click.option("--gas-limit", type=int, default=None, help="Gas limit per transfer")
@click.option("--gas-price", type=int, default=None, help="Gas price in wei")
@click.option("--nonce", type=int, default=None, help="First nonce to use")
@click.option("--savedb", "save_db", is_flag=True, default=False, help="Record sent rewards in the store")
@click.option("--store", "store_file", default="", type=click.Path(dir_okay=False),
              help="JSON lines file used as reward store with --savedb")
@click.option("--dryrun", "dry_run", is_flag=True, default=False, help="Validate and log only, send nothing")
@click.option("--retry-count", type=int, default=DEFAULT_RPC_RETRY_COUNT, show_default=True,
              help="Attempts for balance and contract queries")
@click.option("--retry-interval", type=float, default=DEFAULT_RPC_RETRY_INTERVAL, show_default=True,
              help="Seconds between RPC retries")
def send_rewards(
    gateways, by_what, exchange, reward_token, start_height, end_height,
    input_file, output_file, sender, keystore_file, password_file,
    gas_limit, gas_price, nonce, save_db, store_file, dry_run,
    retry_count, retry_interval,
):
    """Send rewards batchly according to a verified input file."""
    urls = split_urls(gateways)
    if not urls:
        raise click.UsageError("must specify gateway URL")

    option = Option(
        input_file=input_file,
        output_file=output_file,
        dry_run=dry_run,
        save_db=save_db,
        by_what=by_what or "",
        exchange=exchange,
        reward_token=reward_token,
        start_height=start_height,
        end_height=end_height,
    )
    args = BuildTxArgs(
        sender=sender,
        keystore_file=keystore_file,
        password_file=password_file,
        nonce=nonce,
        gas_limit=gas_limit,
        gas_price=gas_price,
    )
    store = JsonLinesRewardStore(store_file) if store_file else None

    gateway = Gateway(
        retry_count=retry_count,
        retry_interval=retry_interval,
        cancel_event=threading.Event(),
    )
    try:
        gateway.dial(urls)
        with TransactionBuilder(gateway, args, dry_run=dry_run) as builder:
            builder.check()
            distributor = RewardDistributor(
                option,
                builder,
                ContractCaller(gateway),
                store=store,
            )
            outcomes = distributor.send_rewards_from_file()
    except (GatewayError, TxBuilderError, ValidationError, BatchAborted, OSError) as e:
        logger.error(f"sendrewards failed: {e}")
        raise click.ClickException(str(e))
    except KeyboardInterrupt:
        gateway.cancel()
        raise
    except Exception as e:
        logger.exception(f"sendrewards failed unexpectedly: {e}")
        raise click.ClickException(f"{type(e).__name__}: {e}")
    finally:
        gateway.close()

    click.echo(
        f"processed {len(outcomes)} entries, sent {option.sent_count}, "
        f"rewards sent {option.rewards_sent} of {option.total_value}"
    )


if __name__ == "__main__":
    main()
