"""
Command-Line Interface for the reputation protocol replica.

Replays an ordered event log into a fresh replica and reports the
accumulator roots it produced.
"""

import logging
import sys
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from unirep_light import __version__
from unirep_light.feed.events import load_event_log
from unirep_light.feed.processor import EventProcessor
from unirep_light.protocol.config import load_config
from unirep_light.protocol.exceptions import UnirepError
from unirep_light.protocol.unirep_state import UnirepState


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__)
def main():
    """
    unirep-light - off-chain replica of a pseudonymous reputation protocol

    Tracks global state trees, epoch trees, attestation hashchains and
    nullifiers from an ordered event feed, and builds proof inputs.
    """
    pass


@main.command()
@click.argument("events", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Protocol configuration YAML (default: built-in deployment values)",
)
@click.option(
    "--cursor",
    type=int,
    default=0,
    help="Skip events with sequence number at or below this cursor",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def replay(events: str, config_path: Optional[str], cursor: int, verbose: bool):
    """
    Replay an event log and print per-epoch accumulator roots.

    EVENTS is a YAML list of events or a CBOR-encoded array.

    Examples:

        # Replay with the default configuration
        unirep-light replay events.yaml

        # Replay with custom tree depths
        unirep-light replay events.cbor --config protocol.yaml
    """
    _configure_logging(verbose)
    console = Console()

    try:
        config = load_config(config_path)
        state = UnirepState(config)
        processor = EventProcessor(state, cursor=cursor)
        applied = processor.apply_all(load_event_log(events))
    except UnirepError as e:
        click.echo(click.style(f"✗ Error: {e}", fg="red"), err=True)
        sys.exit(1)

    table = Table(title=f"Replayed {applied} events")
    table.add_column("Epoch", justify="right")
    table.add_column("GST leaves", justify="right")
    table.add_column("GST root")
    table.add_column("Epoch tree root")
    for epoch in range(1, state.current_epoch + 1):
        sealed = state.ledger.is_sealed(epoch)
        table.add_row(
            str(epoch),
            str(state.get_num_gst_leaves(epoch)),
            str(state.gst_root(epoch)),
            str(state.epoch_tree_root(epoch)) if sealed else "(open)",
        )
    console.print(table)
    console.print(f"Current epoch: {state.current_epoch}")
    console.print(f"Nullifiers recorded: {len(state.nullifiers)}")
    console.print(f"Cursor: {processor.cursor}")


@main.command("show-config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Protocol configuration YAML to validate and print",
)
def show_config(config_path: Optional[str]):
    """Print the effective protocol configuration as YAML."""
    try:
        config = load_config(config_path)
    except UnirepError as e:
        click.echo(click.style(f"✗ Error: {e}", fg="red"), err=True)
        sys.exit(1)
    click.echo(yaml.safe_dump(config.to_dict(), sort_keys=False), nl=False)


if __name__ == "__main__":
    main()
