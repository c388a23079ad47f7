"""CLI for the ladder engine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Annotated, TypeVar

import structlog
import typer
import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ladder_engine import __version__
from ladder_engine.core.clock import as_utc
from ladder_engine.core.config import LadderConfig, load_config
from ladder_engine.core.errors import ConfigurationError, LadderError
from ladder_engine.league import LadderLeague, open_league

T = TypeVar("T")

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

app = typer.Typer(
    name="ladder",
    help="Ladder Engine - ranked challenge league with automatic deadline forfeits",
    add_completion=False,
)
console = Console()

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Path to league config YAML file")
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-V", help="Verbose output")]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ladder-engine v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
) -> None:
    """Ladder Engine CLI."""


def _configure_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _load(config_path: Path | None) -> LadderConfig:
    # LADDER_DATABASE_URL may come from a local .env file.
    load_dotenv()
    if config_path is None:
        return LadderConfig()
    return load_config(config_path)


def _parse_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return as_utc(datetime.fromisoformat(value))
    except ValueError as e:
        msg = f"Invalid ISO timestamp: {value}"
        raise typer.BadParameter(msg) from e


def _run(
    config_path: Path | None,
    verbose: bool,
    action: Callable[[LadderLeague], Awaitable[T]],
) -> T:
    """Open the league, run one async action, close the league.

    Maps rejected actions and configuration problems to exit code 1.
    """
    _configure_logging(verbose)

    async def _go() -> T:
        league = open_league(_load(config_path))
        try:
            return await action(league)
        finally:
            await league.close()

    try:
        return asyncio.run(_go())
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except ConfigurationError as e:
        console.print(f"[red]{e}")
        raise typer.Exit(1) from e
    except (LadderError, ValueError) as e:
        console.print(f"[red]Rejected:[/red] {e}")
        raise typer.Exit(1) from e
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        if verbose:
            console.print_exception()
        raise typer.Exit(1) from e


@app.command("init-db")
def init_db(config_path: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """Create the ladder tables if they do not exist."""

    async def _action(league: LadderLeague) -> None:
        league.init_schema()

    _run(config_path, verbose, _action)
    console.print("[green]Schema ready[/green]")


@app.command()
def join(
    display_name: Annotated[str, typer.Argument(help="Display name of the new member")],
    rating: Annotated[int, typer.Option("--rating", help="Informational rating")] = 0,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Add a member at the bottom of the ladder."""
    member = _run(config_path, verbose, lambda league: league.join(display_name, rating))
    console.print(f"[green]Joined[/green] {member.display_name} at rank {member.rank} ({member.id})")


@app.command()
def seed(
    roster_path: Annotated[Path, typer.Argument(help="YAML list of {name, rating} entries")],
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Seed an empty ladder from a roster file, best rating first."""
    if not roster_path.exists():
        console.print(f"[red]Error:[/red] Roster file not found: {roster_path}")
        raise typer.Exit(1)
    with roster_path.open() as f:
        entries = yaml.safe_load(f) or []
    try:
        roster = [(str(entry["name"]), int(entry.get("rating", 0))) for entry in entries]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        console.print(f"[red]Invalid roster:[/red] {e}")
        raise typer.Exit(1) from e

    members = _run(config_path, verbose, lambda league: league.seed(roster))
    console.print(f"[green]Seeded {len(members)} members[/green]")


@app.command()
def standings(
    limit: Annotated[int | None, typer.Option("--limit", "-n", help="Show the top N")] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Show the ladder ordered by rank."""
    members = _run(config_path, verbose, lambda league: league.standings(limit))
    table = Table(title="Ladder")
    table.add_column("Rank", justify="right")
    table.add_column("Member")
    table.add_column("Points", justify="right")
    table.add_column("Cooldown until")
    table.add_column("Id", style="dim")
    for member in members:
        cooldown = member.cooldown_until.isoformat() if member.cooldown_until else "-"
        table.add_row(
            str(member.rank), member.display_name, str(member.points), cooldown, member.id
        )
    console.print(table)


@app.command()
def challenge(
    member_id: Annotated[str, typer.Argument(help="Challenger member id")],
    target_id: Annotated[str, typer.Argument(help="Challenged member id")],
    discipline: Annotated[str, typer.Option("--discipline", help="Game played")] = "8-ball",
    games_to_win: Annotated[int | None, typer.Option("--games", help="Race length")] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Issue a challenge."""
    created = _run(
        config_path,
        verbose,
        lambda league: league.create_challenge(member_id, target_id, discipline, games_to_win),
    )
    console.print(f"[green]Challenge created[/green] {created.id} (deadline {created.deadline})")


@app.command()
def propose(
    member_id: Annotated[str, typer.Argument(help="Challenged member id")],
    challenge_id: Annotated[str, typer.Argument(help="Challenge id")],
    venue: Annotated[str, typer.Argument(help="Proposed venue")],
    time: Annotated[str | None, typer.Option("--time", help="ISO timestamp")] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Answer a pending challenge with a venue and time."""
    when = _parse_time(time)
    updated = _run(
        config_path, verbose, lambda league: league.propose(member_id, challenge_id, venue, when)
    )
    console.print(f"[green]Proposed[/green] {updated.venue} for {updated.id}")


@app.command()
def counter(
    member_id: Annotated[str, typer.Argument(help="Participant member id")],
    challenge_id: Annotated[str, typer.Argument(help="Challenge id")],
    venue: Annotated[str, typer.Argument(help="Counter-proposed venue")],
    time: Annotated[str | None, typer.Option("--time", help="ISO timestamp")] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Counter-propose a venue and time."""
    when = _parse_time(time)
    updated = _run(
        config_path,
        verbose,
        lambda league: league.counter_propose(member_id, challenge_id, venue, when),
    )
    console.print(f"[green]Counter-proposed[/green] {updated.venue} for {updated.id}")


@app.command()
def confirm(
    member_id: Annotated[str, typer.Argument(help="Challenger member id")],
    challenge_id: Annotated[str, typer.Argument(help="Challenge id")],
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Confirm the current proposal."""
    updated = _run(config_path, verbose, lambda league: league.confirm(member_id, challenge_id))
    console.print(f"[green]Scheduled[/green] {updated.id} at {updated.venue}")


@app.command()
def decline(
    member_id: Annotated[str, typer.Argument(help="Challenged member id")],
    challenge_id: Annotated[str, typer.Argument(help="Challenge id")],
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Decline a challenge; the challenger wins by forfeit."""
    updated = _run(config_path, verbose, lambda league: league.decline(member_id, challenge_id))
    console.print(f"[yellow]Declined[/yellow] {updated.id}; winner {updated.winner_id}")


@app.command()
def start(
    member_id: Annotated[str, typer.Argument(help="Participant member id")],
    challenge_id: Annotated[str, typer.Argument(help="Challenge id")],
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Start the live match for a scheduled challenge."""
    match = _run(
        config_path, verbose, lambda league: league.start_live_match(member_id, challenge_id)
    )
    console.print(f"[green]Live match[/green] {match.id} (race to {match.games_to_win})")


@app.command()
def match(
    member_id: Annotated[str, typer.Argument(help="First player id")],
    opponent_id: Annotated[str, typer.Argument(help="Second player id")],
    games_to_win: Annotated[int | None, typer.Option("--games", help="Race length")] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Start a direct ladder match without a challenge."""
    created = _run(
        config_path,
        verbose,
        lambda league: league.create_ladder_match(member_id, opponent_id, games_to_win),
    )
    console.print(f"[green]Live match[/green] {created.id} (race to {created.games_to_win})")


@app.command()
def point(
    match_id: Annotated[str, typer.Argument(help="Live match id")],
    player_id: Annotated[str, typer.Argument(help="Player who won the frame")],
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Record a frame won by a player."""
    updated = _run(config_path, verbose, lambda league: league.score_point(match_id, player_id))
    scores = ", ".join(f"{pid}: {score}" for pid, score in updated.scores.items())
    # current_frame is the frame now in play; report the one just recorded.
    console.print(f"After frame {updated.current_frame - 1}  {scores}")
    if updated.winner_id:
        console.print(f"[bold green]Match won by {updated.winner_id}[/bold green]")


@app.command()
def sweep(config_path: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """Run one housekeeping pass and forfeit expired challenges."""
    resolved = _run(config_path, verbose, lambda league: league.run_sweep())
    console.print(f"[green]Forfeited {resolved} expired challenge(s)[/green]")


@app.command()
def sweeper(config_path: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """Run the housekeeping sweep on its configured interval until interrupted."""
    console.print("[bold green]Sweeper running (Ctrl-C to stop)...[/bold green]")
    try:
        _run(config_path, verbose, lambda league: league.run_sweeper())
    except KeyboardInterrupt:
        console.print("[yellow]Sweeper stopped[/yellow]")


@app.command()
def validate(
    config_path: Annotated[Path, typer.Argument(help="Path to config YAML file")],
) -> None:
    """Validate a configuration file without touching the database.

    Args:
        config_path: Path to YAML configuration file.
    """
    try:
        config = load_config(config_path)
        console.print("[green]Configuration is valid![/green]")
        console.print(f"  League: {config.name}")
        console.print(f"  Proximity window: ±{config.policy.proximity_window}")
        console.print(f"  Top rank exempt: {config.policy.top_rank_exempt}")
        console.print(f"  Response deadline: {config.policy.response_deadline_days} days")
        console.print(f"  Loss cooldown: {config.policy.loss_cooldown_hours} hours")
        console.print(f"  Forfeit policy: {config.policy.forfeit_policy}")
        console.print(f"  Sweep interval: {config.sweeper.interval_seconds}s")

    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except ConfigurationError as e:
        console.print(f"[red]{e}")
        raise typer.Exit(1) from e
    except Exception as e:
        console.print(f"[red]Validation error:[/red] {e}")
        raise typer.Exit(1) from e


@app.command()
def info() -> None:
    """Show tool information and example commands."""
    console.print("[bold]Ladder Engine[/bold]")
    console.print(f"Version: {__version__}\n")

    console.print("[bold]Example Commands:[/bold]")
    console.print("  # Seed a ladder")
    console.print("  ladder seed roster.yaml -c league.yaml\n")

    console.print("  # Issue and negotiate a challenge")
    console.print("  ladder challenge <member> <target>")
    console.print("  ladder propose <target> <challenge> 'Corner Pocket' --time 2026-05-01T19:00Z")
    console.print("  ladder confirm <member> <challenge>\n")

    console.print("  # Play it")
    console.print("  ladder start <member> <challenge>")
    console.print("  ladder point <match> <player>\n")

    console.print("  # Forfeit expired challenges")
    console.print("  ladder sweep")
    console.print("  ladder sweeper -c league.yaml")


if __name__ == "__main__":
    app()
