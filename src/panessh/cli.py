"""CLI entry point for panessh.

Usage:
    panessh web1 web2 admin@db1            # one pane per host
    panessh --log web1 web1                # log each pane to ~/.panessh/logs
    panessh --log=/tmp/logs --log-format='[:ARG:]_%H%M.log' web1 web2
    panessh --share web1 web2              # let other users co-attach
"""

import logging
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console

from panessh import __version__
from panessh.bootstrap import BootstrapError, BootstrapRequest, SessionBootstrap
from panessh.config_manager import ConfigError, ConfigManager
from panessh.context import ExecutionContext
from panessh.handoff import HandoffError
from panessh.layout import LayoutError
from panessh.log_names import LogDirectoryError, ensure_log_dir
from panessh.session_lock import LockTimeoutError
from panessh.tmux import TmuxCommandError

logger = logging.getLogger(__name__)

# Spellings of the optional-value --log flag that take no directory
_BARE_LOG_FLAGS = ("--log", "-l")


class PanesshCommand(click.Command):
    """Click command with getopt-style --log[=DIR] and auto-help on errors."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        """Rewrite bare --log/-l to --log= so the next word stays a host."""
        rewritten = []
        passthrough = False
        for arg in args:
            if not passthrough and arg in _BARE_LOG_FLAGS:
                rewritten.append("--log=")
                continue
            if arg == "--":
                passthrough = True
            rewritten.append(arg)
        return super().parse_args(ctx, rewritten)

    def main(self, *args: Any, **kwargs: Any) -> Any:
        """Override main to auto-display help on usage errors (exit 1)."""
        kwargs["standalone_mode"] = False
        try:
            return super().main(*args, **kwargs)
        except click.exceptions.Abort:
            click.echo("Aborted!", err=True)
            sys.exit(130)
        except click.exceptions.UsageError as e:
            click.echo(f"Error: {e.format_message()}", err=True)
            if e.ctx is not None:
                click.echo("", err=True)
                click.echo(e.ctx.get_help(), err=True)
            sys.exit(1)
        except click.exceptions.ClickException as e:
            e.show()
            sys.exit(1)


@click.command(
    cls=PanesshCommand,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.argument("targets", nargs=-1, metavar="[USER@]HOST...")
@click.option(
    "--log",
    "-l",
    "log_option",
    metavar="[=DIR]",
    default=None,
    help="Record each pane to a log file (default dir: ~/.panessh/logs)",
)
@click.option(
    "--log-format",
    metavar="FORMAT",
    default=None,
    help="Log file name template: [:ARG:] host-occurrence, [:PID:] pid, strftime codes",
)
@click.option("--share/--no-share", default=None, help="Allow other users to attach")
@click.option("--config", "config_path", type=click.Path(), help="Config file path")
@click.option("--verbose", is_flag=True, help="Show tmux commands and debug output")
@click.option("--handoff-pipe", type=click.Path(path_type=Path), hidden=True)
@click.option("--origin-pid", type=int, hidden=True)
@click.version_option(__version__, "--version", "-v")
@click.pass_context
def main(
    ctx: click.Context,
    targets: tuple[str, ...],
    log_option: str | None,
    log_format: str | None,
    share: bool | None,
    config_path: str | None,
    verbose: bool,
    handoff_pipe: Path | None,
    origin_pid: int | None,
) -> None:
    """Open one SSH connection per tmux pane and type into all of them at once.

    Outside tmux a new session is created on ~/.panessh/tmux.sock and this
    terminal is attached to it; inside tmux a new window is opened.

    \b
    Examples:
        panessh web1 web2 web3
        panessh -l admin@db1 admin@db2
        panessh --log=/var/tmp/ssh --log-format='[:ARG:]_[:PID:].log' web1
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")
    console = Console(stderr=True)

    if not targets:
        console.print("[red]Error: No hosts given.[/red]")
        click.echo(ctx.get_help(), err=True)
        sys.exit(1)

    try:
        config = ConfigManager.load_config(config_path)

        log_dir = None
        if log_option is not None:
            log_dir = ensure_log_dir(Path(log_option) if log_option else config.log_dir)

        request = BootstrapRequest(
            targets=list(targets),
            log_dir=log_dir,
            log_format=log_format or config.log_format,
            handoff_pipe=handoff_pipe,
            config_path=config_path,
            verbose=verbose,
            share=config.share if share is None else share,
        )
        context = ExecutionContext.from_environ(origin_pid=origin_pid)

        outcome = SessionBootstrap(config, context).run(request)

        if outcome.log_files:
            logger.info(f"Logging {len(outcome.log_files)} panes to {log_dir}")

    except (ConfigError, LogDirectoryError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    except (TmuxCommandError, LayoutError) as e:
        console.print(f"[red]tmux error: {e}[/red]")
        sys.exit(1)
    except (HandoffError, LockTimeoutError, BootstrapError) as e:
        console.print(f"[red]Session error: {e}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)


__all__ = ["PanesshCommand", "main"]
