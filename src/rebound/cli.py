"""CLI interface for rebound"""

import logging
import random
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from rebound.application.backoff_controller import BackoffController
from rebound.domain.config import CommandConfig, ControllerConfig
from rebound.domain.errors import ConfigurationError
from rebound.domain.models.outcome import Cancelled, GaveUp, Outcome
from rebound.infrastructure.command import CommandOperation
from rebound.infrastructure.config.config_manager import ConfigManager
from rebound.infrastructure.retry import compute_delay_millis, delay_ceiling_millis

logger = logging.getLogger(__name__)

EXIT_GAVE_UP = 1
EXIT_CANCELLED = 130


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    logging.getLogger().setLevel(level)


def _die(message: str, verbose: bool = False, exc: Optional[Exception] = None) -> None:
    """Exit with a user-friendly error message"""
    if exc is not None:
        logger.error(message, exc_info=verbose)
    else:
        logger.error(message)
    raise click.ClickException(message)


def _load_config_manager(ctx: click.Context) -> ConfigManager:
    try:
        return ConfigManager(config_path=ctx.obj.get("config_path"))
    except ConfigurationError as e:
        _die(str(e), verbose=ctx.obj.get("verbose", False), exc=e)


def _resolve_controller_config(
    config_manager: ConfigManager,
    backoff: Optional[float],
    max_attempts: Optional[int],
    max_elapsed: Optional[float],
    jitter: Optional[float],
) -> ControllerConfig:
    """Apply CLI overrides on top of the loaded controller configuration

    Raises:
        ConfigurationError: If an override is invalid
    """
    overrides = {
        "base_backoff_millis": backoff,
        "max_attempts": max_attempts,
        "max_elapsed_millis": max_elapsed,
        "jitter_percent": jitter,
    }
    values = config_manager.get_controller_config().model_dump()
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return ControllerConfig(**values)
    except ValueError as e:
        raise ConfigurationError(f"Invalid controller option: {e}") from e


def _exit_code(outcome: Outcome) -> int:
    if isinstance(outcome, GaveUp):
        return EXIT_GAVE_UP
    if isinstance(outcome, Cancelled):
        return EXIT_CANCELLED
    return 0


def _report_outcome(outcome: Outcome) -> None:
    """Print outcome summary to console"""
    if isinstance(outcome, GaveUp):
        click.echo(f"ERROR: {outcome.describe()}", err=True)
    elif isinstance(outcome, Cancelled):
        click.echo(f"Cancelled after {outcome.attempts_made} attempt(s)", err=True)
    else:
        if outcome.result is not None and getattr(outcome.result, "stdout", None):
            click.echo(outcome.result.stdout, nl=False)
        click.echo(
            f"Succeeded after {outcome.attempts_made} attempt(s) in {outcome.elapsed_millis:.0f}ms",
            err=True,
        )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .rebound.yml config file",
)
@click.pass_context
def cli(ctx, verbose: bool, config: Path):
    """rebound - retry commands with exponential backoff and jitter"""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option("--backoff", type=float, help="Backoff base in milliseconds. Overrides config.")
@click.option("--max-attempts", type=int, help="Maximum number of attempts. Overrides config.")
@click.option("--max-elapsed", type=float, help="Elapsed time ceiling in milliseconds. Overrides config.")
@click.option("--jitter", type=float, help="Jitter percentage of the exponential delay. Overrides config.")
@click.option("--shell", is_flag=True, help="Run the command through the shell")
@click.option("--timeout", type=float, help="Per-attempt timeout in seconds")
@click.pass_context
def run(
    ctx,
    command: Tuple[str, ...],
    backoff: Optional[float],
    max_attempts: Optional[int],
    max_elapsed: Optional[float],
    jitter: Optional[float],
    shell: bool,
    timeout: Optional[float],
):
    """Run COMMAND until it exits 0 or a give-up ceiling is reached.

    Exits 1 when giving up and 130 when interrupted during a delay.
    """
    verbose = ctx.obj.get("verbose", False)
    config_manager = _load_config_manager(ctx)

    try:
        controller_config = _resolve_controller_config(
            config_manager, backoff, max_attempts, max_elapsed, jitter
        )
        command_config = config_manager.get_command_config()
        command_config = CommandConfig(
            shell=shell or command_config.shell,
            timeout_seconds=timeout if timeout is not None else command_config.timeout_seconds,
        )
        operation = CommandOperation(
            list(command),
            shell=command_config.shell,
            timeout_seconds=command_config.timeout_seconds,
        )
    except ValueError as e:
        _die(str(e), verbose=verbose, exc=e)

    controller = BackoffController(controller_config)
    try:
        outcome = controller.run(operation)
    except KeyboardInterrupt:
        logger.warning("Interrupted, cancelling retry sequence")
        controller.cancel()
        outcome = Cancelled(
            attempts_made=controller.attempt_count,
            elapsed_millis=controller.elapsed_millis,
        )

    _report_outcome(outcome)
    sys.exit(_exit_code(outcome))


@cli.command()
@click.option("--attempts", type=int, help="Number of attempts to show (default: max_attempts)")
@click.option("--seed", type=int, help="Seed for the sampled delays")
@click.option("--backoff", type=float, help="Backoff base in milliseconds. Overrides config.")
@click.option("--jitter", type=float, help="Jitter percentage of the exponential delay. Overrides config.")
@click.pass_context
def delays(
    ctx,
    attempts: Optional[int],
    seed: Optional[int],
    backoff: Optional[float],
    jitter: Optional[float],
):
    """Show the delay ceiling and a sampled delay after each failed attempt."""
    verbose = ctx.obj.get("verbose", False)
    config_manager = _load_config_manager(ctx)
    try:
        config = _resolve_controller_config(config_manager, backoff, None, None, jitter)
    except ConfigurationError as e:
        _die(str(e), verbose=verbose, exc=e)

    count = attempts if attempts is not None else config.max_attempts
    if count < 1:
        _die("--attempts must be at least 1", verbose=verbose)
    rng = random.Random(seed)

    click.echo(f"{'attempt':>7}  {'ceiling_ms':>12}  {'sample_ms':>12}")
    total = 0.0
    for attempt in range(1, count + 1):
        ceiling = delay_ceiling_millis(attempt, config.base_backoff_millis, config.jitter_percent)
        sample = compute_delay_millis(
            attempt, config.base_backoff_millis, config.jitter_percent, rng=rng
        )
        total += sample
        click.echo(f"{attempt:>7}  {ceiling:>12.1f}  {sample:>12.1f}")
    click.echo(f"Total sampled delay: {total:.1f}ms (elapsed ceiling {config.max_elapsed_millis:.0f}ms)")


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()
