"""CLI entry point for dbox."""

from __future__ import annotations

import asyncio
import logging

import typer

from dbox.config import ConfigurationError, DboxConfig, load_environment_yaml
from dbox.mux.multiplexer import MuxOutcome
from dbox.session.errors import DboxError
from dbox.session.registry import SessionRegistry

app = typer.Typer(
    name="dbox",
    help="Ephemeral development environment manager.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(config_file: str | None) -> DboxConfig:
    try:
        return DboxConfig.load(config_file)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def run(
    environment: str | None = typer.Argument(
        None, help="Environment to boot: go, rust, node, python, etc."
    ),
    ram: int | None = typer.Option(
        None, "--ram", help="RAM size in MB, default value: 2048", min=1
    ),
    cpu: int | None = typer.Option(
        None, "--cpu", help="CPU cores (vCPU), default value: 2", min=1
    ),
    yaml_file: str | None = typer.Option(
        None, "--yaml", help="Path to YAML file for a custom environment config."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Spin up a new devbox with the specified environment."""
    from dbox.session.launcher import LaunchOutcome, launch_session

    setup_logging(verbose)

    if not environment:
        typer.echo(
            "Error: please specify an environment: go, rust, node, python, etc",
            err=True,
        )
        raise typer.Exit(1)

    config = _load_config(config_file)
    ram = ram or config.vm.ram
    cpu = cpu or config.vm.cpu
    image: str | None = None

    if yaml_file:
        try:
            env_config = load_environment_yaml(yaml_file)
        except ConfigurationError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        ram = env_config.ram or ram
        cpu = env_config.cpu or cpu
        image = env_config.image

    typer.echo(
        f"Spinning up devbox with {environment} environment "
        f"(RAM: {ram} MB, CPU: {cpu} vCPU)..."
    )

    try:
        result = asyncio.run(
            launch_session(environment, ram, cpu, config=config, image=image)
        )
    except (DboxError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if result.outcome is LaunchOutcome.DETACHED:
        typer.echo(
            f"\nDetached from devbox {result.session.id}. "
            "Use 'dbox ls' to check if it's still running."
        )
    else:
        typer.echo("\nDevbox shut down successfully.")


def ls(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """List running devbox sessions (stale sockets are cleaned up)."""
    setup_logging(verbose)
    config = _load_config(config_file)
    registry = SessionRegistry(config.session.socket_dir)

    sessions = registry.sessions()
    if not sessions:
        typer.echo("No running sessions.")
        return
    for session in sessions:
        typer.echo(f"{session.id}\t{session.socket_path}")


def attach(
    session_id: str = typer.Argument(help="Session id as shown by 'dbox ls'."),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Attach the terminal to a running devbox session."""
    from dbox.session.attacher import attach_session

    setup_logging(verbose)
    config = _load_config(config_file)

    typer.echo(f"Attaching to session {session_id}...")
    try:
        outcome = asyncio.run(attach_session(session_id, config=config))
    except DboxError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if outcome is MuxOutcome.DETACHED:
        typer.echo("\nDetached from session")
    else:
        typer.echo(f"\nSession {session_id} ended.")


app.command("run")(run)
app.command("r", hidden=True)(run)
app.command("ls")(ls)
app.command("list", hidden=True)(ls)
app.command("attach")(attach)
app.command("a", hidden=True)(attach)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
