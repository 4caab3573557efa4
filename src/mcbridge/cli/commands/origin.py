"""
Origin command: run the origin agent next to the game server.

Example:
    mcbridge origin --relay 203.0.113.10

    # Game server on a non-default local port
    mcbridge origin --relay relay.example.com --game-port 25570
"""

from typing import Annotated

import typer

from mcbridge.cli.output import console, print_success
from mcbridge.models.enums import LogLevel
from mcbridge.origin import app as origin_app
from mcbridge.origin.config import config

app = typer.Typer(help="Run the origin agent")


@app.callback(invoke_without_command=True)
def origin(
    relay: Annotated[
        str,
        typer.Option("--relay", "-r", help="Relay address", envvar="MCBRIDGE_RELAY"),
    ] = config.RELAY_ADDRESS,
    control_port: Annotated[
        int,
        typer.Option(
            "--control-port", help="Relay control/tunnel port", envvar="MCBRIDGE_CONTROL_PORT"
        ),
    ] = config.CONTROL_PORT,
    voice_bridge_port: Annotated[
        int,
        typer.Option(
            "--voice-bridge-port",
            help="Relay voice bridge port",
            envvar="MCBRIDGE_VOICE_BRIDGE_PORT",
        ),
    ] = config.VOICE_BRIDGE_PORT,
    local_host: Annotated[
        str,
        typer.Option("--local-host", "-H", help="Address of the local services"),
    ] = config.LOCAL_GAME_HOST,
    game_port: Annotated[
        int,
        typer.Option("--game-port", help="Local game server port (TCP)"),
    ] = config.LOCAL_GAME_PORT,
    voice_port: Annotated[
        int,
        typer.Option("--voice-port", help="Local voice server port (UDP)"),
    ] = config.LOCAL_VOICE_PORT,
    token: Annotated[
        str,
        typer.Option("--token", help="Control channel token", envvar="MCBRIDGE_TOKEN"),
    ] = config.CONTROL_TOKEN,
    reconnect_delay: Annotated[
        float,
        typer.Option("--reconnect-delay", help="Seconds between reconnect attempts"),
    ] = config.RECONNECT_DELAY,
    log_level: Annotated[
        LogLevel,
        typer.Option("--log-level", "-l", help="Log level", envvar="MCBRIDGE_LOG_LEVEL"),
    ] = config.LOG_LEVEL,
    log_file: Annotated[
        str,
        typer.Option("--log-file", help="Also log to this file"),
    ] = config.LOG_FILE,
):
    """
    Run the origin agent.

    Keeps the control channel and voice bridge to the relay open and serves
    tunnel requests from the local game and voice servers.
    """
    config.RELAY_ADDRESS = relay
    config.CONTROL_PORT = control_port
    config.VOICE_BRIDGE_PORT = voice_bridge_port
    config.LOCAL_GAME_HOST = local_host
    config.LOCAL_VOICE_HOST = local_host
    config.LOCAL_GAME_PORT = game_port
    config.LOCAL_VOICE_PORT = voice_port
    config.CONTROL_TOKEN = token
    config.RECONNECT_DELAY = reconnect_delay
    config.LOG_LEVEL = log_level
    config.LOG_FILE = log_file

    console.print(
        f"[bold green]Origin[/bold green] "
        f"[cyan]{local_host}:{game_port}[/cyan] [dim]→[/dim] "
        f"[yellow]{relay}:{control_port}[/yellow] "
        f"[dim](voice {local_host}:{voice_port}/udp → {relay}:{voice_bridge_port})[/dim]"
    )
    console.print("[dim]Press Ctrl+C to stop.[/dim]")

    origin_app.run(config)
    print_success("Origin stopped.")
