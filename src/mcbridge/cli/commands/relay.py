"""
Relay command: run the public relay.

Example:
    # Default ports (control 5000, voice bridge 5001, game 25565, voice 24454)
    mcbridge relay

    # Custom public game port and a private control token
    mcbridge relay --game-port 25566 --token my-secret
"""

from typing import Annotated

import typer

from mcbridge.cli.output import console, print_error, print_success
from mcbridge.models.enums import LogLevel
from mcbridge.relay import app as relay_app
from mcbridge.relay.config import config

app = typer.Typer(help="Run the public relay")


@app.callback(invoke_without_command=True)
def relay(
    bind_ip: Annotated[
        str,
        typer.Option("--bind-ip", "-b", help="Address to bind", envvar="MCBRIDGE_BIND_IP"),
    ] = config.BIND_IP,
    control_port: Annotated[
        int,
        typer.Option(
            "--control-port", help="Internal control/tunnel port", envvar="MCBRIDGE_CONTROL_PORT"
        ),
    ] = config.CONTROL_PORT,
    voice_bridge_port: Annotated[
        int,
        typer.Option(
            "--voice-bridge-port",
            help="Internal voice bridge port",
            envvar="MCBRIDGE_VOICE_BRIDGE_PORT",
        ),
    ] = config.VOICE_BRIDGE_PORT,
    game_port: Annotated[
        int,
        typer.Option("--game-port", help="Public game port (TCP)", envvar="MCBRIDGE_GAME_PORT"),
    ] = config.PUBLIC_GAME_PORT,
    voice_port: Annotated[
        int,
        typer.Option(
            "--voice-port", help="Public voice port (UDP)", envvar="MCBRIDGE_VOICE_PORT"
        ),
    ] = config.PUBLIC_VOICE_PORT,
    token: Annotated[
        str,
        typer.Option("--token", help="Control channel token", envvar="MCBRIDGE_TOKEN"),
    ] = config.CONTROL_TOKEN,
    footer: Annotated[
        str,
        typer.Option("--footer", help="Second line of the offline status message"),
    ] = config.OFFLINE_MOTD_FOOTER,
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
    Run the relay on the public host.

    Accepts public game and voice clients and forwards them to the origin
    agent once it connects.
    """
    config.BIND_IP = bind_ip
    config.CONTROL_PORT = control_port
    config.VOICE_BRIDGE_PORT = voice_bridge_port
    config.PUBLIC_GAME_PORT = game_port
    config.PUBLIC_VOICE_PORT = voice_port
    config.CONTROL_TOKEN = token
    config.OFFLINE_MOTD_FOOTER = footer
    config.LOG_LEVEL = log_level
    config.LOG_FILE = log_file

    console.print(
        f"[bold green]Relay[/bold green] "
        f"game [cyan]{bind_ip}:{game_port}[/cyan] "
        f"voice [cyan]{bind_ip}:{voice_port}/udp[/cyan] "
        f"[dim](control {control_port}, voice bridge {voice_bridge_port})[/dim]"
    )
    console.print("[dim]Press Ctrl+C to stop.[/dim]")

    try:
        relay_app.run(config)
    except OSError as e:
        print_error(f"Failed to start relay: {e}")
        raise typer.Exit(1)
    print_success("Relay stopped.")
