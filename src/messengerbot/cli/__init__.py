from __future__ import annotations

import importlib
from pathlib import Path
from typing import NoReturn

import typer

from .. import __version__
from ..bot import MessengerBot
from ..config import (
    ConfigError,
    load_config,
    load_config_file,
    server_address,
)
from ..logging import setup_logging
from .sessions import sessions_clear, sessions_show


def _print_version_and_exit() -> None:
    typer.echo(__version__)
    raise typer.Exit()


def _version_callback(value: bool) -> None:
    if value:
        _print_version_and_exit()


def _fail(message: str) -> NoReturn:
    typer.echo(f"error: {message}", err=True)
    raise typer.Exit(code=1)


def _mask(secret: str) -> str:
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}…{secret[-2:]}"


def load_bot(target: str) -> MessengerBot:
    """Import ``module:attribute`` and return the bot it names.

    The attribute may be a ``MessengerBot`` or a zero-argument factory
    returning one.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Invalid app {target!r}; expected `module:attribute`.")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Failed to import {module_name!r}: {e}") from e
    try:
        obj = getattr(module, attr)
    except AttributeError:
        raise ConfigError(f"Module {module_name!r} has no attribute {attr!r}.") from None
    if not isinstance(obj, MessengerBot) and callable(obj):
        obj = obj()
    if not isinstance(obj, MessengerBot):
        raise ConfigError(f"{target!r} is not a MessengerBot.")
    return obj


def serve(
    app_target: str = typer.Argument(
        ..., metavar="APP", help="Bot to serve, as `module:attribute`."
    ),
    config: Path | None = typer.Option(
        None, "--config", help="Path to messengerbot.toml."
    ),
    host: str | None = typer.Option(None, "--host", help="Override the bind host."),
    port: int | None = typer.Option(None, "--port", help="Override the bind port."),
    debug: bool = typer.Option(
        False,
        "--debug/--no-debug",
        help="Log Send API requests and dispatch decisions.",
    ),
) -> None:
    """Serve a bot's webhook endpoints."""
    setup_logging(debug=debug)
    try:
        raw, config_path = load_config_file(config)
        default_host, default_port = server_address(raw, config_path)
        bot = load_bot(app_target)
    except ConfigError as e:
        _fail(str(e))
    bot.start(port=port or default_port, host=host or default_host)


def check(
    config: Path | None = typer.Option(
        None, "--config", help="Path to messengerbot.toml."
    ),
) -> None:
    """Validate configuration and print a redacted summary."""
    try:
        cfg = load_config(config)
    except ConfigError as e:
        _fail(str(e))
    typer.echo(f"access_token = {_mask(cfg.access_token)}")
    typer.echo(f"verify_token = {_mask(cfg.verify_token)}")
    typer.echo(f"app_secret = {_mask(cfg.app_secret)}")
    typer.echo(f"api_version = {cfg.api_version}")
    typer.echo(f"listen = {cfg.host}:{cfg.port}")
    if cfg.session_kind == "file":
        typer.echo(f"sessions = file ({cfg.session_path})")
    else:
        typer.echo("sessions = memory")


def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """messengerbot CLI."""


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="Webhook bot framework for Facebook Messenger.",
    )
    sessions_app = typer.Typer(help="Inspect a file-backed session store.")
    sessions_app.command(name="show")(sessions_show)
    sessions_app.command(name="clear")(sessions_clear)
    app.command(name="serve")(serve)
    app.command(name="check")(check)
    app.add_typer(sessions_app, name="sessions")
    app.callback()(app_main)
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()
