"""
sermas-app run / app - Talk to the platform from the command line.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import typer
from pydantic import BaseModel

from sermas_app.app import SermasApp
from sermas_app.config import SermasConfig
from sermas_app.emitter import SermasChannel


def build_config(
    base_url: Optional[str] = None,
    app_id: Optional[str] = None,
) -> SermasConfig:
    """Load settings from the environment, applying command line overrides."""
    overrides: Dict[str, Any] = {}
    if base_url:
        overrides["sermas_base_url"] = base_url
    if app_id:
        overrides["sermas_appid"] = app_id
    return SermasConfig(**overrides)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _to_json(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True, exclude_none=True, mode="json")
    return json.dumps(value, indent=2, default=str)


def attach_echo_handlers(sermas: SermasApp) -> None:
    """Print every event of the local bus."""
    for channel in SermasChannel:
        def echo(event: Any, channel: SermasChannel = channel) -> None:
            if event is None:
                typer.echo(f"[{channel.value}]")
            else:
                typer.echo(f"[{channel.value}] {_to_json(event)}")

        sermas.on(channel, echo)


def run_app(
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url", "-u",
        help="Platform base URL. Defaults to SERMAS_BASE_URL.",
    ),
    app_id: Optional[str] = typer.Option(
        None,
        "--app-id", "-a",
        help="Application id. Defaults to SERMAS_APPID.",
    ),
    log_level: str = typer.Option(
        "INFO",
        "--log-level", "-l",
        help="Logging level.",
    ),
):
    """
    Connect to the platform and print forwarded events.

    Bootstraps credentials (retrying until they are accepted), registers the
    event subscriptions and prints every event of the local bus until
    interrupted with Ctrl+C.
    """
    configure_logging(log_level)
    sermas = SermasApp(build_config(base_url, app_id))
    attach_echo_handlers(sermas)

    typer.echo(f"Connecting to {sermas.get_base_url()} as app {sermas.app_id}")
    sermas.run()


def show_app(
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url", "-u",
        help="Platform base URL. Defaults to SERMAS_BASE_URL.",
    ),
    app_id: Optional[str] = typer.Option(
        None,
        "--app-id", "-a",
        help="Application id. Defaults to SERMAS_APPID.",
    ),
    timeout: float = typer.Option(
        10.0,
        "--timeout", "-t",
        help="Seconds to wait for credentials before giving up.",
    ),
    log_level: str = typer.Option(
        "WARNING",
        "--log-level", "-l",
        help="Logging level.",
    ),
):
    """
    Fetch the application descriptor and print it as JSON.
    """
    configure_logging(log_level)
    config = build_config(base_url, app_id)
    config.sermas_prefetch_app = False

    async def _fetch() -> Optional[Any]:
        sermas = SermasApp(config)
        sermas.start()
        try:
            if not await sermas.wait_ready(timeout=timeout):
                typer.echo(f"❌ No credentials after {timeout:.0f}s", err=True)
                return None
            return await sermas.get_app()
        finally:
            await sermas.stop()

    descriptor = asyncio.run(_fetch())
    if descriptor is None:
        typer.echo(f"❌ Could not load app {config.app_id}", err=True)
        raise typer.Exit(1)

    typer.echo(_to_json(descriptor))
