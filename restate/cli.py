"""Typer CLI entrypoint."""

from __future__ import annotations

import json
import logging
from contextlib import closing
from pathlib import Path

import typer

from restate.core.config_loader import CONFIG_ENV
from restate.core.errors import RestateError
from restate.core.service import GatewayService
from restate.server import create_app

app = typer.Typer(help="REST gateway for Meross lights, plugs, thermostats and radiator valves")


def _build_service(config: Path | None) -> GatewayService:
    service = GatewayService(config)
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None,
        "--config",
        envvar=CONFIG_ENV,
        help="Device configuration file",
    ),
) -> None:
    ctx.obj = config


@app.command("families")
def list_families(ctx: typer.Context) -> None:
    """List device families that have at least one configured device."""
    try:
        with closing(_build_service(ctx.obj)) as service:
            for family in service.list_families():
                typer.echo(f"{family.route}: {family.name}")
    except RestateError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices(ctx: typer.Context) -> None:
    """List configured devices and the codes each one accepts."""
    try:
        with closing(_build_service(ctx.obj)) as service:
            for family in service.list_families():
                typer.echo(f"{family.route}:")
                for name in service.device_names(family.route):
                    codes = ", ".join(service.device_codes(family.route, name))
                    typer.echo(f"  {name}: {codes}")
    except RestateError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("invoke")
def invoke(
    ctx: typer.Context,
    family: str,
    code: str,
    value: str | None = typer.Argument(None),
    device: list[str] = typer.Option([], "--device", help="Device name, repeatable"),
) -> None:
    """Invoke CODE on one or more devices of FAMILY.

    Without VALUE, toggle infers the new state from the devices' current state.
    """
    try:
        with closing(_build_service(ctx.obj)) as service:
            result = service.invoke(family, device, code, value)
        for status in result.succeeded:
            typer.echo(f"{status.name}: {json.dumps(status.status)}")
        for name in result.failed:
            typer.echo(f"Warning: device '{name}' did not respond", err=True)
    except RestateError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("serve")
def serve(
    ctx: typer.Context,
    host: str = typer.Option("0.0.0.0", "--host"),
    port: int = typer.Option(8080, "--port"),
    log_level: str = typer.Option("INFO", "--log-level"),
) -> None:
    """Serve the configured devices over HTTP."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        service = _build_service(ctx.obj)
    except RestateError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    with closing(service):
        create_app(service).run(host=host, port=port)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
