"""Command line entry point for tokenkv."""

import asyncio
from typing import Any

import click

from tokenkv import __version__
from tokenkv.config import Config
from tokenkv.exceptions import TokenKVError


def load_config(config_path: str | None) -> Config:
    """Load config from a file, or from the environment when no file is given."""
    if config_path:
        return Config.from_file(config_path)
    return Config.from_env()


def apply_overrides(config: Config, **overrides: Any) -> Config:
    """Return a copy of config with the non-None CLI overrides applied."""
    backend = {k: v for k, v in {
        "backend": overrides.get("backend"),
        "redis_url": overrides.get("redis_url"),
    }.items() if v is not None}
    server = {k: v for k, v in {
        "host": overrides.get("host"),
        "http_port": overrides.get("http_port"),
        "rpc_port": overrides.get("rpc_port"),
    }.items() if v is not None}
    if overrides.get("no_http"):
        server["enable_http"] = False
    if overrides.get("no_rpc"):
        server["enable_rpc"] = False
    logging_ = {}
    if overrides.get("log_level"):
        logging_["level"] = overrides["log_level"].upper()

    data = config.model_dump()
    data["backend"].update(backend)
    data["server"].update(server)
    data["logging"].update(logging_)
    return Config.from_dict(data)


@click.group()
@click.version_option(version=__version__, prog_name="tokenkv")
def main() -> None:
    """tokenkv - token-namespaced key-value store over Redis.

    \b
    Examples:
        tokenkv serve                      Serve REST on :3000 and JSON-RPC on :50051
        tokenkv serve --config kv.yaml     Load settings from a file
        tokenkv check                      Ping the backend
    """


@main.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="YAML or JSON config file (default: environment variables)")
@click.option("--host", default=None, help="Host to bind to")
@click.option("--http-port", type=int, default=None, help="REST port (default: 3000)")
@click.option("--rpc-port", type=int, default=None, help="JSON-RPC port (default: 50051)")
@click.option("--redis-url", default=None, help="Redis connection URL")
@click.option("--backend", default=None, help="Backend name: 'redis' or 'memory'")
@click.option("--no-http", is_flag=True, help="Disable the REST adapter")
@click.option("--no-rpc", is_flag=True, help="Disable the JSON-RPC adapter")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level",
)
def serve(config_path: str | None, **overrides: Any) -> None:
    """Run the protocol adapters."""
    from tokenkv.service import run

    try:
        config = apply_overrides(load_config(config_path), **overrides)
        run(config)
    except TokenKVError as e:
        raise click.ClickException(str(e)) from e


@main.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="YAML or JSON config file (default: environment variables)")
@click.option("--redis-url", default=None, help="Redis connection URL")
def check(config_path: str | None, redis_url: str | None) -> None:
    """Ping the backend; exit status 1 when unreachable."""
    from tokenkv.service import check as check_backend

    try:
        config = apply_overrides(load_config(config_path), redis_url=redis_url)
        healthy = asyncio.run(check_backend(config))
    except TokenKVError as e:
        raise click.ClickException(str(e)) from e

    if healthy:
        click.echo("healthy")
    else:
        click.echo("unhealthy", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
