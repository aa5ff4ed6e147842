"""Click CLI for running and debugging the auto-reply bot."""

from __future__ import annotations

import json
import sys
from typing import IO

import click

from src.config import MissingConfigError, Settings, load_settings
from src.logging_config import configure_logging
from src.webhook.eligibility import evaluate
from src.webhook.parser import parse_event


def _load_or_exit() -> Settings:
    try:
        return load_settings()
    except MissingConfigError as exc:
        click.echo("Missing required environment variables:", err=True)
        for name in exc.missing:
            click.echo(f"  - {name}", err=True)
        click.echo(
            "\nPlease set these variables in your .env file or environment.", err=True,
        )
        sys.exit(1)
    except ValueError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def _redact(value: str | None) -> str | None:
    if not value:
        return value
    return f"{value[:4]}***" if len(value) > 12 else "***"


@click.group()
def cli() -> None:
    """Instagram DM auto-reply bot."""


@cli.command()
@click.option("--host", default=None, help="Bind address (default: HOST or 0.0.0.0).")
@click.option("--port", type=int, default=None, help="Port (default: PORT or 3000).")
def serve(host: str | None, port: int | None) -> None:
    """Run the webhook server."""
    import uvicorn

    settings = _load_or_exit()
    configure_logging(settings.log_level)
    uvicorn.run(
        "src.server.app:create_app_from_env",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )


@cli.command("check-config")
def check_config() -> None:
    """Validate the environment and print a redacted summary."""
    settings = _load_or_exit()
    summary = settings.model_dump()
    for key in ("instagram_access_token", "verify_token", "ai_api_key", "app_secret"):
        summary[key] = _redact(summary[key])
    click.echo(json.dumps(summary, indent=2))


@cli.command()
@click.argument("payload_file", type=click.File("r"))
@click.option("--self-id", default="", help="Bot account id used for echo filtering.")
def parse(payload_file: IO[str], self_id: str) -> None:
    """Parse a webhook payload file and show the eligibility decision."""
    try:
        raw = json.load(payload_file)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Payload is not valid JSON: {exc}") from exc

    result = parse_event(raw)
    decision = evaluate(result.message, self_id)
    output = {
        "parse": json.loads(result.model_dump_json()),
        "eligibility": json.loads(decision.model_dump_json()),
    }
    click.echo(json.dumps(output, indent=2))


if __name__ == "__main__":
    cli()
