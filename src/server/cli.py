"""Click CLI for running and inspecting the WhatsApp responder."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict
from pathlib import Path

import click
import uvicorn
from pydantic import ValidationError

from src.audit.logger import read_events, summarize
from src.config import ConfigError, Settings
from src.models import IntentRule, TemplateCatalog
from src.webhook.classifier import KeywordClassifier
from src.webhook.templates import load_rules, load_templates


@click.group()
@click.option(
    "--templates", envvar="TEMPLATES_PATH", default="config/templates.json",
    help="Path to templates JSON.",
)
@click.option(
    "--rules", envvar="INTENT_RULES_PATH", default="config/intent-rules.json",
    help="Path to intent rules JSON.",
)
@click.pass_context
def cli(ctx: click.Context, templates: str, rules: str) -> None:
    """WhatsApp keyword auto-responder."""
    ctx.ensure_object(dict)
    ctx.obj["templates"] = templates
    ctx.obj["rules"] = rules


def _load(ctx: click.Context) -> tuple[TemplateCatalog, list[IntentRule]]:
    try:
        catalog = load_templates(ctx.obj["templates"])
        rules = load_rules(ctx.obj["rules"], catalog)
    except ConfigError as e:
        raise click.ClickException(f"Configuration error: {e}") from e
    return catalog, rules


@cli.command()
@click.option("--reload", is_flag=True, help="Reload on code changes (development).")
@click.pass_context
def serve(ctx: click.Context, reload: bool) -> None:
    """Run the webhook server with settings from the environment."""
    # The app factory runs inside uvicorn and only sees the environment
    os.environ["TEMPLATES_PATH"] = ctx.obj["templates"]
    os.environ["INTENT_RULES_PATH"] = ctx.obj["rules"]
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        raise click.ClickException(f"Configuration error: {e}") from e
    _load(ctx)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info(
        "Starting responder for phone number id %s on %s:%d",
        settings.phone_number_id, settings.host, settings.port,
    )
    uvicorn.run(
        "src.server.app:create_app_from_env",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=reload,
    )


@cli.command()
@click.argument("text")
@click.pass_context
def classify(ctx: click.Context, text: str) -> None:
    """Show which intent and reply TEXT would get."""
    catalog, rules = _load(ctx)
    result = KeywordClassifier(rules, catalog).classify(text)
    click.echo(json.dumps(asdict(result), indent=2, ensure_ascii=False))


@cli.command("check-config")
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Validate the templates and intent rules files."""
    catalog, rules = _load(ctx)
    click.echo(f"Templates OK: {len(catalog.intents)} intents, fallback '{catalog.fallback_intent}'")
    click.echo(f"Rules OK: {len(rules)} rules")


@cli.command("audit-summary")
@click.argument("log_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def audit_summary(log_path: Path) -> None:
    """Count delivery outcomes recorded in the AUDIT_LOG_PATH file."""
    try:
        events = read_events(log_path)
    except ValidationError as e:
        raise click.ClickException(f"Malformed delivery log {log_path}: {e}") from e
    counts = summarize(events)
    click.echo(json.dumps({t.value: n for t, n in counts.items()}, indent=2))
