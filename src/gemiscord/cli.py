"""Command line interface for the Gemini Discord bot."""

import asyncio
import sys
from typing import Optional

import click

from .app import QuotaServices, build_quota_services
from .config import ConfigManager
from .db import create_tables, dispose_engine, get_engine
from .exceptions import ConfigurationError, GemiscordError
from .repositories import SqlCounterStore
from .services import QuotaHealth
from .utils.logging import setup_logging


def _load_config() -> ConfigManager:
    try:
        return ConfigManager()
    except ConfigurationError as e:
        click.echo(f"❌ Configuration error: {e}", err=True)
        sys.exit(1)


def _health_icon(health: QuotaHealth) -> str:
    return {
        QuotaHealth.HEALTHY: "✅",
        QuotaHealth.LIMITED: "⏳",
        QuotaHealth.UNKNOWN: "❓",
    }[health]


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Gemini Discord Bot CLI."""
    ctx.ensure_object(dict)
    config = _load_config()
    settings = config.settings
    setup_logging(settings.log_level, settings.log_format, settings.log_file)
    ctx.obj["config"] = config


@cli.command()
@click.option(
    "--no-database",
    is_flag=True,
    help="Keep quota counters in memory instead of the database.",
)
@click.pass_context
def run(ctx: click.Context, no_database: bool) -> None:
    """Run the Discord bot."""
    from .main import main

    config: ConfigManager = ctx.obj["config"]
    summary = config.summary()

    click.echo("🤖 Starting Gemini Discord Bot...")
    click.echo(f"🧠 Models: {', '.join(summary['models'])}")
    click.echo(f"📊 Database: {'memory' if no_database else summary['database']}")
    click.echo(f"✂️ Response strategy: {summary['response_strategy']}")

    try:
        asyncio.run(main(config, use_database=not no_database))
    except KeyboardInterrupt:
        click.echo("\n🛑 Bot stopped by user")
    except ConfigurationError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Check configuration and required secrets."""
    click.echo("🔍 Checking configuration...")

    config: ConfigManager = ctx.obj["config"]
    settings = config.settings
    issues: list[str] = []

    if not settings.discord.token.get_secret_value():
        issues.append("❌ GEMISCORD_DISCORD__TOKEN not set")
    else:
        click.echo("✅ Discord token configured")

    if not settings.gemini.api_key.get_secret_value():
        issues.append("❌ GEMISCORD_GEMINI__API_KEY not set")
    else:
        click.echo("✅ Gemini API key configured")

    if not settings.brave_search.api_key.get_secret_value():
        click.echo("⚠️ Brave Search API key not set; web search will be disabled")
    else:
        click.echo("✅ Brave Search API key configured")

    for name in config.models_by_priority():
        limits = settings.gemini.models[name]
        click.echo(
            f"🧠 {name}: rpm={limits.rpm} tpm={limits.tpm} rpd={limits.rpd} "
            f"priority={limits.priority}"
        )
    click.echo(f"🛡️ Safety buffer: {settings.rate_limiting.safety_buffer}")

    if issues:
        click.echo("\n❌ Configuration issues found:")
        for issue in issues:
            click.echo(f"   {issue}")
        sys.exit(1)

    click.echo("\n✅ Configuration looks good!")


async def _with_quota_services(config: ConfigManager, action) -> None:
    try:
        await action(await build_quota_services(config))
    finally:
        await dispose_engine()


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show model capacity and the monthly search budget."""
    config: ConfigManager = ctx.obj["config"]

    async def _status(services: QuotaServices) -> None:
        click.echo("🧠 Model capacity")
        for model_status in await services.tracker.status():
            icon = _health_icon(model_status.health)
            if model_status.snapshot is None:
                click.echo(
                    f"  {icon} {model_status.model}: unknown ({model_status.error})"
                )
                continue
            snapshot = model_status.snapshot
            metrics = "  ".join(
                f"{name}={usage.current}/{usage.limit}"
                for name, usage in snapshot.metrics.items()
            )
            click.echo(
                f"  {icon} {model_status.model}: {snapshot.percentage:.1f}% used  {metrics}"
            )

        search = await services.search_gate.status()
        icon = _health_icon(search.health)
        if search.budget is None:
            click.echo(f"🔍 Search: {icon} unknown ({search.error})")
        else:
            budget = search.budget
            click.echo(
                f"🔍 Search ({budget.month}): {icon} {budget.used}/{budget.free_quota} used, "
                f"{budget.remaining} remaining, resets {budget.resets_at:%Y-%m-%d}"
            )

    try:
        asyncio.run(_with_quota_services(config, _status))
    except GemiscordError as e:
        click.echo(f"❌ Could not read status: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--model", default=None, help="Only reset this model.")
@click.option("--search", is_flag=True, help="Also reset the monthly search counter.")
@click.pass_context
def reset_counters(ctx: click.Context, model: Optional[str], search: bool) -> None:
    """Reset the current-window rate limit counters."""
    config: ConfigManager = ctx.obj["config"]

    async def _reset(services: QuotaServices) -> None:
        for name in await services.tracker.reset(model):
            click.echo(f"🔄 Reset {name}")
        if search:
            await services.search_gate.reset()
            click.echo("🔄 Reset monthly search counter")

    try:
        asyncio.run(_with_quota_services(config, _reset))
    except GemiscordError as e:
        click.echo(f"❌ Reset failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Initialize the database schema."""
    config: ConfigManager = ctx.obj["config"]

    async def _init_db() -> None:
        try:
            await create_tables(get_engine(config.settings.database))
        finally:
            await dispose_engine()

    click.echo("🗄️ Initializing database...")
    try:
        asyncio.run(_init_db())
    except Exception as e:
        click.echo(f"❌ Database initialization failed: {e}", err=True)
        sys.exit(1)
    click.echo("✅ Database initialized successfully!")


@cli.command()
@click.pass_context
def cleanup(ctx: click.Context) -> None:
    """Delete expired quota counters from the database."""
    config: ConfigManager = ctx.obj["config"]

    async def _cleanup(services: QuotaServices) -> None:
        assert isinstance(services.store, SqlCounterStore)
        count = await services.store.cleanup_expired()
        click.echo(f"🧹 Removed {count} expired counters")

    try:
        asyncio.run(_with_quota_services(config, _cleanup))
    except GemiscordError as e:
        click.echo(f"❌ Cleanup failed: {e}", err=True)
        sys.exit(1)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
