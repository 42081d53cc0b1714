"""
CLI interface for 5 Lines Story.

Runs the API and gives operators read access to usage and history.
"""

import sys
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from five_lines_story.config.loader import AppConfig, get_config
from five_lines_story.core.accounting import UsageAccountant
from five_lines_story.core.pricing import DEFAULT_MODEL, calculate_cost
from five_lines_story.core.prompts import estimate_tokens, get_prompt
from five_lines_story.logging_config import configure_logging
from five_lines_story.storage.models import STORY_LINES, Story
from five_lines_story.storage.repository import (
    HISTORY_LIMIT,
    ConversationStore,
    UsageLedger,
    initialize_schema,
)

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to YAML configuration file (defaults to $FIVE_LINES_CONFIG)"
)


def _load(config_path: Optional[str]) -> AppConfig:
    """Resolve configuration, exiting with a readable error on failure."""
    load_dotenv()
    try:
        config = get_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Configuration error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    configure_logging(config.log_level)
    return config


def _format_currency(amount: float) -> str:
    """Format a USD amount with enough precision for per-call costs."""
    return f"${amount:,.6f}"


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """5 Lines Story CLI."""
    if ctx.invoked_subcommand is None:
        console.print("5 Lines Story - Use --help to see available commands")


@app.command()
def init(config_path: Optional[str] = ConfigOption):
    """Initialize the database."""
    config = _load(config_path)
    try:
        initialize_schema(config.database_path)
        console.print(f"[green]✓[/] Database initialized at {config.database_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def serve(
    config_path: Optional[str] = ConfigOption,
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on")
):
    """Run the HTTP API."""
    import uvicorn

    from five_lines_story.api.app import create_app

    config = _load(config_path)
    uvicorn.run(create_app(config), host=host, port=port, log_level=config.log_level.lower())


@app.command()
def usage(
    user_id: str = typer.Argument(..., help="User to report on"),
    recent: int = typer.Option(5, "--recent", min=0, help="Number of recent calls to list"),
    config_path: Optional[str] = ConfigOption
):
    """Show a user's usage for the current month."""
    config = _load(config_path)
    initialize_schema(config.database_path)
    accountant = UsageAccountant(
        UsageLedger(config.database_path, config.plan),
        pricing=config.pricing,
        enforce_limits=config.enforce_quota
    )
    summary = accountant.summary(user_id)

    table = Table(title=f"Usage for {user_id}")
    table.add_column("Metric")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_row("Stories", f"{summary.stories_used:,}", f"{summary.stories_limit:,}")
    table.add_row("Tokens", f"{summary.tokens_used:,}", f"{summary.tokens_limit:,}")
    table.add_row("Cost (USD)", _format_currency(summary.cost_usd), "-")
    console.print(table)
    console.print(f"Plan: {summary.plan_type}  Resets: {summary.limit_reset_date:%Y-%m-%d}")

    events = accountant.ledger.fetch_recent_events(user_id=user_id, limit=recent)
    if events:
        calls = Table(title="Recent calls")
        calls.add_column("When")
        calls.add_column("Kind")
        calls.add_column("Model")
        calls.add_column("Tokens", justify="right")
        calls.add_column("Cost", justify="right")
        for event in events:
            calls.add_row(
                f"{event.created_at:%Y-%m-%d %H:%M}",
                event.prompt_type,
                event.model,
                f"{event.tokens_used:,}",
                _format_currency(event.cost_usd)
            )
        console.print(calls)


@app.command()
def history(
    user_id: str = typer.Argument(..., help="User whose stories to list"),
    limit: int = typer.Option(
        10, "--limit", "-n", min=1, max=HISTORY_LIMIT, help="Number of stories to show"
    ),
    config_path: Optional[str] = ConfigOption
):
    """List a user's most recent stories."""
    config = _load(config_path)
    initialize_schema(config.database_path)
    rows = ConversationStore(config.database_path).list_recent(user_id, limit)

    if not rows:
        console.print(f"[dim]No stories found for {user_id}.[/]")
        return

    for row in rows:
        console.print(
            f"\n[bold]{row.title or '(untitled)'}[/bold] "
            f"[dim]{row.created_at:%Y-%m-%d %H:%M} · {row.prompt_type} · "
            f"{row.tokens_used} tokens[/]"
        )
        story = Story.from_mapping(row.ai_response)
        for number in range(1, len(STORY_LINES) + 1):
            console.print(f"  {number}. {story.line(number)}")


@app.command()
def prompt(kind: str = typer.Argument(..., help="suggest_paths, generate_story or refine_line")):
    """Print the system prompt used for an exchange kind."""
    try:
        console.print(get_prompt(kind), markup=False, highlight=False)
        console.print(f"\n[dim]Estimated tokens per call: {estimate_tokens(kind)}[/]")
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def cost(
    input_tokens: int = typer.Argument(..., min=0),
    output_tokens: int = typer.Argument(..., min=0),
    model: str = typer.Option(DEFAULT_MODEL, "--model", "-m", help="Model to price")
):
    """Price a single call."""
    try:
        amount = calculate_cost(input_tokens, output_tokens, model)
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"{model}: {input_tokens:,} in / {output_tokens:,} out = {_format_currency(amount)}")


if __name__ == "__main__":
    app()
