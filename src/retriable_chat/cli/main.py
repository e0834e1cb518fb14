"""CLI entrypoints for retriable-chat."""

from __future__ import annotations

from pathlib import Path

import typer

from retriable_chat.app import (
    ask,
    compute_budget,
    known_models,
    make_question,
    resolve_config,
)
from retriable_chat.config import AppConfig
from retriable_chat.llm.base import ChatClientError
from retriable_chat.util.logging import configure_logging

app = typer.Typer(help="Ask an OpenAI chat model a question, retrying on rate limits.")


@app.callback()
def main(
    ctx: typer.Context,
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Logging level (e.g., DEBUG, INFO, WARNING). Overrides the config file.",
    ),
) -> None:
    """Configure CLI-level options."""

    ctx.obj = {"log_level": log_level}


@app.command("ask")
def ask_command(
    ctx: typer.Context,
    question: str = typer.Argument(..., help="Question to ask the model."),
    system: str | None = typer.Option(None, "--system", "-s", help="System prompt."),
    model: str | None = typer.Option(None, "--model", "-m", help="Model identifier."),
    temperature: float | None = typer.Option(None, "--temperature", "-t"),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Request timeout in seconds; also bounds retries.",
    ),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file."),
) -> None:
    """Ask a question and print the answer."""

    try:
        config = resolve_config(
            config_path, model=model, temperature=temperature, timeout_s=timeout
        )
        _configure_logging(ctx, config)
        answer = ask(make_question(config, question, system=system), config)
    except (ChatClientError, ValueError) as exc:
        typer.echo(f"Error: {_describe(exc)}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(answer)


@app.command("budget")
def budget_command(
    ctx: typer.Context,
    question: str = typer.Argument(..., help="Question to measure."),
    system: str | None = typer.Option(None, "--system", "-s", help="System prompt."),
    model: str | None = typer.Option(None, "--model", "-m", help="Model identifier."),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file."),
) -> None:
    """Print the max_tokens a request would carry, without calling the API."""

    try:
        config = resolve_config(config_path, model=model)
        _configure_logging(ctx, config)
        question_obj = make_question(config, question, system=system)
        budget = compute_budget(question_obj)
    except (ChatClientError, ValueError) as exc:
        typer.echo(f"Error: {_describe(exc)}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"{question_obj.model}: {budget} tokens available for the response.")


@app.command("models")
def models_command() -> None:
    """List known models and their context windows."""

    for spec in known_models():
        typer.echo(f"{spec.name}\t{spec.context_window}\t{spec.encoding}")


def _configure_logging(ctx: typer.Context, config: AppConfig) -> None:
    cli_level = (ctx.obj or {}).get("log_level")
    configure_logging(cli_level or config.log_level)


def _describe(exc: BaseException) -> str:
    cause = exc.__cause__
    if cause is None or str(cause) in str(exc):
        return str(exc)
    return f"{exc}: {cause}"
