"""CLI entry point for prompt-compare.

Provides the ``prompt-compare`` command with subcommands for comparing
models from the terminal, running the proxy server, and managing the
model roster and configuration.

Typical usage::

    prompt-compare ask "Explain recursion"
    prompt-compare ask "Explain recursion" --model openai-default --interactive
    prompt-compare models add gpt-big --provider openai --model gpt-4o
    prompt-compare serve --port 3001
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler

from prompt_compare import __version__
from prompt_compare.config import CONFIG_PATH, Config, load_config, write_config
from prompt_compare.credentials import has_credential
from prompt_compare.display import (
    render_config_show,
    render_history,
    render_models,
    render_outcome,
    render_outcomes,
    render_providers,
    render_test_results,
)
from prompt_compare.dispatcher import Dispatcher
from prompt_compare.errors import UnknownProviderError
from prompt_compare.models import DispatchOutcome, ModelConfiguration
from prompt_compare.orchestrator import ComparisonSession
from prompt_compare.registry import known_providers

console = Console(stderr=True)

CHECK_PROMPT = "Say OK"


def _configure_logging(verbose: bool) -> None:
    """Route log records through Rich on stderr.

    Args:
        verbose: Show debug records instead of warnings only.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _select_models(config: Config, model_ids: tuple[str, ...]) -> list[ModelConfiguration]:
    """Resolve ``--model`` options to configurations.

    Explicitly selected models run even if they are inactive in the roster.

    Args:
        config: Loaded configuration.
        model_ids: Instance ids from the command line. Empty means every
            active model.

    Returns:
        Configurations to run, in the order given.

    Raises:
        click.UsageError: If an id is unknown.
    """
    if not model_ids:
        return config.active_models()
    selected: list[ModelConfiguration] = []
    for instance_id in dict.fromkeys(model_ids):
        try:
            cfg = config.get_model(instance_id)
        except KeyError as exc:
            raise click.UsageError(exc.args[0]) from exc
        selected.append(dataclasses.replace(cfg, active=True))
    return selected


def _parse_follow_up(line: str) -> tuple[str, str] | None:
    """Split ``instance: text`` input into its parts.

    Returns:
        Tuple of (instance_id, text), or None if the line has no colon.
    """
    instance_id, sep, text = line.partition(":")
    if not sep:
        return None
    return instance_id.strip(), text.strip()


async def _run_ask(
    config: Config,
    prompt: str,
    configurations: list[ModelConfiguration],
    *,
    output: str,
    interactive: bool,
) -> dict[str, DispatchOutcome]:
    """Run one round and, optionally, an interactive follow-up loop.

    Everything runs inside one event loop so the adapters' connection pools
    stay usable between turns.
    """
    # Per-model keys in the CLI come from the user's own config file.
    async with Dispatcher(config, allow_client_keys=True) as dispatcher:
        session = ComparisonSession(dispatcher)
        outcomes = await session.submit(prompt, configurations)

        if output == "json":
            results = {instance_id: o.to_dict() for instance_id, o in outcomes.items()}
            click.echo(json.dumps({"results": results}, indent=2))
        else:
            render_outcomes(outcomes, configurations)

        if not interactive:
            return outcomes

        by_id = {cfg.instance_id: cfg for cfg in configurations}
        console.print(
            "[dim]Reply with 'instance: text'. "
            "'history instance' shows a conversation; a blank line quits.[/dim]"
        )
        while True:
            line = click.prompt("", default="", show_default=False, prompt_suffix="> ").strip()
            if not line:
                break
            if line.startswith("history "):
                instance_id = line[len("history ") :].strip()
                render_history(instance_id, session.history(instance_id))
                continue

            parsed = _parse_follow_up(line)
            if parsed is None or parsed[0] not in by_id:
                console.print(f"[red]Expected one of: {', '.join(by_id)} followed by ':'[/red]")
                continue
            instance_id, text = parsed
            try:
                outcome = await session.follow_up(by_id[instance_id], text)
            except ValueError as exc:
                console.print(f"[red]{exc}[/red]")
                continue
            render_outcome(outcome, label=by_id[instance_id].label)
            outcomes[instance_id] = outcome

        return outcomes


@click.group()
@click.version_option(version=__version__, prog_name="prompt-compare")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Show debug logging.")
def main(verbose: bool) -> None:
    """Send one prompt to several LLM providers and compare the answers.

    Queries Anthropic, OpenAI and Gemini models concurrently and shows
    every reply side by side. Failures are reported per model and never
    stop the others.
    """
    _configure_logging(verbose)


@main.command()
@click.argument("prompt")
@click.option(
    "--model",
    "model_ids",
    multiple=True,
    help="Instance id to query (repeatable). Default: every active model.",
)
@click.option(
    "--output",
    type=click.Choice(["terminal", "json"], case_sensitive=False),
    default="terminal",
    help="Output format (default: terminal).",
)
@click.option(
    "--interactive",
    "-i",
    is_flag=True,
    default=False,
    help="Keep the session open for follow-up replies.",
)
def ask(prompt: str, model_ids: tuple[str, ...], output: str, interactive: bool) -> None:
    """Send PROMPT to the selected models.

    Args:
        prompt: The prompt text.
        model_ids: Instance ids to query.
        output: Output format choice.
        interactive: Enter the follow-up loop after the first round.
    """
    config = load_config()
    configurations = _select_models(config, model_ids)

    try:
        outcomes = asyncio.run(
            _run_ask(
                config,
                prompt,
                configurations,
                output=output.lower(),
                interactive=interactive,
            )
        )
    except ValueError as exc:
        console.print(f"[red bold]Error:[/red bold] {exc}")
        sys.exit(1)

    # Exit 1 only if nothing succeeded.
    if outcomes and not any(o.ok for o in outcomes.values()):
        sys.exit(1)


@main.command()
@click.option("--port", default=None, type=int, help="Port to bind to (default: config).")
@click.option("--host", default=None, help="Host to bind to (default: config).")
def serve(port: int | None, host: str | None) -> None:
    """Start the JSON proxy server."""
    from prompt_compare.server import run_server

    config = load_config()
    console.print(
        f"[dim]Serving on http://{host or config.host}:{port or config.port}[/dim]"
    )
    run_server(host=host, port=port, config=config)


@main.command()
def providers() -> None:
    """List supported providers and whether each has a key."""
    config = load_config()
    environ = config.credential_environ()
    render_providers({pid: has_credential(pid, environ=environ) for pid in known_providers()})


# ---------------------------------------------------------------------------
# Model roster
# ---------------------------------------------------------------------------


@main.group()
def models() -> None:
    """Manage the model roster."""


@models.command("list")
def models_list() -> None:
    """Show every configured model."""
    render_models(load_config().models.values())


@models.command("add")
@click.argument("instance_id")
@click.option(
    "--provider",
    "provider_id",
    required=True,
    type=click.Choice(known_providers()),
    help="Provider to call.",
)
@click.option("--model", default="", help="Provider model id (default: provider default).")
@click.option("--name", default="", help="Display name.")
@click.option("--api-key", default=None, help="Per-model API key stored in the config file.")
@click.option("--inactive", is_flag=True, default=False, help="Add without activating.")
def models_add(
    instance_id: str,
    provider_id: str,
    model: str,
    name: str,
    api_key: str | None,
    inactive: bool,
) -> None:
    """Add a model, or replace the one with INSTANCE_ID."""
    config = load_config()
    try:
        config.upsert_model(
            ModelConfiguration(
                instance_id=instance_id,
                provider_id=provider_id,
                model=model,
                active=not inactive,
                api_key=api_key or None,
                name=name,
            )
        )
    except UnknownProviderError as exc:
        console.print(f"[red bold]Error:[/red bold] {exc}")
        sys.exit(1)
    write_config(config)
    console.print(f"[dim]Saved {instance_id} to {CONFIG_PATH}[/dim]")


@models.command("remove")
@click.argument("instance_id")
def models_remove(instance_id: str) -> None:
    """Remove INSTANCE_ID from the roster."""
    config = load_config()
    try:
        config.remove_model(instance_id)
    except KeyError as exc:
        console.print(f"[red bold]Error:[/red bold] {exc.args[0]}")
        sys.exit(1)
    write_config(config)
    console.print(f"[dim]Removed {instance_id}[/dim]")


@models.command("toggle")
@click.argument("instance_id")
def models_toggle(instance_id: str) -> None:
    """Flip whether INSTANCE_ID takes part in comparisons."""
    config = load_config()
    try:
        current = config.get_model(instance_id)
    except KeyError as exc:
        console.print(f"[red bold]Error:[/red bold] {exc.args[0]}")
        sys.exit(1)
    updated = config.set_active(instance_id, not current.active)
    write_config(config)
    state = "active" if updated.active else "inactive"
    console.print(f"[dim]{instance_id} is now {state}[/dim]")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@main.group()
def config() -> None:
    """Manage configuration."""


@config.command()
def path() -> None:
    """Print the configuration file path."""
    click.echo(CONFIG_PATH)


@config.command("show")
def config_show() -> None:
    """Display effective configuration."""
    render_config_show(load_config())


async def _run_config_test(
    cfg: Config, configurations: list[ModelConfiguration]
) -> dict[str, DispatchOutcome]:
    """Send a minimal prompt to each configuration."""
    async with Dispatcher(cfg, allow_client_keys=True) as dispatcher:
        return await dispatcher.run_round(CHECK_PROMPT, configurations)


@config.command()
def test() -> None:
    """Check every active model with a minimal prompt.

    Reports the resolved model, latency, and errors per model. Exits 1 if
    any model failed.
    """
    cfg = load_config()
    configurations = cfg.active_models()
    if not configurations:
        console.print("[red bold]Error:[/red bold] No active models configured.")
        sys.exit(1)

    console.print(f"[dim]Testing {len(configurations)} model(s)...[/dim]")
    outcomes = asyncio.run(_run_config_test(cfg, configurations))
    render_test_results(outcomes, configurations)

    if any(not o.ok for o in outcomes.values()):
        sys.exit(1)


if __name__ == "__main__":
    main()
