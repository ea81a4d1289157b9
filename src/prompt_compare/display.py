"""Terminal display — Rich-based formatting for comparison output.

Renders dispatch outcomes side by side as colour-coded panels, plus the
tables used by the ``models``, ``providers`` and ``config`` commands.

Typical usage::

    from prompt_compare.display import render_outcomes

    render_outcomes(outcomes, configurations)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from prompt_compare.config import Config
from prompt_compare.credentials import mask_credential
from prompt_compare.models import ConversationTurn, DispatchOutcome, ModelConfiguration
from prompt_compare.registry import PROVIDERS

console = Console()

# Provider id → color mapping for visual distinction.
PROVIDER_COLORS: dict[str, str] = {
    "anthropic": "magenta",
    "openai": "green",
    "gemini": "cyan",
}

DEFAULT_COLOR = "white"

# Failure kind → short label shown in the panel title.
FAILURE_LABELS: dict[str, str] = {
    "configuration": "configuration",
    "unreachable": "unreachable",
    "rejected": "rejected",
    "empty": "no text",
    "internal": "internal error",
}


def _get_color(provider_id: str) -> str:
    """Get the display color for a provider.

    Args:
        provider_id: Provider identifier (e.g. "openai").

    Returns:
        Rich color string for the provider.
    """
    return PROVIDER_COLORS.get(provider_id.lower(), DEFAULT_COLOR)


def _format_timing(outcome: DispatchOutcome) -> str:
    """Format model and latency for a panel subtitle.

    Returns:
        String like "gpt-4o-mini · 2.1s", or just the model.
    """
    parts: list[str] = []
    if outcome.model:
        parts.append(outcome.model)
    if outcome.latency_ms is not None:
        parts.append(f"{outcome.latency_ms / 1000:.1f}s")
    return " · ".join(parts)


def render_outcome(outcome: DispatchOutcome, label: str | None = None) -> None:
    """Render a single outcome as a colored panel.

    Args:
        outcome: The outcome to display.
        label: Panel title. Defaults to the instance id.
    """
    color = _get_color(outcome.provider_id)
    title = label or outcome.instance_id

    if outcome.ok:
        panel = Panel(
            Markdown(outcome.content or ""),
            title=f"[{color} bold]{title}[/{color} bold]",
            border_style=color,
            padding=(0, 1),
        )
    else:
        kind = FAILURE_LABELS.get(outcome.error_kind or "", outcome.error_kind or "error")
        panel = Panel(
            f"[red]{outcome.error}[/red]",
            title=f"[{color} bold]{title}[/{color} bold] [red]({kind})[/red]",
            border_style="red",
            padding=(0, 1),
        )

    subtitle = _format_timing(outcome)
    if subtitle:
        panel.subtitle = subtitle

    console.print(panel)
    console.print()


def render_outcomes(
    outcomes: Mapping[str, DispatchOutcome],
    configurations: Iterable[ModelConfiguration],
) -> None:
    """Render a round's outcomes in configuration order.

    Args:
        outcomes: Result of a dispatch round, keyed by instance id.
        configurations: Configurations the round ran with.
    """
    console.print()
    for cfg in configurations:
        outcome = outcomes.get(cfg.instance_id)
        if outcome is not None:
            render_outcome(outcome, label=cfg.label)

    failed = sum(1 for o in outcomes.values() if not o.ok)
    if failed:
        console.print(f"[dim]{len(outcomes) - failed} ok, {failed} failed[/dim]")


def render_history(instance_id: str, turns: list[ConversationTurn]) -> None:
    """Render one instance's conversation.

    Args:
        instance_id: Model instance the history belongs to.
        turns: Conversation turns in order.
    """
    console.rule(f"[bold]{instance_id}[/bold]")
    if not turns:
        console.print("[dim]No conversation yet.[/dim]")
        return
    for turn in turns:
        if turn.speaker == "user":
            console.print(f"[bold]User:[/bold] {turn.text}")
        else:
            console.print(f"[dim]Assistant:[/dim] {turn.text}")
    console.print()


def render_models(models: Iterable[ModelConfiguration]) -> None:
    """Render the configured roster as a Rich table.

    Per-model keys are shown masked.

    Args:
        models: Configurations in roster order.
    """
    rows = list(models)
    if not rows:
        console.print("[dim]No models configured.[/dim]")
        return

    table = Table(show_header=True, padding=(0, 1))
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Provider")
    table.add_column("Model", style="dim")
    table.add_column("Active")
    table.add_column("Key")

    for cfg in rows:
        color = _get_color(cfg.provider_id)
        table.add_row(
            cfg.instance_id,
            cfg.name or "—",
            f"[{color}]{cfg.provider_id}[/{color}]",
            cfg.model or "(default)",
            "[green]✓[/green]" if cfg.active else "[dim]✗[/dim]",
            mask_credential(cfg.api_key) if cfg.api_key else "—",
        )

    console.print()
    console.print(table)
    console.print()


def render_providers(key_status: Mapping[str, bool]) -> None:
    """Render registry entries and whether each has a usable key.

    Args:
        key_status: Provider id → whether a key is configured.
    """
    table = Table(show_header=True, padding=(0, 1))
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Default model", style="dim")
    table.add_column("Key variable")
    table.add_column("Key")

    for provider_id, descriptor in PROVIDERS.items():
        color = _get_color(provider_id)
        table.add_row(
            f"[{color}]{provider_id}[/{color}]",
            descriptor.display_name,
            descriptor.default_model,
            descriptor.credential_env,
            "[green]✓ set[/green]" if key_status.get(provider_id) else "[red]✗ missing[/red]",
        )

    console.print()
    console.print(table)
    console.print()


def render_config_show(config: Config) -> None:
    """Render the effective configuration.

    Keys are masked; settings taken from the environment are marked.

    Args:
        config: Loaded configuration.
    """
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("key", style="dim")
    table.add_column("value")

    def _mark(name: str, value: object) -> str:
        suffix = " [dim](env)[/dim]" if name in config.env_sourced else ""
        return f"{value}{suffix}"

    table.add_row("Client keys", _mark("allow_client_api_keys", config.allow_client_keys))
    table.add_row("Timeout", _mark("timeout", f"{config.timeout:g}s"))
    table.add_row("Host", _mark("host", config.host))
    table.add_row("Port", _mark("port", config.port))
    table.add_row("CORS origins", _mark("cors_origins", ", ".join(config.cors_origins)))
    for provider_id, key in sorted(config.provider_keys.items()):
        table.add_row(f"{provider_id} key", mask_credential(key))
    if config.removed_models:
        table.add_row("Removed", ", ".join(config.removed_models))

    console.print()
    console.print(table)
    render_models(config.models.values())


def render_test_results(
    outcomes: Mapping[str, DispatchOutcome],
    configurations: Iterable[ModelConfiguration],
) -> None:
    """Render a connectivity check as one row per configuration.

    Args:
        outcomes: Outcomes of the check round, keyed by instance id.
        configurations: Configurations that were checked.
    """
    table = Table(show_header=True, padding=(0, 1))
    table.add_column("ID", style="bold")
    table.add_column("Provider")
    table.add_column("Model", style="dim")
    table.add_column("Latency", justify="right")
    table.add_column("Status")

    for cfg in configurations:
        outcome = outcomes[cfg.instance_id]
        color = _get_color(cfg.provider_id)
        if outcome.ok:
            latency_str = (
                f"{outcome.latency_ms / 1000:.1f}s" if outcome.latency_ms is not None else "—"
            )
            status_str = "[green]✓[/green]"
        else:
            latency_str = "—"
            status_str = f"[red]✗ {outcome.error}[/red]"
        table.add_row(
            cfg.instance_id,
            f"[{color}]{cfg.provider_id}[/{color}]",
            outcome.model,
            latency_str,
            status_str,
        )

    console.print()
    console.print(table)
    console.print()
