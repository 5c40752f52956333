"""Guidepilot CLI: run the guidance engine against a project by hand.

Usage:
    guidepilot analyze <project> --log session.txt   # One guidance cycle over a transcript
    guidepilot analyze <project> --no-llm < out.txt  # Deterministic sources only
    guidepilot context <project>                     # Show detected project context
    guidepilot providers                             # List LLM providers and key status
    guidepilot config                                # Show configuration
    guidepilot config <key>=<value>                  # Set configuration
    guidepilot confirm "<prompt>" --project <path>   # Classify a confirmation prompt
"""

import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from guidepilot import __version__
from guidepilot.config import AutopilotConfig, GuidepilotError, apply_setting
from guidepilot.confirmation import ConfirmationDialogHandler
from guidepilot.context_builder import ContextBuilder
from guidepilot.context_patterns import ContextPatterns
from guidepilot.guidance import GuidanceOrchestrator
from guidepilot.llm_client import LLMClient
from guidepilot.models import AnalysisContext
from guidepilot.monitor import RECENT_OUTPUT_LINES, strip_ansi

console = Console()

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def _run_async(coro):
    """Run async function from sync context."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context) -> AutopilotConfig:
    return AutopilotConfig.load(ctx.obj["config_path"])


def _mask(key: str) -> str:
    return f"{key[:4]}...{key[-4:]}" if len(key) > 12 else "****"


@click.group()
@click.version_option(__version__, prog_name="guidepilot")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Config file path")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Guidepilot: guidance decision engine for coding-assistant sessions."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.argument("project", type=click.Path(exists=True, file_okay=False))
@click.option("--log", "log_file", type=click.File("r"), default="-", help="Transcript file (default: stdin)")
@click.option("--no-llm", is_flag=True, help="Skip the LLM-backed source")
@click.option("--all-lines", is_flag=True, help="Analyze the whole transcript, not just the tail")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON")
@click.pass_context
def analyze(ctx, project, log_file, no_llm, all_lines, as_json):
    """Run one orchestrated guidance cycle over captured terminal output."""
    cfg = _load_config(ctx)
    lines = log_file.read().splitlines()
    if not all_lines:
        lines = lines[-RECENT_OUTPUT_LINES:]
    output = strip_ansi("\n".join(lines))
    if not output.strip():
        console.print("[yellow]No output to analyze[/]")
        return

    orchestrator = GuidanceOrchestrator(cfg)
    if no_llm:
        orchestrator.remove_source("guide-prompt")

    context = AnalysisContext(terminal_output=output, project_path=str(Path(project).resolve()))
    result = _run_async(orchestrator.generate_guidance(context))

    if as_json:
        console.print_json(json.dumps(asdict(result), default=str))
        return

    table = Table(show_header=False, box=None)
    table.add_row("Intervene", "[green]yes[/]" if result.should_intervene else "[dim]no[/]")
    table.add_row("Confidence", f"{result.confidence:.2f}")
    table.add_row("Source", f"{result.source} (priority {result.priority})")
    table.add_row("Reasoning", result.reasoning)
    if result.guidance:
        table.add_row("Guidance", f"[bold]{result.guidance}[/]")
    accepted = result.should_intervene and result.confidence >= cfg.intervention_threshold
    console.print(Panel(table, title="Guidance", border_style="green" if accepted else "blue"))


@cli.command()
@click.argument("project", type=click.Path(exists=True, file_okay=False))
@click.pass_context
def context(ctx, project):
    """Show the project context the context-aware source sees."""
    cfg = _load_config(ctx)
    builder = ContextBuilder(cfg.context)
    project_context = _run_async(builder.build_project_context(project))
    project_type = project_context.project_type

    table = Table(show_header=False, box=None)
    table.add_row("Framework", project_type.framework)
    table.add_row("Language", project_type.language)
    table.add_row("Build system", project_type.build_system)
    table.add_row("Test framework", project_type.test_framework or "-")
    table.add_row("Architecture", ", ".join(p.type for p in project_type.patterns) or "-")
    table.add_row("Recent files", ", ".join(project_context.recent_files) or "-")
    git_status = project_context.git_status
    if git_status is not None:
        table.add_row(
            "Git",
            f"{git_status.total_changes} changed, {git_status.ahead_count} ahead, "
            f"{git_status.behind_count} behind ({git_status.parent_branch or 'no upstream'})",
        )
    console.print(Panel(table, title=str(Path(project).resolve()), border_style="blue"))
    console.print(f"[dim]{ContextPatterns().get_context_summary(project_context)}[/]")


@cli.command()
@click.pass_context
def providers(ctx):
    """List LLM providers, their models and whether a key is configured."""
    client = LLMClient(_load_config(ctx))
    table = Table(title="LLM Providers")
    table.add_column("Provider")
    table.add_column("Models")
    table.add_column("Key")
    for info in client.get_available_providers():
        table.add_row(
            info["name"],
            ", ".join(info["models"]),
            "[green]configured[/]" if info["available"] else "[red]missing[/]",
        )
    console.print(table)
    console.print(
        f"Current: [bold]{client.get_current_provider_name()}[/] / {client.config.model}"
    )


@cli.command()
@click.argument("key_value", nargs=-1)
@click.pass_context
def config(ctx, key_value):
    """View or set guidepilot configuration.

    Examples:
        guidepilot config                               # show all
        guidepilot config max_guidances_per_hour=10
        guidepilot config context.cache_interval_minutes=2
        guidepilot config api_keys.openai=sk-...
    """
    cfg = _load_config(ctx)
    if not key_value:
        data = cfg.to_dict()
        data["api_keys"] = {name: _mask(key) for name, key in cfg.api_keys.items()}
        console.print_json(json.dumps(data))
        return

    kv = " ".join(key_value)
    if "=" not in kv:
        console.print("[yellow]Usage: guidepilot config key=value[/]")
        return

    key, value = (part.strip() for part in kv.split("=", 1))
    try:
        apply_setting(cfg, key, value)
        cfg.validate()
    except GuidepilotError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)

    cfg.save(ctx.obj["config_path"])
    shown = _mask(value) if key.startswith("api_keys.") else value
    console.print(f"[green]Set {key} = {shown}[/]")


@cli.command()
@click.argument("text")
@click.option("--project", type=click.Path(exists=True, file_okay=False), default=".", help="Project path")
@click.pass_context
def confirm(ctx, text, project):
    """Classify a confirmation prompt as the autopilot would."""
    cfg = _load_config(ctx)
    builder = ContextBuilder(cfg.context)
    project_context = _run_async(builder.build_project_context(project))
    handler = ConfirmationDialogHandler()
    decision = handler.should_auto_confirm(text, project_context)

    auto = decision.should_confirm and decision.confidence >= handler.get_confidence_threshold()
    color = "green" if auto else "yellow"
    console.print(
        f"[bold {color}]{'AUTO-CONFIRM' if auto else 'MANUAL'}[/] "
        f"{decision.dialog_type} (confidence {decision.confidence:.2f})"
    )
    console.print(f"[dim]{decision.reasoning}[/]")
    if auto:
        console.print(f"Response: [bold]{decision.response}[/]")


if __name__ == "__main__":
    cli()
