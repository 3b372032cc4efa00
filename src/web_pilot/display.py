# display.py
# All terminal output for the web automation engine.
#
# This module owns presentation entirely. The negotiator and executor
# never format strings; they call named functions here. Swap this file
# to change the entire UI.
#
# Colour language:
#   cyan: negotiation rounds / routing events
#   blue: model calls and tool traffic
#   yellow: cache events and warnings
#   green: success / finalized
#   red: failures and halts
#   magenta: step execution internals

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from web_pilot.models import Plan, PlanStep

console = Console()


def set_quiet(quiet: bool) -> None:
    console.quiet = quiet


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        value = value[:max_len] + "…"
    return escape(value)


# ---------------------------------------------------------------------------
# Pipeline entry
# ---------------------------------------------------------------------------


def banner(model: str) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Web Pilot[/bold cyan]\n"
            "[dim]Plan-then-execute web automation over observe / extract / act[/dim]\n\n"
            f"[dim]Planner model :[/dim] [white]{escape(model)}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def prompt_received(task: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW TASK[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(task)}[/white]",
            title=_label("TASK", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Negotiation
# ---------------------------------------------------------------------------


def negotiation_round(round_no: int, max_rounds: int) -> None:
    console.print()
    console.print(
        _label("PLANNER", "cyan"),
        f"[cyan] → Round {round_no}/{max_rounds}: requesting completion…[/cyan]",
    )


def tool_call(name: str, query: str) -> None:
    console.print(f"  [blue]Tool[/blue]     [bold white]{escape(name)}[/bold white]  [dim]{_mono(query)}[/dim]")


def tool_result(result: str) -> None:
    console.print(f"  [blue]Result[/blue]   [white]{_mono(result, 140)}[/white]")


def cache_hit(name: str, query: str) -> None:
    console.print(f"  [yellow]↳ Cache hit[/yellow] [dim yellow]{escape(name)}::{_mono(query, 80)}[/dim yellow]")


def cache_invalidated() -> None:
    console.print("  [yellow]↳ Page may have changed; read cache will be cleared on next read[/yellow]")


def unknown_tool(name: str) -> None:
    console.print(f"  [red]✗ Unknown tool[/red] [white]{escape(repr(name))}[/white] [dim](error returned to model)[/dim]")


def bad_tool_arguments(name: str, reason: str) -> None:
    console.print(f"  [red]✗ Bad arguments for[/red] [white]{escape(name)}[/white] [dim]{_mono(reason)}[/dim]")


def free_text_unparsed(content: str) -> None:
    console.print(
        f"  [yellow]↳ Model replied with text that is not a plan; continuing.[/yellow] "
        f"[dim]{_mono(content, 80)}[/dim]"
    )


def plan_finalized(plan: Plan, round_no: int) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="green",
        show_header=True,
        header_style="bold green",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Kind", style="bold white", width=9)
    table.add_column("Query", style="white")

    for index, step in enumerate(plan.steps, start=1):
        table.add_row(str(index), step.kind.value, escape(step.query))

    console.print(
        Panel(
            table,
            title=_label("PLAN FINALIZED ✓", "green"),
            subtitle=f"[dim]{len(plan)} step(s) after {round_no} round(s)[/dim]",
            border_style="green",
            padding=(0, 1),
        )
    )


def planning_failed(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold red]Planning failed.[/bold red]\n\n[white]{escape(reason)}[/white]",
            title=_label("PLANNER ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Execution loop
# ---------------------------------------------------------------------------


def execution_start(total: int) -> None:
    console.print()
    console.print(Rule(f"[magenta]EXECUTION — {total} step(s)[/magenta]", style="magenta"))


def step_start(ordinal: int, total: int, step: PlanStep) -> None:
    console.print()
    console.print(
        f"[bold magenta]  STEP [{ordinal}/{total}][/bold magenta]  "
        f"[bold white]{step.kind.value}[/bold white]  [white]{escape(step.query)}[/white]"
    )


def step_output(output: str) -> None:
    console.print(f"  [magenta]Output[/magenta]   [white]{_mono(output, 140)}[/white]")


def capability_failed(kind: str, query: str, reason: str) -> None:
    console.print(
        f"  [red]✗ {escape(kind)} failed[/red] [dim]{_mono(query, 60)}[/dim] — [white]{_mono(reason)}[/white]"
    )


def artifact_saved(reference: str) -> None:
    console.print(f"  [dim]↳ Saved artifact: {escape(reference)}[/dim]")


def artifact_capture_failed(reason: str) -> None:
    console.print(f"  [bold yellow]⚠ WARNING[/bold yellow] [yellow]{_mono(reason, 200)}[/yellow]")


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


def final_result(result: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(result)}[/white]",
            title=_label("RESULT", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
