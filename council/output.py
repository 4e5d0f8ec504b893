"""Rich console output and markdown transcripts for council sessions."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from council.models import AgentResponse, DeliberationSession, GhostBoardResult, PreMortemResult
from council.registry import AgentRegistry

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLE = {"online": "green", "busy": "yellow", "offline": "red"}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _response_preview(response: AgentResponse, words: int = 50) -> str:
    """Return first N words of a response."""
    all_words = response.response.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_roster(registry: AgentRegistry, available: bool, models: list[str]) -> None:
    """Agent roster with live status, as seen by the last probe."""
    backend = "[green]available[/green]" if available else "[red]unavailable[/red]"
    console.print(f"Model backend: {backend} ({len(models)} models loaded)")
    table = Table(title="Council agents")
    table.add_column("Code", style="bold")
    table.add_column("Name")
    table.add_column("Role", style="dim")
    table.add_column("Model")
    table.add_column("Status")
    for agent in registry.all():
        style = _STATUS_STYLE.get(agent.status, "white")
        table.add_row(agent.code, agent.name, agent.role, agent.model, f"[{style}]{agent.status}[/{style}]")
    console.print(table)


def print_analysis_summary(session: DeliberationSession) -> None:
    """Brief per-agent previews of Phase 1."""
    console.print(Rule("[bold cyan]Initial Analysis[/bold cyan]"))
    for resp in session.responses:
        console.print(
            Panel(
                _response_preview(resp),
                title=f"[bold]{resp.agent_name}[/bold] ({resp.role})",
                subtitle=f"{resp.duration_ms / 1000:.1f}s",
                border_style="red" if resp.failed else "dim",
            )
        )


def print_synthesis(session: DeliberationSession) -> None:
    """Print the synthesis using Rich markdown."""
    console.print(Rule("[bold green]Council Synthesis[/bold green]"))
    console.print(
        Text(
            f"Synthesized by: {session.synthesizer or 'concatenation'} | "
            f"Duration: {session.total_duration_ms / 1000:.1f}s | "
            f"Cross-examinations: {len(session.cross_examinations)} | "
            f"Confidence: {session.confidence}% | "
            f"Mode: {session.mode}",
            style="dim",
        )
    )
    console.print(Markdown(session.synthesis))


def print_premortem(result: PreMortemResult) -> None:
    console.print(Rule("[bold red]Pre-Mortem[/bold red]"))
    if result.used_fallback:
        console.print("[yellow]Model analysis unavailable; showing default failure modes.[/yellow]")
    table = Table(title=result.decision[:80])
    table.add_column("#", justify="right")
    table.add_column("Failure mode")
    table.add_column("Category", style="dim")
    table.add_column("Probability", justify="right")
    table.add_column("Cost impact", justify="right")
    for fm in result.failure_modes:
        table.add_row(
            str(fm.rank), fm.title, fm.category, f"{fm.probability:.0%}", f"${fm.cost_impact:,.0f}"
        )
    console.print(table)
    console.print(
        f"Risk score: [bold]{result.overall_risk_score}[/bold]/100 | "
        f"Risk-weighted exposure: [bold]${result.total_risk_weighted_exposure:,.0f}[/bold]"
    )
    rec = result.recommendation
    body = rec.reasoning + "".join(f"\n- {c}" for c in rec.conditions)
    console.print(Panel(body, title=f"Recommendation: {rec.action}", border_style="cyan"))
    console.print(Markdown(result.executive_summary))


def print_ghost_board(result: GhostBoardResult) -> None:
    console.print(Rule(f"[bold magenta]Ghost Board: {result.proposal_title}[/bold magenta]"))
    for q in result.questions:
        console.print(
            Panel(
                f"[bold]Q:[/bold] {q.question}\n\n[dim]Suggested answer:[/dim] {q.suggested_answer}",
                title=f"{q.asked_by.name} ({q.asked_by.role})",
                border_style="magenta",
            )
        )
    console.print(
        f"Preparedness: [bold]{result.preparedness_score}[/bold]/100 | "
        f"Estimated duration: {result.duration_min} min"
    )
    console.print(result.overall_assessment)


def save_to_file(session: DeliberationSession, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the full deliberation transcript as a markdown file.

    Args:
        session: The completed DeliberationSession.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the question text. Useful for inbox mode.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(session.question)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    agents_str = ", ".join(r.agent_name for r in session.responses)
    lines: list[str] = [
        f"# Council Deliberation: {session.question[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Agents:** {agents_str}",
        f"**Synthesizer:** {session.synthesizer or 'concatenation (no chief online)'}",
        f"**Duration:** {session.total_duration_ms / 1000:.1f}s",
        f"**Confidence:** {session.confidence}%",
        f"**Locale:** {session.locale}",
        f"**Mode:** {session.mode}",
        "",
        "---",
        "",
        "## Phase 1: Initial Analysis",
        "",
    ]
    for resp in session.responses:
        lines += [
            f"### {resp.agent_name} ({resp.role})",
            "",
            resp.response,
            "",
            f"*Duration: {resp.duration_ms / 1000:.2f}s" + (" | failed" if resp.failed else "") + "*",
            "",
        ]

    if session.cross_examinations:
        lines += ["## Phase 2: Cross-Examination", ""]
        for ce in session.cross_examinations:
            lines += [
                f"### {ce.challenger_name} -> {ce.target_name}",
                "",
                f"*{ce.reason}*",
                "",
                f"**Challenge:** {ce.challenge}",
                "",
                f"**Rebuttal:** {ce.rebuttal}",
                "",
            ]

    lines += ["## Synthesis", "", session.synthesis, ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Deliberation saved to: %s", filepath)
    return filepath
