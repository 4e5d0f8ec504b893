"""Click CLI: wires config, gateway, monitor and orchestrator, then renders results."""

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from council.council_session import CouncilSessionRunner
from council.ghost_board import BOARD_MEMBERS, GhostBoardSimulator
from council.inbox import archive_file, ensure_dirs, parse_file, scan_inbox
from council.models import Agent, DeliberationSession
from council.monitor import AvailabilityMonitor
from council.orchestrator import DeliberationCallbacks, DeliberationOrchestrator, NoAgentsOnline
from council.output import (
    print_analysis_summary,
    print_ghost_board,
    print_premortem,
    print_roster,
    print_synthesis,
    save_to_file,
)
from council.premortem import PreMortemAnalyzer
from council.providers.ollama import OllamaGateway
from council.query import AgentRunner
from council.registry import AgentRegistry
from council.store import RecordStore

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@dataclass
class Council:
    """Everything one CLI invocation needs, built from config."""

    config: AppConfig
    gateway: OllamaGateway
    registry: AgentRegistry
    monitor: AvailabilityMonitor
    orchestrator: DeliberationOrchestrator
    store: RecordStore


@asynccontextmanager
async def open_council(config: AppConfig) -> AsyncIterator[Council]:
    """Probe the backend once, optionally warm models, and close the HTTP client on exit."""
    gateway = OllamaGateway(config.gateway.effective_base_url, timeout_sec=config.gateway.timeout_sec)
    registry = AgentRegistry.from_config(config.agents)
    monitor = AvailabilityMonitor(gateway, registry, interval_sec=config.gateway.poll_interval_sec)
    try:
        await monitor.probe()
        if config.gateway.warm_on_start and monitor.available:
            await monitor.pre_warm()
        yield Council(
            config=config,
            gateway=gateway,
            registry=registry,
            monitor=monitor,
            orchestrator=DeliberationOrchestrator(AgentRunner(registry, gateway), config.deliberation),
            store=RecordStore(config.defaults.store_path),
        )
    finally:
        await gateway.aclose()


class _LiveStream:
    """Prints streamed tokens under a header that changes with the speaking agent."""

    def __init__(self) -> None:
        self._current: str | None = None

    def _header(self, label: str) -> None:
        if self._current != label:
            console.print(f"\n[bold cyan]{label}[/bold cyan]")
            self._current = label

    def callbacks(self) -> DeliberationCallbacks:
        return DeliberationCallbacks(
            on_phase_change=self.on_phase_change,
            on_agent_complete=self.on_agent_complete,
            on_token=self.on_token,
            on_challenge=self.on_challenge,
            on_synthesis_start=self.on_synthesis_start,
            on_synthesis_token=self.on_synthesis_token,
        )

    def on_phase_change(self, phase: str) -> None:
        self._current = None
        console.rule(f"[bold]{phase.replace('_', ' ').title()}[/bold]")

    def on_agent_complete(self, agent: Agent, _text: str, duration_ms: float) -> None:
        console.print(f"[green]OK[/green] {agent.name} ({duration_ms / 1000:.1f}s)")

    def on_token(self, agent: Agent, token: str) -> None:
        self._header(agent.name)
        console.print(token, end="", markup=False, highlight=False)

    def on_challenge(self, challenger: Agent, target: Agent, _challenge: str) -> None:
        console.print(f"\n[dim]{challenger.name} challenged {target.name}[/dim]")

    def on_synthesis_start(self) -> None:
        self._header("Synthesis")

    def on_synthesis_token(self, token: str) -> None:
        console.print(token, end="", markup=False, highlight=False)


def _parse_agents(agents_arg: str | None, registry: AgentRegistry) -> list[str] | None:
    """Accept agent ids or short codes, comma-separated."""
    if not agents_arg:
        return None
    ids: list[str] = []
    for token in (t.strip() for t in agents_arg.split(",")):
        if not token:
            continue
        agent = registry.find(token) or registry.by_code(token)
        if agent is None:
            raise click.BadParameter(f"Unknown agent: {token}", param_hint="--agents")
        ids.append(agent.id)
    return ids


async def _run_single(
    council: Council,
    question: str,
    agent_ids: list[str] | None,
    locale: str | None,
    quick: bool,
    basic: bool,
    output_dir: Path,
    slug_override: str | None = None,
) -> Path:
    """Run one deliberation, record and print it, and return the saved transcript path.

    Raises:
        NoAgentsOnline: When none of the requested agents is online.
    """
    online = len(council.registry.select(agent_ids))
    console.print(f"\n[bold cyan]Council[/bold cyan] - {online} agents online")
    console.print(f"Question: [italic]{question[:80]}{'...' if len(question) > 80 else ''}[/italic]\n")

    runner = CouncilSessionRunner(council.orchestrator, council.monitor, council.store)
    mode = "standard" if basic else ("quick" if quick else "full")
    session: DeliberationSession
    if basic:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Starting...", total=None)

            def on_progress(_phase: str, _agent_id: str, message: str) -> None:
                progress.update(task, description=message)

            session = await runner.deliberate(question, mode, agent_ids, locale=locale, on_progress=on_progress)
        print_analysis_summary(session)
    else:
        live = _LiveStream()
        session = await runner.deliberate(question, mode, agent_ids, locale=locale, callbacks=live.callbacks())
        console.print()

    record = runner.record(question, mode, session, agent_ids=agent_ids)
    logger.debug("Council session %s recorded (%s mode)", record.id, mode)
    print_synthesis(session)
    saved_path = save_to_file(session, output_dir, slug_override=slug_override)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return saved_path


async def _run_inbox(
    council: Council,
    inbox_dir: Path,
    agents_cli: list[str] | None,
    locale_cli: str | None,
    quick_cli: bool,
    basic: bool,
    output_dir: Path,
) -> None:
    """Process every .md file in the inbox. CLI flags win over frontmatter."""
    archive_dir = council.config.inbox.archive_dir
    ensure_dirs(inbox_dir, archive_dir)
    files = scan_inbox(inbox_dir)
    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        question, meta = parse_file(file_path)
        agent_ids = agents_cli if agents_cli is not None else meta.get("agents")
        locale = locale_cli if locale_cli is not None else meta.get("locale")
        quick = quick_cli or bool(meta.get("quick", False))
        try:
            saved = await _run_single(
                council, question, agent_ids, locale, quick, basic, output_dir,
                slug_override=file_path.stem,
            )
            archived = archive_file(file_path, archive_dir)
            click.echo(f"Processed: {file_path.name} -> {saved} (archived: {archived.name})")
        except Exception as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, archive_dir, failed=True)


def _load_or_exit() -> AppConfig:
    try:
        return load_config()
    except (FileNotFoundError, KeyError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Council -- multi-agent deliberation over local models.

    \b
    Examples:
      council deliberate "Should we acquire the fintech startup?"
      council deliberate "Expand to Brazil?" --agents cfo,coo,risk --locale pt
      council deliberate --inbox
      council premortem "Migrate billing to a new vendor" --budget 250000
      council ghost-board "Series B plan" "We will raise $30M to..." --board-type vc_backed
      council status
    """
    # Model output may contain characters the Windows console codepage cannot encode.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)
    ctx.obj = _load_or_exit()


@main.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True), help="Read question from .md file")
@click.option("--agents", default=None, help="Comma-separated agent ids or codes (default: all online)")
@click.option("--locale", default=None, help="Response language, e.g. fr, de, pt-BR")
@click.option("--quick", is_flag=True, help="Skip cross-examination")
@click.option("--basic", is_flag=True, help="Non-streamed session: analysis then synthesis")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--inbox", "use_inbox", is_flag=True, default=False, help="Process all .md files in inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None, help="Override inbox folder path")
@click.pass_obj
def deliberate(
    config: AppConfig,
    question: str | None,
    question_file: str | None,
    agents: str | None,
    locale: str | None,
    quick: bool,
    basic: bool,
    output_path: str | None,
    use_inbox: bool,
    inbox_dir_override: str | None,
) -> None:
    """Put a question to the council."""
    output_dir = Path(output_path) if output_path else config.defaults.output_dir

    if not use_inbox:
        if question_file:
            question = Path(question_file).read_text(encoding="utf-8").strip()
        if not question:
            console.print("[bold red]Error:[/bold red] Provide a QUESTION argument, --file, or --inbox.")
            sys.exit(1)

    async def _go() -> None:
        async with open_council(config) as council:
            if not council.monitor.available:
                console.print(
                    f"[bold red]Error:[/bold red] Model backend not reachable at "
                    f"{config.gateway.effective_base_url}."
                )
                sys.exit(1)
            agent_ids = _parse_agents(agents, council.registry)
            if use_inbox:
                inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.dir
                await _run_inbox(council, inbox_dir, agent_ids, locale, quick, basic, output_dir)
                return
            await _run_single(council, question, agent_ids, locale, quick, basic, output_dir)

    try:
        asyncio.run(_go())
    except NoAgentsOnline as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)


@main.command()
@click.argument("decision")
@click.option("--context", default=None, help="Background for the decision")
@click.option("--budget", type=float, default=None, help="Budget in dollars (scales default cost impacts)")
@click.option("--timeframe", default=None, help="Execution timeframe, e.g. '6 months'")
@click.pass_obj
def premortem(
    config: AppConfig, decision: str, context: str | None, budget: float | None, timeframe: str | None
) -> None:
    """Imagine the decision failed and list the likeliest reasons."""

    async def _go() -> None:
        async with open_council(config) as council:
            analyzer = PreMortemAnalyzer(
                council.gateway,
                council.monitor,
                model=config.use_cases.model,
                store=council.store,
                default_budget=config.use_cases.premortem_budget,
                default_agents=config.use_cases.premortem_agents,
            )
            with console.status("Running pre-mortem..."):
                result = await analyzer.run(decision, context, budget, timeframe)
            print_premortem(result)

    asyncio.run(_go())


@main.command("ghost-board")
@click.argument("title")
@click.argument("content")
@click.option("--board-type", type=click.Choice(sorted(BOARD_MEMBERS)), default="standard")
@click.option("--difficulty", type=click.Choice(["easy", "medium", "hard"]), default="hard")
@click.pass_obj
def ghost_board(config: AppConfig, title: str, content: str, board_type: str, difficulty: str) -> None:
    """Rehearse a proposal in front of a simulated board."""

    async def _go() -> None:
        async with open_council(config) as council:
            simulator = GhostBoardSimulator(
                council.gateway, council.monitor, model=config.use_cases.model, store=council.store
            )
            with console.status("Convening the board..."):
                result = await simulator.run(title, content, board_type, difficulty)
            print_ghost_board(result)

    asyncio.run(_go())


@main.command()
@click.pass_obj
def status(config: AppConfig) -> None:
    """Probe the backend and show each agent's status."""

    async def _go() -> None:
        async with open_council(config) as council:
            probe = council.monitor.status()
            print_roster(council.registry, probe.available, probe.models)

    asyncio.run(_go())


@main.command()
@click.pass_obj
def warm(config: AppConfig) -> None:
    """Load every online agent's model into memory."""

    async def _go() -> None:
        async with open_council(config) as council:
            if not council.monitor.available:
                console.print("[bold red]Error:[/bold red] Model backend not reachable.")
                sys.exit(1)
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TimeElapsedColumn(),
                console=console,
            ) as progress:
                task = progress.add_task("Pre-warming...", total=None)

                def on_progress(model: str, index: int, total: int) -> None:
                    progress.update(task, description=f"Loading {model}", completed=index - 1, total=total)

                warmed = await council.monitor.pre_warm(on_progress)
                progress.update(task, completed=progress.tasks[0].total or 0)
            console.print(f"[green]Warmed {len(warmed)} model(s):[/green] {', '.join(warmed) or 'none'}")

    asyncio.run(_go())


if __name__ == "__main__":
    main()
