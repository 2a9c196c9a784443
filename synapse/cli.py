"""Click CLI: config loading, council assembly, live debate rendering, transcript save."""

import asyncio
import logging
import sys
from pathlib import Path

import click
import frontmatter
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from synapse.debate import run_debate
from synapse.orchestrator import Orchestrator
from synapse.output import EventPrinter, save_transcript
from synapse.session import ACTIVE, SessionStore

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _read_problem_file(path: Path) -> tuple[str, dict]:
    """Markdown problem with optional front matter (max_rounds, agents, passes)."""
    post = frontmatter.load(str(path))
    return post.content.strip(), dict(post.metadata)


def _split_ids(value) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [v.strip() for v in str(value).split(",") if v.strip()]


async def _run(
    problem: str,
    source: str,
    config: AppConfig,
    agent_ids: list[str] | None,
    skip_health_check: bool,
    output_dir: Path,
    slug_override: str | None = None,
) -> bool:
    """Run a debate to its verdict and save it. Returns False on a fatal error."""
    store = SessionStore(config.defaults.session_ttl_sec)
    session = store.create(problem)
    store.update(session.id, status=ACTIVE)
    orchestrator = Orchestrator(config, store)
    printer = EventPrinter(console)

    console.print(
        f"\n[bold cyan]Synapse[/bold cyan] up to {config.defaults.max_passes} passes, "
        f"{config.defaults.turns_per_agent} turns per agent"
    )
    console.print(f"Problem: [italic]{problem[:80]}{'...' if len(problem) > 80 else ''}[/italic]\n")

    fatal = False
    async for event in run_debate(
        session.id,
        problem,
        orchestrator,
        store,
        agent_ids=agent_ids,
        skip_health_check=skip_health_check,
        auto_continue=True,
    ):
        printer(event)
        fatal = fatal or event.is_fatal

    state = store.get(session.id).state
    if fatal or state is None:
        return False

    saved_path = save_transcript(state, output_dir, source=source, slug_override=slug_override)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return True


@click.command()
@click.argument("problem", required=False)
@click.option("--file", "problem_file", type=click.Path(exists=True), help="Read the problem from a .md file")
@click.option("--max-rounds", default=None, type=int, help="Rounds per pass (default: from config)")
@click.option("--turns-per-agent", default=None, type=int, help="Turn cap per agent per pass")
@click.option("--passes", default=None, type=int, help="Passes before the verdict is forced")
@click.option("--agents", "agents_arg", default=None, help="Comma-separated agent ids to draw the council from")
@click.option("--no-search", is_flag=True, default=False, help="Disable live knowledge-source lookups")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    problem: str | None,
    problem_file: str | None,
    max_rounds: int | None,
    turns_per_agent: int | None,
    passes: int | None,
    agents_arg: str | None,
    no_search: bool,
    skip_health_check: bool,
    output_path: str | None,
    verbose: bool,
) -> None:
    """Synapse -- live multi-agent debate with a moderated verdict.

    \b
    Examples:
      synapse "Should we rewrite the billing service in Go?"
      synapse "Best way to learn Rust?" --agents claude-haiku,gpt-mini
      synapse --file problem.md --passes 2
      synapse "Is intermittent fasting safe?" --no-search --max-rounds 2
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    meta: dict = {}
    slug_override: str | None = None
    if problem_file:
        problem_text, meta = _read_problem_file(Path(problem_file))
        source = problem_file
        slug_override = Path(problem_file).stem
    elif problem:
        problem_text = problem
        source = "cli"
    else:
        console.print("[bold red]Error:[/bold red] Provide a PROBLEM argument or --file.")
        sys.exit(1)

    if not problem_text:
        console.print("[bold red]Error:[/bold red] The problem is empty.")
        sys.exit(1)

    # CLI flags win; front matter only fills in when a flag is not set
    defaults = config.defaults
    if max_rounds is not None:
        defaults.max_rounds = max_rounds
    elif "max_rounds" in meta:
        defaults.max_rounds = int(meta["max_rounds"])
    if passes is not None:
        defaults.max_passes = passes
    elif "passes" in meta:
        defaults.max_passes = int(meta["passes"])
    if turns_per_agent is not None:
        defaults.turns_per_agent = turns_per_agent
    if no_search:
        config.tuning.search.budget = 0

    agent_ids = _split_ids(agents_arg) if agents_arg else _split_ids(meta.get("agents"))
    output_dir = Path(output_path) if output_path else defaults.output_dir

    if not config.available_providers:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    ok = asyncio.run(
        _run(
            problem=problem_text,
            source=source,
            config=config,
            agent_ids=agent_ids,
            skip_health_check=skip_health_check,
            output_dir=output_dir,
            slug_override=slug_override,
        )
    )
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
