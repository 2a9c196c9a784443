"""Rich console rendering of the event stream and markdown transcript save."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from synapse import events as ev
from synapse.events import Event
from synapse.orchestrator import DebateState

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_ARROWS = {"heating": "↑", "steady": "→", "cooling": "↓"}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


class EventPrinter:
    """Render debate events to the console as they arrive."""

    def __init__(self, out: Console = console) -> None:
        self._console = out
        self._names: dict[str, str] = {}
        self._colors: dict[str, str] = {}
        self._streaming = False

    def _name(self, agent_id: str) -> str:
        return self._names.get(agent_id, agent_id)

    def _end_stream(self) -> None:
        if self._streaming:
            self._console.print()
            self._streaming = False

    def __call__(self, event: Event) -> None:
        data = event.data
        if event.type == ev.AGENT_CHUNK:
            self._console.print(data["content"], end="", markup=False, highlight=False)
            self._streaming = True
            return
        self._end_stream()

        if event.type == ev.DEBATE_START:
            for agent in data["agents"]:
                self._names[agent["id"]] = agent["display_name"]
                self._colors[agent["id"]] = agent.get("color") or "white"
            council = ", ".join(f"{a['display_name']} ({a['stance']})" for a in data["agents"])
            self._console.print(f"[bold cyan]Synapse[/bold cyan] council: {council}\n")
        elif event.type == ev.AGENT_THINKING:
            color = self._colors.get(data["agent_id"], "white")
            self._console.print(
                Rule(f"[bold {color}]{self._name(data['agent_id'])}[/bold {color}] [dim]{data['stance']}[/dim]")
            )
        elif event.type == ev.AGENT_DONE and data.get("partial"):
            self._console.print("[yellow](response cut short)[/yellow]")
        elif event.type == ev.AGENT_UNAVAILABLE:
            self._console.print(
                f"[red]UNAVAILABLE[/red] {self._name(data['agent_id'])}: {str(data.get('reason', ''))[:120]}"
            )
        elif event.type == ev.STANCE_CHANGE:
            self._console.print(
                f"[dim]{self._name(data['agent_id'])} stance: {data['from']} -> {data['to']}[/dim]"
            )
        elif event.type == ev.CONSENSUS_UPDATE:
            self._console.print(f"[dim]consensus {data['score']:.0%}[/dim]", end="  ")
        elif event.type == ev.MOMENTUM_UPDATE:
            arrow = _ARROWS.get(data["direction"], "")
            self._console.print(f"[dim]momentum {data['momentum']:.2f} {arrow}[/dim]")
        elif event.type == ev.QUOTE_LINKED:
            self._console.print(f"[dim]replying to {data['agent_name']}: \"{data['excerpt']}\"[/dim]")
        elif event.type == ev.RESEARCH_RESULTS:
            lines = "\n".join(f"[bold]{r['source_name']}[/bold] {r['title']}" for r in data["results"])
            self._console.print(Panel(lines, title=f"Live research: {data['query']}", border_style="blue"))
        elif event.type == ev.USER_INTERVENTION:
            self._console.print(Panel(data["content"], title=f"User ({data['category']})", border_style="magenta"))
        elif event.type == ev.ROUND_COMPLETE:
            self._console.print(
                Rule(
                    f"[bold cyan]Pass {data['round_number']} {data['status']}[/bold cyan] "
                    f"consensus {data['consensus_score']:.0%}, {data['turns_completed']} turns"
                )
            )
        elif event.type == ev.TURN_PAUSE:
            self._console.print(f"[yellow]Paused ({data.get('reason', '')})[/yellow]")
        elif event.type == ev.DEBATE_SUMMARY:
            print_synthesis(data, self._names, self._console)
        elif event.type == ev.ERROR:
            self._console.print(f"[bold red]Error:[/bold red] {data.get('message', '')}")


def print_synthesis(summary: dict, names: dict[str, str], out: Console = console) -> None:
    """Print the verdict using Rich markdown."""
    out.print(Rule("[bold green]Synapse Verdict[/bold green]"))
    out.print(Text(summary["confidence"], style="dim"))
    out.print(Markdown(summary["verdict"]))
    for moment in summary.get("key_moments", []):
        who = names.get(moment["agent_id"], moment["agent_id"])
        out.print(f"  [bold]{who}[/bold]: {moment['excerpt']} [dim]{moment['significance']}[/dim]")
    if summary.get("open_questions"):
        out.print(Markdown("\n".join(f"- {q}" for q in summary["open_questions"])))


def save_transcript(
    state: DebateState,
    output_dir: Path,
    source: str = "cli",
    slug_override: str | None = None,
) -> Path:
    """Save the full debate transcript and verdict as a markdown file.

    Args:
        state: The debate state after the final pass.
        output_dir: Directory to save the file in.
        source: Where the problem came from ("cli" or a file path).
        slug_override: Filename stem to use instead of one derived from the problem.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(state.problem)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    council = ", ".join(f"{p.display_name} ({p.model})" for p in state.profiles)
    lines: list[str] = [
        f"# Synapse Debate: {state.problem[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Council:** {council}",
        f"**Passes:** {state.passes}",
        f"**Final consensus:** {state.consensus_score:.2f}",
        f"**Source:** {source}",
        "",
        "---",
        "",
        "## Transcript",
        "",
    ]

    for turn in state.log.turns:
        speaker = "User" if turn.is_user else turn.display_name
        lines.append(f"### {turn.turn_number + 1}. {speaker} ({turn.stance})")
        lines.append("")
        lines.append(turn.content)
        lines.append("")

    summary = state.summary
    if summary is not None:
        names = {p.id: p.display_name for p in state.profiles}
        lines += ["## Verdict", "", f"*{summary.confidence}*", "", summary.verdict, ""]
        if summary.key_moments:
            lines += ["### Key moments", ""]
            lines += [
                f"- **{names.get(m.agent_id, m.agent_id)}**: {m.excerpt} ({m.significance})"
                for m in summary.key_moments
            ]
            lines.append("")
        if summary.dissent:
            lines += ["### Dissent", ""]
            lines += [f"- **{names.get(d['agent_id'], d['agent_id'])}**: {d['position']}" for d in summary.dissent]
            lines.append("")
        if summary.open_questions:
            lines += ["### Open questions", ""] + [f"- {q}" for q in summary.open_questions] + [""]
        if summary.sources:
            lines += ["### Sources", ""]
            for s in summary.sources:
                url = f" <{s['url']}>" if s.get("url") else ""
                lines.append(f"- {s.get('name', '')}: {s.get('title', '')}{url}")
            lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
