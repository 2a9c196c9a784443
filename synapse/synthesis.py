"""Final synthesis: ask one council member for a structured verdict, parse it, never fail."""

import json
import logging
import re
from collections.abc import Callable, Sequence

from config.config_loader import PromptsConfig
from synapse.memory import ContextLog
from synapse.models import KeyMoment, SourceResult, StructuredSummary
from synapse.providers.base import AIAgent, Message, ProviderError

logger = logging.getLogger(__name__)

STRONG = "The council reached strong consensus on this"
DIRECTIONAL = "The council agrees on this direction but notes meaningful uncertainty remains"
EXPLORATORY = "The council explored multiple perspectives without reaching full agreement"

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_VERDICT_FALLBACK_CHARS = 500


def confidence_label(consensus: float) -> str:
    if consensus >= 0.85:
        return STRONG
    if consensus >= 0.6:
        return DIRECTIONAL
    return EXPLORATORY


class SummaryGenerator:
    def __init__(self, source_name: Callable[[str], str] = str) -> None:
        self._source_name = source_name

    @staticmethod
    def pick_agent(roster: Sequence[AIAgent]) -> AIAgent:
        """Prefer an agent with the ``synthesis`` capability, else the strongest overall."""
        if not roster:
            raise ValueError("Cannot pick a synthesizer from an empty roster")
        for agent in roster:
            if "synthesis" in agent.profile.capability_ids:
                return agent
        return max(roster, key=lambda a: a.profile.total_strength)

    async def generate(
        self,
        agent: AIAgent,
        problem: str,
        log: ContextLog,
        consensus: float,
        research: Sequence[SourceResult],
        prompts: PromptsConfig,
    ) -> StructuredSummary:
        messages = self._build_messages(problem, log, consensus, research, prompts)
        logger.info("Running synthesis via %s", agent.name())
        try:
            completion = await agent.complete(messages)
        except ProviderError as exc:
            logger.warning("Synthesis via %s failed, using fallback: %s", agent.name(), exc)
            return self.fallback(log, consensus, research)
        return self.parse(completion.text, log, consensus, research)

    def _build_messages(
        self,
        problem: str,
        log: ContextLog,
        consensus: float,
        research: Sequence[SourceResult],
        prompts: PromptsConfig,
    ) -> list[Message]:
        turns = log.turns
        participants = list(dict.fromkeys(t.agent_id for t in turns if not t.is_user))
        user_turns = [t for t in turns if t.is_user]

        sources = ""
        if research:
            lines = [
                f"- {self._source_name(r.source)}: {r.title}" + (f" ({r.url})" if r.url else "")
                for r in research
            ]
            sources = "\n\nLIVE SOURCES REFERENCED DURING DEBATE:\n" + "\n".join(lines)

        contributions = ""
        if user_turns:
            contributions = "\n\nUSER CONTRIBUTIONS DURING DEBATE:\n" + "\n".join(
                f"- {t.content}" for t in user_turns
            )

        return [
            {
                "role": "system",
                "content": prompts.synthesis_system.format(
                    confidence_label=confidence_label(consensus),
                    participants=", ".join(participants),
                ),
            },
            {
                "role": "user",
                "content": prompts.synthesis_user.format(
                    problem=problem,
                    transcript=log.transcript(),
                    sources=sources,
                    user_contributions=contributions,
                ),
            },
        ]

    def parse(
        self,
        raw: str,
        log: ContextLog,
        consensus: float,
        research: Sequence[SourceResult],
    ) -> StructuredSummary:
        match = _JSON_OBJECT.search(raw or "")
        if match is None:
            logger.warning("Synthesis output had no JSON object, using fallback")
            return self.fallback(log, consensus, research)
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            logger.warning("Synthesis JSON unparsable (%s), using fallback", exc)
            return self.fallback(log, consensus, research)
        if not isinstance(parsed, dict):
            return self.fallback(log, consensus, research)

        def _list(key: str) -> list:
            value = parsed.get(key)
            return value if isinstance(value, list) else []

        confidence = parsed.get("confidence")
        return StructuredSummary(
            verdict=str(parsed.get("verdict") or parsed.get("answer") or raw[:_VERDICT_FALLBACK_CHARS]),
            confidence=confidence if isinstance(confidence, str) else confidence_label(consensus),
            key_moments=[
                KeyMoment(
                    agent_id=str(m.get("agentId", "unknown")),
                    excerpt=str(m.get("excerpt", "")),
                    significance=str(m.get("significance", "")),
                )
                for m in _list("keyMoments")
                if isinstance(m, dict)
            ],
            dissent=[
                {"agent_id": str(d.get("agentId", "unknown")), "position": str(d.get("position", ""))}
                for d in _list("dissent")
                if isinstance(d, dict)
            ],
            open_questions=[str(q) for q in _list("openQuestions")],
            user_contributions=[str(c) for c in _list("userContributions")],
            sources=_list("sources") if isinstance(parsed.get("sources"), list)
            else self._source_list(research),
        )

    def fallback(
        self,
        log: ContextLog,
        consensus: float,
        research: Sequence[SourceResult],
    ) -> StructuredSummary:
        outcome = (
            "strong consensus was reached" if consensus >= 0.85
            else "multiple perspectives were explored without full agreement"
        )
        return StructuredSummary(
            verdict=(
                f"The council debated this problem across {len(log)} turns. "
                f"Synapse observed the full discussion and notes that {outcome}."
            ),
            confidence=confidence_label(consensus),
            sources=self._source_list(research),
        )

    def _source_list(self, research: Sequence[SourceResult]) -> list[dict]:
        seen: set[tuple[str, str]] = set()
        sources = []
        for r in research:
            key = (r.source, r.title)
            if key in seen:
                continue
            seen.add(key)
            sources.append({"name": self._source_name(r.source), "title": r.title, "url": r.url})
        return sources
