"""Detect when a new turn names earlier speakers and link it to their latest message."""

import re
from collections.abc import Sequence

from synapse.models import AgentProfile, QuoteLink, Turn

_EXCERPT_CHARS = 80
_FIRST_SENTENCE = re.compile(r"^[^.!?\n]+[.!?]?")


def extract_excerpt(content: str, limit: int = _EXCERPT_CHARS) -> str:
    """First sentence of ``content``, truncated to ``limit`` characters."""
    cleaned = content.lstrip()
    match = _FIRST_SENTENCE.match(cleaned)
    sentence = match.group(0) if match else cleaned[:limit]
    if len(sentence) <= limit:
        return sentence.strip()
    return sentence[: limit - 3].strip() + "..."


def _name_pattern(display_name: str) -> re.Pattern[str]:
    return re.compile(r"(?<!\w)(?:@\s*)?" + re.escape(display_name) + r"(?!\w)", re.IGNORECASE)


class QuoteDetector:
    def detect(
        self,
        turn: Turn,
        roster: Sequence[AgentProfile],
        history: Sequence[Turn],
    ) -> list[QuoteLink]:
        """Links from ``turn`` to the latest prior message of every agent it names.

        At most one link per referenced agent, ordered by where each name first
        appears in the text.
        """
        mentions: list[tuple[int, AgentProfile]] = []
        text = turn.content
        # Longest names first; a matched name is blanked out so "Claude" cannot match inside "Claude Haiku".
        for agent in sorted(roster, key=lambda a: len(a.display_name), reverse=True):
            pattern = _name_pattern(agent.display_name)
            match = pattern.search(text)
            if match is None:
                continue
            text = pattern.sub(lambda m: " " * len(m.group(0)), text)
            if agent.id != turn.agent_id:
                mentions.append((match.start(), agent))
        mentions.sort(key=lambda m: m[0])

        links: list[QuoteLink] = []
        seen: set[str] = set()
        for _, agent in mentions:
            if agent.id in seen:
                continue
            referenced = next(
                (t for t in reversed(history) if t.agent_id == agent.id and t.content.strip()),
                None,
            )
            if referenced is None:
                continue
            seen.add(agent.id)
            links.append(
                QuoteLink(
                    source_message_id=referenced.message_id,
                    target_message_id=turn.message_id,
                    agent_name=agent.display_name,
                    excerpt=extract_excerpt(referenced.content),
                )
            )
        return links
