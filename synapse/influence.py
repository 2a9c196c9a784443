"""Post-hoc influence scores: how much each turn appears to have shaped the outcome."""

from collections.abc import Sequence

from config.config_loader import InfluenceTuning
from synapse.models import KeyMoment, QuoteLink, ScoreSample, Turn


class InfluenceScorer:
    def __init__(self, tuning: InfluenceTuning | None = None) -> None:
        self._tuning = tuning or InfluenceTuning()

    def score(
        self,
        turns: Sequence[Turn],
        key_moments: Sequence[KeyMoment],
        consensus_history: Sequence[ScoreSample],
        quote_links: Sequence[QuoteLink],
    ) -> dict[str, float]:
        """Map message id -> influence in [0, 1], the top turn scoring exactly 1.0."""
        t = self._tuning
        after_turn = {s.turn: i for i, s in enumerate(consensus_history)}
        raw: dict[str, float] = {}
        cited_before = False

        for turn in turns:
            value = 0.0

            if any(self._matches_moment(turn, km) for km in key_moments):
                value += t.key_moment_bonus

            quoted = sum(1 for q in quote_links if q.source_message_id == turn.message_id)
            value += min(quoted * t.quote_bonus, t.quote_cap)

            index = after_turn.get(turn.turn_number)
            if index is not None and index > 0:
                before = consensus_history[index - 1].score
                after = consensus_history[index].score
                if abs(after - before) > t.consensus_shift:
                    value += t.consensus_shift_bonus

            if turn.is_user:
                value += t.intervention_bonus

            if t.live_marker in turn.content.lower():
                if not cited_before:
                    value += t.first_citation_bonus
                cited_before = True

            raw[turn.message_id] = value

        if not raw:
            return {}
        top = max(raw.values())
        if top <= 0:
            return {message_id: 1.0 for message_id in raw}
        return {message_id: round(value / top, 2) for message_id, value in raw.items()}

    def _matches_moment(self, turn: Turn, moment: KeyMoment) -> bool:
        speaker = moment.agent_id.lower()
        if speaker not in (turn.agent_id.lower(), turn.display_name.lower()):
            return False
        return self._overlaps(turn.content, moment.excerpt)

    def _overlaps(self, content: str, excerpt: str) -> bool:
        t = self._tuning
        if len(excerpt) < t.min_excerpt_chars:
            return False
        words = [w for w in excerpt.lower().split() if len(w) >= t.significant_word_len]
        if not words:
            return False
        lowered = content.lower()
        hits = sum(1 for w in words if w in lowered)
        return hits >= min(t.overlap_cap, len(words) * t.overlap_ratio)
