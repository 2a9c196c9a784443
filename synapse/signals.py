"""Text-signal classification behind every heuristic scorer.

Consensus, momentum, stance transitions, search triggers, council assembly and
intervention triage all consume a ``TextSignals`` record produced by a
``TextSignalClassifier``. The default implementation is a battery of phrase
patterns; anything honouring the same contract (an embedding model, say) can be
swapped in without touching the scheduling code.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol


@dataclass(frozen=True)
class TextSignals:
    agreement: bool = False
    disagreement: bool = False
    stance_shift: bool = False       # explicit concession / mind-changing language
    causal: bool = False             # "because", "therefore", ...
    pushback: bool = False           # broader disagreement battery used for momentum
    char_count: int = 0
    word_count: int = 0
    stance_cues: tuple[str, ...] = ()        # stances whose language matched, in priority order
    search_topics: tuple[str, ...] = ()      # topic ids whose patterns matched
    capability_needs: tuple[str, ...] = ()   # capability ids the text calls for
    intervention_category: str = "contribution"


class TextSignalClassifier(Protocol):
    def classify(self, text: str) -> TextSignals:
        ...


def _rx(*phrases: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(phrases) + r")\b")


_AGREEMENT = _rx(
    "i agree", "good point", "you're right", "exactly", "building on",
    "i concur", "well said", "strong argument",
)
_DISAGREEMENT = _rx(
    "i disagree", "however", "but i think", "on the contrary", "i challenge",
    "not quite", "that's not", "i'd push back",
)
_STANCE_SHIFT = _rx(
    "i was wrong", "i've changed my mind", "you've convinced me", "i concede",
    "fair enough", "i stand corrected", "updating my position",
)
_CAUSAL = _rx("because", "since", "this means", "therefore", "which implies", "furthermore")
_PUSHBACK = _rx(
    "i disagree", "however", "but i think", "on the contrary", "push back",
    "challenge", "not quite", "that's not",
)

# Order matters: the psychology engine takes the first cue that differs from
# the agent's current stance.
_STANCE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("concessive", _rx(
        "you're right", "good point", "i agree", "i was wrong", "fair enough",
        "i concede", "you raise a valid", "that's true", "can't argue with",
        "i stand corrected", "valid point", "i'll give you that",
    )),
    ("skeptical", _rx(
        "i disagree", "not convinced", r"where's the (?:proof|evidence)",
        "how do we know", "that's a stretch", "i'm not sure", "hold on",
        "wait a minute", "that doesn't add up", "questionable", "citation needed",
        "unsubstantiated",
    )),
    ("curious", _rx(
        "what if", "i wonder", "interesting", "what about", "have we considered",
        "what happens when", "curious", "that raises the question", "fascinating",
        "let me ask", "how would that work",
    )),
    ("enthusiastic", _rx(
        "brilliant", "excellent", "exactly", "great idea", "this is key", "breakthrough",
        "love this", r"yes(?=!)", "amazing", "absolutely", "that's it", "bingo", "nailed it",
        "perfect", "incredible",
    )),
    ("synthesizer", _rx(
        "both of you", "combining", "if we merge", "the common thread",
        "actually saying the same", "bringing together", r"the real (?:disagreement|issue)",
        "underlying", "connect", "unify", "framework", "pattern here",
    )),
    ("analytical", _rx(
        "let me break", "step by step", r"first,? second", r"the data (?:shows|suggests)",
        "statistically", "empirically", "technically", "specifically",
        r"the key (?:variable|factor)", "assumption", "hypothesis", "evidence suggests",
    )),
    ("provocateur", _rx(
        "flip this", "what if the opposite", "controversial", "unpopular opinion",
        "hear me out", r"nobody's (?:talking|mentioning)", "elephant in the room",
        "completely different angle", "plot twist", "hot take",
    )),
    ("devil_advocate", _rx(
        "playing devil", "for the sake of argument", "counterpoint",
        "but what about the risk", "the other side", "we're ignoring", "groupthink",
        "blind spot", "worst case", "downside",
    )),
)

_SEARCH_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("contestable", _rx(
        "studies show", "research suggests", "according to", "data indicates",
        "evidence suggests", "experts say",
    )),
    ("recency", _rx(
        "latest", "recent", "current", r"20[2-3]\d", "trending", "new", "updated", "nowadays",
    )),
    ("technical", _rx(
        "code", "programming", "library", "framework", "api", "algorithm",
        "implementation", "software", "developer",
    )),
    ("scientific", _rx(
        "clinical", "medical", "health", "disease", "treatment", "diagnosis",
        "biology", "chemistry", "physics", "research paper",
    )),
    ("community", _rx(
        "people think", "community", "opinion", "experience", r"real.world",
        r"anecdot\w*", "review", "recommend",
    )),
    ("knowledge_gap", _rx(
        "what is", "who is", "how does", "definition", "explain", "history of",
    )),
    ("product", _rx(
        r"which (?:brand|product|tool|service|model)", r"best (?:brand|product|tool|app|option)s?",
        "pricing", "price of", "how much does", "worth buying", r"alternatives? to",
    )),
)

_CAPABILITY_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("code_reasoning", re.compile(r"code|function|algorithm|debug|program|software|\bapi\b|bug")),
    ("image_analysis", re.compile(r"image|visual|picture|diagram|photo|screenshot")),
    ("data_analysis", re.compile(r"data|statistic|number|chart|graph|metric|analysis")),
    ("web_search", re.compile(r"search|research|find|latest|current|news|fact")),
    ("multilingual", re.compile(r"translate|language|multilingual|spanish|french|chinese")),
    ("synthesis", re.compile(r"synthesi[sz]e|summary|combine|integrate|overview")),
)

_REDIRECT = _rx(
    "stop", "wrong direction", "off track", "too complicated", "simplify",
    "bring it back", "focus on", "you're missing", "irrelevant",
)
_CLARIFICATION = _rx(
    "actually", "i meant", "not what i", "to clarify", "clarification", "correction",
    "i should mention", "constraint", "budget", "limit",
)


def _normalize(text: str) -> str:
    return text.lower().replace("’", "'")


@lru_cache(maxsize=1024)
def _classify(text: str) -> TextSignals:
    lower = _normalize(text)

    if _REDIRECT.search(lower):
        category = "redirect"
    elif _CLARIFICATION.search(lower):
        category = "clarification"
    else:
        category = "contribution"

    return TextSignals(
        agreement=bool(_AGREEMENT.search(lower)),
        disagreement=bool(_DISAGREEMENT.search(lower)),
        stance_shift=bool(_STANCE_SHIFT.search(lower)),
        causal=bool(_CAUSAL.search(lower)),
        pushback=bool(_PUSHBACK.search(lower)),
        char_count=len(text),
        word_count=len(text.split()),
        stance_cues=tuple(name for name, rx in _STANCE_PATTERNS if rx.search(lower)),
        search_topics=tuple(name for name, rx in _SEARCH_PATTERNS if rx.search(lower)),
        capability_needs=("general_reasoning",)
        + tuple(name for name, rx in _CAPABILITY_PATTERNS if rx.search(lower)),
        intervention_category=category,
    )


class RegexSignalClassifier:
    """Phrase-pattern classifier. Stateless; results are memoised per text."""

    def classify(self, text: str) -> TextSignals:
        return _classify(text)


DEFAULT_CLASSIFIER = RegexSignalClassifier()
