"""Tests for synapse/memory.py and synapse/prompts.py."""

import pytest

from synapse.memory import ContextLog
from synapse.prompts import build_reaction_context, build_turn_messages
from tests.conftest import make_profile


@pytest.fixture
def log() -> ContextLog:
    log = ContextLog()
    log.add_turn("alpha", "Start small.", "confident", "Alpha")
    log.add_turn("user", "Budget is tight.", "intervention", "User", message_id="user-1")
    log.add_turn("beta", "Then reuse the monolith.", "curious", "Beta")
    return log


def test_add_turn_numbers_and_ids(log):
    turns = log.turns
    assert [t.turn_number for t in turns] == [0, 1, 2]
    assert turns[0].message_id == "msg-0-alpha"
    assert turns[1].message_id == "user-1"
    assert turns[1].is_user
    assert log.last.agent_id == "beta"
    assert len(log) == 3


def test_turns_is_a_copy(log):
    log.turns.clear()
    assert len(log) == 3


def test_debate_history_labels_speakers(log):
    history = log.debate_history("beta")

    assert "[Alpha, confident]:\nStart small." in history
    assert "[User, intervention]:\nBudget is tight." in history
    assert "[Beta (you), curious]:\nThen reuse the monolith." in history


def test_debate_history_window(log):
    history = log.debate_history("alpha", max_turns=1)
    assert history == "[Beta, curious]:\nThen reuse the monolith."


def test_transcript_format(log):
    transcript = log.transcript()

    parts = transcript.split("\n\n---\n\n")
    assert len(parts) == 3
    assert parts[0] == "[Turn 1, Alpha (confident)]:\nStart small."
    assert parts[1].startswith("[Turn 2, User (intervention)]")


def test_reaction_context(log):
    reactions = {"msg-0-alpha": {"👍": 2}, "msg-2-beta": {"🤔": 1}, "gone": {"🔥": 9}}

    text = build_reaction_context(reactions, log, "alpha")

    assert text.splitlines() == [
        "- Your message received: 👍 x2",
        "- Beta's message received: 🤔 x1",
    ]
    assert build_reaction_context({}, log, "alpha") == ""


def test_opening_turn_has_no_history(app_config):
    alpha, beta = make_profile("alpha"), make_profile("beta")

    messages = build_turn_messages(
        app_config.prompts, "Monolith?", alpha, "confident", ContextLog(), 0, [alpha, beta]
    )

    assert [m["role"] for m in messages] == ["system", "user"]
    assert "Alpha" in messages[0]["content"]
    assert "Beta" in messages[0]["content"]
    assert "Monolith?" in messages[0]["content"]
    assert messages[1]["content"] == app_config.prompts.opening_instruction


def test_later_turn_carries_history_research_and_reactions(app_config, log):
    alpha, beta = make_profile("alpha"), make_profile("beta")
    prompts = app_config.prompts

    messages = build_turn_messages(
        prompts, "Monolith?", alpha, "skeptical", log, 3, [alpha, beta],
        research="- Wikipedia: Microservices", has_intervention=True, reactions="- Your message received: 👍 x2",
    )

    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[0]["content"].endswith(prompts.intervention_note)
    assert prompts.nudges["skeptical"] in messages[0]["content"]
    assert "[Alpha (you), confident]" in messages[1]["content"]
    instruction = messages[-1]["content"]
    assert instruction.startswith(prompts.turn_instruction.format(turn=4))
    assert "- Wikipedia: Microservices" in instruction
    assert "👍 x2" in instruction
