"""Per-turn prompt assembly from the transcript, stance, research and audience reactions."""

from collections.abc import Mapping, Sequence

from config.config_loader import PromptsConfig
from synapse.memory import ContextLog
from synapse.models import AgentProfile
from synapse.providers.base import Message

_REACTION_WINDOW = 4
_HISTORY_ACK = "Got it, I've been following the discussion. Here's my take."


def build_reaction_context(
    reactions: Mapping[str, Mapping[str, int]],
    log: ContextLog,
    agent_id: str,
) -> str:
    """Summarise emoji tallies on the most recent transcript entries ("" when none)."""
    if not reactions:
        return ""
    lines = []
    for turn in log.turns[-_REACTION_WINDOW:]:
        tally = reactions.get(turn.message_id)
        if not tally:
            continue
        emoji = ", ".join(f"{e} x{count}" for e, count in tally.items())
        label = "Your" if turn.agent_id == agent_id else f"{turn.display_name}'s"
        lines.append(f"- {label} message received: {emoji}")
    return "\n".join(lines)


def build_turn_messages(
    prompts: PromptsConfig,
    problem: str,
    agent: AgentProfile,
    stance: str,
    log: ContextLog,
    turn_number: int,
    roster: Sequence[AgentProfile],
    research: str = "",
    has_intervention: bool = False,
    reactions: str = "",
    history_turns: int = 8,
) -> list[Message]:
    others = [a for a in roster if a.id != agent.id]
    system = prompts.turn_system.format(
        display_name=agent.display_name,
        other_names=", ".join(a.display_name for a in others) or "none",
        problem=problem,
        nudge=prompts.nudges.get(stance, ""),
        example_name=others[0].display_name if others else "them",
    )
    if has_intervention:
        system += prompts.intervention_note

    messages: list[Message] = [{"role": "system", "content": system}]

    history = log.debate_history(agent.id, max_turns=history_turns)
    if history:
        messages.append({"role": "user", "content": f"Here is the debate so far:\n\n{history}"})
        messages.append({"role": "assistant", "content": _HISTORY_ACK})

    if turn_number == 0:
        instruction = prompts.opening_instruction
    else:
        instruction = prompts.turn_instruction.format(turn=turn_number + 1)
    if research:
        instruction += prompts.research_block.format(research=research)
    if reactions:
        instruction += prompts.reaction_block.format(reactions=reactions)

    messages.append({"role": "user", "content": instruction})
    return messages
