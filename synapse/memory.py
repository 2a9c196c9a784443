"""Append-only debate transcript shared by every scorer."""

from synapse.models import USER_ID, Turn


class ContextLog:
    def __init__(self) -> None:
        self._turns: list[Turn] = []

    def __len__(self) -> int:
        return len(self._turns)

    def add_turn(
        self,
        agent_id: str,
        content: str,
        stance: str,
        display_name: str | None = None,
        message_id: str | None = None,
    ) -> Turn:
        index = len(self._turns)
        turn = Turn(
            agent_id=agent_id,
            display_name=display_name or agent_id,
            content=content,
            turn_number=index,
            stance=stance,
            message_id=message_id or f"msg-{index}-{agent_id}",
        )
        self._turns.append(turn)
        return turn

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def debate_history(self, agent_id: str | None = None, max_turns: int = 8) -> str:
        """Recent turns labelled by speaker so agents can address each other by name."""
        entries = []
        for turn in self._turns[-max_turns:]:
            if turn.agent_id == USER_ID:
                label = "User"
            elif turn.agent_id == agent_id:
                label = f"{turn.display_name} (you)"
            else:
                label = turn.display_name
            entries.append(f"[{label}, {turn.stance}]:\n{turn.content}")
        return "\n\n".join(entries)

    def transcript(self) -> str:
        entries = []
        for turn in self._turns:
            label = "User" if turn.is_user else turn.display_name
            entries.append(f"[Turn {turn.turn_number + 1}, {label} ({turn.stance})]:\n{turn.content}")
        return "\n\n---\n\n".join(entries)
