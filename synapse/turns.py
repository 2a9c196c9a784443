"""Turn scheduling: who speaks next, round rotation, and when a pass is done."""

from collections.abc import Sequence

RUNNING = "running"
CONVERGED = "converged"
EXHAUSTED = "exhausted"


class TurnManager:
    """Finite-state scheduler for one orchestration pass.

    The speaking order rotates by one at the end of every full round so a
    different agent opens each round. A pass is never complete until every
    agent still in the order has spoken once, except that ``max_turns`` always
    applies.
    """

    def __init__(self, agent_ids: Sequence[str], max_turns: int = 12, max_rounds: int = 3) -> None:
        if not agent_ids:
            raise ValueError("TurnManager needs at least one agent")
        self._roster = list(agent_ids)
        self._order = list(agent_ids)
        self._position = 0
        self._turn = 0
        self._spoken: set[str] = set()
        self._unavailable: set[str] = set()
        self._converged = False
        self.max_turns = max_turns
        self.max_rounds = max_rounds

    @property
    def turn(self) -> int:
        return self._turn

    @property
    def round(self) -> int:
        return self._turn // len(self._roster)

    @property
    def order(self) -> list[str]:
        return list(self._order)

    @property
    def spoken(self) -> frozenset[str]:
        return frozenset(self._spoken)

    @property
    def unavailable(self) -> frozenset[str]:
        return frozenset(self._unavailable)

    @property
    def all_spoken(self) -> bool:
        required = set(self._roster) - self._unavailable
        return required <= self._spoken

    @property
    def state(self) -> str:
        if not self.is_complete():
            return RUNNING
        return CONVERGED if self._converged and self.all_spoken else EXHAUSTED

    def next_agent(self) -> str | None:
        """Agent id at the current rotation position, or None when nobody is left."""
        if not self._order:
            return None
        return self._order[self._position]

    def advance_turn(self) -> None:
        self._turn += 1
        if not self._order:
            return
        current = self._order[self._position]
        if current in self._unavailable:
            # Dropping the current speaker already moves the next one into this slot.
            self._order.pop(self._position)
        else:
            self._position += 1
        if self._position >= len(self._order):
            self._position = 0
            self._rotate()

    def mark_spoken(self, agent_id: str) -> None:
        self._spoken.add(agent_id)

    def mark_unavailable(self, agent_id: str) -> None:
        """Exclude an agent for the rest of this pass.

        The current speaker is dropped on the next ``advance_turn``; anyone
        else leaves the order immediately.
        """
        self._unavailable.add(agent_id)
        if agent_id not in self._order or self.next_agent() == agent_id:
            return
        index = self._order.index(agent_id)
        self._order.pop(index)
        if index < self._position:
            self._position -= 1
        if self._position >= len(self._order):
            self._position = 0

    def mark_converged(self) -> None:
        self._converged = True

    def is_complete(self) -> bool:
        if not self._order:
            return True
        if self._turn >= self.max_turns:
            return True
        if not self.all_spoken:
            return False
        return self._converged or self.round >= self.max_rounds

    def _rotate(self) -> None:
        if len(self._order) > 1:
            self._order.append(self._order.pop(0))
