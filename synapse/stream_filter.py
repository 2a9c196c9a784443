"""Strip inline reasoning blocks (``<think>...</think>``) from a streamed response.

Tags may be split across fragments, so the filter is a small state machine:

    OUTSIDE         relay text, holding back any tail that could start an open tag
    BUFFERING       inside a reasoning block, drop everything until the close tag
    EMIT_REMAINDER  just closed a block, drop leading whitespace then go OUTSIDE
"""

OUTSIDE = "outside"
BUFFERING = "buffering"
EMIT_REMAINDER = "emit_remainder"


class ThinkBlockFilter:
    def __init__(self, open_tag: str = "<think>", close_tag: str = "</think>") -> None:
        if not open_tag or not close_tag:
            raise ValueError("Think-block tags must be non-empty")
        self._open = open_tag
        self._close = close_tag
        self._state = OUTSIDE
        self._held = ""

    @property
    def state(self) -> str:
        return self._state

    def feed(self, fragment: str) -> str:
        """Consume one fragment and return the part safe to relay now (may be "")."""
        data = self._held + fragment
        self._held = ""
        out: list[str] = []

        while data:
            if self._state == OUTSIDE:
                index = data.find(self._open)
                if index < 0:
                    keep = self._partial_open_suffix(data)
                    if keep:
                        self._held = data[-keep:]
                        data = data[:-keep]
                    out.append(data)
                    break
                out.append(data[:index])
                data = data[index + len(self._open):]
                self._state = BUFFERING

            elif self._state == BUFFERING:
                index = data.find(self._close)
                if index < 0:
                    tail = len(self._close) - 1
                    self._held = data[-tail:] if tail else ""
                    break
                data = data[index + len(self._close):]
                self._state = EMIT_REMAINDER

            else:
                data = data.lstrip()
                if data:
                    self._state = OUTSIDE

        return "".join(out)

    def flush(self) -> str:
        """End of stream: release held-back text. An unclosed block is discarded."""
        held, self._held = self._held, ""
        return held if self._state == OUTSIDE else ""

    def _partial_open_suffix(self, data: str) -> int:
        for size in range(min(len(self._open) - 1, len(data)), 0, -1):
            if data.endswith(self._open[:size]):
                return size
        return 0
