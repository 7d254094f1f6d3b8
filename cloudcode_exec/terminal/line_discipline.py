"""
Line editing for shells attached through plain pipes.

A pipe gives the shell no echo and no control-character handling, so raw
keystrokes from the browser terminal are turned into complete lines here,
with the echo the user expects to see.
"""

from dataclasses import dataclass, field

CR = "\r"
LF = "\n"
BACKSPACE = "\b"
DEL = "\x7f"
ETX = "\x03"  # Ctrl+C
FF = "\x0c"  # Ctrl+L
ESC = "\x1b"

# keys that keep their meaning right after a lone ESC (the Escape key)
_BREAKS_ESCAPE = frozenset((CR, LF, BACKSPACE, DEL, ETX, FF))

NEWLINE_ECHO = "\r\n"
ERASE_ECHO = "\b \b"
INTERRUPT_ECHO = "^C\r\n"
CLEAR_SCREEN_ECHO = "\x1b[2J\x1b[H"

_STATE_TEXT = 0
_STATE_ESCAPE = 1
_STATE_CSI = 2
_STATE_SS3 = 3


@dataclass(slots=True)
class DisciplineResult:
    """What one chunk of keystrokes produced."""

    lines: list[str] = field(default_factory=list)
    echo: str = ""
    interrupt: bool = False


class LineDiscipline:
    """Accumulates keystrokes into lines.

    Escape sequences (arrow keys, function keys) and other non-printable
    characters are dropped. Sequence state carries over between chunks; a
    line-editing control key abandons an unfinished sequence.
    """

    def __init__(self) -> None:
        self._buffer: list[str] = []
        self._state = _STATE_TEXT
        self._after_cr = False

    @property
    def buffer(self) -> str:
        return "".join(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()
        self._state = _STATE_TEXT
        self._after_cr = False

    def feed(self, chunk: str) -> DisciplineResult:
        result = DisciplineResult()
        echo: list[str] = []

        for ch in chunk:
            after_cr = self._after_cr
            self._after_cr = False

            if self._state != _STATE_TEXT:
                if ch not in _BREAKS_ESCAPE:
                    self._consume_escape(ch)
                    continue
                self._state = _STATE_TEXT

            if ch == CR or ch == LF:
                if ch == LF and after_cr:
                    # CRLF is one line terminator
                    continue
                result.lines.append(self.buffer)
                self._buffer.clear()
                echo.append(NEWLINE_ECHO)
                self._after_cr = ch == CR
            elif ch == BACKSPACE or ch == DEL:
                if self._buffer:
                    self._buffer.pop()
                    echo.append(ERASE_ECHO)
            elif ch == ETX:
                self._buffer.clear()
                echo.append(INTERRUPT_ECHO)
                result.interrupt = True
            elif ch == FF:
                echo.append(CLEAR_SCREEN_ECHO)
            elif ch == ESC:
                self._state = _STATE_ESCAPE
            elif ch.isprintable():
                self._buffer.append(ch)
                echo.append(ch)

        result.echo = "".join(echo)
        return result

    def _consume_escape(self, ch: str) -> None:
        if self._state == _STATE_ESCAPE:
            if ch == "[":
                self._state = _STATE_CSI
            elif ch == "O":
                self._state = _STATE_SS3
            else:
                self._state = _STATE_TEXT
        elif self._state == _STATE_CSI:
            # parameter and intermediate bytes continue, a final byte ends it
            if "\x40" <= ch <= "\x7e":
                self._state = _STATE_TEXT
        else:
            self._state = _STATE_TEXT
