from __future__ import annotations

from collections.abc import Sequence

from rich.text import Text
from textual.widgets import Static

from ..suggestions import Suggestion

PROMPT = "> "
HINT = "Press / to type a command (/help)"


class CommandLine(Static):
    """The command buffer, followed by the transient status message if any."""

    def show(self, buffer: str, active: bool, message: str | None) -> None:
        text = Text()
        if active:
            text.append(PROMPT + buffer)
            text.append("█", style="blink")
        else:
            text.append(HINT, style="dim")
        if message:
            text.append(f"\n{message}", style="bold red")
        self.update(text)


class SuggestionPopup(Static):
    """Completion candidates for the command buffer; hidden when there are none."""

    def show(self, items: Sequence[Suggestion], index: int) -> None:
        if not items:
            self.display = False
            return
        index = min(index, len(items) - 1)
        text = Text("Commands (Up/Down + Tab)\n", style="bold")
        for i, item in enumerate(items):
            line = f"{item.text.rstrip():<32} {item.description}"
            if i:
                text.append("\n")
            if i == index:
                text.append("> " + line, style="bold")
            else:
                text.append("  " + line)
        self.update(text)
        self.display = True
