from .command_line import CommandLine, SuggestionPopup
from .pr_list import PRList
from .status import LogPanel, StatusBar

__all__ = ["PRList", "CommandLine", "SuggestionPopup", "LogPanel", "StatusBar"]
