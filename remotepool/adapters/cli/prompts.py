"""
Rich-based user prompts
"""
from typing import Optional
from rich.console import Console
from rich.prompt import Prompt

from ...core.logging import get_stdout_console


class RichPromptProvider:
    """Asks for connection values missing from the configuration"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or get_stdout_console()

    def prompt(self, message: str, default: Optional[str] = None, password: bool = False) -> str:
        """Prompt user for input"""
        if default is not None:
            message = f"{message} (default: {default})"
        return Prompt.ask(message, password=password, default=default, console=self.console)
