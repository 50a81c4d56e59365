import logging
from abc import ABC, abstractmethod
from pathlib import Path

from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.panel import Panel

from interview_engine.core.constants import EXIT_COMMANDS, EXIT_SIGNAL
from interview_engine.core.logging import LOGGER_NAME


class IOInterface(ABC):
    """Abstract interface for candidate input/output operations."""

    @abstractmethod
    def print(self, message: str) -> None:
        """Print a message to the candidate."""
        pass

    @abstractmethod
    def input(self, prompt: str) -> str:
        """Get input from the candidate with a prompt."""
        pass

    def print_question(self, number: int, text: str, subtitle: str | None = None) -> None:
        self.print(f"Q{number}: {text}")

    def print_info(self, message: str) -> None:
        self.print(message)

    def print_error(self, message: str) -> None:
        self.print(message)


class RichConsoleIO(IOInterface):
    """Console implementation with panels, input history and exit commands."""

    def __init__(self, session_id: str | None = None, console: Console | None = None):
        self.session_id = session_id
        self.console = console or Console()
        self.history_file = None

        if session_id:
            sanitized_id = self._sanitize_session_id(session_id)
            history_dir = Path.home() / ".interview_engine" / "history"
            history_dir.mkdir(parents=True, exist_ok=True)
            self.history_file = str(history_dir / f"{sanitized_id}.txt")

    def _sanitize_session_id(self, session_id: str) -> str:
        """Keep only characters that are safe in a file name (max 50)."""
        sanitized = "".join(c for c in session_id if c.isalnum() or c in "-_")
        return sanitized[:50] if sanitized else "unknown_session"

    def print(self, message: str) -> None:
        self.console.print(message)

    def print_question(self, number: int, text: str, subtitle: str | None = None) -> None:
        panel = Panel(text, title=f"Question {number}", subtitle=subtitle, border_style="blue", padding=(1, 2))
        self.console.print(panel)

    def input(self, prompt_str: str) -> str:
        try:
            self.console.print(f"[bold green]{prompt_str}[/bold green]", end="")
            history = FileHistory(self.history_file) if self.history_file else None
            result = prompt(
                "",
                history=history,
                completer=WordCompleter(sorted(EXIT_COMMANDS), ignore_case=True),
                complete_while_typing=False,
            )
        except (KeyboardInterrupt, EOFError):
            self.console.print("\n[yellow]Tip: type 'exit' or 'quit' to end the interview[/yellow]\n")
            return ""
        except OSError as e:
            # No usable terminal (e.g. piped stdin)
            logging.getLogger(LOGGER_NAME).warning(
                "Console input failed, falling back to basic input",
                extra={"error_type": type(e).__name__, "component": "io", "operation": "input"},
            )
            result = input(prompt_str)

        cleaned = result.strip()
        if cleaned.lower() in EXIT_COMMANDS:
            return EXIT_SIGNAL
        return cleaned

    def print_info(self, message: str) -> None:
        self.console.print(f"[cyan]i[/cyan] {message}")

    def print_error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")


class TestableIO(IOInterface):
    """IOInterface with predefined answers, for tests."""

    __test__ = False

    def __init__(self, responses: list[str] | None = None):
        self.responses = responses or []
        self.response_index = 0
        self.printed_messages: list[str] = []

    def print(self, message: str) -> None:
        self.printed_messages.append(message)

    def input(self, prompt: str) -> str:
        if self.response_index < len(self.responses):
            response = self.responses[self.response_index]
            self.response_index += 1
            return EXIT_SIGNAL if response.strip().lower() in EXIT_COMMANDS else response
        return EXIT_SIGNAL
