"""Interactive RCON console.

Reads lines with prompt_toolkit, forwards plain lines to the server through
the CommandExecutor, handles dot-commands client-side, and prints results
with rich.
"""

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document
from prompt_toolkit.formatted_text import HTML
from rich.console import Console

from .commands import DOT_HELP, QUIT, handle_dot_command
from .display import format_result
from .executor import CommandExecutor
from .history import get_history
from .orchestrator import SaveSwapOrchestrator, ServerState

console = Console()

# Factorio console commands offered for completion.
SERVER_COMMANDS = [
    "/admins",
    "/ban",
    "/c",
    "/demote",
    "/evolution",
    "/help",
    "/kick",
    "/players",
    "/promote",
    "/seed",
    "/server-save",
    "/shout",
    "/silent-command",
    "/time",
    "/unban",
    "/version",
    "/whisper",
]


def run_repl(
    executor: CommandExecutor,
    orchestrator: SaveSwapOrchestrator | None = None,
    *,
    session: PromptSession | None = None,
) -> None:
    """Run the interactive console loop until .quit or Ctrl-D.

    Args:
        executor: Executor used for every server command.
        orchestrator: Enables .saves/.load/.state when given.
        session: Prompt session to read from (tests pass their own).
    """
    if session is None:
        session = PromptSession(history=get_history())
    completer = _console_completer()

    try:
        while True:
            state = orchestrator.state if orchestrator is not None else None
            try:
                line = session.prompt(_prompt(state), completer=completer)
            except EOFError:
                console.print("\nGoodbye")
                break
            except KeyboardInterrupt:
                # Ctrl-C: cancel current line
                continue

            trimmed = line.strip()
            if not trimmed:
                continue

            if trimmed.startswith("."):
                result = handle_dot_command(trimmed, executor=executor, orchestrator=orchestrator)
                if result is QUIT:
                    console.print("Goodbye")
                    break
                if result is not None:
                    console.print(result, highlight=False)
                continue

            console.print(format_result(executor.execute(trimmed)), highlight=False)
    finally:
        executor.close()


def _prompt(state: ServerState | None) -> HTML:
    """Prompt showing the server state when it is not simply running."""
    if state is None or state is ServerState.RUNNING:
        return HTML("<style fg='ansigray'>[rcon]</style> <b>&gt;</b> ")
    return HTML(
        f"<style fg='ansigray'>[rcon:{state.value.lower()}]</style> <b>&gt;</b> "
    )


class _PrefixCompleter(Completer):
    """Completer matching the whole current word, leading '.' or '/' included.

    WordCompleter splits on punctuation so '.h<TAB>' would not match
    '.help'.
    """

    def __init__(self, words: list[str]) -> None:
        self.words = [w.lower() for w in words]

    def get_completions(self, document: Document, complete_event):
        text = document.text_before_cursor
        space_idx = text.rfind(" ")
        current_word = text[space_idx + 1 :] if space_idx >= 0 else text
        prefix = current_word.lower()

        for word in self.words:
            if word.startswith(prefix):
                yield Completion(word, start_position=-len(current_word))


def _console_completer() -> _PrefixCompleter:
    return _PrefixCompleter([f".{name}" for name in DOT_HELP] + SERVER_COMMANDS)
