"""History file management for the RCON console.

Uses prompt_toolkit's FileHistory to persist command history to
~/.factorio_rcon_history between sessions.
"""

import os

from prompt_toolkit.history import FileHistory

HISTORY_PATH = os.path.expanduser("~/.factorio_rcon_history")


def get_history(path: str = HISTORY_PATH) -> FileHistory:
    """Return a FileHistory instance for the REPL.

    The file is created on first write.
    """
    return FileHistory(path)
