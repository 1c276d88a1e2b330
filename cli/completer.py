"""Custom completer for the video CLI with video file autocompletion."""

from pathlib import Path
from typing import Iterable, Optional

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from cli.constants import COMMANDS, SUPPORTED_FILE_EXTENSIONS


class VideoCompleter(Completer):
    """
    Custom completer that provides:
    - Command name completion for the first token
    - Video file path completion for the 'upload' command
    """

    def __init__(self, base_dir: Optional[Path] = None):
        """
        Args:
            base_dir: Directory relative paths are resolved against (cwd if None)
        """
        self.base_dir = base_dir

    def get_completions(
        self, document: Document, complete_event
    ) -> Iterable[Completion]:
        """
        Generate completions based on cursor position and context.

        For the first token, completes command names.
        For the first 'upload' argument, completes directories and video files.
        """
        text = document.text_before_cursor
        tokens = text.split()

        is_typing_new_token = text.endswith(" ") or not tokens

        if not tokens or (len(tokens) == 1 and not is_typing_new_token):
            yield from self._complete_commands(tokens[0] if tokens else "")
            return

        command = tokens[0].lower()
        if command != "upload":
            return

        args_before_current = len(tokens) - 1 if is_typing_new_token else len(tokens) - 2
        if args_before_current > 0:
            return

        current_word = "" if is_typing_new_token else tokens[-1]
        yield from self._complete_video_files(current_word)

    def _complete_commands(self, partial: str) -> Iterable[Completion]:
        """Complete command names matching the partial input."""
        partial_lower = partial.lower()
        for cmd in COMMANDS:
            if cmd.startswith(partial_lower):
                yield Completion(cmd, start_position=-len(partial))

    def _complete_video_files(self, partial: str) -> Iterable[Completion]:
        """
        Complete video files and directories under the directory part of partial.

        Shows a message if the directory holds no video files.
        """
        base_dir = self.base_dir or Path.cwd()
        dir_part, _, name_part = partial.rpartition("/")
        search_dir = base_dir / dir_part if dir_part else base_dir
        prefix = f"{dir_part}/" if dir_part else ""

        if not search_dir.is_dir():
            return

        candidates = []
        for item in search_dir.iterdir():
            if item.name.startswith("."):
                continue
            if item.is_dir():
                candidates.append(f"{prefix}{item.name}/")
            elif item.is_file() and item.name.lower().endswith(SUPPORTED_FILE_EXTENSIONS):
                candidates.append(f"{prefix}{item.name}")

        if not any(not c.endswith("/") for c in candidates) and not name_part:
            yield Completion(
                "",
                start_position=0,
                display="(no video files found)",
            )

        name_lower = name_part.lower()
        for candidate in sorted(candidates):
            if candidate[len(prefix):].lower().startswith(name_lower):
                yield Completion(candidate, start_position=-len(partial))
