"""Command parser for CLI input."""

import shlex

from cli.models import CleanupCommand, CommandRequest, HealthCommand, UploadCommand


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


def parse_command(input_line: str) -> CommandRequest:
    """Parse user input into a CommandRequest object.

    Args:
        input_line: Raw user input from REPL

    Returns:
        CommandRequest object (one of Upload/Cleanup/Health)

    Raises:
        ParseError: If command syntax is invalid
    """
    if not input_line.strip():
        raise ParseError("Empty command")

    try:
        tokens = shlex.split(input_line)
    except ValueError as e:
        raise ParseError(f"Invalid syntax: {e}")

    if not tokens:
        raise ParseError("Empty command")

    command_name = tokens[0]

    if command_name == "upload":
        return _parse_upload(tokens[1:])
    elif command_name == "cleanup":
        return _parse_cleanup(tokens[1:])
    elif command_name == "health":
        return _parse_health(tokens[1:])
    else:
        raise ParseError(f"Unknown command: {command_name}")


def _parse_upload(args: list[str]) -> UploadCommand:
    """Parse 'upload <file> [chunk-size-MiB]' command."""
    if not args or len(args) > 2:
        raise ParseError("upload requires 1 or 2 arguments: <file> [chunk-size-MiB]")

    chunk_size_mib = None
    if len(args) == 2:
        try:
            chunk_size_mib = float(args[1])
        except ValueError:
            raise ParseError(f"Chunk size must be a number of MiB, got '{args[1]}'")
        if chunk_size_mib <= 0:
            raise ParseError("Chunk size must be greater than 0")

    return UploadCommand(file_path=args[0], chunk_size_mib=chunk_size_mib)


def _parse_cleanup(args: list[str]) -> CleanupCommand:
    """Parse 'cleanup <filename>' command."""
    if len(args) != 1:
        raise ParseError("cleanup requires exactly 1 argument: <filename>")

    return CleanupCommand(filename=args[0])


def _parse_health(args: list[str]) -> HealthCommand:
    """Parse 'health' command."""
    if args:
        raise ParseError("health takes no arguments")

    return HealthCommand()
