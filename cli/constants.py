"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

from common.constants import VIDEO_FILE_EXTENSIONS

COMMANDS = ["upload", "cleanup", "health", "clear", "help", "exit"]

STYLE = Style.from_dict(
    {
        "prompt": "#2E86DE bold",
        "command": "#0088ff bold",
    }
)

BLUE = "\033[38;2;46;134;222m"
GREEN = "\033[38;2;46;204;113m"
YELLOW = "\033[38;2;241;196;15m"
RESET = "\033[0m"

LOGO = f"""{BLUE}
 ██╗     ███╗   ███╗███████╗    ██╗   ██╗██╗██████╗ ███████╗ ██████╗
 ██║     ████╗ ████║██╔════╝    ██║   ██║██║██╔══██╗██╔════╝██╔═══██╗
 ██║     ██╔████╔██║███████╗    ██║   ██║██║██║  ██║█████╗  ██║   ██║
 ██║     ██║╚██╔╝██║╚════██║    ╚██╗ ██╔╝██║██║  ██║██╔══╝  ██║   ██║
 ███████╗██║ ╚═╝ ██║███████║     ╚████╔╝ ██║██████╔╝███████╗╚██████╔╝
 ╚══════╝╚═╝     ╚═╝╚══════╝      ╚═══╝  ╚═╝╚═════╝ ╚══════╝ ╚═════╝
{RESET}"""

WELCOME_TITLE = "LMS Video CLI - Chunked video uploads"
WELCOME_HELP = "Type 'help' for commands or 'exit' to quit.\n"

PROMPT_TEXT = "lmsvideo> "

HELP_TEXT = """Available commands:
  upload <file> [chunk-size-MiB]      Upload a video in chunks (default chunk size from config)
  cleanup <filename>                  Remove staged chunks of an abandoned upload
  health                              Show server and object store status
  clear                               Clear screen and redisplay welcome message
  help                                Show this help
  exit                                Exit REPL

Examples:
  upload lecture01.mp4
  upload "week 2/intro.mov" 8
  cleanup lecture01.mp4"""

SUPPORTED_FILE_EXTENSIONS = VIDEO_FILE_EXTENSIONS
