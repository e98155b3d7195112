"""Constants and default values for GitFlash."""

import re

# Default model configuration
DEFAULT_MODEL = "anthropic:claude-sonnet-4-5"

# Operation defaults
DEFAULT_OPERATION_TIMEOUT = 120  # seconds
DEFAULT_MAX_TURNS = 25
DEFAULT_TRANSPORT = "local"
TRANSPORTS = ("local", "subprocess")

# Extra time the subprocess transport waits beyond the server-side timeout
TRANSPORT_GRACE_SECONDS = 5

# File size limits (in MB)
DEFAULT_MAX_READ_MB = 8
DEFAULT_MAX_WRITE_MB = 2

# Chunk size used for deadline-checked reads and writes
IO_CHUNK_SIZE = 64 * 1024

# Home for credentials and run logs (overridable with GITFLASH_HOME)
DEFAULT_HOME_DIRNAME = ".gitflash"

# Version control
VCS_EXECUTABLE = "git"
VCS_ENV_KEEP = ["PATH", "HOME", "USER", "LANG", "LC_ALL", "SSH_AUTH_SOCK"]
VCS_ENV_EXTRA = {"GIT_TERMINAL_PROMPT": "0", "GIT_PAGER": "cat", "PAGER": "cat"}

# Injected into every operation request, never model-controlled
WORKING_DIRECTORY_ARG = "working_directory"

# Result fed back to the model in dry-run mode
DRY_RUN_PLACEHOLDER = "Dry run mode, operation not executed."

EMPTY_DIRECTORY_MARKER = "Directory is empty."
NO_FILES_MARKER = "No readable files found in directory."
SKIPPED_FILE_MARKER = "[not read: file too large or link leads outside the project directory]"

TREE_INDENT = "    "

# Offline fallback: ordered (pattern, operation) pairs; first match wins.
# Named groups map straight onto the operation's parameters.
INTENT_PATTERNS = [
    (re.compile(r"^(?:git\s+)?(?P<command>(?:status|log|diff|branch|add|commit|push|pull|checkout|init|stash|fetch|remote)\b.*)$", re.IGNORECASE), "run_vcs_command"),
    (re.compile(r"^(?:show|print)\s+(?:the\s+)?(?:tree|directory tree)(?:\s+(?:of|for|in)\s+(?P<path>\S+))?$", re.IGNORECASE), "list_directory_tree"),
    (re.compile(r"^(?:read|show|cat|open)\s+(?:all\s+)?files\s+in\s+(?P<path>\S+)$", re.IGNORECASE), "read_directory_files"),
    (re.compile(r"^(?:list|ls|show)(?:\s+(?:the\s+)?files)?(?:\s+in\s+(?P<path>\S+))?$", re.IGNORECASE), "list_files"),
    (re.compile(r"^(?:read|show|cat|open)\s+(?:the\s+)?(?:file\s+)?(?P<path>\S+)$", re.IGNORECASE), "read_file"),
    (re.compile(r"^(?:create|make|mkdir)\s+(?:a\s+)?(?:directory|folder|dir)\s+(?P<path>\S+)$", re.IGNORECASE), "create_directory"),
    (re.compile(r"^(?:delete|remove|rm)\s+(?:the\s+)?(?:directory|folder|dir)\s+(?P<path>\S+)$", re.IGNORECASE), "delete_directory"),
    (re.compile(r"^(?:delete|remove|rm)\s+(?:the\s+)?(?:file\s+)?(?P<path>\S+)$", re.IGNORECASE), "delete_file"),
    (re.compile(r"^(?:move|rename|mv)\s+(?P<source>\S+)\s+(?:to\s+)?(?P<destination>\S+)$", re.IGNORECASE), "move_file"),
    (re.compile(r"^(?:write|put)\s+[\"'](?P<content>.*)[\"']\s+(?:to|into)\s+(?P<path>\S+)$", re.IGNORECASE), "write_file"),
    (re.compile(r"^append\s+[\"'](?P<content>.*)[\"']\s+to\s+(?P<path>\S+)$", re.IGNORECASE), "append_file"),
    (re.compile(r"^(?:pwd|where am i|(?:show|print)\s+(?:the\s+)?(?:current|working)\s+directory)$", re.IGNORECASE), "get_working_directory"),
]

# Confidence assigned to any fallback match
INTENT_FALLBACK_CONFIDENCE = 0.3

# Model descriptors - Anthropic Claude models only
SUPPORTED_MODELS = {
    # Claude Sonnet 4.5 - balanced default for tool use
    "anthropic:claude-sonnet-4-5": {
        "provider": "anthropic",
        "name": "claude-sonnet-4-5-20250929",
        "max_output_tokens": 8192,
    },
    # Claude Haiku 4.5 - Fast and cost-effective
    "anthropic:claude-haiku-4-5": {
        "provider": "anthropic",
        "name": "claude-haiku-4-5-20251001",
        "max_output_tokens": 8192,
    },
    # Claude Opus 4.1 - Most capable for complex reasoning
    "anthropic:claude-opus-4-1": {
        "provider": "anthropic",
        "name": "claude-opus-4-1-20250805",
        "max_output_tokens": 8192,
    },
}
