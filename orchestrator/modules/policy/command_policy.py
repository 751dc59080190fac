"""
Command allow-list policy for the orchestrator.

Turns a free-text command into a validated, normalized argument vector for
`docker compose`, or refuses it with a reason. The policy is a pure function of
its input and the configured workspace root.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

import yaml

from .tokenizer import EXPANSION_CHARS, OPERATOR_CHARS, TokenizeError, tokenize

logger = logging.getLogger("orchestrator.policy")

PROGRAM = "docker"
SUBCOMMAND = "compose"

# Any of these anywhere in the text rejects the command, quoted or not
FORBIDDEN_CHARACTERS: Tuple[str, ...] = tuple(sorted(OPERATOR_CHARS | EXPANSION_CHARS))

# Flags that would point docker at another daemon or context
IMMUTABLE_FORBIDDEN_FLAGS = frozenset({"-H", "--host", "--context", "-c"})

DEFAULT_ALLOWED_VERBS = frozenset(
    {"up", "down", "build", "pull", "restart", "stop", "start", "ps", "logs", "config", "top"}
)

# Verbs that run arbitrary processes inside containers; never allowed
NEVER_ALLOWED_VERBS = frozenset({"exec", "run", "cp", "attach"})

KNOWN_COMPOSE_VERBS = frozenset(
    {
        "attach", "build", "config", "cp", "create", "down", "events", "exec",
        "images", "kill", "logs", "ls", "pause", "port", "ps", "pull", "push",
        "restart", "rm", "run", "scale", "start", "stats", "stop", "top",
        "unpause", "up", "version", "wait", "watch",
    }
)

# Global compose flags whose value is the next token
VALUE_FLAGS = frozenset(
    {
        "-f", "--file", "-p", "--project-name", "--project-directory",
        "--env-file", "--profile", "--ansi", "--progress", "--parallel",
    }
)

# Path-valued flags checked anywhere in the command
PATH_FLAGS = frozenset({"--project-directory", "--file", "--env-file"})
# Short path flags only mean "path" before the verb (`logs -f` is --follow)
GLOBAL_ONLY_PATH_FLAGS = frozenset({"-f"})

DEFAULT_PROGRESS_VERBS = frozenset({"build"})
DEFAULT_MAX_ARGUMENTS = 64


class CommandRejectedError(ValueError):
    """Raised when a command is refused by the policy."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class SpawnSpec:
    """A validated command, ready to be spawned without a shell."""

    program: str
    args: Tuple[str, ...]
    working_directory: str

    @property
    def argv(self) -> List[str]:
        return [self.program, *self.args]

    def display(self) -> str:
        return " ".join(self.argv)


@dataclass
class PolicySettings:
    """Tunable parts of the policy."""

    allowed_verbs: FrozenSet[str] = DEFAULT_ALLOWED_VERBS
    forbidden_flags: FrozenSet[str] = IMMUTABLE_FORBIDDEN_FLAGS
    progress_verbs: FrozenSet[str] = DEFAULT_PROGRESS_VERBS
    max_arguments: int = DEFAULT_MAX_ARGUMENTS
    source: Optional[str] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: Optional[str] = None) -> "PolicySettings":
        """
        Build settings from a policy document.

        The built-in forbidden flags can only be extended, never removed.

        Raises:
            ValueError: If the document is invalid
        """
        if not isinstance(data, dict):
            raise ValueError("Policy document must be a mapping")

        verbs = data.get("allowedVerbs")
        if verbs is None:
            allowed = DEFAULT_ALLOWED_VERBS
        else:
            allowed = frozenset(str(v) for v in verbs)
            unknown = allowed - KNOWN_COMPOSE_VERBS
            if unknown:
                raise ValueError(f"Unknown compose subcommands in allowedVerbs: {sorted(unknown)}")
            dangerous = allowed & NEVER_ALLOWED_VERBS
            if dangerous:
                raise ValueError(f"Forbidden verbs found in allowedVerbs: {sorted(dangerous)}")
            if not allowed:
                raise ValueError("allowedVerbs must not be empty")

        extra_flags = frozenset(str(f) for f in data.get("forbiddenFlags", []) or [])
        bad_flags = [f for f in extra_flags if not f.startswith("-")]
        if bad_flags:
            raise ValueError(f"forbiddenFlags entries must start with '-': {bad_flags}")

        progress = frozenset(str(v) for v in data.get("progressVerbs", []) or [])

        max_args = data.get("maxArguments", DEFAULT_MAX_ARGUMENTS)
        if not isinstance(max_args, int) or isinstance(max_args, bool) or not 1 <= max_args <= 256:
            raise ValueError(f"Invalid maxArguments: {max_args}")

        return cls(
            allowed_verbs=allowed,
            forbidden_flags=IMMUTABLE_FORBIDDEN_FLAGS | extra_flags,
            progress_verbs=DEFAULT_PROGRESS_VERBS | progress,
            max_arguments=max_args,
            source=source,
        )

    @classmethod
    def load(cls, path: Optional[str]) -> "PolicySettings":
        """Load settings from a YAML file, falling back to defaults."""
        if not path:
            return cls()

        config_path = Path(path)
        if not config_path.exists():
            logger.warning(f"Policy file not found: {config_path}, using defaults")
            return cls()

        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            settings = cls.from_dict(data, source=str(config_path))
        except (OSError, yaml.YAMLError, ValueError) as e:
            logger.error(f"Invalid policy file {config_path}: {e}; using defaults")
            return cls()

        logger.info(
            f"Command policy loaded from {config_path} "
            f"(verbs: {', '.join(sorted(settings.allowed_verbs))})"
        )
        return settings


def _flag_name(arg: str) -> str:
    return arg.split("=", 1)[0] if arg.startswith("--") else arg


class CommandPolicy:
    """Validates and normalizes `docker compose` commands."""

    def __init__(
        self,
        workspace: str,
        default_project_dir: str = "compose",
        settings: Optional[PolicySettings] = None,
    ):
        """
        Initialize the policy.

        Args:
            workspace: Root every path-valued flag must stay under
            default_project_dir: Project directory injected when none is given
            settings: Allow-list settings (defaults if omitted)

        Raises:
            ValueError: If the default project directory escapes the workspace
        """
        self.workspace = os.path.abspath(workspace)
        self.settings = settings or PolicySettings()
        self.default_project_dir = default_project_dir
        self.resolve_in_workspace(default_project_dir)

    @property
    def allowed_verbs(self) -> List[str]:
        return sorted(self.settings.allowed_verbs)

    def resolve_in_workspace(self, value: str) -> str:
        """
        Resolve a path against the workspace root.

        Resolution is lexical; symlinks are not followed.

        Raises:
            CommandRejectedError: If the path escapes the workspace
        """
        resolved = os.path.normpath(os.path.join(self.workspace, value))
        root = self.workspace.rstrip(os.sep) + os.sep
        if resolved != self.workspace and not resolved.startswith(root):
            raise CommandRejectedError(f"Path escapes workspace: {value}")
        return resolved

    def validate(self, text: str) -> Tuple[bool, Optional[str]]:
        """
        Check a command without building it.

        Returns:
            Tuple of (is_valid, rejection_reason)
        """
        try:
            self.build(text)
        except CommandRejectedError as e:
            return False, e.reason
        return True, None

    def build(self, text: str) -> SpawnSpec:
        """
        Validate a command and build its spawn specification.

        Args:
            text: Raw command line as submitted

        Returns:
            SpawnSpec with the normalized argument vector

        Raises:
            CommandRejectedError: With the reason the command was refused
        """
        if not isinstance(text, str) or not text.strip():
            raise CommandRejectedError("Command is empty")

        for ch in FORBIDDEN_CHARACTERS:
            if ch in text:
                raise CommandRejectedError(f"Command contains forbidden character '{ch}'")

        try:
            tokens = tokenize(text)
        except TokenizeError as e:
            raise CommandRejectedError(f"Could not parse command: {e}") from None

        for token in tokens:
            if not token.is_word:
                raise CommandRejectedError(f"Forbidden shell {token.kind.value} '{token.value}'")

        args = [t.value for t in tokens]

        if len(args) < 2:
            raise CommandRejectedError(
                f"Command too short: '{text.strip()}' is not a permitted command prefix; "
                f"only '{PROGRAM} {SUBCOMMAND} ...' is allowed"
            )
        if args[0] != PROGRAM or args[1] != SUBCOMMAND:
            prefix = args[0] if args[0] != PROGRAM else f"{args[0]} {args[1]}"
            raise CommandRejectedError(
                f"'{prefix}' is not a permitted command prefix; "
                f"only '{PROGRAM} {SUBCOMMAND} ...' is allowed"
            )

        if len(args) > self.settings.max_arguments:
            raise CommandRejectedError(
                f"Too many arguments (max: {self.settings.max_arguments})"
            )

        self._check_forbidden_flags(args)

        verb, verb_index = self._find_verb(args)
        if verb is None or verb not in self.settings.allowed_verbs:
            shown = "none given" if verb is None else f"'{verb}'"
            raise CommandRejectedError(
                f"Compose subcommand not allowed ({shown}). "
                f"Allowed: {', '.join(self.allowed_verbs)}"
            )

        self._check_path_flags(args, verb_index)

        if not self._has_flag(args, "--project-directory"):
            args[2:2] = ["--project-directory", self.default_project_dir]

        if verb in self.settings.progress_verbs and not self._has_flag(args, "--progress"):
            args.extend(["--progress", "plain"])

        return SpawnSpec(program=args[0], args=tuple(args[1:]), working_directory=self.workspace)

    def _check_forbidden_flags(self, args: Sequence[str]) -> None:
        forbidden = self.settings.forbidden_flags
        for arg in args[2:]:
            if not arg.startswith("-"):
                continue
            name = _flag_name(arg)
            if name in forbidden:
                raise CommandRejectedError(f"Forbidden flag: {name}")
            # Attached short form, e.g. -Hunix:///var/run/docker.sock
            if not arg.startswith("--") and len(arg) > 2 and arg[:2] in forbidden:
                raise CommandRejectedError(f"Forbidden flag: {arg[:2]}")

    @staticmethod
    def _find_verb(args: Sequence[str]) -> Tuple[Optional[str], int]:
        """Find the first non-flag token after `docker compose`."""
        i = 2
        while i < len(args):
            arg = args[i]
            if arg.startswith("-"):
                if "=" not in arg and arg in VALUE_FLAGS:
                    i += 2
                else:
                    i += 1
                continue
            return arg, i
        return None, len(args)

    def _check_path_flags(self, args: Sequence[str], verb_index: int) -> None:
        for i, arg in enumerate(args):
            if i < 2 or not arg.startswith("-"):
                continue
            name = _flag_name(arg)
            attached = None
            # Attached short form, e.g. -f/etc/x.yml or -f=../x.yml
            if not arg.startswith("--") and len(arg) > 2 and arg[:2] in GLOBAL_ONLY_PATH_FLAGS:
                name = arg[:2]
                attached = arg[3:] if arg[2] == "=" else arg[2:]
            is_path_flag = name in PATH_FLAGS or (
                name in GLOBAL_ONLY_PATH_FLAGS and i < verb_index
            )
            if not is_path_flag:
                continue

            if attached is not None:
                value = attached
            elif "=" in arg and arg.startswith("--"):
                value = arg.split("=", 1)[1]
            elif i + 1 < len(args):
                value = args[i + 1]
            else:
                value = ""

            if not value:
                raise CommandRejectedError(f"{name} requires a value")
            self.resolve_in_workspace(value)

    @staticmethod
    def _has_flag(args: Sequence[str], flag: str) -> bool:
        return any(arg == flag or arg.startswith(flag + "=") for arg in args[2:])
