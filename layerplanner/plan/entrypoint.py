"""
LayerPlanner Plan: Entrypoint Specification.

An entrypoint is an executable path inside the build output plus an argument
template. Template elements may contain these slots:

    {0}, {1}, ...   positional runtime argument
    {@}             all runtime arguments after the highest positional slot
    {options}       the options environment variable (default JAVA_OPTS),
                    split shell-style

Example:
    >>> spec = EntrypointSpec(
    ...     executable="app.jar",
    ...     interpreter=("java", "{options}", "-jar"),
    ...     arguments=("--server.port={0}", "{@}"),
    ... )
    >>> spec.render(["8080", "--debug"], {"JAVA_OPTS": "-Xmx512m"})
    ['java', '-Xmx512m', '-jar', 'app.jar', '--server.port=8080', '--debug']
"""

import re
import shlex
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from layerplanner.core.constants import ConfigKey
from layerplanner.layers.base import normalize_entry_path

DEFAULT_OPTIONS_ENV = "JAVA_OPTS"

REST_SLOT = "{@}"
OPTIONS_SLOT = "{options}"

_SLOT_RE = re.compile(r"\{(\d+|@|options)\}")
_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class EntrypointSpec:
    """
    Executable and argument template of a build plan.

    Attributes:
        executable: Tree-relative path of the executable
        interpreter: Template elements placed before the executable
        arguments: Template elements placed after the executable
        options_env: Environment variable feeding the {options} slot
    """

    executable: str
    interpreter: Tuple[str, ...] = ()
    arguments: Tuple[str, ...] = ()
    options_env: str = DEFAULT_OPTIONS_ENV

    def __post_init__(self):
        executable = normalize_entry_path(self.executable or "")
        if executable is None:
            raise ValueError("Entrypoint executable cannot be empty")
        # shell_form() expands it unquoted inside ${...}
        if not isinstance(self.options_env, str) or not _ENV_NAME_RE.match(self.options_env):
            raise ValueError(f"Invalid environment variable name: {self.options_env!r}")
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "executable", executable)
        object.__setattr__(self, "interpreter", tuple(self.interpreter))
        object.__setattr__(self, "arguments", tuple(self.arguments))

    @classmethod
    def from_dict(cls, entrypoint: Dict[str, Any]) -> "EntrypointSpec":
        """
        Build a spec from the ``entrypoint`` config section.

        Raises:
            ValueError: If no executable is configured
        """
        return cls(
            executable=entrypoint.get(ConfigKey.EXECUTABLE) or "",
            interpreter=tuple(entrypoint.get(ConfigKey.INTERPRETER) or ()),
            arguments=tuple(entrypoint.get(ConfigKey.ARGUMENTS) or ()),
            options_env=entrypoint.get(ConfigKey.OPTIONS_ENV) or DEFAULT_OPTIONS_ENV,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            ConfigKey.EXECUTABLE: self.executable,
            ConfigKey.INTERPRETER: list(self.interpreter),
            ConfigKey.ARGUMENTS: list(self.arguments),
            ConfigKey.OPTIONS_ENV: self.options_env,
        }

    @property
    def command_path(self) -> str:
        """Executable as it appears on the command line."""
        # a bare name without an interpreter would be looked up on PATH
        if not self.interpreter and "/" not in self.executable:
            return f"./{self.executable}"
        return self.executable

    @property
    def template(self) -> Tuple[str, ...]:
        """Full argv template, executable included."""
        return self.interpreter + (self.command_path,) + self.arguments

    @property
    def positional_count(self) -> int:
        """Number of runtime arguments consumed by positional slots."""
        indexes = [
            int(slot)
            for element in self.template
            for slot in _SLOT_RE.findall(element)
            if slot.isdigit()
        ]
        return max(indexes) + 1 if indexes else 0

    def render(
        self, args: Sequence[str] = (), env: Optional[Mapping[str, str]] = None
    ) -> List[str]:
        """
        Produce the concrete argv.

        Args:
            args: Runtime arguments
            env: Environment to read the options variable from

        Returns:
            Argument vector

        Raises:
            ValueError: If a positional slot has no matching runtime argument
        """
        env = env or {}
        options = shlex.split(env.get(self.options_env, ""))
        rest = list(args[self.positional_count :])

        argv: List[str] = []
        for element in self.template:
            if element == REST_SLOT:
                argv.extend(rest)
            elif element == OPTIONS_SLOT:
                argv.extend(options)
            else:
                argv.append(self._substitute(element, args, options, rest))
        return argv

    def _substitute(
        self, element: str, args: Sequence[str], options: List[str], rest: List[str]
    ) -> str:
        def replace(match):
            slot = match.group(1)
            if slot == "@":
                return " ".join(rest)
            if slot == "options":
                return " ".join(options)
            index = int(slot)
            if index >= len(args):
                raise ValueError(
                    f"Entrypoint slot {{{index}}} needs at least {index + 1} runtime arguments"
                )
            return args[index]

        return _SLOT_RE.sub(replace, element)

    def shell_form(self) -> str:
        """
        Produce a POSIX ``sh -c`` command string equivalent to render().

        Runtime arguments arrive as $1..$n (the caller passes a program name
        as $0), and the options variable is expanded with word splitting.
        """
        count = self.positional_count
        prelude = ""
        if count:
            saves = "; ".join(f'_a{i}="${{{i + 1}}}"' for i in range(count))
            prelude = f"{saves}; shift $(( $# < {count} ? $# : {count} )); "

        words = [self._shell_word(element) for element in self.template]
        return prelude + "exec " + " ".join(words)

    def _shell_word(self, element: str) -> str:
        if element == REST_SLOT:
            return '"$@"'
        if element == OPTIONS_SLOT:
            return f"${{{self.options_env}}}"

        parts = []
        position = 0
        for match in _SLOT_RE.finditer(element):
            if match.start() > position:
                parts.append(shlex.quote(element[position : match.start()]))
            slot = match.group(1)
            if slot == "@":
                parts.append('"$*"')
            elif slot == "options":
                parts.append(f'"${{{self.options_env}}}"')
            else:
                parts.append(f'"${{_a{slot}}}"')
            position = match.end()
        if position < len(element) or not parts:
            parts.append(shlex.quote(element[position:]))
        return "".join(parts)
