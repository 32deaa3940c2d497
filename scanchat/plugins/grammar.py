"""Declarative slash-command grammar shared by every plugin tool.

Each tool describes its flags as a table of ``FlagSpec`` rows; ``parse_command``
walks the tokens against that table and fills a parameters dataclass. Parsing
is total: every failure lands in ``params.error`` and nothing is raised to the
caller.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Literal, TypeVar
from urllib.parse import quote

FlagKind = Literal["bool", "int", "list", "value"]

HELP_FLAGS = ("-h", "-help")

_DISALLOWED_CHARS_RE = re.compile(r"[^a-zA-Z0-9,.\-\s]")
_INTEGER_RE = re.compile(r"^[0-9]+$")
_URL_RE = re.compile(r"^https?://\S+$")
_HOSTLIKE_RE = re.compile(r"^\S+\.\S+$")


def is_integer(value: str) -> bool:
    return bool(_INTEGER_RE.match(value or ""))


def is_valid_url(value: str) -> bool:
    return bool(_URL_RE.match(value or "") or _HOSTLIKE_RE.match(value or ""))


def is_valid_regex(value: str) -> bool:
    try:
        re.compile(value)
    except (re.error, TypeError):
        return False
    return True


def strip_disallowed(text: str) -> str:
    """Drop characters outside the alphanumeric/comma/dot/hyphen allowlist."""
    return _DISALLOWED_CHARS_RE.sub("", text)


@dataclass
class CommandParameters:
    """Fields shared by every tool's parsed parameters."""

    error: str | None = None
    help: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.help is None

    @classmethod
    def grammar(cls) -> CommandGrammar:
        raise NotImplementedError(f"{cls.__name__} has no command grammar")

    @classmethod
    def parse(cls: type[P], text: str) -> P:
        return parse_command(text, cls.grammar(), cls)

    def to_command(self) -> str:
        return render_command(self, self.grammar())

    def to_query(self) -> str:
        return render_query(self, self.grammar())


@dataclass(frozen=True)
class FlagSpec:
    """One flag of a tool command line."""

    field: str
    aliases: tuple[str, ...]
    kind: FlagKind
    label: str
    query_key: str
    validator: Callable[[str], bool] | None = None
    maximum: int | None = None
    maximum_error: str | None = None
    invalid_error: str | None = None
    repeat_in_query: bool = False

    @property
    def flag(self) -> str:
        return self.aliases[0]


@dataclass(frozen=True)
class GrammarLimits:
    max_input_length: int = 1000
    max_param_length: int = 100
    max_parameter_count: int = 30
    max_array_size: int = 50


@dataclass(frozen=True)
class CommandGrammar:
    """Full description of one tool's command line."""

    name: str
    flags: tuple[FlagSpec, ...]
    required_field: str
    required_error: str
    help_text: Callable[[str | None], str]
    limits: GrammarLimits = field(default_factory=GrammarLimits)
    sanitize_input: bool = False
    comma_lists: bool = False

    def lookup(self, token: str) -> FlagSpec | None:
        for spec in self.flags:
            if token in spec.aliases:
                return spec
        return None


class _GrammarError(Exception):
    pass


P = TypeVar("P", bound=CommandParameters)


def _take_values(tokens: list[str], index: int) -> tuple[list[str], int]:
    """Consume tokens after ``index`` up to the next flag."""
    values: list[str] = []
    while index + 1 < len(tokens) and not tokens[index + 1].startswith("-"):
        index += 1
        values.append(tokens[index])
    return values, index


def _apply_flag(
    grammar: CommandGrammar,
    spec: FlagSpec,
    token: str,
    tokens: list[str],
    index: int,
    values: dict[str, object],
) -> int:
    if spec.kind == "bool":
        values[spec.field] = True
        return index

    if spec.kind == "int":
        following = tokens[index + 1] if index + 1 < len(tokens) else ""
        if not is_integer(following):
            raise _GrammarError(
                spec.invalid_error or f"🚨 Invalid {spec.label} value for '{token}' flag"
            )
        number = int(following)
        if spec.maximum is not None and number > spec.maximum:
            raise _GrammarError(
                spec.maximum_error
                or f"🚨 {spec.label.capitalize()} value exceeds the maximum limit of {spec.maximum}"
            )
        values[spec.field] = number
        return index + 1

    if spec.kind == "value":
        following = tokens[index + 1] if index + 1 < len(tokens) else ""
        if not following or following.startswith("-"):
            raise _GrammarError(f"🚨 No {spec.label} provided for '{token}' flag")
        if spec.validator and not spec.validator(following):
            raise _GrammarError(f"🚨 Invalid {spec.label} for '{token}' flag: {following}")
        values[spec.field] = following
        return index + 1

    raw_values, index = _take_values(tokens, index)
    items: list[str] = []
    for raw in raw_values:
        parts = [part for part in raw.split(",") if part] if grammar.comma_lists else [raw]
        items.extend(parts)
    if not items:
        raise _GrammarError(f"🚨 No value provided for '{token}' flag")
    for item in items:
        if spec.validator and not spec.validator(item):
            raise _GrammarError(f"🚨 Invalid {spec.label} for '{token}' flag: {item}")
    existing = list(values.get(spec.field) or [])
    existing.extend(items)
    if len(existing) > grammar.limits.max_array_size:
        raise _GrammarError(
            f"🚨 Too many values provided for '{token}' flag (max {grammar.limits.max_array_size})"
        )
    values[spec.field] = existing
    return index


def parse_command(text: str, grammar: CommandGrammar, params_type: type[P]) -> P:
    """Parse a slash command into ``params_type``; never raises."""
    params = params_type()
    raw = str(text or "")
    limits = grammar.limits

    if len(raw) > limits.max_input_length:
        return replace(params, error="🚨 Input command is too long")

    cleaned = strip_disallowed(raw) if grammar.sanitize_input else raw
    tokens = cleaned.split()[1:]

    for index, token in enumerate(tokens):
        if token in HELP_FLAGS:
            following = tokens[index + 1] if index + 1 < len(tokens) else None
            section = following if following and not following.startswith("-") else None
            return replace(params, help=grammar.help_text(section))

    if len(tokens) > limits.max_parameter_count:
        return replace(params, error="🚨 Too many parameters provided")

    for token in tokens:
        if len(token) > limits.max_param_length:
            return replace(params, error=f"🚨 Parameter value too long: {token}")

    values: dict[str, object] = {}
    index = 0
    try:
        while index < len(tokens):
            token = tokens[index]
            spec = grammar.lookup(token)
            if spec is None:
                raise _GrammarError(f"🚨 Invalid or unrecognized flag: {token}")
            index = _apply_flag(grammar, spec, token, tokens, index, values) + 1
    except _GrammarError as exc:
        return replace(params, error=str(exc))

    params = replace(params, **values)
    if not getattr(params, grammar.required_field):
        return replace(params, error=grammar.required_error)
    return params


def _defaults(params_type: type[CommandParameters]) -> CommandParameters:
    return params_type()


def render_command(params: CommandParameters, grammar: CommandGrammar) -> str:
    """Render parameters back to the canonical ``/tool`` command line."""
    defaults = _defaults(type(params))
    parts = [f"/{grammar.name}"]
    for spec in grammar.flags:
        value = getattr(params, spec.field)
        if value == getattr(defaults, spec.field):
            continue
        if spec.kind == "bool":
            parts.append(spec.flag)
        elif spec.kind == "list":
            parts.append(spec.flag)
            parts.extend(str(item) for item in value)
        else:
            parts.extend([spec.flag, str(value)])
    return " ".join(parts)


def render_query(params: CommandParameters, grammar: CommandGrammar) -> str:
    """Serialize non-default parameters as a percent-encoded query string.

    List values are joined with commas after encoding each element; flags
    marked ``repeat_in_query`` repeat the key instead.
    """
    defaults = _defaults(type(params))
    pairs: list[str] = []
    for spec in grammar.flags:
        value = getattr(params, spec.field)
        if value == getattr(defaults, spec.field):
            continue
        if spec.kind == "bool":
            pairs.append(f"{spec.query_key}=true")
        elif spec.kind == "list":
            encoded = [quote(str(item), safe="") for item in value]
            if spec.repeat_in_query:
                pairs.extend(f"{spec.query_key}={item}" for item in encoded)
            else:
                pairs.append(f"{spec.query_key}={','.join(encoded)}")
        else:
            pairs.append(f"{spec.query_key}={quote(str(value), safe='')}")
    return "&".join(pairs)

