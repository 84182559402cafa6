"""Macro definition, invocation and ``.rept`` block collection.

Tokens are either a ``(kind, value)`` pair, where kind is one of
``"symbol"``, ``"string"``, ``"const"`` or ``"aconst"``, or a bare string
for punctuation and operators such as ``","`` or ``"+"``.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Union

__all__ = [
    "Token",
    "MacroError",
    "Macro",
    "Invocation",
    "ReptBlock",
    "MacroProcessor",
    "keyword_match",
    "directive_of",
    "split_arguments",
]

Token = Union[tuple, str]

_SYMBOL_RE = re.compile(r"[A-Za-z_.@?$][A-Za-z0-9_.@?$]*")
_SPACE_RE = re.compile(r"\s*")
_MACRO_END = "endm "
_REPT_END = "endr rept "


class MacroError(Exception):
    """Raised for errors in macro definitions, invocations and exits."""


@dataclass
class Macro:
    """A defined macro: its name, unique number, formals and body lines."""

    name: str
    number: int
    formals: tuple[str, ...] = ()
    lines: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Invocation:
    """One active expansion of a macro."""

    macro: Macro
    arguments: tuple[tuple[Token, ...], ...]
    size: int
    unique: int
    previous_unique: int

    @property
    def lines(self) -> tuple[str, ...]:
        return tuple(self.macro.lines)


@dataclass(frozen=True)
class ReptBlock:
    """The lines of a ``.rept`` block and how often they repeat."""

    lines: tuple[str, ...]
    count: int

    def __iter__(self) -> Iterator[str]:
        for _ in range(self.count):
            yield from self.lines


def keyword_match(keyword: str, keywords: str | Iterable[str]) -> int | None:
    """Return the index of ``keyword`` in ``keywords``, ignoring case.

    ``keywords`` is a space separated string or a sequence of lower case
    words. Returns None when there is no match.
    """
    words = keywords.split() if isinstance(keywords, str) else list(keywords)
    wanted = "".join(
        chr(ord(c) + 32) if "A" <= c <= "Z" else c for c in keyword
    )
    for index, word in enumerate(words):
        if word == wanted:
            return index
    return None


def _is_symbol(token: Token) -> bool:
    return isinstance(token, tuple) and len(token) == 2 and token[0] == "symbol"


def directive_of(tokens: Sequence[Token]) -> str | None:
    """Return the directive a line starts with, after any label.

    Handles ``directive`` and ``label: directive`` (or ``label::``); a
    leading period is dropped.
    """
    if not tokens or not _is_symbol(tokens[0]):
        return None

    if len(tokens) > 1 and tokens[1] in (":", "::"):
        if len(tokens) > 2 and _is_symbol(tokens[2]):
            name = tokens[2][1]
        else:
            return None
    else:
        name = tokens[0][1]

    return name[1:] if name.startswith(".") else name


def _leading_tokens(text: str) -> list[Token]:
    tokens: list[Token] = []
    position = 0
    for _ in range(3):
        position = _SPACE_RE.match(text, position).end()
        if position >= len(text):
            break
        if text.startswith("::", position):
            tokens.append("::")
            position += 2
        elif text[position] == ":":
            tokens.append(":")
            position += 1
        else:
            match = _SYMBOL_RE.match(text, position)
            if not match:
                break
            tokens.append(("symbol", match.group()))
            position = match.end()
    return tokens


def _token_cost(token: Token) -> tuple[int, bool]:
    if isinstance(token, tuple) and len(token) == 2:
        kind = token[0]
        if kind in ("const", "aconst"):
            return 3, False
        if kind in ("string", "symbol"):
            return 2, True
    return 1, False


def _split(
    tokens: Sequence[Token],
    max_args: int | None,
    max_tokens: int | None,
    max_strings: int | None,
) -> list[list[Token]]:
    if not tokens:
        return []

    arguments: list[list[Token]] = [[]]
    token_count = 0
    string_count = 0

    for token in tokens:
        if token == ",":
            if max_args is not None and len(arguments) >= max_args:
                raise MacroError("Too many arguments in MACRO invocation")
            arguments.append([])
            token_count = 0
            string_count = 0
            continue

        cost, is_string = _token_cost(token)
        number = len(arguments)
        if is_string and max_strings is not None and string_count >= max_strings:
            raise MacroError(
                f"Too many strings in argument #{number} in MACRO invocation"
            )
        if max_tokens is not None and token_count + cost >= max_tokens:
            raise MacroError(
                f"Too many tokens in argument #{number} in MACRO invocation"
            )

        arguments[-1].append(token)
        token_count += cost
        if is_string:
            string_count += 1

    return arguments


def split_arguments(tokens: Sequence[Token]) -> list[list[Token]]:
    """Split a macro call's argument tokens at commas."""
    return _split(tokens, None, None, None)


class MacroProcessor:
    """Keeps the macro table and the stack of active macro expansions.

    ``on_line`` is called with each line captured into a definition or
    ``.rept`` block, and a tag (``"."`` or ``"#"``) for the listing.
    """

    def __init__(
        self,
        on_line: Callable[[str, str], None] | None = None,
        *,
        max_args: int | None = None,
        max_tokens: int | None = None,
        max_strings: int | None = None,
    ) -> None:
        self.on_line = on_line
        self.max_args = max_args
        self.max_tokens = max_tokens
        self.max_strings = max_strings
        self.macros: dict[str, Macro] = {}
        self.current_unique = 0
        self._next_number = 1
        self._next_unique = 0
        self._active: list[Invocation] = []

    @property
    def active(self) -> tuple[Invocation, ...]:
        return tuple(self._active)

    def _catch(
        self,
        lines: Iterable[str],
        keywords: str,
        handler: Callable[[str, int | None], bool],
    ) -> None:
        for text in lines:
            directive = directive_of(_leading_tokens(text))
            index = None if directive is None else keyword_match(directive, keywords)
            if not handler(text, index):
                return
        raise MacroError(f"encountered end-of-file looking for '{keywords}'")

    def define(self, name: str, formals: Iterable[str], lines: Iterable[str]) -> Macro:
        """Define macro ``name``, taking its body from ``lines`` up to ``endm``.

        Lines after ``endm`` are left in ``lines`` if it is an iterator.
        """
        if not name:
            raise MacroError("missing symbol")
        if name in self.macros:
            raise MacroError("duplicate macro definition")

        names: list[str] = []
        for formal in formals:
            if formal in names:
                raise MacroError("multiple formal argument definition")
            names.append(formal)

        macro = Macro(name=name, number=self._next_number, formals=tuple(names))
        self._next_number += 1
        self.macros[name] = macro

        def keep(text: str, index: int | None) -> bool:
            if self.on_line is not None:
                self.on_line(text, ".")
            if index is None:
                macro.lines.append(text)
                return True
            return False

        self._catch(lines, _MACRO_END, keep)
        return macro

    def collect_rept(self, count: int, lines: Iterable[str]) -> ReptBlock | None:
        """Collect a possibly nested ``.rept`` block up to its ``endr``.

        Returns None when the block has no lines.
        """
        collected: list[str] = []
        level = 1

        def keep(text: str, index: int | None) -> bool:
            nonlocal level
            if self.on_line is not None:
                self.on_line(text, "#")
            if index == 0:
                level -= 1
                if level == 0:
                    return False
            elif index == 1:
                level += 1
            collected.append(text)
            return True

        self._catch(lines, _REPT_END, keep)
        if not collected:
            return None
        return ReptBlock(lines=tuple(collected), count=int(count) & 0xFFFFFFFF)

    def invoke(self, name: str, tokens: Sequence[Token], size: int = 0) -> Invocation:
        """Start an expansion of macro ``name`` with argument ``tokens``."""
        macro = self.macros.get(name)
        if macro is None:
            raise MacroError(f"undefined macro '{name}'")

        arguments = _split(tokens, self.max_args, self.max_tokens, self.max_strings)
        invocation = Invocation(
            macro=macro,
            arguments=tuple(tuple(argument) for argument in arguments),
            size=size,
            unique=self._next_unique,
            previous_unique=self.current_unique,
        )
        self.current_unique = self._next_unique
        self._next_unique += 1
        self._active.append(invocation)
        return invocation

    def exit_macro(self) -> Invocation:
        """End the innermost expansion and restore the previous unique number."""
        if not self._active:
            raise MacroError("too many ENDMs")
        invocation = self._active.pop()
        self.current_unique = invocation.previous_unique
        return invocation

    def formal_index(self, name: str, argument: str) -> int | None:
        """Return the position of formal ``argument`` of macro ``name``."""
        macro = self.macros.get(name)
        if macro is None:
            raise MacroError(f"undefined macro '{name}'")
        try:
            return macro.formals.index(argument)
        except ValueError:
            return None