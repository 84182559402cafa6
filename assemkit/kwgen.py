"""Keyword state-machine table generator.

Reads a list of keywords with values and builds the compact transition
tables (``base``, ``tab``, ``check`` and ``accept``) that the tokenizer uses
to recognise directives, mnemonics and registers. It also emits ``#define``
lines naming each keyword's value.

Input lines hold a keyword and an optional value. Lines starting with ``#``
are comments. The value may be empty (previous value plus one, or zero for
the first entry), a decimal number, a character in single quotes, or ``=``
(same as the previous entry)::

    # this is a comment
    .byte 34
    .word 'A'
    .long
"""

from __future__ import annotations

import re
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

__all__ = [
    "TABSIZE",
    "NSTRINGS",
    "UNUSED",
    "MARKED",
    "KeywordError",
    "KeywordTables",
    "parse_keywords",
    "build_tables",
    "render_tables",
    "render_definitions",
    "generate",
    "main",
]

TABSIZE = 2048  # state table size
NSTRINGS = 1024  # maximum number of keywords
UNUSED = -1  # slot in the transition table is unused
MARKED = -2  # slot is used but leads to no further state

_LINE_RE = re.compile(r"(\S*)(.*)", re.DOTALL)
_DIGITS_RE = re.compile(r"[0-9]+")


class KeywordError(Exception):
    """Raised for malformed keyword lists or tables that cannot be built."""


@dataclass(frozen=True)
class KeywordTables:
    """The transition tables of a keyword recogniser."""

    base: tuple[int, ...]
    tab: tuple[int, ...]
    check: tuple[int, ...]
    accept: tuple[int, ...]

    def lookup(self, word: str) -> int | None:
        """Return the value of ``word``, or None if it is not a keyword."""
        if not word or not self.base:
            return None

        state = 0
        last = len(word) - 1
        for position, char in enumerate(word):
            if state < 0:
                return None
            code = ord(char)
            if code > 127:
                return None
            index = self.base[state] + code
            if index >= len(self.check) or self.check[index] != state:
                return None
            if position == last:
                value = self.accept[index]
                return value if value >= 0 else None
            state = self.tab[index]
        return None


def parse_keywords(lines: Iterable[str]) -> list[tuple[str, int]]:
    """Parse keyword lines into ``(name, value)`` pairs, in input order."""
    entries: list[tuple[str, int]] = []

    for line in lines:
        if not line or line.startswith("#") or not line.strip():
            continue

        match = _LINE_RE.match(line)
        name = match.group(1)
        rest = match.group(2).lstrip()
        previous = entries[-1][1] if entries else None

        if not rest:
            value = 0 if previous is None else previous + 1
        elif rest[0] in "0123456789":
            value = int(_DIGITS_RE.match(rest).group())
        elif rest[0] == "'":
            value = ord(rest[1]) if len(rest) > 1 else 0
        elif rest[0] == "=":
            value = 0 if previous is None else previous
        else:
            raise KeywordError(f"bad expression at '{name}'")

        entries.append((name, value))

        if len(entries) >= NSTRINGS:
            raise KeywordError("name table overflow")

    return entries


def _prefix_match(first: str, second: str, length: int) -> bool:
    return (
        len(first) >= length
        and len(second) >= length
        and first[:length] == second[:length]
    )


def build_tables(entries: Iterable[tuple[str, int]]) -> KeywordTables:
    """Build the transition tables for ``(name, value)`` pairs."""
    names = sorted(entries, key=lambda entry: entry[0])
    for name, _ in names:
        if any(ord(char) > 127 for char in name):
            raise KeywordError(f"keyword '{name}' is not ASCII")

    ktab = [UNUSED] * TABSIZE
    kcheck = [-1] * TABSIZE
    kaccept = [-1] * TABSIZE
    kbase: list[int] = []
    kmax = 0

    def wiredown(marked: dict[int, int]) -> None:
        nonlocal kmax
        state = len(kbase)
        for base in range(TABSIZE - 128):
            if all(ktab[base + code] == UNUSED for code in marked):
                break
        else:
            raise KeywordError("Cannot build table (won't fit in tables)")

        for code, value in marked.items():
            ktab[base + code] = MARKED
            kaccept[base + code] = value
            kcheck[base + code] = state

        kbase.append(base)
        kmax = max(kmax, base)

    count = len(names)
    length = 1
    found = True
    while found:
        found = False
        marked: dict[int, int] = {}
        valid = False

        for w in range(count + 1):
            if w == 0 or w == count or not _prefix_match(
                names[w][0], names[w - 1][0], length - 1
            ):
                if w != 0 and valid:
                    wiredown(marked)
                    if length > 1:
                        parent_name = names[w - 1][0]
                        state = 0
                        for char in parent_name[: length - 2]:
                            following = ktab[kbase[state] + ord(char)]
                            if following < 0:
                                raise KeywordError("table build error")
                            state = following
                        slot = kbase[state] + ord(parent_name[length - 2])
                        ktab[slot] = len(kbase) - 1
                    found = True

                marked = {}
                valid = False

            if w >= count or len(names[w][0]) < length:
                continue

            name, value = names[w]
            code = ord(name[length - 1])
            if len(name) == length:
                marked[code] = value
            else:
                marked.setdefault(code, -1)
            valid = True

        length += 1

    size = kmax + 128
    return KeywordTables(
        base=tuple(kbase),
        tab=tuple(ktab[:size]),
        check=tuple(kcheck[:size]),
        accept=tuple(kaccept[:size]),
    )


def _dump_table(table_name: str, prefix: str, table: Sequence[int]) -> str:
    parts = [f"\nint {prefix}{table_name}[{len(table)}] = {{\n"]
    column = 0
    last = len(table) - 1
    for index, value in enumerate(table):
        parts.append(f" {value}")
        if index != last:
            parts.append(",")
        column += 1
        if column == 8:
            column = 0
            parts.append("\n")
    if column:
        parts.append("\n")
    parts.append("};\n")
    return "".join(parts)


def render_tables(tables: KeywordTables, basename: str) -> str:
    """Render the tables as C array declarations guarded by ``DECL_``."""
    upper = basename.upper()
    return "".join(
        (
            f"\n#ifdef DECL_{upper}\n",
            "/*\n *  keyword state-machine tables\n *\n */\n",
            _dump_table("base", basename, tables.base),
            _dump_table("tab", basename, tables.tab),
            _dump_table("check", basename, tables.check),
            _dump_table("accept", basename, tables.accept),
            "#endif\n",
        )
    )


def _define_name(word: str) -> str:
    return "".join(
        "_" if char == "." else char.upper() if "a" <= char <= "z" else char
        for char in word
    )


def render_definitions(tables: KeywordTables, basename: str) -> str:
    """Render ``#define`` lines for every keyword without capital letters."""
    upper = basename.upper()
    parts = [f"#ifdef DEF_{upper}\n", "/*\n *  Keyword definitions\n */\n"]
    prefix: list[str] = []

    def traverse(state: int) -> None:
        base = tables.base[state]
        for code in range(128):
            if tables.check[base + code] != state:
                continue
            prefix.append(chr(code))
            word = "".join(prefix)
            accepted = tables.accept[base + code]
            if accepted >= 0 and not any(char.isupper() for char in word):
                parts.append(f"#define\t{upper}_{_define_name(word)}\t{accepted}\n")
            following = tables.tab[base + code]
            if following >= 0:
                traverse(following)
            prefix.pop()

    if tables.base:
        traverse(0)
    parts.append("#endif\n")
    return "".join(parts)


def generate(basename: str, lines: Iterable[str]) -> str:
    """Return the definitions followed by the tables for keyword ``lines``."""
    tables = build_tables(parse_keywords(lines))
    return render_definitions(tables, basename) + render_tables(tables, basename)


def main(argv: Sequence[str] | None = None) -> int:
    """Read keywords from stdin and write the generated header to stdout."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        print("Panic: bad commandline", file=sys.stderr)
        return 1

    try:
        output = generate(args[0], sys.stdin)
    except KeywordError as exc:
        print(f"Panic: {exc}", file=sys.stderr)
        return 1

    sys.stdout.write(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())