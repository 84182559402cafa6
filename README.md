# assemkit

Building blocks for a macro assembler aimed at Motorola 68000-family, DSP56001
and related targets. It needs nothing outside the standard library.

## What is inside

- `assemkit.fltpoint` encodes host floats in the target formats:
  `float_to_ieee754` (32-bit single), `double_to_ieee754` (64-bit double),
  `double_to_extended` (12-byte Motorola extended precision),
  `double_to_dsp_float` (DSP56001 24-bit fraction, clamped with a warning at
  +1 and -1) and `double_to_fixed_point`. Non-finite values raise
  `ValueError`.
- `assemkit.listing` has the `Listing` class, which writes a paginated
  assembly listing to a text stream. Each line shows the line number, the
  location, up to ten data bytes (bytes awaiting a fixup appear as `xx`), a
  tag and the source text. Titles and subtitles go into the page headers.
  The module also provides the GEMDOS date and time helpers `dos_date`,
  `dos_time`, `date_string` and `time_string`, and `uppercase_hex_columns`.
- `assemkit.kwgen` builds the compact state-machine tables
  (`KeywordTables`) that a tokenizer uses to recognise keywords, and renders
  them as C array declarations (`render_tables`) and `#define` lists
  (`render_definitions`). `KeywordTables.lookup` looks a word up directly.
- `assemkit.macro` has the `MacroProcessor`, which keeps the macro table,
  captures macro bodies up to `endm` (`define`), collects nested `.rept`
  blocks up to `endr` (`collect_rept`), splits call arguments at commas and
  starts and ends expansions (`invoke`, `exit_macro`), each with its own
  unique number. Errors raise `MacroError`.
- `assemkit.mark` has the `MarkTable`, which records relocatable words and
  longs (`mark`) and turns them into Alcyon relocation words or the compacted
  Atari executable relocation list (`alcyon_image`), BSD a.out relocation
  tables (`bsd_relocations`), ELF `rela` records (`elf_relocations`), or
  in-place fixups of a raw image loaded at a fixed origin (`absolute_image`).
  Marks the chosen output cannot express raise `MarkError`.

## Installing

```
pip install .
```

Install the test extra and run the tests with:

```
pip install .[test]
pytest
```

## Keyword table generator

The `assemkit-kwgen` command reads a keyword list from standard input and
writes the definitions and tables to standard output. It takes the prefix for
the table names as its only argument:

```
assemkit-kwgen kw < kw.tab > kwtab.h
```

Each line of the input holds a keyword and, optionally, a value. Lines that
begin with `#` are comments. A value may be a decimal number, a character in
single quotes, `=` to reuse the previous value, or nothing at all, which means
the previous value plus one (zero for the first entry):

```
# directives
.byte 34
.word 'A'
.long
.quad =
```

The same tables are available from Python:

```python
from assemkit.kwgen import generate, parse_keywords, build_tables

tables = build_tables(parse_keywords([".byte 34\n", ".word\n"]))
print(tables.lookup(".word"))   # 35
print(generate("kw", [".byte 34\n", ".word\n"]))
```

## Floating point encodings

```python
from assemkit.fltpoint import double_to_ieee754, double_to_extended

hex(double_to_ieee754(1.0))      # '0x3ff0000000000000'
double_to_extended(1.0).hex()    # '3fff00008000000000000000'
```

## What it does not do

assemkit is a set of parts, not an assembler. It has no tokenizer, expression
evaluator or instruction encoder, and no command that assembles a source
file. It builds relocation data but does not build symbol tables or write
complete object files or executables; assembling the headers, segments,
symbols and relocation data into a file is left to the caller.