"""Relocation marks: records of words and longs that depend on a section.

Every mark notes where a relocatable value lives (the "from" section and
its offset there), which section the value is relative to (the "to"
section), how wide it is, and optionally the external symbol it refers to.
After assembly the marks are turned into the relocation information of the
chosen object format, and section-relative values in the image are fixed
up the way a simple linker would.
"""

from __future__ import annotations

import enum
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Optional, Protocol

__all__ = [
    "ABS",
    "TEXT",
    "DATA",
    "BSS",
    "TDB",
    "MarkFlag",
    "MarkSymbol",
    "Mark",
    "MarkError",
    "MarkTable",
]

ABS = 0x0000
TEXT = 0x0001
DATA = 0x0002
BSS = 0x0004
TDB = TEXT | DATA | BSS

_MASK32 = 0xFFFFFFFF

# Alcyon relocation codes for the section a value is relative to.
_ALCYON_CODES = {ABS: 0, TEXT: 2, DATA: 1, BSS: 3}

# BSD relocation flag bits for the section a value is relative to.
_BSD_SEGMENT = {TEXT: 0x00000400, DATA: 0x00000600, BSS: 0x00000800}


class MarkFlag(enum.IntFlag):
    """Flag bits kept in the upper byte of a mark's flag word."""

    WORD = 0x0000
    LONG = 0x0100
    MOVEI = 0x0200
    QUAD = 0x0400
    GLOBAL = 0x0800
    PCREL = 0x1000
    CHEND = 0x2000
    SYMBOL = 0x4000
    CHFROM = 0x8000


class MarkSymbol(Protocol):
    """What a mark needs to know about an external symbol."""

    name: str
    index: int
    defined: bool
    is_global: bool


class MarkError(Exception):
    """Raised for marks that the requested output cannot express."""


@dataclass(frozen=True)
class Mark:
    """One relocation mark."""

    flags: int
    location: int
    section: int
    symbol: Optional[Any] = None

    @property
    def target(self) -> int:
        """The section the marked value is relative to."""
        return self.flags & TDB


def _get32(image: bytearray, offset: int) -> int:
    if offset < 0 or offset + 4 > len(image):
        raise MarkError(f"mark at offset {offset} lies outside the image")
    return int.from_bytes(image[offset:offset + 4], "big")


def _get16(image: bytearray, offset: int) -> int:
    if offset < 0 or offset + 2 > len(image):
        raise MarkError(f"mark at offset {offset} lies outside the image")
    return int.from_bytes(image[offset:offset + 2], "big")


def _put32(image: bytearray, offset: int, value: int) -> None:
    if offset < 0 or offset + 4 > len(image):
        raise MarkError(f"mark at offset {offset} lies outside the image")
    image[offset:offset + 4] = (value & _MASK32).to_bytes(4, "big")


def _put16(image: bytearray, offset: int, value: int) -> None:
    if offset < 0 or offset + 2 > len(image):
        raise MarkError(f"mark at offset {offset} lies outside the image")
    image[offset:offset + 2] = (value & 0xFFFF).to_bytes(2, "big")


def _word_swap(value: int) -> int:
    value &= _MASK32
    return ((value & 0xFFFF) << 16) | (value >> 16)


def _relocation_flags(flags: int) -> int:
    rflag = 0x000000A0 if flags & MarkFlag.PCREL else 0x00000040
    if flags & MarkFlag.MOVEI:
        rflag |= 0x00000001
    if not flags & (MarkFlag.LONG | MarkFlag.QUAD):
        rflag |= 0x00000002
    if flags & MarkFlag.QUAD:
        rflag |= 0x00000004
    return rflag


def _read_payload(image: bytearray, offset: int, rflag: int) -> int:
    return _get16(image, offset) if rflag & 0x02 else _get32(image, offset)


def _write_payload(
    image: bytearray, offset: int, rflag: int, diff: int, ol_bits: int
) -> None:
    diff &= _MASK32
    if rflag & 0x02:
        _put16(image, offset, diff)
    elif rflag & 0x04:
        # Object-processor data address: the address lives in bits 11 and
        # up of the first phrase, its top three bits in the second phrase.
        saved = diff
        _put32(image, offset, ((diff & 0x001FFFFF) << 11) | ol_bits)
        second = _get32(image, offset + 8) & 0x1FFFFFFF
        second |= (saved & 0x00E00000) << 8
        _put32(image, offset + 8, second)
    else:
        _put32(image, offset, diff)


class MarkTable:
    """The marks of one assembly, in the order they were made.

    In ``prg_mode`` (Atari executable output) external references are
    refused and the Alcyon relocation information is compacted.
    """

    def __init__(self, prg_mode: bool = False) -> None:
        self.prg_mode = prg_mode
        self._marks: list[Mark] = []
        self._current_from = ABS
        self._counts: dict[int, int] = {}

    @property
    def marks(self) -> tuple[Mark, ...]:
        return tuple(self._marks)

    def __iter__(self) -> Iterator[Mark]:
        return iter(self._marks)

    def __len__(self) -> int:
        return len(self._marks)

    def mark(
        self,
        section: int,
        location: int,
        to: int,
        flags: int = 0,
        symbol: Optional[Any] = None,
    ) -> Mark:
        """Record that the value at ``location`` in ``section`` is relative
        to section ``to`` (or refers to ``symbol``)."""
        flags = int(flags) | int(to)

        if section != self._current_from:
            flags |= MarkFlag.CHFROM
        if symbol is not None:
            flags |= MarkFlag.SYMBOL
            if self.prg_mode:
                raise MarkError(
                    f"illegal external reference (in .PRG mode) to '{symbol.name}'"
                )

        entry = Mark(
            flags=flags & 0xFFFF,
            location=location & _MASK32,
            section=section,
            symbol=symbol,
        )
        self._current_from = section
        self._marks.append(entry)
        self._counts[section] = self._counts.get(section, 0) + 1
        return entry

    def relocation_count(self, section: int) -> int:
        """Return the number of marks made from ``section``."""
        return self._counts.get(section, 0)

    def alcyon_image(
        self,
        image: bytearray,
        text_size: int,
        data_size: int,
        write_relocs: bool,
    ) -> bytes:
        """Handle marks for an Alcyon object or Atari executable.

        With ``write_relocs`` false, section-relative longs in ``image``
        (text followed by data) are fixed up in place when in PRG mode, and
        the image is returned. With ``write_relocs`` true, the relocation
        information is built and returned; ``image`` is left alone.
        """
        size = text_size + data_size

        if not write_relocs:
            if self.prg_mode:
                for entry in self._marks:
                    if entry.symbol is not None:
                        continue
                    target = entry.target
                    if not target & (DATA | BSS):
                        continue
                    offset = entry.location + (text_size if entry.section == DATA else 0)
                    diff = _get32(image, offset) + text_size
                    if target == BSS:
                        diff += data_size
                    _put32(image, offset, diff)
            return bytes(image)

        relocs = bytearray(size)
        for entry in self._marks:
            offset = entry.location + (text_size if entry.section == DATA else 0)
            if offset < 0 or offset + 2 > size:
                raise MarkError(f"mark at offset {offset} lies outside the image")

            if entry.flags & MarkFlag.LONG:
                relocs[offset + 1] = 5  # first word of a long
                offset += 2
                if offset + 2 > size:
                    raise MarkError(f"mark at offset {offset} lies outside the image")

            if entry.symbol is not None:
                code = 6 if entry.flags & MarkFlag.PCREL else 4
                code |= (entry.symbol.index << 3) & 0xFFFF
                relocs[offset] = (code >> 8) & 0xFF
                relocs[offset + 1] = code & 0xFF
            else:
                relocs[offset + 1] = _ALCYON_CODES.get(entry.target, 0)

        if not self.prg_mode:
            return bytes(relocs)

        # Compact the relocation words into the executable's relocation list.
        padded = relocs + b"\x00\x00"
        out = bytearray()
        first = True
        last = 0
        location = 0
        while location < size:
            if padded[location + 1] & 7 == 5:
                if first:
                    out += location.to_bytes(4, "big")
                    first = False
                else:
                    diff = location - last
                    while diff > 254:
                        out.append(1)
                        diff -= 254
                    out.append(diff)
                last = location
                location += 4
            else:
                location += 2

        out += b"\x00" if not first else b"\x00\x00\x00\x00"
        return bytes(out)

    def bsd_relocations(
        self,
        image: bytearray,
        text_size: int,
        data_size: int,
        section: int,
    ) -> bytes:
        """Build the BSD relocation table for marks made from ``section``.

        ``image`` holds the text segment followed by the data segment;
        values relative to DATA or BSS are rebased in place, since the
        linker treats them as relative to the start of TEXT.
        """
        table = bytearray()

        for entry in self._marks:
            if section not in (TEXT, DATA) or entry.section != section:
                continue

            rflag = _relocation_flags(entry.flags)

            if entry.symbol is not None:
                rflag |= 0x00000010 | ((entry.symbol.index << 8) & _MASK32)
            else:
                target = entry.target
                rflag |= _BSD_SEGMENT.get(target, 0)

                if target & (DATA | BSS):
                    offset = entry.location
                    if entry.section == DATA:
                        offset += text_size

                    diff = _read_payload(image, offset, rflag)
                    ol_bits = 0
                    if rflag & 0x04:
                        ol_bits = diff & 0x7FF
                        diff = (diff & 0xFFFFF800) >> 8
                    if rflag & 0x01:
                        diff = _word_swap(diff)
                    diff += text_size
                    if target == BSS:
                        diff += data_size
                    if rflag & 0x01:
                        diff = _word_swap(diff)
                    _write_payload(image, offset, rflag, diff, ol_bits)

            table += entry.location.to_bytes(4, "big")
            table += (rflag & _MASK32).to_bytes(4, "big")

        return bytes(table)

    def absolute_image(
        self,
        image: bytearray,
        text_size: int,
        data_size: int,
        origin: int,
        section: int,
    ) -> int:
        """Fix up marks from ``section`` in a raw image loaded at ``origin``.

        Returns the number of values fixed up. Raises MarkError for marks
        that refer to an external symbol.
        """
        patched = 0

        for entry in self._marks:
            if section not in (TEXT, DATA) or entry.section != section:
                continue

            rflag = _relocation_flags(entry.flags)
            if entry.symbol is not None:
                raise MarkError("Unresolved symbol when outputting raw image")

            target = entry.target
            offset = entry.location
            if entry.section == DATA:
                offset += text_size

            diff = _read_payload(image, offset, rflag)
            ol_bits = 0

            if target & (DATA | BSS):
                if rflag & 0x04:
                    ol_bits = diff & 0x7FF
                    diff = (diff & 0xFFFFF800) >> 8
                if rflag & 0x01:
                    diff = _word_swap(diff)
                diff += text_size
                if target == BSS:
                    diff += data_size

            if not rflag & 0x02:
                diff += origin

            if rflag & 0x01:
                diff = _word_swap(diff)

            _write_payload(image, offset, rflag, diff, ol_bits)
            patched += 1

        return patched

    def elf_relocations(
        self,
        section_image: bytes,
        section: int,
        section_numbers: Mapping[int, int],
        extra_symbols: int,
    ) -> bytes:
        """Build the ELF ``rela`` records for marks made from ``section``.

        ``section_numbers`` maps TEXT, DATA and BSS to their ELF section
        header numbers; ``extra_symbols`` is the number of symbol table
        entries that come before the assembler's own symbols.
        """
        buffer = bytearray(section_image)
        records = bytearray()

        for entry in self._marks:
            if not entry.section & section:
                continue

            symbol = entry.symbol
            flags = entry.flags
            if symbol is not None and not symbol.defined and symbol.is_global:
                r_sym = symbol.index + extra_symbols
            elif flags & TEXT:
                r_sym = section_numbers.get(TEXT, 0)
            elif flags & DATA:
                r_sym = section_numbers.get(DATA, 0)
            elif flags & BSS:
                r_sym = section_numbers.get(BSS, 0)
            else:
                r_sym = 0

            r_type = 5 if flags & MarkFlag.PCREL else 1  # R_68K_PC16 / R_68K_32
            addend = _get32(buffer, entry.location)

            records += entry.location.to_bytes(4, "big")
            records += (((r_sym << 8) | r_type) & _MASK32).to_bytes(4, "big")
            records += addend.to_bytes(4, "big")

        return bytes(records)