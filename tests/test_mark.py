from dataclasses import dataclass

import pytest

from assemkit.mark import (
    BSS,
    DATA,
    TEXT,
    MarkError,
    MarkFlag,
    MarkTable,
)


@dataclass
class FakeSymbol:
    name: str
    index: int
    defined: bool = False
    is_global: bool = True


def _swap(value):
    return ((value & 0xFFFF) << 16) | (value >> 16)


def _decode_relmod(stream):
    locations = [int.from_bytes(stream[:4], "big")]
    current = locations[0]
    for byte in stream[4:]:
        if byte == 0:
            break
        if byte == 1:
            current += 254
            continue
        current += byte
        locations.append(current)
    return locations


def test_mark_sets_from_and_symbol_flags():
    table = MarkTable()
    first = table.mark(TEXT, 4, DATA, MarkFlag.LONG)
    second = table.mark(TEXT, 8, TEXT, MarkFlag.LONG)
    third = table.mark(DATA, 0, TEXT, 0, FakeSymbol("ext", 2))
    assert first.flags & MarkFlag.CHFROM
    assert not second.flags & MarkFlag.CHFROM
    assert third.flags & MarkFlag.CHFROM
    assert third.flags & MarkFlag.SYMBOL
    assert first.target == DATA
    assert len(table) == 3


def test_relocation_count_per_section():
    table = MarkTable()
    table.mark(TEXT, 0, TEXT, MarkFlag.LONG)
    table.mark(TEXT, 4, DATA, MarkFlag.LONG)
    table.mark(DATA, 0, BSS, MarkFlag.LONG)
    assert table.relocation_count(TEXT) == 2
    assert table.relocation_count(DATA) == 1
    assert table.relocation_count(BSS) == 0


def test_prg_mode_refuses_external_reference():
    table = MarkTable(prg_mode=True)
    with pytest.raises(MarkError, match="illegal external reference"):
        table.mark(TEXT, 0, TEXT, MarkFlag.LONG, FakeSymbol("ext", 1))


def test_alcyon_relocation_words_for_long():
    table = MarkTable()
    table.mark(TEXT, 0, TEXT, MarkFlag.LONG)
    relocs = table.alcyon_image(bytearray(8), 8, 0, True)
    assert relocs == bytes([0, 5, 0, 2, 0, 0, 0, 0])


def test_alcyon_relocation_word_for_symbol():
    table = MarkTable()
    table.mark(TEXT, 2, TEXT, MarkFlag.PCREL, FakeSymbol("ext", 3))
    relocs = table.alcyon_image(bytearray(4), 4, 0, True)
    assert relocs[2] == 0
    assert relocs[3] == 6 | (3 << 3)


def test_alcyon_data_marks_are_offset_by_text_size():
    table = MarkTable()
    table.mark(DATA, 0, DATA, MarkFlag.LONG)
    relocs = table.alcyon_image(bytearray(8), 4, 4, True)
    assert relocs[:4] == bytes(4)
    assert relocs[5] == 5
    assert relocs[7] == 1


def test_prg_relmod_without_relocations():
    table = MarkTable(prg_mode=True)
    assert table.alcyon_image(bytearray(8), 8, 0, True) == bytes(4)


def test_prg_relmod_round_trip():
    locations = [0, 8, 12, 700, 704]
    table = MarkTable(prg_mode=True)
    for location in locations:
        table.mark(TEXT, location, TEXT, MarkFlag.LONG)
    stream = table.alcyon_image(bytearray(720), 720, 0, True)
    assert stream[-1] == 0
    assert _decode_relmod(stream) == locations


def test_prg_fixup_rebases_data_and_bss():
    table = MarkTable(prg_mode=True)
    table.mark(TEXT, 0, DATA, MarkFlag.LONG)
    table.mark(TEXT, 4, BSS, MarkFlag.LONG)
    table.mark(TEXT, 8, TEXT, MarkFlag.LONG)
    image = bytearray((0x10).to_bytes(4, "big") * 3 + bytes(4))
    table.alcyon_image(image, 12, 4, False)
    assert int.from_bytes(image[0:4], "big") == 0x10 + 12
    assert int.from_bytes(image[4:8], "big") == 0x10 + 12 + 4
    assert int.from_bytes(image[8:12], "big") == 0x10


def test_non_prg_fixup_leaves_image_alone():
    table = MarkTable()
    table.mark(TEXT, 0, DATA, MarkFlag.LONG)
    image = bytearray((0x10).to_bytes(4, "big"))
    assert table.alcyon_image(image, 4, 0, False) == (0x10).to_bytes(4, "big")


def test_bsd_long_data_relocation():
    table = MarkTable()
    table.mark(TEXT, 0, DATA, MarkFlag.LONG)
    image = bytearray((4).to_bytes(4, "big") + bytes(8))
    records = table.bsd_relocations(image, 8, 4, TEXT)
    assert len(records) == 8
    assert int.from_bytes(records[:4], "big") == 0
    assert int.from_bytes(records[4:], "big") == 0x40 | 0x600
    assert int.from_bytes(image[:4], "big") == 4 + 8


def test_bsd_word_relocation_flag_and_patch():
    table = MarkTable()
    table.mark(TEXT, 2, BSS, MarkFlag.WORD)
    image = bytearray(bytes(2) + (6).to_bytes(2, "big") + bytes(4))
    records = table.bsd_relocations(image, 8, 2, TEXT)
    rflag = int.from_bytes(records[4:], "big")
    assert rflag & 0x02
    assert rflag & 0x800
    assert int.from_bytes(image[2:4], "big") == 6 + 8 + 2


def test_bsd_movei_value_stays_word_swapped():
    table = MarkTable()
    table.mark(TEXT, 0, DATA, MarkFlag.LONG | MarkFlag.MOVEI)
    original = 0x00012345
    image = bytearray(_swap(original).to_bytes(4, "big") + bytes(4))
    records = table.bsd_relocations(image, 0x100, 4, TEXT)
    assert int.from_bytes(records[4:], "big") & 0x01
    assert int.from_bytes(image[:4], "big") == _swap(original + 0x100)


def test_bsd_symbol_relocation_keeps_image():
    table = MarkTable()
    table.mark(TEXT, 0, TEXT, MarkFlag.LONG, FakeSymbol("ext", 5))
    image = bytearray(b"\x00\x00\x00\x07")
    records = table.bsd_relocations(image, 4, 0, TEXT)
    rflag = int.from_bytes(records[4:], "big")
    assert rflag & 0x10
    assert rflag >> 8 == 5
    assert image == bytearray(b"\x00\x00\x00\x07")


def test_bsd_filters_by_from_section():
    table = MarkTable()
    table.mark(TEXT, 0, TEXT, MarkFlag.LONG)
    table.mark(DATA, 0, DATA, MarkFlag.LONG)
    image = bytearray(bytes(4) + (2).to_bytes(4, "big"))
    text_records = table.bsd_relocations(image, 4, 4, TEXT)
    data_records = table.bsd_relocations(image, 4, 4, DATA)
    assert len(text_records) == 8
    assert len(data_records) == 8
    assert int.from_bytes(image[4:8], "big") == 2 + 4
    assert table.bsd_relocations(image, 4, 4, BSS) == b""


def test_absolute_image_adds_origin():
    table = MarkTable()
    table.mark(TEXT, 0, TEXT, MarkFlag.LONG)
    table.mark(TEXT, 4, DATA, MarkFlag.LONG)
    image = bytearray((8).to_bytes(4, "big") + (0).to_bytes(4, "big") + bytes(4))
    assert table.absolute_image(image, 8, 4, 0x4000, TEXT) == 2
    assert int.from_bytes(image[0:4], "big") == 8 + 0x4000
    assert int.from_bytes(image[4:8], "big") == 8 + 0x4000


def test_absolute_image_word_skips_origin():
    table = MarkTable()
    table.mark(TEXT, 0, DATA, MarkFlag.WORD)
    image = bytearray((1).to_bytes(2, "big") + bytes(2))
    table.absolute_image(image, 4, 0, 0x4000, TEXT)
    assert int.from_bytes(image[0:2], "big") == 1 + 4


def test_absolute_image_rejects_symbols():
    table = MarkTable()
    table.mark(TEXT, 0, TEXT, MarkFlag.LONG, FakeSymbol("ext", 1))
    with pytest.raises(MarkError, match="Unresolved symbol"):
        table.absolute_image(bytearray(4), 4, 0, 0, TEXT)


def test_elf_relocation_records():
    table = MarkTable()
    table.mark(TEXT, 0, DATA, MarkFlag.LONG)
    table.mark(TEXT, 4, TEXT, MarkFlag.LONG | MarkFlag.PCREL, FakeSymbol("ext", 2))
    table.mark(DATA, 0, TEXT, MarkFlag.LONG)
    section_image = (0x20).to_bytes(4, "big") + bytes(4)
    records = table.elf_relocations(section_image, TEXT, {TEXT: 1, DATA: 2}, 3)
    assert len(records) == 24
    first = [int.from_bytes(records[i:i + 4], "big") for i in range(0, 12, 4)]
    assert first == [0, (2 << 8) | 1, 0x20]
    second = [int.from_bytes(records[i:i + 4], "big") for i in range(12, 24, 4)]
    assert second == [4, ((2 + 3) << 8) | 5, 0]


def test_mark_outside_image_raises():
    table = MarkTable()
    table.mark(TEXT, 8, DATA, MarkFlag.LONG)
    with pytest.raises(MarkError):
        table.bsd_relocations(bytearray(4), 4, 0, TEXT)