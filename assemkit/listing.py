"""Assembly listing output: page headers, line images and data columns.

A listing line has fixed columns::

    nnnnn  aaaaaaaa  dddddddddddddddddddd T source code

line number, location, up to ten data bytes, a tag and the source text.
"""

from __future__ import annotations

import datetime as _dt
from collections.abc import Callable, Mapping
from typing import TextIO

__all__ = [
    "BOT_MAR",
    "LN_COL",
    "LOC_COL",
    "DATA_COL",
    "DATA_END",
    "TAG_COL",
    "SRC_COL",
    "Listing",
    "dos_date",
    "dos_time",
    "time_string",
    "date_string",
    "uppercase_hex_columns",
]

BOT_MAR = 1  # blank lines at the bottom of a page
LN_COL = 0  # line number column
LOC_COL = 7  # location column
DATA_COL = 17  # first data column
DATA_END = DATA_COL + 20  # one past the last data column
TAG_COL = 38  # tag character
SRC_COL = 40  # source text column

_MONTHS = (
    "", "Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul",
    "Aug", "Sep", "Oct", "Nov", "Dec", "", "", "",
)


def dos_date(moment: _dt.datetime | None = None) -> int:
    """Return ``moment`` (default: now) as a GEMDOS packed date."""
    moment = moment or _dt.datetime.now()
    return ((moment.year - 1980) << 9) | (moment.month << 5) | moment.day


def dos_time(moment: _dt.datetime | None = None) -> int:
    """Return ``moment`` (default: now) as a GEMDOS packed time."""
    moment = moment or _dt.datetime.now()
    return (moment.hour << 11) | (moment.minute << 5) | moment.second


def time_string(value: int) -> str:
    """Format a packed time as ``h:mm:ss am|pm``."""
    hour = value >> 11
    if hour > 12:
        hour -= 12
        suffix = "pm"
    else:
        suffix = "am"
    minutes = (value >> 5) & 0x3F
    seconds = (value & 0x1F) << 1
    return f"{hour}:{minutes:02d}:{seconds:02d} {suffix}"


def date_string(value: int) -> str:
    """Format a packed date as ``d-Mon-yyyy``."""
    return f"{value & 0x1F}-{_MONTHS[(value >> 5) & 0xF]}-{(value >> 9) + 1980}"


def uppercase_hex_columns(line: str) -> str:
    """Uppercase the letters a-f in the location and data columns."""
    head, middle, tail = line[:LOC_COL], line[LOC_COL:SRC_COL], line[SRC_COL:]
    middle = "".join(c.upper() if "a" <= c <= "f" else c for c in middle)
    return head + middle + tail


class Listing:
    """Writes a paginated assembly listing to a text stream."""

    def __init__(
        self,
        stream: TextIO,
        *,
        level: int = 1,
        paginate: bool = True,
        source_name: str = "",
        banner: str = "assemkit",
        clock: Callable[[], _dt.datetime] | None = None,
    ) -> None:
        self.stream = stream
        self.level = level
        self.paginate = paginate
        self.source_name = source_name
        self.banner = banner
        self.clock = clock or _dt.datetime.now
        self.page_length = 61
        self.page_width = 132
        self.title = ""
        self.subtitle = ""
        self.page_number = 0
        self.lines_on_page = 0
        self._subtitle_seen = False
        self._image = [" "] * SRC_COL
        self._start_location = 0
        self._line_number: int | None = None

    def _println(self, line: str) -> None:
        self.stream.write(line)
        self.stream.write("\n")

    def eject(self) -> None:
        """Start a new page."""
        if self.level > 0 and self.paginate:
            self._println("\f")
            self.lines_on_page = 0

    def ship(self, line: str) -> None:
        """Write one line, handling page breaks and page headers."""
        if self.level <= 0:
            return

        if self.paginate:
            if self.lines_on_page >= self.page_length - BOT_MAR:
                self.eject()

            if self.lines_on_page == 0:
                self.page_number += 1
                moment = self.clock()
                self._println("")
                self._println(
                    f"{self.title:<40}{self.source_name:<20} Page "
                    f"{self.page_number:<4d}    {time_string(dos_time(moment))} "
                    f"{date_string(dos_date(moment))}        {self.banner}"
                )
                self._println(self.subtitle)
                self._println("")
                self.lines_on_page = 4

        self._println(line)
        self.lines_on_page += 1

    def source_line(
        self, text: str, tag: str = " ", location: int = 0, line_number: int | None = None
    ) -> None:
        """Start a new line image for source ``text`` at ``location``.

        Control characters other than tab are shown as ``^X``.
        """
        self._start_location = location
        self._line_number = line_number
        self._image = [" "] * SRC_COL
        self._image[TAG_COL] = tag[:1] or " "
        for char in text:
            if char >= " " or char == "\t":
                self._image.append(char)
            else:
                self._image.extend(("^", chr(ord(char) + 0x40)))

    def _put(self, column: int, text: str) -> None:
        self._image[column:column + len(text)] = list(text)

    def tag(self, char: str) -> None:
        """Mark the current line, typically for an error or warning."""
        self._image[TAG_COL + 1] = char[:1] or " "

    def value(self, value: int) -> None:
        """Show an equated value in the data columns."""
        self._put(DATA_COL - 1, f"={value & 0xFFFFFFFF:08X}")

    def _flush_image(self) -> None:
        self.ship(uppercase_hex_columns("".join(self._image)))

    def end_line(
        self,
        location: int,
        data: bytes = b"",
        fixup_offsets: Mapping[int, int] | None = None,
    ) -> None:
        """Finish the current line and ship it with the bytes it generated.

        ``location`` is the location counter after the line. ``data`` holds
        the bytes deposited since the line began. ``fixup_offsets`` maps a
        location to the number of bytes there awaiting a fixup; those bytes
        are shown as ``xx``.
        """
        fixups = fixup_offsets or {}
        current = self._start_location

        if current != location:
            self._put(LOC_COL, f"{current & 0xFFFFFFFF:08X}")

        if self._line_number is not None:
            self._put(LN_COL, f"{self._line_number:5d}")

        if not data:
            self._flush_image()
            return

        column = DATA_COL
        pending = 0
        for byte in data:
            if column >= DATA_END:
                column = DATA_COL
                self._flush_image()
                self._image = [" "] * SRC_COL
                self._put(LOC_COL, f"{current & 0xFFFFFFFF:08X}")

            if not pending:
                pending = fixups.get(current, 0)

            if pending:
                pending -= 1
                text = "xx"
            else:
                text = f"{byte & 0xFF:02x}"

            self._put(column, text)
            column += 2
            current += 1

        if column > DATA_COL:
            self._flush_image()

    def set_title(self, title: str) -> None:
        """Set the page title; after the first page this also ejects and
        clears the subtitle."""
        if not isinstance(title, str):
            raise ValueError("missing string")
        self.title = title
        if self.page_number > 1:
            self.subtitle = ""
            self.eject()

    def set_subtitle(self, subtitle: str, eject: bool = True) -> None:
        """Set the subtitle; ejects on every subtitle but the first unless
        ``eject`` is false."""
        if not isinstance(subtitle, str):
            raise ValueError("missing string")
        self.subtitle = subtitle
        if eject and (self._subtitle_seen or self.page_number > 1):
            self.eject()
        self._subtitle_seen = True