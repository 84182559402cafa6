"""Building blocks for a Motorola-family macro assembler: float encodings,
listings, keyword tables, macros and relocation marks."""

__version__ = "0.1.0"
__all__ = ["fltpoint", "listing", "kwgen", "macro", "mark"]