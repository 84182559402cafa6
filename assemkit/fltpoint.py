"""Conversion of host floating point values to target number formats.

The Motorola processors expect IEEE-754 single and double values, 96-bit
extended values, DSP56001 fractional values and plain fixed point values.
Every routine here builds the bit pattern explicitly from the mantissa and
exponent, so the result never depends on how the host lays out its floats.
"""

from __future__ import annotations

import math
import struct
import warnings

__all__ = [
    "float_to_ieee754",
    "double_to_ieee754",
    "double_to_extended",
    "double_to_dsp_float",
    "double_to_fixed_point",
]

_MASK32 = 0xFFFFFFFF
_MASK64 = 0xFFFFFFFFFFFFFFFF


def _signbit(value: float) -> bool:
    return math.copysign(1.0, value) < 0


def _require_finite(value: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"cannot convert non-finite value {value!r}")
    return value


def float_to_ieee754(value: float) -> int:
    """Return the 32-bit IEEE-754 single precision pattern of ``value``."""
    value = _require_finite(value)
    try:
        single = struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError as exc:
        raise ValueError(f"value {value!r} does not fit in a single") from exc

    sign = 0x80000000 if _signbit(single) else 0
    mantissa, exponent = math.frexp(abs(single))
    exponent += 0x7E

    # A zero exponent means there is no implied leading one.
    if single == 0:
        exponent = 0

    bits = int(math.ldexp(mantissa, 24)) & 0x007FFFFF
    return bits | sign | ((exponent & 0xFF) << 23)


def double_to_ieee754(value: float) -> int:
    """Return the 64-bit IEEE-754 double precision pattern of ``value``."""
    value = _require_finite(value)
    sign = 0x8000000000000000 if _signbit(value) else 0
    mantissa, exponent = math.frexp(abs(value))
    exponent += 0x3FE

    if value == 0:
        exponent = 0

    bits = int(math.ldexp(mantissa, 53)) & 0x000FFFFFFFFFFFFF
    return bits | sign | ((exponent & 0x7FF) << 52)


def double_to_extended(value: float) -> bytes:
    """Return the 12-byte Motorola extended precision form of ``value``.

    Layout: 1 sign bit, 15 exponent bits (bias 0x3FFF), 16 zero bits and a
    64-bit mantissa with an explicit leading one.
    """
    value = _require_finite(value)
    sign = 0x80 if _signbit(value) else 0
    mantissa, exponent = math.frexp(abs(value))
    exponent += 0x3FFE

    if value == 0:
        exponent = 0

    int_mantissa = int(math.ldexp(mantissa, 64)) & _MASK64
    head = bytes((sign | ((exponent >> 8) & 0x7F), exponent & 0xFF, 0, 0))
    return head + int_mantissa.to_bytes(8, "big")


def _round_half_away(value: float) -> int:
    magnitude = abs(value)
    whole = math.floor(magnitude)
    if magnitude - whole >= 0.5:
        whole += 1
    return -whole if value < 0 else whole


def double_to_dsp_float(value: float) -> int:
    """Return the DSP56001 24-bit fractional form of ``value``.

    Values at or beyond +1 or -1 are clamped with a warning. Negative
    results are given as their 32-bit two's complement pattern.
    """
    value = _require_finite(value)
    if value >= 1:
        warnings.warn("DSP value clamped to +1.", stacklevel=2)
        return 0x7FFFFF
    if value <= -1:
        warnings.warn("DSP value clamped to -1.", stacklevel=2)
        return 0x800000

    return _round_half_away(math.ldexp(value, 23)) & _MASK32


def double_to_fixed_point(value: float, int_bits: int, frac_bits: int) -> int:
    """Return ``value`` as a 64-bit fixed point pattern with ``frac_bits``
    fraction bits; negative values come out two's complemented.

    ``int_bits`` is accepted for symmetry but does not limit the result.
    """
    value = _require_finite(value)
    negative = _signbit(value)
    magnitude = abs(value)

    result = int(magnitude * float(1 << frac_bits)) & _MASK64

    if negative:
        result = ((result ^ _MASK64) + 1) & _MASK64

    return result