import math
import struct

import pytest

from assemkit.fltpoint import (
    double_to_dsp_float,
    double_to_extended,
    double_to_fixed_point,
    double_to_ieee754,
    float_to_ieee754,
)


def _struct_single(value):
    return struct.unpack(">I", struct.pack(">f", value))[0]


def _struct_double(value):
    return struct.unpack(">Q", struct.pack(">d", value))[0]


@pytest.mark.parametrize("value", [1.0, -1.0, 0.5, 3.25, -123.375, 1e-10, 6.5e30, 0.1])
def test_single_matches_native_layout(value):
    assert float_to_ieee754(value) == _struct_single(value)


@pytest.mark.parametrize("value", [1.0, -2.0, 0.1, math.pi, -1e300, 1e-300, 12345.6789])
def test_double_matches_native_layout(value):
    assert double_to_ieee754(value) == _struct_double(value)


def test_zero_and_negative_zero():
    assert float_to_ieee754(0.0) == 0
    assert float_to_ieee754(-0.0) == 0x80000000
    assert double_to_ieee754(0.0) == 0
    assert double_to_ieee754(-0.0) == 0x8000000000000000


def test_non_finite_rejected():
    with pytest.raises(ValueError):
        float_to_ieee754(math.inf)
    with pytest.raises(ValueError):
        double_to_ieee754(math.nan)
    with pytest.raises(ValueError):
        float_to_ieee754(1e300)


def _decode_extended(raw):
    sign = -1.0 if raw[0] & 0x80 else 1.0
    exponent = ((raw[0] & 0x7F) << 8) | raw[1]
    mantissa = int.from_bytes(raw[4:], "big")
    return sign * math.ldexp(mantissa, exponent - 0x3FFF - 63)


@pytest.mark.parametrize("value", [1.0, -1.0, 0.75, math.pi, -1e100, 2.5e-50])
def test_extended_round_trip(value):
    raw = double_to_extended(value)
    assert len(raw) == 12
    assert raw[2] == 0 and raw[3] == 0
    assert raw[4] & 0x80
    assert _decode_extended(raw) == value


def test_extended_zero():
    assert double_to_extended(0.0) == bytes(12)
    assert double_to_extended(-0.0)[0] == 0x80


def test_dsp_half():
    assert double_to_dsp_float(0.5) == 0x400000


def test_dsp_clamps_with_warning():
    with pytest.warns(UserWarning):
        assert double_to_dsp_float(1.0) == 0x7FFFFF
    with pytest.warns(UserWarning):
        assert double_to_dsp_float(-3.0) == 0x800000


@pytest.mark.parametrize("value", [0.25, -0.25, 0.123456, -0.9])
def test_dsp_round_trip(value):
    pattern = double_to_dsp_float(value)
    signed = pattern - (1 << 32) if pattern & 0x80000000 else pattern
    assert abs(signed / (1 << 23) - value) <= 1 / (1 << 24)


@pytest.mark.parametrize("value", [1.5, 0.25, 100.0, 7.125])
def test_fixed_point_positive(value):
    assert double_to_fixed_point(value, 16, 16) / 65536 == value


@pytest.mark.parametrize("value", [1.5, 0.25, 100.0])
def test_fixed_point_negative_is_twos_complement(value):
    positive = double_to_fixed_point(value, 16, 16)
    negative = double_to_fixed_point(-value, 16, 16)
    assert (positive + negative) % (1 << 64) == 0
    assert negative < (1 << 64)


def test_fixed_point_truncates():
    assert double_to_fixed_point(1.99, 8, 0) == 1