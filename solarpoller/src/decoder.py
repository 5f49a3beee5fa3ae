"""
Pure register decoder: raw 16-bit words to typed values.

Words arrive in device order, big-endian with the high word first, exactly
as returned by a holding-register read.  Measurements decode to the raw
integer as a float (scaling is a separate step); status words decode to the
raw unsigned integer and are never scaled.

No side effects, no I/O.

CHANGELOG:
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Sequence

from solarpoller.src.errors import DecodeError, UnsupportedEncoding
from solarpoller.src.registers import (
    MEASUREMENT_WIDTHS,
    STATUS_WORD_WIDTHS,
    RegisterWidth,
    ValueKind,
    VariableSpec,
)

# ---------------------------------------------------------------------------
# Word assembly helpers
# ---------------------------------------------------------------------------


def _assemble(words: Sequence[int], width: RegisterWidth) -> int:
    """Join *width.word_count* words (high word first) into an unsigned integer."""
    count = width.word_count
    if len(words) < count:
        raise DecodeError(f"expected {count} words for {width.value}, got {len(words)}")
    value = 0
    for word in words[:count]:
        value = (value << 16) | (word & 0xFFFF)
    return value


def _coerce(width: object, kind: ValueKind) -> RegisterWidth:
    try:
        return RegisterWidth(width)
    except ValueError:
        raise UnsupportedEncoding(width, kind.value) from None


def _to_signed(value: int, bits: int) -> int:
    """Reinterpret an unsigned bit pattern as two's complement of *bits* width."""
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode_measurement(words: Sequence[int], width: RegisterWidth) -> float:
    """Decode a measurement register span into its unscaled value.

    Signed widths are sign-extended from their exact width, so a 16-bit
    ``0xFFFF`` is ``-1.0`` and a 16-bit ``0x8000`` is ``-32768.0``.

    Args:
        words: Raw 16-bit words, high word first.
        width: Register width / signedness.

    Returns:
        The raw integer as a float.

    Raises:
        UnsupportedEncoding: *width* is not a measurement width.
        DecodeError: Fewer words than *width* spans.
    """
    width = _coerce(width, ValueKind.MEASUREMENT)
    if width not in MEASUREMENT_WIDTHS:
        raise UnsupportedEncoding(width, ValueKind.MEASUREMENT.value)
    raw = _assemble(words, width)
    if width.signed:
        raw = _to_signed(raw, width.bits)
    return float(raw)


def decode_status_word(words: Sequence[int], width: RegisterWidth) -> int:
    """Decode a status register span into its raw unsigned bit pattern.

    Raises:
        UnsupportedEncoding: *width* is signed or wider than 32 bits.
        DecodeError: Fewer words than *width* spans.
    """
    width = _coerce(width, ValueKind.STATUS_WORD)
    if width not in STATUS_WORD_WIDTHS:
        raise UnsupportedEncoding(width, ValueKind.STATUS_WORD.value)
    return _assemble(words, width)


def scale_measurement(spec: VariableSpec, words: Sequence[int]) -> float:
    """Decode *words* for *spec* and apply its scale factor."""
    return decode_measurement(words, spec.width) * spec.scale
