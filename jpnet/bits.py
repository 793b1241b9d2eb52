"""Bit-flag helpers."""


def bit_enabled(word: int, bit: int) -> bool:
    """True if any of ``bit`` is set in ``word``."""
    return (word & bit) != 0


def bit_disabled(word: int, bit: int) -> bool:
    """True if none of ``bit`` is set in ``word``."""
    return (word & bit) == 0


def bit_cmp_mask(word: int, bit: int, mask: int) -> bool:
    """True if the bits of ``word`` selected by ``bit`` equal ``mask``."""
    return (word & bit) == mask


def set_bits(word: int, bits: int) -> int:
    """``word`` with ``bits`` set."""
    return word | bits


def clr_bits(word: int, bits: int) -> int:
    """``word`` with ``bits`` cleared."""
    return word & ~bits