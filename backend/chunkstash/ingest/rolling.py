"""Rolling checksum used to find content-defined chunk boundaries."""

from __future__ import annotations

_CHAR_OFFSET = 31
_MASK32 = 0xFFFFFFFF


class RollingChecksum:
    """Adler-style rolling checksum over a fixed window.

    ``s1`` is the sum of the window bytes and ``s2`` a position-weighted sum;
    both are kept modulo 2**32 and updated in constant time per byte. The
    state is a function of the last ``window_size`` bytes only, so a split
    point depends on local content and not on where it sits in the file.
    """

    __slots__ = ("window_size", "_split_mask", "_window", "_pos", "s1", "s2")

    def __init__(self, window_size: int = 64, blob_bits: int = 13) -> None:
        self.window_size = window_size
        self._split_mask = (1 << blob_bits) - 1
        self.reset()

    def reset(self) -> None:
        """Return to the state of a window filled with zero bytes."""
        self._window = bytearray(self.window_size)
        self._pos = 0
        self.s1 = (self.window_size * _CHAR_OFFSET) & _MASK32
        self.s2 = (self.window_size * (self.window_size - 1) * _CHAR_OFFSET) & _MASK32

    def roll(self, byte: int) -> None:
        """Push one byte into the window, evicting the oldest one."""
        drop = self._window[self._pos]
        self._window[self._pos] = byte
        self._pos = (self._pos + 1) % self.window_size
        self.s1 = (self.s1 + byte - drop) & _MASK32
        self.s2 = (self.s2 + self.s1 - self.window_size * (drop + _CHAR_OFFSET)) & _MASK32

    def write(self, data: bytes) -> None:
        for byte in data:
            self.roll(byte)

    def on_split(self) -> bool:
        """True when the current window is a content-defined split point."""
        return (self.s2 & self._split_mask) == self._split_mask

    def digest(self) -> int:
        return ((self.s1 << 16) | (self.s2 & 0xFFFF)) & _MASK32

    def seed(self, preceding: bytes) -> None:
        """Rebuild the state from the bytes that precede the current position.

        Only the last ``window_size`` bytes matter; fewer bytes means the
        stream itself is shorter than the window.
        """
        self.reset()
        self.write(preceding[-self.window_size :])

    def find_split(self, data: bytes | memoryview) -> tuple[int, bool]:
        """Roll bytes from ``data`` until a split point.

        Returns ``(consumed, split)``: how many bytes were rolled, and whether
        the last of them is a split point. Equivalent to calling ``roll`` then
        ``on_split`` per byte; the loop keeps state in locals for throughput.
        """
        window = self._window
        size = self.window_size
        mask = self._split_mask
        pos = self._pos
        s1 = self.s1
        s2 = self.s2
        consumed = 0
        split = False
        for byte in data:
            drop = window[pos]
            window[pos] = byte
            pos += 1
            if pos == size:
                pos = 0
            s1 = (s1 + byte - drop) & _MASK32
            s2 = (s2 + s1 - size * (drop + _CHAR_OFFSET)) & _MASK32
            consumed += 1
            if s2 & mask == mask:
                split = True
                break
        self._pos = pos
        self.s1 = s1
        self.s2 = s2
        return consumed, split


__all__ = ["RollingChecksum"]
