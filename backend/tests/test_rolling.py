"""Tests for the rolling checksum."""

import random

from chunkstash.ingest.rolling import RollingChecksum


def test_state_depends_only_on_window() -> None:
    window = bytes(random.Random(1).randrange(256) for _ in range(64))
    first = RollingChecksum()
    first.write(b"some unrelated prefix" * 10 + window)
    second = RollingChecksum()
    second.write(b"a different, longer prefix that shifts everything" * 7 + window)
    assert (first.s1, first.s2) == (second.s1, second.s2)
    assert first.digest() == second.digest()


def test_zero_window_never_splits() -> None:
    rs = RollingChecksum()
    initial = (rs.s1, rs.s2)
    rs.write(bytes(4096))
    assert (rs.s1, rs.s2) == initial
    assert not rs.on_split()


def test_seed_matches_full_stream() -> None:
    data = random.Random(7).randbytes(10_000)
    streamed = RollingChecksum()
    streamed.write(data)
    seeded = RollingChecksum()
    seeded.seed(data)
    assert (seeded.s1, seeded.s2) == (streamed.s1, streamed.s2)

    short = RollingChecksum()
    short.write(data[:10])
    seeded_short = RollingChecksum()
    seeded_short.seed(data[:10])
    assert (seeded_short.s1, seeded_short.s2) == (short.s1, short.s2)


def test_find_split_agrees_with_roll() -> None:
    data = random.Random(3).randbytes(50_000)
    expected = []
    rs = RollingChecksum(blob_bits=8)
    for position, byte in enumerate(data):
        rs.roll(byte)
        if rs.on_split():
            expected.append(position + 1)

    found = []
    fast = RollingChecksum(blob_bits=8)
    offset = 0
    while offset < len(data):
        consumed, split = fast.find_split(data[offset:])
        offset += consumed
        if split:
            found.append(offset)
    assert found == expected
    assert found, "an 8-bit predicate should fire on 50k random bytes"
    assert (fast.s1, fast.s2) == (rs.s1, rs.s2)
