"""Tests for the file chunker."""

from __future__ import annotations

from pathlib import Path

import pytest

from chunkstash.core.errors import NotFound
from chunkstash.ingest.chunker import FileChunker
from chunkstash.ingest.rolling import RollingChecksum
from chunkstash.ingest.types import TxContext
from chunkstash.utils.hashing import sha1_bytes

KIB = 1 << 10
MIB = 1 << 20


def _reference_offsets(data: bytes, min_size: int, max_size: int, blob_bits: int) -> list[int]:
    """Byte-at-a-time chunk boundaries, no buffering shortcuts."""
    rs = RollingChecksum(64, blob_bits)
    offsets = [0]
    length = 0
    for byte in data:
        rs.roll(byte)
        length += 1
        if (rs.on_split() and length > min_size) or length >= max_size:
            offsets.append(offsets[-1] + length)
            length = 0
    if length:
        offsets.append(offsets[-1] + length)
    return offsets


def _index(store, chunker: FileChunker, path: Path, small: bool = False):
    tx = store.begin(TxContext(hostname="test"))
    key = "key"
    if small:
        result = chunker.write_small_file(tx, key, path)
    else:
        result = chunker.write_file(tx, key, path)
    return result, tx.index[key]


@pytest.mark.parametrize("read_size", [7, 4096, 1 << 20])
def test_boundaries_match_byte_at_a_time_scan(memory_store, make_file, random_bytes, read_size: int) -> None:
    data = random_bytes(300 * KIB, seed=11)
    path = make_file("random.bin", data)
    chunker = FileChunker(memory_store, min_blob_size=4 * KIB, max_blob_size=64 * KIB, blob_bits=10, read_size=read_size)
    result, entries = _index(memory_store, chunker, path)

    assert [entry.offset for entry in entries] == _reference_offsets(data, 4 * KIB, 64 * KIB, 10)
    assert result.hash == sha1_bytes(data)
    for previous, entry in zip(entries, entries[1:]):
        assert entry.hash == sha1_bytes(data[previous.offset : entry.offset])


def test_index_offsets_and_chunk_sizes(memory_store, make_file, random_bytes) -> None:
    data = random_bytes(2 * MIB, seed=5)
    path = make_file("big.bin", data)
    result, entries = _index(memory_store, FileChunker(memory_store), path)

    assert entries[0].offset == 0 and entries[0].hash == ""
    offsets = [entry.offset for entry in entries]
    assert offsets == sorted(set(offsets))
    assert offsets[-1] == len(data) == result.size
    sizes = [b - a for a, b in zip(offsets, offsets[1:])]
    assert len(sizes) >= 2
    assert all(1 <= size <= MIB for size in sizes)
    assert result.blobs_count == len(sizes)
    assert result.blobs_uploaded + result.blobs_skipped == result.blobs_count
    assert result.size_uploaded + result.size_skipped == result.size


def test_repetitive_input_is_bounded_by_max_size(memory_store, make_file) -> None:
    path = make_file("zeros.bin", bytes(2 * MIB))
    result, entries = _index(memory_store, FileChunker(memory_store), path)

    assert [entry.offset for entry in entries] == [0, MIB, 2 * MIB]
    assert entries[1].hash == entries[2].hash
    assert result.blobs_uploaded == 1
    assert result.blobs_skipped == 1
    assert result.size_skipped == MIB


def test_small_file_path_matches_general_path(memory_store, make_file, random_bytes) -> None:
    data = random_bytes(64 * KIB, seed=2)
    path = make_file("exact-min.bin", data)
    chunker = FileChunker(memory_store)

    general, general_entries = _index(memory_store, chunker, path)
    small, small_entries = _index(memory_store, chunker, path, small=True)

    assert small_entries == general_entries
    assert small.hash == general.hash == sha1_bytes(data)
    assert small.blobs_count == general.blobs_count == 1


def test_tiny_file_is_single_blob(memory_store, make_file) -> None:
    path = make_file("tiny.txt", b"0123456789")
    result, entries = _index(memory_store, FileChunker(memory_store), path, small=True)

    assert result.blobs_count == 1
    assert result.blobs_uploaded == 1
    assert result.size == 10
    assert [(e.offset, e.hash) for e in entries] == [(0, ""), (10, sha1_bytes(b"0123456789"))]


def test_empty_file_has_sentinel_only(memory_store, make_file) -> None:
    path = make_file("empty", b"")
    result, entries = _index(memory_store, FileChunker(memory_store), path)

    assert [(e.offset, e.hash) for e in entries] == [(0, "")]
    assert result.blobs_count == 0
    assert result.hash == sha1_bytes(b"")


def test_missing_file(memory_store, tmp_path: Path) -> None:
    with pytest.raises(NotFound):
        _index(memory_store, FileChunker(memory_store), tmp_path / "nope")


def test_invalid_sizes_rejected(memory_store) -> None:
    with pytest.raises(ValueError):
        FileChunker(memory_store, min_blob_size=MIB, max_blob_size=MIB)
