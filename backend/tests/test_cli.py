"""CLI tests."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from chunkstash.cli.main import app
from chunkstash.utils.hashing import sha1_bytes

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def test_put_index_and_metas(tmp_path: Path) -> None:
    db = tmp_path / "cli.db"
    tree = tmp_path / "tree"
    tree.mkdir()
    (tree / "a.txt").write_bytes(b"alpha")
    (tree / "b.txt").write_bytes(b"bravo" * 30_000)
    (tree / "ignored.log").write_bytes(b"noise")

    first = runner.invoke(app, ["--log-level", "CRITICAL", "put", str(tree), "--db", str(db), "--hostname", "laptop"])
    assert first.exit_code == 0, first.output
    report = json.loads(first.stdout)
    assert report["stats"]["processed"] == 2
    assert [Path(item["path"]).name for item in report["results"]] == ["a.txt", "b.txt"]

    second = runner.invoke(app, ["--log-level", "CRITICAL", "put", str(tree), "--db", str(db)])
    assert second.exit_code == 0, second.output
    assert json.loads(second.stdout)["stats"]["skipped"] == 2

    digest = sha1_bytes(b"alpha")
    shown = runner.invoke(app, ["--log-level", "CRITICAL", "index", digest, "--db", str(db)])
    assert shown.exit_code == 0, shown.output
    assert json.loads(shown.stdout) == [{"offset": 0, "hash": ""}, {"offset": 5, "hash": digest}]

    listed = runner.invoke(app, ["--log-level", "CRITICAL", "metas", "a.txt", "--db", str(db)])
    assert listed.exit_code == 0, listed.output
    versions = json.loads(listed.stdout)
    assert len(versions) == 1
    assert versions[0]["ref"] == digest


def test_put_reports_missing_file(tmp_path: Path) -> None:
    result = runner.invoke(app, ["--log-level", "CRITICAL", "put", str(tmp_path / "missing.bin"), "--db", str(tmp_path / "cli.db")])
    assert result.exit_code == 1
    report = json.loads(result.stdout)
    assert report["stats"]["failed"] == 1


def test_index_unknown_hash(tmp_path: Path) -> None:
    result = runner.invoke(app, ["--log-level", "CRITICAL", "index", "0" * 40, "--db", str(tmp_path / "cli.db")])
    assert result.exit_code == 1
