import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))
from confquant.core.pairing import extract_identifier, resolve_pairs, is_primary_name


def touch(folder: Path, *names: str) -> None:
    for name in names:
        (folder / name).write_bytes(b"")


def test_alternate_secondary_separator(tmp_path):
    touch(tmp_path, "conf405-3.tif", "conf488 -3.tif")
    result = resolve_pairs(tmp_path)
    assert len(result.pairs) == 1
    pair = result.pairs[0]
    assert pair.identifier == "3"
    assert pair.primary_path == tmp_path / "conf405-3.tif"
    assert pair.secondary_path == tmp_path / "conf488 -3.tif"
    assert result.skipped_count == 0


def test_missing_secondary_is_skipped(tmp_path):
    touch(tmp_path, "conf405-weird.tif", "conf488-other.tif")
    result = resolve_pairs(tmp_path)
    assert result.pairs == []
    assert result.skipped_count == 1
    assert result.skipped[0].name == "conf405-weird.tif"
    assert "conf488" in result.skipped[0].reason


def test_resolves_subset_of_primaries(tmp_path):
    for i in range(1, 6):
        touch(tmp_path, f"conf405-{i}.tif")
    touch(tmp_path, "conf488-1.tif", "conf 488-2.tif", "conf488 -4.tif")
    result = resolve_pairs(tmp_path)
    assert [p.identifier for p in result.pairs] == ["1", "2", "4"]
    assert result.skipped_count == 2


def test_numeric_order_and_case_insensitive(tmp_path):
    touch(
        tmp_path,
        "CONF405-10.TIF", "conf488-10.tif",
        "conf 405-2.tiff", "Conf488-2.TIFF",
        "conf405-1.stk", "conf488-1.stk",
        "notes.txt", "conf405-9.png",
    )
    result = resolve_pairs(tmp_path)
    assert [p.identifier for p in result.pairs] == ["1", "2", "10"]
    assert result.pairs[1].secondary_path.name == "Conf488-2.TIFF"
    assert result.skipped_count == 0


def test_secondary_must_share_extension(tmp_path):
    touch(tmp_path, "conf405-1.tif", "conf488-1.tiff")
    result = resolve_pairs(tmp_path)
    assert result.pairs == []
    assert result.skipped_count == 1


def test_empty_identifier_rejected(tmp_path):
    touch(tmp_path, "conf405-.tif", "conf488-.tif")
    result = resolve_pairs(tmp_path)
    assert result.pairs == []
    assert result.skipped[0].reason == "no identifier"


@pytest.mark.parametrize("primary, secondary", [
    ("conf405-..tif", "conf488-..tif"),
    ("conf405-...tif", "conf488-...tif"),
])
def test_dot_identifier_rejected(tmp_path, primary, secondary):
    touch(tmp_path, primary, secondary)
    result = resolve_pairs(tmp_path)
    assert result.pairs == []
    assert [(s.name, s.reason) for s in result.skipped] == [(primary, "no identifier")]


def test_duplicate_identifier_skipped(tmp_path):
    touch(tmp_path, "conf405-1.tif", "conf 405-1.tif", "conf488-1.tif")
    result = resolve_pairs(tmp_path)
    assert len(result.pairs) == 1
    assert result.skipped_count == 1


def test_empty_directory(tmp_path):
    result = resolve_pairs(tmp_path)
    assert result.pairs == []
    assert result.skipped_count == 0


@pytest.mark.parametrize(
    "name, expected",
    [
        ("conf405-1.tif", "1"),
        ("conf 405-12.tiff", "12"),
        ("conf405 - 7.TIF", "7"),
        ("conf405_A1.stk", "_A1"),
        ("conf405-.tif", None),
        ("conf405-..tif", None),
        ("conf405-...tif", None),
        ("conf405- - .tif", None),
        ("conf405-1.png", None),
    ],
)
def test_extract_identifier(name, expected):
    assert extract_identifier(name) == expected


def test_primary_name_filter():
    assert is_primary_name("Conf 405-1.tif")
    assert not is_primary_name("conf488-1.tif")
    assert not is_primary_name("conf405-1.jpg")
