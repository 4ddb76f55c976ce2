from pathlib import Path

import pytest

from romwrangler.conversion.sheets import (
    companion_files,
    fix_cue_ecm_references,
    fix_cue_file_references,
    fix_single_cue_file,
    parse_cue,
    parse_gdi,
)
from romwrangler.exceptions import SheetParseError


GDI = """3
1 0 4 2352 track01.bin 0
2 756 0 2352 track02.raw 0
3 45000 4 2352 track03.bin 0
"""


def test_gdi_companions(tmp_path: Path):
    gdi = tmp_path / "Game.gdi"
    gdi.write_text(GDI, encoding="utf-8")
    files = companion_files(str(gdi))
    assert files == [
        str(gdi),
        str(tmp_path / "track01.bin"),
        str(tmp_path / "track02.raw"),
        str(tmp_path / "track03.bin"),
    ]
    assert parse_gdi(str(gdi)) == files


def test_gdi_quoted_track_names(tmp_path: Path):
    gdi = tmp_path / "Shenmue.gdi"
    gdi.write_text('3\r\n1 0 4 2352 "Shenmue Track 01.bin" 0\r\n'
                   '2 600 0 2352 "Shenmue Track 02.raw" 0\r\n3 45000 4 2352 track03.bin 0\r\n',
                   encoding="utf-8")
    assert parse_gdi(str(gdi))[1:] == [
        str(tmp_path / "Shenmue Track 01.bin"),
        str(tmp_path / "Shenmue Track 02.raw"),
        str(tmp_path / "track03.bin"),
    ]


def test_cue_companions_deduplicated(tmp_path: Path):
    cue = tmp_path / "Game.cue"
    cue.write_text(
        'FILE "Game (Track 1).bin" BINARY\n  TRACK 01 MODE2/2352\n'
        'file "Game (Track 2).bin" BINARY\n  TRACK 02 AUDIO\n'
        'FILE "Game (Track 1).bin" BINARY\n',
        encoding="utf-8",
    )
    assert parse_cue(str(cue)) == [
        str(cue),
        str(tmp_path / "Game (Track 1).bin"),
        str(tmp_path / "Game (Track 2).bin"),
    ]


def test_other_images_are_their_own_companions(tmp_path: Path):
    iso = tmp_path / "Game.iso"
    assert companion_files(str(iso)) == [str(iso)]


def test_missing_sheet_raises(tmp_path: Path):
    with pytest.raises(SheetParseError):
        companion_files(str(tmp_path / "missing.cue"))


def test_fix_case_mismatched_reference(tmp_path: Path):
    (tmp_path / "Game (USA).BIN").write_bytes(b"x")
    cue = tmp_path / "Game (USA).cue"
    cue.write_text('FILE "game (usa).bin" BINARY\r\n  TRACK 01 MODE2/2352\r\n', encoding="utf-8")

    assert fix_single_cue_file(str(cue)) is True
    assert cue.read_bytes() == b'FILE "Game (USA).BIN" BINARY\r\n  TRACK 01 MODE2/2352\r\n'
    assert fix_single_cue_file(str(cue)) is False


def test_fix_leaves_unknown_references(tmp_path: Path):
    cue = tmp_path / "Game.cue"
    cue.write_text('FILE "nowhere.bin" BINARY\n', encoding="utf-8")
    assert fix_single_cue_file(str(cue)) is False


def test_fix_references_walks_system_folders(tmp_path: Path):
    psx = tmp_path / "psx"
    psx.mkdir()
    (psx / "A.bin").write_bytes(b"x")
    (psx / "A.cue").write_text('FILE "a.bin" BINARY\n', encoding="utf-8")
    archive = tmp_path / "_archive" / "psx"
    archive.mkdir(parents=True)
    (archive / "B.bin").write_bytes(b"x")
    (archive / "B.cue").write_text('FILE "b.bin" BINARY\n', encoding="utf-8")

    assert fix_cue_file_references([str(tmp_path)]) == 1
    assert (archive / "B.cue").read_text(encoding="utf-8") == 'FILE "b.bin" BINARY\n'


def test_ecm_reference_patch(tmp_path: Path):
    (tmp_path / "Game.cue").write_text('FILE "Game.bin.ecm" BINARY\n', encoding="utf-8")
    (tmp_path / "Other.cue").write_text('FILE "Other.bin" BINARY\n', encoding="utf-8")
    fixed = fix_cue_ecm_references(str(tmp_path / "Game.bin.ecm"), str(tmp_path / "Game.bin"))
    assert fixed == 1
    assert (tmp_path / "Game.cue").read_text(encoding="utf-8") == 'FILE "Game.bin" BINARY\n'


def test_legacy_bytes_survive_rewrite(tmp_path: Path):
    (tmp_path / "Caf\xe9.bin").write_bytes(b"x")
    cue = tmp_path / "x.cue"
    cue.write_bytes(b'REM \xff\xfe\nFILE "CAF\xc3\xa9.BIN" BINARY\n')
    fix_single_cue_file(str(cue))
    assert cue.read_bytes().startswith(b"REM \xff\xfe\n")
