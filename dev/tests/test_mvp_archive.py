import os
from pathlib import Path

from conftest import write_files
from romwrangler.app.archive_controller import (
    archive_paths,
    archive_unsupported,
    build_archive_plan,
    execute_archive,
    find_extracted_archives,
    find_superseded_disc_images,
)
from romwrangler.app.models import CancelToken, ConvertResult
from romwrangler.exceptions import ConversionError, FileOperationError


def _cue(path: Path, tracks) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f'FILE "{t}" BINARY\n' for t in tracks), encoding="utf-8")
    for t in tracks:
        (path.parent / t).write_bytes(b"t")


def test_plan_covers_sheet_and_tracks(tmp_path: Path):
    cue = tmp_path / "roms" / "psx" / "Game.cue"
    _cue(cue, ["Game (Track 1).bin", "Game (Track 2).bin"])
    archive_dir = str(tmp_path / "roms" / "_archive")
    results = [ConvertResult(input_path=str(cue), output_path=str(cue.with_suffix(".chd")))]

    plan = build_archive_plan([str(tmp_path / "roms")], results, archive_dir)

    assert [(os.path.basename(a.source_path), a.archive_path) for a in plan.actions] == [
        ("Game.cue", os.path.join(archive_dir, "psx", "Game.cue")),
        ("Game (Track 1).bin", os.path.join(archive_dir, "psx", "Game (Track 1).bin")),
        ("Game (Track 2).bin", os.path.join(archive_dir, "psx", "Game (Track 2).bin")),
    ]


def test_plan_skips_failed_and_cancelled(tmp_path: Path):
    results = [
        ConvertResult(input_path="/r/psx/a.cue", output_path="/r/psx/a.chd",
                      error=ConversionError("boom", rom_path="/r/psx/a.cue")),
        ConvertResult(input_path="/r/psx/b.iso", output_path="/r/psx/b.chd", cancelled=True),
    ]
    assert build_archive_plan(["/r"], results, "/r/_archive").actions == []


def test_execute_moves_and_reports_errors(tmp_path: Path):
    roms = tmp_path / "roms"
    cue = roms / "psx" / "Game.cue"
    _cue(cue, ["Game.bin"])
    archive_dir = roms / "_archive"
    plan = build_archive_plan([str(roms)], [ConvertResult(str(cue), str(cue.with_suffix(".chd")))],
                              str(archive_dir))
    (roms / "psx" / "Game.bin").unlink()

    calls = []
    result = execute_archive(plan, progress=lambda c, t, n: calls.append((c, t)))

    assert result.files_moved == 1
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], FileOperationError)
    assert (archive_dir / "psx" / "Game.cue").exists()
    assert not cue.exists()
    assert calls == [(1, 2), (2, 2)]


def test_execute_stops_when_cancelled(tmp_path: Path):
    roms = tmp_path / "roms"
    write_files(roms, ["psx/a.iso"])
    plan = build_archive_plan([str(roms)], [ConvertResult(str(roms / "psx" / "a.iso"), "x")],
                              str(roms / "_archive"))
    token = CancelToken()
    token.cancel()
    assert execute_archive(plan, cancel_token=token).files_moved == 0
    assert (roms / "psx" / "a.iso").exists()


def test_superseded_and_extracted_discovery(tmp_path: Path):
    roms = tmp_path / "roms"
    _cue(roms / "psx" / "Done.cue", ["Done.bin"])
    write_files(roms, ["psx/Done.chd", "psx/Pending.iso", "psx/Box.zip", "psx/Box/Box.iso",
                       "snes/Cart.zip", "snes/Cart/Cart.sfc"])

    superseded = find_superseded_disc_images([str(roms)])
    assert [os.path.basename(p) for p in superseded] == ["Done.cue", "Done.bin"]

    extracted = find_extracted_archives([str(roms)])
    assert sorted(os.path.basename(p) for p in extracted) == ["Box.zip", "Cart.zip"]


def test_unsupported_and_loose_files_keep_layout(tmp_path: Path):
    roms = tmp_path / "roms"
    write_files(roms, ["notes.txt", "snes/readme.txt"])
    archive_dir = roms / "_archive"
    result = archive_unsupported([str(roms / "notes.txt")], [str(roms / "snes" / "readme.txt")],
                                 [str(roms)], str(archive_dir))
    assert result.files_moved == 2
    assert (archive_dir / "notes.txt").exists()
    assert (archive_dir / "snes" / "readme.txt").exists()


def test_path_outside_roots_uses_basename(tmp_path: Path):
    other = tmp_path / "elsewhere" / "x.bin"
    write_files(tmp_path, ["elsewhere/x.bin"])
    archive_dir = tmp_path / "roms" / "_archive"
    result = archive_unsupported([], [str(other)], [str(tmp_path / "roms")], str(archive_dir))
    assert result.files_moved == 1
    assert (archive_dir / "x.bin").exists()


def test_rearchiving_never_replaces_quarantined_copy(tmp_path: Path):
    roms = tmp_path / "roms"
    archive_dir = roms / "_archive"
    write_files(archive_dir, ["psx/Game.cue"], b"OLD")
    write_files(roms, ["psx/Game.cue"], b"NEW")

    result = archive_paths([str(roms / "psx" / "Game.cue")], [str(roms)], str(archive_dir))

    assert result.files_moved == 0
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], FileOperationError)
    assert (archive_dir / "psx" / "Game.cue").read_bytes() == b"OLD"
    assert (roms / "psx" / "Game.cue").read_bytes() == b"NEW"
