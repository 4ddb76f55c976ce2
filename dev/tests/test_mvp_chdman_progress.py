import io
import threading
from pathlib import Path

import pytest

from conftest import make_script, requires_posix
from romwrangler.app.models import CancelToken
from romwrangler.conversion import chdman
from romwrangler.conversion.progress import iter_progress_tokens, parse_progress, pump_progress
from romwrangler.exceptions import ConversionError, OperationCancelledError, ToolNotFoundError


class TrickleStream(io.RawIOBase):
    """Returns data in small pieces to exercise token reassembly."""

    def __init__(self, data: bytes, step: int = 3) -> None:
        self._data = data
        self._step = step

    def readable(self) -> bool:
        return True

    def read1(self, size: int = -1) -> bytes:
        chunk, self._data = self._data[:self._step], self._data[self._step:]
        return chunk


def test_tokens_split_on_carriage_return_and_newline():
    data = b"Compressing, 1.5% complete...\rCompressing, 20% complete...\r\nDone\n\ntail"
    tokens = list(iter_progress_tokens(TrickleStream(data)))
    assert tokens == ["Compressing, 1.5% complete...", "Compressing, 20% complete...", "Done", "tail"]


def test_parse_progress():
    assert parse_progress("Compressing, 45.2% complete...") == 45.2
    assert parse_progress("Compressing, 7% complete") == 7.0
    assert parse_progress("Compression complete ... final ratio = 50.0%") is None


def test_pump_reports_percentages_and_tokens():
    seen = []
    tokens = []
    pump_progress(io.BytesIO(b"a 10.0% complete\rb 99.9% complete\rfinished\n"), seen.append, tokens.append)
    assert seen == [10.0, 99.9]
    assert tokens[-1] == "finished"


def test_command_shape():
    assert chdman.build_command("chdman", "/r/a.cue", "/r/a.chd") == ["chdman", "createcd", "-i", "/r/a.cue",
                                                                      "-o", "/r/a.chd"]
    assert chdman.detect_convert_type("/r/a.GDI") == "createcd"
    assert chdman.detect_convert_type("/r/a.iso") == "createdvd"
    assert chdman.output_path("/r/Game (USA).cue") == "/r/Game (USA).chd"
    assert chdman.is_convertible("x.ISO")
    assert not chdman.is_convertible("x.bin")


def test_find_chdman_missing(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(chdman.shutil, "which", lambda name: None)
    monkeypatch.setattr(chdman, "COMMON_PATHS", ())
    with pytest.raises(ToolNotFoundError) as info:
        chdman.find_chdman("/does/not/exist")
    assert "mame-tools" in str(info.value)
    assert info.value.details["tool"] == "chdman"


def test_find_chdman_prefers_configured(tmp_path: Path):
    tool = tmp_path / "chdman"
    tool.write_bytes(b"")
    assert chdman.find_chdman(str(tool)) == str(tool)


@requires_posix
def test_convert_success_reports_progress(tmp_path: Path, fake_chdman: str):
    cue = tmp_path / "Game.cue"
    cue.write_text('FILE "Game.bin" BINARY\n', encoding="utf-8")
    seen = []
    out = chdman.convert(fake_chdman, str(cue), on_progress=seen.append)
    assert out == str(tmp_path / "Game.chd")
    assert Path(out).read_bytes() == b"CHD"
    assert seen == [10.0, 55.5]


@requires_posix
def test_convert_failure_removes_partial(tmp_path: Path, fake_chdman: str, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("FAKE_CHDMAN_EXIT", "3")
    iso = tmp_path / "Game.iso"
    iso.write_bytes(b"x")
    with pytest.raises(ConversionError) as info:
        chdman.convert(fake_chdman, str(iso))
    assert info.value.details["exit_code"] == 3
    assert "bad input" in str(info.value)
    assert not (tmp_path / "Game.chd").exists()


@requires_posix
def test_convert_cancel_terminates_process(tmp_path: Path, fake_chdman: str, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("FAKE_CHDMAN_SLEEP", "30")
    iso = tmp_path / "Game.iso"
    iso.write_bytes(b"x")
    token = CancelToken()
    timer = threading.Timer(0.3, token.cancel)
    timer.start()
    try:
        with pytest.raises(OperationCancelledError):
            chdman.convert(fake_chdman, str(iso), cancel_token=token)
    finally:
        timer.cancel()
    assert not (tmp_path / "Game.chd").exists()


def test_convert_precancelled_never_spawns(tmp_path: Path):
    token = CancelToken()
    token.cancel()
    with pytest.raises(OperationCancelledError):
        chdman.convert(str(tmp_path / "no-such-tool"), str(tmp_path / "a.iso"), cancel_token=token)


def test_convert_unstartable_tool(tmp_path: Path):
    with pytest.raises(ConversionError):
        chdman.convert(str(tmp_path / "no-such-tool"), str(tmp_path / "a.iso"))


@requires_posix
def test_stderr_tail_excludes_progress_lines(tmp_path: Path):
    tool = make_script(tmp_path / "chdman", "printf 'Error: disk full\\r5.0%% complete\\r' >&2\nexit 1\n")
    with pytest.raises(ConversionError) as info:
        chdman.convert(tool, str(tmp_path / "a.iso"))
    assert str(info.value).endswith("Error: disk full")
