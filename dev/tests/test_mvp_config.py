import os
from pathlib import Path

import pytest
import yaml

from romwrangler.config import DEFAULT_REGION_PRIORITY, EngineConfig, load_config, parse_config, save_config
from romwrangler.config.io import default_config_path
from romwrangler.exceptions import ConfigurationError


def test_missing_config_writes_defaults(tmp_path: Path):
    path = tmp_path / "cfg" / "config.yaml"
    config = load_config(str(path))
    assert path.exists()
    assert config.concurrency == 1
    assert config.archive_dir_name == "_archive"
    assert config.region_priority == DEFAULT_REGION_PRIORITY
    assert yaml.safe_load(path.read_text(encoding="utf-8"))["move_files"] is True


def test_round_trip_keeps_values(tmp_path: Path):
    path = tmp_path / "config.yaml"
    save_config(EngineConfig(source_dirs=["/data/a"], concurrency=4, aliases={"games": "sega_dc"}), str(path))
    loaded = load_config(str(path))
    assert loaded.source_dirs == ["/data/a"]
    assert loaded.concurrency == 4
    assert loaded.aliases == {"games": "sega_dc"}


def test_invalid_yaml_raises(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("source_dirs: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(str(path))


def test_non_mapping_root_raises(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(str(path))


def test_invalid_values_raise():
    with pytest.raises(ConfigurationError):
        parse_config({"concurrency": "lots"})
    with pytest.raises(ConfigurationError):
        parse_config({"archive_dir_name": "a/b"})


def test_concurrency_clamped_to_one():
    assert parse_config({"concurrency": 0}).concurrency == 1


def test_tilde_expanded(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("HOME", str(tmp_path))
    config = parse_config({"source_dirs": ["~/roms"], "chdman_path": "~/bin/chdman"})
    assert config.source_dirs == [os.path.join(str(tmp_path), "roms")]
    assert config.chdman_path == os.path.join(str(tmp_path), "bin", "chdman")


def test_rom_dirs_and_derived_paths():
    config = EngineConfig(source_dirs=["/a", "/b"])
    assert config.rom_dirs() == [os.path.join("/a", "roms"), os.path.join("/b", "roms")]
    assert config.archive_dir() == os.path.join("/a", "roms", "_archive")
    assert config.destination_dir() == os.path.join("/a", "roms")

    flat = EngineConfig(source_dirs=["/a"], roms_subdir="", output_dir="/out")
    assert flat.rom_dirs() == ["/a"]
    assert flat.destination_dir() == "/out"
    assert EngineConfig().archive_dir() is None


def test_default_config_path_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ROMWRANGLER_CONFIG", "/tmp/custom.yaml")
    assert default_config_path() == "/tmp/custom.yaml"
    monkeypatch.delenv("ROMWRANGLER_CONFIG")
    monkeypatch.setenv("XDG_CONFIG_HOME", "/xdg")
    assert default_config_path() == os.path.join("/xdg", "romwrangler", "config.yaml")
