from pathlib import Path

import pytest

from romwrangler.exceptions import ConfigurationError
from romwrangler.platforms import catalog as catalog_module
from romwrangler.platforms import get_catalog, load_catalog, resolve_alias


def test_alias_resolution_is_case_and_space_insensitive():
    assert resolve_alias("PSX") == "sony_psx"
    assert resolve_alias("  Dreamcast ") == "sega_dc"
    assert resolve_alias("Mega Drive") == "sega_smd"
    assert resolve_alias("not-a-system") is None


def test_device_folder_names_resolve_to_their_system():
    assert resolve_alias("sony_psx") == "sony_psx"
    assert resolve_alias("nintendo_gba") == "nintendo_gba"


def test_shared_folder_belongs_to_matching_system():
    # msx2 and gbc share folders with msx and gb
    assert resolve_alias("microsoft_msx") == "microsoft_msx"
    assert resolve_alias("nintendo_gb") == "nintendo_gb"
    assert resolve_alias("msx2") == "microsoft_msx2"


def test_config_aliases_override_defaults():
    overrides = {"Games": "sega_dc", "psx": "sega_st"}
    assert resolve_alias("games", overrides) == "sega_dc"
    assert resolve_alias("PSX", overrides) == "sega_st"


def test_config_alias_to_unknown_system_is_ignored():
    assert resolve_alias("psx", {"psx": "bogus"}) == "sony_psx"
    assert resolve_alias("mystery", {"mystery": "bogus"}) is None


def test_formats_and_folders():
    catalog = get_catalog()
    assert catalog.is_valid_format("sony_psx", ".CUE")
    assert not catalog.is_valid_format("sony_psx", ".gba")
    assert not catalog.is_valid_format("unknown", ".cue")
    assert catalog.folder_for_system("nintendo_gbc") == "nintendo_gb"
    assert catalog.is_disc_based("sega_dc")
    assert not catalog.is_disc_based("nintendo_snes")


def test_unique_extension_detection():
    catalog = get_catalog()
    assert catalog.detect_system_by_extension("Zelda.GBA") == "nintendo_gba"
    assert catalog.detect_system_by_extension("Shenmue.gdi") == "sega_dc"
    assert catalog.detect_system_by_extension("track.bin") is None
    assert catalog.detect_system_by_extension("game.chd") is None


def test_device_folders_sorted_by_folder():
    pairs = get_catalog().device_folders()
    assert pairs == sorted(pairs, key=lambda p: (p[1], p[0]))


def test_get_catalog_requires_init(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(catalog_module, "_catalog", None)
    with pytest.raises(ConfigurationError) as info:
        get_catalog()
    assert info.value.error_code == "CATALOG_NOT_INITIALIZED"


def test_invalid_catalog_fails_schema(tmp_path: Path):
    path = tmp_path / "systems.yaml"
    path.write_text("systems:\n  x: {name: X, company: Y, disc_based: maybe, folder: x, formats: ['.x']}\n"
                    "aliases: {}\nunique_extensions: {}\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_catalog(path)


def test_alias_to_unknown_system_rejected(tmp_path: Path):
    path = tmp_path / "systems.yaml"
    path.write_text("systems:\n  x: {name: X, company: Y, disc_based: false, folder: xf, formats: ['.x']}\n"
                    "aliases: {foo: nope}\nunique_extensions: {}\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_catalog(path)


def test_minimal_catalog_derives_folder_alias(tmp_path: Path):
    path = tmp_path / "systems.yaml"
    path.write_text("systems:\n  x: {name: X, company: Y, disc_based: true, folder: xf, formats: ['.x']}\n"
                    "aliases: {}\nunique_extensions: {'.x': x}\n", encoding="utf-8")
    catalog = load_catalog(path)
    assert catalog.resolve_alias("XF") == "x"
    assert catalog.detect_system_by_extension("a.x") == "x"
