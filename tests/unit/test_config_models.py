import json
import logging
import pytest
import yaml
from pathlib import Path
from pydantic import ValidationError
from encodarr.config.loader import (
    DEFAULT_CONFIG,
    ProfileRegistry,
    apply_env_overrides,
    default_config_path,
    ensure_config_exists,
    load_config,
)
from encodarr.config.models import AppConfig, EncodingProfile, GeneralConfig, OutputSettings, SettingsPatch


def test_general_config_defaults():
    config = GeneralConfig()
    assert config.concurrency == 2
    assert config.data_dir == Path("/data")
    assert config.transcode_dir == Path("/transcode")
    assert config.output_dir == Path("/out")
    assert config.debug is False
    assert config.clean_temp_on_start is True


def test_concurrency_must_be_positive():
    with pytest.raises(ValidationError):
        GeneralConfig(concurrency=0)


def test_default_profile_is_required():
    with pytest.raises(ValidationError, match="default"):
        AppConfig(profiles={"sonarr": {}})


def test_profiles_are_frozen(english_profile):
    with pytest.raises(ValidationError):
        english_profile.extension = "mp4"


def test_legacy_json_profile_loads(tmp_path):
    legacy = {
        "profiles": {
            "default": {
                "extension": ".mkv",
                "delay": 15,
                "pathMappings": [{"from": "/tv/", "to": "tv/"}],
                "fileRenames": [{"regex": "x264", "substitution": "x265"}],
                "selection": {
                    "audio": {"primary": [{"type": "audio", "rules": [{"property": "language", "operator": "==", "value": "eng"}]}]},
                    "sub": {"allowSecondary": True, "secondary": [{"rules": None}]},
                },
                "encoder": [{"type": "video", "result": {"codec": "libx265", "crf": 20}}],
            }
        }
    }
    path = tmp_path / "config.json"
    path.write_text(json.dumps(legacy))

    profile = load_config(path, environ={}).profiles["default"]

    assert profile.extension == "mkv"
    assert profile.delay_minutes == 15
    assert profile.path_mappings[0].from_ == "/tv/"
    assert profile.file_renames[0].replacement == "x265"
    assert profile.selection.audio.primary[0].clauses[0].value == "eng"
    assert profile.selection.subtitle.allow_secondary is True
    assert profile.selection.subtitle.secondary[0].clauses == ()
    assert profile.encoder_rules[0].kind == "video"
    assert profile.encoder_rules[0].result.crf == "20"


def test_rule_kind_accepts_sub_spelling():
    profile = EncodingProfile(encoder_rules=[{"type": "sub", "result": {"codec": "srt"}}])
    assert profile.encoder_rules[0].kind == "subtitle"


def test_rule_kind_rejects_unknown_kinds():
    with pytest.raises(ValidationError):
        EncodingProfile(encoder_rules=[{"kind": "data", "result": {}}])


def test_negative_delay_is_rejected():
    with pytest.raises(ValidationError):
        EncodingProfile(delay_minutes=-1)


def test_settings_patch_rejects_boolean_crf():
    with pytest.raises(ValidationError):
        SettingsPatch(crf=True)


def test_output_settings_merge_overwrites_set_fields_only():
    base = OutputSettings(codec="libx265", crf="22", preset="slow")

    merged = base.merged(SettingsPatch(crf="18", tonemap=True))

    assert merged.codec == "libx265"
    assert merged.crf == "18"
    assert merged.preset == "slow"
    assert merged.tonemap is True
    assert base.crf == "22"
    assert base.merged(SettingsPatch()) is base


def test_load_config_yaml(config_file):
    config = load_config(config_file, environ={})

    assert config.general.concurrency == 1
    assert set(config.profiles) == {"default", "sonarr"}
    assert config.profiles["sonarr"].extension == "mp4"
    assert config.profiles["sonarr"].delay_minutes == 10


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml", environ={})


def test_environment_overrides_general_section(config_file):
    environ = {"DATA_DIR": "/mnt/media", "OUT_DIR": "/mnt/out", "CONCURRENCY": "4", "DEBUG": "true"}

    config = load_config(config_file, environ=environ)

    assert config.general.data_dir == Path("/mnt/media")
    assert config.general.output_dir == Path("/mnt/out")
    assert config.general.concurrency == 4
    assert config.general.debug is True


def test_empty_environment_values_are_ignored():
    data = apply_env_overrides({"general": {"concurrency": 3}}, environ={"CONCURRENCY": ""})
    assert data["general"]["concurrency"] == 3


def test_default_config_path_honours_config_dir():
    assert default_config_path({"CONFIG_DIR": "/config"}) == Path("/config/encodarr.yaml")
    assert default_config_path({}) == Path("conf/encodarr.yaml")


def test_ensure_config_exists_writes_defaults_once(tmp_path, caplog):
    path = tmp_path / "config" / "encodarr.yaml"

    with caplog.at_level(logging.WARNING):
        assert ensure_config_exists(path) is True
    assert "Created" in caplog.text
    assert yaml.safe_load(path.read_text()) == DEFAULT_CONFIG

    path.write_text("general: {}\n")
    assert ensure_config_exists(path) is False
    assert path.read_text() == "general: {}\n"


def test_default_config_is_valid():
    config = AppConfig(**DEFAULT_CONFIG)
    assert "default" in config.profiles
    assert len(config.profiles["default"].encoder_rules) == 3


def test_profile_registry_falls_back_to_default(sample_config):
    registry = ProfileRegistry(sample_config.profiles)

    assert registry.resolve("delayed") is sample_config.profiles["delayed"]
    assert registry.resolve(None) is sample_config.profiles["default"]
    assert registry.resolve("radarr") is sample_config.profiles["default"]
    assert registry.names == ["default", "delayed"]


def test_profile_registry_requires_default(english_profile):
    with pytest.raises(ValueError):
        ProfileRegistry({"sonarr": english_profile})
