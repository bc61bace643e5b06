import pytest
import yaml
from encodarr.config.models import AppConfig, EncodingProfile, GeneralConfig
from encodarr.domain.models import Stream

# ============================================================================
# Stream Fixtures
# ============================================================================

@pytest.fixture
def make_stream():
    """Factory for probed streams with per-kind default codecs."""
    def _make(index, kind="video", codec=None, **fields):
        defaults = {"video": "h264", "audio": "aac", "subtitle": "subrip"}
        return Stream(index=index, kind=kind, codec=codec or defaults[kind], **fields)
    return _make


@pytest.fixture
def movie_streams(make_stream):
    """A typical remux: one 1080p video, three audio tracks, two subtitles."""
    return [
        make_stream(0, "video", "h264", width=1920, height=1080, framerate=23.976, is_hdr=False),
        make_stream(1, "audio", "truehd", language="eng", channels=8, sample_rate=48000),
        make_stream(2, "audio", "ac3", language="fre", channels=6, sample_rate=48000),
        make_stream(3, "audio", "aac", language="eng", title="Commentary", channels=2),
        make_stream(4, "subtitle", "subrip", language="eng"),
        make_stream(5, "subtitle", "subrip", language="ger"),
    ]

# ============================================================================
# Configuration Fixtures
# ============================================================================

def _english_profile_data():
    return {
        "extension": "mkv",
        "selection": {
            "audio": {
                "primary": [{"clauses": [{"property": "language", "operator": "==", "value": "eng"}]}],
                "allow_secondary": True,
                "secondary": [{"clauses": [{"property": "title", "operator": "contains", "value": "commentary"}]}],
            },
            "subtitle": {
                "primary": [{"clauses": [{"property": "language", "operator": "==", "value": "eng"}]}],
            },
        },
        "encoder_rules": [
            {"kind": "video", "result": {"codec": "libx265", "crf": "22", "preset": "medium"}},
            {
                "kind": "video",
                "clauses": [{"property": "height", "operator": ">", "value": 1080}],
                "result": {"size": "1920:-2"},
            },
        ],
    }


@pytest.fixture
def english_profile():
    return EncodingProfile(**_english_profile_data())


@pytest.fixture
def sample_config(tmp_path):
    """AppConfig rooted in tmp_path with a default and a delayed profile."""
    delayed = dict(_english_profile_data(), delay_minutes=5)
    return AppConfig(
        general=GeneralConfig(
            concurrency=2,
            data_dir=tmp_path / "data",
            transcode_dir=tmp_path / "transcode",
            output_dir=tmp_path / "out",
        ),
        profiles={"default": _english_profile_data(), "delayed": delayed},
    )


@pytest.fixture
def config_file(tmp_path):
    """Writes a YAML config under tmp_path and returns its path."""
    data = {
        "general": {
            "concurrency": 1,
            "data_dir": str(tmp_path / "data"),
            "transcode_dir": str(tmp_path / "transcode"),
            "output_dir": str(tmp_path / "out"),
        },
        "profiles": {
            "default": _english_profile_data(),
            "sonarr": {"extension": ".mp4", "delay": 10, "pathMappings": [{"from": "/tv/", "to": "shows/"}]},
        },
    }
    path = tmp_path / "conf" / "encodarr.yaml"
    path.parent.mkdir(parents=True)
    path.write_text(yaml.safe_dump(data))
    return path
