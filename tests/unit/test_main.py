from pathlib import Path
from unittest.mock import MagicMock
from typer.testing import CliRunner

from encodarr import main as encodarr_main
from encodarr.domain.errors import SourceUnavailable
from encodarr.domain.models import Stream


def probed_streams():
    return [
        Stream(index=0, kind="video", codec="h264", height=1080),
        Stream(index=1, kind="audio", codec="ac3", language="fre"),
        Stream(index=2, kind="audio", codec="dts", language="eng"),
        Stream(index=3, kind="subtitle", codec="subrip", language="eng"),
    ]


class FakeProbe:
    missing = set()

    def __init__(self, ffprobe_path="ffprobe"):
        pass

    def probe(self, path):
        if Path(path).name in self.missing:
            raise SourceUnavailable(path)
        return probed_streams()


class FakeEncoder:
    commands = []

    def __init__(self, event_bus=None, ffmpeg_path="ffmpeg", progress_interval_s=60.0):
        pass

    def run(self, source_path, streams, output_path, logger=None, job=None):
        FakeEncoder.commands.append((source_path, [s.index for s in streams]))
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"encoded")
        return output_path


def patch_runtime(monkeypatch, missing=()):
    FakeProbe.missing = set(missing)
    FakeEncoder.commands = []
    monkeypatch.setattr(encodarr_main, "setup_logging", MagicMock())
    monkeypatch.setattr(encodarr_main, "FFprobeAdapter", FakeProbe)
    monkeypatch.setattr(encodarr_main, "FFmpegAdapter", FakeEncoder)


def test_profiles_lists_configured_profiles(config_file):
    result = CliRunner().invoke(encodarr_main.app, ["profiles", "--config", str(config_file)])

    assert result.exit_code == 0
    rows = {line.split()[0]: line.split()[1:] for line in result.output.splitlines() if line.strip()}
    assert rows["default"] == ["mkv", "0", "min", "0", "2"]
    assert rows["sonarr"] == ["mp4", "10", "min", "1", "0"]


def test_missing_config_exits(tmp_path):
    result = CliRunner().invoke(encodarr_main.app, ["profiles", "--config", str(tmp_path / "missing.yaml")])

    assert result.exit_code == 1
    assert "init-config" in result.output


def test_invalid_config_exits(tmp_path):
    path = tmp_path / "encodarr.yaml"
    path.write_text("profiles:\n  sonarr: {}\n")

    result = CliRunner().invoke(encodarr_main.app, ["profiles", "--config", str(path)])

    assert result.exit_code == 1
    assert "Invalid config" in result.output


def test_init_config_creates_once(tmp_path):
    path = tmp_path / "conf" / "encodarr.yaml"
    runner = CliRunner()

    first = runner.invoke(encodarr_main.app, ["init-config", "--config", str(path)])
    second = runner.invoke(encodarr_main.app, ["init-config", "--config", str(path)])

    assert first.exit_code == 0
    assert "Created" in first.output
    assert path.exists()
    assert "already exists" in second.output


def test_process_encodes_and_relocates(config_file, tmp_path, monkeypatch):
    patch_runtime(monkeypatch)

    result = CliRunner().invoke(
        encodarr_main.app, ["process", "Movies/Film (2020)/Film.mkv", "--config", str(config_file)]
    )

    assert result.exit_code == 0, result.output
    dest = tmp_path / "out" / "Movies" / "Film (2020)" / "Film.mkv"
    assert dest.read_bytes() == b"encoded"
    assert "1 completed, 0 failed" in result.output
    source, indices = FakeEncoder.commands[0]
    assert source == tmp_path / "data" / "Movies" / "Film (2020)" / "Film.mkv"
    assert indices == [0, 2, 3]
    assert list((tmp_path / "transcode").iterdir()) == []


def test_process_reports_failures_and_continues(config_file, monkeypatch):
    patch_runtime(monkeypatch, missing={"gone.mkv"})

    result = CliRunner().invoke(
        encodarr_main.app, ["process", "a/gone.mkv", "b/ok.mkv", "--config", str(config_file)]
    )

    assert result.exit_code == 1
    assert "FAIL" in result.output
    assert "no longer exists" in result.output
    assert "1 completed, 1 failed" in result.output


def test_process_no_delay_uses_profile_mapping(config_file, tmp_path, monkeypatch):
    patch_runtime(monkeypatch)

    result = CliRunner().invoke(
        encodarr_main.app,
        ["process", "/tv/Show/ep1.mkv", "-p", "sonarr", "--no-delay", "--config", str(config_file)],
    )

    assert result.exit_code == 0, result.output
    assert (tmp_path / "out" / "shows" / "Show" / "ep1.mp4").exists()


def test_process_rejects_zero_concurrency(config_file, monkeypatch):
    patch_runtime(monkeypatch)

    result = CliRunner().invoke(
        encodarr_main.app, ["process", "a.mkv", "--concurrency", "0", "--config", str(config_file)]
    )

    assert result.exit_code == 1
    assert "--concurrency must be at least 1" in result.output


def test_plan_prints_streams_and_command(config_file, monkeypatch):
    monkeypatch.setattr(encodarr_main, "setup_logging", MagicMock())
    monkeypatch.setattr(encodarr_main, "FFprobeAdapter", FakeProbe)

    result = CliRunner().invoke(encodarr_main.app, ["plan", "Movies/Film.mkv", "--config", str(config_file)])

    assert result.exit_code == 0, result.output
    assert "Film.mkv" in result.output
    assert "primary" in result.output
    assert "-c:0 libx265" in result.output
