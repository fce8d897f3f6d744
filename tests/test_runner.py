"""Trial execution with a fake ffmpeg: exit codes, fallback and monitor isolation."""

import sys
import pytest
from passthrough_bench.api.errors import TrialExecutionFailed
from passthrough_bench.api.models import TrialKind, TrialSpec
from passthrough_bench.workers import monitor, runner
from passthrough_bench.workers.ffmpeg_builder import build_trial_specs


class FakeFfmpeg:
    """Stands in for run_ffmpeg_logged, returning per-encoder exit codes."""

    def __init__(self, codes=None, elapsed=2.0, stats=""):
        self.codes = codes or {}
        self.elapsed = elapsed
        self.stats = stats
        self.calls = []

    def __call__(self, cmd, log_path):
        self.calls.append(cmd)
        log_path.write_text(" ".join(cmd) + "\n" + self.stats)
        encoder = cmd[cmd.index("-c:v") + 1]
        code = self.codes.get(encoder, 0)
        if isinstance(code, Exception):
            raise code
        return code, self.elapsed


@pytest.fixture(autouse=True)
def no_monitor(monkeypatch):
    monkeypatch.setattr(monitor, "find_monitor_command", lambda vendor, settings=None: None)


def _spec(specs, kind):
    return next(s for s in specs if s.kind == kind)


def test_qsv_failure_runs_single_vaapi_fallback(settings, qsv_backend, monkeypatch):
    fake = FakeFfmpeg(codes={"h264_qsv": 1, "h264_vaapi": 0})
    monkeypatch.setattr(runner, "run_ffmpeg_logged", fake)
    specs = build_trial_specs(qsv_backend, settings.work_dir / "in.mp4", settings.work_dir, settings)

    result = runner.run_trial(qsv_backend, _spec(specs, TrialKind.HW_ENCODE), settings)

    encoders = [cmd[cmd.index("-c:v") + 1] for cmd in fake.calls]
    assert encoders == ["h264_qsv", "h264_vaapi"]
    assert result.success
    assert result.fallback_used
    assert result.primary_return_code == 1
    assert result.log_path.name == "test2_vaapi_fallback.log"


def test_failed_fallback_is_recorded_as_fail(settings, qsv_backend, monkeypatch):
    fake = FakeFfmpeg(codes={"h264_qsv": 1, "h264_vaapi": 8})
    monkeypatch.setattr(runner, "run_ffmpeg_logged", fake)
    specs = build_trial_specs(qsv_backend, settings.work_dir / "in.mp4", settings.work_dir, settings)

    result = runner.run_trial(qsv_backend, _spec(specs, TrialKind.FULL_HW), settings)

    assert len(fake.calls) == 2
    assert not result.success
    assert result.return_code == 8
    assert result.status == "FAIL"


def test_successful_qsv_skips_fallback(settings, qsv_backend, monkeypatch):
    fake = FakeFfmpeg()
    monkeypatch.setattr(runner, "run_ffmpeg_logged", fake)
    specs = build_trial_specs(qsv_backend, settings.work_dir / "in.mp4", settings.work_dir, settings)

    result = runner.run_trial(qsv_backend, _spec(specs, TrialKind.HW_ENCODE), settings)

    assert len(fake.calls) == 1
    assert result.success
    assert not result.fallback_used
    assert result.primary_return_code is None


def test_failure_without_fallback_is_not_retried(settings, nvidia_backend, monkeypatch):
    fake = FakeFfmpeg(codes={"h264_nvenc": 1})
    monkeypatch.setattr(runner, "run_ffmpeg_logged", fake)
    specs = build_trial_specs(nvidia_backend, settings.work_dir / "in.mp4", settings.work_dir, settings)

    result = runner.run_trial(nvidia_backend, _spec(specs, TrialKind.HW_ENCODE), settings)

    assert len(fake.calls) == 1
    assert result.status == "FAIL"


def test_unstartable_trial_is_a_fail_and_flow_continues(settings, nvidia_backend, monkeypatch):
    fake = FakeFfmpeg(codes={"h264_nvenc": TrialExecutionFailed("no such file")})
    monkeypatch.setattr(runner, "run_ffmpeg_logged", fake)
    specs = build_trial_specs(nvidia_backend, settings.work_dir / "in.mp4", settings.work_dir, settings)

    results = runner.run_trials(nvidia_backend, specs, settings)

    assert [r.status for r in results] == ["PASS", "FAIL", "FAIL", "PASS"]
    assert results[1].return_code == runner.NOT_STARTED
    assert results[1].elapsed == 0.0


def test_broken_monitor_does_not_change_outcome(settings, nvidia_backend, monkeypatch):
    monkeypatch.setattr(
        monitor, "find_monitor_command",
        lambda vendor, settings=None: ["/nonexistent/gpu-monitor-binary"]
    )
    monkeypatch.setattr(runner, "run_ffmpeg_logged", FakeFfmpeg())
    specs = build_trial_specs(nvidia_backend, settings.work_dir / "in.mp4", settings.work_dir, settings)

    results = runner.run_trials(nvidia_backend, specs, settings)

    assert all(r.success for r in results)


def test_last_reported_speed_is_recorded(settings, nvidia_backend, monkeypatch):
    stats = "frame=  300 fps=150 time=00:00:05.00 speed=2.1x\rframe=  900 fps=180 time=00:00:15.00 speed=6.02x\n"
    monkeypatch.setattr(runner, "run_ffmpeg_logged", FakeFfmpeg(stats=stats))
    specs = build_trial_specs(nvidia_backend, settings.work_dir / "in.mp4", settings.work_dir, settings)

    result = runner.run_trial(nvidia_backend, _spec(specs, TrialKind.FULL_HW), settings)

    assert result.speed == 6.02


def test_speed_is_none_without_stats(settings, nvidia_backend, monkeypatch):
    monkeypatch.setattr(runner, "run_ffmpeg_logged", FakeFfmpeg())
    specs = build_trial_specs(nvidia_backend, settings.work_dir / "in.mp4", settings.work_dir, settings)

    result = runner.run_trial(nvidia_backend, _spec(specs, TrialKind.SOFTWARE), settings)

    assert result.speed is None


def test_undecodable_ffmpeg_output_still_passes(settings, nvidia_backend):
    log_path = settings.work_dir / "test1.log"
    spec = TrialSpec(
        name="test1",
        label="Hardware Decode Only",
        kind=TrialKind.HW_DECODE,
        command=[sys.executable, "-c", "import sys; sys.stderr.buffer.write(b'title : Caf\\xe9\\n')"],
        output_path=settings.work_dir / "test_output_hw_decode.mp4",
        log_path=log_path,
    )

    result = runner.run_trial(nvidia_backend, spec, settings)

    assert result.success
    assert "title : Caf\ufffd" in log_path.read_text(encoding="utf-8")
