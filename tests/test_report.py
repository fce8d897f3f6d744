import pytest
from conftest import make_result
from passthrough_bench.api.models import TrialKind
from passthrough_bench.services.report import (
    aggregate, classify_speedup, compute_speedup, format_report, write_report
)


def _results(decode=0, encode=0, full=0, software=0, full_time=4.0, software_time=10.0, encode_log=None):
    kwargs = {"log_path": encode_log} if encode_log else {}
    return [
        make_result(TrialKind.HW_DECODE, decode, 5.0),
        make_result(TrialKind.HW_ENCODE, encode, 4.0, **kwargs),
        make_result(TrialKind.FULL_HW, full, full_time),
        make_result(TrialKind.SOFTWARE, software, software_time),
    ]


def test_significant_speedup(nvidia_backend):
    report = aggregate(_results(full_time=4.0, software_time=10.0), nvidia_backend)

    assert report.speedup == pytest.approx(2.5)
    assert report.classification == "significant"


def test_modest_speedup(nvidia_backend):
    report = aggregate(_results(full_time=8.0, software_time=10.0), nvidia_backend)

    assert report.speedup == pytest.approx(1.25)
    assert report.classification == "modest"


def test_zero_duration_full_pipeline_has_no_speedup(nvidia_backend):
    report = aggregate(_results(full_time=0.0), nvidia_backend)

    assert report.speedup is None
    assert report.classification is None


@pytest.mark.parametrize("speedup, expected", [
    (1.51, "significant"),
    (1.5, "modest"),
    (1.0, "no improvement"),
    (0.4, "no improvement"),
    (None, None),
])
def test_classification_boundaries(speedup, expected):
    assert classify_speedup(speedup) == expected


def test_speedup_needs_both_trials_to_pass():
    software = make_result(TrialKind.SOFTWARE, 0, 10.0)
    failed_full = make_result(TrialKind.FULL_HW, 1, 4.0)

    assert compute_speedup(software, failed_full) is None


def test_working_when_only_full_pipeline_passes(nvidia_backend):
    report = aggregate(_results(encode=1, full=0), nvidia_backend)

    assert report.passthrough_working


def test_not_working_when_both_hardware_encodes_fail(nvidia_backend):
    report = aggregate(_results(decode=0, encode=1, full=1, software=0), nvidia_backend)

    assert not report.passthrough_working
    assert report.speedup is None


def test_acceleration_confirmed_from_log(tmp_path, nvidia_backend):
    log = tmp_path / "test2.log"
    log.write_text("Stream #0:0 -> #0:0 (h264 (native) -> h264 (h264_nvenc))\nhwaccel cuda\n")

    report = aggregate(_results(encode_log=log), nvidia_backend)

    assert report.acceleration_confirmed


def test_acceleration_not_confirmed_does_not_affect_verdict(tmp_path, nvidia_backend):
    log = tmp_path / "test2.log"
    log.write_text("libx264 fallback\n")

    report = aggregate(_results(encode_log=log), nvidia_backend)

    assert not report.acceleration_confirmed
    assert report.passthrough_working


def test_missing_trial_is_rejected(nvidia_backend):
    with pytest.raises(ValueError):
        aggregate(_results()[:3], nvidia_backend)


def test_format_report_shows_na_speedup(tmp_path, nvidia_backend):
    report = aggregate(_results(full_time=0.0), nvidia_backend)

    text = "\n".join(format_report(report, tmp_path))

    assert "Hardware speedup: N/A" in text
    assert "GPU passthrough appears to be working!" in text


def test_format_report_failure_has_tips(tmp_path, nvidia_backend):
    report = aggregate(_results(encode=1, full=1), nvidia_backend)

    lines = format_report(report, tmp_path)

    assert any("Troubleshooting tips" in line for line in lines)
    assert not any("PERFORMANCE ANALYSIS" in line for line in lines)


def test_write_report_appends(tmp_path, capsys):
    report_file = tmp_path / "report.txt"
    report_file.write_text("header\n")

    write_report(["one", "two"], report_file)

    assert report_file.read_text() == "header\none\ntwo\n"
    assert "one" in capsys.readouterr().out


def test_format_report_shows_ffmpeg_speed(tmp_path, nvidia_backend):
    results = _results()
    results[2] = make_result(TrialKind.FULL_HW, 0, 4.0, speed=7.5)
    report = aggregate(results, nvidia_backend)

    lines = format_report(report, tmp_path)

    full_row = next(line for line in lines if line.startswith("Full Hardware Pipeline"))
    software_row = next(line for line in lines if line.startswith("Software Baseline"))
    assert "7.50x" in full_row
    assert "N/A" in software_row
