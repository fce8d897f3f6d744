import logging
from pathlib import Path
from typing import List, Optional
from passthrough_bench.api.models import Backend, Report, TrialKind, TrialResult, Vendor
from passthrough_bench.utils.video_utils import human_size

logger = logging.getLogger(__name__)

REPORT_FILE = "gpu_test_report.txt"

SIGNIFICANT_SPEEDUP = 1.5
MODEST_SPEEDUP = 1.0

# Substrings that show the hwaccel really engaged, searched in the encode trial log
ACCELERATION_INDICATORS = {
    "cuda": ("cuda", "nvenc"),
    "auto": ("amf",),
    "vaapi": ("vaapi",),
    "qsv": ("qsv",),
}

TROUBLESHOOTING_TIPS = [
    "1. Ensure GPU is properly passed through to VM",
    "2. Install appropriate GPU drivers in VM",
    "3. Check if FFmpeg was compiled with hardware acceleration support",
    "4. Verify device permissions (e.g., /dev/dri/renderD128 for Intel/AMD)",
]


def compute_speedup(software: TrialResult, full_pipeline: TrialResult) -> Optional[float]:
    """software / full-pipeline duration, or None when it cannot be computed."""
    if not (software.success and full_pipeline.success):
        return None
    if full_pipeline.elapsed <= 0:
        return None
    return software.elapsed / full_pipeline.elapsed


def classify_speedup(speedup: Optional[float]) -> Optional[str]:
    if speedup is None:
        return None
    if speedup > SIGNIFICANT_SPEEDUP:
        return "significant"
    if speedup > MODEST_SPEEDUP:
        return "modest"
    return "no improvement"


def _read_log(path: Optional[Path]) -> str:
    if path is None:
        return ""
    try:
        return Path(path).read_text(encoding='utf-8', errors='replace')
    except OSError:
        return ""


def acceleration_in_log(backend: Backend, result: TrialResult) -> bool:
    hwaccel = "vaapi" if result.fallback_used else backend.hwaccel
    text = _read_log(result.log_path)
    return all(token in text for token in ACCELERATION_INDICATORS.get(hwaccel, ()))


def aggregate(results: List[TrialResult], backend: Backend) -> Report:
    """
    Summarize the four trial results.

    passthrough_working is true if either hardware encode trial passed,
    whatever the speedup says.
    """
    by_kind = {result.kind: result for result in results}
    missing = set(TrialKind) - set(by_kind)
    if missing:
        raise ValueError(f"Missing trial results: {sorted(k.value for k in missing)}")

    encode = by_kind[TrialKind.HW_ENCODE]
    full = by_kind[TrialKind.FULL_HW]
    speedup = compute_speedup(by_kind[TrialKind.SOFTWARE], full)

    encoder_utilization_seen = False
    if backend.vendor == Vendor.NVIDIA:
        encoder_utilization_seen = "enc" in _read_log(encode.monitor_log_path)

    report = Report(
        backend=backend,
        results=list(results),
        speedup=speedup,
        classification=classify_speedup(speedup),
        passthrough_working=encode.success or full.success,
        acceleration_confirmed=acceleration_in_log(backend, encode),
        encoder_utilization_seen=encoder_utilization_seen,
    )
    logger.info(
        f"Report: speedup={speedup} classification={report.classification} "
        f"working={report.passthrough_working}"
    )
    return report


def section(title: str, underline: str = "=") -> List[str]:
    return ["", title, underline * len(title)]


def format_report(report: Report, work_dir: Path) -> List[str]:
    lines = section("📊 TEST RESULTS")
    lines.append(f"{'Test':<30} {'Status':<10} {'Time (s)':<10} {'Speed':<8}")
    lines.append(f"{'----':<30} {'------':<10} {'--------':<10} {'-----':<8}")
    for result in report.results:
        status = "✅ PASS" if result.success else "❌ FAIL"
        label = result.label + (" (VAAPI)" if result.fallback_used else "")
        speed = f"{result.speed:.2f}x" if result.speed is not None else "N/A"
        lines.append(f"{label:<30} {status:<10} {result.elapsed:<10.2f} {speed:<8}")

    full = report.result_for(TrialKind.FULL_HW)
    software = report.result_for(TrialKind.SOFTWARE)
    if full.success and software.success:
        lines.extend(section("📈 PERFORMANCE ANALYSIS"))
        if report.speedup is None:
            lines.append("Hardware speedup: N/A")
        else:
            lines.append(f"Hardware speedup: {report.speedup:.2f}x faster than software")

        if report.classification == "significant":
            lines.append("✅ Significant performance improvement detected!")
        elif report.classification == "modest":
            lines.append("⚠️  Modest performance improvement detected.")
        else:
            lines.append("❌ No significant performance improvement. Check GPU passthrough configuration.")

    lines.extend(section("🔍 HARDWARE ACCELERATION INDICATORS"))
    vendor = report.backend.vendor.value
    if report.acceleration_confirmed:
        lines.append(f"✅ {vendor} hardware acceleration ({report.backend.hwaccel}) detected in logs")
    else:
        lines.append(f"❌ {vendor} hardware acceleration not confirmed in logs")

    encode = report.result_for(TrialKind.HW_ENCODE)
    if encode.monitor_log_path is not None:
        lines.extend(section("📊 GPU UTILIZATION DURING ENCODING"))
        lines.append(f"Check {Path(encode.monitor_log_path).name} for detailed GPU utilization during hardware encoding")
        if report.encoder_utilization_seen:
            lines.append("✅ GPU encoder utilization detected")

    lines.extend(section("📁 TEST FILES LOCATION"))
    lines.append(f"Test directory: {work_dir}")
    lines.append("Generated files:")
    for path in sorted(Path(work_dir).glob("*.mp4")):
        lines.append(f"  {path} ({human_size(path)})")
    lines.append("")
    lines.append("Log files:")
    for path in sorted(Path(work_dir).glob("*.log")):
        lines.append(f"  {path} ({human_size(path)})")

    lines.extend(section("🏁 FINAL VERDICT"))
    if report.passthrough_working:
        lines.append("✅ GPU passthrough appears to be working!")
        lines.append("Hardware encoding completed successfully.")
        if not report.backend.hardware_confirmed:
            lines.append("⚠️  Backend was inferred from FFmpeg encoders only, hardware not confirmed.")
    else:
        lines.append("❌ GPU passthrough may not be working correctly.")
        lines.append("Hardware encoding failed. Check your GPU passthrough configuration.")
        lines.append("")
        lines.append("Troubleshooting tips:")
        lines.extend(TROUBLESHOOTING_TIPS)

    return lines


def write_report(lines: List[str], report_file: Path):
    """Print lines and append them to the report file."""
    with open(report_file, 'a', encoding='utf-8') as f:
        for line in lines:
            f.write(line + '\n')
            print(line)
