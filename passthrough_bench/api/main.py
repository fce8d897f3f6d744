"""
GPU passthrough test - command line entry points.

    gpu-passthrough-test run [duration] [resolution]
    gpu-passthrough-test info
    gpu-passthrough-test download [choice]
    gpu-passthrough-test usage
"""

import sys
import logging
import argparse
from datetime import datetime
from pathlib import Path
from typing import List

from passthrough_bench.api.config import get_settings
from passthrough_bench.api.errors import (
    ToolNotFound, NoAccelerationFound, AssetGenerationFailed, DownloadFailed, InvalidTestParameters
)
from passthrough_bench.api.models import Report
from passthrough_bench.services.logger import setup_run_logger
from passthrough_bench.services.report import REPORT_FILE, aggregate, format_report, write_report
from passthrough_bench.services.storage import (
    DOWNLOAD_CHOICES, DEFAULT_DOWNLOAD_CHOICE, ensure_work_dir, resolve_test_input, download_samples,
    validate_test_parameters
)
from passthrough_bench.utils import hardware
from passthrough_bench.utils.video_utils import get_video_info
from passthrough_bench.workers.ffmpeg_builder import build_trial_specs
from passthrough_bench.workers.runner import run_trials

logger = logging.getLogger(__name__)

USAGE = """\
🚀 GPU Passthrough Test Usage Examples
=====================================

Basic test (30 seconds, 1080p):
    gpu-passthrough-test run

Custom duration and resolution:
    gpu-passthrough-test run 60 1920x1080
    gpu-passthrough-test run 10 3840x2160

Check GPU information:
    gpu-passthrough-test info

Download high-bitrate test videos for stress testing:
    gpu-passthrough-test download [1-7]

💡 IMPORTANT: Download test videos first for best results!
The generated test videos are lightweight. For real GPU stress testing,
download high-bitrate videos that will show dramatic performance differences:

  gpu-passthrough-test download 2   # 1080p 80Mbps H.264
  gpu-passthrough-test run          # Will automatically use downloaded videos

Available high-bitrate test options:
{choices}

Monitor GPU during test (run in separate terminal):
    # NVIDIA:
    nvidia-smi pmon -d 1
    nvtop

    # AMD:
    radeontop

    # Intel:
    intel_gpu_top

The test will create files in {work_dir} including:
- Test input video (or use downloaded high-bitrate videos)
- Encoded output videos
- Log files
- GPU monitoring logs

Look for "✅ GPU passthrough appears to be working!" in the results.
"""


def run_benchmark(duration: int = None, resolution: str = None, settings=None) -> Report:
    """
    Probe the GPU, pick an input video, run the four trials and print the report.

    Raises:
        ToolNotFound: ffmpeg is not installed
        NoAccelerationFound: no usable hardware backend
        AssetGenerationFailed: the test clip could not be generated
        InvalidTestParameters: bad duration or resolution
    """
    settings = settings or get_settings()
    duration = duration if duration is not None else settings.default_duration
    resolution = resolution or settings.default_resolution
    validate_test_parameters(duration, resolution)
    work_dir = ensure_work_dir(settings.work_dir)

    _, log_file = setup_run_logger(work_dir, settings)
    logger.info(f"=== GPU Passthrough Test: {duration}s, {resolution} ===")

    print("=== GPU Passthrough Test ===")
    print(f"Duration: {duration}s, Resolution: {resolution}")
    print("================================")

    print("🔍 Checking required tools...")
    ffmpeg = hardware.require_ffmpeg(settings)
    logger.info(f"ffmpeg: {ffmpeg}")

    print("🔍 Detecting GPU and available encoders...")
    listing = hardware.list_hw_encoders(settings)
    hardware.write_encoder_listing(listing, work_dir)
    encoders = hardware.parse_encoder_names(listing)
    logger.info(f"Hardware encoders: {encoders}")

    print("🔍 Checking actual GPU hardware...")
    backend = hardware.probe(encoders, settings)
    confirmed = "" if backend.hardware_confirmed else " (hardware not confirmed)"
    print(f"✅ Using {backend.display_name}{confirmed}")

    print("📋 Available DRI devices:")
    devices = hardware.list_dri_devices(settings.dri_dir)
    if not devices:
        print("   No DRI devices found")
    for device in devices:
        print(f"   {device['mode']} {device['path']}")

    test_input = resolve_test_input(duration, resolution, work_dir, settings)
    info = get_video_info(str(test_input), settings)
    if info:
        tag = " (4K)" if info['is_4k'] else ""
        print(f"   Input: {info['width']}x{info['height']}, {info['duration']:.1f}s{tag}")

    specs = build_trial_specs(backend, test_input, work_dir, settings)
    results = run_trials(backend, specs, settings)

    report = aggregate(results, backend)
    report_file = work_dir / REPORT_FILE
    with open(report_file, 'w', encoding='utf-8') as f:
        f.write(f"GPU PASSTHROUGH TEST REPORT - {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"Backend: {backend.display_name}\n")
        f.write(f"Input: {test_input}\n")
    write_report(format_report(report, work_dir), report_file)
    print(f"\nReport saved to: {report_file}")
    print(f"Run log: {log_file}")
    return report


def show_capabilities(settings=None):
    """Print what this machine exposes: vendors, DRI nodes, ffmpeg hwaccels and encoders."""
    settings = settings or get_settings()
    print("=== GPU Information ===")

    if hardware.primary_card_is_intel(settings):
        print("🔵 Intel GPU detected")
        device_id = hardware.read_sysfs_value(Path(settings.drm_root) / "card0" / "device" / "device")
        if device_id:
            print(f"   Device ID: {device_id}")

        if hardware.command_exists("intel_gpu_top"):
            print("   Intel GPU monitoring: intel_gpu_top available ✅")
        else:
            print("   Intel GPU monitoring: intel_gpu_top not found ❌")
            print("   Install with: sudo apt install intel-gpu-tools")

        if hardware.command_exists(settings.vainfo_path):
            print("")
            print("VA-API Information:")
            for line in hardware.vainfo_summary(settings):
                print(line)
        else:
            print("   VA-API info: vainfo not found")
            print("   Install with: sudo apt install vainfo")

    if hardware.command_exists(settings.nvidia_smi_path):
        print("🟢 NVIDIA GPU detected:")
        summary = hardware.nvidia_gpu_summary(settings)
        print(f"   {summary}" if summary else "   nvidia-smi failed to run")

    if hardware.any_card_is_amd(settings):
        print("🔴 AMD GPU detected")

    print("")
    print("DRI devices:")
    devices = hardware.list_dri_devices(settings.dri_dir)
    if not devices:
        print("❌ No DRI devices found")
    for device in devices:
        print(f"  {device['mode']} {device['path']}")

    render_nodes = [d for d in devices if Path(d['path']).name.startswith("renderD")]
    if render_nodes:
        print("")
        print("Permissions check:")
    for device in render_nodes:
        print(f"  {device['path']}: {device['mode']}")
        if device['readable'] and device['writable']:
            print("    ✅ Readable and writable by current user")
        else:
            print("    ❌ Not accessible by current user")
            print("    Try: sudo usermod -a -G render,video $USER")

    print("")
    print("FFmpeg hardware acceleration support:")
    if not hardware.command_exists(settings.ffmpeg_path):
        print("FFmpeg not found")
        return

    print("Hardware acceleration methods:")
    for method in hardware.ffmpeg_hwaccels(settings):
        print(f"  {method}")
    print("")
    print("Available hardware encoders:")
    listing = hardware.list_hw_encoders(settings)
    if not listing:
        print("None found")
    for line in listing:
        print(f"  {line}")


def fetch_sample_assets(choice: int = DEFAULT_DOWNLOAD_CHOICE, settings=None) -> List[Path]:
    """Download high-bitrate sample videos (menu choice 1-7) into the work dir."""
    settings = settings or get_settings()
    work_dir = ensure_work_dir(settings.work_dir)
    setup_run_logger(work_dir, settings)

    print("📥 Downloading high-bitrate test videos for GPU stress testing...")
    paths = download_samples(choice, work_dir, settings)
    print("")
    print("📊 Downloaded test files:")
    for path in paths:
        print(f"  {path}")
    return paths


def _choice_lines() -> str:
    return "\n".join(f"  {number}) {description}" for number, (description, _) in DOWNLOAD_CHOICES.items())


def show_usage(settings=None):
    settings = settings or get_settings()
    print(USAGE.format(choices=_choice_lines(), work_dir=settings.work_dir))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gpu-passthrough-test",
        description="Test GPU hardware acceleration passthrough in a VM"
    )
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the passthrough benchmark")
    run_parser.add_argument("duration", nargs="?", type=int, default=None,
                            help="Generated clip duration in seconds (default: 30)")
    run_parser.add_argument("resolution", nargs="?", default=None,
                            help="Generated clip resolution (default: 1920x1080)")

    subparsers.add_parser("info", help="Show GPU and FFmpeg capabilities")

    download_parser = subparsers.add_parser("download", help="Download high-bitrate sample videos")
    download_parser.add_argument("choice", nargs="?", type=int, default=DEFAULT_DOWNLOAD_CHOICE,
                                 help="1-7, see `usage` (default: 2)")

    subparsers.add_parser("usage", help="Show usage examples")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "usage"

    try:
        if command == "run":
            run_benchmark(args.duration, args.resolution)
        elif command == "info":
            show_capabilities()
        elif command == "download":
            fetch_sample_assets(args.choice)
        else:
            show_usage()
    except ToolNotFound as e:
        print(f"❌ {e}")
        return 1
    except NoAccelerationFound as e:
        print(f"❌ {e}")
        for hint in e.hints:
            print(f"💡 {hint}")
        return 1
    except (AssetGenerationFailed, DownloadFailed, InvalidTestParameters) as e:
        print(f"❌ {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
