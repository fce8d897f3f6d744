import os
import re
import stat
import shutil
import logging
import subprocess
from pathlib import Path
from typing import Callable, List, Dict, Optional
from passthrough_bench.api.config import get_settings
from passthrough_bench.api.errors import ToolNotFound, NoAccelerationFound
from passthrough_bench.api.models import Backend, Vendor

logger = logging.getLogger(__name__)

INTEL_VENDOR_ID = "0x8086"
AMD_VENDOR_ID = "0x1002"

# Encoder families we care about in `ffmpeg -encoders`
HW_ENCODER_PATTERN = re.compile(r"(nvenc|amf|vaapi|qsv)")

ENCODER_LISTING_FILE = "available_encoders.txt"

# Backend templates keyed by encoder family
BACKEND_PROFILES = {
    "nvenc": {"vendor": Vendor.NVIDIA, "encoder": "h264_nvenc", "decoder": "h264_cuvid", "hwaccel": "cuda"},
    "amf": {"vendor": Vendor.AMD, "encoder": "h264_amf", "decoder": None, "hwaccel": "auto"},
    "vaapi": {"vendor": Vendor.INTEL, "encoder": "h264_vaapi", "decoder": None, "hwaccel": "vaapi"},
    "qsv": {"vendor": Vendor.INTEL, "encoder": "h264_qsv", "decoder": None, "hwaccel": "qsv"},
}

INTEL_DRIVER_HINTS = [
    "Install Intel VA-API drivers:",
    "   sudo apt install intel-media-va-driver-non-free",
    "   sudo apt install i965-va-driver  # For older Intel GPUs",
    "   sudo apt install vainfo intel-gpu-tools",
]

NO_ACCELERATION_HINTS = [
    "For Intel GPUs, install: intel-media-driver intel-media-va-driver",
    "Check if /dev/dri/renderD128 exists and is accessible",
]


def _run(cmd: List[str], timeout: int = 10):
    """Run a short query command. Returns CompletedProcess or None if it could not run."""
    try:
        return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"Command {cmd[0]} failed to run: {e}")
        return None


def command_exists(cmd: str) -> bool:
    return shutil.which(cmd) is not None


def require_ffmpeg(settings=None) -> str:
    """Return the resolved ffmpeg path or raise ToolNotFound."""
    settings = settings or get_settings()
    path = shutil.which(settings.ffmpeg_path)
    if not path:
        raise ToolNotFound(settings.ffmpeg_path)
    return path


# ============================================================================
# ENCODER LISTING (text boundary with ffmpeg)
# ============================================================================

def list_hw_encoders(settings=None) -> List[str]:
    """Lines of `ffmpeg -encoders` that mention a hardware encoder family."""
    settings = settings or get_settings()
    result = _run([settings.ffmpeg_path, "-hide_banner", "-encoders"])
    if result is None:
        return []
    return [line.strip() for line in result.stdout.splitlines() if HW_ENCODER_PATTERN.search(line)]


def parse_encoder_names(lines: List[str]) -> List[str]:
    """
    Extract encoder names from listing lines.

    Example:
        " V....D h264_nvenc           NVIDIA NVENC H.264 encoder (codec h264)"
        -> "h264_nvenc"
    """
    names = []
    for line in lines:
        parts = line.split()
        if len(parts) >= 2 and HW_ENCODER_PATTERN.search(parts[1]):
            names.append(parts[1])
    return names


def write_encoder_listing(lines: List[str], work_dir: Path) -> Path:
    listing_file = Path(work_dir) / ENCODER_LISTING_FILE
    listing_file.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
    return listing_file


# ============================================================================
# HARDWARE SIGNALS
# ============================================================================

def read_sysfs_value(path: Path) -> Optional[str]:
    try:
        return Path(path).read_text().strip()
    except OSError:
        return None


def card_vendor_files(drm_root: Path) -> List[Path]:
    """vendor files of every card* node, card0 first."""
    try:
        return sorted(Path(drm_root).glob("card*/device/vendor"))
    except OSError as e:
        logger.debug(f"Could not scan {drm_root}: {e}")
        return []


def primary_card_is_intel(settings) -> bool:
    return read_sysfs_value(Path(settings.drm_root) / "card0" / "device" / "vendor") == INTEL_VENDOR_ID


def any_card_is_amd(settings) -> bool:
    return any(read_sysfs_value(path) == AMD_VENDOR_ID for path in card_vendor_files(settings.drm_root))


def nvidia_smi_available(settings) -> bool:
    """nvidia-smi is installed and answers successfully."""
    if not command_exists(settings.nvidia_smi_path):
        return False
    result = _run([settings.nvidia_smi_path])
    return result is not None and result.returncode == 0


# ============================================================================
# PROBE DECISION TABLE
# ============================================================================

def _make_backend(family: str, confirmed: bool, encoders: List[str], settings) -> Backend:
    profile = BACKEND_PROFILES[family]
    device = settings.render_device if profile["vendor"] == Vendor.INTEL else None
    return Backend(
        hardware_confirmed=confirmed,
        device=device,
        encoders=tuple(encoders),
        **profile
    )


def _intel_from_sysfs(encoders: List[str], settings) -> Optional[Backend]:
    if not primary_card_is_intel(settings):
        return None
    logger.info("Intel GPU detected in hardware")
    # VAAPI is more reliable than QSV on modern Intel parts
    if "h264_vaapi" in encoders:
        return _make_backend("vaapi", True, encoders, settings)
    if "h264_qsv" in encoders:
        return _make_backend("qsv", True, encoders, settings)
    raise NoAccelerationFound(
        "Intel GPU found but no hardware encoders available in FFmpeg",
        hints=INTEL_DRIVER_HINTS
    )


def _nvidia_from_tool(encoders: List[str], settings) -> Optional[Backend]:
    if not nvidia_smi_available(settings):
        return None
    logger.info("NVIDIA GPU detected via nvidia-smi")
    return _make_backend("nvenc", True, encoders, settings)


def _amd_from_sysfs(encoders: List[str], settings) -> Optional[Backend]:
    if not any_card_is_amd(settings):
        return None
    logger.info("AMD GPU detected in hardware")
    return _make_backend("amf", True, encoders, settings)


def _from_encoder_listing(encoders: List[str], settings) -> Optional[Backend]:
    # Some passthrough setups expose a working encoder without vendor sysfs ids
    if any("nvenc" in name for name in encoders):
        family = "nvenc"
    elif any("amf" in name for name in encoders):
        family = "amf"
    elif any("vaapi" in name or "qsv" in name for name in encoders):
        family = "qsv" if "h264_qsv" in encoders else "vaapi"
    else:
        return None
    logger.warning(f"{family} encoders listed by FFmpeg, hardware not confirmed")
    return _make_backend(family, False, encoders, settings)


PROBE_ORDER: List[Callable[[List[str], object], Optional[Backend]]] = [
    _intel_from_sysfs,
    _nvidia_from_tool,
    _amd_from_sysfs,
    _from_encoder_listing,
]


def probe(encoders: List[str], settings=None) -> Backend:
    """
    Select the hardware acceleration backend for this run.

    Args:
        encoders: hardware encoder names from `ffmpeg -encoders`
        settings: Settings instance (defaults to get_settings())

    Returns:
        The first Backend produced by PROBE_ORDER

    Raises:
        NoAccelerationFound: no rule matched, or Intel hardware has no encoder
    """
    settings = settings or get_settings()
    for rule in PROBE_ORDER:
        backend = rule(encoders, settings)
        if backend is not None:
            logger.info(f"Selected backend: {backend.display_name} (confirmed={backend.hardware_confirmed})")
            return backend

    listed = ", ".join(encoders) if encoders else "none"
    raise NoAccelerationFound(
        f"No hardware acceleration support detected! Available encoders: {listed}",
        hints=NO_ACCELERATION_HINTS
    )


# ============================================================================
# DIAGNOSTICS
# ============================================================================

def list_dri_devices(dri_dir: Path) -> List[Dict]:
    """
    Enumerate DRI device nodes for display. Never raises.

    Returns:
        List of dicts: {"path", "mode", "readable", "writable"}
    """
    devices = []
    try:
        entries = sorted(Path(dri_dir).iterdir())
    except OSError as e:
        logger.debug(f"No DRI devices at {dri_dir}: {e}")
        return devices

    for entry in entries:
        try:
            mode = stat.filemode(entry.stat().st_mode)
        except OSError:
            mode = "?"
        devices.append({
            "path": str(entry),
            "mode": mode,
            "readable": os.access(entry, os.R_OK),
            "writable": os.access(entry, os.W_OK),
        })
    return devices


def ffmpeg_hwaccels(settings=None) -> List[str]:
    settings = settings or get_settings()
    result = _run([settings.ffmpeg_path, "-hide_banner", "-hwaccels"])
    if result is None:
        return []
    return [
        line.strip() for line in result.stdout.splitlines()
        if line.strip() and "Hardware acceleration methods" not in line
    ]


def nvidia_gpu_summary(settings=None) -> Optional[str]:
    settings = settings or get_settings()
    result = _run([
        settings.nvidia_smi_path,
        "--query-gpu=name,driver_version,memory.total",
        "--format=csv,noheader,nounits"
    ])
    if result is None or result.returncode != 0:
        return None
    return result.stdout.strip()


def vainfo_summary(settings=None, max_lines: int = 10) -> List[str]:
    settings = settings or get_settings()
    result = _run([settings.vainfo_path])
    if result is None:
        return []
    return result.stdout.splitlines()[:max_lines]
