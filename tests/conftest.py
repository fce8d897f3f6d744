import pytest
from pathlib import Path
from passthrough_bench.api.config import Settings
from passthrough_bench.api.models import Backend, Vendor, TrialKind, TrialResult


@pytest.fixture
def settings(tmp_path):
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    return Settings(
        work_dir=work_dir,
        drm_root=tmp_path / "drm",
        dri_dir=tmp_path / "dri",
        render_device="/dev/dri/renderD128",
        nvidia_smi_path="nvidia-smi",
        monitor_stop_timeout=5.0,
    )


def make_card(drm_root: Path, card: str, vendor: str) -> Path:
    device_dir = Path(drm_root) / card / "device"
    device_dir.mkdir(parents=True, exist_ok=True)
    vendor_file = device_dir / "vendor"
    vendor_file.write_text(vendor + "\n")
    return vendor_file


@pytest.fixture
def nvidia_backend():
    return Backend(
        vendor=Vendor.NVIDIA,
        encoder="h264_nvenc",
        decoder="h264_cuvid",
        hwaccel="cuda",
        hardware_confirmed=True,
        encoders=("h264_nvenc", "hevc_nvenc"),
    )


@pytest.fixture
def qsv_backend():
    return Backend(
        vendor=Vendor.INTEL,
        encoder="h264_qsv",
        hwaccel="qsv",
        hardware_confirmed=True,
        device="/dev/dri/renderD128",
        encoders=("h264_qsv", "h264_vaapi"),
    )


def make_result(kind: TrialKind, return_code: int = 0, elapsed: float = 1.0, log_path: Path = Path("x.log"), **kwargs):
    names = {
        TrialKind.HW_DECODE: ("test1", "Hardware Decode"),
        TrialKind.HW_ENCODE: ("test2", "Hardware Encode"),
        TrialKind.FULL_HW: ("test3", "Full Hardware Pipeline"),
        TrialKind.SOFTWARE: ("test4", "Software Baseline"),
    }
    name, label = names[kind]
    return TrialResult(
        name=name, label=label, kind=kind, return_code=return_code,
        elapsed=elapsed, log_path=log_path, **kwargs
    )
