import sys
import pytest
from passthrough_bench.api.models import Vendor
from passthrough_bench.workers import monitor
from passthrough_bench.workers.monitor import GpuMonitor, monitor_candidates

SAMPLER = [sys.executable, "-c", "import time; print('gpu enc 12', flush=True); time.sleep(60)"]


def test_candidates_per_vendor(settings):
    assert monitor_candidates(Vendor.NVIDIA, settings)[0][:2] == ["nvidia-smi", "pmon"]
    assert monitor_candidates(Vendor.NVIDIA, settings)[1][0] == "nvtop"
    assert monitor_candidates(Vendor.AMD, settings) == [["radeontop", "-d", "-"]]
    assert monitor_candidates(Vendor.INTEL, settings) == [["intel_gpu_top"]]
    assert monitor_candidates(Vendor.NONE, settings) == []


def test_no_tool_is_a_noop(settings, nvidia_backend, monkeypatch):
    monkeypatch.setattr(monitor.shutil, "which", lambda cmd: None)

    with GpuMonitor(nvidia_backend, settings.work_dir / "test1_gpu.log", settings) as gpu:
        assert gpu.process is None

    assert gpu.log_path is None
    assert not (settings.work_dir / "gpu_monitor.log").exists()


def test_sampler_is_stopped_and_log_renamed(settings, nvidia_backend, monkeypatch):
    monkeypatch.setattr(monitor, "find_monitor_command", lambda vendor, settings=None: SAMPLER)
    final_log = settings.work_dir / "test2_gpu.log"

    with GpuMonitor(nvidia_backend, final_log, settings) as gpu:
        process = gpu.process
        assert process is not None

    assert process.poll() is not None
    assert gpu.process is None
    assert gpu.log_path == final_log
    assert final_log.exists()
    assert not (settings.work_dir / "gpu_monitor.log").exists()


def test_sampler_is_stopped_when_trial_raises(settings, nvidia_backend, monkeypatch):
    monkeypatch.setattr(monitor, "find_monitor_command", lambda vendor, settings=None: SAMPLER)

    with pytest.raises(RuntimeError):
        with GpuMonitor(nvidia_backend, settings.work_dir / "test3_gpu.log", settings) as gpu:
            process = gpu.process
            raise RuntimeError("trial blew up")

    assert process.poll() is not None
    assert gpu.log_path is not None


def test_stale_scratch_log_is_cleared(settings, nvidia_backend, monkeypatch):
    monkeypatch.setattr(monitor.shutil, "which", lambda cmd: None)
    (settings.work_dir / "gpu_monitor.log").write_text("left over")

    with GpuMonitor(nvidia_backend, settings.work_dir / "test1_gpu.log", settings) as gpu:
        pass

    assert gpu.log_path is None
    assert not (settings.work_dir / "test1_gpu.log").exists()
