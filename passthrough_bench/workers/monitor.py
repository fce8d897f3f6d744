"""
GPU monitor sidecar - samples GPU utilization while a trial runs.

Best-effort only: a missing tool, a failed start or a failed stop is logged
and ignored, it never changes a trial's outcome.
"""

import shutil
import logging
import subprocess
from pathlib import Path
from typing import List, Optional
from passthrough_bench.api.config import get_settings
from passthrough_bench.api.errors import MonitorFailure
from passthrough_bench.api.models import Backend, Vendor

logger = logging.getLogger(__name__)

SCRATCH_LOG = "gpu_monitor.log"


def monitor_candidates(vendor: Vendor, settings=None) -> List[List[str]]:
    """Monitor commands for a vendor, in order of preference."""
    settings = settings or get_settings()
    if vendor == Vendor.NVIDIA:
        return [
            [settings.nvidia_smi_path, 'pmon', '-d', '1', '-c', '99999'],
            ['nvtop', '-d', '1'],
        ]
    if vendor == Vendor.AMD:
        return [['radeontop', '-d', '-']]
    if vendor == Vendor.INTEL:
        return [['intel_gpu_top']]
    return []


def find_monitor_command(vendor: Vendor, settings=None) -> Optional[List[str]]:
    for cmd in monitor_candidates(vendor, settings):
        if shutil.which(cmd[0]):
            return cmd
    return None


class GpuMonitor:
    """
    Background GPU sampler scoped to one trial.

    Usage:
        with GpuMonitor(backend, work_dir / "test1_gpu.log") as monitor:
            run the trial
        monitor.log_path  # final log, or None if nothing was captured
    """

    def __init__(self, backend: Backend, final_log_path: Path, settings=None):
        self.settings = settings or get_settings()
        self.backend = backend
        self.final_log_path = Path(final_log_path)
        self.scratch_path = self.final_log_path.parent / SCRATCH_LOG
        self.process = None
        self.log_path = None
        self._log_file = None

    def start(self):
        # stale scratch log from an interrupted run
        try:
            self.scratch_path.unlink(missing_ok=True)
        except OSError as e:
            raise MonitorFailure(f"Could not clear {self.scratch_path}: {e}") from e

        cmd = find_monitor_command(self.backend.vendor, self.settings)
        if cmd is None:
            logger.debug(f"No GPU monitor available for {self.backend.vendor.value}")
            return

        try:
            self._log_file = open(self.scratch_path, 'w', encoding='utf-8')
            self.process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=self._log_file,
                stderr=subprocess.STDOUT
            )
            logger.info(f"Started GPU monitor: {' '.join(cmd)} (pid {self.process.pid})")
        except OSError as e:
            self._close_log()
            raise MonitorFailure(f"Could not start {cmd[0]}: {e}") from e

    def stop(self):
        """Terminate and await the sampler, then move its log into place."""
        if self.process is not None:
            try:
                self.process.terminate()
                try:
                    self.process.wait(timeout=self.settings.monitor_stop_timeout)
                except subprocess.TimeoutExpired:
                    logger.warning(f"GPU monitor did not exit, killing pid {self.process.pid}")
                    self.process.kill()
                    self.process.wait()
            except OSError as e:
                raise MonitorFailure(f"Could not stop GPU monitor: {e}") from e
            finally:
                self.process = None
                self._close_log()

        if self.scratch_path.exists():
            try:
                self.scratch_path.replace(self.final_log_path)
                self.log_path = self.final_log_path
            except OSError as e:
                raise MonitorFailure(f"Could not rename monitor log: {e}") from e

    def _close_log(self):
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None

    def __enter__(self):
        try:
            self.start()
        except MonitorFailure as e:
            logger.debug(f"GPU monitor ignored: {e}")
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            self.stop()
        except MonitorFailure as e:
            logger.debug(f"GPU monitor ignored: {e}")
        return False
