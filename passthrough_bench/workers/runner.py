import logging
from pathlib import Path
from typing import List, Tuple
from passthrough_bench.api.config import get_settings
from passthrough_bench.api.errors import TrialExecutionFailed, FallbackExecutionFailed
from passthrough_bench.api.models import Backend, TrialSpec, TrialResult
from passthrough_bench.workers.progress_parser import run_ffmpeg_logged, last_progress
from passthrough_bench.workers.monitor import GpuMonitor

logger = logging.getLogger(__name__)

# Return code recorded when ffmpeg could not be started at all
NOT_STARTED = -1


def _execute(spec: TrialSpec) -> Tuple[int, float]:
    try:
        return run_ffmpeg_logged(spec.command, spec.log_path)
    except TrialExecutionFailed as e:
        logger.error(f"{spec.name}: {e}")
        return NOT_STARTED, 0.0


def _execute_fallback(spec: TrialSpec) -> Tuple[int, float]:
    return_code, elapsed = _execute(spec)
    if return_code != 0:
        raise FallbackExecutionFailed(spec.name, return_code, elapsed)
    return return_code, elapsed


def run_trial(backend: Backend, spec: TrialSpec, settings=None) -> TrialResult:
    """
    Run one trial with its GPU monitor sidecar.

    Pass/fail is ffmpeg's exit code only. If the trial has a fallback spec
    (QSV -> VAAPI) and fails, the fallback runs once and its result is the
    one recorded.
    """
    settings = settings or get_settings()
    monitor_log = Path(spec.log_path).parent / f"{spec.name}_gpu.log"

    logger.info(f"=== {spec.name}: {spec.label} ===")
    fallback_used = False
    primary_return_code = None

    with GpuMonitor(backend, monitor_log, settings) as monitor:
        return_code, elapsed = _execute(spec)
        log_path = spec.log_path

        if return_code != 0 and spec.fallback is not None:
            logger.warning(f"{spec.name}: QSV failed (code {return_code}), trying VAAPI fallback")
            print("⚠️  QSV failed, trying VAAPI fallback...")
            primary_return_code = return_code
            fallback_used = True
            log_path = spec.fallback.log_path
            try:
                return_code, elapsed = _execute_fallback(spec.fallback)
            except FallbackExecutionFailed as e:
                logger.error(f"{spec.name}: {e}")
                return_code, elapsed = e.return_code, e.elapsed

    result = TrialResult(
        name=spec.name,
        label=spec.label,
        kind=spec.kind,
        return_code=return_code,
        elapsed=max(elapsed, 0.0),
        log_path=log_path,
        monitor_log_path=monitor.log_path,
        speed=last_progress(log_path).get('speed'),
        fallback_used=fallback_used,
        primary_return_code=primary_return_code,
    )
    logger.info(f"{spec.name}: {result.status} in {result.elapsed:.2f}s")
    return result


def run_trials(backend: Backend, specs: List[TrialSpec], settings=None) -> List[TrialResult]:
    """Run trials one after another. Trials share the GPU, so they never overlap."""
    results = []
    for spec in specs:
        print("")
        print(f"🧪 {spec.name.replace('test', 'Test ')}: {spec.label}")
        print("=" * 50)
        result = run_trial(backend, spec, settings)
        print(f"   {'✅' if result.success else '❌'} {result.status} ({result.elapsed:.2f}s)")
        results.append(result)
    return results
