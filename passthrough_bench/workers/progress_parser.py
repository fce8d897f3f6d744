import re
import time
import logging
import subprocess
from pathlib import Path
from typing import List, Tuple
from passthrough_bench.api.errors import TrialExecutionFailed

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r'time=\s*(\d+):(\d+):(\d+(?:\.\d+)?)')
PROGRESS_FIELDS = {
    'frame': (re.compile(r'frame=\s*(\d+)'), int),
    'fps': (re.compile(r'fps=\s*(\d+(?:\.\d+)?)'), float),
    'speed': (re.compile(r'speed=\s*(\d+(?:\.\d+)?)x'), float),
}

def parse_ffmpeg_progress(line: str) -> dict:
    """
    Parse one ffmpeg stats line (frame=... fps=... time=... speed=...x).

    Returns dict with whichever of frame, fps, current_time (seconds) and
    speed (realtime multiplier) the line carries. Fields ffmpeg reports as
    N/A are left out.
    """
    result = {}

    time_match = TIME_PATTERN.search(line)
    if time_match:
        h, m, s = time_match.groups()
        result['current_time'] = int(h) * 3600 + int(m) * 60 + float(s)

    for key, (pattern, convert) in PROGRESS_FIELDS.items():
        match = pattern.search(line)
        if match:
            result[key] = convert(match.group(1))

    return result

def last_progress(log_path: Path) -> dict:
    """Final stats ffmpeg wrote into a trial log, {} if it never reported any."""
    log_path = Path(log_path)
    if not log_path.exists():
        return {}

    progress = {}
    with open(log_path, encoding='utf-8', errors='replace') as f:
        for line in f:
            progress.update(parse_ffmpeg_progress(line))
    return progress

def run_ffmpeg_logged(cmd: List[str], log_path: Path) -> Tuple[int, float]:
    """
    Run an FFmpeg command, writing combined stdout/stderr to log_path.

    The first line of the log is the command itself. Output that is not
    valid UTF-8 (raw metadata tags, file names) is written with replacement
    characters. There is no timeout: a hung ffmpeg hangs the caller.

    Args:
        cmd: FFmpeg command as list
        log_path: File receiving the combined output

    Returns:
        tuple: (return code, elapsed wall-clock seconds)

    Raises:
        TrialExecutionFailed: the process could not be started
    """
    log_path = Path(log_path)
    logger.info(f"Running: {' '.join(cmd)}")

    with open(log_path, 'w', encoding='utf-8') as log_file:
        log_file.write(' '.join(cmd) + '\n')
        log_file.flush()

        start = time.monotonic()
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding='utf-8',
                errors='replace',
                bufsize=1
            )
        except OSError as e:
            raise TrialExecutionFailed(f"Could not start {cmd[0]}: {e}") from e

        try:
            # ffmpeg rewrites its progress line with \r; text mode splits on it
            for line in process.stdout:
                log_file.write(line)
            returncode = process.wait()
        finally:
            if process.poll() is None:
                logger.warning(f"Killing {cmd[0]} (pid {process.pid})")
                process.kill()
                process.wait()
            process.stdout.close()
        elapsed = time.monotonic() - start

    progress = last_progress(log_path)
    if progress:
        logger.info(
            f"Last progress: time={progress.get('current_time', '?')}s "
            f"fps={progress.get('fps', '?')} speed={progress.get('speed', '?')}x"
        )

    if returncode == 0:
        logger.info(f"FFmpeg completed successfully in {elapsed:.2f}s")
    else:
        logger.error(f"FFmpeg failed with code {returncode} after {elapsed:.2f}s")
        logger.error(f"Full output written to: {log_path}")

    return returncode, elapsed
