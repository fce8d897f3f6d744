import re
import subprocess
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Tuple
from passthrough_bench.api.config import get_settings
from passthrough_bench.api.errors import InvalidTestParameters

logger = logging.getLogger(__name__)

RESOLUTION_PATTERN = re.compile(r'^(\d+)x(\d+)$')

def parse_resolution(resolution: str) -> Tuple[int, int]:
    """
    Parse a WIDTHxHEIGHT string.

    Raises:
        InvalidTestParameters: malformed or zero-sized resolution
    """
    match = RESOLUTION_PATTERN.match(resolution.strip())
    if not match:
        raise InvalidTestParameters(f"Invalid resolution '{resolution}', expected WIDTHxHEIGHT (e.g. 1920x1080)")
    width, height = int(match.group(1)), int(match.group(2))
    if width == 0 or height == 0:
        raise InvalidTestParameters(f"Invalid resolution '{resolution}'")
    return width, height

def human_size(path: Path) -> str:
    """File size in du -h style (e.g. 512K, 1.4G)."""
    try:
        size = float(Path(path).stat().st_size)
    except OSError:
        return "?"
    for unit in ("B", "K", "M", "G"):
        if size < 1024 or unit == "G":
            break
        size /= 1024
    if unit == "B" or size >= 10:
        return f"{size:.0f}{unit}"
    return f"{size:.1f}{unit}"

def get_video_info(video_path: str, settings=None) -> Optional[Dict]:
    """
    Get video duration and resolution in a single ffprobe call.

    Args:
        video_path: Path to video file

    Returns:
        Dict with video info or None if error:
        {
            "duration": 30.0,         # seconds (float)
            "width": 1920,            # pixels (int)
            "height": 1080,           # pixels (int)
            "is_4k": False            # bool
        }
    """
    settings = settings or get_settings()
    cmd = [
        settings.ffprobe_path,
        '-v', 'error',
        '-select_streams', 'v:0',  # First video stream
        '-show_entries', 'stream=width,height:format=duration',
        '-of', 'json',
        str(video_path)
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"ffprobe could not run for {video_path}: {e}")
        return None

    if result.returncode != 0:
        logger.warning(f"ffprobe failed for {video_path}: {result.stderr.strip()}")
        return None

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        logger.warning(f"JSON decode error for {video_path}: {e}")
        return None

    duration = None
    if 'format' in data and 'duration' in data['format']:
        duration = float(data['format']['duration'])

    width = 0
    height = 0
    if data.get('streams'):
        stream = data['streams'][0]
        width = stream.get('width', 0)
        height = stream.get('height', 0)

    if duration is None or width == 0 or height == 0:
        logger.warning(f"Incomplete video info for {video_path}: duration={duration}, {width}x{height}")
        return None

    return {
        "duration": duration,
        "width": width,
        "height": height,
        "is_4k": width >= 3840 and height >= 2160
    }
