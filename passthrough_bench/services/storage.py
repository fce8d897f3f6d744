import logging
import subprocess
import requests
from pathlib import Path
from typing import List, Dict, Optional
from passthrough_bench.api.config import get_settings
from passthrough_bench.api.errors import AssetGenerationFailed, DownloadFailed, InvalidTestParameters
from passthrough_bench.utils.video_utils import human_size, parse_resolution

logger = logging.getLogger(__name__)

DEFAULT_INPUT = "test_input.mp4"

# Downloaded inputs, best first. The first one present is used.
HIGH_BITRATE_VIDEOS = [
    "jellyfish-80-mbps-hd-h264.mkv",
    "jellyfish-50-mbps-hd-h264.mkv",
    "jellyfish-120-mbps-4k-uhd-h264.mkv",
    "jellyfish-140-mbps-4k-uhd-h264.mkv",
    "bbb-4k-60fps.mp4",
    "bbb-1080p-60fps.mp4",
]

JELLYFISH_BASE_URL = "https://repo.jellyfin.org/archive/jellyfish/media"
BBB_BASE_URL = "https://test-videos.co.uk/bigbuckbunny/mp4-h264"

SAMPLE_VIDEOS: Dict[str, str] = {
    # HD high bitrate (1080p)
    "jellyfish-50-mbps-hd-h264.mkv": f"{JELLYFISH_BASE_URL}/jellyfish-50-mbps-hd-h264.mkv",
    "jellyfish-80-mbps-hd-h264.mkv": f"{JELLYFISH_BASE_URL}/jellyfish-80-mbps-hd-h264.mkv",
    "jellyfish-50-mbps-hd-hevc.mkv": f"{JELLYFISH_BASE_URL}/jellyfish-50-mbps-hd-hevc.mkv",
    "jellyfish-80-mbps-hd-hevc.mkv": f"{JELLYFISH_BASE_URL}/jellyfish-80-mbps-hd-hevc.mkv",
    # 4K ultra high bitrate
    "jellyfish-120-mbps-4k-uhd-h264.mkv": f"{JELLYFISH_BASE_URL}/jellyfish-120-mbps-4k-uhd-h264.mkv",
    "jellyfish-140-mbps-4k-uhd-h264.mkv": f"{JELLYFISH_BASE_URL}/jellyfish-140-mbps-4k-uhd-h264.mkv",
    "jellyfish-120-mbps-4k-uhd-hevc-10bit.mkv": f"{JELLYFISH_BASE_URL}/jellyfish-120-mbps-4k-uhd-hevc-10bit.mkv",
    "jellyfish-140-mbps-4k-uhd-hevc-10bit.mkv": f"{JELLYFISH_BASE_URL}/jellyfish-140-mbps-4k-uhd-hevc-10bit.mkv",
}

ALT_VIDEOS: Dict[str, str] = {
    "bbb-4k-60fps.mp4": f"{BBB_BASE_URL}/bbb_sunflower_2160p_60fps_normal.mp4",
    "bbb-1080p-60fps.mp4": f"{BBB_BASE_URL}/bbb_sunflower_1080p_60fps_normal.mp4",
}

DEFAULT_DOWNLOAD_CHOICE = 2

# choice -> (description, files)
DOWNLOAD_CHOICES = {
    1: ("Light test (50MB) - 1080p 50Mbps H.264", ["jellyfish-50-mbps-hd-h264.mkv"]),
    2: ("Medium test (200MB) - 1080p 80Mbps H.264", ["jellyfish-80-mbps-hd-h264.mkv"]),
    3: ("Heavy test (500MB) - 4K 120Mbps H.264", ["jellyfish-120-mbps-4k-uhd-h264.mkv"]),
    4: ("Extreme test (800MB) - 4K 140Mbps H.264", ["jellyfish-140-mbps-4k-uhd-h264.mkv"]),
    5: ("HEVC test (200MB) - 1080p 80Mbps HEVC", ["jellyfish-80-mbps-hd-hevc.mkv"]),
    6: ("All tests (download everything - ~2GB+)", list(SAMPLE_VIDEOS)),
    7: ("Quick download - Big Buck Bunny 4K (smaller files)", list(ALT_VIDEOS)),
}


def ensure_work_dir(work_dir: Path) -> Path:
    work_dir = Path(work_dir)
    work_dir.mkdir(parents=True, exist_ok=True)
    return work_dir


# ============================================================================
# ASSET RESOLVER
# ============================================================================

def find_high_bitrate_video(work_dir: Path) -> Optional[Path]:
    for name in HIGH_BITRATE_VIDEOS:
        candidate = Path(work_dir) / name
        if candidate.is_file():
            return candidate
    return None


def generate_test_video(output_path: Path, duration: int, resolution: str, settings=None) -> Path:
    """
    Synthesize a test clip (testsrc2 pattern + 1 kHz tone).

    Raises:
        AssetGenerationFailed: ffmpeg exited nonzero or could not run
    """
    settings = settings or get_settings()
    cmd = [
        settings.ffmpeg_path, '-hide_banner', '-loglevel', 'error',
        '-f', 'lavfi', '-i', f"testsrc2=duration={duration}:size={resolution}:rate=30",
        '-f', 'lavfi', '-i', f"sine=frequency=1000:duration={duration}",
        '-c:v', 'libx264', '-preset', 'fast', '-crf', '23',
        '-c:a', 'aac', '-b:a', '128k',
        str(output_path)
    ]
    logger.info(f"Generating test video: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise AssetGenerationFailed(f"Failed to generate test video: {e}") from e

    if result.returncode != 0:
        logger.error(f"Test video generation failed (code {result.returncode}): {result.stderr}")
        raise AssetGenerationFailed(
            f"Failed to generate test video (ffmpeg exit code {result.returncode})"
        )
    return Path(output_path)


def validate_test_parameters(duration: int, resolution: str):
    """
    Raises:
        InvalidTestParameters: non-positive duration or malformed resolution
    """
    if duration <= 0:
        raise InvalidTestParameters(f"Duration must be positive, got {duration}")
    parse_resolution(resolution)


def resolve_test_input(duration: int, resolution: str, work_dir: Path, settings=None) -> Path:
    """
    Pick the benchmark input video.

    Order: first downloaded high-bitrate video, then an existing
    test_input.mp4, then a freshly generated test_input.mp4.
    """
    validate_test_parameters(duration, resolution)

    work_dir = Path(work_dir)
    print("🔍 Looking for high-bitrate test videos...")
    found = find_high_bitrate_video(work_dir)
    if found is not None:
        print(f"✅ Found high-bitrate test video: {found.name} ({human_size(found)})")
        logger.info(f"Using high-bitrate input: {found}")
        return found

    default_input = work_dir / DEFAULT_INPUT
    if default_input.exists():
        print(f"✅ Using existing test video: {human_size(default_input)}")
        logger.info(f"Using existing input: {default_input}")
        return default_input

    print(f"📹 No high-bitrate test videos found. Generating test video ({duration}s, {resolution})...")
    print("💡 Tip: Run 'gpu-passthrough-test download' first to get better test files!")
    generate_test_video(default_input, duration, resolution, settings)
    print(f"✅ Test video generated: {human_size(default_input)}")
    print("⚠️  Generated video may not stress test GPU as much as high-bitrate videos")
    return default_input


# ============================================================================
# SAMPLE DOWNLOADS
# ============================================================================

def sample_url(filename: str) -> str:
    if filename in SAMPLE_VIDEOS:
        return SAMPLE_VIDEOS[filename]
    return ALT_VIDEOS[filename]


def files_for_choice(choice: int) -> List[str]:
    if choice not in DOWNLOAD_CHOICES:
        logger.warning(f"Invalid download choice {choice}, using {DEFAULT_DOWNLOAD_CHOICE}")
        choice = DEFAULT_DOWNLOAD_CHOICE
    return DOWNLOAD_CHOICES[choice][1]


def download_file(url: str, dest: Path, settings=None) -> Path:
    """
    Stream url to dest through dest.tmp, resuming a partial .tmp if present.

    Raises:
        DownloadFailed: request or write failed (the partial file is removed)
    """
    settings = settings or get_settings()
    dest = Path(dest)
    tmp_path = dest.with_name(dest.name + ".tmp")

    headers = {}
    offset = tmp_path.stat().st_size if tmp_path.exists() else 0
    if offset:
        headers['Range'] = f"bytes={offset}-"
        logger.info(f"Resuming {dest.name} at byte {offset}")

    try:
        with requests.get(url, headers=headers, stream=True, timeout=settings.download_timeout) as response:
            # 416 on a resume: the partial file already holds every byte
            if offset and response.status_code == 416:
                logger.info(f"{dest.name} already complete at {offset} bytes")
            else:
                response.raise_for_status()
                # 206 means the server honoured the range, otherwise start over
                mode = 'ab' if response.status_code == 206 else 'wb'
                with open(tmp_path, mode) as f:
                    for chunk in response.iter_content(chunk_size=settings.download_chunk_size):
                        if chunk:
                            f.write(chunk)
    except (requests.RequestException, OSError) as e:
        logger.error(f"Download failed for {url}: {e}")
        tmp_path.unlink(missing_ok=True)
        raise DownloadFailed(f"Failed to download {dest.name}: {e}") from e

    tmp_path.replace(dest)
    logger.info(f"Downloaded {dest} ({human_size(dest)})")
    return dest


def download_samples(choice: int, work_dir: Path, settings=None) -> List[Path]:
    """
    Download the sample videos for a menu choice (1-7) into work_dir.
    Files that already exist are skipped.

    Returns:
        Paths of all requested files

    Raises:
        DownloadFailed: after attempting every file, if any of them failed
    """
    work_dir = ensure_work_dir(work_dir)
    paths = []
    failures = []

    for filename in files_for_choice(choice):
        dest = work_dir / filename
        if dest.exists():
            print(f"✅ Already exists: {filename} ({human_size(dest)})")
            paths.append(dest)
            continue

        url = sample_url(filename)
        print(f"📥 Downloading {filename}...")
        print(f"   URL: {url}")
        try:
            download_file(url, dest, settings)
        except DownloadFailed as e:
            print(f"❌ {e}")
            failures.append(filename)
            continue
        print(f"✅ Downloaded: {filename} ({human_size(dest)})")
        paths.append(dest)

    if failures:
        raise DownloadFailed(f"Failed to download: {', '.join(failures)}")
    return paths
