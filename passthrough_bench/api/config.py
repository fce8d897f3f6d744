from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from functools import lru_cache
from pathlib import Path

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="GPU_TEST_",
        case_sensitive=False
    )

    # Working directory (inputs, outputs, trial logs)
    work_dir: Path = Path.home() / "gpu_test"

    # External tools
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    nvidia_smi_path: str = "nvidia-smi"
    vainfo_path: str = "vainfo"

    # Device discovery
    drm_root: Path = Path("/sys/class/drm")
    dri_dir: Path = Path("/dev/dri")
    render_device: str = "/dev/dri/renderD128"

    # Encoding
    hw_bitrate: str = "5M"
    sw_preset: str = "fast"
    sw_crf: int = 23

    # Benchmark defaults
    default_duration: int = 30
    default_resolution: str = "1920x1080"

    # Monitor sidecar
    monitor_stop_timeout: float = 5.0

    # Downloads
    download_timeout: int = 30
    download_chunk_size: int = 1024 * 1024

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    @field_validator('work_dir', mode='before')
    @classmethod
    def expand_work_dir(cls, v):
        if isinstance(v, str):
            v = Path(v)
        return v.expanduser()

    def resolved_log_dir(self) -> Path:
        """Log directory, relative to the work dir unless absolute."""
        log_dir = Path(self.log_dir)
        if log_dir.is_absolute():
            return log_dir
        return self.work_dir / log_dir

@lru_cache()
def get_settings():
    return Settings()
