from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Tuple
from enum import Enum
from pathlib import Path

# ============================================================================
# BACKEND MODELS
# ============================================================================

class Vendor(str, Enum):
    NVIDIA = "NVIDIA"
    AMD = "AMD"
    INTEL = "INTEL"
    NONE = "NONE"

class Backend(BaseModel):
    """Hardware acceleration backend selected for a run. Never mutated."""
    model_config = ConfigDict(frozen=True)

    vendor: Vendor
    encoder: str
    decoder: Optional[str] = None
    hwaccel: str
    hardware_confirmed: bool
    device: Optional[str] = None
    encoders: Tuple[str, ...] = ()

    def has_encoder(self, name: str) -> bool:
        return name in self.encoders

    @property
    def display_name(self) -> str:
        return f"{self.vendor.value} ({self.encoder}, hwaccel={self.hwaccel})"

# ============================================================================
# TRIAL MODELS
# ============================================================================

class TrialKind(str, Enum):
    HW_DECODE = "hw_decode"
    HW_ENCODE = "hw_encode"
    FULL_HW = "full_hw"
    SOFTWARE = "software"

class TrialSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str
    kind: TrialKind
    command: List[str]
    output_path: Path
    log_path: Path
    fallback: Optional["TrialSpec"] = None

class TrialResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str
    kind: TrialKind
    return_code: int
    elapsed: float = Field(ge=0)
    log_path: Path
    monitor_log_path: Optional[Path] = None

    # Realtime multiplier ffmpeg last reported (speed=...x), None if it never did
    speed: Optional[float] = None

    # Set when a QSV trial failed and the VAAPI fallback result replaced it
    fallback_used: bool = False
    primary_return_code: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.return_code == 0

    @property
    def status(self) -> str:
        return "PASS" if self.success else "FAIL"

# ============================================================================
# REPORT MODELS
# ============================================================================

class Report(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: Backend
    results: List[TrialResult]
    speedup: Optional[float] = None
    classification: Optional[str] = None
    passthrough_working: bool
    acceleration_confirmed: bool = False
    encoder_utilization_seen: bool = False

    def result_for(self, kind: TrialKind) -> TrialResult:
        for result in self.results:
            if result.kind == kind:
                return result
        raise KeyError(kind)

TrialSpec.model_rebuild()
