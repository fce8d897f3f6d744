from typing import List, Dict, Optional
from pathlib import Path
from passthrough_bench.api.config import get_settings
from passthrough_bench.api.models import Backend, TrialKind, TrialSpec

SOFTWARE_ENCODER = "libx264"

# Per-hwaccel argument differences.
# "{device}" is replaced with the backend's render node.
#   decode:  input args for the hardware-decode-only trial
#   encode:  input args for the hardware-encode-only trial
#   full:    input args for the full hardware pipeline trial
#   filters: video filter args placed before the encoder
#   options: encoder options after -c:v <encoder> ("{bitrate}" is filled in)
ACCEL_ARGS: Dict[str, Dict[str, List[str]]] = {
    "cuda": {
        "decode": ["-hwaccel", "cuda", "-hwaccel_output_format", "cuda"],
        "encode": ["-hwaccel", "cuda", "-hwaccel_output_format", "cuda"],
        "full": ["-hwaccel", "cuda", "-hwaccel_output_format", "cuda"],
        "filters": [],
        "options": ["-preset", "fast", "-b:v", "{bitrate}"],
    },
    "auto": {
        "decode": ["-hwaccel", "auto"],
        "encode": [],
        "full": ["-hwaccel", "auto"],
        "filters": [],
        "options": ["-b:v", "{bitrate}"],
    },
    "vaapi": {
        "decode": ["-hwaccel", "vaapi"],
        "encode": ["-hwaccel", "vaapi", "-hwaccel_device", "{device}"],
        "full": ["-hwaccel", "vaapi", "-hwaccel_device", "{device}"],
        # frames must be nv12 before they can be uploaded to the VAAPI surface
        "filters": ["-vf", "format=nv12,hwupload"],
        "options": ["-b:v", "{bitrate}"],
    },
    "qsv": {
        "decode": ["-hwaccel", "qsv"],
        "encode": ["-hwaccel", "qsv", "-hwaccel_device", "{device}"],
        "full": ["-hwaccel", "qsv", "-hwaccel_device", "{device}"],
        "filters": [],
        "options": ["-b:v", "{bitrate}"],
    },
}

# name, label, output suffix and loglevel of the four fixed trials (run in this order)
TRIALS = [
    (TrialKind.HW_DECODE, "test1", "Hardware Decode", "hw_decode", "info"),
    (TrialKind.HW_ENCODE, "test2", "Hardware Encode", "hw_encode", "info"),
    (TrialKind.FULL_HW, "test3", "Full Hardware Pipeline", "full_hw", "info"),
    (TrialKind.SOFTWARE, "test4", "Software Baseline", "software", "error"),
]

_INPUT_KEYS = {
    TrialKind.HW_DECODE: "decode",
    TrialKind.HW_ENCODE: "encode",
    TrialKind.FULL_HW: "full",
}


def _fill(args: List[str], **values) -> List[str]:
    return [arg.format(**values) for arg in args]


def software_encoder_args(settings=None) -> List[str]:
    settings = settings or get_settings()
    return ['-c:v', SOFTWARE_ENCODER, '-preset', settings.sw_preset, '-crf', str(settings.sw_crf)]


def build_trial_command(
    hwaccel: str,
    encoder: str,
    kind: TrialKind,
    input_path: Path,
    output_path: Path,
    device: Optional[str] = None,
    loglevel: str = "info",
    settings=None
) -> List[str]:
    """
    Build the ffmpeg command for one trial.

    Args:
        hwaccel: Backend hwaccel token (cuda, auto, vaapi, qsv)
        encoder: Hardware encoder name (ignored for decode-only and software trials)
        kind: Which trial configuration to build
        input_path: Benchmark input video
        output_path: Trial output file
        device: Render node for -hwaccel_device
        loglevel: ffmpeg -loglevel value

    Returns:
        FFmpeg command as list of strings
    """
    settings = settings or get_settings()
    accel = ACCEL_ARGS[hwaccel]
    values = {"device": device or settings.render_device, "bitrate": settings.hw_bitrate}

    cmd = [settings.ffmpeg_path, '-hide_banner', '-loglevel', loglevel]

    if kind == TrialKind.SOFTWARE:
        cmd.extend(['-i', str(input_path)])
        cmd.extend(software_encoder_args(settings))
    elif kind == TrialKind.HW_DECODE:
        cmd.extend(_fill(accel["decode"], **values))
        cmd.extend(['-i', str(input_path)])
        cmd.extend(software_encoder_args(settings))
    else:
        cmd.extend(_fill(accel[_INPUT_KEYS[kind]], **values))
        cmd.extend(['-i', str(input_path)])
        cmd.extend(accel["filters"])
        cmd.extend(['-c:v', encoder])
        cmd.extend(_fill(accel["options"], **values))

    # Audio passthrough
    cmd.extend(['-c:a', 'copy'])
    cmd.extend(['-y', str(output_path)])
    return cmd


def build_trial_specs(backend: Backend, input_path: Path, work_dir: Path, settings=None) -> List[TrialSpec]:
    """
    Build the four trial specs for a backend, in execution order.

    Intel QSV encode and full-pipeline trials get a VAAPI fallback spec when
    h264_vaapi is listed by ffmpeg.
    """
    settings = settings or get_settings()
    work_dir = Path(work_dir)
    specs = []

    for kind, name, label, suffix, loglevel in TRIALS:
        output_path = work_dir / f"test_output_{suffix}.mp4"
        command = build_trial_command(
            backend.hwaccel, backend.encoder, kind, input_path, output_path,
            device=backend.device, loglevel=loglevel, settings=settings
        )

        fallback = None
        if kind in (TrialKind.HW_ENCODE, TrialKind.FULL_HW) and backend.hwaccel == "qsv" \
                and backend.has_encoder("h264_vaapi"):
            fallback = TrialSpec(
                name=f"{name}_vaapi_fallback",
                label=f"{label} (VAAPI fallback)",
                kind=kind,
                command=build_trial_command(
                    "vaapi", "h264_vaapi", kind, input_path, output_path,
                    device=backend.device, loglevel=loglevel, settings=settings
                ),
                output_path=output_path,
                log_path=work_dir / f"{name}_vaapi_fallback.log",
            )

        specs.append(TrialSpec(
            name=name,
            label=label,
            kind=kind,
            command=command,
            output_path=output_path,
            log_path=work_dir / f"{name}.log",
            fallback=fallback,
        ))

    return specs
