"""Hardware encoder availability detection.

Probes are cheap external commands (``ffmpeg -encoders``, ``nvidia-smi -L``,
``lspci``) plus a look at ``/dev/dri``. Any probe that fails, times out or
cannot be started counts as "unavailable"; detection never raises. Results
are computed once per process (per ffmpeg executable where it matters) and
cached until ``clear_capability_cache``.
"""

from __future__ import annotations

import logging
import os
import platform
import subprocess  # nosec B404 - used only for TimeoutExpired
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from veq.core.subprocess_utils import run_command

logger = logging.getLogger(__name__)

# Timeout for every capability probe (seconds)
DETECTION_TIMEOUT = 10

DRI_DIR = Path("/dev/dri")
DEFAULT_RENDER_DEVICE = "/dev/dri/renderD128"
DRIVER_SUFFIX = "_drv_video.so"

_MACHINE_MULTIARCH = {
    "x86_64": "x86_64-linux-gnu",
    "amd64": "x86_64-linux-gnu",
    "aarch64": "aarch64-linux-gnu",
    "arm64": "aarch64-linux-gnu",
}


@dataclass(frozen=True)
class CapabilityMatrix:
    """Which encoder backends this host can actually use."""

    vp9_qsv: bool = False
    vp9_vaapi: bool = False
    av1_qsv: bool = False
    av1_nvenc: bool = False
    av1_vaapi: bool = False
    av1_svt: bool = False

    def is_available(self, encoder_id: str) -> bool:
        """Return availability for an encoder id such as ``"av1_qsv"``.

        ``libvpx-vp9`` is assumed present in any usable ffmpeg build.
        """
        if encoder_id == "libvpx-vp9":
            return True
        if encoder_id == "libsvtav1":
            return self.av1_svt
        return bool(getattr(self, encoder_id, False))

    @property
    def any_hardware(self) -> bool:
        return any(
            (self.vp9_qsv, self.vp9_vaapi, self.av1_qsv, self.av1_nvenc, self.av1_vaapi)
        )

    def as_dict(self) -> dict[str, bool]:
        return {
            "vp9_qsv": self.vp9_qsv,
            "vp9_vaapi": self.vp9_vaapi,
            "av1_qsv": self.av1_qsv,
            "av1_nvenc": self.av1_nvenc,
            "av1_vaapi": self.av1_vaapi,
            "av1_svt": self.av1_svt,
        }


@dataclass(frozen=True)
class VaapiDriver:
    name: str
    path: str  # directory holding the driver
    full_path: str


@dataclass(frozen=True)
class VaapiConfig:
    """Driver and render node to use for VAAPI encodes."""

    driver: VaapiDriver
    render_device: str

    def env(self) -> dict[str, str]:
        """Environment variables that pin libva to this driver."""
        return {
            "LIBVA_DRIVERS_PATH": self.driver.path,
            "LIBVA_DRIVER_NAME": self.driver.name,
        }


def _probe(args: list[str]) -> tuple[str, int] | None:
    """Run a probe command, returning (stdout, rc) or None on any failure."""
    try:
        stdout, _stderr, rc = run_command(args, timeout=DETECTION_TIMEOUT)
    except subprocess.TimeoutExpired:
        logger.debug("Probe timed out: %s", args[0])
        return None
    except OSError as e:
        logger.debug("Probe could not run %s: %s", args[0], e)
        return None
    return stdout, rc


def list_ffmpeg_encoders(ffmpeg: str = "ffmpeg") -> frozenset[str]:
    """Names of the encoders compiled into ffmpeg.

    Parses ``ffmpeg -hide_banner -encoders`` where each encoder line looks
    like `` V....D libvpx-vp9           libvpx VP9``.
    """
    result = _probe([ffmpeg, "-hide_banner", "-encoders"])
    if result is None or result[1] != 0:
        return frozenset()

    names: set[str] = set()
    past_header = False
    for line in result[0].splitlines():
        stripped = line.strip()
        if stripped.startswith("------"):
            past_header = True
            continue
        if not past_header or not stripped:
            continue
        parts = stripped.split()
        if len(parts) >= 2:
            names.add(parts[1])
    return frozenset(names)


def detect_render_device(dri_dir: Path = DRI_DIR) -> str | None:
    """First ``renderD*`` node under ``/dev/dri`` in sorted order."""
    try:
        devices = sorted(
            entry.path
            for entry in os.scandir(dri_dir)
            if entry.name.startswith("renderD")
        )
    except OSError:
        return None
    return devices[0] if devices else None


def nvidia_gpu_present() -> bool:
    """True if ``nvidia-smi -L`` lists at least one GPU."""
    result = _probe(["nvidia-smi", "-L"])
    if result is None:
        return False
    stdout, rc = result
    return rc == 0 and "GPU" in stdout


def probe_capabilities(ffmpeg: str = "ffmpeg") -> CapabilityMatrix:
    """Run all capability probes without consulting the cache."""
    encoders = list_ffmpeg_encoders(ffmpeg)
    has_render = detect_render_device() is not None
    has_nvidia = "av1_nvenc" in encoders and nvidia_gpu_present()

    matrix = CapabilityMatrix(
        vp9_qsv=has_render and "vp9_qsv" in encoders,
        vp9_vaapi=has_render and "vp9_vaapi" in encoders,
        av1_qsv=has_render and "av1_qsv" in encoders,
        av1_nvenc=has_nvidia,
        av1_vaapi=has_render and "av1_vaapi" in encoders,
        av1_svt="libsvtav1" in encoders,
    )
    logger.info("Detected encoder capabilities: %s", matrix.as_dict())
    return matrix


_cache_lock = threading.Lock()
_capabilities: dict[str, CapabilityMatrix] = {}
_vaapi_config: VaapiConfig | None = None
_vaapi_detected = False
_vmaf_available: dict[str, bool] = {}


def detect_capabilities(
    refresh: bool = False, ffmpeg: str = "ffmpeg"
) -> CapabilityMatrix:
    """Return the cached capability matrix, probing on first use.

    Results are cached per ffmpeg executable, since different builds ship
    different encoders.

    Args:
        refresh: Re-run the probes even if a cached result exists.
        ffmpeg: ffmpeg executable to query.
    """
    with _cache_lock:
        matrix = _capabilities.get(ffmpeg)
        if matrix is None or refresh:
            matrix = _capabilities[ffmpeg] = probe_capabilities(ffmpeg)
        return matrix


def vmaf_filter_available(ffmpeg: str = "ffmpeg") -> bool:
    """True if this ffmpeg build ships the ``libvmaf`` filter."""
    with _cache_lock:
        if ffmpeg not in _vmaf_available:
            result = _probe([ffmpeg, "-hide_banner", "-filters"])
            _vmaf_available[ffmpeg] = (
                result is not None and result[1] == 0 and "libvmaf" in result[0]
            )
        return _vmaf_available[ffmpeg]


def detect_multiarch_tuple() -> str | None:
    """Debian-style multiarch tuple such as ``x86_64-linux-gnu``."""
    result = _probe(["dpkg-architecture", "-qDEB_HOST_MULTIARCH"])
    if result is not None and result[1] == 0 and result[0].strip():
        return result[0].strip()
    return _MACHINE_MULTIARCH.get(platform.machine().lower())


def vaapi_search_paths(environ: Mapping[str, str] | None = None) -> list[Path]:
    """Directories to search for ``*_drv_video.so`` in priority order."""
    env = os.environ if environ is None else environ
    paths: list[Path] = []
    if env.get("LIBVA_DRIVERS_PATH"):
        paths.append(Path(env["LIBVA_DRIVERS_PATH"]))
    multiarch = detect_multiarch_tuple()
    if multiarch:
        paths.append(Path("/usr/lib") / multiarch / "dri")
        paths.append(Path("/usr/local/lib") / multiarch / "dri")
    paths.extend(
        Path(p)
        for p in (
            "/usr/lib/dri",
            "/usr/local/lib/dri",
            "/usr/lib64/dri",
            "/usr/local/lib64/dri",
        )
    )
    return paths


def find_drivers_in_path(directory: Path) -> list[tuple[str, Path]]:
    """``(driver_name, file)`` pairs for every VAAPI driver in a directory."""
    try:
        entries = sorted(directory.iterdir())
    except OSError:
        return []
    return [
        (entry.name.removesuffix(DRIVER_SUFFIX), entry)
        for entry in entries
        if entry.name.endswith(DRIVER_SUFFIX)
    ]


def detect_gpu_info() -> str | None:
    """First display controller line from ``lspci``."""
    result = _probe(["lspci"])
    if result is None:
        return None
    for line in result[0].splitlines():
        lower = line.lower()
        if "vga" in lower or "display" in lower or "3d" in lower:
            return line
    return None


def preferred_drivers(gpu_info: str | None) -> list[str]:
    """VAAPI driver names to try first for the given GPU description."""
    lower = (gpu_info or "").lower()
    if "intel" in lower:
        return ["iHD", "i965"]
    if "amd" in lower or "radeon" in lower:
        return ["radeonsi", "r600"]
    if "nvidia" in lower:
        return ["nouveau"]
    return ["iHD", "i965", "radeonsi", "nouveau"]


def _detect_vaapi_config(environ: Mapping[str, str]) -> VaapiConfig | None:
    render = detect_render_device() or DEFAULT_RENDER_DEVICE

    # Full user override
    env_path = environ.get("LIBVA_DRIVERS_PATH")
    env_name = environ.get("LIBVA_DRIVER_NAME")
    if env_path and env_name:
        full_path = Path(env_path) / f"{env_name}{DRIVER_SUFFIX}"
        if full_path.exists():
            return VaapiConfig(
                VaapiDriver(name=env_name, path=env_path, full_path=str(full_path)),
                render,
            )

    found: list[tuple[str, Path, Path]] = []
    for directory in vaapi_search_paths(environ):
        for name, full_path in find_drivers_in_path(directory):
            found.append((name, directory, full_path))
    if not found:
        logger.debug("No VAAPI drivers found")
        return None

    preferred = preferred_drivers(detect_gpu_info())
    selected = next(
        (entry for pref in preferred for entry in found if entry[0] == pref),
        found[0],
    )
    name, directory, full_path = selected
    logger.debug("Selected VAAPI driver %s in %s", name, directory)
    return VaapiConfig(
        VaapiDriver(name=name, path=str(directory), full_path=str(full_path)),
        render,
    )


def detect_vaapi_config(refresh: bool = False) -> VaapiConfig | None:
    """Cached VAAPI driver and render device, or None when no driver exists."""
    global _vaapi_config, _vaapi_detected
    with _cache_lock:
        if not _vaapi_detected or refresh:
            _vaapi_config = _detect_vaapi_config(os.environ)
            _vaapi_detected = True
        return _vaapi_config


def qsv_driver_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """libva variables forcing the Intel iHD driver for QSV.

    Without them libva may pick another vendor's driver (e.g. nouveau) on
    multi-GPU hosts. Empty when no iHD driver is installed.
    """
    env = os.environ if environ is None else environ
    for directory in vaapi_search_paths(env):
        if (directory / f"iHD{DRIVER_SUFFIX}").exists():
            return {"LIBVA_DRIVERS_PATH": str(directory), "LIBVA_DRIVER_NAME": "iHD"}
    return {}


def clear_capability_cache() -> None:
    """Drop every cached probe result."""
    global _vaapi_config, _vaapi_detected
    with _cache_lock:
        _capabilities.clear()
        _vaapi_config = None
        _vaapi_detected = False
        _vmaf_available.clear()
