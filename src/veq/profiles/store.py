"""User profile storage.

User profiles are YAML files under ``<data_dir>/profiles/``. Files are
validated with pydantic before being turned into ``Profile`` dataclasses, so
typos and unknown keys are reported instead of silently ignored.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Annotated, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from veq.core.file_utils import atomic_write_text
from veq.profiles.builtin import get_builtin, is_builtin
from veq.profiles.models import Profile, ProfileError, ProfileNotFoundError

logger = logging.getLogger(__name__)

PROFILE_SUFFIX = ".yaml"
_SLUG_INVALID = re.compile(r"[^a-z0-9_-]+")


class Vp9Schema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    codec_type: Literal["vp9"] = "vp9"
    cpu_used: int = Field(2, ge=-8, le=8)
    cpu_used_pass1: int = Field(4, ge=-8, le=8)
    cpu_used_pass2: int = Field(1, ge=-8, le=8)
    quality_mode: Literal["good", "realtime", "best"] = "good"
    vp9_profile: int = Field(0, ge=0, le=3)
    row_mt: bool = True
    tile_columns: int = Field(2, ge=-1, le=6)
    tile_rows: int = Field(0, ge=-1, le=2)
    frame_parallel: bool = False
    auto_alt_ref: int = Field(1, ge=0, le=6)
    arnr_max_frames: int = Field(7, ge=0, le=15)
    arnr_strength: int = Field(3, ge=0, le=6)
    arnr_type: int = Field(-1, ge=-1, le=3)
    lag_in_frames: int = Field(25, ge=0, le=25)
    enable_tpl: bool = True
    sharpness: int = Field(-1, ge=-1, le=7)
    noise_sensitivity: int = Field(0, ge=0, le=6)
    static_thresh: int = Field(0, ge=0)
    max_intra_rate: int = Field(0, ge=0)
    aq_mode: int = Field(1, ge=-1, le=6)
    tune_content: Literal["default", "screen", "film"] = "default"
    undershoot_pct: int = Field(-1, ge=-1, le=100)
    overshoot_pct: int = Field(-1, ge=-1, le=1000)
    hw_global_quality: int = Field(70, ge=0)
    hw_loop_filter_level: int = Field(16, ge=0, le=63)
    hw_loop_filter_sharpness: int = Field(4, ge=0, le=15)
    hw_compression_level: int = Field(4, ge=0, le=7)
    hw_denoise: int = Field(0, ge=0, le=100)
    hw_detail: int = Field(0, ge=0, le=100)
    qsv_preset: int = Field(4, ge=1, le=7)
    qsv_look_ahead: bool = True
    qsv_look_ahead_depth: int = Field(40, ge=0, le=100)


class Av1Schema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    codec_type: Literal["av1"] = "av1"
    preset: int = Field(8, ge=0, le=13)
    tune: int = Field(0, ge=0, le=2)
    film_grain: int = Field(0, ge=0, le=50)
    film_grain_denoise: bool = False
    enable_overlays: bool = True
    scd: bool = True
    scm: int = Field(2, ge=0, le=2)
    enable_tf: bool = True
    svt_crf: int = Field(28, ge=0, le=63)
    hw_preset: str = "4"
    hw_cq: int = Field(30, ge=0, le=255)
    qsv_cq: int = Field(65, ge=0, le=255)
    nvenc_cq: int = Field(16, ge=0, le=63)
    vaapi_cq: int = Field(65, ge=0, le=255)
    hw_lookahead: int = Field(40, ge=0, le=100)
    hw_tile_cols: int = Field(0, ge=0)
    hw_tile_rows: int = Field(0, ge=0)
    hw_denoise: int = Field(0, ge=0, le=100)
    hw_detail: int = Field(0, ge=0, le=100)


class ProfileSchema(BaseModel):
    """On-disk profile format."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    suffix: str = Field(min_length=1)
    container: str = "webm"
    video_codec: str = "libvpx-vp9"
    fps: int = Field(0, ge=0)
    scale_width: int = -2
    scale_height: int = -2
    crf: int = Field(31, ge=0)
    video_target_bitrate: int = Field(0, ge=0)
    video_min_bitrate: int = Field(0, ge=0)
    video_max_bitrate: int = Field(0, ge=0)
    video_bufsize: int = Field(0, ge=0)
    two_pass: bool = False
    pix_fmt: str = "yuv420p"
    threads: int = Field(0, ge=0)
    max_workers: int = Field(1, ge=1)
    gop_length: int = Field(240, ge=1)
    keyint_min: int = Field(0, ge=0)
    fixed_gop: bool = False
    colorspace: int = -1
    color_primaries: int = -1
    color_trc: int = -1
    color_range: int = -1
    use_hardware_encoding: bool = False
    hw_rc_mode: int = Field(4, ge=1, le=4)
    hw_b_frames: int = Field(0, ge=0, le=4)
    audio_primary_codec: str = "libopus"
    audio_primary_bitrate: int = Field(128, ge=0)
    audio_primary_downmix: bool = False
    audio_add_ac3: bool = False
    audio_ac3_bitrate: int = Field(448, ge=0)
    audio_add_stereo: bool = False
    audio_stereo_codec: str = "aac"
    audio_stereo_bitrate: int = Field(128, ge=0)
    vmaf_enabled: bool = False
    vmaf_target: float = Field(93.0, ge=0, le=100)
    vmaf_step: int = Field(2, ge=1)
    vmaf_max_attempts: int = Field(3, ge=1)
    vmaf_window_duration_sec: int = Field(10, ge=1)
    vmaf_analysis_budget_sec: int = Field(60, ge=1)
    vmaf_n_subsample: int = Field(30, ge=1)
    additional_args: str = ""
    codec: Annotated[Vp9Schema | Av1Schema, Field(discriminator="codec_type")] = (
        Field(default_factory=Vp9Schema)
    )

    @field_validator("container")
    @classmethod
    def _lowercase_container(cls, v: str) -> str:
        v = v.strip().lower().lstrip(".")
        if not v.isalnum():
            raise ValueError(f"container must be a file extension, got {v!r}")
        return v


def profile_slug(name: str) -> str:
    """File stem for a profile name: ``"1080p Shrinker"`` -> ``1080p_shrinker``."""
    slug = _SLUG_INVALID.sub("", name.strip().lower().replace(" ", "_"))
    if not slug:
        raise ProfileError(f"Profile name has no usable characters: {name!r}")
    return slug


def _profile_path(profiles_dir: Path, name: str) -> Path:
    return profiles_dir / f"{profile_slug(name)}{PROFILE_SUFFIX}"


def parse_profile_data(data: object, source: str = "<data>") -> Profile:
    """Validate raw YAML/JSON data and build a Profile.

    Raises:
        ProfileError: If the data does not match the profile schema.
    """
    if not isinstance(data, dict):
        raise ProfileError(f"Profile {source} must be a mapping")
    try:
        model = ProfileSchema.model_validate(data)
    except ValidationError as e:
        raise ProfileError(f"Invalid profile {source}:\n{e}") from e
    return Profile.from_dict(model.model_dump())


def save_profile(profile: Profile, profiles_dir: Path) -> Path:
    """Write a profile as YAML, replacing any previous file of that name.

    Returns:
        The written file.

    Raises:
        ProfileError: If the profile fails validation or cannot be written.
    """
    data = profile.to_dict()
    parse_profile_data(data, profile.name)
    path = _profile_path(profiles_dir, profile.name)
    try:
        atomic_write_text(path, yaml.safe_dump(data, sort_keys=False))
    except OSError as e:
        raise ProfileError(f"Cannot save profile {profile.name!r}: {e}") from e
    logger.info("Saved profile %r to %s", profile.name, path)
    return path


def load_profile_file(path: Path) -> Profile:
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ProfileNotFoundError(f"Profile file not found: {path}") from e
    except (OSError, yaml.YAMLError) as e:
        raise ProfileError(f"Cannot read profile {path}: {e}") from e
    return parse_profile_data(data, str(path))


def load_profile(name: str, profiles_dir: Path) -> Profile:
    """Load a user profile by name.

    Raises:
        ProfileNotFoundError: If no file exists for the name.
        ProfileError: If the file is invalid.
    """
    path = _profile_path(profiles_dir, name)
    if not path.exists():
        raise ProfileNotFoundError(f"Profile not found: {name}")
    return load_profile_file(path)


def list_profiles(profiles_dir: Path) -> list[str]:
    """Stems of the saved user profiles, sorted."""
    if not profiles_dir.is_dir():
        return []
    return sorted(
        p.stem
        for p in profiles_dir.glob(f"*{PROFILE_SUFFIX}")
        if p.is_file() and not p.name.startswith(".")
    )


def delete_profile(name: str, profiles_dir: Path) -> None:
    """Remove a saved user profile.

    Raises:
        ProfileNotFoundError: If no file exists for the name.
    """
    path = _profile_path(profiles_dir, name)
    try:
        path.unlink()
    except FileNotFoundError as e:
        raise ProfileNotFoundError(f"Profile not found: {name}") from e
    logger.info("Deleted profile %r", name)


def resolve_profile(name: str, profiles_dir: Path | None) -> Profile:
    """Find a profile by name: user profiles first, then built-ins.

    Raises:
        ProfileNotFoundError: If neither a user nor a built-in profile matches.
        ProfileError: If a matching user profile is invalid.
    """
    if profiles_dir is not None:
        try:
            return load_profile(name, profiles_dir)
        except ProfileNotFoundError:
            pass
    if is_builtin(name):
        return get_builtin(name)
    raise ProfileNotFoundError(f"Profile not found: {name}")
