"""Built-in encode profiles."""

from __future__ import annotations

from collections.abc import Callable

from veq.profiles.codecs import Av1Config, Vp9Config
from veq.profiles.models import Profile, ProfileNotFoundError

DEFAULT_PROFILE = "vp9-good"


def _vp9_good() -> Profile:
    return Profile(name="vp9-good", suffix="vp9good", crf=31)


def _vp9_best() -> Profile:
    return Profile(
        name="vp9-best",
        suffix="vp9best",
        crf=24,
        two_pass=True,
        codec=Vp9Config(cpu_used=0, cpu_used_pass1=4, cpu_used_pass2=0),
    )


def _vp9_fast_preview() -> Profile:
    return Profile(
        name="vp9-fast-preview",
        suffix="vp9fast",
        crf=40,
        audio_primary_bitrate=96,
        codec=Vp9Config(
            cpu_used=5, cpu_used_pass1=5, cpu_used_pass2=5, enable_tpl=False
        ),
    )


def _shrinker_1080p() -> Profile:
    # Aggressive size reduction: 30 fps, 1080p cap, low-bitrate audio
    return Profile(
        name="1080p Shrinker",
        suffix="1080p_shrinker",
        fps=30,
        scale_width=1920,
        scale_height=1080,
        crf=37,
        audio_primary_bitrate=64,
        codec=Vp9Config(cpu_used=2, tile_columns=2),
    )


def _efficient_4k() -> Profile:
    # 2^3 tile columns keeps 3840px encodes parallel
    return Profile(
        name="Efficient 4K",
        suffix="efficient_4k",
        scale_width=3840,
        scale_height=2160,
        crf=26,
        codec=Vp9Config(cpu_used=4, tile_columns=3),
    )


def _daily_driver() -> Profile:
    return Profile(
        name="Daily Driver",
        suffix="daily",
        crf=30,
        audio_primary_bitrate=96,
        codec=Vp9Config(cpu_used=4),
    )


def _av1_svt() -> Profile:
    return Profile(
        name="av1-svt",
        suffix="av1svt",
        container="mkv",
        video_codec="libsvtav1",
        crf=28,
        pix_fmt="yuv420p10le",
        codec=Av1Config(preset=8, svt_crf=28),
    )


_BUILTINS: dict[str, Callable[[], Profile]] = {
    "vp9-good": _vp9_good,
    "vp9-best": _vp9_best,
    "vp9-fast-preview": _vp9_fast_preview,
    "1080p Shrinker": _shrinker_1080p,
    "Efficient 4K": _efficient_4k,
    "Daily Driver": _daily_driver,
    "av1-svt": _av1_svt,
}


def builtin_names() -> list[str]:
    return list(_BUILTINS)


def is_builtin(name: str) -> bool:
    return name in _BUILTINS


def get_builtin(name: str) -> Profile:
    """Fresh copy of a built-in profile.

    Raises:
        ProfileNotFoundError: If no built-in has this name.
    """
    factory = _BUILTINS.get(name)
    if factory is None:
        raise ProfileNotFoundError(f"Unknown built-in profile: {name}")
    return factory()
