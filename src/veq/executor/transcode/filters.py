"""Video filter chain fragments.

Each backend assembles its ``-vf`` chain from these pieces. Anything that
depends on the source (fps limiting, downscaling, tone mapping) is skipped
when no ``InputInfo`` is available.
"""

from __future__ import annotations

from veq.introspector.ffprobe import InputInfo
from veq.profiles.models import Profile

# Stand-in for "no limit" in the scale expression
_UNBOUNDED = 2147483647

TONEMAP_FILTERS = (
    "zscale=t=linear:npl=100",
    "tonemap=hable:desat=0",
    "zscale=t=bt709:m=bt709:r=tv",
    "format=yuv420p",
)

# ffmpeg enum value -> name, shared by vpp_qsv and zscale options
MATRIX_NAMES = {
    1: "bt709",
    2: "bt470bg",
    5: "smpte170m",
    6: "smpte240m",
    9: "bt2020nc",
    10: "bt2020c",
}
PRIMARIES_NAMES = {
    1: "bt709",
    4: "bt470m",
    5: "bt470bg",
    6: "smpte170m",
    7: "smpte240m",
    9: "bt2020",
}
TRANSFER_NAMES = {
    1: "bt709",
    4: "bt470m",
    5: "bt470bg",
    6: "smpte170m",
    7: "smpte240m",
    8: "linear",
    13: "srgb",
    16: "smpte2084",
    18: "arib-std-b67",
}
RANGE_NAMES = {0: "tv", 1: "pc"}


def needs_fps_limit(profile: Profile, info: InputInfo | None) -> bool:
    return info is not None and profile.fps > 0 and info.fps > profile.fps


def needs_scale(profile: Profile, info: InputInfo | None) -> bool:
    """True when the source exceeds the profile's width or height cap."""
    if info is None:
        return False
    return (profile.scale_width > 0 and info.width > profile.scale_width) or (
        profile.scale_height > 0 and info.height > profile.scale_height
    )


def needs_tonemap(profile: Profile, info: InputInfo | None) -> bool:
    """HDR source going to an explicitly SDR (bt709) output."""
    return (
        info is not None
        and info.is_hdr
        and profile.colorspace == 1
        and profile.color_trc == 1
    )


def fps_filter(
    profile: Profile, info: InputInfo | None, *, keyed: bool = True
) -> list[str]:
    """``fps=fps=N`` (or ``fps=N`` when ``keyed`` is False) if limiting is needed."""
    if not needs_fps_limit(profile, info):
        return []
    return [f"fps=fps={profile.fps}" if keyed else f"fps={profile.fps}"]


def scale_filter(profile: Profile, info: InputInfo | None) -> list[str]:
    """Downscale-only scale filter that keeps the aspect ratio."""
    if not needs_scale(profile, info):
        return []
    max_w = profile.scale_width if profile.scale_width > 0 else _UNBOUNDED
    max_h = profile.scale_height if profile.scale_height > 0 else _UNBOUNDED
    return [
        f"scale='min({max_w},iw)':'min({max_h},ih)'"
        ":force_original_aspect_ratio=decrease"
    ]


def svt_scale_filter(profile: Profile, info: InputInfo | None) -> list[str]:
    """Scale filter form used by the SVT-AV1 pipeline (``-2`` keeps aspect)."""
    if not needs_scale(profile, info):
        return []
    w = f"min(iw\\,{profile.scale_width})" if profile.scale_width > 0 else "-2"
    h = f"min(ih\\,{profile.scale_height})" if profile.scale_height > 0 else "-2"
    return [f"scale={w}:{h}"]


def tonemap_filters(profile: Profile, info: InputInfo | None) -> list[str]:
    return list(TONEMAP_FILTERS) if needs_tonemap(profile, info) else []


def qsv_color_options(profile: Profile) -> list[str]:
    """``vpp_qsv`` output color options.

    QSV encoders ignore the ``-color_*`` flags. An unmappable value stops
    further options from being added; the ones before it are kept.
    """
    opts: list[str] = []
    for value, names, key in (
        (profile.colorspace, MATRIX_NAMES, "out_color_matrix"),
        (profile.color_primaries, PRIMARIES_NAMES, "out_color_primaries"),
        (profile.color_trc, TRANSFER_NAMES, "out_color_transfer"),
        (profile.color_range, RANGE_NAMES, "out_range"),
    ):
        if value < 0:
            continue
        name = names.get(value)
        if name is None:
            break
        opts.append(f"{key}={name}")
    return opts


def zscale_color_filter(profile: Profile) -> str | None:
    """zscale filter setting color metadata, for encoders without color flags.

    Returns None when no color value is set or any value cannot be mapped.
    """
    opts: list[str] = []
    for value, names, key in (
        (profile.colorspace, MATRIX_NAMES, "m"),
        (profile.color_primaries, PRIMARIES_NAMES, "p"),
        (profile.color_trc, TRANSFER_NAMES, "t"),
        (profile.color_range, RANGE_NAMES, "r"),
    ):
        if value < 0:
            continue
        name = names.get(value)
        if name is None:
            return None
        opts.append(f"{key}={name}")
    return f"zscale={':'.join(opts)}" if opts else None


def vpp_qsv_filter(
    denoise: int, detail: int, surface_format: str | None, profile: Profile
) -> str | None:
    """``vpp_qsv=...`` with denoise/detail, surface format and color options."""
    opts: list[str] = []
    if denoise > 0:
        opts.append(f"denoise={denoise}")
    if detail > 0:
        opts.append(f"detail={detail}")
    if surface_format:
        opts.append(f"format={surface_format}")
    opts.extend(qsv_color_options(profile))
    return f"vpp_qsv={':'.join(opts)}" if opts else None


def vaapi_postprocess(denoise: int, detail: int) -> list[str]:
    """VAAPI denoise/sharpen filters; they run on uploaded hardware frames."""
    filters: list[str] = []
    if denoise > 0:
        filters.append(f"denoise_vaapi=denoise={denoise}")
    if detail > 0:
        filters.append(f"sharpness_vaapi=sharpness={detail}")
    return filters
