"""Output path derivation."""

from __future__ import annotations

from pathlib import Path


def derive_output_path(
    input_path: Path,
    output_dir: Path | None,
    pattern: str,
    profile_suffix: str,
    container: str,
) -> Path:
    """Compute the output file for an input.

    ``pattern`` may use ``{basename}`` (input stem), ``{filename}`` (input
    file name), ``{profile}`` (profile suffix) and ``{ext}`` (container).
    The container extension is always appended. An empty pattern gives
    ``<stem>.<container>``.

    Args:
        input_path: Source video.
        output_dir: Target directory, or None for the input's directory.
        pattern: Filename template.
        profile_suffix: Suffix of the active profile.
        container: Output container extension without the dot.

    Returns:
        Output path.
    """
    directory = output_dir if output_dir is not None else input_path.parent
    container = container.lstrip(".")
    if not pattern.strip():
        return directory / f"{input_path.stem}.{container}"

    name = (
        pattern.replace("{basename}", input_path.stem)
        .replace("{filename}", input_path.name)
        .replace("{profile}", profile_suffix)
        .replace("{ext}", container)
    )
    return directory / f"{name}.{container}"
