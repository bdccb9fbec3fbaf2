"""Encoding profiles: models, built-ins, YAML storage and output naming.

Validation lives in ``veq.profiles.validation`` and is imported directly;
it depends on encoder selection, which itself depends on these models.
"""

from veq.profiles.builtin import (
    DEFAULT_PROFILE,
    builtin_names,
    get_builtin,
    is_builtin,
)
from veq.profiles.codecs import Av1Config, CodecType, Vp9Config
from veq.profiles.models import (
    HwEncodingConfig,
    Profile,
    ProfileError,
    ProfileNotFoundError,
    RateControlMode,
)
from veq.profiles.paths import derive_output_path
from veq.profiles.store import (
    delete_profile,
    list_profiles,
    load_profile,
    load_profile_file,
    parse_profile_data,
    resolve_profile,
    save_profile,
)

__all__ = [
    "DEFAULT_PROFILE",
    "Av1Config",
    "CodecType",
    "HwEncodingConfig",
    "Profile",
    "ProfileError",
    "ProfileNotFoundError",
    "RateControlMode",
    "Vp9Config",
    "builtin_names",
    "delete_profile",
    "derive_output_path",
    "get_builtin",
    "is_builtin",
    "list_profiles",
    "load_profile",
    "load_profile_file",
    "parse_profile_data",
    "resolve_profile",
    "save_profile",
]
