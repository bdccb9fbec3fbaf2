"""Types for the encoder parameter registry."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from veq.profiles.codecs import CodecType

if TYPE_CHECKING:
    from veq.profiles.models import Profile

Accessor = Callable[["Profile"], Any]


class EncoderType(Enum):
    SOFTWARE = "software"
    HARDWARE = "hardware"


class HardwareApi(Enum):
    QSV = "qsv"
    VAAPI = "vaapi"
    NVENC = "nvenc"


class Support(Enum):
    """How an encoder accepts a parameter."""

    FLAG = "flag"  # canonical ffmpeg flag
    ALT_FLAG = "alt_flag"  # encoder-specific spelling
    UNSUPPORTED = "unsupported"


class Condition(Enum):
    """When a supported parameter is written to the command line."""

    ALWAYS = "always"
    NON_ZERO = "non_zero"
    NON_NEGATIVE = "non_negative"
    BOOL_TRUE = "bool_true"
    NON_EMPTY = "non_empty"

    def holds(self, value: Any) -> bool:
        if value is None:
            return False
        if self is Condition.ALWAYS:
            return True
        if self is Condition.BOOL_TRUE:
            return value is True
        if self is Condition.NON_EMPTY:
            return str(value) != ""
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if self is Condition.NON_ZERO:
            return value != 0
        return value >= 0


@dataclass(frozen=True)
class Range:
    """Inclusive numeric bounds, or a fixed set of string choices."""

    minimum: int | float | None = None
    maximum: int | float | None = None
    choices: tuple[str, ...] = ()

    def contains(self, value: Any) -> bool:
        if self.choices:
            return str(value) in self.choices
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return True
        if self.minimum is not None and value < self.minimum:
            return False
        return not (self.maximum is not None and value > self.maximum)

    def describe(self) -> str:
        if self.choices:
            return "one of " + ", ".join(self.choices)
        return f"{self.minimum}-{self.maximum}"


@dataclass(frozen=True)
class EncoderDef:
    id: str
    codec: CodecType
    encoder_type: EncoderType
    hw_api: HardwareApi | None = None

    @property
    def is_hardware(self) -> bool:
        return self.encoder_type is EncoderType.HARDWARE


@dataclass(frozen=True)
class EncoderParam:
    """Support entry for one (parameter, encoder) pair.

    Attributes:
        flag: ffmpeg flag written before the value, None when unsupported.
        support: Whether and how the encoder takes the parameter.
        condition: When the flag is emitted.
        clamp: Encoder-specific bounds; values outside are clamped silently.
        note: Free text shown by ``veq profiles show``.
        convert: Maps the profile value to the encoder's value syntax.
        lead: Arguments emitted immediately before the flag.
        trail: Arguments emitted immediately after the value.
    """

    flag: str | None
    support: Support = Support.FLAG
    condition: Condition = Condition.ALWAYS
    clamp: Range | None = None
    note: str = ""
    convert: Callable[[Any], Any] | None = None
    lead: tuple[str, ...] = ()
    trail: tuple[str, ...] = ()

    @property
    def supported(self) -> bool:
        return self.support is not Support.UNSUPPORTED and self.flag is not None


def unsupported(note: str = "") -> EncoderParam:
    return EncoderParam(flag=None, support=Support.UNSUPPORTED, note=note)


@dataclass(frozen=True)
class ParamDef:
    """One logical encoder parameter and its per-encoder support."""

    name: str
    group: str
    description: str
    accessor: Accessor
    encoders: dict[str, EncoderParam] = field(default_factory=dict)
    value_format: str = "{}"
    range: Range | None = None

    def for_encoder(self, encoder_id: str) -> EncoderParam | None:
        return self.encoders.get(encoder_id)

    def is_supported_by(self, encoder_id: str) -> bool:
        entry = self.encoders.get(encoder_id)
        return entry is not None and entry.supported


@dataclass(frozen=True)
class ParamClamp:
    """A value the builder had to clamp for an encoder."""

    name: str
    encoder: str
    original: Any
    clamped: Any
