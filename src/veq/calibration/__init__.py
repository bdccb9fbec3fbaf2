"""Auto-VMAF quality calibration."""

from veq.calibration.vmaf import (
    CalibrationError,
    CalibrationResult,
    calibrate_quality,
    is_vmaf_compatible,
    select_vmaf_model,
    select_windows,
)

__all__ = [
    "CalibrationError",
    "CalibrationResult",
    "calibrate_quality",
    "is_vmaf_compatible",
    "select_vmaf_model",
    "select_windows",
]
