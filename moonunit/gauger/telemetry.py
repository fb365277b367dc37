"""Decoding of unsolicited gauger telemetry lines.

Telemetry lines have the form ``MODULE:field1|field2|...``. Decoding is a
pure mapping from one line to a ``TelemetryUpdate``; applying the update to
``TelemetryState`` is a separate step so that a malformed line never leaves a
field half-written.

Module layouts:

- ``GPS``: lat|long
- ``MAG``: heading|_|_|_|declination
- ``ORI``: x|y|z|cal_system|cal_gyro|cal_accel|cal_mag|isCalibrated
- ``MCC``: pos1|pos2|limit1|limit2 (motor controller status)
- ``MOD``: names of the modules available, informational only
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..constants import DEG_NULL, FIELD_SEPARATOR

__all__ = [
    "TelemetryDecodeError",
    "TelemetryState",
    "TelemetryUpdate",
    "decode_position_report",
    "decode_telemetry",
    "from_sentinel",
]


class TelemetryDecodeError(ValueError):
    """Raised when a telemetry line for a known module cannot be decoded."""

    def __init__(self, module: str, reason: str) -> None:
        super().__init__(f"{module}: {reason}")
        self.module = module
        self.reason = reason


@dataclass(slots=True, frozen=True)
class TelemetryUpdate:
    module: str
    changes: Mapping[str, Any] = field(default_factory=dict)
    recognized: bool = True


def from_sentinel(value: float) -> Optional[float]:
    """Map the device's "no data" placeholder to ``None``."""
    return None if value == DEG_NULL else value


def _floats(module: str, values: Sequence[str], count: int) -> List[float]:
    if len(values) < count:
        raise TelemetryDecodeError(
            module, f"expected at least {count} fields, got {len(values)}"
        )
    try:
        return [float(value) for value in values[:count]]
    except ValueError as exc:
        raise TelemetryDecodeError(module, str(exc)) from exc


def _require(module: str, values: Sequence[str], count: int) -> None:
    if len(values) < count:
        raise TelemetryDecodeError(
            module, f"expected at least {count} fields, got {len(values)}"
        )


def _decode_gps(values: Sequence[str]) -> Dict[str, Any]:
    lat, long = _floats("GPS", values, 2)
    return {"gps_coords": [from_sentinel(lat), from_sentinel(long)]}


def _decode_mag(values: Sequence[str]) -> Dict[str, Any]:
    floats = _floats("MAG", values, 5)
    return {
        "mag_heading": from_sentinel(floats[0]),
        "declination_angle": from_sentinel(floats[4]),
    }


def _decode_ori(values: Sequence[str]) -> Dict[str, Any]:
    _require("ORI", values, 8)
    floats = _floats("ORI", values, 3)
    return {
        "orientation": [from_sentinel(value) for value in floats],
        "is_orientation_calibrated": values[7].strip() == "T",
    }


def _decode_mcc(values: Sequence[str]) -> Dict[str, Any]:
    _require("MCC", values, 4)
    pos1, pos2 = _floats("MCC", values, 2)
    return {
        "position": [from_sentinel(pos1), from_sentinel(pos2)],
        "limits_enabled": [values[2].strip() == "T", values[3].strip() == "T"],
    }


def _decode_mod(values: Sequence[str]) -> Dict[str, Any]:
    return {}


_DECODERS = {
    "GPS": _decode_gps,
    "MAG": _decode_mag,
    "ORI": _decode_ori,
    "MCC": _decode_mcc,
    "MOD": _decode_mod,
}


def decode_telemetry(line: str) -> TelemetryUpdate:
    """Decode one telemetry line.

    Unknown modules produce an update with ``recognized=False`` and no
    changes. Raises ``TelemetryDecodeError`` when a known module's fields are
    missing or not numeric.
    """

    module, _, text = line.partition(":")
    module = module.strip()
    decoder = _DECODERS.get(module)
    if decoder is None:
        return TelemetryUpdate(module=module, recognized=False)

    values = text.split(FIELD_SEPARATOR) if text else []
    return TelemetryUpdate(module=module, changes=decoder(values))


def decode_position_report(body: str) -> TelemetryUpdate:
    """Decode the body of a position query acknowledgement (``pos1|pos2|L1|L2``)."""
    values = body.strip().split(FIELD_SEPARATOR) if body.strip() else []
    return TelemetryUpdate(module="MCC", changes=_decode_mcc(values))


@dataclass(slots=True)
class TelemetryState:
    """Most recent decoded observation for each telemetry field."""

    position: List[Optional[float]] = field(default_factory=lambda: [None, None])
    limits_enabled: List[Optional[bool]] = field(default_factory=lambda: [None, None])
    gps_coords: List[Optional[float]] = field(default_factory=lambda: [None, None])
    mag_heading: Optional[float] = None
    declination_angle: Optional[float] = None
    orientation: List[Optional[float]] = field(
        default_factory=lambda: [None, None, None]
    )
    is_orientation_calibrated: Optional[bool] = None

    def apply(self, update: TelemetryUpdate) -> None:
        for name, value in update.changes.items():
            setattr(self, name, value)

    def clear_status(self) -> None:
        """Reset the controller-adjacent fields reported by the motor controller."""
        self.position = [None, None]
        self.limits_enabled = [None, None]

    def clear_gauges(self) -> None:
        self.gps_coords = [None, None]
        self.mag_heading = None
        self.declination_angle = None
        self.orientation = [None, None, None]
        self.is_orientation_calibrated = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "position": list(self.position),
            "limitsEnabled": list(self.limits_enabled),
            "gpsCoords": list(self.gps_coords),
            "magHeading": self.mag_heading,
            "declinationAngle": self.declination_angle,
            "orientation": list(self.orientation),
            "isOrientationCalibrated": self.is_orientation_calibrated,
        }
