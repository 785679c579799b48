from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, fields

from track_rig.errors import ConfigurationError
from track_rig.track_assembly import TrackAssembly, TrackGeometry
from . import band_fe, bushing


@dataclass
class TrackVariant:
    name: str
    build_assembly: Callable[[dict, TrackGeometry], TrackAssembly]
    default_params: dict


TRACK_VARIANTS: dict[str, TrackVariant] = {
    "bushing": TrackVariant(
        name="bushing",
        build_assembly=bushing.build_assembly,
        default_params=bushing.DEFAULT_PARAMS,
    ),
    "band_fe": TrackVariant(
        name="band_fe",
        build_assembly=band_fe.build_assembly,
        default_params=band_fe.DEFAULT_PARAMS,
    ),
}

VARIANT_ALIASES = {
    "band_bushing": "bushing",
    "finite_element_band": "band_fe",
    "band_ancf": "band_fe",
}


def get_track_variant(name: str) -> TrackVariant:
    key = str(name).strip().lower()
    key = VARIANT_ALIASES.get(key, key)
    if key not in TRACK_VARIANTS:
        valid = ", ".join(TRACK_VARIANTS.keys())
        raise ConfigurationError(f"Track type '{name}' not supported. Available: {valid}")
    return TRACK_VARIANTS[key]


def build_geometry(config: dict) -> TrackGeometry:
    """TrackGeometry with overrides from the optional 'geometry' block."""
    overrides = dict(config.get("geometry", {}))
    known = {f.name for f in fields(TrackGeometry)}
    unknown = set(overrides) - known
    if unknown:
        raise ConfigurationError(f"Unknown geometry keys: {sorted(unknown)}")
    for key in ("sprocket_xz", "idler_xz", "wheel_x"):
        if key in overrides:
            overrides[key] = tuple(float(x) for x in overrides[key])
    return TrackGeometry(**overrides)


def build_track_assembly(name: str, config: dict | None = None) -> TrackAssembly:
    variant = get_track_variant(name)
    config = config or {}
    return variant.build_assembly(config, build_geometry(config))
