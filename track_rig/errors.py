"""Error taxonomy for the track test rig.

Every failure the rig can report derives from TrackRigError and also from the
closest builtin, so callers that only know about ValueError/RuntimeError/OSError
still catch them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from track_rig.integrator import IntegratorDiagnostics


class TrackRigError(Exception):
    pass


class OrderingError(TrackRigError, RuntimeError):
    """An operation was invoked before the component finished initialize()."""


class ConfigurationError(TrackRigError, ValueError):
    """Unsupported track variant or invalid configuration value."""


class IntegratorDivergence(TrackRigError, RuntimeError):
    """Newton iteration cap exhausted without meeting tolerance."""

    def __init__(self, message: str, diagnostics: IntegratorDiagnostics, time_s: float):
        super().__init__(message)
        self.diagnostics = diagnostics
        self.time_s = time_s


class ResourceError(TrackRigError, OSError):
    """Output location for snapshots/results could not be prepared."""
