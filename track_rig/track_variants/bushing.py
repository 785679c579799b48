from __future__ import annotations

import numpy as np

from track_rig.errors import ConfigurationError
from track_rig.track_assembly import BeltLayout, TrackAssembly, TrackGeometry


# Shoe pitch is loop_length / num_shoes (about 0.22 m with the default geometry),
# so k = 1.623e6 N/m gives the same axial stiffness EA ~ 3.6e5 N as the default band.
DEFAULT_PARAMS = {
    'num_shoes': 36,
    'shoe_mass_kg': 4.0,
    'bushing_k_n_per_m': 1.623e6,
    'bushing_c_ns_per_m': 1.8e3,
}


class BushingTrackAssembly(TrackAssembly):
    """
    Rigid shoes joined by compliant bushings.

    One longitudinal DOF per shoe; each shoe-to-shoe bushing is a linear
    Kelvin-Voigt element:
      T = k * ext + c * ext_rate
    The sprocket engages shoe 0.
    """

    variant = 'bushing'

    def __init__(
        self,
        geometry: TrackGeometry,
        *,
        num_shoes: int,
        shoe_mass_kg: float,
        bushing_k_n_per_m: float,
        bushing_c_ns_per_m: float,
    ):
        self.bushing_k = float(bushing_k_n_per_m)
        self.bushing_c = float(bushing_c_ns_per_m)

        layout = BeltLayout(
            n_dofs=num_shoes,
            station_dofs=np.arange(num_shoes),
            drive_dof=0,
            masses=np.full(num_shoes, float(shoe_mass_kg)),
        )
        super().__init__(geometry, layout)

    def element_law(self, ext: np.ndarray, rate: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        T = self.bushing_k * ext + self.bushing_c * rate
        return T, np.full_like(ext, self.bushing_k), np.full_like(ext, self.bushing_c)


def build_assembly(config: dict, geometry: TrackGeometry) -> BushingTrackAssembly:
    cfg = {**DEFAULT_PARAMS, **config.get('bushing', {})}

    unknown = set(cfg) - set(DEFAULT_PARAMS)
    if unknown:
        raise ConfigurationError(f'Unknown bushing keys: {sorted(unknown)}')

    num_shoes = int(cfg['num_shoes'])
    if num_shoes < 8:
        raise ConfigurationError('bushing.num_shoes must be >= 8.')
    if float(cfg['shoe_mass_kg']) <= 0.0:
        raise ConfigurationError('bushing.shoe_mass_kg must be > 0.')
    if float(cfg['bushing_k_n_per_m']) <= 0.0:
        raise ConfigurationError('bushing.bushing_k_n_per_m must be > 0.')
    if float(cfg['bushing_c_ns_per_m']) < 0.0:
        raise ConfigurationError('bushing.bushing_c_ns_per_m must be >= 0.')

    return BushingTrackAssembly(
        geometry,
        num_shoes=num_shoes,
        shoe_mass_kg=float(cfg['shoe_mass_kg']),
        bushing_k_n_per_m=float(cfg['bushing_k_n_per_m']),
        bushing_c_ns_per_m=float(cfg['bushing_c_ns_per_m']),
    )
