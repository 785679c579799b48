from __future__ import annotations

import numpy as np

from track_rig.errors import ConfigurationError
from track_rig.track_assembly import BeltLayout, TrackAssembly, TrackGeometry


DEFAULT_PARAMS = {
    'num_elements': 72,
    'band_mass_per_length_kg_per_m': 9.0,
    'tread_mass_kg': 2.0,
    'axial_stiffness_ea_n': 3.6e5,
    'axial_damping_ns': 400.0,
    'tie_k_n_per_m': 5.0e6,
    'tie_c_ns_per_m': 1.0e3,
}


class BandFETrackAssembly(TrackAssembly):
    """
    Continuous band: a ring of geometrically nonlinear axial elements plus tread
    bodies tied to every second mesh node.

    Element law (Green-Lagrange strain E = eps + eps^2/2, energy 1/2 EA l E^2):
      T = EA * E * (1 + eps) + c_EA * eps_rate
        = EA * (eps + 1.5 eps^2 + 0.5 eps^3) + c_EA * eps_rate
    with eps = ext / l.

    Tread m is held on mesh node 2m by a stiff point tie; the sprocket drives
    tread 0, so drive torque reaches the band through the ties.
    """

    variant = 'band_fe'

    def __init__(
        self,
        geometry: TrackGeometry,
        *,
        num_elements: int,
        band_mass_per_length_kg_per_m: float,
        tread_mass_kg: float,
        axial_stiffness_ea_n: float,
        axial_damping_ns: float,
        tie_k_n_per_m: float,
        tie_c_ns_per_m: float,
    ):
        if num_elements < 8 or num_elements % 2:
            raise ConfigurationError('band_fe.num_elements must be even and >= 8.')

        self.ea = float(axial_stiffness_ea_n)
        self.c_ea = float(axial_damping_ns)

        n_tread = num_elements // 2
        ell = geometry.loop_length() / num_elements
        masses = np.concatenate(
            [
                np.full(num_elements, float(band_mass_per_length_kg_per_m) * ell),
                np.full(n_tread, float(tread_mass_kg)),
            ]
        )

        layout = BeltLayout(
            n_dofs=num_elements + n_tread,
            station_dofs=np.arange(num_elements),
            drive_dof=num_elements,
            masses=masses,
            ties=[(num_elements + m, 2 * m) for m in range(n_tread)],
            tie_k=float(tie_k_n_per_m),
            tie_c=float(tie_c_ns_per_m),
        )
        super().__init__(geometry, layout)

    @property
    def tread_count(self) -> int:
        return len(self.layout.ties)

    def element_law(self, ext: np.ndarray, rate: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        ell = self.element_length
        eps = ext / ell
        T = self.ea * (eps + 1.5 * eps * eps + 0.5 * eps * eps * eps) + self.c_ea * rate / ell
        dT_dext = self.ea * (1.0 + 3.0 * eps + 1.5 * eps * eps) / ell
        dT_drate = np.full_like(ext, self.c_ea / ell)
        return T, dT_dext, dT_drate


def build_assembly(config: dict, geometry: TrackGeometry) -> BandFETrackAssembly:
    cfg = {**DEFAULT_PARAMS, **config.get('band_fe', {})}

    unknown = set(cfg) - set(DEFAULT_PARAMS)
    if unknown:
        raise ConfigurationError(f'Unknown band_fe keys: {sorted(unknown)}')

    for key in ('band_mass_per_length_kg_per_m', 'tread_mass_kg', 'axial_stiffness_ea_n', 'tie_k_n_per_m'):
        if float(cfg[key]) <= 0.0:
            raise ConfigurationError(f'band_fe.{key} must be > 0.')
    for key in ('axial_damping_ns', 'tie_c_ns_per_m'):
        if float(cfg[key]) < 0.0:
            raise ConfigurationError(f'band_fe.{key} must be >= 0.')

    return BandFETrackAssembly(
        geometry,
        num_elements=int(cfg['num_elements']),
        band_mass_per_length_kg_per_m=float(cfg['band_mass_per_length_kg_per_m']),
        tread_mass_kg=float(cfg['tread_mass_kg']),
        axial_stiffness_ea_n=float(cfg['axial_stiffness_ea_n']),
        axial_damping_ns=float(cfg['axial_damping_ns']),
        tie_k_n_per_m=float(cfg['tie_k_n_per_m']),
        tie_c_ns_per_m=float(cfg['tie_c_ns_per_m']),
    )
