"""Mass summary for a track assembly."""

from __future__ import annotations

import numpy as np

from track_rig.integrator import G0
from track_rig.track_assembly import I_IDLER, I_SPROCKET, TrackAssembly


def summarize_masses(assembly: TrackAssembly, echo=print) -> dict:
    """
    Lumped mass per component group.

    Belt mass excludes the idler/road wheel spin inertia lumped onto belt stations,
    so bushing and band_fe with matched parameters report the same belt mass.
    """
    g = assembly.geometry
    layout_masses = np.asarray(assembly.layout.masses, dtype=float)

    mass_map = {
        'idler': float(assembly.mass_diagonal()[I_IDLER]),
        'road_wheels': float(g.wheel_mass_kg) * assembly.n_wheels,
        'belt': float(np.sum(layout_masses)),
    }

    echo(f'Mass map ({assembly.variant}, {assembly.num_dofs} DOFs, {assembly.shoe_count} stations):')
    echo('  group          mass_kg   weight_N')
    for name, mass_kg in mass_map.items():
        echo(f'  {name:12s}  {mass_kg:8.3f}  {mass_kg * G0:9.1f}')
    total = float(sum(mass_map.values()))
    echo(f'  {"TOTAL":12s}  {total:8.3f}  {total * G0:9.1f}')
    echo(f'  sprocket inertia={float(assembly.mass_diagonal()[I_SPROCKET]):.3f} kg*m^2')

    return mass_map
