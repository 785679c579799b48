"""Output utilities for rig results."""

from __future__ import annotations

import csv
import json
from pathlib import Path

from track_rig.observer import ObservedFrame


def write_timeseries_csv(path: Path, frames: list[ObservedFrame]) -> None:
    """Write one row per render frame.

    Idler position is chassis-relative; road wheel travel is per wheel, + up.
    """
    n_wheels = len(frames[0].road_wheels) if frames else 0

    headers = ['time_s', 'step', 'throttle', 'post_mm', 'sprocket_angle_rad', 'sprocket_speed_rad_s']
    headers += ['idler_x_m', 'idler_z_m']
    headers += [f'wheel{k + 1}_travel_mm' for k in range(n_wheels)]
    headers += ['max_belt_tension_n', 'newton_iterations']

    with path.open('w', newline='', encoding='utf-8') as f:
        w = csv.writer(f)
        w.writerow(headers)
        for fr in frames:
            row = [
                f'{fr.time_s:.6f}',
                str(fr.step),
                f'{fr.control.throttle:.6f}',
                f'{fr.control.post_displacement * 1000.0:.6f}',
                f'{fr.sprocket.angle:.6f}',
                f'{fr.sprocket_speed:.6f}',
                f'{fr.idler_local[0]:.6f}',
                f'{fr.idler_local[2]:.6f}',
            ]
            row += [f'{fr.road_wheel_travel[k] * 1000.0:.6f}' for k in range(n_wheels)]
            row += [f'{fr.max_belt_tension_n:.3f}', str(fr.newton_iterations)]
            w.writerow(row)


def write_summary_json(path: Path, summary: dict) -> None:
    path.write_text(json.dumps(summary, indent=2) + '\n', encoding='utf-8')
