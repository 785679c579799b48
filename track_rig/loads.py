"""Force-exchange boundary between the rig and an external load source."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from track_rig.filters import cfc_filter
from track_rig.io import parse_csv_table

logger = logging.getLogger(__name__)


def _zero3() -> np.ndarray:
    return np.zeros(3, dtype=float)


@dataclass
class TerrainForce:
    """Force/moment bundle acting on one track, absolute frame."""

    force: np.ndarray = field(default_factory=_zero3)
    moment: np.ndarray = field(default_factory=_zero3)
    point: np.ndarray = field(default_factory=_zero3)

    def copy(self) -> TerrainForce:
        return TerrainForce(self.force.copy(), self.moment.copy(), self.point.copy())

    def is_zero(self) -> bool:
        return not (np.any(self.force) or np.any(self.moment))


class ForceExchangeBuffer:
    """One TerrainForce per track under test, indexed by track index."""

    def __init__(self, num_tracks: int = 1):
        if num_tracks < 1:
            raise ValueError('num_tracks must be >= 1.')
        self._entries = [TerrainForce() for _ in range(num_tracks)]

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> TerrainForce:
        return self._entries[index]

    def __iter__(self):
        return iter(self._entries)

    def set(
        self,
        index: int,
        force: np.ndarray | list[float],
        moment: np.ndarray | list[float] | None = None,
        point: np.ndarray | list[float] | None = None,
    ) -> None:
        self._entries[index] = TerrainForce(
            force=np.asarray(force, dtype=float).reshape(3).copy(),
            moment=_zero3() if moment is None else np.asarray(moment, dtype=float).reshape(3).copy(),
            point=_zero3() if point is None else np.asarray(point, dtype=float).reshape(3).copy(),
        )

    def reset(self) -> None:
        self._entries = [TerrainForce() for _ in self._entries]

    def copy(self) -> ForceExchangeBuffer:
        out = ForceExchangeBuffer(len(self._entries))
        out._entries = [e.copy() for e in self._entries]
        return out


class ZeroLoadSource:
    """No live load: every entry stays zero."""

    def fill(self, time: float, buffer: ForceExchangeBuffer) -> None:
        buffer.reset()


class CsvLoadSource:
    """
    Replay a measured load history onto track 0.

    Columns: time, fx, fz, my (fx/fz in N, my in N*m). fz and my are optional.
    Values are linearly interpolated and held at the end values outside the
    recorded range. With `cfc` set, the channels are resampled to uniform spacing
    and CFC-filtered once at load time.
    """

    TIME_CANDIDATES = ['time', 't', 'time_s', 'time_ms']
    COLUMNS = {
        'fx': ['fx', 'force_x', 'fx_n'],
        'fz': ['fz', 'force_z', 'fz_n'],
        'my': ['my', 'moment_y', 'my_nm'],
    }

    def __init__(
        self,
        path: Path,
        *,
        cfc: float | None = None,
        point: tuple[float, float, float] = (0.0, 0.0, 0.0),
        track_index: int = 0,
    ):
        table = parse_csv_table(path, self.TIME_CANDIDATES, self.COLUMNS, required=['fx'])
        t = table.time_s
        cols = table.columns

        if cfc is not None and t.size >= 2:
            dt = np.diff(t)
            dt = dt[dt > 0]
            if dt.size:
                median_dt = float(np.median(dt))
                n = int(round((float(t[-1]) - float(t[0])) / median_dt)) + 1
                t_uniform = float(t[0]) + np.arange(n) * median_dt
                cols = {
                    k: cfc_filter(np.interp(t_uniform, t, v), 1.0 / median_dt, cfc)
                    for k, v in cols.items()
                }
                t = t_uniform

        self.path = Path(path)
        self.time_s = t
        self.fx = cols['fx']
        self.fz = cols['fz']
        self.my = cols['my']
        self.point = np.asarray(point, dtype=float)
        self.track_index = int(track_index)

        logger.info('Loaded %d load samples from %s (%.3f..%.3f s)', t.size, path, t[0], t[-1])

    def sample(self, time: float) -> TerrainForce:
        fx = float(np.interp(time, self.time_s, self.fx))
        fz = float(np.interp(time, self.time_s, self.fz))
        my = float(np.interp(time, self.time_s, self.my))
        return TerrainForce(
            force=np.array([fx, 0.0, fz], dtype=float),
            moment=np.array([0.0, my, 0.0], dtype=float),
            point=self.point.copy(),
        )

    def fill(self, time: float, buffer: ForceExchangeBuffer) -> None:
        buffer.reset()
        tf = self.sample(time)
        buffer.set(self.track_index, tf.force, tf.moment, tf.point)
