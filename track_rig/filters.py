from __future__ import annotations

import numpy as np
from scipy.signal import butter, sosfiltfilt


def cfc_filter(x: np.ndarray, sample_rate_hz: float, cfc: float) -> np.ndarray:
    """
    CFC filter (SAE-style mapping): 2nd-order Butterworth lowpass per pass,
    applied forward+backward (zero-phase) => "phaseless 4-pole" magnitude.

    Used on measured load channels before they are replayed into the rig.
    """
    x = np.asarray(x, dtype=float)
    if x.size < 2:
        return x.copy()
    f_design_hz = 2.0775 * float(cfc)
    nyquist = 0.5 * float(sample_rate_hz)
    if f_design_hz >= nyquist:
        # Nothing to remove below Nyquist.
        return x.copy()
    sos = butter(N=2, Wn=f_design_hz, btype='low', fs=sample_rate_hz, output='sos')
    return sosfiltfilt(sos, x, padtype=None, padlen=0)
