from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np
from scipy.linalg import lu_factor, lu_solve

from track_rig.config import IntegratorSettings
from track_rig.errors import ConfigurationError

logger = logging.getLogger(__name__)

G0 = 9.80665

# forces(q, v) -> (f, df/dq, df/dv)
ForceModel = Callable[[np.ndarray, np.ndarray], tuple[np.ndarray, np.ndarray, np.ndarray]]


@dataclass
class GeneralizedState:
    time_s: float
    q: np.ndarray  # shape (N,)
    v: np.ndarray  # shape (N,)
    a: np.ndarray  # shape (N,)

    def copy(self) -> GeneralizedState:
        return GeneralizedState(
            time_s=float(self.time_s), q=self.q.copy(), v=self.v.copy(), a=self.a.copy()
        )


@dataclass
class IntegratorDiagnostics:
    """
    iteration_count: Newton iterations summed over all attempts of this call
    converged:       the Newton solves behind the returned state met tolerance
    step_accepted:   the step was taken at the requested size on the first attempt
    """

    iteration_count: int = 0
    converged: bool = False
    step_accepted: bool = False
    residual_norm: float = float('nan')
    step_halvings: int = 0


def validate_settings(settings: IntegratorSettings) -> None:
    if not (-1.0 / 3.0 - 1e-12 <= settings.alpha <= 0.0):
        raise ConfigurationError(f'HHT alpha must be in [-1/3, 0], got {settings.alpha}.')
    if settings.max_newton_iterations < 0:
        raise ConfigurationError('max_newton_iterations must be >= 0.')
    if settings.abs_tolerance <= 0.0:
        raise ConfigurationError('abs_tolerance must be > 0.')
    if settings.max_step_halvings < 0:
        raise ConfigurationError('max_step_halvings must be >= 0.')


def _solve_linear(J: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    try:
        return np.linalg.solve(J, rhs)
    except np.linalg.LinAlgError:
        return np.linalg.lstsq(J, rhs, rcond=None)[0]


def _residual_scale(M: np.ndarray, scaling: bool) -> np.ndarray:
    """Jacobi row scaling: residual rows in acceleration units instead of force units."""
    n = M.shape[0]
    if not scaling:
        return np.ones(n, dtype=float)
    d = np.abs(np.diag(M)).astype(float)
    scale = np.ones(n, dtype=float)
    mask = d > 0.0
    scale[mask] = 1.0 / d[mask]
    return scale


class HHTIntegrator:
    """
    HHT-α in acceleration form for M a = f(q, v):

      M a_{n+1} = (1+α) f(q_{n+1}, v_{n+1}) - α f(q_n, v_n)
      q_{n+1}   = q_n + h v_n + h^2 ((1/2 - β) a_n + β a_{n+1})
      v_{n+1}   = v_n + h ((1 - γ) a_n + γ a_{n+1})
      β = (1-α)^2 / 4,  γ = 1/2 - α,  α in [-1/3, 0]

    The unknown a_{n+1} is found by Newton on the residual above, with
      J = M - (1+α) (β h^2 K + γ h C),  K = df/dq,  C = df/dv.
    α = 0 is the trapezoidal rule; more negative α damps high frequencies.
    """

    def __init__(self, settings: IntegratorSettings):
        validate_settings(settings)
        self.settings = settings
        self.alpha = float(settings.alpha)
        self.beta = 0.25 * (1.0 - self.alpha) ** 2
        self.gamma = 0.5 - self.alpha

    def step(
        self,
        forces: ForceModel,
        M: np.ndarray,
        state: GeneralizedState,
        h: float,
    ) -> tuple[GeneralizedState | None, IntegratorDiagnostics]:
        """
        Advance `state` by h. Returns (new_state, diagnostics); new_state is None when the
        Newton solve did not converge (and step control, if enabled, was exhausted).
        `state` itself is never modified.
        """
        if h <= 0.0:
            raise ValueError(f'Step size must be > 0, got {h}.')

        diag = IntegratorDiagnostics()
        scale = _residual_scale(M, self.settings.scaling)

        new_state = self._advance(forces, M, scale, state, h, 0, diag)
        if new_state is None:
            diag.converged = False
            diag.step_accepted = False
            return None, diag

        diag.converged = True
        diag.step_accepted = diag.step_halvings == 0
        return new_state, diag

    def _advance(
        self,
        forces: ForceModel,
        M: np.ndarray,
        scale: np.ndarray,
        state: GeneralizedState,
        h: float,
        depth: int,
        diag: IntegratorDiagnostics,
    ) -> GeneralizedState | None:
        result, iters, residual_norm = self._newton(forces, M, scale, state, h)
        diag.iteration_count += iters
        diag.residual_norm = residual_norm
        if result is not None:
            return result

        if not self.settings.step_control or depth >= self.settings.max_step_halvings:
            return None

        diag.step_halvings += 1
        logger.warning(
            'Newton did not converge at t=%.6f s (h=%.3e, residual=%.3e); halving step.',
            state.time_s,
            h,
            residual_norm,
        )

        half = 0.5 * h
        mid = self._advance(forces, M, scale, state, half, depth + 1, diag)
        if mid is None:
            return None
        return self._advance(forces, M, scale, mid, half, depth + 1, diag)

    def _newton(
        self,
        forces: ForceModel,
        M: np.ndarray,
        scale: np.ndarray,
        state: GeneralizedState,
        h: float,
    ) -> tuple[GeneralizedState | None, int, float]:
        s = self.settings
        alpha, beta, gamma = self.alpha, self.beta, self.gamma

        q_n = state.q
        v_n = state.v
        a_n = state.a

        f_n, _, _ = forces(q_n, v_n)

        # Predictor: a_{n+1} = a_n
        a = a_n.copy()
        q = q_n
        v = v_n
        residual_norm = float('nan')
        lu = None

        for it in range(s.max_newton_iterations):
            q = q_n + h * v_n + h * h * ((0.5 - beta) * a_n + beta * a)
            v = v_n + h * ((1.0 - gamma) * a_n + gamma * a)

            f, dfdq, dfdv = forces(q, v)

            # Residual: M a - (1+α) f_{n+1} + α f_n = 0
            r = (M @ a) - (1.0 + alpha) * f + alpha * f_n
            r_scaled = scale * r
            residual_norm = float(np.linalg.norm(r_scaled))

            if s.verbose:
                logger.debug('  newton it=%d residual=%.3e', it, residual_norm)

            if residual_norm < s.abs_tolerance:
                return GeneralizedState(state.time_s + h, q, v, a.copy()), it + 1, residual_norm

            if s.modified_newton:
                if lu is None:
                    J = M - (1.0 + alpha) * (beta * h * h * dfdq + gamma * h * dfdv)
                    lu = lu_factor(scale[:, None] * J)
                da = lu_solve(lu, -r_scaled)
            else:
                J = M - (1.0 + alpha) * (beta * h * h * dfdq + gamma * h * dfdv)
                da = _solve_linear(scale[:, None] * J, -r_scaled)

            a = a + da

        return None, s.max_newton_iterations, residual_norm


def initial_acceleration(forces: ForceModel, M: np.ndarray, q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Consistent a0 from the dynamics: M a0 = f(q0, v0)."""
    f0, _, _ = forces(q, v)
    return _solve_linear(M, f0)


def static_equilibrium(
    forces: ForceModel,
    q0: np.ndarray,
    *,
    max_iter: int = 60,
    force_tol: float = 1e-8,
) -> np.ndarray:
    """
    Nonlinear static equilibrium f(q, 0) = 0 from the initial guess q0.

    The stiffness is rank-deficient (the belt can rotate freely with the sprocket),
    so every correction is the minimum-norm least-squares one: the free mode is left
    where q0 put it.
    """
    q = np.asarray(q0, dtype=float).copy()
    v = np.zeros_like(q)

    for _ in range(max_iter):
        f, dfdq, _ = forces(q, v)
        if float(np.linalg.norm(f)) < force_tol:
            return q

        dq = np.linalg.lstsq(dfdq, -f, rcond=None)[0]
        q = q + 0.8 * dq  # mild damping helps near contact transitions
        if float(np.linalg.norm(dq)) < 1e-12:
            break

    f, _, _ = forces(q, v)
    residual = float(np.linalg.norm(f))
    if residual >= force_tol:
        logger.warning(
            'Static equilibrium not reached after %d iterations (residual=%.3e, tol=%.1e); '
            'starting from the last iterate.',
            max_iter,
            residual,
            force_tol,
        )
    return q
