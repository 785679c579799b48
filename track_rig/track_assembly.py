"""Planar track assembly shared by the bushing and finite-element band variants.

Generalized coordinates (chassis frame, x forward, z up):

  q[0]                 sprocket rotation (rad)
  q[1]                 idler tensioner travel (m, + lengthens the loop)
  q[2 : 2+n_wheels]    road wheel vertical travel (m, + up)
  q[2+n_wheels :]      belt DOFs, laid out by the variant

Belt stations are points around the loop (shoes or mesh nodes) carrying a
longitudinal displacement. Consecutive stations form a closed ring of axial
elements; idler travel ξ stretches the loop by 2ξ, shared equally by all ring
elements. Idler and road wheel spin follow the belt station they sit on, so their
rotational inertia is lumped onto that station as I / r^2.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from track_rig.integrator import G0

I_SPROCKET = 0
I_IDLER = 1


@dataclass
class TrackGeometry:
    # Centers in the chassis frame, relative to the attach location (m).
    sprocket_xz: tuple[float, float] = (0.0, 0.0)
    idler_xz: tuple[float, float] = (-3.0, 0.0)
    wheel_x: tuple[float, ...] = (-0.5, -1.0, -1.5, -2.0, -2.5)
    wheel_z: float = -0.5

    sprocket_radius_m: float = 0.25
    idler_radius_m: float = 0.25
    wheel_radius_m: float = 0.25
    belt_thickness_m: float = 0.03

    # Sprocket
    sprocket_inertia_kgm2: float = 2.0
    sprocket_bearing_c_nms: float = 5.0
    tooth_k_n_per_m: float = 5.0e6
    tooth_c_ns_per_m: float = 2.0e3
    max_drive_torque_nm: float = 500.0

    # Idler + tensioner
    idler_mass_kg: float = 50.0
    idler_inertia_kgm2: float = 1.0
    tensioner_k_n_per_m: float = 2.0e5
    tensioner_c_ns_per_m: float = 2.0e3
    tensioner_free_travel_m: float = 0.05

    # Road wheels + suspension
    wheel_mass_kg: float = 40.0
    wheel_inertia_kgm2: float = 1.0
    suspension_k_n_per_m: float = 1.0e5
    suspension_c_ns_per_m: float = 4.0e3
    rolling_c_ns_per_m: float = 50.0

    # Post (platform under the road wheels)
    post_gap_m: float = 0.05
    post_contact_k_n_per_m: float = 2.0e6
    post_contact_c_ns_per_m: float = 5.0e3

    @property
    def n_wheels(self) -> int:
        return len(self.wheel_x)

    def loop_path(self) -> list[tuple[float, float]]:
        """Sprocket -> idler along the top, then road wheels rear to front."""
        wheels = sorted(((float(x), float(self.wheel_z)) for x in self.wheel_x), key=lambda p: p[0])
        return [tuple(self.sprocket_xz), tuple(self.idler_xz)] + wheels

    def loop_length(self) -> float:
        """
        Belt length at zero idler travel. All wheels share one radius in the default
        layout, so this is the hull polygon perimeter plus one full wrap 2*pi*r.
        """
        pts = np.asarray(self.loop_path(), dtype=float)
        seg = np.diff(np.vstack([pts, pts[:1]]), axis=0)
        r = max(self.sprocket_radius_m, self.idler_radius_m, self.wheel_radius_m)
        return float(np.sum(np.hypot(seg[:, 0], seg[:, 1])) + 2.0 * np.pi * r)

    def loop_fractions(self) -> np.ndarray:
        """Arc fraction (0..1) of each loop_path point, measured from the sprocket."""
        pts = np.asarray(self.loop_path(), dtype=float)
        seg = np.diff(np.vstack([pts, pts[:1]]), axis=0)
        lengths = np.hypot(seg[:, 0], seg[:, 1])
        cum = np.concatenate([[0.0], np.cumsum(lengths)[:-1]])
        return cum / float(np.sum(lengths))


@dataclass
class BodyPose:
    position: np.ndarray  # shape (3,) chassis-local unless stated otherwise
    angle: float  # spin about the axle (rad)


@dataclass
class BeltLayout:
    """What a variant tells the shared assembly about its belt discretization."""

    n_dofs: int
    station_dofs: np.ndarray  # local belt DOF index of each loop station, in loop order
    drive_dof: int  # local belt DOF engaged by the sprocket
    masses: np.ndarray  # shape (n_dofs,)
    ties: list[tuple[int, int]] = field(default_factory=list)  # local (a, b) pairs
    tie_k: float = 0.0
    tie_c: float = 0.0


class TrackAssembly:
    """
    Common contract for both track variants. Subclasses provide the belt layout
    and the axial law of the ring elements; everything the rig touches lives here.
    """

    variant = ''

    def __init__(self, geometry: TrackGeometry, layout: BeltLayout):
        self.geometry = geometry
        self.layout = layout

        g = geometry
        self.n_wheels = g.n_wheels
        self.wheel_dofs = np.arange(2, 2 + self.n_wheels)
        self.belt_offset = 2 + self.n_wheels
        self.num_dofs = self.belt_offset + layout.n_dofs

        self.station_dofs = self.belt_offset + np.asarray(layout.station_dofs, dtype=int)
        self.n_stations = int(self.station_dofs.size)
        self.drive_dof = self.belt_offset + int(layout.drive_dof)

        self.loop_length = g.loop_length()
        self.element_length = self.loop_length / self.n_stations

        # Stations the idler and road wheels sit on.
        fractions = g.loop_fractions()
        self.idler_station_dof = self._station_at(fractions[1])
        wheel_order = np.argsort(np.asarray(g.wheel_x, dtype=float))
        wheel_station = np.zeros(self.n_wheels, dtype=int)
        for rank, k in enumerate(wheel_order):
            wheel_station[k] = self._station_at(fractions[2 + rank])
        self.wheel_station_dofs = wheel_station

        self._B = self._ring_matrix()
        self._T = self._tie_matrix()
        self._masses = self._lumped_masses()

    # --- Layout ---

    def _station_at(self, fraction: float) -> int:
        idx = int(round(float(fraction) * self.n_stations)) % self.n_stations
        return int(self.station_dofs[idx])

    def _ring_matrix(self) -> np.ndarray:
        """
        Row e maps q to the extension of ring element e (station e -> e+1):
          ext_e = u_{e+1} - u_e + 2*xi / n_elements
        """
        n = self.n_stations
        B = np.zeros((n, self.num_dofs), dtype=float)
        for e in range(n):
            B[e, self.station_dofs[e]] -= 1.0
            B[e, self.station_dofs[(e + 1) % n]] += 1.0
            B[e, I_IDLER] += 2.0 / n
        return B

    def _tie_matrix(self) -> np.ndarray:
        ties = self.layout.ties
        T = np.zeros((len(ties), self.num_dofs), dtype=float)
        for m, (a, b) in enumerate(ties):
            T[m, self.belt_offset + a] += 1.0
            T[m, self.belt_offset + b] -= 1.0
        return T

    def _lumped_masses(self) -> np.ndarray:
        g = self.geometry
        m = np.zeros(self.num_dofs, dtype=float)
        m[I_SPROCKET] = g.sprocket_inertia_kgm2
        m[I_IDLER] = g.idler_mass_kg
        m[self.wheel_dofs] = g.wheel_mass_kg
        m[self.belt_offset :] = self.layout.masses

        m[self.idler_station_dof] += g.idler_inertia_kgm2 / g.idler_radius_m**2
        np.add.at(m, self.wheel_station_dofs, g.wheel_inertia_kgm2 / g.wheel_radius_m**2)
        return m

    def mass_diagonal(self) -> np.ndarray:
        return self._masses.copy()

    def initial_coordinates(self) -> np.ndarray:
        return np.zeros(self.num_dofs, dtype=float)

    @property
    def shoe_count(self) -> int:
        return self.n_stations

    # --- Forces ---

    def element_law(self, ext: np.ndarray, rate: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Axial law of the ring elements.

        Returns:
          T:      tension per element (N, tension positive)
          dT_dext, dT_drate: partials wrt element extension / extension rate
        """
        raise NotImplementedError

    def element_tension(self, q: np.ndarray, v: np.ndarray) -> np.ndarray:
        """Tension per belt element (N) at state (q, v)."""
        T, _, _ = self.element_law(self._B @ q, self._B @ v)
        return T

    def evaluate(self, q: np.ndarray, v: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Internal generalized forces of the assembly and their tangents:
          f (N,), K = df/dq (N, N), C = df/dv (N, N)
        """
        g = self.geometry
        n = self.num_dofs
        f = np.zeros(n, dtype=float)
        K = np.zeros((n, n), dtype=float)
        C = np.zeros((n, n), dtype=float)

        # Sprocket bearing
        f[I_SPROCKET] -= g.sprocket_bearing_c_nms * v[I_SPROCKET]
        C[I_SPROCKET, I_SPROCKET] -= g.sprocket_bearing_c_nms

        # Tooth engagement: gap d = r*theta - u_drive
        b = np.zeros(n, dtype=float)
        b[I_SPROCKET] = g.sprocket_radius_m
        b[self.drive_dof] = -1.0
        F_tooth = g.tooth_k_n_per_m * float(b @ q) + g.tooth_c_ns_per_m * float(b @ v)
        f -= b * F_tooth
        K -= g.tooth_k_n_per_m * np.outer(b, b)
        C -= g.tooth_c_ns_per_m * np.outer(b, b)

        # Tensioner (spring pushes the idler toward its free travel)
        f[I_IDLER] += -g.tensioner_k_n_per_m * (q[I_IDLER] - g.tensioner_free_travel_m)
        f[I_IDLER] -= g.tensioner_c_ns_per_m * v[I_IDLER]
        K[I_IDLER, I_IDLER] -= g.tensioner_k_n_per_m
        C[I_IDLER, I_IDLER] -= g.tensioner_c_ns_per_m

        # Road wheel suspension + gravity
        w = self.wheel_dofs
        f[w] += -g.suspension_k_n_per_m * q[w] - g.suspension_c_ns_per_m * v[w] - g.wheel_mass_kg * G0
        K[w, w] -= g.suspension_k_n_per_m
        C[w, w] -= g.suspension_c_ns_per_m

        # Rolling resistance on the stations under the road wheels
        rs = self.wheel_station_dofs
        np.add.at(f, rs, -g.rolling_c_ns_per_m * v[rs])
        np.add.at(C, (rs, rs), -g.rolling_c_ns_per_m)

        # Belt ring elements
        B = self._B
        T, dT_dext, dT_drate = self.element_law(B @ q, B @ v)
        f -= B.T @ T
        K -= B.T @ (dT_dext[:, None] * B)
        C -= B.T @ (dT_drate[:, None] * B)

        # Point ties (linear penalty)
        if self._T.size:
            Tm = self._T
            F_tie = self.layout.tie_k * (Tm @ q) + self.layout.tie_c * (Tm @ v)
            f -= Tm.T @ F_tie
            K -= self.layout.tie_k * (Tm.T @ Tm)
            C -= self.layout.tie_c * (Tm.T @ Tm)

        return f, K, C

    def drive_torque_vector(self, torque: float) -> np.ndarray:
        f = np.zeros(self.num_dofs, dtype=float)
        f[I_SPROCKET] = float(torque)
        return f

    def post_contact(
        self,
        q: np.ndarray,
        v: np.ndarray,
        post_displacement: float,
        post_velocity: float,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Compression-only contact between the post platform and each road wheel
        (through the belt). Penetration p = d - gap - eta; damping only while closing.

        Returns (f, K, C, contact_forces_per_wheel).
        """
        g = self.geometry
        n = self.num_dofs
        f = np.zeros(n, dtype=float)
        K = np.zeros((n, n), dtype=float)
        C = np.zeros((n, n), dtype=float)
        forces = np.zeros(self.n_wheels, dtype=float)

        for k, dof in enumerate(self.wheel_dofs):
            p = float(post_displacement) - g.post_gap_m - float(q[dof])
            if p <= 0.0:
                continue
            p_rate = float(post_velocity) - float(v[dof])
            closing = p_rate > 0.0
            F = g.post_contact_k_n_per_m * p + (g.post_contact_c_ns_per_m * p_rate if closing else 0.0)
            forces[k] = F
            f[dof] += F
            K[dof, dof] -= g.post_contact_k_n_per_m
            if closing:
                C[dof, dof] -= g.post_contact_c_ns_per_m

        return f, K, C, forces

    def external_load_vector(
        self,
        force: np.ndarray,
        moment: np.ndarray,
        point: np.ndarray,
    ) -> np.ndarray:
        """
        Map a chassis-local force/moment bundle onto generalized forces.

          force.x -> shared by the belt stations under the road wheels
          force.z -> shared by the road wheels
          moment.y about the wheel centroid (incl. the moment of the force about
          `point`) -> differential vertical force on the road wheels
        Out-of-plane components (force.y, moment.x, moment.z) do not enter the planar model.
        """
        g = self.geometry
        fx, fz = float(force[0]), float(force[2])
        x = np.asarray(g.wheel_x, dtype=float)
        x_bar = float(np.mean(x))
        dx = x - x_bar
        z_bar = float(g.wheel_z)

        my = float(moment[1]) + (float(point[2]) - z_bar) * fx - (float(point[0]) - x_bar) * fz

        f = np.zeros(self.num_dofs, dtype=float)
        np.add.at(f, self.wheel_station_dofs, fx / self.n_wheels)

        denom = float(np.sum(dx * dx))
        vertical = np.full(self.n_wheels, fz / self.n_wheels)
        if denom > 0.0:
            vertical -= my * dx / denom
        f[self.wheel_dofs] += vertical
        return f

    # --- Poses (chassis-local, relative to the attach location) ---

    def sprocket_pose(self, q: np.ndarray) -> BodyPose:
        x, z = self.geometry.sprocket_xz
        return BodyPose(position=np.array([x, 0.0, z], dtype=float), angle=float(q[I_SPROCKET]))

    def idler_pose(self, q: np.ndarray) -> BodyPose:
        g = self.geometry
        x, z = g.idler_xz
        return BodyPose(
            position=np.array([x - float(q[I_IDLER]), 0.0, z], dtype=float),
            angle=float(q[self.idler_station_dof]) / g.idler_radius_m,
        )

    def road_wheel_poses(self, q: np.ndarray) -> list[BodyPose]:
        g = self.geometry
        poses = []
        for k, dof in enumerate(self.wheel_dofs):
            poses.append(
                BodyPose(
                    position=np.array([g.wheel_x[k], 0.0, g.wheel_z + float(q[dof])], dtype=float),
                    angle=float(q[self.wheel_station_dofs[k]]) / g.wheel_radius_m,
                )
            )
        return poses

    def post_rest_height(self) -> float:
        """Chassis-local z of the post platform top at zero commanded displacement."""
        g = self.geometry
        return g.wheel_z - g.wheel_radius_m - g.belt_thickness_m - g.post_gap_m
