from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.patches import Circle, Rectangle

if TYPE_CHECKING:
    from track_rig.observer import ObservedFrame


def plot_trajectories(
    time_s: np.ndarray,
    sprocket_speed: np.ndarray,
    idler_travel_m: np.ndarray,
    throttle: np.ndarray,
    post_m: np.ndarray,
    out_path: Path,
    *,
    title: str = "",
) -> None:
    """Sprocket speed and idler travel with the driver signals below."""
    fig, (ax1, ax2, ax3) = plt.subplots(
        3, 1, figsize=(12, 10), sharex=True, gridspec_kw={"height_ratios": [2, 2, 1]}
    )

    ax1.plot(time_s, sprocket_speed, color="tab:blue", linewidth=1.4)
    ax1.axhline(y=0, color="gray", linewidth=0.8, linestyle="--")
    ax1.set_ylabel("Sprocket speed (rad/s)")
    ax1.set_title(title or "Track Test Rig")
    ax1.grid(True, alpha=0.3)

    ax2.plot(time_s, idler_travel_m * 1000.0, color="tab:green", linewidth=1.4)
    ax2.set_ylabel("Idler travel (mm)")
    ax2.grid(True, alpha=0.3)

    ax3.plot(time_s, throttle, color="tab:red", linewidth=1.2, label="throttle")
    ax3.set_ylabel("Throttle (-)")
    ax3.set_ylim(-0.05, 1.05)
    ax3b = ax3.twinx()
    ax3b.plot(time_s, post_m * 1000.0, color="tab:purple", linewidth=1.2, label="post")
    ax3b.set_ylabel("Post (mm)")
    ax3.set_xlabel("Time (s)")
    ax3.grid(True, alpha=0.3)

    lines = ax3.get_lines() + ax3b.get_lines()
    ax3.legend(lines, [l.get_label() for l in lines], loc="upper left", fontsize=8)

    plt.tight_layout()
    plt.savefig(out_path, dpi=160, bbox_inches="tight")
    plt.close()


def draw_rig_snapshot(frame: ObservedFrame, out_path: Path) -> None:
    """Side view (x-z) of the rig at one render frame."""
    fig, ax = plt.subplots(figsize=(10, 5))

    r = frame.wheel_radius_m
    bodies = [("sprocket", frame.sprocket, "tab:red"), ("idler", frame.idler, "tab:green")]
    bodies += [(f"wheel {k + 1}", p, "tab:blue") for k, p in enumerate(frame.road_wheels)]

    xs, zs = [], []
    for _name, pose, color in bodies:
        x, z = float(pose.position[0]), float(pose.position[2])
        xs.append(x)
        zs.append(z)
        ax.add_patch(Circle((x, z), r, fill=False, edgecolor=color, linewidth=1.6))
        # Spoke shows the spin angle.
        ax.plot([x, x + r * np.cos(pose.angle)], [z, z - r * np.sin(pose.angle)], color=color, linewidth=1.0)

    wheel_x = [float(p.position[0]) for p in frame.road_wheels]
    px, pz = float(frame.post_position[0]), float(frame.post_position[2])
    width = (max(wheel_x) - min(wheel_x) + 2.0 * r) if wheel_x else 2.0 * r
    ax.add_patch(Rectangle((px - 0.5 * width, pz - 0.05), width, 0.05, color="dimgray", alpha=0.7))

    ax.set_xlim(min(xs) - 2.0 * r, max(xs) + 2.0 * r)
    ax.set_ylim(min(zs + [pz]) - 3.0 * r, max(zs) + 2.0 * r)
    ax.set_aspect("equal")
    ax.set_xlabel("x (m)")
    ax.set_ylabel("z (m)")
    ax.set_title(
        f"t = {frame.time_s:.3f} s   throttle = {frame.control.throttle:.2f}   "
        f"post = {frame.control.post_displacement * 1000.0:.1f} mm"
    )
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(out_path, dpi=160, bbox_inches="tight")
    plt.close()
