#!/usr/bin/env -S uv run

from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path

from track_rig.config import DEFAULT_CONFIG_JSON, resolve_path
from track_rig.errors import TrackRigError
from track_rig.logging_config import setup_logging
from track_rig.rig_commands import run_simulate_rig
from track_rig.settings import load_rig_config
from track_rig.track_variants import TRACK_VARIANTS


def main() -> None:
    parser = argparse.ArgumentParser(description="Track test rig: drive one track assembly on a post actuator.")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_JSON, help="Path to config.json.")
    parser.add_argument("--variant", choices=sorted(TRACK_VARIANTS), help="Override track.variant.")
    parser.add_argument("--t-end", type=float, help="Override solver.t_end_s (s).")
    parser.add_argument("--out", type=str, help="Override output.dir.")
    parser.add_argument("--snapshots", action="store_true", help="Write img_NNN.png rig snapshots.")
    parser.add_argument("--load-csv", type=Path, help="Replay a time,fx,fz,my load table onto the track.")
    parser.add_argument("--load-cfc", type=float, help="CFC class applied to --load-csv channels.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging (per-step Newton iterations).")
    parser.add_argument("--log-file", type=str, help="Also write the log to this file.")
    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    try:
        config = load_rig_config(args.config)

        if args.variant:
            config = replace(config, track_variant=args.variant)
        if args.t_end is not None:
            config = replace(config, t_end=args.t_end)

        out_dir = resolve_path(args.out) if args.out else config.snapshot.output_dir
        config = replace(
            config,
            snapshot=replace(
                config.snapshot,
                enabled=config.snapshot.enabled or args.snapshots,
                output_dir=out_dir,
            ),
        )

        run_simulate_rig(config, out_dir=out_dir, load_csv=args.load_csv, load_cfc=args.load_cfc)
    except TrackRigError as e:
        raise SystemExit(f"{type(e).__name__}: {e}") from e


if __name__ == "__main__":
    main()
