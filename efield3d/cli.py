"""
Command line driver.

Usage:
    efield3d --fpos anode.stl --fneg cathode.stl -n 200 --reps 500 --out run.txt
    efield3d --config rings.json --seed 42 --tee run.txt --scan=-50,50,100

Ctrl-C stops the run at the next sweep boundary; the final report and the
output file are still written.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import platform
import signal
import sys
from datetime import datetime
from pathlib import Path

from efield3d.core.balancer import CancellationToken
from efield3d.core.run import RelaxationRun, log_summary
from efield3d.errors import ConfigurationError
from efield3d.params import RunParams
from efield3d.physics.potential import scan_axis
from efield3d.utils.export import write_particle_dump, write_scan

logger = logging.getLogger("efield3d")


def _user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="efield3d",
        description="Calculate the electric field produced by an arrangement of charged conductors",
    )
    parser.add_argument("--params", help="JSON parameter file; other switches override it")
    parser.add_argument("--fpos", help="STL description of the anode")
    parser.add_argument("--fneg", help="STL description of the cathode")
    parser.add_argument("--config", "-f", help="JSON or XML shape configuration")
    parser.add_argument("-n", "--particles", type=int, help="Number of positive and negative particles")
    parser.add_argument("--reps", type=int, help="Number of sweeps over all particles")
    parser.add_argument("--batch", type=int, help="Sweeps between progress reports")
    parser.add_argument("--seed", type=int, help="Random seed, to repeat a run")
    parser.add_argument("--cutoff", "-c", type=float, help="Minimum distance in potential calculations")
    parser.add_argument("--normalized", action="store_true", help="Use relative potentials (ke = 1)")
    parser.add_argument("--scale", type=float, help="STL units to meters (default 0.001)")
    output = parser.add_mutually_exclusive_group()
    output.add_argument("--out", help="Send the output to a file instead of the console")
    output.add_argument("--tee", help="Send the output to a file in addition to the console")
    parser.add_argument("--scan", "-X", help="Potential scan along x in mm: X0,X1,N (written to the file)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log every sweep")
    return parser


def params_from_args(args: argparse.Namespace) -> RunParams:
    params = RunParams.load(args.params) if args.params else RunParams()
    if args.fpos:
        params.positive_file = args.fpos
    if args.fneg:
        params.negative_file = args.fneg
    if args.config:
        params.geometry_file = args.config
    if args.particles is not None:
        if args.particles <= 0:
            raise ConfigurationError("Invalid number of particles")
        params.particle_count = args.particles
    if args.reps is not None:
        if args.reps < 0:
            raise ConfigurationError("Invalid number of repetitions")
        params.reps = args.reps
    if args.batch is not None:
        params.batch = args.batch
    if args.seed is not None:
        params.seed = args.seed
    if args.cutoff is not None:
        params.cutoff = args.cutoff
    if args.normalized:
        params.coulomb = "normalized"
    if args.scale is not None:
        params.stl_scale = args.scale
    if args.out:
        params.out_file, params.tee = args.out, False
    if args.tee:
        params.out_file, params.tee = args.tee, True
    if args.scan:
        limits = args.scan.split(",")
        try:
            params.scan_x0, params.scan_x1, params.scan_points = float(limits[0]), float(limits[1]), int(limits[2])
        except (IndexError, ValueError):
            raise ConfigurationError(f"Invalid scan specification {args.scan!r}") from None
    params.verbose = params.verbose or args.verbose
    return params.clamp()


def configure_logging(params: RunParams) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if not params.out_file or params.tee:
        handlers.append(logging.StreamHandler(sys.stdout))
    if params.out_file:
        handlers.append(logging.FileHandler(params.out_file, mode="w", encoding="utf-8"))
    fmt = logging.Formatter("%(message)s")
    for h in handlers:
        h.setFormatter(fmt)
        logger.addHandler(h)
    logger.setLevel(logging.DEBUG if params.verbose else logging.INFO)
    logger.propagate = False
    return handlers


def _write_results(params: RunParams, run: RelaxationRun) -> None:
    balancer = run.balancer
    with open(params.out_file, "a", encoding="utf-8") as f:
        if params.scan_points > 0:
            rows = scan_axis(
                balancer.positives,
                balancer.negatives,
                balancer.unit_charge,
                x0=params.scan_x0,
                x1=params.scan_x1,
                count=params.scan_points,
                cutoff=params.cutoff,
                ke=params.coulomb_constant,
            )
            write_scan(f, rows)
        write_particle_dump(f, balancer.positives, balancer.negatives)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        params = params_from_args(args)
    except (ConfigurationError, OSError) as exc:
        print(f"Error on command line: {exc}", file=sys.stderr)
        return 2

    try:
        handlers = configure_logging(params)
    except OSError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    cancel = CancellationToken()
    previous = None
    try:
        logger.info("Command line: efield3d %s", " ".join(argv if argv is not None else sys.argv[1:]))
        logger.info("Run by: %s on %s", _user(), platform.node())
        logger.info(datetime.now().isoformat(sep=" ", timespec="seconds"))
        for w in params.validate():
            logger.warning("Warning: %s", w)

        run = RelaxationRun.from_params(params)

        def on_sigint(signum, frame) -> None:
            cancel.cancel()

        previous = signal.signal(signal.SIGINT, on_sigint)
        summary = run.run(cancel)
        log_summary(summary)
    except (ConfigurationError, OSError) as exc:
        logger.error("ERROR: %s", exc)
        return 1
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)
        for h in handlers:
            logger.removeHandler(h)
            h.close()

    if params.out_file:
        try:
            _write_results(params, run)
        except OSError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1
        print(f"Results written to {Path(params.out_file)}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
