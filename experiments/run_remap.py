#!/usr/bin/env python3
"""
Run a monotone DG transport/remap simulation.

Options mirror the classic command line of the remap miniapp and can be
combined with a YAML configuration (command-line values win):

    python experiments/run_remap.py -p 4 -o 2 --dim 2 --nx 16 -mt 4 -sc -tf 4
    python experiments/run_remap.py --config experiments/configs/rotation_2d.yaml

Monotonicity types (-mt):
    0 - no monotonicity treatment
    1 - discrete upwinding, low order
    2 - discrete upwinding, FCT
    3 - residual distribution, low order
    4 - residual distribution, FCT

ODE solvers (-s):
    1 - Forward Euler, 2 - RK2, 3 - SSP RK3, 4 - RK4, 5 - low-storage RK4,
    6 - RK6
"""
import argparse
import os
import sys

import numpy as np

# Get absolute path to project root and add to Python path
PROJECT_ROOT = os.path.abspath(os.path.join(
    os.path.dirname(__file__),
    '..'
))
sys.path.append(PROJECT_ROOT)

from dgremap.config import DEFAULT_CONFIG, load_config, merge_config, solver_kwargs
from dgremap.solvers.remap_solver import RemapSolver
from dgremap.visualization import plot_solution


def build_parser():
    parser = argparse.ArgumentParser(description="Monotone DG transport and remap")
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument("-p", "--problem", type=int, help="Problem setup to use")
    parser.add_argument("-r", "--refine", type=int, help="Number of uniform refinements")
    parser.add_argument("-o", "--order", type=int, help="Finite element order")
    parser.add_argument("-s", "--ode-solver", type=int, help="ODE solver type (1-6)")
    parser.add_argument("-mt", "--mono-type", type=int, help="Monotonicity treatment (0-4)")
    parser.add_argument("-sc", "--opt-scheme", dest="opt_scheme", action="store_true",
                        default=None, help="Use the optimized low-order scheme")
    parser.add_argument("-el", "--no-opt-scheme", dest="opt_scheme", action="store_false",
                        help="Use the element-based low-order scheme")
    parser.add_argument("-tf", "--t-final", type=float, help="Final time")
    parser.add_argument("-dt", "--time-step", type=float, help="Time step")
    parser.add_argument("-vs", "--vis-steps", type=int, help="Report every n-th step")
    parser.add_argument("--dim", type=int, help="Mesh dimension")
    parser.add_argument("--nx", type=int, nargs='+', help="Elements per axis")
    parser.add_argument("--basis", type=str, choices=["bernstein", "lagrange"])
    parser.add_argument("--output", type=str, help="Write the final state to this .npz file")
    parser.add_argument("--plot", type=str, help="Save a plot of the final state to this image file")
    parser.add_argument("-v", "--verbose", action="store_true", default=None)
    return parser


def config_from_args(args):
    """Merge the YAML config (if any) and the command-line overrides."""
    config = load_config(args.config) if args.config else merge_config(DEFAULT_CONFIG, {})

    overrides = {
        ('problem', 'number'): args.problem,
        ('mesh', 'refine'): args.refine,
        ('mesh', 'dim'): args.dim,
        ('mesh', 'nx'): args.nx[0] if args.nx and len(args.nx) == 1 else args.nx,
        ('discretization', 'order'): args.order,
        ('discretization', 'basis'): args.basis,
        ('discretization', 'mono_type'): args.mono_type,
        ('discretization', 'opt_scheme'): args.opt_scheme,
        ('time', 'ode_solver'): args.ode_solver,
        ('time', 't_final'): args.t_final,
        ('time', 'dt'): args.time_step,
        ('time', 'vis_steps'): args.vis_steps,
        ('output', 'path'): args.output,
        ('output', 'plot'): args.plot,
        ('output', 'verbose'): args.verbose,
    }
    for (section, key), value in overrides.items():
        if value is not None:
            config[section][key] = value
    return config


def run(config):
    """Build the solver from a merged config, integrate and report."""
    solver = RemapSolver(**solver_kwargs(config))
    t_final = config['time']['t_final']
    solver.solve(t_final, vis_steps=config['time']['vis_steps'])
    result = solver.summary()

    path = config['output']['path']
    if path:
        np.savez(path, u=solver.u, nodes=solver.mesh.nodes,
                 **{k: v for k, v in result.items()})
        if solver.verbose:
            print(f"Saved final state to {path}")

    plot_path = config['output'].get('plot')
    if plot_path:
        plot_solution(solver, plot_path)
        if solver.verbose:
            print(f"Saved plot to {plot_path}")
    return solver, result


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = config_from_args(args)
    _, result = run(config)
    for key, value in result.items():
        print(f"{key}: {value}")
    return result


if __name__ == "__main__":
    main()
