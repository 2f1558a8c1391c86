"""YAML run configuration for the remap/transport driver.

A configuration file has the sections below; every key is optional and falls
back to DEFAULT_CONFIG.

    mesh:
      dim: 2
      nx: 16                # int (same for all axes) or list per axis
      bounds: [[0, 1], [0, 1]]
      periodic: true
      refine: 0             # uniform refinements, nx * 2**refine
    discretization:
      order: 3
      basis: bernstein
      mono_type: 4
      opt_scheme: true
    time:
      ode_solver: 3
      dt: 0.0025
      t_final: 4.0
      vis_steps: 100
    problem:
      number: 4
    output:
      verbose: false
      path: null
      plot: null            # image file for the final state
"""
import copy
import os

import yaml


DEFAULT_CONFIG = {
    'mesh': {
        'dim': 2,
        'nx': 16,
        'bounds': None,
        'periodic': True,
        'refine': 0,
    },
    'discretization': {
        'order': 3,
        'basis': 'bernstein',
        'mono_type': 4,
        'opt_scheme': True,
    },
    'time': {
        'ode_solver': 3,
        'dt': 0.0025,
        't_final': 4.0,
        'vis_steps': 100,
    },
    'problem': {
        'number': 4,
    },
    'output': {
        'verbose': False,
        'path': None,
        'plot': None,
    },
}


def load_config(config_path):
    """Load configuration from YAML file, merged over DEFAULT_CONFIG."""
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    return merge_config(DEFAULT_CONFIG, config)


def merge_config(base, overrides):
    """Recursively merge overrides into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_parameter(config, parameter_path, default=None):
    """
    Get a parameter from the config using dot notation.
    Example: get_parameter(config, "discretization.order", 3)
    """
    parts = parameter_path.split('.')
    current = config

    try:
        for part in parts:
            current = current[part]
        return current
    except (KeyError, TypeError):
        return default


def solver_kwargs(config):
    """Keyword arguments of RemapSolver from a merged configuration."""
    dim = get_parameter(config, 'mesh.dim', 2)
    nx = get_parameter(config, 'mesh.nx', 16)
    if isinstance(nx, int):
        nx = [nx] * dim
    refine = get_parameter(config, 'mesh.refine', 0)
    nx = [int(n) * 2**int(refine) for n in nx]

    return {
        'nx': nx,
        'bounds': get_parameter(config, 'mesh.bounds'),
        'periodic': get_parameter(config, 'mesh.periodic', True),
        'order': get_parameter(config, 'discretization.order', 3),
        'basis_type': get_parameter(config, 'discretization.basis', 'bernstein'),
        'mono_type': get_parameter(config, 'discretization.mono_type', 4),
        'opt_scheme': get_parameter(config, 'discretization.opt_scheme', True),
        'ode_solver_type': get_parameter(config, 'time.ode_solver', 3),
        'dt': get_parameter(config, 'time.dt', 0.0025),
        'problem_num': get_parameter(config, 'problem.number', 4),
        'verbose': get_parameter(config, 'output.verbose', False),
    }
