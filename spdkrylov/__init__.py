# spdkrylov/__init__.py

"""
spdkrylov - Krylov solvers for symmetric positive definite systems.

This package provides a preconditioned Conjugate Gradient solver for Ax = b
with A symmetric positive definite, driven through a generic iterative solver
engine, plus eigenvalue and condition number estimates reconstructed from the
CG recurrence.

Modules:
--------
- algebra   : Solver engine, Conjugate Gradient, preconditioners and spectral estimates
- common    : Logging utilities

Examples:
---------
>>> import numpy as np
>>> from spdkrylov.algebra.solvers.cg import CgSolver
>>> solver = CgSolver(eps=1e-10, track_spectrum=True)
>>> result = solver.solve(np.diag([1.0, 4.0, 9.0]), np.array([1.0, 2.0, 3.0]))
>>> result.x, solver.get_condition_number()

Version : 0.1.0
License : MIT
"""

import importlib

# Package metadata
__version__         = "0.1.0"
__license__         = "MIT"

MODULE_DESCRIPTION  = "Preconditioned Conjugate Gradient with Lanczos-based spectral estimates."

# List of available modules (not imported by default)
__all__             = ["algebra", "common"]

def get_module_description(module_name):
    """
    Get the description of a specific module in the spdkrylov package.

    Parameters
    ----------
    module_name : str
        The name of the module.

    Returns
    -------
    str
        The description of the module.
    """
    descriptions = {
        "algebra"   : "Iterative solver engine, Conjugate Gradient, preconditioners and spectral estimates.",
        "common"    : "Common utilities: coloured console and file logging.",
    }
    return descriptions.get(module_name, "Module not found.")

def list_available_modules():
    """
    List all available modules in the spdkrylov package.
    """
    return __all__

# Lazy import subpackages on attribute access (PEP 562)
def __getattr__(name):  # pragma: no cover - simple indirection
    if name in __all__:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

def __dir__():  # pragma: no cover
    return sorted(list(globals().keys()) + __all__)

# ---------------------------------------------------------------------
#! EOF
# ---------------------------------------------------------------------
