"""
A module for iterative linear algebra on symmetric positive definite systems.

Key functionalities provided include:
    - The convergence-driven solver engine and the Conjugate Gradient method.
    - Preconditioners (identity, Jacobi, Cholesky, arbitrary operators).
    - Eigenvalue and condition number estimates from the CG recurrence.

This module uses lazy imports to minimize startup overhead. Submodules are only
loaded when accessed.
"""

from typing import TYPE_CHECKING
import importlib

# -----------------------------------------------------------------------------------------------
# Lazy Import Configuration
# -----------------------------------------------------------------------------------------------

# Mapping of attribute names to their module paths and actual attribute names
_LAZY_IMPORTS = {
    # Solver-related imports
    'Solver'                : ('.solver', 'Solver'),
    'SolverResult'          : ('.solver', 'SolverResult'),
    'SolverError'           : ('.solver', 'SolverError'),
    'SolverErrorMsg'        : ('.solver', 'SolverErrorMsg'),
    'SolverStatus'          : ('.solver', 'SolverStatus'),
    'SolverType'            : ('.solver', 'SolverType'),
    'choose_solver'         : ('.solvers', 'choose_solver'),
    'CgSolver'              : ('.solvers.cg', 'CgSolver'),
    'cg_solve'              : ('.solvers.cg', 'cg_solve'),
    'choose_precond'        : ('.preconditioners', 'choose_precond'),
    'estimate_spectrum'     : ('.eigen.tridiagonal', 'estimate_spectrum'),
    # Utility imports from common
    'get_logger'            : ('..common.flog', 'get_global_logger'),
    # Submodules (lazy)
    'solver'                : ('.solver', None),
    'solvers'               : ('.solvers', None),
    'preconditioners'       : ('.preconditioners', None),
    'eigen'                 : ('.eigen', None),
    'utils'                 : ('.utils', None),
}

# Cache for lazily loaded modules/attributes
_LAZY_CACHE = {}

# For type checking, import types without runtime overhead
if TYPE_CHECKING:
    from .solver import Solver, SolverResult, SolverError, SolverErrorMsg, SolverStatus, SolverType
    from .solvers import choose_solver
    from .solvers.cg import CgSolver, cg_solve
    from .preconditioners import choose_precond
    from .eigen.tridiagonal import estimate_spectrum
    from ..common.flog import get_global_logger as get_logger

# -----------------------------------------------------------------------------------------------
# Lazy Import Implementation
# -----------------------------------------------------------------------------------------------

def _lazy_import(name: str):
    """
    Lazily import a module or attribute based on _LAZY_IMPORTS configuration.

    Parameters
    ----------
    name : str
        The name of the attribute to import lazily.

    Returns
    -------
    The imported module or attribute.
    """
    if name in _LAZY_CACHE:
        return _LAZY_CACHE[name]

    if name not in _LAZY_IMPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_path, attr_name  = _LAZY_IMPORTS[name]
    module                  = importlib.import_module(module_path, package=__name__)

    # If attr_name is None, we want the module itself
    result                  = module if attr_name is None else getattr(module, attr_name)
    _LAZY_CACHE[name]       = result
    return result

def __getattr__(name: str):
    """
    Module-level __getattr__ for lazy imports.
    """
    return _lazy_import(name)

def __dir__():
    return sorted(list(globals().keys()) + list(_LAZY_IMPORTS.keys()))

__all__ = list(_LAZY_IMPORTS.keys())

# -----------------------------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------------------------
