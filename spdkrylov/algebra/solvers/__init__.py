'''
Solver module for iterative linear solvers.

Initialization file for the solvers module. Exports the solver base classes,
the SolverType enum, and the choose_solver factory function.
----------------------------------------------------------------
File        : spdkrylov/algebra/solvers/__init__.py
Description : Factory to choose and instantiate a solver from a name, an
              integer code, a SolverType member or a class. Concrete solver
              classes are imported lazily on first access.
----------------------------------------------------------------
'''

import inspect
import importlib
from typing import Union, Type

from ..solver import (Solver, SolverResult, SolverError, SolverErrorMsg, SolverType, SolverStatus,
                    IterativeMethod, Array)
from ..preconditioners import Preconditioner, choose_precond
from ...common.flog import get_global_logger

# -----------------------------------------------------------------------------
# Lazy Loading Configuration
# -----------------------------------------------------------------------------

_LAZY_MODULES = {
    'CgSolver'                  : '.cg',
    'ConjugateGradient'         : '.cg',
    'CgWorkspace'               : '.cg',
    'LanczosTrace'              : '.cg',
    'cg_solve'                  : '.cg',
}

_SOLVER_ALIASES = {
    'cg'                        : SolverType.CG,
    'conjugate_gradient'        : SolverType.CG,
    'conjugate gradient'        : SolverType.CG,
}

# -----------------------------------------------------------------------------

def _solver_class(solver_type: SolverType) -> Type[Solver]:
    if solver_type == SolverType.CG:
        from .cg import CgSolver
        return CgSolver
    raise SolverError(SolverErrorMsg.METHOD_NOT_IMPL, f"Solver type {solver_type} is defined but not mapped to a class.")

def choose_solver(solver_id: Union[str, int, SolverType, Type[Solver], Solver], **kwargs) -> Solver:
    """
    Factory function to select and instantiate a solver based on identifier.
    Uses lazy loading to import specific solver classes only when requested.

    Parameters
    ----------
    solver_id : Union[str, int, SolverType, Type[Solver], Solver]
        Identifier for the solver: a name ('cg', 'conjugate_gradient'), an
        integer code, a SolverType member, a Solver subclass or an instance.
    **kwargs
        Keyword arguments passed to the solver constructor (eps, maxiter,
        track_spectrum, verbose, logger, ...). Unknown keys are dropped.

    Returns
    -------
    Solver
        An instance of the selected solver class.

    Raises
    ------
    SolverError
        METHOD_NOT_IMPL for an unknown identifier.

    Examples
    --------
    >>> solver = choose_solver("cg", eps=1e-8)
    >>> solver = choose_solver(SolverType.CG, track_spectrum=True)
    """

    # 1. Handle Instance Passthrough
    if isinstance(solver_id, Solver):
        if kwargs:
            logger = kwargs.get('logger') or get_global_logger()
            logger.warning(f"Solver instance provided; ignoring kwargs: {sorted(kwargs)}")
        return solver_id

    # 2. Resolve the class
    target_class: Type[Solver] = None
    if isinstance(solver_id, type) and issubclass(solver_id, Solver):
        target_class = solver_id
    elif isinstance(solver_id, SolverType):
        target_class = _solver_class(solver_id)
    elif isinstance(solver_id, str):
        key = solver_id.strip()
        if key.lower() in _SOLVER_ALIASES:
            target_class = _solver_class(_SOLVER_ALIASES[key.lower()])
        elif key.upper() in SolverType.__members__:
            target_class = _solver_class(SolverType[key.upper()])
        elif key in _LAZY_MODULES:
            candidate = getattr(importlib.import_module(_LAZY_MODULES[key], package=__name__), key)
            if isinstance(candidate, type) and issubclass(candidate, Solver):
                target_class = candidate
    elif isinstance(solver_id, int) and not isinstance(solver_id, bool):
        try:
            target_class = _solver_class(SolverType(solver_id))
        except ValueError:
            target_class = None

    if target_class is None:
        raise SolverError(SolverErrorMsg.METHOD_NOT_IMPL, f"Unknown solver identifier: {solver_id!r}")

    # 3. Instantiate, passing only the arguments the constructor accepts
    params      = inspect.signature(target_class.__init__).parameters
    has_varkw   = any(p.kind == inspect.Parameter.VAR_KEYWORD for p in params.values())
    filtered    = {k: v for k, v in kwargs.items() if has_varkw or k in params}
    return target_class(**filtered)

# -----------------------------------------------------------------------------
# Module-level __getattr__ for Lazy Imports
# -----------------------------------------------------------------------------

def __getattr__(name):
    """
    Lazy import of solver classes when accessed directly (e.g. solvers.CgSolver).
    """
    if name in _LAZY_MODULES:
        module = importlib.import_module(_LAZY_MODULES[name], package=__name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    'Solver', 'SolverResult', 'SolverError', 'SolverErrorMsg', 'SolverType', 'SolverStatus',
    'IterativeMethod', 'Preconditioner', 'choose_solver', 'choose_precond',
    # lazy
    'CgSolver', 'ConjugateGradient', 'CgWorkspace', 'LanczosTrace', 'cg_solve',
]

# -----------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------
