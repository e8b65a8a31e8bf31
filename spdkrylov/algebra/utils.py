# file        :   spdkrylov/algebra/utils.py

'''
This module provides the numeric glue shared by the solvers:

- Process defaults read from environment variables (working float type,
  default tolerance and iteration cap).
- Resolution of the working real precision of a solve from the caller's data.
- Plain dot products and norms evaluated in the working precision.
- Resolution of operator-like objects (matrices, LinearOperators, objects
  with `apply`, callables) into matvec functions.

Environment variables:
    - PY_FLOATING_POINT : float used when the caller hands in integer data ('float64' or 'float32').
    - PY_SOLVER_TOL     : default relative residual tolerance.
    - PY_SOLVER_MAXITER : default iteration cap (empty means size dependent).
'''

import os
from typing import Optional, Type, TypeAlias, Any, Callable

import numpy as np
import scipy.sparse as sps

# ---------------------------------------------------------------------
#! Enviroment variable names
# ---------------------------------------------------------------------

PY_FLOATING_POINT_STR   : str               = "PY_FLOATING_POINT"
PY_SOLVER_TOL_STR       : str               = "PY_SOLVER_TOL"
PY_SOLVER_MAXITER_STR   : str               = "PY_SOLVER_MAXITER"

# ---------------------------------------------------------------------

Array                   : TypeAlias         = np.ndarray

DEFAULT_TOL             : float             = 1e-10
DEFAULT_NP_FLOAT_TYPE   : Type              = np.float64
DEFAULT_MAXITER_FACTOR  : int               = 2
MIN_DEFAULT_MAXITER     : int               = 10

_FLOAT_TYPES            = {
    'float64'   : np.float64,
    'double'    : np.float64,
    'float32'   : np.float32,
    'single'    : np.float32,
}

# ---------------------------------------------------------------------
#! SET VARIABLES
# ---------------------------------------------------------------------

def _env_float_type() -> Type:
    name = os.environ.get(PY_FLOATING_POINT_STR, 'float64').strip().lower()
    if name not in _FLOAT_TYPES:
        raise ValueError(f"{PY_FLOATING_POINT_STR}={name!r} is not one of {sorted(_FLOAT_TYPES)}")
    return _FLOAT_TYPES[name]

def _env_tol() -> float:
    return float(os.environ.get(PY_SOLVER_TOL_STR, DEFAULT_TOL))

def _env_maxiter() -> Optional[int]:
    value = os.environ.get(PY_SOLVER_MAXITER_STR, '').strip()
    return int(value) if value else None

# ---------------------------------------------------------------------
#! Precision
# ---------------------------------------------------------------------

def default_float_type() -> Type:
    """
    Float type used when the caller supplies integer (or boolean) data.
    Read from PY_FLOATING_POINT on each call so tests may patch the environment.
    """
    return _env_float_type()

def default_tolerance() -> float:
    return _env_tol()

def default_maxiter(n: int) -> int:
    """
    Iteration cap used when none was configured: PY_SOLVER_MAXITER if set,
    otherwise a multiple of the problem size (CG needs at most n steps in
    exact arithmetic, the same again is allowed for rounding).
    """
    env = _env_maxiter()
    if env is not None:
        return env
    return max(DEFAULT_MAXITER_FACTOR * int(n), MIN_DEFAULT_MAXITER)

def working_dtype(*arrays: Optional[Array]) -> np.dtype:
    """
    Determine the real working precision of a solve.

    Integer and boolean data are promoted to `default_float_type()`. Complex
    data is rejected by returning None; the caller turns that into an error.

    Args:
        *arrays:
            Caller arrays (None entries are skipped).
    Returns:
        np.dtype or None:
            The floating dtype to compute in, None for complex input.
    """
    dts = [np.asarray(a).dtype for a in arrays if a is not None]
    dt  = np.result_type(*dts) if dts else np.dtype(default_float_type())
    if np.issubdtype(dt, np.complexfloating):
        return None
    if not np.issubdtype(dt, np.floating):
        return np.dtype(default_float_type())
    return np.dtype(dt)

# ---------------------------------------------------------------------
#! Vector kernels
# ---------------------------------------------------------------------

def dot(a: Array, b: Array) -> Any:
    """
    Plain (uncompensated) inner product a . b in the dtype of the inputs.
    """
    return np.dot(a, b)

def norm(a: Array) -> Any:
    """
    Euclidean norm in the dtype of the input.
    """
    return np.sqrt(np.dot(a, a))

def is_finite_scalar(value: Any) -> bool:
    return bool(np.isfinite(value))

# ---------------------------------------------------------------------
#! Operator glue
# ---------------------------------------------------------------------

def operator_shape(op: Any) -> Optional[tuple]:
    """
    Shape advertised by an operator-like object, None for plain callables.
    """
    shape = getattr(op, 'shape', None)
    if shape is None:
        return None
    return tuple(int(s) for s in shape)

def make_matvec(op: Any) -> Optional[Callable[[Array], Any]]:
    """
    Turn an operator-like object into a function v -> Op v.

    Checked in order:
        1. objects exposing `apply(v)` (preconditioners, user operators),
        2. objects exposing `matvec(v)` (scipy.sparse.linalg.LinearOperator),
        3. dense numpy arrays and scipy.sparse matrices/arrays (`op @ v`),
        4. plain callables.

    Returns:
        The matvec function, or None when `op` is none of the above.
    """
    apply = getattr(op, 'apply', None)
    if callable(apply):
        return apply
    matvec = getattr(op, 'matvec', None)
    if callable(matvec):
        return matvec
    if isinstance(op, np.ndarray) or sps.issparse(op):
        def _matmul(v: Array) -> Array:
            return op @ v
        return _matmul
    if callable(op):
        return op
    return None

# ---------------------------------------------------------------------
#! EOF
# ---------------------------------------------------------------------
