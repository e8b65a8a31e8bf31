'''
file:       spdkrylov/algebra/preconditioners.py

This module contains the preconditioners consumed by the iterative solvers
of linear systems Ax = b. A preconditioner M approximates A and exposes the
cheap operation

z = M^{-1} r,

which the Conjugate Gradient method applies to every new residual. For CG the
preconditioner must itself be symmetric positive definite; the iteration then
runs on the operator M^{-1}A in the M-inner product, whose spectrum should be
more favourable (eigenvalues clustered, smaller condition number) than that
of A.

Every preconditioner is an "operator-like" object: it has `apply(r)` and is
callable, so it can be handed to `Solver.solve` directly. Plain callables and
matrices are accepted by the solver as well.
'''

from abc import ABC, abstractmethod
from typing import Union, Optional, Any
from enum import Enum, unique
import inspect

import numpy as np
import scipy.sparse as sps
import scipy.linalg as sla

from .utils import Array, make_matvec, operator_shape
from ..common.flog import get_global_logger

# ---------------------------------------------------------------------

_TOLERANCE_SMALL        = 1e-13

def preconditioner_idn(r: Array) -> Array:
    """
    Identity function for preconditioner apply.

    Parameters:
        r (Array): The input array.

    Returns:
        Array: The same input array.
    """
    return r

@unique
class PreconditionersTypeSym(Enum):
    """
    Enumeration of the symmetric preconditioner types.
    """
    IDENTITY            = 0
    JACOBI              = 1
    COMPLETE_CHOLESKY   = 3
    OPERATOR            = 5

# ---------------------------------------------------------------------
#! Preconditioners
# ---------------------------------------------------------------------

class Preconditioner(ABC):
    """
    Abstract base class for preconditioners M used in iterative solvers.

    Subclasses either receive their data at construction or through
    `set(a, sigma)`, which builds M from the system matrix A (regularized as
    A + sigma*I). Applying the inverse is done with `apply(r)` or by calling
    the instance.

    Attributes:
        type (PreconditionersTypeSym):
            The specific type of the preconditioner.
        sigma (float):
            Regularization used by the last `set` call.
        is_set (bool):
            True when the preconditioner holds the data needed by `apply`.
    """

    _type : Optional[PreconditionersTypeSym]    = None
    _name : str                                 = "General Preconditioner"

    def __init__(self):
        self._sigma     = 0.0
        self._n         : Optional[int] = None

    # -----------------------------------------------------------------

    def set(self, a: Any, sigma: float = 0.0) -> 'Preconditioner':
        """
        Build the preconditioner from the matrix A + sigma*I.

        Args:
            a:
                Dense or scipy.sparse square matrix.
            sigma (float):
                Diagonal shift applied before the setup.
        Returns:
            The preconditioner itself, so that `Jacobi().set(a)` chains.
        """
        shape = operator_shape(a)
        if shape is None or len(shape) != 2 or shape[0] != shape[1]:
            raise ValueError(f"({self._name}) expects a square matrix, got shape {shape}")
        self._sigma = float(sigma)
        self._n     = shape[0]
        self._setup(a, self._sigma)
        return self

    def _setup(self, a: Any, sigma: float):
        raise NotImplementedError(f"{self._name} cannot be built from a matrix.")

    @abstractmethod
    def apply(self, r: Array) -> Array:
        """
        Apply M^{-1} to the residual r.

        Args:
            r (Array): residual vector of length n.

        Returns:
            Approximation of A^{-1} r, same shape as r.
        """

    def __call__(self, r: Array) -> Array:
        return self.apply(r)

    # -----------------------------------------------------------------

    @property
    def type(self) -> Optional[PreconditionersTypeSym]:
        return self._type

    @property
    def name(self) -> str:
        return self._name

    @property
    def sigma(self) -> float:
        return self._sigma

    @property
    def shape(self) -> Optional[tuple]:
        return None if self._n is None else (self._n, self._n)

    @property
    def is_set(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(sigma={self._sigma})"

    def __str__(self) -> str:
        return self._name

# =====================================================================
#! Identity
# =====================================================================

class IdentityPreconditioner(Preconditioner):
    """
    Identity preconditioner M = I. CG with this preconditioner performs the
    same iteration as unpreconditioned CG.
    """
    _name = "Identity Preconditioner"
    _type = PreconditionersTypeSym.IDENTITY

    def _setup(self, a: Any, sigma: float):
        pass

    def apply(self, r: Array) -> Array:
        return preconditioner_idn(r)

# =====================================================================
#! Jacobi
# =====================================================================

class JacobiPreconditioner(Preconditioner):
    """
    Jacobi (Diagonal) Preconditioner. M = diag(A + sigma*I).

    Math:
        M       = diag(A) + sigma*I = D + sigma*I
        M^{-1}r = [1 / (A_ii + sigma)] * r_i

    Entries whose magnitude falls below `tol_small` are treated as zero and
    their component of M^{-1}r is set to zero.

    References:
        - Saad, Y. (2003). Iterative Methods for Sparse Linear Systems (2nd ed.). SIAM. Chapter 10.
    """
    _name = "Jacobi Preconditioner"
    _type = PreconditionersTypeSym.JACOBI

    def __init__(self, diag: Optional[Array] = None, tol_small: float = _TOLERANCE_SMALL):
        super().__init__()
        self._tol_small                     = tol_small
        self._inv_diag  : Optional[Array]   = None
        if diag is not None:
            diag            = np.asarray(diag)
            self._n         = diag.shape[0]
            self._inv_diag  = JacobiPreconditioner._compute_inv_diag(diag, 0.0, tol_small)

    @staticmethod
    def _compute_inv_diag(diag_a: Array, sigma: float, tol_small: float) -> Array:
        """
        Inverse of diag(A) + sigma, with near-zero entries mapped to zero.
        """
        reg_diag    = np.asarray(diag_a) + sigma
        is_small    = np.abs(reg_diag) < tol_small
        safe_diag   = np.where(is_small, 1.0, reg_diag)
        return np.where(is_small, 0.0, 1.0 / safe_diag)

    def _setup(self, a: Any, sigma: float):
        diag_a          = a.diagonal() if sps.issparse(a) else np.diag(np.asarray(a))
        self._inv_diag  = JacobiPreconditioner._compute_inv_diag(diag_a, sigma, self._tol_small)

    def apply(self, r: Array) -> Array:
        if self._inv_diag is None:
            raise ValueError(f"({self._name}) not set up, call set(a) or pass diag.")
        if r.ndim != 1 or r.shape[0] != self._inv_diag.shape[0]:
            raise ValueError(f"Shape mismatch in Jacobi apply: r={r.shape}, inv_diag={self._inv_diag.shape}")
        return self._inv_diag * r

    @property
    def inv_diag(self) -> Optional[Array]:
        return self._inv_diag

    @property
    def is_set(self) -> bool:
        return self._inv_diag is not None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(sigma={self._sigma}, tol_small={self._tol_small})"

# =====================================================================
#! Complete Cholesky factorization
# =====================================================================

class CholeskyPreconditioner(Preconditioner):
    """
    Cholesky Preconditioner using the complete Cholesky decomposition of the
    regularized matrix A + sigma*I = L L^T.

    Applying the inverse M^{-1}r solves two triangular systems. With sigma = 0
    this is an exact solve, so CG converges in a single step; the class is
    mostly a reference point for small dense problems.

    References:
        - Golub, G. H., & Van Loan, C. F. (2013). Matrix Computations (4th ed.). JHU Press. Chapter 4.
    """
    _name = "Cholesky Preconditioner"
    _type = PreconditionersTypeSym.COMPLETE_CHOLESKY

    def __init__(self):
        super().__init__()
        self._factor = None

    def _setup(self, a: Any, sigma: float):
        a_dense         = a.toarray() if sps.issparse(a) else np.asarray(a)
        a_reg           = a_dense + sigma * np.eye(a_dense.shape[0], dtype=a_dense.dtype)
        # raises LinAlgError when A + sigma*I is not positive definite
        self._factor    = sla.cho_factor(a_reg, lower=True, check_finite=False)

    def apply(self, r: Array) -> Array:
        if self._factor is None:
            raise ValueError(f"({self._name}) not factorized, call set(a).")
        return sla.cho_solve(self._factor, r, check_finite=False)

    @property
    def is_set(self) -> bool:
        return self._factor is not None

    def __repr__(self) -> str:
        status = "Factorized" if self._factor is not None else "Not Factorized"
        return f"{self.__class__.__name__}(sigma={self._sigma}, status='{status}')"

# =====================================================================
#! Arbitrary operator
# =====================================================================

class OperatorPreconditioner(Preconditioner):
    """
    Preconditioner wrapping an arbitrary linear operator P with P(r) ~ A^{-1} r.

    Accepts anything the solver accepts as an operator: dense or sparse
    matrices, scipy LinearOperators, objects with `apply` and callables.
    `set(a)` only fixes the system size; the wrapped operator is used as is
    and `sigma` is ignored.
    """
    _name = "Operator Preconditioner"
    _type = PreconditionersTypeSym.OPERATOR

    def __init__(self, operator: Any):
        super().__init__()
        matvec = make_matvec(operator)
        if matvec is None:
            raise TypeError(f"Cannot use object of type {type(operator)} as a preconditioner.")
        shape           = operator_shape(operator)
        self._op_n      = shape[0] if shape is not None and len(shape) == 2 else None
        self._n         = self._op_n
        self._op        = operator
        self._matvec    = matvec

    def _setup(self, a: Any, sigma: float):
        if self._op_n is not None and self._op_n != self._n:
            n, self._n = self._n, self._op_n
            raise ValueError(f"({self._name}) wraps an operator of size {self._op_n}, got a matrix of size {n}")

    def apply(self, r: Array) -> Array:
        return np.asarray(self._matvec(r))

    @property
    def operator(self) -> Any:
        return self._op

# ---------------------------------------------------------------------
#! Factory
# ---------------------------------------------------------------------

_PRECOND_CLASSES = {
    PreconditionersTypeSym.IDENTITY             : IdentityPreconditioner,
    PreconditionersTypeSym.JACOBI               : JacobiPreconditioner,
    PreconditionersTypeSym.COMPLETE_CHOLESKY    : CholeskyPreconditioner,
    PreconditionersTypeSym.OPERATOR             : OperatorPreconditioner,
}

_PRECOND_ALIASES = {
    'identity'  : PreconditionersTypeSym.IDENTITY,
    'none'      : PreconditionersTypeSym.IDENTITY,
    'jacobi'    : PreconditionersTypeSym.JACOBI,
    'diagonal'  : PreconditionersTypeSym.JACOBI,
    'cholesky'  : PreconditionersTypeSym.COMPLETE_CHOLESKY,
    'operator'  : PreconditionersTypeSym.OPERATOR,
}

def _resolve_precond_type(precond_id: Union[str, int, PreconditionersTypeSym]) -> PreconditionersTypeSym:
    if isinstance(precond_id, PreconditionersTypeSym):
        return precond_id
    if isinstance(precond_id, str):
        key = precond_id.strip().lower()
        if key in _PRECOND_ALIASES:
            return _PRECOND_ALIASES[key]
        try:
            return PreconditionersTypeSym[precond_id.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown preconditioner name: {precond_id!r}") from None
    if isinstance(precond_id, int):
        try:
            return PreconditionersTypeSym(precond_id)
        except ValueError:
            raise ValueError(f"Unknown preconditioner id: {precond_id}") from None
    raise TypeError(f"Invalid preconditioner identifier type: {type(precond_id)}")

def choose_precond(precond_id: Any, a: Any = None, sigma: float = 0.0, **kwargs) -> Optional[Preconditioner]:
    """
    Factory function to select and instantiate a preconditioner.

    Args:
        precond_id (Any):
            Identifier: a Preconditioner instance (returned as is), a
            PreconditionersTypeSym member, its name or its integer value.
        a (Any, optional):
            When given, the new preconditioner is set up from this matrix.
        sigma (float):
            Regularization for the setup.
        **kwargs:
            Additional arguments for the constructor.

    Returns:
        Preconditioner or None when `precond_id` is None.
    """
    if precond_id is None:
        return None

    if isinstance(precond_id, Preconditioner):
        if kwargs:
            get_global_logger().warning(f"Preconditioner instance provided; ignoring kwargs: {kwargs}")
        return precond_id

    target_class    = _PRECOND_CLASSES[_resolve_precond_type(precond_id)]
    valid_args      = inspect.signature(target_class.__init__).parameters
    ignored         = {k: v for k, v in kwargs.items() if k not in valid_args}
    if ignored:
        get_global_logger().warning(f"Ignoring invalid kwargs for {target_class.__name__}: {ignored}")
    precond         = target_class(**{k: v for k, v in kwargs.items() if k in valid_args})
    if a is not None:
        precond.set(a, sigma=sigma)
    return precond

# =====================================================================
#! End of File
# =====================================================================
