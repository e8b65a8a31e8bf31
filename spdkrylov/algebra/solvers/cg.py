r'''
file:       spdkrylov/algebra/solvers/cg.py

Implements the preconditioned Conjugate Gradient (CG) method for linear systems
of equations :math:`Ax = b`, where the matrix :math:`A` is symmetric and positive-definite (SPD).
This file provides:
    1. `ConjugateGradient`, the `IterativeMethod` with the CG recurrence.
    2. `CgSolver`, the convergence-driven solver running it, with optional
        spectral estimates from the recorded Lanczos coefficients.
    3. `cg_solve`, a one-shot functional wrapper.

Mathematical Formulation (Preconditioned CG):
-------------------------------------------
Given an SPD matrix :math:`A`, a right-hand side vector :math:`b`, an initial guess
:math:`x_0`, and an SPD preconditioner :math:`M \approx A`:

1.  Initialize:
    *   :math:`r_0 = b - Ax_0` (initial residual)
    *   Check convergence: :math:`\|r_0\|_2 < \epsilon \|b\|_2`
    *   :math:`p_0 = M^{-1}r_0` (apply preconditioner, initial search direction)
    *   :math:`\rho_0 = r_0^T p_0`

2.  Iterate :math:`k = 0, 1, 2, \dots` until convergence:
    *   :math:`\mathbf{v}_k = A p_k`
    *   :math:`\alpha_k = \rho_k / (p_k^T \mathbf{v}_k)` (step length)
    *   :math:`x_{k+1} = x_k + \alpha_k p_k`               (update solution)
    *   :math:`r_{k+1} = r_k - \alpha_k \mathbf{v}_k`     (update residual)
    *   Check convergence: :math:`\|r_{k+1}\|_2 < \epsilon \|b\|_2`
    *   :math:`z_{k+1} = M^{-1} r_{k+1}`                    (apply preconditioner)
    *   :math:`\rho_{k+1} = r_{k+1}^T z_{k+1}`
    *   :math:`\beta_k = \rho_{k+1} / \rho_k`            (update coefficient)
    *   :math:`p_{k+1} = z_{k+1} + \beta_k p_k`            (update search direction)

If no preconditioner is used (:math:`M = I`), then :math:`z_k = r_k`.

The step lengths and coefficients define the Lanczos matrix of :math:`M^{-1}A`,
see `spdkrylov.algebra.eigen.tridiagonal`.

References:
-----------
    - Hestenes, M. R., & Stiefel, E. (1952). Methods of Conjugate Gradients for
        Solving Linear Systems. Journal of Research of the National Bureau of Standards, 49(6), 409.
    - Saad, Y. (2003). Iterative Methods for Sparse Linear Systems (2nd ed.). SIAM. Chapter 6.
    - Golub, G. H., & Van Loan, C. F. (2013). Matrix Computations (4th ed.). Section 11.3.
'''

import math
from dataclasses import dataclass, field
from typing import Optional, Any, List, Tuple

import numpy as np

from ..solver import (Solver, SolverResult, SolverStatus, SolverType, IterativeMethod,
                    IterationState, OperatorHandle, DEFAULT_BREAKDOWN_TOL)
from ..utils import Array, dot, is_finite_scalar
from ..eigen.tridiagonal import condition_number, tridiagonal_eigenvalues, estimate_spectrum
from ..eigen.result import SpectralEstimate
from ...common.flog import Logger

# -----------------------------------------------------------------------------
#! Workspace and recorder
# -----------------------------------------------------------------------------

@dataclass
class CgWorkspace:
    '''
    Scratch vectors of the CG recurrence, reused across solves.

    Attributes:
        r:          residual b - Ax
        update:     search direction p
        tmp:        A p, then M^{-1} r
        abs_new:    current r^T M^{-1} r
        abs_old:    previous r^T M^{-1} r
    '''
    r               : Optional[Array]   = None
    update          : Optional[Array]   = None
    tmp             : Optional[Array]   = None
    abs_new         : Any               = 0.0
    abs_old         : Any               = 0.0
    allocations     : int               = 0

    def ensure(self, n: int, dtype) -> bool:
        """
        Make sure the vectors have length n and the given dtype.
        Returns True when they had to be (re)allocated.
        """
        if self.r is not None and self.r.shape[0] == n and self.r.dtype == dtype:
            return False
        self.r              = np.empty(n, dtype=dtype)
        self.update         = np.empty(n, dtype=dtype)
        self.tmp            = np.empty(n, dtype=dtype)
        self.allocations   += 1
        return True

    @property
    def size(self) -> int:
        return 0 if self.r is None else self.r.shape[0]

@dataclass
class LanczosTrace:
    '''
    Diagonal (delta) and off-diagonal (gamma) of the Lanczos matrix,
    accumulated from the CG step lengths and direction coefficients.

    `open` marks a diagonal entry that still waits for its 1/alpha term.
    '''
    delta           : List[float]       = field(default_factory=list)
    gamma           : List[float]       = field(default_factory=list)
    open            : bool              = False

    def clear(self, enabled: bool = True) -> None:
        self.delta  = [0.0] if enabled else []
        self.gamma  = []
        self.open   = enabled

    def add_step_length(self, alpha) -> None:
        self.delta[-1] += float(1.0 / alpha)
        self.open       = False

    def add_direction(self, alpha, beta) -> None:
        self.gamma.append(float(-math.sqrt(beta) / alpha))
        self.delta.append(float(beta / alpha))
        self.open = True

    def completed(self) -> Tuple[List[float], List[float]]:
        """
        Coefficients of the fully completed iterations only. After a
        non-converged step the last diagonal entry lacks its 1/alpha term,
        so it is dropped together with the coupling that led to it.
        """
        if not self.open:
            return list(self.delta), list(self.gamma)
        return self.delta[:-1], self.gamma[:-1]

    def __len__(self) -> int:
        return len(self.completed()[0])

# -----------------------------------------------------------------------------
#! Method
# -----------------------------------------------------------------------------

class ConjugateGradient(IterativeMethod):
    '''
    Preconditioned Conjugate Gradient recurrence.

    A breakdown is reported when p^T A p vanishes relative to |p|^2 or
    when r^T M^{-1} r is not positive, which happens when the operator or the
    preconditioner is not SPD.
    '''

    name            = "Conjugate Gradient"
    solver_type     = SolverType.CG

    def __init__(self):
        self._workspace = CgWorkspace()
        self._trace     = LanczosTrace()

    @property
    def workspace(self) -> CgWorkspace:
        return self._workspace

    @property
    def trace(self) -> LanczosTrace:
        return self._trace

    def reset(self, state: IterationState) -> None:
        self._trace.clear(state.config.track_spectrum)

    # -------------------------------------------------------------------------

    def init_iteration(self,
                    state   : IterationState,
                    rhs     : Array,
                    matvec  : OperatorHandle,
                    precond : OperatorHandle) -> SolverStatus:
        ws = self._workspace
        ws.ensure(state.x.shape[0], state.x.dtype)

        # r = b - A x0
        matvec.apply(state.x, ws.tmp)
        np.subtract(rhs, ws.tmp, out=ws.r)
        state.relative(ws.r)
        if state.below_tolerance():
            return SolverStatus.CONVERGED

        # p = M^{-1} r
        precond.apply(ws.r, ws.update)
        ws.abs_new = dot(ws.r, ws.update)
        ws.abs_old = ws.abs_new
        if not is_finite_scalar(ws.abs_new) or ws.abs_new <= 0:
            return SolverStatus.BREAKDOWN
        return SolverStatus.ITERATING

    def step(self,
            state   : IterationState,
            matvec  : OperatorHandle,
            precond : OperatorHandle) -> SolverStatus:
        ws      = self._workspace
        track   = state.config.track_spectrum

        # v = A p
        matvec.apply(ws.update, ws.tmp)
        denom   = dot(ws.update, ws.tmp)
        if not is_finite_scalar(denom) or abs(denom) <= state.config.breakdown_tol * dot(ws.update, ws.update):
            return SolverStatus.BREAKDOWN

        alpha   = ws.abs_new / denom
        if track:
            self._trace.add_step_length(alpha)

        state.x    += alpha * ws.update
        ws.r       -= alpha * ws.tmp
        state.relative(ws.r)
        if state.below_tolerance():
            return SolverStatus.CONVERGED

        # z = M^{-1} r, reusing tmp
        precond.apply(ws.r, ws.tmp)
        ws.abs_old  = ws.abs_new
        ws.abs_new  = dot(ws.r, ws.tmp)
        if ws.abs_old == 0 or not is_finite_scalar(ws.abs_new) or ws.abs_new <= 0:
            return SolverStatus.BREAKDOWN

        beta        = ws.abs_new / ws.abs_old
        ws.update  *= beta
        ws.update  += ws.tmp
        if track:
            self._trace.add_direction(alpha, beta)
        return SolverStatus.ITERATING

# -----------------------------------------------------------------------------
#! Solver
# -----------------------------------------------------------------------------

class CgSolver(Solver):
    '''
    Conjugate Gradient solver for SPD systems.

    With `track_spectrum=True` the recurrence coefficients of the last solve
    are kept and give eigenvalue and condition number estimates of M^{-1}A
    at no extra operator cost.

    Example:
        >>> solver = CgSolver(eps=1e-10, track_spectrum=True)
        >>> result = solver.solve(np.diag([1.0, 4.0, 9.0]), np.ones(3))
        >>> solver.get_condition_number()   # ~ 9.0
    '''
    _solver_type = SolverType.CG

    def __init__(self,
                eps             : Optional[float]   = None,
                maxiter         : Optional[int]     = None,
                track_spectrum  : bool              = False,
                breakdown_tol   : float             = DEFAULT_BREAKDOWN_TOL,
                verbose         : bool              = False,
                logger          : Optional[Logger]  = None):
        super().__init__(ConjugateGradient(),
                        eps             = eps,
                        maxiter         = maxiter,
                        track_spectrum  = track_spectrum,
                        breakdown_tol   = breakdown_tol,
                        verbose         = verbose,
                        logger          = logger)

    # -------------------------------------------------------------------------
    #! Spectral estimates
    # -------------------------------------------------------------------------

    def lanczos_coefficients(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Diagonal and off-diagonal of the Lanczos matrix of the last solve.
        Both are empty when tracking is off or no iteration was completed.
        """
        if not self._config.track_spectrum or self._state is None:
            return np.empty(0, dtype=np.float64), np.empty(0, dtype=np.float64)
        delta, gamma = self._method.trace.completed()
        return np.asarray(delta, dtype=np.float64), np.asarray(gamma, dtype=np.float64)

    def get_condition_number(self) -> float:
        """
        Estimated condition number of the (preconditioned) operator from the
        last solve, or -1 when no estimate is available.
        """
        return condition_number(*self.lanczos_coefficients(), logger=self._logger)

    def get_eigenvalues(self) -> np.ndarray:
        """
        Ritz values of the (preconditioned) operator from the last solve,
        ascending. Empty when no estimate is available.
        """
        return tridiagonal_eigenvalues(*self.lanczos_coefficients(), logger=self._logger)

    def estimate_spectrum(self) -> SpectralEstimate:
        return estimate_spectrum(*self.lanczos_coefficients(), logger=self._logger)

# -----------------------------------------------------------------------------

def cg_solve(a              : Any,
            b               : Array,
            x0              : Optional[Array]   = None,
            precond         : Any               = None,
            *,
            tol             : Optional[float]   = None,
            maxiter         : Optional[int]     = None,
            logger          : Optional[Logger]  = None) -> SolverResult:
    """
    One-shot CG solve of Ax = b with a fresh `CgSolver`.

    Returns:
        SolverResult: see `Solver.solve`.
    """
    return CgSolver(eps=tol, maxiter=maxiter, logger=logger).solve(a, b, x0=x0, precond=precond)

# -----------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------
