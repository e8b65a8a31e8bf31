'''
file:       spdkrylov/algebra/solver.py

Defines the iterative solver engine for linear systems

$$
Ax = b,
$$

with A symmetric positive definite, potentially using a preconditioner M
applied as r -> M^{-1} r.

The engine is split in two:

- `Solver` owns the configuration, the convergence bookkeeping (tolerance,
  iteration cap, residual history) and the state machine

      INITIALIZING -> ITERATING -> {CONVERGED, EXHAUSTED, BREAKDOWN}

- an `IterativeMethod` (e.g. Conjugate Gradient) implements the
  method-specific `init_iteration` / `step` pair. Shared scalars are handed
  to it in an explicit `IterationState`; the method keeps its own scratch
  vectors in a workspace that lives as long as the solver.

Numerical trouble (breakdown, iteration cap) is reported through the status
of the returned `SolverResult`. Malformed configuration and inconsistent
dimensions raise `SolverError`.
'''

import math
from dataclasses import dataclass, field
from typing import Optional, Any, NamedTuple, List
from abc import ABC, abstractmethod
from enum import Enum, auto, unique

import numpy as np

# -----------------------------------------------------------------------------

from .utils import (Array, default_tolerance, default_maxiter, working_dtype,
                    make_matvec, operator_shape, norm)
from .preconditioners import IdentityPreconditioner
from ..common.flog import Logger, get_global_logger

# -----------------------------------------------------------------------------
#! Constants
# -----------------------------------------------------------------------------

# |p^T A p| <= DEFAULT_BREAKDOWN_TOL * |p|^2 counts as a vanishing denominator
DEFAULT_BREAKDOWN_TOL      = np.finfo(np.float64).eps ** 2

# -----------------------------------------------------------------------------

@unique
class SolverType(Enum):
    """
    Enumeration class for the available iterative methods.
    """
    CG              = auto() # Conjugate gradient

@unique
class SolverStatus(Enum):
    """
    States of the solve loop. The last three are terminal.
    """
    INITIALIZING    = auto()
    ITERATING       = auto()
    CONVERGED       = auto()
    EXHAUSTED       = auto() # iteration cap reached without convergence
    BREAKDOWN       = auto() # vanishing or sign-invalid recurrence denominator

    @property
    def terminal(self) -> bool:
        return self in (SolverStatus.CONVERGED, SolverStatus.EXHAUSTED, SolverStatus.BREAKDOWN)

# -----------------------------------------------------------------------------
#! Errors
# -----------------------------------------------------------------------------

class SolverErrorMsg(Enum):
    '''
    Enumeration class for solver error messages.
    '''
    MATVEC_FUNC_NOT_SET = 101
    CONV_FAILED         = 105
    DIM_MISMATCH        = 106
    METHOD_NOT_IMPL     = 109
    PRECOND_INVALID     = 110
    INVALID_INPUT       = 112
    INVALID_CONFIG      = 114
    BREAKDOWN           = 115

    def __str__(self):
        return self.name.replace('_', ' ').title()

    def __repr__(self):
        return f"<{self.__class__.__name__}.{self.name}: '{str(self)}'>"

class SolverError(Exception):
    '''
    Base class for exceptions in the solver module.
    '''
    def __init__(self, code: SolverErrorMsg, message: Optional[str] = None):
        self.code       = code
        self.message    = message if message else str(code)
        super().__init__(self.message)

    def __str__(self):
        return f"[SolverError {self.code.name} ({self.code.value})]: {self.message}"

    def __repr__(self):
        return self.__str__()

class SolverResult(NamedTuple):
    '''
    Stores the result of a solve.

    Attributes:
        x (Array):
            The computed solution vector (best iterate on breakdown).
        converged (bool):
            Whether the solver reached the desired tolerance.
        iterations (int):
            The number of iterations performed.
        residual_norm (float):
            Final relative residual ||b - Ax|| / ||b|| (0 for b = 0).
        status (SolverStatus):
            Terminal state: CONVERGED, EXHAUSTED or BREAKDOWN.
        history (list of float):
            Relative residual after initialization and after every step.
    '''
    x               : Array
    converged       : bool
    iterations      : int
    residual_norm   : float
    status          : SolverStatus          = SolverStatus.CONVERGED
    history         : Optional[List[float]] = None

    def raise_for_status(self) -> 'SolverResult':
        """
        Promote a non-converged result to an exception.

        Raises:
            SolverError:
                CONV_FAILED when the iteration cap was reached, BREAKDOWN when
                the recurrence broke down.
        """
        if self.status is SolverStatus.EXHAUSTED:
            raise SolverError(SolverErrorMsg.CONV_FAILED,
                    f"No convergence after {self.iterations} iterations, relative residual {self.residual_norm:.3e}")
        if self.status is SolverStatus.BREAKDOWN:
            raise SolverError(SolverErrorMsg.BREAKDOWN,
                    f"Breakdown after {self.iterations} iterations, relative residual {self.residual_norm:.3e}")
        return self

# -----------------------------------------------------------------------------
#! Configuration and state
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class SolverConfig:
    '''
    Immutable per-solver settings.

    Attributes:
        tol (float):
            Relative residual threshold, converged when ||r|| / ||b|| < tol.
        maxiter (int, optional):
            Iteration cap. None resolves to `utils.default_maxiter(n)` at solve time.
        track_spectrum (bool):
            Record the Lanczos coefficients of the recurrence.
        breakdown_tol (float):
            Relative threshold below which a recurrence denominator counts as zero.
    '''
    tol             : float         = field(default_factory=default_tolerance)
    maxiter         : Optional[int] = None
    track_spectrum  : bool          = False
    breakdown_tol   : float         = DEFAULT_BREAKDOWN_TOL

    def __post_init__(self):
        if isinstance(self.tol, bool) or not isinstance(self.tol, (int, float, np.floating, np.integer)):
            raise SolverError(SolverErrorMsg.INVALID_CONFIG, f"Tolerance must be a real number, got {self.tol!r}")
        if not math.isfinite(self.tol) or self.tol <= 0:
            raise SolverError(SolverErrorMsg.INVALID_CONFIG, f"Tolerance must be positive and finite, got {self.tol}")
        if self.maxiter is not None:
            if isinstance(self.maxiter, bool) or not isinstance(self.maxiter, (int, np.integer)):
                raise SolverError(SolverErrorMsg.INVALID_CONFIG, f"Iteration cap must be an integer, got {self.maxiter!r}")
            if self.maxiter <= 0:
                raise SolverError(SolverErrorMsg.INVALID_CONFIG, f"Iteration cap must be positive, got {self.maxiter}")
        if not math.isfinite(self.breakdown_tol) or self.breakdown_tol < 0:
            raise SolverError(SolverErrorMsg.INVALID_CONFIG, f"Breakdown tolerance must be non-negative, got {self.breakdown_tol}")

    def resolve_maxiter(self, n: int) -> int:
        return int(self.maxiter) if self.maxiter is not None else default_maxiter(n)

@dataclass
class IterationState:
    '''
    Scalars and iterate shared between the solve loop and the method.
    Reset at the start of every solve, read-only afterwards.
    '''
    config          : SolverConfig
    x               : Optional[Array]   = None
    rhs_norm        : Any               = 0.0
    error           : Any               = math.inf
    iterations      : int               = 0
    maxiter         : int               = 0
    status          : SolverStatus      = SolverStatus.INITIALIZING
    history         : List[float]       = field(default_factory=list)

    def relative(self, residual: Array) -> Any:
        """ ||residual|| / ||b||, stored as the current error. """
        self.error = norm(residual) / self.rhs_norm
        return self.error

    def below_tolerance(self) -> bool:
        return bool(self.error < self.config.tol)

# -----------------------------------------------------------------------------
#! Borrowed operators
# -----------------------------------------------------------------------------

class OperatorHandle:
    '''
    Non-owning view of a caller operator for the duration of one solve.

    The handle resolves the operator into a matvec function once, checks the
    advertised shape against the system size and validates the length of
    every result. The operator must outlive the solve; it is never copied.
    '''

    __slots__ = ('_op', '_matvec', '_n', '_role', '_code', 'applies')

    def __init__(self, op: Any, n: int, role: str = 'operator'):
        self._role      = role
        self._code      = SolverErrorMsg.PRECOND_INVALID if role == 'preconditioner' else SolverErrorMsg.MATVEC_FUNC_NOT_SET
        matvec          = make_matvec(op)
        if matvec is None:
            raise SolverError(self._code, f"Cannot use object of type {type(op).__name__} as {role}.")
        shape           = operator_shape(op)
        if shape is not None and shape != (n, n):
            raise SolverError(SolverErrorMsg.DIM_MISMATCH, f"{role.capitalize()} of shape {shape} does not match system size {n}.")
        self._op        = op
        self._matvec    = matvec
        self._n         = n
        self.applies    = 0

    def apply(self, v: Array, out: Array) -> Array:
        """
        Compute Op v into `out` (converted to the working precision of `out`).
        """
        w = np.asarray(self._matvec(v))
        if w.shape != out.shape:
            if w.size != self._n:
                code = SolverErrorMsg.PRECOND_INVALID if self._role == 'preconditioner' else SolverErrorMsg.DIM_MISMATCH
                raise SolverError(code,
                        f"{self._role.capitalize()} returned shape {w.shape}, expected ({self._n},).")
            w = w.reshape(out.shape)
        out[...] = w
        self.applies += 1
        return out

    @property
    def operator(self) -> Any:
        return self._op

    @property
    def n(self) -> int:
        return self._n

# -----------------------------------------------------------------------------
#! Method interface
# -----------------------------------------------------------------------------

class IterativeMethod(ABC):
    '''
    Interface of a Krylov method driven by `Solver`.

    A method owns its workspace (scratch vectors reused across solves) and
    any method-specific recordings. Everything shared with the loop goes
    through the `IterationState` argument. Both hooks return the status the
    loop should continue with: ITERATING, CONVERGED or BREAKDOWN.
    '''

    name            : str                   = "Iterative method"
    solver_type     : Optional[SolverType]  = None

    def reset(self, state: IterationState) -> None:
        """ Called at the start of every solve, before the rhs is inspected. """

    @abstractmethod
    def init_iteration(self,
                    state   : IterationState,
                    rhs     : Array,
                    matvec  : OperatorHandle,
                    precond : OperatorHandle) -> SolverStatus:
        """
        Set up the recurrence from the initial guess `state.x`. Called only
        for a nonzero right-hand side (`state.rhs_norm > 0`).
        """

    @abstractmethod
    def step(self,
            state   : IterationState,
            matvec  : OperatorHandle,
            precond : OperatorHandle) -> SolverStatus:
        """
        Perform one iteration, updating `state.x` and `state.error`.
        """

# -----------------------------------------------------------------------------
#! Solver
# -----------------------------------------------------------------------------

class Solver:
    '''
    Convergence-driven solve loop around an `IterativeMethod`.

    The solver is synchronous and not reentrant: scratch vectors of the method
    are reused between solves, so concurrent `solve` calls on the same
    instance are not allowed. Use one instance per thread.

    Example:
        >>> solver = Solver(ConjugateGradient(), eps=1e-8)
        >>> result = solver.solve(a, b)
        >>> result.status, result.iterations
    '''
    _solver_type : Optional[SolverType] = None

    def __init__(self,
                method          : IterativeMethod,
                eps             : Optional[float]   = None,
                maxiter         : Optional[int]     = None,
                track_spectrum  : bool              = False,
                breakdown_tol   : float             = DEFAULT_BREAKDOWN_TOL,
                verbose         : bool              = False,
                logger          : Optional[Logger]  = None):
        '''
        Args:
            method (IterativeMethod):
                The Krylov method providing init_iteration/step.
            eps (float, optional):
                Relative residual tolerance. Defaults to PY_SOLVER_TOL or 1e-10.
            maxiter (int, optional):
                Iteration cap. Defaults to PY_SOLVER_MAXITER or a multiple of the size.
            track_spectrum (bool):
                Record recurrence coefficients for spectral estimates.
            breakdown_tol (float):
                Relative threshold for vanishing denominators.
            verbose (bool):
                Log every iteration (debug level) and a summary (info level).
            logger (Logger, optional):
                Logger to use, the global logger by default.

        Raises:
            SolverError: INVALID_CONFIG for an invalid tolerance or iteration cap.
        '''
        if not isinstance(method, IterativeMethod):
            raise SolverError(SolverErrorMsg.METHOD_NOT_IMPL, f"Expected an IterativeMethod, got {type(method).__name__}.")
        self._config    = SolverConfig(tol              = default_tolerance() if eps is None else eps,
                                    maxiter             = maxiter,
                                    track_spectrum      = bool(track_spectrum),
                                    breakdown_tol       = breakdown_tol)
        self._method    = method
        self._verbose   = verbose
        self._logger    = logger if logger is not None else get_global_logger()
        self._state     : Optional[IterationState] = None

    # -------------------------------------------------------------------------
    #! Solve
    # -------------------------------------------------------------------------

    def _prepare(self, a: Any, b: Any, x0: Any, precond: Any):
        """
        Validate the inputs and build the iterate and operator handles.
        """
        b = np.asarray(b)
        if b.ndim != 1 or b.shape[0] == 0:
            raise SolverError(SolverErrorMsg.INVALID_INPUT, f"Right-hand side must be a non-empty vector, got shape {b.shape}.")
        n = b.shape[0]
        if x0 is not None:
            x0 = np.asarray(x0)
            if x0.shape != (n,):
                raise SolverError(SolverErrorMsg.DIM_MISMATCH, f"Initial guess of shape {x0.shape} does not match rhs of shape {b.shape}.")
        dtype = working_dtype(b, x0)
        if dtype is None:
            raise SolverError(SolverErrorMsg.INVALID_INPUT, "Only real systems are supported.")
        if not np.all(np.isfinite(b)) or (x0 is not None and not np.all(np.isfinite(x0))):
            raise SolverError(SolverErrorMsg.INVALID_INPUT, "Right-hand side and initial guess must be finite.")

        if a is None:
            raise SolverError(SolverErrorMsg.MATVEC_FUNC_NOT_SET, "No operator given.")
        matvec  = OperatorHandle(a, n, role='operator')
        pc      = OperatorHandle(precond if precond is not None else IdentityPreconditioner(), n, role='preconditioner')

        x       = np.zeros(n, dtype=dtype) if x0 is None else x0.astype(dtype, copy=True)
        return b.astype(dtype, copy=False), x, matvec, pc

    def _init_iteration(self, state: IterationState, rhs: Array, matvec: OperatorHandle, precond: OperatorHandle) -> SolverStatus:
        state.rhs_norm = norm(rhs)
        if state.rhs_norm == 0:
            # b = 0 has the solution x = 0 whatever the initial guess
            state.x[...]    = 0
            state.error     = state.rhs_norm
            return SolverStatus.CONVERGED
        return self._method.init_iteration(state, rhs, matvec, precond)

    def solve(self, a: Any, b: Array, x0: Optional[Array] = None, precond: Any = None) -> SolverResult:
        """
        Solve Ax = b.

        Args:
            a:
                The operator: matrix, scipy LinearOperator, object with
                `apply(v)` or callable v -> Av. Borrowed for this call only.
            b (Array):
                Right-hand side vector of length n.
            x0 (Array, optional):
                Initial guess, zeros by default. Never modified.
            precond (optional):
                Preconditioner applying r -> M^{-1} r (same kinds as `a`).
                None means no preconditioning.

        Returns:
            SolverResult:
                Solution, convergence flag, iterations, final relative residual,
                terminal status and residual history.

        Raises:
            SolverError:
                For invalid inputs or inconsistent dimensions, before any iteration.
        """
        rhs, x, matvec, pc  = self._prepare(a, b, x0, precond)
        state               = IterationState(config=self._config, x=x)
        state.maxiter       = self._config.resolve_maxiter(rhs.shape[0])
        self._state         = state
        self._method.reset(state)

        state.status        = self._init_iteration(state, rhs, matvec, pc)
        if state.status is SolverStatus.INITIALIZING:
            state.status    = SolverStatus.ITERATING
        state.history.append(float(state.error))

        while state.status is SolverStatus.ITERATING and state.iterations < state.maxiter:
            state.status        = self._method.step(state, matvec, pc)
            state.iterations   += 1
            state.history.append(float(state.error))
            if self._verbose:
                self._logger.debug(f"({self._method.name}) it={state.iterations:5d}  rel.res={float(state.error):.6e}", lvl=1)

        if state.status is SolverStatus.ITERATING:
            state.status    = SolverStatus.EXHAUSTED

        self._report(state, matvec, pc)
        return SolverResult(x               = state.x,
                            converged       = state.status is SolverStatus.CONVERGED,
                            iterations      = state.iterations,
                            residual_norm   = float(state.error),
                            status          = state.status,
                            history         = list(state.history))

    def _report(self, state: IterationState, matvec: OperatorHandle, pc: OperatorHandle):
        if state.status is SolverStatus.EXHAUSTED:
            self._logger.warning(f"({self._method.name}) Did not converge within {state.maxiter} iterations, "
                                f"relative residual {float(state.error):.3e} (tol={self._config.tol:.1e}).")
        elif state.status is SolverStatus.BREAKDOWN:
            self._logger.warning(f"({self._method.name}) Breakdown at iteration {state.iterations}: "
                                f"vanishing or non-positive recurrence denominator, the operator or "
                                f"preconditioner may not be SPD.")
        elif self._verbose:
            self._logger.info(f"({self._method.name}) Converged in {state.iterations} iterations, "
                            f"relative residual {float(state.error):.3e}, "
                            f"{matvec.applies} operator / {pc.applies} preconditioner applications.")

    # -------------------------------------------------------------------------
    #! Properties
    # -------------------------------------------------------------------------

    @property
    def method(self) -> IterativeMethod:
        return self._method

    @property
    def config(self) -> SolverConfig:
        return self._config

    @property
    def state(self) -> Optional[IterationState]:
        return self._state

    @property
    def tolerance(self) -> float:
        return self._config.tol

    @property
    def max_iterations(self) -> Optional[int]:
        return self._config.maxiter

    @property
    def track_spectrum(self) -> bool:
        return self._config.track_spectrum

    @property
    def solution(self) -> Optional[Array]:
        return None if self._state is None else self._state.x

    @property
    def status(self) -> Optional[SolverStatus]:
        return None if self._state is None else self._state.status

    @property
    def converged(self) -> Optional[bool]:
        return None if self._state is None else self._state.status is SolverStatus.CONVERGED

    @property
    def iterations(self) -> Optional[int]:
        return None if self._state is None else self._state.iterations

    @property
    def residual_norm(self) -> Optional[float]:
        return None if self._state is None else float(self._state.error)

    @property
    def history(self) -> List[float]:
        return [] if self._state is None else list(self._state.history)

    # -------------------------------------------------------------------------

    def detail(self) -> str:
        """ Multi-line description of the configuration and of the last solve. """
        lines = [f"{self.__class__.__name__} ({self._method.name})",
                f"    tolerance      : {self._config.tol:.3e}",
                f"    max iterations : {self._config.maxiter if self._config.maxiter is not None else 'auto'}",
                f"    track spectrum : {self._config.track_spectrum}"]
        if self._state is not None:
            lines += [f"    status         : {self._state.status.name}",
                    f"    iterations     : {self._state.iterations}",
                    f"    rel. residual  : {float(self._state.error):.3e}"]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(method={self._method.name!r}, eps={self._config.tol}, "
                f"maxiter={self._config.maxiter}, track_spectrum={self._config.track_spectrum})")

    def __str__(self) -> str:
        return self.detail()

# -----------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------
