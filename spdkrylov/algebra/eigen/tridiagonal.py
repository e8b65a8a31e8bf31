r"""
Spectral estimates from the Conjugate Gradient recurrence.

CG applied to an SPD operator A with SPD preconditioner M implicitly runs the
Lanczos process on M^{-1}A in the M-inner product. The Lanczos matrix of the
first k steps is the symmetric tridiagonal

    T_k = tridiag(gamma, delta, gamma),    delta in R^k, gamma in R^{k-1},

whose entries follow from the CG step lengths alpha_j and direction
coefficients beta_j:

    delta_0     = 1 / alpha_0
    delta_j     = 1 / alpha_j + beta_{j-1} / alpha_{j-1}        (j >= 1)
    gamma_j     = -sqrt(beta_j) / alpha_j                         (j >= 0)

Derivation: with residuals r_j, preconditioned residuals z_j = M^{-1} r_j and
directions p_j, the Lanczos vectors are v_{j+1} = z_j / sqrt(r_j . z_j). From
p_j = z_j + beta_{j-1} p_{j-1} and r_{j+1} = r_j - alpha_j A p_j one gets

    M^{-1}A z_j = -(1/alpha_j) z_{j+1}
                  + (1/alpha_j + beta_{j-1}/alpha_{j-1}) z_j
                  - (beta_{j-1}/alpha_{j-1}) z_{j-1},

and normalizing with sqrt(r_j . z_j), using beta_j = (r_{j+1}.z_{j+1}) / (r_j.z_j),
turns both off-diagonal couplings into -sqrt(beta_j)/alpha_j. The sign of the
off-diagonal does not affect the eigenvalues.

The recorder in `spdkrylov.algebra.solvers.cg` accumulates exactly these
sequences: `delta[-1] += 1/alpha` after each step length, then appends
`beta/alpha` to delta and `-sqrt(beta)/alpha` to gamma.

Caveat: the eigenvalues of T_k are Ritz values. The extreme ones converge
quickly to the extreme eigenvalues of M^{-1}A, which is why the condition
number estimate is useful after a few iterations. Interior Ritz values are
unreliable until the Krylov space is nearly exhausted. The result is an
estimate, not an exact spectrum.

All functions here are pure: they only read the coefficient sequences.
"""

from typing import Optional, Sequence, Tuple, TYPE_CHECKING

import numpy as np
import scipy.linalg
from numpy.typing import NDArray

from .result import SpectralEstimate

if TYPE_CHECKING:
    from ...common.flog import Logger

# ----------------------------------------------------------------------------------------

_UNAVAILABLE_MSG = ("Spectral estimate unavailable: construct the solver with track_spectrum=True "
                    "and complete at least one iteration of a solve with a nonzero right-hand side.")

def _coefficients(delta: Sequence[float], gamma: Sequence[float]) -> Tuple[NDArray, NDArray]:
    """
    Validate the coefficient sequences and return them as float64 arrays.

    Raises:
        ValueError: if the lengths do not satisfy len(delta) == len(gamma) + 1
                    (or both empty) or if an entry is not finite.
    """
    d = np.asarray(delta, dtype=np.float64).reshape(-1)
    e = np.asarray(gamma, dtype=np.float64).reshape(-1)
    if d.size == 0:
        if e.size != 0:
            raise ValueError(f"Off-diagonal of length {e.size} given without a diagonal.")
        return d, e
    if e.size != d.size - 1:
        raise ValueError(f"Expected len(gamma) == len(delta) - 1, got {e.size} and {d.size}.")
    if not (np.all(np.isfinite(d)) and np.all(np.isfinite(e))):
        raise ValueError("Lanczos coefficients must be finite.")
    return d, e

def _unavailable(logger: Optional['Logger']) -> None:
    if logger is None:
        from ...common.flog import get_global_logger
        logger = get_global_logger()
    logger.warning(_UNAVAILABLE_MSG)

# ----------------------------------------------------------------------------------------
#! Tridiagonal matrix
# ----------------------------------------------------------------------------------------

def lanczos_matrix(delta: Sequence[float], gamma: Sequence[float]) -> NDArray:
    """
    Dense symmetric tridiagonal matrix with diagonal `delta` and off-diagonals `gamma`.
    """
    d, e    = _coefficients(delta, gamma)
    T       = np.diag(d)
    if d.size > 1:
        T  += np.diag(e, k=1) + np.diag(e, k=-1)
    return T

# ----------------------------------------------------------------------------------------
#! Eigenvalues
# ----------------------------------------------------------------------------------------

def tridiagonal_eigenvalues(delta: Sequence[float], gamma: Sequence[float], logger: Optional['Logger'] = None) -> NDArray:
    """
    All eigenvalues of the Lanczos matrix in ascending order.

    Returns an empty array (and logs a warning) when the sequences are empty.
    """
    d, e = _coefficients(delta, gamma)
    if d.size == 0:
        _unavailable(logger)
        return np.empty(0, dtype=np.float64)
    if d.size == 1:
        return d.copy()
    # symmetric tridiagonal eigensolver, O(k^2)
    return scipy.linalg.eigvalsh_tridiagonal(d, e, check_finite=False)

def extreme_eigenvalues(delta: Sequence[float], gamma: Sequence[float]) -> Tuple[float, float]:
    """
    Smallest and largest eigenvalue of the Lanczos matrix.

    Raises:
        ValueError: for empty sequences.
    """
    d, e = _coefficients(delta, gamma)
    k    = d.size
    if k == 0:
        raise ValueError("No Lanczos coefficients recorded.")
    if k == 1:
        return float(d[0]), float(d[0])
    lo = scipy.linalg.eigvalsh_tridiagonal(d, e, select='i', select_range=(0, 0), check_finite=False)
    hi = scipy.linalg.eigvalsh_tridiagonal(d, e, select='i', select_range=(k - 1, k - 1), check_finite=False)
    return float(lo[0]), float(hi[0])

def condition_number(delta: Sequence[float], gamma: Sequence[float], logger: Optional['Logger'] = None) -> float:
    """
    Estimate of the condition number lambda_max / lambda_min of the
    (preconditioned) operator.

    Returns:
        float: the estimate, or -1.0 (with a logged warning) when the sequences are empty.
    """
    d, e = _coefficients(delta, gamma)
    if d.size == 0:
        _unavailable(logger)
        return -1.0
    lam_min, lam_max = extreme_eigenvalues(d, e)
    if lam_min == 0.0:
        return float('inf')
    return lam_max / lam_min

def estimate_spectrum(delta: Sequence[float], gamma: Sequence[float], logger: Optional['Logger'] = None) -> SpectralEstimate:
    """
    Full spectral estimate (Ritz values, extremes, condition number).
    """
    d, e = _coefficients(delta, gamma)
    if d.size == 0:
        _unavailable(logger)
        return SpectralEstimate(eigenvalues       = np.empty(0, dtype=np.float64),
                                lambda_min          = float('nan'),
                                lambda_max          = float('nan'),
                                condition_number    = -1.0,
                                size                = 0)
    evals               = tridiagonal_eigenvalues(d, e)
    lam_min, lam_max    = float(evals[0]), float(evals[-1])
    return SpectralEstimate(eigenvalues         = evals,
                            lambda_min          = lam_min,
                            lambda_max          = lam_max,
                            condition_number    = float('inf') if lam_min == 0.0 else lam_max / lam_min,
                            size                = int(d.size))

# ----------------------------------------------------------------------------------------
#! EOF
# ----------------------------------------------------------------------------------------
