"""
Spectral Estimate Result Type

Standardized result container for the eigenvalue estimates derived from the
recurrence coefficients of a Krylov solve.
"""

from typing import NamedTuple
from numpy.typing import NDArray

class SpectralEstimate(NamedTuple):
    r"""
    Eigenvalue estimates of the (preconditioned) operator.

    Attributes:
        eigenvalues:
            All eigenvalues (Ritz values) of the Lanczos matrix, ascending.
        lambda_min:
            Smallest Ritz value (estimate of the smallest eigenvalue).
        lambda_max:
            Largest Ritz value (estimate of the largest eigenvalue).
        condition_number:
            lambda_max / lambda_min, -1 when no data was available.
        size:
            Dimension of the Lanczos matrix (number of completed iterations).
    """
    eigenvalues         : NDArray
    lambda_min          : float
    lambda_max          : float
    condition_number    : float
    size                : int

    @property
    def available(self) -> bool:
        return self.size > 0

    def __repr__(self):
        if not self.available:
            return "SpectralEstimate(unavailable)"
        return (f"SpectralEstimate(size={self.size}, lambda_min={self.lambda_min:.6e}, "
                f"lambda_max={self.lambda_max:.6e}, condition_number={self.condition_number:.6e})")

# ------------------------------------------------------------------------------------------------
#! EOF
# ------------------------------------------------------------------------------------------------
