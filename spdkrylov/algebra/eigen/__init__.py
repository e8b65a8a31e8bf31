"""
Spectral Estimation Module

Eigenvalue and condition number estimates of the (preconditioned) system
operator, reconstructed from the coefficients recorded by the Conjugate
Gradient recurrence. The estimates come from a small symmetric tridiagonal
(Lanczos) matrix and cost nothing beyond the solve itself.

Available Functions:
    - lanczos_matrix:           dense tridiagonal matrix from (delta, gamma)
    - tridiagonal_eigenvalues:  all Ritz values, ascending
    - extreme_eigenvalues:      smallest and largest Ritz value
    - condition_number:         lambda_max / lambda_min estimate (-1 when unavailable)
    - estimate_spectrum:        everything at once as a SpectralEstimate

This module uses lazy imports to minimize startup overhead.
"""

from typing import TYPE_CHECKING
import importlib

# -----------------------------------------------------------------------------------------------
# Lazy Import Configuration
# -----------------------------------------------------------------------------------------------

_LAZY_IMPORTS = {
    'lanczos_matrix'            : ('.tridiagonal', 'lanczos_matrix'),
    'tridiagonal_eigenvalues'   : ('.tridiagonal', 'tridiagonal_eigenvalues'),
    'extreme_eigenvalues'       : ('.tridiagonal', 'extreme_eigenvalues'),
    'condition_number'          : ('.tridiagonal', 'condition_number'),
    'estimate_spectrum'         : ('.tridiagonal', 'estimate_spectrum'),
    'SpectralEstimate'          : ('.result', 'SpectralEstimate'),
}

_LAZY_CACHE = {}

if TYPE_CHECKING:
    from .tridiagonal import (lanczos_matrix, tridiagonal_eigenvalues, extreme_eigenvalues,
                            condition_number, estimate_spectrum)
    from .result import SpectralEstimate

def __getattr__(name: str):
    """ Module-level __getattr__ for lazy imports. """
    if name in _LAZY_CACHE:
        return _LAZY_CACHE[name]
    if name not in _LAZY_IMPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_path, attr_name  = _LAZY_IMPORTS[name]
    module                  = importlib.import_module(module_path, package=__name__)
    result                  = getattr(module, attr_name)
    _LAZY_CACHE[name]       = result
    return result

def __dir__():
    return sorted(list(globals().keys()) + list(_LAZY_IMPORTS.keys()))

__all__ = list(_LAZY_IMPORTS.keys())
