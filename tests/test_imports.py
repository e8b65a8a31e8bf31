'''
General tests for import behavior of the spdkrylov package.

Ensures that submodules are lazily imported and key exports are available.

Tests:
- Lazy loading of subpackages
- Key class/function exports
- Package metadata presence

File        : tests/test_imports.py
License     : MIT
'''

import types
import pytest

# -------------------------------------------------------------------

def test_root_imports_lazy():
    import spdkrylov as sk
    # Accessing attribute should trigger lazy import
    algebra = sk.algebra
    assert isinstance(algebra, types.ModuleType)
    assert algebra.__name__ == "spdkrylov.algebra"

def test_unknown_root_attribute():
    import spdkrylov as sk
    with pytest.raises(AttributeError):
        sk.not_a_module

# -------------------------------------------------------------------

def test_algebra_exports():
    from spdkrylov import algebra
    from spdkrylov.algebra.solvers.cg import CgSolver
    from spdkrylov.algebra.solver import SolverStatus

    assert algebra.CgSolver is CgSolver
    assert algebra.SolverStatus is SolverStatus
    assert callable(algebra.choose_solver)
    assert callable(algebra.choose_precond)
    assert callable(algebra.estimate_spectrum)
    assert isinstance(algebra.eigen, types.ModuleType)

def test_solvers_lazy_classes():
    from spdkrylov.algebra import solvers
    from spdkrylov.algebra.solvers.cg import ConjugateGradient, cg_solve

    assert solvers.ConjugateGradient is ConjugateGradient
    assert solvers.cg_solve is cg_solve
    with pytest.raises(AttributeError):
        solvers.MinresSolver

def test_algebra_solves_end_to_end():
    import numpy as np
    from spdkrylov import algebra

    result = algebra.cg_solve(np.diag([2.0, 4.0]), np.array([2.0, 4.0]))
    assert result.converged
    assert np.allclose(result.x, [1.0, 1.0])

# -------------------------------------------------------------------

def test_package_metadata():
    import spdkrylov as sk
    assert hasattr(sk, "__version__")
    assert sk.list_available_modules() == ["algebra", "common"]
    assert "Conjugate Gradient" in sk.get_module_description("algebra")
    assert sk.get_module_description("physics") == "Module not found."

# -------------------------------------------------------------------
#! End of file
# -------------------------------------------------------------------
