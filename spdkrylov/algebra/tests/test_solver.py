import math
import pytest
import numpy as np

from spdkrylov.algebra.solver import (Solver, SolverConfig, SolverError, SolverErrorMsg, SolverResult,
                                    SolverStatus, SolverType, OperatorHandle)
from spdkrylov.algebra.solvers import choose_solver
from spdkrylov.algebra.solvers.cg import CgSolver, ConjugateGradient, LanczosTrace

# -------------------------------------------------------------------

class RecordingLogger:
    """Collects messages by level instead of printing them."""

    def __init__(self):
        self.records = {'debug': [], 'info': [], 'warning': []}

    def debug(self, msg, lvl=0, verbose=True, color=None):
        self.records['debug'].append(msg)

    def info(self, msg, lvl=0, verbose=True, color=None):
        self.records['info'].append(msg)

    def warning(self, msg, lvl=0, verbose=True, color='yellow'):
        self.records['warning'].append(msg)

def create_random_spd(n, cond=100.0, seed=0):
    rng     = np.random.default_rng(seed)
    Q, _    = np.linalg.qr(rng.standard_normal((n, n)))
    A       = Q @ np.diag(np.logspace(0, np.log10(cond), n)) @ Q.T
    return 0.5 * (A + A.T)

def assert_code(excinfo, code):
    assert excinfo.value.code is code

# -------------------------------------------------------------------

class TestSolverConfiguration:

    @pytest.mark.parametrize("eps", [0.0, -1e-8, float('nan'), float('inf'), 'small'])
    def test_invalid_tolerance(self, eps):
        with pytest.raises(SolverError) as excinfo:
            CgSolver(eps=eps)
        assert_code(excinfo, SolverErrorMsg.INVALID_CONFIG)

    @pytest.mark.parametrize("maxiter", [0, -3, 2.5, True])
    def test_invalid_maxiter(self, maxiter):
        with pytest.raises(SolverError) as excinfo:
            CgSolver(maxiter=maxiter)
        assert_code(excinfo, SolverErrorMsg.INVALID_CONFIG)

    def test_invalid_breakdown_tolerance(self):
        with pytest.raises(SolverError) as excinfo:
            CgSolver(breakdown_tol=-1.0)
        assert_code(excinfo, SolverErrorMsg.INVALID_CONFIG)

    def test_not_a_method(self):
        with pytest.raises(SolverError) as excinfo:
            Solver(object())
        assert_code(excinfo, SolverErrorMsg.METHOD_NOT_IMPL)

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PY_SOLVER_TOL", raising=False)
        monkeypatch.delenv("PY_SOLVER_MAXITER", raising=False)
        solver = CgSolver()

        assert solver.tolerance == 1e-10
        assert solver.max_iterations is None
        assert solver.track_spectrum is False
        assert solver.config.resolve_maxiter(3) == 10
        assert solver.config.resolve_maxiter(40) == 80

    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("PY_SOLVER_TOL", "1e-6")
        monkeypatch.setenv("PY_SOLVER_MAXITER", "4")
        solver = CgSolver()
        solver.solve(create_random_spd(20, seed=1), np.ones(20))

        assert solver.tolerance == 1e-6
        assert solver.state.maxiter == 4
        assert solver.iterations <= 4

    def test_explicit_arguments_override_environment(self, monkeypatch):
        monkeypatch.setenv("PY_SOLVER_TOL", "1e-3")
        monkeypatch.setenv("PY_SOLVER_MAXITER", "2")
        solver = CgSolver(eps=1e-9, maxiter=7)
        solver.solve(create_random_spd(20, seed=2), np.ones(20))

        assert solver.tolerance == 1e-9
        assert solver.state.maxiter == 7

    def test_config_is_frozen(self):
        config = SolverConfig(tol=1e-8)
        with pytest.raises(Exception):
            config.tol = 1.0

# -------------------------------------------------------------------

class TestSolverInputValidation:

    def setup_method(self):
        self.A      = np.diag([1.0, 2.0, 3.0])
        self.solver = CgSolver()

    def test_rhs_size_mismatch(self):
        with pytest.raises(SolverError) as excinfo:
            self.solver.solve(self.A, np.ones(4))
        assert_code(excinfo, SolverErrorMsg.DIM_MISMATCH)

    def test_initial_guess_size_mismatch(self):
        with pytest.raises(SolverError) as excinfo:
            self.solver.solve(self.A, np.ones(3), x0=np.zeros(2))
        assert_code(excinfo, SolverErrorMsg.DIM_MISMATCH)

    def test_non_square_operator(self):
        with pytest.raises(SolverError) as excinfo:
            self.solver.solve(np.ones((3, 4)), np.ones(3))
        assert_code(excinfo, SolverErrorMsg.DIM_MISMATCH)

    def test_preconditioner_size_mismatch(self):
        with pytest.raises(SolverError) as excinfo:
            self.solver.solve(self.A, np.ones(3), precond=np.eye(4))
        assert_code(excinfo, SolverErrorMsg.DIM_MISMATCH)

    def test_operator_output_length_checked(self):
        with pytest.raises(SolverError) as excinfo:
            self.solver.solve(lambda v: np.ones(5), np.ones(3))
        assert_code(excinfo, SolverErrorMsg.DIM_MISMATCH)

    def test_preconditioner_output_length_checked(self):
        with pytest.raises(SolverError) as excinfo:
            self.solver.solve(self.A, np.ones(3), precond=lambda r: r[:2])
        assert_code(excinfo, SolverErrorMsg.PRECOND_INVALID)

    @pytest.mark.parametrize("b", [np.ones((3, 1)), np.ones(0), np.array([1.0, np.nan, 1.0]),
                                np.array([1.0, np.inf, 0.0])])
    def test_invalid_rhs(self, b):
        with pytest.raises(SolverError) as excinfo:
            self.solver.solve(np.eye(b.shape[0]) if b.ndim == 1 else self.A, b)
        assert_code(excinfo, SolverErrorMsg.INVALID_INPUT)

    def test_complex_input_rejected(self):
        with pytest.raises(SolverError) as excinfo:
            self.solver.solve(self.A, np.ones(3, dtype=np.complex128))
        assert_code(excinfo, SolverErrorMsg.INVALID_INPUT)

        with pytest.raises(SolverError) as excinfo:
            self.solver.solve(self.A, np.ones(3), x0=np.zeros(3, dtype=np.complex64))
        assert_code(excinfo, SolverErrorMsg.INVALID_INPUT)

    def test_missing_or_unsupported_operator(self):
        with pytest.raises(SolverError) as excinfo:
            self.solver.solve(None, np.ones(3))
        assert_code(excinfo, SolverErrorMsg.MATVEC_FUNC_NOT_SET)

        with pytest.raises(SolverError) as excinfo:
            self.solver.solve("matrix", np.ones(3))
        assert_code(excinfo, SolverErrorMsg.MATVEC_FUNC_NOT_SET)

    def test_unsupported_preconditioner(self):
        with pytest.raises(SolverError) as excinfo:
            self.solver.solve(self.A, np.ones(3), precond=42)
        assert_code(excinfo, SolverErrorMsg.PRECOND_INVALID)

    def test_validation_happens_before_iterating(self):
        calls = []
        def matvec(v):
            calls.append(1)
            return self.A @ v

        with pytest.raises(SolverError):
            self.solver.solve(matvec, np.ones(3), x0=np.zeros(4))
        assert calls == []

# -------------------------------------------------------------------

class TestSolverStatus:

    def test_zero_operator_breaks_down(self):
        logger  = RecordingLogger()
        result  = CgSolver(logger=logger).solve(np.zeros((3, 3)), np.ones(3))

        assert result.status is SolverStatus.BREAKDOWN
        assert not result.converged
        assert result.iterations == 1
        assert np.all(np.isfinite(result.x))
        assert len(logger.records['warning']) == 1

        with pytest.raises(SolverError) as excinfo:
            result.raise_for_status()
        assert_code(excinfo, SolverErrorMsg.BREAKDOWN)

    def test_negative_definite_preconditioner_breaks_down(self):
        result = CgSolver(logger=RecordingLogger()).solve(np.eye(3), np.ones(3), precond=lambda r: -r)

        assert result.status is SolverStatus.BREAKDOWN
        assert result.iterations == 0
        np.testing.assert_array_equal(result.x, np.zeros(3))

    def test_indefinite_operator_breaks_down(self):
        result = CgSolver(logger=RecordingLogger()).solve(np.diag([1.0, -1.0]), np.ones(2))

        assert result.status is SolverStatus.BREAKDOWN
        assert result.iterations == 1

    def test_exhausted(self):
        logger  = RecordingLogger()
        A       = create_random_spd(20, cond=1e3, seed=3)
        result  = CgSolver(eps=1e-12, maxiter=2, logger=logger).solve(A, np.ones(20))

        assert result.status is SolverStatus.EXHAUSTED
        assert not result.converged
        assert result.iterations == 2
        assert result.residual_norm > 1e-12
        assert len(logger.records['warning']) == 1

        with pytest.raises(SolverError) as excinfo:
            result.raise_for_status()
        assert_code(excinfo, SolverErrorMsg.CONV_FAILED)

    def test_raise_for_status_on_success(self):
        result = CgSolver().solve(np.diag([1.0, 2.0]), np.ones(2))
        assert result.raise_for_status() is result

    def test_terminal_states(self):
        assert SolverStatus.CONVERGED.terminal
        assert SolverStatus.EXHAUSTED.terminal
        assert SolverStatus.BREAKDOWN.terminal
        assert not SolverStatus.ITERATING.terminal
        assert not SolverStatus.INITIALIZING.terminal

# -------------------------------------------------------------------

class TestSolverBookkeeping:

    def test_properties_before_solve(self):
        solver = CgSolver()
        assert solver.status is None
        assert solver.iterations is None
        assert solver.solution is None
        assert solver.history == []

    def test_history_and_properties(self):
        A       = create_random_spd(15, cond=20.0, seed=4)
        b       = np.ones(15)
        solver  = CgSolver(eps=1e-10)
        result  = solver.solve(A, b)

        assert isinstance(result, SolverResult)
        assert len(result.history) == result.iterations + 1
        assert result.history[0] == pytest.approx(1.0)
        assert solver.history == result.history
        assert solver.iterations == result.iterations
        assert solver.status is result.status
        assert solver.converged
        assert solver.residual_norm == result.residual_norm

        true_res = np.linalg.norm(b - A @ result.x) / np.linalg.norm(b)
        assert true_res < 1e-8

    def test_initial_guess_not_modified(self):
        A   = create_random_spd(10, seed=5)
        x0  = np.linspace(0.0, 1.0, 10)
        ref = x0.copy()
        CgSolver().solve(A, np.ones(10), x0=x0)
        np.testing.assert_array_equal(x0, ref)

    def test_workspace_reused_and_resized(self):
        solver      = CgSolver()
        workspace   = solver.method.workspace

        solver.solve(create_random_spd(8, seed=6), np.ones(8))
        assert workspace.allocations == 1
        assert workspace.size == 8

        solver.solve(create_random_spd(8, seed=7), np.ones(8))
        assert workspace.allocations == 1

        solver.solve(create_random_spd(12, seed=8), np.ones(12))
        assert workspace.allocations == 2
        assert workspace.size == 12

        solver.solve(create_random_spd(12, seed=8).astype(np.float32), np.ones(12, dtype=np.float32))
        assert workspace.allocations == 3
        assert workspace.r.dtype == np.float32

    def test_verbose_logging(self):
        logger  = RecordingLogger()
        result  = CgSolver(eps=1e-10, verbose=True, logger=logger).solve(np.diag([1.0, 4.0, 9.0]), np.array([1.0, 2.0, 3.0]))

        assert len(logger.records['debug']) == result.iterations
        assert len(logger.records['info']) == 1
        assert "Converged" in logger.records['info'][0]
        assert logger.records['warning'] == []

    def test_quiet_by_default(self):
        logger = RecordingLogger()
        CgSolver(logger=logger).solve(np.diag([1.0, 4.0]), np.ones(2))
        assert logger.records == {'debug': [], 'info': [], 'warning': []}

    def test_detail_and_repr(self):
        solver = CgSolver(eps=1e-8, maxiter=5)
        assert "Conjugate Gradient" in repr(solver)
        assert "auto" not in solver.detail()
        solver.solve(np.eye(2), np.ones(2))
        assert "CONVERGED" in str(solver)

# -------------------------------------------------------------------

class TestOperatorHandle:

    def test_counts_and_writes_in_place(self):
        handle  = OperatorHandle(np.diag([1.0, 2.0]), 2)
        out     = np.empty(2)
        res     = handle.apply(np.ones(2), out)

        assert res is out
        np.testing.assert_array_equal(out, [1.0, 2.0])
        assert handle.applies == 1
        assert handle.n == 2

    def test_column_output_reshaped(self):
        handle  = OperatorHandle(lambda v: v.reshape(-1, 1) * 2.0, 3)
        out     = np.empty(3)
        handle.apply(np.ones(3), out)
        np.testing.assert_array_equal(out, [2.0, 2.0, 2.0])

    def test_wrong_length(self):
        handle = OperatorHandle(lambda v: np.ones(4), 3, role='preconditioner')
        with pytest.raises(SolverError) as excinfo:
            handle.apply(np.ones(3), np.empty(3))
        assert_code(excinfo, SolverErrorMsg.PRECOND_INVALID)

# -------------------------------------------------------------------

class TestLanczosTrace:

    def test_pending_entries_dropped(self):
        trace = LanczosTrace()
        trace.clear()
        assert trace.completed() == ([], [])

        trace.add_step_length(0.5)
        assert trace.completed() == ([2.0], [])

        trace.add_direction(0.5, 0.25)
        assert trace.completed() == ([2.0], [])
        assert len(trace) == 1

        trace.add_step_length(1.0)
        delta, gamma = trace.completed()
        assert delta == pytest.approx([2.0, 1.5])
        assert gamma == pytest.approx([-1.0])

    def test_disabled(self):
        trace = LanczosTrace()
        trace.clear(enabled=False)
        assert trace.completed() == ([], [])

# -------------------------------------------------------------------

class TestChooseSolver:

    @pytest.mark.parametrize("solver_id", ["cg", "CG", "conjugate_gradient", SolverType.CG,
                                        SolverType.CG.value, CgSolver, "CgSolver"])
    def test_resolves_cg(self, solver_id):
        solver = choose_solver(solver_id, eps=1e-7, track_spectrum=True)
        assert isinstance(solver, CgSolver)
        assert isinstance(solver.method, ConjugateGradient)
        assert solver.tolerance == 1e-7
        assert solver.track_spectrum

    def test_instance_passthrough(self):
        solver = CgSolver()
        assert choose_solver(solver) is solver

    def test_instance_passthrough_warns_on_kwargs(self, monkeypatch):
        rec     = RecordingLogger()
        monkeypatch.setattr("spdkrylov.algebra.solvers.get_global_logger", lambda **kw: rec)
        solver  = CgSolver(eps=1e-6)

        assert choose_solver(solver) is solver
        assert rec.records['warning'] == []

        assert choose_solver(solver, eps=1e-3) is solver
        assert solver.tolerance == 1e-6
        assert len(rec.records['warning']) == 1
        assert "eps" in rec.records['warning'][0]

        own = RecordingLogger()
        choose_solver(solver, logger=own)
        assert len(own.records['warning']) == 1
        assert len(rec.records['warning']) == 1

    def test_unknown_kwargs_dropped(self):
        solver = choose_solver("cg", backend="numpy", maxiter=3)
        assert solver.max_iterations == 3

    @pytest.mark.parametrize("solver_id", ["gmres", 99, 3.5])
    def test_unknown_solver(self, solver_id):
        with pytest.raises(SolverError) as excinfo:
            choose_solver(solver_id)
        assert_code(excinfo, SolverErrorMsg.METHOD_NOT_IMPL)

# -------------------------------------------------------------------

class TestSolverErrors:

    def test_message_and_code(self):
        err = SolverError(SolverErrorMsg.DIM_MISMATCH)
        assert err.code is SolverErrorMsg.DIM_MISMATCH
        assert err.message == "Dim Mismatch"
        assert "106" in str(err)

    def test_custom_message(self):
        err = SolverError(SolverErrorMsg.BREAKDOWN, "p^T A p vanished")
        assert err.message == "p^T A p vanished"
        assert math.isclose(SolverErrorMsg.BREAKDOWN.value, 115)
