"""
局部航点优化器测试
"""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from turtlepath.communication.protocol import Pose2D
from turtlepath.errors import InvalidConfiguration, SolverFailure
from turtlepath.navigation.pose_state import PoseState
from turtlepath.navigation.optimizer import (
    LocalWaypointOptimizer, OptimizerConfig, OptimizationProblem,
    SolverBackend, SolverResult, SolverStatus, ScipySolver, SmoothFunction
)


R = 0.2
S = 2.0


class FakeSolver(SolverBackend):
    """返回固定结果的求解器"""

    def __init__(self, point, status):
        self.point = np.array(point, dtype=float)
        self.status = status
        self.calls = 0

    def solve(self, objective, constraint, bounds, initial_guess):
        self.calls += 1
        return SolverResult(self.point.copy(), self.status, 1, 'fake')


class ClosedFormSolver(SolverBackend):
    """约束不起作用时的解析解：目标点截断到信赖域盒子内

    目标点由 ∇f(0) = -2·goal 反推。
    """

    def solve(self, objective, constraint, bounds, initial_guess):
        goal = -objective.jac(np.zeros(2)) / 2.0
        lower, upper = bounds
        return SolverResult(np.clip(goal, lower, upper), SolverStatus.SUCCESS)


def make_state(runner, obstacle, goal=(10.0, 10.0)):
    return PoseState(goal=Pose2D(*goal), runner=Pose2D(*runner), obstacle=Pose2D(*obstacle))


def assert_in_trust_region(waypoint, runner, radius=R, tol=1e-9):
    assert abs(waypoint.x - runner.x) <= radius + tol
    assert abs(waypoint.y - runner.y) <= radius + tol


def clearance_sq(waypoint, obstacle):
    return (waypoint.x - obstacle.x) ** 2 + (waypoint.y - obstacle.y) ** 2


# ============================================================================
# 配置测试
# ============================================================================

def test_default_config():
    """测试默认配置"""
    config = OptimizerConfig()

    assert config.trust_region_radius == 0.2
    assert config.min_safe_distance_sq == 2.0
    assert config.max_iterations == 10
    assert config.tolerance == 1e-6
    assert config.failure_policy == 'hold'


@pytest.mark.parametrize('kwargs', [
    {'trust_region_radius': 0.0},
    {'trust_region_radius': -0.2},
    {'min_safe_distance_sq': 0.0},
    {'tolerance': 0.0},
    {'max_iterations': 0},
    {'failure_policy': 'ignore'},
])
def test_invalid_config(kwargs):
    """测试非法配置在构造时报错"""
    with pytest.raises(InvalidConfiguration):
        OptimizerConfig(**kwargs)


# ============================================================================
# 问题构造测试
# ============================================================================

def test_problem_bounds_use_each_axis():
    """测试信赖域盒子x/y分别以跑者x/y为中心"""
    problem = OptimizationProblem(Pose2D(1.0, 5.0), Pose2D(50, 50), Pose2D(10, 10), R, S)
    lower, upper = problem.bounds

    assert np.allclose(lower, [0.8, 4.8])
    assert np.allclose(upper, [1.2, 5.2])
    assert np.allclose(problem.initial_guess, [1.0, 5.0])


def test_problem_gradients():
    """测试目标和约束的解析梯度"""
    problem = OptimizationProblem(Pose2D(0, 0), Pose2D(1.0, 2.0), Pose2D(3.0, 4.0), R, S)
    p = np.array([0.5, -0.5])

    assert np.isclose(problem.objective(p), 2.5 ** 2 + 4.5 ** 2)
    assert np.allclose(problem.objective_grad(p), [-5.0, -9.0])
    assert np.isclose(problem.clearance(p), 0.25 + 6.25 - S)
    assert np.allclose(problem.clearance_grad(p), [-1.0, -5.0])


def test_safest_corner():
    """测试离障碍物最远的角点"""
    problem = OptimizationProblem(Pose2D(5, 5), Pose2D(5.1, 5.1), Pose2D(10, 10), R, S)

    assert np.allclose(problem.safest_corner(), [4.8, 4.8])
    assert not problem.has_feasible_point()


# ============================================================================
# 场景测试（真实求解器）
# ============================================================================

def test_scenario_obstacle_far_moves_toward_goal():
    """场景1：障碍物很远，航点朝目标移动到信赖域角点"""
    state = make_state(runner=(0.0, 0.0, 0.0), obstacle=(100.0, 100.0))
    optimizer = LocalWaypointOptimizer(OptimizerConfig())

    result = optimizer.refresh_waypoint(state)

    assert result.status == SolverStatus.SUCCESS
    assert not result.fallback_applied
    assert result.waypoint.x == pytest.approx(0.2, abs=1e-5)
    assert result.waypoint.y == pytest.approx(0.2, abs=1e-5)
    assert state.waypoint == result.waypoint
    assert_in_trust_region(result.waypoint, state.runner)


def test_scenario_obstacle_too_close_is_infeasible():
    """场景2：障碍物在信赖域内不安全范围，报告不可行"""
    state = make_state(runner=(5.0, 5.0, 0.0), obstacle=(5.1, 5.1))
    optimizer = LocalWaypointOptimizer(OptimizerConfig())

    result = optimizer.refresh_waypoint(state)

    assert result.status == SolverStatus.INFEASIBLE
    # 候选点为离障碍物最远的角点
    assert result.candidate.x == pytest.approx(4.8)
    assert result.candidate.y == pytest.approx(4.8)
    # 默认hold策略，无上一航点时退回信赖域中心
    assert result.fallback_applied
    assert result.waypoint == Pose2D(5.0, 5.0)
    with pytest.raises(SolverFailure) as excinfo:
        result.raise_for_status()
    assert excinfo.value.status == SolverStatus.INFEASIBLE


def test_active_clearance_constraint():
    """测试安全距离约束起作用时航点落在安全圆上"""
    state = make_state(runner=(0.0, 0.0, 0.0), obstacle=(1.5, 0.0), goal=(10.0, 1.0))
    optimizer = LocalWaypointOptimizer(OptimizerConfig(max_iterations=100))

    result = optimizer.refresh_waypoint(state)

    assert result.status == SolverStatus.SUCCESS
    assert_in_trust_region(result.waypoint, state.runner, tol=1e-6)
    assert clearance_sq(result.waypoint, state.obstacle) >= S - 1e-4
    # 解析最优：上边界 y=0.2 与安全圆的交点 x = 1.5 - sqrt(2 - 0.04) = 0.1
    assert result.waypoint.x == pytest.approx(0.1, abs=1e-3)
    assert result.waypoint.y == pytest.approx(0.2, abs=1e-3)


@pytest.mark.parametrize('runner, obstacle, goal', [
    ((0.0, 0.0), (5.0, 0.0), (10.0, 10.0)),
    ((3.0, 4.0), (3.0, 1.0), (3.0, 10.0)),
    ((7.5, 2.0), (9.0, 4.0), (1.0, 1.0)),
    ((-2.0, -2.0), (-2.0, 2.0), (-2.0, 5.0)),
])
def test_success_satisfies_constraints(runner, obstacle, goal):
    """测试成功时航点满足信赖域和安全距离约束"""
    state = make_state(runner=runner + (0.0,), obstacle=obstacle, goal=goal)
    optimizer = LocalWaypointOptimizer(OptimizerConfig(max_iterations=100))

    result = optimizer.refresh_waypoint(state)

    assert result.status == SolverStatus.SUCCESS
    assert_in_trust_region(result.waypoint, state.runner, tol=1e-6)
    assert clearance_sq(result.waypoint, state.obstacle) >= S - 1e-4


def test_collinear_start_inside_safe_radius_stays_feasible():
    """测试初值违反约束且三点共线：局部解可能不是圆弧上最优点，但必须可行"""
    state = make_state(runner=(5.0, 5.0, 0.0), obstacle=(5.9, 5.9), goal=(10.0, 10.0))
    optimizer = LocalWaypointOptimizer()

    result = optimizer.refresh_waypoint(state)

    if result.status == SolverStatus.SUCCESS:
        assert_in_trust_region(result.waypoint, state.runner, tol=1e-6)
        assert clearance_sq(result.waypoint, state.obstacle) >= S - 1e-4
    else:
        assert result.waypoint == Pose2D(5.0, 5.0)


def test_solve_is_deterministic():
    """测试相同输入两次求解结果一致"""
    state = make_state(runner=(0.0, 0.0, 0.0), obstacle=(1.5, 0.0), goal=(10.0, 1.0))
    optimizer = LocalWaypointOptimizer(OptimizerConfig(max_iterations=100))

    first = optimizer.refresh_waypoint(state)
    second = optimizer.refresh_waypoint(state)

    assert first.waypoint == second.waypoint
    assert first.status == second.status


def test_refresh_does_not_mutate_poses():
    """测试优化器只修改航点"""
    state = make_state(runner=(1.0, 2.0, 0.3), obstacle=(8.0, 8.0))
    before = (state.runner, state.obstacle, state.goal)

    LocalWaypointOptimizer().refresh_waypoint(state)

    assert (state.runner, state.obstacle, state.goal) == before
    assert state.waypoint is not None


def test_coincident_runner_and_obstacle():
    """测试跑者与障碍物重合时直接判定不可行，不调用求解器"""
    solver = FakeSolver([0.0, 0.0], SolverStatus.SUCCESS)
    state = make_state(runner=(2.0, 2.0, 0.0), obstacle=(2.0, 2.0))
    optimizer = LocalWaypointOptimizer(OptimizerConfig(), solver=solver)

    result = optimizer.refresh_waypoint(state)

    assert result.status == SolverStatus.INFEASIBLE
    assert solver.calls == 0


# ============================================================================
# 求解器接口与失败策略测试
# ============================================================================

def test_closed_form_backend():
    """测试通过接口替换求解器（解析解）"""
    state = make_state(runner=(0.0, 0.0, 0.0), obstacle=(100.0, 100.0))
    optimizer = LocalWaypointOptimizer(OptimizerConfig(), solver=ClosedFormSolver())

    result = optimizer.refresh_waypoint(state)

    assert result.status == SolverStatus.SUCCESS
    assert result.waypoint == Pose2D(0.2, 0.2)


def test_success_violating_bounds_is_downgraded():
    """测试求解器"成功"但越界的点被降级为不可行"""
    solver = FakeSolver([1.0, 1.0], SolverStatus.SUCCESS)
    state = make_state(runner=(0.0, 0.0, 0.0), obstacle=(100.0, 100.0))
    optimizer = LocalWaypointOptimizer(OptimizerConfig(failure_policy='center'), solver=solver)

    result = optimizer.refresh_waypoint(state)

    assert result.status == SolverStatus.INFEASIBLE
    assert result.waypoint == Pose2D(0.0, 0.0)


def test_hold_policy_keeps_previous_waypoint():
    """测试hold策略保持上一航点"""
    solver = FakeSolver([0.15, 0.15], SolverStatus.ITERATION_LIMIT)
    state = make_state(runner=(0.0, 0.0, 0.0), obstacle=(100.0, 100.0))
    previous = Pose2D(0.1, 0.05)
    state.set_waypoint(previous)
    optimizer = LocalWaypointOptimizer(OptimizerConfig(failure_policy='hold'), solver=solver)

    result = optimizer.refresh_waypoint(state)

    assert result.status == SolverStatus.ITERATION_LIMIT
    assert result.fallback_applied
    assert result.waypoint == previous
    assert state.waypoint == previous
    assert result.candidate == Pose2D(0.15, 0.15)


def test_center_policy_uses_runner_position():
    """测试center策略退回信赖域中心"""
    solver = FakeSolver([0.15, 0.15], SolverStatus.NUMERICAL_ERROR)
    state = make_state(runner=(1.0, 2.0, 0.7), obstacle=(100.0, 100.0))
    state.set_waypoint(Pose2D(1.1, 2.1))
    optimizer = LocalWaypointOptimizer(OptimizerConfig(failure_policy='center'), solver=solver)

    result = optimizer.refresh_waypoint(state)

    assert result.waypoint == Pose2D(1.0, 2.0)
    assert result.fallback_applied


def test_adopt_policy_keeps_candidate():
    """测试adopt策略（旧行为）无视状态采用候选点"""
    solver = FakeSolver([0.15, 0.15], SolverStatus.NUMERICAL_ERROR)
    state = make_state(runner=(0.0, 0.0, 0.0), obstacle=(100.0, 100.0))
    optimizer = LocalWaypointOptimizer(OptimizerConfig(failure_policy='adopt'), solver=solver)

    result = optimizer.refresh_waypoint(state)

    assert result.status == SolverStatus.NUMERICAL_ERROR
    assert not result.fallback_applied
    assert result.waypoint == Pose2D(0.15, 0.15)


def test_adopt_policy_infeasible_escapes_to_safest_corner():
    """测试adopt策略在不可行时采用离障碍物最远的角点"""
    state = make_state(runner=(5.0, 5.0, 0.0), obstacle=(5.1, 5.1))
    optimizer = LocalWaypointOptimizer(OptimizerConfig(failure_policy='adopt'))

    result = optimizer.refresh_waypoint(state)

    assert result.status == SolverStatus.INFEASIBLE
    assert result.waypoint.x == pytest.approx(4.8)
    assert result.waypoint.y == pytest.approx(4.8)


def test_scipy_solver_maps_exceptions_to_numerical_error():
    """测试目标函数抛出数值异常时返回numericalError"""
    def bad_objective(p):
        raise ValueError("math domain error")

    solver = ScipySolver()
    result = solver.solve(
        SmoothFunction(bad_objective, lambda p: np.zeros(2)),
        SmoothFunction(lambda p: 1.0, lambda p: np.zeros(2)),
        (np.array([-0.2, -0.2]), np.array([0.2, 0.2])),
        np.zeros(2)
    )

    assert result.status == SolverStatus.NUMERICAL_ERROR
    assert np.allclose(result.point, [0.0, 0.0])
