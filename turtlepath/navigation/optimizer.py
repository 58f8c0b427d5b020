"""
局部航点优化器
每个控制周期构造并求解一个2变量、1约束的非线性规划，选出下一个局部航点：

    minimize   (x - gx)^2 + (y - gy)^2
    subject to (x - ox)^2 + (y - oy)^2 >= S
               rx - r <= x <= rx + r
               ry - r <= y <= ry + r

初值为跑者当前位置 (rx, ry)。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

import numpy as np
from scipy.optimize import minimize

from ..communication.protocol import Pose2D
from ..errors import InvalidConfiguration, SolverFailure


FAILURE_POLICIES = ('adopt', 'hold', 'center')


class SolverStatus(Enum):
    """求解状态"""
    SUCCESS = 'success'
    INFEASIBLE = 'infeasible'
    ITERATION_LIMIT = 'iterationLimitReached'
    NUMERICAL_ERROR = 'numericalError'


@dataclass
class OptimizerConfig:
    """优化器配置参数"""
    trust_region_radius: float = 0.2      # 信赖域半宽（每轴）
    min_safe_distance_sq: float = 2.0     # 最小安全距离平方 S
    max_iterations: int = 10              # 求解器迭代上限
    tolerance: float = 1e-6               # 一阶最优性容差
    feasibility_tolerance: float = 1e-4   # 结果可行性校验容差
    failure_policy: str = 'hold'          # 求解失败时的航点策略

    def __post_init__(self):
        if self.trust_region_radius <= 0:
            raise InvalidConfiguration(f"trust_region_radius 必须大于0: {self.trust_region_radius}")
        if self.min_safe_distance_sq <= 0:
            raise InvalidConfiguration(f"min_safe_distance_sq 必须大于0: {self.min_safe_distance_sq}")
        if self.tolerance <= 0:
            raise InvalidConfiguration(f"tolerance 必须大于0: {self.tolerance}")
        if self.feasibility_tolerance < 0:
            raise InvalidConfiguration(f"feasibility_tolerance 不能为负: {self.feasibility_tolerance}")
        if self.max_iterations < 1:
            raise InvalidConfiguration(f"max_iterations 必须至少为1: {self.max_iterations}")
        if self.failure_policy not in FAILURE_POLICIES:
            raise InvalidConfiguration(
                f"未知的失败策略: {self.failure_policy}，可选 {FAILURE_POLICIES}")


@dataclass(frozen=True)
class SmoothFunction:
    """光滑函数及其梯度"""
    fun: Callable[[np.ndarray], float]
    jac: Callable[[np.ndarray], np.ndarray]


@dataclass(frozen=True)
class SolverResult:
    """求解器返回值"""
    point: np.ndarray
    status: SolverStatus
    iterations: int = 0
    message: str = ''


@dataclass(frozen=True)
class OptimizationProblem:
    """单周期优化问题（每周期新建，不保留）

    Attributes:
        runner: 跑者位姿（信赖域中心与初值）
        obstacle: 障碍物位姿
        goal: 最终目标
        radius: 信赖域半宽 r
        min_safe_distance_sq: 安全距离平方 S
    """
    runner: Pose2D
    obstacle: Pose2D
    goal: Pose2D
    radius: float
    min_safe_distance_sq: float

    def objective(self, p: np.ndarray) -> float:
        return float((p[0] - self.goal.x) ** 2 + (p[1] - self.goal.y) ** 2)

    def objective_grad(self, p: np.ndarray) -> np.ndarray:
        return np.array([2.0 * (p[0] - self.goal.x), 2.0 * (p[1] - self.goal.y)])

    def clearance_sq(self, p: np.ndarray) -> float:
        """到障碍物的距离平方"""
        return float((p[0] - self.obstacle.x) ** 2 + (p[1] - self.obstacle.y) ** 2)

    def clearance(self, p: np.ndarray) -> float:
        """不等式约束 g(p) - S >= 0"""
        return self.clearance_sq(p) - self.min_safe_distance_sq

    def clearance_grad(self, p: np.ndarray) -> np.ndarray:
        return np.array([2.0 * (p[0] - self.obstacle.x), 2.0 * (p[1] - self.obstacle.y)])

    @property
    def initial_guess(self) -> np.ndarray:
        return np.array([self.runner.x, self.runner.y])

    @property
    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        center = self.initial_guess
        return center - self.radius, center + self.radius

    def corners(self) -> np.ndarray:
        lower, upper = self.bounds
        return np.array([
            [lower[0], lower[1]],
            [lower[0], upper[1]],
            [upper[0], lower[1]],
            [upper[0], upper[1]],
        ])

    def safest_corner(self) -> np.ndarray:
        """信赖域内离障碍物最远的点（盒子上距离平方的最大值必在角点取得）"""
        corners = self.corners()
        d2 = [self.clearance_sq(c) for c in corners]
        return corners[int(np.argmax(d2))]

    def has_feasible_point(self) -> bool:
        return self.clearance(self.safest_corner()) >= 0.0

    def is_feasible(self, p: np.ndarray, tol: float = 0.0) -> bool:
        lower, upper = self.bounds
        if not np.all(np.isfinite(p)):
            return False
        if np.any(p < lower - tol) or np.any(p > upper + tol):
            return False
        return self.clearance(p) >= -tol


class SolverBackend:
    """约束非线性规划求解器接口

    子类实现 solve()，约束统一写成 constraint.fun(x) >= 0 的形式。
    """

    def solve(self,
              objective: SmoothFunction,
              constraint: SmoothFunction,
              bounds: Tuple[np.ndarray, np.ndarray],
              initial_guess: np.ndarray) -> SolverResult:
        raise NotImplementedError


class ScipySolver(SolverBackend):
    """基于 scipy SLSQP 的求解器（序列二次规划，确定性）

    SLSQP 是局部方法。初值违反安全距离约束且跑者、障碍物、目标近似共线时，
    可能停在约束圆弧上对称的驻点（例如跑者(5,5)、障碍物(5.9,5.9)、目标(10,10)
    时返回(4.9,4.9)），该点可行但不是圆弧上目标函数最小的点。
    """

    # SLSQP 退出码
    _EXIT_SUCCESS = 0
    _EXIT_INCOMPATIBLE = 4
    _EXIT_ITERATION_LIMIT = 9

    def __init__(self, max_iterations: int = 10, tolerance: float = 1e-6):
        self.max_iterations = max_iterations
        self.tolerance = tolerance

    def solve(self, objective, constraint, bounds, initial_guess):
        lower, upper = bounds
        try:
            res = minimize(
                objective.fun,
                np.asarray(initial_guess, dtype=float),
                jac=objective.jac,
                method='SLSQP',
                bounds=list(zip(lower, upper)),
                constraints=[{'type': 'ineq', 'fun': constraint.fun, 'jac': constraint.jac}],
                options={'maxiter': self.max_iterations, 'ftol': self.tolerance}
            )
        except (ValueError, ArithmeticError) as e:
            return SolverResult(np.asarray(initial_guess, dtype=float),
                                SolverStatus.NUMERICAL_ERROR, 0, str(e))

        point = np.asarray(res.x, dtype=float)
        iterations = int(getattr(res, 'nit', 0))
        if not np.all(np.isfinite(point)):
            status = SolverStatus.NUMERICAL_ERROR
        elif res.status == self._EXIT_SUCCESS:
            status = SolverStatus.SUCCESS
        elif res.status == self._EXIT_ITERATION_LIMIT or iterations >= self.max_iterations:
            status = SolverStatus.ITERATION_LIMIT
        elif res.status == self._EXIT_INCOMPATIBLE:
            status = SolverStatus.INFEASIBLE
        else:
            status = SolverStatus.NUMERICAL_ERROR

        return SolverResult(point, status, iterations, str(res.message))


@dataclass(frozen=True)
class OptimizerResult:
    """一次航点刷新的结果

    Attributes:
        waypoint: 最终写入位姿状态的航点
        status: 求解状态
        candidate: 求解器给出的候选点（预检不可行时为最安全角点）
        fallback_applied: 是否因失败策略替换了候选点
        iterations: 求解迭代次数
        message: 求解器信息
    """
    waypoint: Pose2D
    status: SolverStatus
    candidate: Pose2D
    fallback_applied: bool = False
    iterations: int = 0
    message: str = ''

    @property
    def success(self) -> bool:
        return self.status == SolverStatus.SUCCESS

    def raise_for_status(self):
        if not self.success:
            raise SolverFailure(self.status, self.message)


class LocalWaypointOptimizer:
    """局部航点优化器

    流程：
    1. 用当前位姿构造优化问题
    2. 信赖域盒子解析预检（最远角点仍不安全则直接判定不可行）
    3. 调用求解器
    4. 校验结果可行性（违反约束的"成功"降级为不可行）
    5. 按失败策略写入航点

    Example:
        >>> optimizer = LocalWaypointOptimizer(OptimizerConfig())
        >>> result = optimizer.refresh_waypoint(state)
        >>> print(result.status, state.waypoint)
    """

    def __init__(self, config: OptimizerConfig = None, solver: SolverBackend = None):
        """初始化优化器

        Args:
            config: 优化器配置，None则使用默认配置
            solver: 求解器后端，None则使用ScipySolver
        """
        self.config = config if config else OptimizerConfig()
        self.solver = solver if solver else ScipySolver(
            max_iterations=self.config.max_iterations,
            tolerance=self.config.tolerance
        )
        self.logger = logging.getLogger(__name__)

    def build_problem(self, state) -> OptimizationProblem:
        runner, obstacle, goal, _ = state.snapshot()
        return OptimizationProblem(
            runner=runner,
            obstacle=obstacle,
            goal=goal,
            radius=self.config.trust_region_radius,
            min_safe_distance_sq=self.config.min_safe_distance_sq
        )

    def solve(self, problem: OptimizationProblem) -> SolverResult:
        """求解单个问题（不修改任何状态）"""
        if not problem.has_feasible_point():
            return SolverResult(problem.safest_corner(), SolverStatus.INFEASIBLE, 0,
                                "信赖域内没有满足安全距离的点")

        result = self.solver.solve(
            SmoothFunction(problem.objective, problem.objective_grad),
            SmoothFunction(problem.clearance, problem.clearance_grad),
            problem.bounds,
            problem.initial_guess
        )

        if result.status == SolverStatus.SUCCESS and \
                not problem.is_feasible(result.point, self.config.feasibility_tolerance):
            return SolverResult(result.point, SolverStatus.INFEASIBLE, result.iterations,
                                "求解器返回的点违反约束")
        return result

    def refresh_waypoint(self, state) -> OptimizerResult:
        """求解并更新位姿状态中的航点

        Args:
            state: PoseState对象（只修改其waypoint）

        Returns:
            OptimizerResult对象
        """
        problem = self.build_problem(state)
        result = self.solve(problem)
        candidate = Pose2D(float(result.point[0]), float(result.point[1]))

        waypoint = candidate
        fallback = False
        if result.status != SolverStatus.SUCCESS:
            waypoint = self._fallback(state, problem, candidate)
            fallback = waypoint is not candidate
            self.logger.debug(
                f"求解状态 {result.status.value}，策略 {self.config.failure_policy} "
                f"-> 航点 ({waypoint.x:.3f}, {waypoint.y:.3f})")

        state.set_waypoint(waypoint)
        return OptimizerResult(
            waypoint=waypoint,
            status=result.status,
            candidate=candidate,
            fallback_applied=fallback,
            iterations=result.iterations,
            message=result.message
        )

    def _fallback(self, state, problem: OptimizationProblem, candidate: Pose2D) -> Pose2D:
        policy = self.config.failure_policy
        if policy == 'adopt':
            return candidate

        center = Pose2D(problem.runner.x, problem.runner.y)
        if policy == 'hold':
            previous = state.waypoint
            return previous if previous is not None else center
        return center
