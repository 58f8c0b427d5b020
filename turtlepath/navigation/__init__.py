"""
导航模块
包含位姿状态、局部航点优化、转向控制和控制循环
"""

from .pose_state import PoseState
from .optimizer import (
    LocalWaypointOptimizer, OptimizerConfig, OptimizerResult,
    OptimizationProblem, SolverBackend, ScipySolver, SolverResult,
    SolverStatus, SmoothFunction
)
from .controller import SteeringController, ControllerConfig, normalize_angle, steering_angle
from .control_loop import ControlLoop, LoopConfig, LoopState, TickResult, Rate

__all__ = [
    'PoseState',
    'LocalWaypointOptimizer', 'OptimizerConfig', 'OptimizerResult',
    'OptimizationProblem', 'SolverBackend', 'ScipySolver', 'SolverResult',
    'SolverStatus', 'SmoothFunction',
    'SteeringController', 'ControllerConfig', 'normalize_angle', 'steering_angle',
    'ControlLoop', 'LoopConfig', 'LoopState', 'TickResult', 'Rate',
]
