"""
转向与速度控制器
将 (跑者位姿, 航点) 转换为线速度/角速度指令（比例控制）
"""

import math
from dataclasses import dataclass

from ..communication.protocol import Pose2D, VelocityCommand
from ..errors import InvalidConfiguration


def normalize_angle(angle: float) -> float:
    """将角度归一化到 (-π, π]"""
    wrapped = math.fmod(angle + math.pi, 2.0 * math.pi)
    if wrapped <= 0.0:
        wrapped += 2.0 * math.pi
    return wrapped - math.pi


def steering_angle(runner: Pose2D, waypoint: Pose2D) -> float:
    """跑者指向航点的方位角，范围 (-π, π]"""
    return math.atan2(waypoint.y - runner.y, waypoint.x - runner.x)


@dataclass
class ControllerConfig:
    """控制器配置参数"""
    gain: float = 1.0                   # 角速度比例增益
    normalize_angle_error: bool = True  # 角度误差是否归一化到(-π, π]
    loop_rate_hz: float = 5.0           # 控制循环频率（用于前馈线速度）

    def __post_init__(self):
        if self.loop_rate_hz <= 0:
            raise InvalidConfiguration(f"loop_rate_hz 必须大于0: {self.loop_rate_hz}")


class SteeringController:
    """转向与速度控制器

    - 角速度 = gain * (方位角 - 当前朝向)
    - 线速度 = 到航点距离 * 循环频率（理想模型下一个周期恰好走完）

    Example:
        >>> controller = SteeringController(ControllerConfig(loop_rate_hz=5))
        >>> cmd = controller.compute(Pose2D(0, 0, 0), Pose2D(0.2, 0.2))
        >>> print(cmd.linear.x, cmd.angular.z)
    """

    # 航点与跑者重合判定
    COINCIDENT_EPS = 1e-9

    def __init__(self, config: ControllerConfig = None):
        self.config = config if config else ControllerConfig()

    def angle_error(self, runner: Pose2D, waypoint: Pose2D) -> float:
        error = steering_angle(runner, waypoint) - runner.theta
        if self.config.normalize_angle_error:
            error = normalize_angle(error)
        return error

    def angular_velocity(self, runner: Pose2D, waypoint: Pose2D) -> float:
        return self.config.gain * self.angle_error(runner, waypoint)

    def linear_velocity(self, runner: Pose2D, waypoint: Pose2D) -> float:
        return runner.distance_to(waypoint) * self.config.loop_rate_hz

    def compute(self, runner: Pose2D, waypoint: Pose2D) -> VelocityCommand:
        """计算速度指令

        航点与跑者重合时方位角无定义，输出零指令。
        """
        if runner.distance_to(waypoint) < self.COINCIDENT_EPS:
            return VelocityCommand.zero()

        return VelocityCommand.planar(
            self.linear_velocity(runner, waypoint),
            self.angular_velocity(runner, waypoint)
        )
