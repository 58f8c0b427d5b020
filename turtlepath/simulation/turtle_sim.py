"""
运动学仿真器
模拟turtlesim：跑者按独轮车模型执行速度指令，障碍物沿圆周匀速运动
"""

import logging
import math
from typing import Callable, List, Optional, Tuple

from ..communication.protocol import Pose2D, PoseSource, PoseUpdate, VelocityCommand
from ..navigation.controller import normalize_angle


class TurtleSim:
    """两只海龟的运动学仿真

    - 跑者：先积分朝向，再沿新朝向前进（与turtlesim一致），位置截断到世界边界
    - 障碍物：绕center做半径radius、角速度speed的圆周运动（radius=0即静止）

    仿真器同时充当位姿来源（on_pose_update回调）和速度指令输出（apply_command）。

    Example:
        >>> sim = TurtleSim(Pose2D(1.0, 1.0, 0.0), dt=0.2)
        >>> sim.on_pose_update = channels.put
        >>> sim.publish()
        >>> loop = ControlLoop(state, optimizer, controller, sim.apply_command, channels)
    """

    def __init__(self,
                 runner_start: Pose2D,
                 obstacle_center: Tuple[float, float] = (5.5, 5.5),
                 obstacle_radius: float = 1.5,
                 obstacle_speed: float = 0.3,
                 dt: float = 0.2,
                 world_size: float = 11.088889):
        """初始化仿真器

        Args:
            runner_start: 跑者初始位姿
            obstacle_center: 障碍物运动中心
            obstacle_radius: 障碍物运动半径
            obstacle_speed: 障碍物角速度（rad/s）
            dt: 每条速度指令的执行时长（秒），通常为控制周期
            world_size: 世界边长，位置限制在[0, world_size]
        """
        self.runner = runner_start
        self.obstacle_center = obstacle_center
        self.obstacle_radius = obstacle_radius
        self.obstacle_speed = obstacle_speed
        self.dt = dt
        self.world_size = world_size
        self.time = 0.0

        self.obstacle = self._obstacle_at(0.0)

        self.on_pose_update: Optional[Callable[[PoseUpdate], None]] = None

        # 轨迹记录（用于可视化）
        self.runner_trajectory: List[Pose2D] = [self.runner]
        self.obstacle_trajectory: List[Pose2D] = [self.obstacle]
        self.commands: List[VelocityCommand] = []

        self.logger = logging.getLogger(__name__)

    def _obstacle_at(self, t: float) -> Pose2D:
        phase = self.obstacle_speed * t
        cx, cy = self.obstacle_center
        return Pose2D(
            cx + self.obstacle_radius * math.cos(phase),
            cy + self.obstacle_radius * math.sin(phase),
            normalize_angle(phase + math.pi / 2)
        )

    def _clamp(self, value: float) -> float:
        return min(max(value, 0.0), self.world_size)

    def apply_command(self, cmd: VelocityCommand):
        """执行一条速度指令dt时长，然后发布新位姿"""
        self.commands.append(cmd)

        theta = normalize_angle(self.runner.theta + cmd.angular.z * self.dt)
        x = self.runner.x + math.cos(theta) * cmd.linear.x * self.dt
        y = self.runner.y + math.sin(theta) * cmd.linear.x * self.dt
        self.runner = Pose2D(self._clamp(x), self._clamp(y), theta)

        self.time += self.dt
        self.obstacle = self._obstacle_at(self.time)

        self.runner_trajectory.append(self.runner)
        self.obstacle_trajectory.append(self.obstacle)
        self.publish()

    def publish(self):
        """通过回调发布当前两只海龟的位姿"""
        if self.on_pose_update is None:
            return
        self.on_pose_update(PoseUpdate(PoseSource.RUNNER, self.runner, self.time))
        self.on_pose_update(PoseUpdate(PoseSource.OBSTACLE, self.obstacle, self.time))

    def min_clearance(self) -> float:
        """整个仿真过程中跑者与障碍物的最小距离"""
        return min(r.distance_to(o) for r, o in zip(self.runner_trajectory, self.obstacle_trajectory))
