"""
位姿状态模块
保存跑者位姿、障碍物位姿、最终目标和当前航点
"""

import threading
from typing import Optional, Tuple

from ..communication.protocol import Pose2D


class PoseState:
    """位姿状态

    单写者约定：
    - runner / obstacle 只由对应的位姿更新调用写入
    - waypoint 只由优化器写入
    - goal 构造后不可修改

    所有字段读写经同一把锁串行化。

    Example:
        >>> state = PoseState(goal=Pose2D(10.0, 10.0))
        >>> state.update_runner_pose(Pose2D(1.0, 2.0, 0.5))
        >>> state.runner.x
        1.0
    """

    def __init__(self, goal: Pose2D,
                 runner: Optional[Pose2D] = None,
                 obstacle: Optional[Pose2D] = None):
        """初始化位姿状态

        Args:
            goal: 最终目标（启动时确定）
            runner: 跑者初始位姿，None则为原点
            obstacle: 障碍物初始位姿，None则为原点
        """
        self._lock = threading.Lock()
        self._goal = goal
        self._runner = runner if runner is not None else Pose2D()
        self._obstacle = obstacle if obstacle is not None else Pose2D()
        self._waypoint: Optional[Pose2D] = None

    def update_runner_pose(self, pose: Pose2D):
        with self._lock:
            self._runner = pose

    def update_obstacle_pose(self, pose: Pose2D):
        with self._lock:
            self._obstacle = pose

    def set_waypoint(self, pose: Pose2D):
        with self._lock:
            self._waypoint = pose

    @property
    def runner(self) -> Pose2D:
        with self._lock:
            return self._runner

    @property
    def obstacle(self) -> Pose2D:
        with self._lock:
            return self._obstacle

    @property
    def goal(self) -> Pose2D:
        return self._goal

    @property
    def waypoint(self) -> Optional[Pose2D]:
        with self._lock:
            return self._waypoint

    def snapshot(self) -> Tuple[Pose2D, Pose2D, Pose2D, Optional[Pose2D]]:
        """一次性读取 (runner, obstacle, goal, waypoint)"""
        with self._lock:
            return self._runner, self._obstacle, self._goal, self._waypoint

    def distance_to_goal(self) -> float:
        return self.runner.distance_to(self._goal)
