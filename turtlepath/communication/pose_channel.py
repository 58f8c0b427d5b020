"""
位姿通道
每个位姿来源一个有界队列，由生产者（接收线程/仿真器）写入，控制循环每周期排空一次
"""

import logging
import queue
from typing import Dict, Optional

from .protocol import PoseSource, PoseUpdate


class PoseChannel:
    """单一来源的有界位姿队列

    队列满时丢弃最旧的更新（后到的位姿总是覆盖先到的）。
    """

    def __init__(self, source: PoseSource, maxsize: int = 1000):
        self.source = source
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def put(self, update: PoseUpdate):
        while True:
            try:
                self._queue.put_nowait(update)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def drain(self) -> Optional[PoseUpdate]:
        """取出当前已排队的全部更新，返回最新一条

        只取调用时刻已在队列中的条数，排空过程中新到的更新留给下一周期。
        """
        latest = None
        for _ in range(self._queue.qsize()):
            try:
                latest = self._queue.get_nowait()
            except queue.Empty:
                break
        return latest

    def __len__(self):
        return self._queue.qsize()


class PoseChannels:
    """跑者与障碍物两个位姿通道

    Example:
        >>> channels = PoseChannels()
        >>> comm.on_pose_update = channels.put
        >>> channels.drain_into(state)
    """

    def __init__(self, maxsize: int = 1000):
        self.channels: Dict[PoseSource, PoseChannel] = {
            source: PoseChannel(source, maxsize) for source in PoseSource
        }
        self.logger = logging.getLogger(__name__)

    def put(self, update: PoseUpdate):
        self.channels[update.source].put(update)

    def drain_into(self, state) -> int:
        """排空所有通道并写入位姿状态

        Args:
            state: PoseState对象

        Returns:
            实际应用的更新数（每个来源最多1条）
        """
        applied = 0

        runner = self.channels[PoseSource.RUNNER].drain()
        if runner is not None:
            state.update_runner_pose(runner.pose)
            applied += 1

        obstacle = self.channels[PoseSource.OBSTACLE].drain()
        if obstacle is not None:
            state.update_obstacle_pose(obstacle.pose)
            applied += 1

        if applied:
            self.logger.debug(f"应用位姿更新 {applied} 条")
        return applied
