"""
控制循环模块
固定频率执行：位姿排空 → 航点优化 → 速度指令输出 → 到达判定
"""

import logging
import threading
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, List, Optional

from ..communication.protocol import Pose2D, VelocityCommand
from ..errors import InvalidConfiguration, SolverFailure
from ..utils.logger import PerformanceLogger
from .optimizer import LocalWaypointOptimizer, SolverStatus
from .controller import SteeringController


class LoopState(Enum):
    """控制循环状态枚举"""
    IDLE = 0          # 未启动
    SENSING = 1       # 排空位姿更新
    OPTIMIZING = 2    # 求解航点
    ACTUATING = 3     # 输出速度指令
    TERMINATED = 4    # 已结束


@dataclass
class LoopConfig:
    """控制循环配置参数"""
    loop_rate_hz: float = 5.0     # 循环频率（Hz）
    goal_tolerance: float = 0.5   # 到达判定阈值

    def __post_init__(self):
        if self.loop_rate_hz <= 0:
            raise InvalidConfiguration(f"loop_rate_hz 必须大于0: {self.loop_rate_hz}")
        if self.goal_tolerance <= 0:
            raise InvalidConfiguration(f"goal_tolerance 必须大于0: {self.goal_tolerance}")

    @property
    def period(self) -> float:
        return 1.0 / self.loop_rate_hz


@dataclass(frozen=True)
class TickResult:
    """单个周期的结果（供上层记录/上报）"""
    index: int
    runner: Pose2D
    obstacle: Pose2D
    waypoint: Pose2D
    status: SolverStatus
    fallback_applied: bool
    command: VelocityCommand
    distance_to_goal: float
    solve_time: float
    terminated: bool

    def to_dict(self) -> dict:
        data = asdict(self)
        data['status'] = self.status.value
        return data


class Rate:
    """固定频率限速器（等待到下一个周期边界）

    周期超时时不补偿，直接以当前时刻为新起点。
    """

    def __init__(self, hz: float,
                 clock: Callable[[], float] = time.monotonic,
                 sleeper: Callable[[float], None] = time.sleep):
        self.period = 1.0 / hz
        self._clock = clock
        self._sleep = sleeper
        self._next = clock()

    def reset(self):
        self._next = self._clock()

    def sleep(self) -> bool:
        """睡眠到下一个周期边界

        Returns:
            本周期未超时返回True
        """
        now = self._clock()
        self._next += self.period

        remaining = self._next - now
        if remaining <= 0:
            self._next = now
            return False

        self._sleep(remaining)
        return True


class ControlLoop:
    """控制循环

    每个周期：
    1. 排空位姿通道，写入位姿状态
    2. 调用优化器刷新航点（求解失败只告警，不中断循环）
    3. 计算速度指令并输出
    4. 距目标小于阈值则结束，并输出一次零速指令

    Attributes:
        state: PoseState对象
        optimizer: LocalWaypointOptimizer对象
        controller: SteeringController对象
        sink: 速度指令输出（任意可调用对象）
        channels: PoseChannels对象（可选，None则直接读取位姿状态）

    Example:
        >>> loop = ControlLoop(state, optimizer, controller, comm.send_velocity_command,
        ...                    channels=channels)
        >>> results = loop.run()
    """

    def __init__(self,
                 state,
                 optimizer: LocalWaypointOptimizer,
                 controller: SteeringController,
                 sink: Callable[[VelocityCommand], None],
                 channels=None,
                 config: LoopConfig = None,
                 rate: Rate = None,
                 recorder=None):
        """初始化控制循环

        Args:
            state: PoseState对象
            optimizer: 航点优化器
            controller: 转向控制器
            sink: 速度指令输出
            channels: 位姿通道（可选）
            config: 循环配置，None则使用默认配置
            rate: 限速器，None则按config.loop_rate_hz创建
            recorder: TickRecorder对象（可选）
        """
        self.state = state
        self.optimizer = optimizer
        self.controller = controller
        self.sink = sink
        self.channels = channels
        self.config = config if config else LoopConfig()
        self.rate = rate if rate else Rate(self.config.loop_rate_hz)
        self.recorder = recorder

        self.loop_state = LoopState.IDLE
        self.termination_reason: Optional[str] = None
        self.tick_count = 0
        self.failure_count = 0
        self._cancel = threading.Event()

        self.logger = logging.getLogger(__name__)
        self.perf = PerformanceLogger(self.logger)

    @property
    def terminated(self) -> bool:
        return self.loop_state == LoopState.TERMINATED

    def cancel(self):
        """请求在下一个周期边界停止（线程安全）"""
        self._cancel.set()

    def tick(self) -> TickResult:
        """执行一个控制周期"""
        if self.terminated:
            raise RuntimeError("控制循环已结束，不能继续执行周期")

        index = self.tick_count
        self.tick_count += 1

        # 1. 位姿排空
        self.loop_state = LoopState.SENSING
        if self.channels is not None:
            self.channels.drain_into(self.state)

        # 2. 航点优化
        self.loop_state = LoopState.OPTIMIZING
        start = time.perf_counter()
        result = self.optimizer.refresh_waypoint(self.state)
        solve_time = time.perf_counter() - start

        self.perf.log_execution_time('solve', solve_time)
        if solve_time > self.config.period:
            self.logger.warning(
                f"[Loop] 周期{index}: 求解耗时{solve_time*1000:.1f}ms 超过周期"
                f"{self.config.period*1000:.0f}ms")

        try:
            result.raise_for_status()
        except SolverFailure as e:
            self.failure_count += 1
            self.logger.warning(
                f"[Loop] 周期{index}: {e}，策略={self.optimizer.config.failure_policy}，"
                f"航点=({result.waypoint.x:.3f}, {result.waypoint.y:.3f})")

        # 3. 输出速度指令
        self.loop_state = LoopState.ACTUATING
        runner, obstacle, goal, _ = self.state.snapshot()
        command = self.controller.compute(runner, result.waypoint)
        self.sink(command)

        # 4. 到达判定
        distance = runner.distance_to(goal)
        if distance < self.config.goal_tolerance:
            self._terminate(f"到达目标 (距离={distance:.3f})")

        tick_result = TickResult(
            index=index,
            runner=runner,
            obstacle=obstacle,
            waypoint=result.waypoint,
            status=result.status,
            fallback_applied=result.fallback_applied,
            command=command,
            distance_to_goal=distance,
            solve_time=solve_time,
            terminated=self.terminated
        )

        if self.recorder is not None:
            self.recorder.record(tick_result)

        self.logger.debug(
            f"[Loop] 周期{index}: 跑者=({runner.x:.3f}, {runner.y:.3f}) "
            f"航点=({result.waypoint.x:.3f}, {result.waypoint.y:.3f}) "
            f"v={command.linear.x:.3f} w={command.angular.z:.3f} 距离={distance:.3f}")

        return tick_result

    def run(self, max_ticks: Optional[int] = None) -> List[TickResult]:
        """以固定频率运行直到结束

        Args:
            max_ticks: 最大周期数（None=直到到达目标或被取消）

        Returns:
            所有周期的TickResult列表
        """
        self.logger.info(
            f"[Loop] 启动: 目标=({self.state.goal.x:.2f}, {self.state.goal.y:.2f}), "
            f"{self.config.loop_rate_hz}Hz")

        results = []
        self.rate.reset()
        while not self.terminated:
            if self._cancel.is_set():
                self._terminate("已取消")
                break
            if max_ticks is not None and self.tick_count >= max_ticks:
                self._terminate(f"达到最大周期数 {max_ticks}")
                break

            results.append(self.tick())

            if not self.terminated:
                self.rate.sleep()

        self.logger.info(
            f"[Loop] 结束: {self.termination_reason}，共{self.tick_count}个周期，"
            f"求解失败{self.failure_count}次")
        return results

    def _terminate(self, reason: str):
        """输出零速指令并进入结束状态"""
        self.sink(VelocityCommand.zero())
        self.loop_state = LoopState.TERMINATED
        self.termination_reason = reason
        self.logger.info(f"[Loop] {reason}，已发送停车指令")
