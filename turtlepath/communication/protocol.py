"""
通信协议数据类定义
定义位姿来源与执行端之间传输的数据结构和文本行格式
"""

import json
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Pose2D:
    """二维位姿

    Attributes:
        x: X坐标
        y: Y坐标
        theta: 朝向角（弧度，仅跑者使用）
    """
    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0

    def distance_to(self, other: 'Pose2D') -> float:
        """计算到另一位姿的欧氏距离"""
        return math.hypot(other.x - self.x, other.y - self.y)

    def translated(self, dx: float, dy: float) -> 'Pose2D':
        """平移后的新位姿（朝向不变）"""
        return Pose2D(self.x + dx, self.y + dy, self.theta)


@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class VelocityCommand:
    """平面速度指令（与geometry_msgs/Twist同构）

    Attributes:
        linear: 线速度，仅x分量有效
        angular: 角速度，仅z分量有效
    """
    linear: Vector3 = field(default_factory=Vector3)
    angular: Vector3 = field(default_factory=Vector3)

    @classmethod
    def planar(cls, linear_x: float, angular_z: float) -> 'VelocityCommand':
        return cls(Vector3(linear_x, 0.0, 0.0), Vector3(0.0, 0.0, angular_z))

    @classmethod
    def zero(cls) -> 'VelocityCommand':
        """停车指令"""
        return cls()

    @property
    def is_zero(self) -> bool:
        return self.linear.x == 0.0 and self.angular.z == 0.0


class PoseSource(Enum):
    """位姿来源"""
    RUNNER = 'runner'       # 跑者（被控对象）
    OBSTACLE = 'obstacle'   # 移动障碍物


@dataclass(frozen=True)
class PoseUpdate:
    """一条位姿更新

    Attributes:
        source: 位姿来源
        pose: 位姿
        timestamp: 接收时间戳（秒）
    """
    source: PoseSource
    pose: Pose2D
    timestamp: float = field(default_factory=time.monotonic)


# 命令类型
class CommandType:
    """行首类型标识"""
    POSE = "POSE"       # 位姿上报
    VELOCITY = "VEL"    # 速度指令


def parse_line(line: str) -> Optional[PoseUpdate]:
    """解析一行位姿数据

    支持两种格式：
        CSV:  POSE,<runner|obstacle>,<x>,<y>,<theta>
        JSON: {"type": "POSE", "source": "runner", "data": {"x": .., "y": .., "theta": ..}}

    Args:
        line: 接收到的一行数据（已去除换行符）

    Returns:
        PoseUpdate对象，非位姿行返回None

    Raises:
        ValueError: 位姿行格式错误
    """
    line = line.strip()
    if not line:
        return None

    if line.startswith('{'):
        data = json.loads(line)
        if data.get('type') != CommandType.POSE:
            return None
        body = data.get('data')
        if not isinstance(body, dict):
            raise ValueError(f"POSE数据字段必须是对象: {body!r}")
        try:
            pose = Pose2D(float(body['x']), float(body['y']), float(body.get('theta', 0.0)))
        except TypeError as e:
            raise ValueError(f"POSE坐标必须是数值: {body}") from e
        return PoseUpdate(source=PoseSource(data['source']), pose=pose)

    parts = line.split(',')
    if parts[0] != CommandType.POSE:
        return None
    if len(parts) != 5:
        raise ValueError(f"POSE行字段数错误: {len(parts)}")
    return PoseUpdate(
        source=PoseSource(parts[1].strip()),
        pose=Pose2D(float(parts[2]), float(parts[3]), float(parts[4]))
    )


def encode_pose_update(update: PoseUpdate) -> str:
    """编码位姿更新为CSV行"""
    p = update.pose
    return f"{CommandType.POSE},{update.source.value},{p.x:.6f},{p.y:.6f},{p.theta:.6f}\n"


def encode_velocity_command(cmd: VelocityCommand) -> str:
    """编码速度指令为CSV行: VEL,lx,ly,lz,ax,ay,az"""
    values = (cmd.linear.x, cmd.linear.y, cmd.linear.z,
              cmd.angular.x, cmd.angular.y, cmd.angular.z)
    return CommandType.VELOCITY + ',' + ','.join(f"{v:.4f}" for v in values) + '\n'
