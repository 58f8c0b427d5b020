"""
通信模块
位姿输入、速度输出的数据结构与串口传输
"""

from .protocol import (
    Pose2D, Vector3, VelocityCommand,
    PoseSource, PoseUpdate, CommandType,
    parse_line, encode_pose_update, encode_velocity_command
)
from .pose_channel import PoseChannel, PoseChannels
from .robot_comm import RobotComm

__all__ = [
    'Pose2D',
    'Vector3',
    'VelocityCommand',
    'PoseSource',
    'PoseUpdate',
    'CommandType',
    'parse_line',
    'encode_pose_update',
    'encode_velocity_command',
    'PoseChannel',
    'PoseChannels',
    'RobotComm',
]
