"""
转向与速度控制器测试
"""

import math
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from turtlepath.communication.protocol import Pose2D, VelocityCommand
from turtlepath.errors import InvalidConfiguration
from turtlepath.navigation.controller import (
    SteeringController, ControllerConfig, normalize_angle, steering_angle
)


@pytest.mark.parametrize('angle, expected', [
    (0.0, 0.0),
    (math.pi, math.pi),
    (-math.pi, math.pi),
    (-6.0, -6.0 + 2 * math.pi),
    (6.0, 6.0 - 2 * math.pi),
    (1.0, 1.0),
])
def test_normalize_angle(angle, expected):
    """测试角度归一化到(-π, π]"""
    assert normalize_angle(angle) == pytest.approx(expected)


def test_steering_angle_quadrants():
    """测试方位角"""
    origin = Pose2D(0.0, 0.0)

    assert steering_angle(origin, Pose2D(1.0, 0.0)) == pytest.approx(0.0)
    assert steering_angle(origin, Pose2D(0.0, 1.0)) == pytest.approx(math.pi / 2)
    assert steering_angle(origin, Pose2D(-1.0, 0.0)) == pytest.approx(math.pi)
    assert steering_angle(origin, Pose2D(1.0, -1.0)) == pytest.approx(-math.pi / 4)


@pytest.mark.parametrize('dx, dy', [(5.0, -3.0), (-100.0, 42.5), (0.001, 0.0)])
def test_steering_angle_translation_invariant(dx, dy):
    """测试方位角只依赖相对位置（整体平移不变）"""
    runner = Pose2D(1.0, 2.0, 0.4)
    waypoint = Pose2D(1.15, 1.9)

    assert steering_angle(runner.translated(dx, dy), waypoint.translated(dx, dy)) == \
        pytest.approx(steering_angle(runner, waypoint))


def test_linear_velocity_closes_gap_in_one_period():
    """测试线速度 = 距离 × 循环频率"""
    controller = SteeringController(ControllerConfig(loop_rate_hz=5.0))
    runner = Pose2D(0.0, 0.0, 0.0)
    waypoint = Pose2D(0.2, 0.2)

    cmd = controller.compute(runner, waypoint)

    assert cmd.linear.x == pytest.approx(math.hypot(0.2, 0.2) * 5.0)
    assert cmd.angular.z == pytest.approx(math.pi / 4)


def test_command_is_planar():
    """测试输出只有linear.x和angular.z非零"""
    controller = SteeringController()
    cmd = controller.compute(Pose2D(0.0, 0.0, 0.3), Pose2D(-0.1, 0.2))

    assert cmd.linear.y == 0.0 and cmd.linear.z == 0.0
    assert cmd.angular.x == 0.0 and cmd.angular.y == 0.0


def test_gain_scales_angular_velocity():
    """测试增益线性缩放角速度"""
    runner = Pose2D(0.0, 0.0, 0.0)
    waypoint = Pose2D(0.0, 0.2)
    base = SteeringController(ControllerConfig(gain=1.0)).compute(runner, waypoint)
    scaled = SteeringController(ControllerConfig(gain=2.5)).compute(runner, waypoint)

    assert scaled.angular.z == pytest.approx(2.5 * base.angular.z)
    assert scaled.linear.x == pytest.approx(base.linear.x)


def _wrap_case():
    """朝向3.0rad，航点方位-3.0rad"""
    runner = Pose2D(0.0, 0.0, 3.0)
    waypoint = Pose2D(0.1 * math.cos(-3.0), 0.1 * math.sin(-3.0))
    return runner, waypoint


def test_angle_wrap_normalized():
    """场景4：默认归一化，角速度为跨越±π的短路径"""
    runner, waypoint = _wrap_case()
    controller = SteeringController(ControllerConfig(gain=1.0, normalize_angle_error=True))

    assert steering_angle(runner, waypoint) == pytest.approx(-3.0)
    cmd = controller.compute(runner, waypoint)

    assert cmd.angular.z == pytest.approx(2 * math.pi - 6.0)
    assert abs(cmd.angular.z) <= math.pi


def test_angle_wrap_raw():
    """场景4：关闭归一化（旧行为），角速度为原始差值"""
    runner, waypoint = _wrap_case()
    controller = SteeringController(ControllerConfig(gain=1.0, normalize_angle_error=False))

    cmd = controller.compute(runner, waypoint)

    assert cmd.angular.z == pytest.approx(-6.0)


def test_coincident_waypoint_gives_zero_command():
    """测试航点与跑者重合时输出零指令"""
    controller = SteeringController()
    cmd = controller.compute(Pose2D(3.0, 4.0, 2.0), Pose2D(3.0, 4.0))

    assert cmd == VelocityCommand.zero()
    assert cmd.is_zero


def test_invalid_loop_rate():
    """测试非法循环频率"""
    with pytest.raises(InvalidConfiguration):
        ControllerConfig(loop_rate_hz=0.0)
