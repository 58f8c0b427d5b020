# config.py - turtlepath 统一配置文件
# 修改此文件后，重启程序即可生效（命令行参数可覆盖部分配置）

import logging

from .errors import InvalidConfiguration

# ============================================================================
# 目标配置
# ============================================================================
GOAL_X = 10.0                      # 最终目标X坐标
GOAL_Y = 10.0                      # 最终目标Y坐标
GOAL_TOLERANCE = 0.5               # 到达判定阈值（距离小于此值即结束）

# ============================================================================
# 控制循环配置
# ============================================================================
LOOP_RATE_HZ = 5.0                 # 控制循环频率（Hz）
MAX_TICKS = None                   # 最大周期数（None=直到到达目标）

# ============================================================================
# 局部航点优化器配置
# ============================================================================
TRUST_REGION_RADIUS = 0.2          # 信赖域半宽（每轴每周期最大移动距离）
MIN_SAFE_DISTANCE_SQ = 2.0         # 与障碍物的最小安全距离（平方）
SOLVER_MAX_ITERATIONS = 10         # 求解器最大迭代次数（限制求解耗时）
SOLVER_TOLERANCE = 1e-6            # 一阶最优性容差
SOLVER_FEASIBILITY_TOLERANCE = 1e-4  # 结果可行性校验容差
SOLVER_FAILURE_POLICY = 'hold'     # 求解失败时的航点策略
                                   # 'adopt'  - 照常采用候选点（旧行为）
                                   # 'hold'   - 保持上一航点
                                   # 'center' - 退回信赖域中心（原地）

# ============================================================================
# 转向与速度控制器配置
# ============================================================================
CONTROLLER_GAIN = 1.0              # 角速度比例增益
NORMALIZE_ANGLE_ERROR = True       # 是否将角度误差归一化到(-π, π]

# ============================================================================
# 位姿通道配置
# ============================================================================
POSE_QUEUE_SIZE = 1000             # 每个位姿来源的缓冲队列长度（满则丢弃最旧）

# ============================================================================
# 串口通信配置
# ============================================================================
SERIAL_PORT = '/dev/ttyUSB0'       # Windows: 'COM5', Linux: '/dev/ttyUSB0'
BAUDRATE = 115200
TIMEOUT = 0.1

# ============================================================================
# 仿真配置（模拟turtlesim）
# ============================================================================
SIM_RUNNER_START = (1.0, 1.0, 0.0)     # 跑者初始位姿 (x, y, theta)
SIM_OBSTACLE_CENTER = (5.5, 5.5)       # 障碍物圆周运动中心
SIM_OBSTACLE_RADIUS = 1.5              # 障碍物圆周运动半径（0=静止）
SIM_OBSTACLE_SPEED = 0.3               # 障碍物角速度（rad/s）
SIM_WORLD_SIZE = 11.088889             # 世界边界（与turtlesim一致）

# ============================================================================
# 可视化配置
# ============================================================================
VISUALIZE_WINDOW_SIZE = (8, 8)     # 图像大小（英寸，matplotlib figsize）
PLOT_DIR = 'data/plots'

# ============================================================================
# 日志配置
# ============================================================================
LOG_DIR = 'data/logs'
LOG_LEVEL = 'INFO'                 # DEBUG | INFO | WARNING | ERROR
ENABLE_FILE_LOG = False
LOG_FORMAT = '[%(asctime)s] %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%H:%M:%S'

# ============================================================================
# 数据记录配置
# ============================================================================
ENABLE_DATA_RECORDING = False
RECORDING_DIR = 'data/recordings'

_POLICIES = ('adopt', 'hold', 'center')

logger = logging.getLogger(__name__)


def get_config_summary():
    """获取配置摘要（用于调试）"""
    return f"""
╔════════════════════════════════════════════════════════════════╗
║                    turtlepath 配置摘要                         ║
╠════════════════════════════════════════════════════════════════╣
║ 目标: ({GOAL_X}, {GOAL_Y}), 到达阈值={GOAL_TOLERANCE}
║ 循环: {LOOP_RATE_HZ}Hz
║ 优化器: r={TRUST_REGION_RADIUS}, S={MIN_SAFE_DISTANCE_SQ}, max_iter={SOLVER_MAX_ITERATIONS}, tol={SOLVER_TOLERANCE}
║ 失败策略: {SOLVER_FAILURE_POLICY}
║ 控制器: 增益={CONTROLLER_GAIN}, 角度归一化={'启用' if NORMALIZE_ANGLE_ERROR else '禁用'}
║ 日志: {LOG_LEVEL} -> {LOG_DIR}
╚════════════════════════════════════════════════════════════════╝
    """


def validate_config(**overrides):
    """验证配置参数的合理性

    Args:
        **overrides: 覆盖模块常量的值（键为常量名，如 TRUST_REGION_RADIUS）

    Returns:
        警告信息列表

    Raises:
        InvalidConfiguration: 存在非法参数
    """
    values = {name: value for name, value in globals().items() if name.isupper()}
    unknown = set(overrides) - set(values)
    if unknown:
        raise InvalidConfiguration(f"未知配置项: {', '.join(sorted(unknown))}")
    values.update(overrides)

    errors = []
    warnings = []

    # 检查关键参数
    for name in ('TRUST_REGION_RADIUS', 'MIN_SAFE_DISTANCE_SQ', 'SOLVER_TOLERANCE',
                 'LOOP_RATE_HZ', 'GOAL_TOLERANCE'):
        if values[name] <= 0:
            errors.append(f"{name} 必须大于0")
    if values['SOLVER_MAX_ITERATIONS'] < 1:
        errors.append("SOLVER_MAX_ITERATIONS 必须至少为1")
    if values['SOLVER_FAILURE_POLICY'] not in _POLICIES:
        errors.append(f"SOLVER_FAILURE_POLICY 必须是 {_POLICIES} 之一")
    if values['POSE_QUEUE_SIZE'] < 1:
        errors.append("POSE_QUEUE_SIZE 必须至少为1")

    # 检查合理性
    if values['GOAL_TOLERANCE'] < values['TRUST_REGION_RADIUS']:
        warnings.append(
            f"GOAL_TOLERANCE={values['GOAL_TOLERANCE']} 小于信赖域半宽，可能在目标附近来回摆动")
    if values['LOOP_RATE_HZ'] > 50:
        warnings.append(f"LOOP_RATE_HZ={values['LOOP_RATE_HZ']} 过高，求解耗时可能超过周期")

    for warn in warnings:
        logger.warning(warn)

    if errors:
        raise InvalidConfiguration("配置错误: " + "; ".join(errors))

    return warnings


if __name__ == '__main__':
    # 显示配置摘要: python -m turtlepath.config
    print(get_config_summary())
    validate_config()
