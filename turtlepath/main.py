"""
turtlepath 主程序入口
驱动跑者到达目标并避开移动障碍物

运行模式：
  python -m turtlepath.main --sim                  # 仿真（无需硬件）
  python -m turtlepath.main --sim --plot --record  # 仿真并保存轨迹图和周期记录
  python -m turtlepath.main --port /dev/ttyUSB0    # 串口连接真实机器人
"""

import argparse
import logging
import signal
import sys
import time

from . import config
from .communication.pose_channel import PoseChannels
from .communication.protocol import Pose2D
from .communication.robot_comm import RobotComm
from .errors import InvalidConfiguration
from .navigation.control_loop import ControlLoop, LoopConfig, Rate
from .navigation.controller import SteeringController, ControllerConfig
from .navigation.optimizer import LocalWaypointOptimizer, OptimizerConfig, SolverStatus
from .navigation.pose_state import PoseState
from .simulation.turtle_sim import TurtleSim
from .utils.data_recorder import TickRecorder
from .utils.logger import setup_logger, default_log_file


# 命令行参数 -> 配置常量名
_OVERRIDES = {
    'rate': 'LOOP_RATE_HZ',
    'goal_tolerance': 'GOAL_TOLERANCE',
    'radius': 'TRUST_REGION_RADIUS',
    'min_safe_dist_sq': 'MIN_SAFE_DISTANCE_SQ',
    'max_iter': 'SOLVER_MAX_ITERATIONS',
    'tol': 'SOLVER_TOLERANCE',
    'policy': 'SOLVER_FAILURE_POLICY',
    'gain': 'CONTROLLER_GAIN',
    'max_ticks': 'MAX_TICKS',
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='turtlepath 局部航点优化避障导航')
    parser.add_argument('--sim', action='store_true',
                        help='使用内置仿真器（无需硬件）')
    parser.add_argument('--realtime', action='store_true',
                        help='仿真模式下按真实时间限速（默认尽快运行）')
    parser.add_argument('--port', default=config.SERIAL_PORT,
                        help=f'串口设备（默认{config.SERIAL_PORT}）')
    parser.add_argument('--baudrate', type=int, default=config.BAUDRATE,
                        help=f'波特率（默认{config.BAUDRATE}）')
    parser.add_argument('--goal', type=float, nargs=2, metavar=('X', 'Y'),
                        default=(config.GOAL_X, config.GOAL_Y), help='最终目标坐标')
    parser.add_argument('--rate', type=float, help='控制循环频率（Hz）')
    parser.add_argument('--goal-tolerance', type=float, help='到达判定阈值')
    parser.add_argument('--radius', type=float, help='信赖域半宽')
    parser.add_argument('--min-safe-dist-sq', type=float, help='最小安全距离平方')
    parser.add_argument('--max-iter', type=int, help='求解器最大迭代次数')
    parser.add_argument('--tol', type=float, help='求解器容差')
    parser.add_argument('--policy', choices=['adopt', 'hold', 'center'],
                        help='求解失败时的航点策略')
    parser.add_argument('--gain', type=float, help='角速度比例增益')
    parser.add_argument('--raw-angle', action='store_true',
                        help='不对角度误差做(-π, π]归一化（旧行为）')
    parser.add_argument('--max-ticks', type=int, help='最大周期数')
    parser.add_argument('--record', action='store_true', help='记录每个周期的结果')
    parser.add_argument('--plot', action='store_true', help='结束后保存轨迹图（仿真模式）')
    parser.add_argument('--log-level', default=config.LOG_LEVEL,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--log-file', action='store_true', default=config.ENABLE_FILE_LOG,
                        help=f'同时写入日志文件（{config.LOG_DIR}）')
    return parser


def resolve_settings(args) -> dict:
    """合并配置常量与命令行覆盖，并做合法性校验

    Raises:
        InvalidConfiguration: 参数非法
    """
    overrides = {const: getattr(args, name) for name, const in _OVERRIDES.items()
                 if getattr(args, name) is not None}
    overrides['GOAL_X'], overrides['GOAL_Y'] = args.goal
    if args.raw_angle:
        overrides['NORMALIZE_ANGLE_ERROR'] = False

    config.validate_config(**overrides)

    settings = {name: getattr(config, name) for name in dir(config) if name.isupper()}
    settings.update(overrides)
    return settings


def build_components(settings: dict):
    """根据配置构造 (优化器, 控制器, 循环配置)"""
    optimizer = LocalWaypointOptimizer(OptimizerConfig(
        trust_region_radius=settings['TRUST_REGION_RADIUS'],
        min_safe_distance_sq=settings['MIN_SAFE_DISTANCE_SQ'],
        max_iterations=settings['SOLVER_MAX_ITERATIONS'],
        tolerance=settings['SOLVER_TOLERANCE'],
        feasibility_tolerance=settings['SOLVER_FEASIBILITY_TOLERANCE'],
        failure_policy=settings['SOLVER_FAILURE_POLICY']
    ))
    controller = SteeringController(ControllerConfig(
        gain=settings['CONTROLLER_GAIN'],
        normalize_angle_error=settings['NORMALIZE_ANGLE_ERROR'],
        loop_rate_hz=settings['LOOP_RATE_HZ']
    ))
    loop_config = LoopConfig(
        loop_rate_hz=settings['LOOP_RATE_HZ'],
        goal_tolerance=settings['GOAL_TOLERANCE']
    )
    return optimizer, controller, loop_config


def main(argv=None) -> int:
    """主函数

    Returns:
        进程退出码（0=正常结束, 1=连接失败, 2=配置错误）
    """
    args = build_parser().parse_args(argv)

    # 配置日志
    log_file = default_log_file(config.LOG_DIR) if args.log_file else None
    logger = setup_logger('turtlepath', log_file, getattr(logging, args.log_level),
                          datefmt=config.LOG_DATE_FORMAT)

    print("=" * 70)
    print(" turtlepath - 局部航点优化避障导航")
    print("=" * 70)

    try:
        settings = resolve_settings(args)
        optimizer, controller, loop_config = build_components(settings)
    except InvalidConfiguration as e:
        logger.error(f"[系统] {e}")
        return 2

    goal = Pose2D(settings['GOAL_X'], settings['GOAL_Y'])
    print(f"\n配置信息:")
    print(f"  模式: {'仿真' if args.sim else '串口 ' + args.port}")
    print(f"  目标: ({goal.x:.2f}, {goal.y:.2f}), 阈值={loop_config.goal_tolerance}")
    print(f"  频率: {loop_config.loop_rate_hz}Hz")
    print(f"  信赖域: {optimizer.config.trust_region_radius}, "
          f"安全距离²: {optimizer.config.min_safe_distance_sq}")
    print(f"  失败策略: {optimizer.config.failure_policy}")
    print()

    channels = PoseChannels(maxsize=settings['POSE_QUEUE_SIZE'])
    comm = None
    sim = None

    if args.sim:
        runner_start = Pose2D(*settings['SIM_RUNNER_START'])
        state = PoseState(goal=goal, runner=runner_start)
        sim = TurtleSim(
            runner_start,
            obstacle_center=settings['SIM_OBSTACLE_CENTER'],
            obstacle_radius=settings['SIM_OBSTACLE_RADIUS'],
            obstacle_speed=settings['SIM_OBSTACLE_SPEED'],
            dt=loop_config.period,
            world_size=settings['SIM_WORLD_SIZE']
        )
        sim.on_pose_update = channels.put
        sim.publish()
        sink = sim.apply_command
        if args.realtime:
            rate = Rate(loop_config.loop_rate_hz)
        else:
            rate = Rate(loop_config.loop_rate_hz, sleeper=lambda _: None)
    else:
        state = PoseState(goal=goal)
        comm = RobotComm(port=args.port, baudrate=args.baudrate, timeout=settings['TIMEOUT'])
        comm.on_pose_update = channels.put
        print("[系统] 正在连接机器人...")
        if not comm.start():
            print("[错误] 无法连接串口，请检查:")
            print(f"  1. 串口设备是否存在: {args.port}")
            print(f"  2. 是否有权限: sudo chmod 666 {args.port}")
            print(f"  3. 下位机是否已连接并通电")
            return 1
        sink = comm.send_velocity_command
        rate = Rate(loop_config.loop_rate_hz)

    recorder = None
    if args.record or settings['ENABLE_DATA_RECORDING']:
        recorder = TickRecorder(settings['RECORDING_DIR'])
        recorder.start_recording('sim_run' if args.sim else 'run')

    loop = ControlLoop(state, optimizer, controller, sink,
                       channels=channels, config=loop_config,
                       rate=rate, recorder=recorder)

    def signal_handler(sig, frame):
        """Ctrl+C：在下一个周期边界安全停止"""
        print("\n[系统] 接收到中断信号，正在安全退出...")
        loop.cancel()

    previous_handler = signal.signal(signal.SIGINT, signal_handler)

    start = time.time()
    try:
        results = loop.run(max_ticks=settings['MAX_TICKS'])
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        if comm:
            comm.stop()
        if recorder:
            recorder.stop_recording()

    elapsed = time.time() - start
    failures = sum(1 for r in results if r.status != SolverStatus.SUCCESS)

    print("\n" + "=" * 60)
    print("   运行统计")
    print("=" * 60)
    print(f"结束原因: {loop.termination_reason}")
    print(f"周期数: {len(results)}")
    print(f"求解失败: {failures}")
    print(f"用时: {elapsed:.1f}s")
    solve_stats = loop.perf.get_statistics('solve')
    if solve_stats:
        print(f"求解耗时: 平均{solve_stats['avg']*1000:.2f}ms, "
              f"最大{solve_stats['max']*1000:.2f}ms")
    if results:
        print(f"最终距离: {results[-1].distance_to_goal:.3f}")
    if sim:
        print(f"最小障碍物距离: {sim.min_clearance():.3f}")
    print("=" * 60 + "\n")

    if args.plot and results:
        from .visualization.trajectory_plot import save_run_plot
        filename = f"{settings['PLOT_DIR']}/run_{int(time.time())}.png"
        save_run_plot(results, goal, optimizer.config.min_safe_distance_sq, filename,
                      goal_tolerance=loop_config.goal_tolerance,
                      figsize=settings['VISUALIZE_WINDOW_SIZE'])
        print(f"[保存] 轨迹图保存到: {filename}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
