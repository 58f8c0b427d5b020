"""
轨迹可视化模块
将一次运行的周期结果绘制为静态图（跑者轨迹、航点、障碍物轨迹、安全圆、目标）
"""

import math
from pathlib import Path
from typing import Sequence, Tuple

from matplotlib.figure import Figure
from matplotlib.patches import Circle

from ..communication.protocol import Pose2D
from ..navigation.optimizer import SolverStatus


def plot_run(results: Sequence,
             goal: Pose2D,
             min_safe_distance_sq: float,
             goal_tolerance: float = 0.5,
             figsize: Tuple[int, int] = (8, 8)) -> Figure:
    """绘制一次运行

    Args:
        results: TickResult列表
        goal: 最终目标
        min_safe_distance_sq: 安全距离平方（绘制最后障碍物位置的安全圆）
        goal_tolerance: 到达阈值（绘制目标圆）
        figsize: 图像大小（英寸）

    Returns:
        matplotlib Figure对象
    """
    fig = Figure(figsize=figsize)
    ax = fig.add_subplot(1, 1, 1)

    if results:
        ax.plot([r.runner.x for r in results], [r.runner.y for r in results],
                '-', color='tab:blue', linewidth=1.5, label='Runner')
        ax.plot([r.obstacle.x for r in results], [r.obstacle.y for r in results],
                '--', color='tab:red', linewidth=1.0, label='Obstacle')

        ok = [r for r in results if r.status == SolverStatus.SUCCESS]
        failed = [r for r in results if r.status != SolverStatus.SUCCESS]
        if ok:
            ax.scatter([r.waypoint.x for r in ok], [r.waypoint.y for r in ok],
                       s=8, color='tab:green', label='Waypoint')
        if failed:
            ax.scatter([r.waypoint.x for r in failed], [r.waypoint.y for r in failed],
                       s=20, marker='x', color='black', label='Solver failure')

        last = results[-1].obstacle
        ax.add_patch(Circle((last.x, last.y), math.sqrt(min_safe_distance_sq),
                            fill=False, color='tab:red', alpha=0.5))

    ax.add_patch(Circle((goal.x, goal.y), goal_tolerance,
                        fill=False, color='tab:orange'))
    ax.plot([goal.x], [goal.y], '*', color='tab:orange', markersize=14, label='Goal')

    ax.set_xlabel('X')
    ax.set_ylabel('Y')
    ax.set_title(f'turtlepath run ({len(results)} ticks)', fontsize=12, fontweight='bold')
    ax.set_aspect('equal', adjustable='datalim')
    ax.grid(True, alpha=0.3, linestyle='--', linewidth=0.5)
    ax.legend(loc='upper left', fontsize=8)
    return fig


def save_run_plot(results: Sequence, goal: Pose2D, min_safe_distance_sq: float,
                  filename, goal_tolerance: float = 0.5,
                  figsize: Tuple[int, int] = (8, 8)) -> Path:
    """绘制并保存为图片文件"""
    path = Path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig = plot_run(results, goal, min_safe_distance_sq, goal_tolerance, figsize)
    fig.savefig(path, dpi=150, bbox_inches='tight')
    return path
