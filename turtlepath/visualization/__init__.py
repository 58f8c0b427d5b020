"""
可视化模块
"""

from .trajectory_plot import plot_run, save_run_plot

__all__ = ['plot_run', 'save_run_plot']
