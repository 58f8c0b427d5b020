"""
仿真模块
无硬件时替代位姿来源和速度执行端
"""

from .turtle_sim import TurtleSim

__all__ = ['TurtleSim']
