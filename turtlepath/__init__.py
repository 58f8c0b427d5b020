"""
turtlepath - 单障碍物局部避障导航
每个控制周期求解一次小型约束非线性规划，选出下一个局部航点并转换为速度指令
"""

__version__ = '0.1.0'
