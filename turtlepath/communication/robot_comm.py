"""
机器人通信模块
负责串口位姿接收（跑者/障碍物）与速度指令发送
"""

import serial
import time
import threading
from typing import Optional, Callable, Dict
import logging

from .protocol import (
    PoseSource, PoseUpdate, VelocityCommand,
    parse_line, encode_velocity_command
)


class RobotComm:
    """机器人通信类

    实现与下位机的双向通信：
    - 接收：跑者、障碍物位姿（POSE行，CSV或JSON）
    - 发送：速度指令（VEL行）

    Example:
        >>> comm = RobotComm(port='/dev/ttyUSB0', baudrate=115200)
        >>> comm.on_pose_update = channels.put
        >>> comm.start()
        >>> comm.send_velocity_command(VelocityCommand.planar(0.5, 0.1))
        >>> comm.stop()
    """

    def __init__(self, port: str = '/dev/ttyUSB0', baudrate: int = 115200,
                 timeout: float = 0.1):
        """初始化通信对象

        Args:
            port: 串口设备路径 (Linux: '/dev/ttyUSB0', Windows: 'COM5')
            baudrate: 波特率，默认115200
            timeout: 读超时（秒）
        """
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.serial: Optional[serial.Serial] = None
        self.running = False
        self.receive_thread: Optional[threading.Thread] = None

        # 最新数据缓存
        self.latest_pose: Dict[PoseSource, PoseUpdate] = {}

        # 回调函数
        self.on_pose_update: Optional[Callable[[PoseUpdate], None]] = None

        # 统计
        self.lines_received = 0
        self.parse_errors = 0

        # 日志
        self.logger = logging.getLogger(__name__)

    def connect(self) -> bool:
        """连接串口

        Returns:
            连接成功返回True，失败返回False
        """
        try:
            self.serial = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                timeout=self.timeout,
                write_timeout=1.0
            )
            self.logger.info(f"串口已连接: {self.port} @ {self.baudrate}")
            return True
        except serial.SerialException as e:
            self.logger.error(f"串口连接失败: {e}")
            return False

    def start(self) -> bool:
        """启动接收线程

        Returns:
            启动成功返回True
        """
        if not self.serial or not self.serial.is_open:
            if not self.connect():
                return False

        self.running = True
        self.receive_thread = threading.Thread(
            target=self._receive_loop,
            daemon=True,
            name="RobotComm-Receiver"
        )
        self.receive_thread.start()
        self.logger.info("接收线程已启动")
        return True

    def stop(self):
        """停止通信并关闭串口"""
        self.running = False

        if self.receive_thread and self.receive_thread.is_alive():
            self.receive_thread.join(timeout=2.0)
            self.logger.info("接收线程已停止")

        if self.serial and self.serial.is_open:
            self.serial.close()
            self.logger.info("串口已关闭")

    def _receive_loop(self):
        """接收循环（在独立线程中运行）"""
        buffer = ""

        while self.running:
            try:
                if self.serial and self.serial.in_waiting:
                    data = self.serial.read(self.serial.in_waiting)
                    buffer += data.decode('utf-8', errors='ignore')
                    buffer = self.feed(buffer)
                else:
                    # 没有数据时短暂休眠，避免CPU占用过高
                    time.sleep(0.001)

            except serial.SerialException as e:
                self.logger.error(f"串口读取错误: {e}")
                time.sleep(0.1)

    def feed(self, buffer: str) -> str:
        """按行处理缓冲区，返回未完成的剩余部分"""
        while '\n' in buffer:
            line, buffer = buffer.split('\n', 1)
            self._parse_line(line.strip())
        return buffer

    def _parse_line(self, line: str):
        """解析一行数据

        Args:
            line: 接收到的一行数据（已去除换行符）
        """
        if not line:
            return

        self.lines_received += 1
        try:
            update = parse_line(line)
        except (ValueError, KeyError, TypeError) as e:
            self.parse_errors += 1
            self.logger.warning(f"数据解析失败: {line[:50]}... 错误: {e}")
            return

        if update is None:
            return

        self.latest_pose[update.source] = update
        if self.on_pose_update:
            self.on_pose_update(update)

    # ========== 发送指令方法 ==========

    def send_velocity_command(self, cmd: VelocityCommand):
        """发送速度指令

        Args:
            cmd: VelocityCommand对象
        """
        self._send_command(encode_velocity_command(cmd))

    def stop_robot(self):
        """紧急停止机器人"""
        self.send_velocity_command(VelocityCommand.zero())

    def _send_command(self, cmd: str):
        """发送命令到串口

        Args:
            cmd: 命令字符串
        """
        try:
            if self.serial and self.serial.is_open:
                self.serial.write(cmd.encode('utf-8'))
                self.logger.debug(f"发送命令: {cmd.strip()}")
            else:
                self.logger.warning("串口未打开，无法发送命令")
        except serial.SerialException as e:
            self.logger.error(f"发送命令失败: {e}")

    # ========== 辅助方法 ==========

    def is_connected(self) -> bool:
        """检查串口是否已连接"""
        return self.serial is not None and self.serial.is_open
