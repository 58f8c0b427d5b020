"""
异常定义
"""


class TurtlePathError(Exception):
    """turtlepath所有异常的基类"""


class InvalidConfiguration(TurtlePathError, ValueError):
    """配置参数非法（启动阶段致命错误）"""


class SolverFailure(TurtlePathError):
    """单个周期求解失败（可恢复）

    Attributes:
        status: SolverStatus枚举值
    """

    def __init__(self, status, message: str = ''):
        self.status = status
        text = f"求解失败: {status.value}"
        if message:
            text += f" ({message})"
        super().__init__(text)
