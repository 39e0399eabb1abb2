# -*- coding: utf-8 -*-
"""
致命错误类型

扫描过程中只有两类错误会终止进程：
    - ResourceExhaustion : 大矩阵 / 轨迹缓冲区分配失败
    - StoreUnavailable   : 结果存储条目无法创建或写入

两者都不做重试，也不做单格点隔离；正在计算的格点保持 "Claimed"（空标记文件），
需要人工清理（``batch_runner --mode release_claims``）后才会被重新计算。
"""

from __future__ import annotations

__all__ = ["SimulationError", "ResourceExhaustion", "StoreUnavailable"]


class SimulationError(RuntimeError):
    """扫描过程中的致命错误基类。"""


class ResourceExhaustion(SimulationError, MemoryError):
    """缓冲区（自旋、轨迹、相互作用矩阵、协方差累加器）分配失败。"""

    def __init__(self, what: str, shape=None, cause: BaseException | None = None):
        self.what = what
        self.shape = shape
        msg = f"Out of memory while allocating {what}"
        if shape is not None:
            msg += f" (shape={tuple(shape)})"
        super().__init__(msg)
        if cause is not None:
            self.__cause__ = cause


class StoreUnavailable(SimulationError):
    """结果存储条目无法打开 / 写入。"""

    def __init__(self, path, cause: BaseException | None = None):
        self.path = str(path)
        msg = f"Cannot open result entry for writing: {self.path}"
        if cause is not None:
            msg += f" ({cause})"
        super().__init__(msg)
        if cause is not None:
            self.__cause__ = cause
