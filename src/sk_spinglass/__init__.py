# -*- coding: utf-8 -*-
"""
SK Spin-Glass Phase-Space Scanner
=================================

Sherrington-Kirkpatrick 自旋玻璃模型在 (mu, sd) 参数网格上的蒙特卡洛扫描工具包。

主要功能
--------
- 全连接 Metropolis 随机选址更新（numba JIT）
- 构型平均的五个观测量：Xsg, Xuni, q, m, c
- 每格点一个结果文件，原子认领，可断点续跑，多进程共享结果目录
- 结果汇总为 HDF5 / NPZ 表与相图

快速开始
--------
>>> from sk_spinglass.utils.config import get_preset_config
>>> from sk_spinglass.data.result_store import FileResultStore
>>> from sk_spinglass.simulation.scan import ScanController
>>> cfg = get_preset_config("tiny")
>>> report = ScanController(cfg, FileResultStore("results")).run()

模块组织
--------
- core: 随机数来源、参数网格、相互作用矩阵、Metropolis、观测量
- simulation: 扫描控制器与命令行启动器
- data: 结果存储与网格导出
- visualization: 相图
- utils: 日志与配置
"""

from importlib import import_module
from typing import TYPE_CHECKING

try:
    from importlib.metadata import version as _pkg_version, PackageNotFoundError
    __version__ = _pkg_version("sk-spinglass")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "core",
    "simulation",
    "data",
    "visualization",
    "utils",
    "errors",
    "__version__",
]

_lazy_subpackages = {
    "core": ".core",
    "simulation": ".simulation",
    "data": ".data",
    "visualization": ".visualization",
    "utils": ".utils",
    "errors": ".errors",
}


def __getattr__(name: str):
    if name in _lazy_subpackages:
        mod = import_module(_lazy_subpackages[name], __name__)
        globals()[name] = mod
        return mod
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(list(__all__))


if TYPE_CHECKING:
    from . import core, simulation, data, visualization, utils, errors
