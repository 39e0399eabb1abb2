# -*- coding: utf-8 -*-
"""
核心模块
============

随机数来源（rng）、参数网格（grid）、相互作用矩阵（couplings）、
Metropolis sweep（algorithms）、热化 / 采样（sampler）与观测量累加（observables）。
"""

from importlib import import_module
from typing import TYPE_CHECKING

__all__ = ["rng", "grid", "couplings", "algorithms", "sampler", "observables"]

_lazy = {
    "rng": ".rng",
    "grid": ".grid",
    "couplings": ".couplings",
    "algorithms": ".algorithms",
    "sampler": ".sampler",
    "observables": ".observables",
}


def __getattr__(name: str):
    if name in _lazy:
        mod = import_module(_lazy[name], __name__)
        globals()[name] = mod
        return mod
    raise AttributeError(f"{__name__} has no attribute {name!r}")


def __dir__():
    return sorted(list(__all__))


if TYPE_CHECKING:
    from . import rng, grid, couplings, algorithms, sampler, observables
