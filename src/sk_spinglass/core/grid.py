# -*- coding: utf-8 -*-
"""
参数网格：相互作用均值 mu 与标准差 sd 的有序取值序列

轴长度 size = round((max - min) / step) + 1，v[i] = min + i * step。
网格在一次运行中只计算一次，之后只读。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Tuple

import numpy as np

__all__ = ["build_axis", "GridCell", "ParameterGrid"]


def build_axis(vmin: float, vmax: float, step: float) -> np.ndarray:
    """由 (min, max, step) 生成等间距取值序列（假定 max >= min, step > 0）。"""
    size = int(round((float(vmax) - float(vmin)) / float(step))) + 1
    return np.array([float(vmin) + i * float(step) for i in range(size)], dtype=np.float64)


@dataclass(frozen=True)
class GridCell:
    a: int      # mu 索引
    b: int      # sd 索引
    mu: float
    sd: float


@dataclass(frozen=True, eq=False)
class ParameterGrid:
    mu: np.ndarray
    sd: np.ndarray

    build = staticmethod(build_axis)

    @classmethod
    def from_ranges(cls, mu_range: Tuple[float, float, float], sd_range: Tuple[float, float, float]) -> "ParameterGrid":
        mu = build_axis(*mu_range)
        sd = build_axis(*sd_range)
        mu.setflags(write=False)
        sd.setflags(write=False)
        return cls(mu=mu, sd=sd)

    @classmethod
    def from_config(cls, grid_cfg: Any) -> "ParameterGrid":
        return cls.from_ranges(
            (grid_cfg.mu_min, grid_cfg.mu_max, grid_cfg.mu_step),
            (grid_cfg.sd_min, grid_cfg.sd_max, grid_cfg.sd_step),
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return (int(self.mu.size), int(self.sd.size))

    @property
    def n_cells(self) -> int:
        return int(self.mu.size) * int(self.sd.size)

    def cell(self, a: int, b: int) -> GridCell:
        return GridCell(int(a), int(b), float(self.mu[a]), float(self.sd[b]))

    def cells(self) -> Iterator[GridCell]:
        # mu 外层、sd 内层，均为升序
        for a in range(self.mu.size):
            for b in range(self.sd.size):
                yield self.cell(a, b)

    def summary(self) -> Dict[str, Any]:
        return {
            "n_mu": int(self.mu.size),
            "n_sd": int(self.sd.size),
            "mu_range": (float(self.mu[0]), float(self.mu[-1])) if self.mu.size else None,
            "sd_range": (float(self.sd[0]), float(self.sd[-1])) if self.sd.size else None,
            "n_cells": self.n_cells,
        }
