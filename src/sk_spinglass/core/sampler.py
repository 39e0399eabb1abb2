# -*- coding: utf-8 -*-
"""
热化 + 采样驱动

thermalize(J, count): 执行 count 次 sweep，结果丢弃
sample(J)           : 执行 tdim 次 sweep，每次 sweep 后把整个构型拷贝到轨迹的下一列
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .algorithms import SpinSystem

__all__ = ["Sampler"]


class Sampler:
    """轨迹缓冲区 (N, tdim) int8 由 Sampler 持有，每个构型覆盖写入。"""

    def __init__(self, system: SpinSystem, tdim: int, trajectory: Optional[np.ndarray] = None):
        if int(tdim) <= 0:
            raise ValueError(f"tdim must be positive, got {tdim}")
        self.system = system
        self.tdim = int(tdim)
        shape = (system.n_spins, self.tdim)
        if trajectory is None:
            trajectory = np.empty(shape, dtype=np.int8)
        elif trajectory.shape != shape or trajectory.dtype != np.int8:
            raise ValueError(f"trajectory buffer must be int8 with shape {shape}")
        self.trajectory = trajectory

    def thermalize(self, J: np.ndarray, count: int) -> None:
        if int(count) > 0:
            self.system.run(J, int(count))

    def sample(self, J: np.ndarray) -> np.ndarray:
        s = self.system.spins
        traj = self.trajectory
        for t in range(self.tdim):
            self.system.sweep(J)
            traj[:, t] = s
        return traj
