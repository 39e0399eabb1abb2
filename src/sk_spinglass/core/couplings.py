# -*- coding: utf-8 -*-
"""
    SK 模型相互作用矩阵生成

J[i, j] = J[j, i] = mu + g,   g ~ Gaussian(scale=sd),   J[i, i] = 0

注意：
    - sd 是直接传给高斯采样器的尺度参数（标准差），不是方差
    - 每个构型（configuration）都必须重新抽取，同一格点内也不复用
    - 抽取顺序为上三角按行优先（i 升序，j > i 升序），对角线不消耗随机数
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .rng import RandomSource

__all__ = ["generate", "is_valid_coupling_matrix", "InteractionMatrixGenerator"]


def generate(mu: float, sd: float, rng: RandomSource, n_spins: Optional[int] = None,
             out: Optional[np.ndarray] = None) -> np.ndarray:
    """
    抽取一个对称、零对角的 N×N 相互作用矩阵。
    提供 out 时原地写入（复用缓冲区），否则需给出 n_spins 并新建数组。
    """
    if out is None:
        if n_spins is None:
            raise ValueError("either n_spins or out must be given")
        out = np.empty((int(n_spins), int(n_spins)), dtype=np.float64)
    if out.ndim != 2 or out.shape[0] != out.shape[1]:
        raise ValueError(f"coupling buffer must be square, got shape {out.shape}")
    N = out.shape[0]

    iu, ju = np.triu_indices(N, k=1)
    g = rng.gaussians(float(sd), iu.size)
    vals = float(mu) + g
    out[iu, ju] = vals
    out[ju, iu] = vals
    np.fill_diagonal(out, 0.0)
    return out


def is_valid_coupling_matrix(J: np.ndarray) -> bool:
    """对称且对角为零。"""
    a = np.asarray(J)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        return False
    return bool(np.array_equal(a, a.T) and np.all(np.diag(a) == 0.0))


class InteractionMatrixGenerator:
    """为固定 N 持有一个复用缓冲区的生成器。"""

    def __init__(self, n_spins: int, buffer: Optional[np.ndarray] = None):
        self.n_spins = int(n_spins)
        if buffer is None:
            buffer = np.zeros((self.n_spins, self.n_spins), dtype=np.float64)
        self.buffer = buffer
        # 上三角索引只算一次
        self._iu, self._ju = np.triu_indices(self.n_spins, k=1)

    def generate(self, mu: float, sd: float, rng: RandomSource) -> np.ndarray:
        J = self.buffer
        vals = float(mu) + rng.gaussians(float(sd), self._iu.size)
        J[self._iu, self._ju] = vals
        J[self._ju, self._iu] = vals
        np.fill_diagonal(J, 0.0)
        return J
