# -*- coding: utf-8 -*-
"""
    随机数来源（可注入）

所有随机性都通过显式传递的 ``RandomSource`` 对象获得，不存在进程级隐式全局状态：
    - ``uniforms(n)``           : [0, 1) 均匀分布实数（位点选择 + Metropolis 接受判据）
    - ``gaussians(scale, n)``   : 零均值高斯偏差，``scale`` 直接作为标准差传入

实现：
    - ``NumpyRandomSource``    : 基于 NumPy 位生成器；默认 ``mt19937`` 模式复现参考程序
                                 的均匀流（init_genrand(seed) 播种，genrand_int32 / 2**32）
    - ``ScriptedRandomSource`` : 循环回放给定序列，用于确定性单元测试
    - ``UniformPool``          : 为 JIT 内核预取均匀随机数，严格按顺序消费，不跳过任何值

种子策略（``resolve_seed``）：
    - ``fixed`` : 每次启动都用同一常数种子（参考行为，默认）
    - ``spawn`` : 由 SeedSequence(seed).spawn 为每个 worker 派生子种子
    - ``time``  : 由时间与 PID 派生（仅在显式要求时使用）
"""

from __future__ import annotations

import os
import time
from typing import Optional, Sequence

import numpy as np
from numpy.random import Generator, SeedSequence

__all__ = [
    "RandomSource",
    "NumpyRandomSource",
    "ScriptedRandomSource",
    "UniformPool",
    "resolve_seed",
    "spawn_worker_seeds",
    "SEED_POLICIES",
    "BIT_GENERATORS",
]

SEED_POLICIES = ("fixed", "spawn", "time")
BIT_GENERATORS = ("mt19937", "philox", "pcg64")

# 高斯流与均匀流解耦的种子掩码
_GAUSS_SEED_MASK = 0xC2B2AE35
_TWO_POW_32 = 4294967296.0


def _seed32(seed: Optional[int]) -> int:
    """将任意整数截断为 32-bit 无符号整数。seed 为 None 时抛出 ValueError。"""
    if seed is None:
        raise ValueError("seed must be an integer (not None)")
    try:
        s = int(seed)
    except (TypeError, ValueError) as e:
        raise ValueError(f"seed must be convertible to int, got {seed!r}") from e
    return s & 0xFFFFFFFF


# -----------------------
# 抽象接口
# -----------------------
class RandomSource:
    """
    随机数来源接口。子类至少实现 ``uniforms`` 与 ``gaussians``。
    """

    name = "abstract"

    def uniforms(self, n: int) -> np.ndarray:
        raise NotImplementedError

    def gaussians(self, scale: float, n: int) -> np.ndarray:
        raise NotImplementedError

    def uniform(self) -> float:
        return float(self.uniforms(1)[0])

    def gaussian(self, scale: float) -> float:
        return float(self.gaussians(scale, 1)[0])

    def describe(self) -> dict:
        return {"source": self.name}


class NumpyRandomSource(RandomSource):
    """
    NumPy 位生成器实现。

    bit_generator:
      - ``mt19937``: 均匀流使用 legacy ``RandomState``（与 mt19937ar 的 init_genrand 相同的播种），
        取 32 位原始输出除以 2**32，即 genrand_real2 的 [0,1) 语义；
        高斯流使用独立的 ``Generator(MT19937)``（ziggurat）。
      - ``philox`` / ``pcg64``: 两条流均为 ``numpy.random.Generator``。
    """

    name = "numpy"

    def __init__(self, seed: int = 0, bit_generator: str = "mt19937"):
        bg = str(bit_generator).strip().lower()
        if bg not in BIT_GENERATORS:
            raise ValueError(f"Unknown bit_generator {bit_generator!r}. Known: {BIT_GENERATORS}")
        self.seed = _seed32(seed)
        self.bit_generator = bg
        gauss_seed = self.seed ^ _GAUSS_SEED_MASK

        self._legacy: Optional[np.random.RandomState] = None
        self._uniform_gen: Optional[Generator] = None
        if bg == "mt19937":
            self._legacy = np.random.RandomState(self.seed)
            self._gauss_gen = Generator(np.random.MT19937(gauss_seed))
        elif bg == "philox":
            self._uniform_gen = Generator(np.random.Philox(self.seed))
            self._gauss_gen = Generator(np.random.Philox(gauss_seed))
        else:
            self._uniform_gen = Generator(np.random.PCG64(self.seed))
            self._gauss_gen = Generator(np.random.PCG64(gauss_seed))

        self.uniform_draws = 0
        self.gaussian_draws = 0

    def uniforms(self, n: int) -> np.ndarray:
        n = int(n)
        if n < 0:
            raise ValueError("n must be non-negative")
        self.uniform_draws += n
        if self._legacy is not None:
            raw = self._legacy.randint(0, 1 << 32, size=n, dtype=np.uint32)
            return raw.astype(np.float64) * (1.0 / _TWO_POW_32)
        return self._uniform_gen.random(n)

    def gaussians(self, scale: float, n: int) -> np.ndarray:
        n = int(n)
        if n < 0:
            raise ValueError("n must be non-negative")
        scale = float(scale)
        if scale < 0:
            raise ValueError("scale must be non-negative")
        self.gaussian_draws += n
        return scale * self._gauss_gen.standard_normal(n)

    def describe(self) -> dict:
        return {
            "source": self.name,
            "seed": int(self.seed),
            "bit_generator": self.bit_generator,
            "uniform_draws": int(self.uniform_draws),
            "gaussian_draws": int(self.gaussian_draws),
            "numpy": np.__version__,
        }


class ScriptedRandomSource(RandomSource):
    """
    按给定序列循环回放的随机数来源（测试用）。

    gaussians 序列给出的是单位尺度的偏差，返回值为 ``scale * value``；
    未提供时高斯偏差恒为 0。
    """

    name = "scripted"

    def __init__(self, uniforms: Sequence[float], gaussians: Optional[Sequence[float]] = None):
        u = np.asarray(list(uniforms), dtype=np.float64)
        if u.size == 0:
            raise ValueError("uniforms script must be non-empty")
        if np.any(u < 0.0) or np.any(u >= 1.0):
            raise ValueError("scripted uniforms must lie in [0, 1)")
        self._u = u
        g = np.asarray(list(gaussians) if gaussians is not None else [], dtype=np.float64)
        self._g = g if g.size > 0 else np.zeros(1)
        self._ui = 0
        self._gi = 0

    @staticmethod
    def _take(seq: np.ndarray, start: int, n: int) -> np.ndarray:
        idx = (start + np.arange(n)) % seq.size
        return seq[idx].copy()

    def uniforms(self, n: int) -> np.ndarray:
        out = self._take(self._u, self._ui, int(n))
        self._ui += int(n)
        return out

    def gaussians(self, scale: float, n: int) -> np.ndarray:
        out = float(scale) * self._take(self._g, self._gi, int(n))
        self._gi += int(n)
        return out

    @property
    def uniform_draws(self) -> int:
        return self._ui

    @property
    def gaussian_draws(self) -> int:
        return self._gi


# -----------------------
# 预取池：为 JIT 内核准备随机数
# -----------------------
class UniformPool:
    """
    固定容量的均匀随机数缓冲区。

    ``reserve(n)`` 保证缓冲区中至少有 n 个未消费的值：剩余值前移，只从来源补齐差额，
    因此来源流按顺序被消费，任何值都不会被跳过或重复使用。
    """

    def __init__(self, source: RandomSource, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.source = source
        self.buffer = np.empty(int(capacity), dtype=np.float64)
        self.pos = int(capacity)
        self.end = int(capacity)
        self.consumed = 0

    @property
    def remaining(self) -> int:
        return self.end - self.pos

    def reserve(self, n: int) -> None:
        n = int(n)
        if n > self.buffer.size:
            raise ValueError(f"cannot reserve {n} values in a pool of capacity {self.buffer.size}")
        left = self.remaining
        if left >= n:
            return
        if left > 0:
            self.buffer[:left] = self.buffer[self.pos:self.end]
        need = n - left
        self.buffer[left:n] = self.source.uniforms(need)
        self.pos = 0
        self.end = n

    def advance_to(self, pos: int) -> None:
        if pos < self.pos or pos > self.end:
            raise RuntimeError(f"pool cursor out of range: {pos} not in [{self.pos}, {self.end}]")
        self.consumed += int(pos) - self.pos
        self.pos = int(pos)


# -----------------------
# 种子策略
# -----------------------
def spawn_worker_seeds(master_seed: int, n_workers: int) -> list:
    """
    使用 SeedSequence.spawn 从主种子派生 n_workers 个 32 位子种子。
    """
    if master_seed is None:
        raise ValueError("master_seed must be provided")
    children = SeedSequence(int(master_seed)).spawn(int(n_workers))
    return [int(ch.generate_state(1, dtype=np.uint32)[0]) for ch in children]


def resolve_seed(policy: str, seed: int, worker_index: int = 0) -> int:
    """
    根据种子策略得到本进程实际使用的种子。

    - fixed: 原样返回 seed（所有进程相同）
    - spawn: SeedSequence(seed) 派生的第 worker_index 个子种子
    - time : 由 time_ns 与 PID 混合得到
    """
    p = str(policy).strip().lower()
    if p == "fixed":
        return _seed32(seed)
    if p == "spawn":
        if worker_index < 0:
            raise ValueError("worker_index must be non-negative")
        return spawn_worker_seeds(seed, worker_index + 1)[worker_index]
    if p == "time":
        entropy = [time.time_ns() & 0xFFFFFFFF, os.getpid(), int(worker_index)]
        return int(SeedSequence(entropy).generate_state(1, dtype=np.uint32)[0])
    raise ValueError(f"Unknown seed policy {policy!r}. Known: {SEED_POLICIES}")
