# -*- coding: utf-8 -*-
"""
Metropolis sweep 单元测试

覆盖范围：
- 任意多次 sweep 后自旋仍为 ±1
- delta <= 0 无条件翻转，且只消耗选址随机数
- delta > 0 时按 u < exp(-2 delta) 接受 / 拒绝
- 随机数严格按序消费
- Sampler：轨迹列即每次 sweep 后的构型
"""

import math
import sys
import unittest
from pathlib import Path

import numpy as np

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(_ROOT / "src"))

from sk_spinglass.core.algorithms import SpinSystem, metropolis_sweep
from sk_spinglass.core.couplings import generate
from sk_spinglass.core.rng import NumpyRandomSource, ScriptedRandomSource, UniformPool
from sk_spinglass.core.sampler import Sampler


def _pair_couplings(j: float) -> np.ndarray:
    return np.array([[0.0, j], [j, 0.0]])


class TestSpinSystem(unittest.TestCase):

    def test_spins_stay_ising(self):
        rng = NumpyRandomSource(seed=2025)
        system = SpinSystem(40, rng)
        J = generate(0.0, 0.3, rng, n_spins=40)
        system.run(J, 200)
        self.assertEqual(system.spins.dtype, np.int8)
        self.assertTrue(set(np.unique(system.spins).tolist()) <= {-1, 1})
        self.assertEqual(system.sweeps, 200)
        self.assertEqual(system.attempts, 200 * 40)
        self.assertTrue(0.0 <= system.acceptance_rate <= 1.0)

    def test_scripted_site_selection_flips(self):
        rng = ScriptedRandomSource([0.0, 0.3, 0.55, 0.8])
        system = SpinSystem(4, rng)
        acc = system.sweep(np.zeros((4, 4)))
        self.assertEqual(acc, 4)
        np.testing.assert_array_equal(system.spins, [-1, -1, -1, -1])

    def test_zero_field_always_flips_one_uniform_per_proposal(self):
        N = 10
        system = SpinSystem(N, NumpyRandomSource(seed=1))
        J = np.zeros((N, N))
        system.run(J, 7)
        self.assertEqual(system.accepted, system.attempts)
        self.assertEqual(system.rng_consumed, 7 * N)

    def test_acceptance_against_boltzmann_factor(self):
        # delta = 0.5 -> exp(-1) ≈ 0.368：u = 0.3 接受
        # 第二次选中同一位点时 delta = -0.5，无条件翻回
        rng = ScriptedRandomSource([0.0, 0.3, 0.0, 0.9])
        system = SpinSystem(2, rng)
        self.assertLess(0.3, math.exp(-1.0))
        acc = system.sweep(_pair_couplings(0.5))
        self.assertEqual(acc, 2)
        np.testing.assert_array_equal(system.spins, [1, 1])
        self.assertEqual(system.rng_consumed, 3)

    def test_rejection_against_boltzmann_factor(self):
        rng = ScriptedRandomSource([0.0, 0.9])
        system = SpinSystem(2, rng)
        self.assertGreaterEqual(0.9, math.exp(-1.0))
        acc = system.sweep(_pair_couplings(0.5))
        self.assertEqual(acc, 0)
        np.testing.assert_array_equal(system.spins, [1, 1])
        self.assertEqual(system.rng_consumed, 4)

    def test_strong_ferromagnet_stays_ordered(self):
        N = 16
        J = np.full((N, N), 1.0)
        np.fill_diagonal(J, 0.0)
        system = SpinSystem(N, NumpyRandomSource(seed=0))
        system.run(J, 20)
        np.testing.assert_array_equal(system.spins, np.ones(N))

    def test_reset(self):
        system = SpinSystem(3, ScriptedRandomSource([0.0]))
        system.reset(-1)
        np.testing.assert_array_equal(system.spins, [-1, -1, -1])
        system.reset()
        np.testing.assert_array_equal(system.spins, [1, 1, 1])
        with self.assertRaises(ValueError):
            system.reset(0)

    def test_shape_mismatch(self):
        system = SpinSystem(3, ScriptedRandomSource([0.0]))
        with self.assertRaises(ValueError):
            system.sweep(np.zeros((4, 4)))
        with self.assertRaises(ValueError):
            SpinSystem(0, ScriptedRandomSource([0.0]))

    def test_reproducible_under_fixed_seed(self):
        J = generate(0.01, 0.5, NumpyRandomSource(seed=5), n_spins=20)
        a = SpinSystem(20, NumpyRandomSource(seed=99))
        b = SpinSystem(20, NumpyRandomSource(seed=99))
        a.run(J, 30)
        b.run(J, 30)
        np.testing.assert_array_equal(a.spins, b.spins)
        self.assertEqual(a.accepted, b.accepted)


class TestFunctionalSweep(unittest.TestCase):

    def test_metropolis_sweep_updates_in_place(self):
        pool = UniformPool(ScriptedRandomSource([0.0, 0.5]), 4)
        s = np.ones(2, dtype=np.int8)
        acc = metropolis_sweep(np.zeros((2, 2)), s, pool)
        self.assertEqual(acc, 2)
        np.testing.assert_array_equal(s, [-1, -1])
        self.assertEqual(pool.consumed, 2)


class TestSampler(unittest.TestCase):

    def test_trajectory_columns(self):
        rng = ScriptedRandomSource([0.0, 0.3, 0.55, 0.8, 0.1, 0.1, 0.6, 0.9])
        system = SpinSystem(4, rng)
        sampler = Sampler(system, 2)
        traj = sampler.sample(np.zeros((4, 4)))
        self.assertEqual(traj.shape, (4, 2))
        np.testing.assert_array_equal(traj[:, 0], [-1, -1, -1, -1])
        np.testing.assert_array_equal(traj[:, 1], [-1, -1, 1, 1])
        np.testing.assert_array_equal(system.spins, traj[:, 1])

    def test_thermalize_discards(self):
        system = SpinSystem(5, NumpyRandomSource(seed=3))
        sampler = Sampler(system, 3)
        J = np.zeros((5, 5))
        sampler.thermalize(J, 0)
        self.assertEqual(system.sweeps, 0)
        sampler.thermalize(J, 4)
        self.assertEqual(system.sweeps, 4)

    def test_buffer_validation(self):
        system = SpinSystem(3, ScriptedRandomSource([0.0]))
        with self.assertRaises(ValueError):
            Sampler(system, 0)
        with self.assertRaises(ValueError):
            Sampler(system, 2, trajectory=np.zeros((3, 2), dtype=np.float64))


if __name__ == "__main__":
    unittest.main(verbosity=2)
