# -*- coding: utf-8 -*-
"""
相互作用矩阵生成单元测试

覆盖范围：
- 对称、零对角
- 上三角行优先抽取顺序，对角不消耗高斯随机数
- sd 作为尺度参数直接乘到单位偏差上
- 每次调用都重新抽取
"""

import sys
import unittest
from pathlib import Path

import numpy as np

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(_ROOT / "src"))

from sk_spinglass.core.couplings import InteractionMatrixGenerator, generate, is_valid_coupling_matrix
from sk_spinglass.core.rng import NumpyRandomSource, ScriptedRandomSource


class TestGenerate(unittest.TestCase):

    def setUp(self):
        self.rng = NumpyRandomSource(seed=11)

    def test_symmetric_zero_diagonal(self):
        J = generate(0.01, 0.1, self.rng, n_spins=30)
        self.assertEqual(J.shape, (30, 30))
        np.testing.assert_array_equal(J, J.T)
        np.testing.assert_array_equal(np.diag(J), np.zeros(30))
        self.assertTrue(is_valid_coupling_matrix(J))

    def test_no_draws_for_diagonal(self):
        N = 12
        before = self.rng.gaussian_draws
        generate(0.0, 1.0, self.rng, n_spins=N)
        self.assertEqual(self.rng.gaussian_draws - before, N * (N - 1) // 2)

    def test_row_major_upper_triangle_order(self):
        rng = ScriptedRandomSource([0.5], gaussians=[1.0, 2.0, 3.0])
        J = generate(0.1, 0.5, rng, n_spins=3)
        self.assertAlmostEqual(J[0, 1], 0.1 + 0.5 * 1.0)
        self.assertAlmostEqual(J[0, 2], 0.1 + 0.5 * 2.0)
        self.assertAlmostEqual(J[1, 2], 0.1 + 0.5 * 3.0)
        self.assertAlmostEqual(J[2, 1], J[1, 2])

    def test_zero_sd_gives_constant_couplings(self):
        J = generate(0.25, 0.0, self.rng, n_spins=5)
        off = J[~np.eye(5, dtype=bool)]
        np.testing.assert_array_equal(off, np.full(20, 0.25))

    def test_fresh_draw_every_call(self):
        J1 = generate(0.0, 0.1, self.rng, n_spins=10).copy()
        J2 = generate(0.0, 0.1, self.rng, n_spins=10)
        self.assertFalse(np.array_equal(J1, J2))

    def test_out_buffer_is_reused(self):
        buf = np.full((4, 4), 9.0)
        J = generate(0.0, 0.1, self.rng, out=buf)
        self.assertIs(J, buf)
        self.assertTrue(is_valid_coupling_matrix(buf))

    def test_requires_size(self):
        with self.assertRaises(ValueError):
            generate(0.0, 0.1, self.rng)

    def test_sample_statistics(self):
        N = 200
        J = generate(0.05, 0.2, NumpyRandomSource(seed=3), n_spins=N)
        off = J[np.triu_indices(N, k=1)]
        self.assertAlmostEqual(float(off.mean()), 0.05, delta=0.01)
        self.assertAlmostEqual(float(off.std()), 0.2, delta=0.01)


class TestInteractionMatrixGenerator(unittest.TestCase):

    def test_buffer_reuse_and_validity(self):
        gen = InteractionMatrixGenerator(8)
        rng = NumpyRandomSource(seed=5)
        J1 = gen.generate(0.0, 0.3, rng)
        first = J1.copy()
        J2 = gen.generate(0.0, 0.3, rng)
        self.assertIs(J1, J2)
        self.assertIs(J2, gen.buffer)
        self.assertTrue(is_valid_coupling_matrix(J2))
        self.assertFalse(np.array_equal(first, J2))

    def test_matches_functional_generate(self):
        a = InteractionMatrixGenerator(6).generate(0.2, 0.1, NumpyRandomSource(seed=9))
        b = generate(0.2, 0.1, NumpyRandomSource(seed=9), n_spins=6)
        np.testing.assert_array_equal(a, b)

    def test_invalid_matrix_detection(self):
        J = np.array([[0.0, 1.0], [2.0, 0.0]])
        self.assertFalse(is_valid_coupling_matrix(J))
        J = np.array([[1.0, 1.0], [1.0, 0.0]])
        self.assertFalse(is_valid_coupling_matrix(J))
        self.assertFalse(is_valid_coupling_matrix(np.zeros((2, 3))))


if __name__ == "__main__":
    unittest.main(verbosity=2)
