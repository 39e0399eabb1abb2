# -*- coding: utf-8 -*-
"""
网格扫描集成测试

覆盖范围：
- 端到端夹具：N=4, tdim=2, conf_num=1, thermal=0, mu=sd=0 + 脚本化随机数
  → (0, 0, 1, 1, 0.5, 0.5, 0)
- 幂等：第二次扫描不计算任何格点；删除一个条目只重算该格点
- 已认领（空标记）格点被跳过
- mu=sd=0 时每次提议都翻转，m 只由选址随机数决定，固定种子下逐位可复现
- 大 mu（铁磁）时 m → 1；m, q ∈ [0, 1]
- 缓冲区分配失败 → ResourceExhaustion
"""

import sys
import unittest
from pathlib import Path
from unittest import mock

import numpy as np
import pytest

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(_ROOT / "src"))

from sk_spinglass.core.rng import NumpyRandomSource, ScriptedRandomSource
from sk_spinglass.data.result_store import CellState, FileResultStore
from sk_spinglass.errors import ResourceExhaustion
from sk_spinglass.simulation.scan import ScanController, SimulationState
from sk_spinglass.utils.config import Config, GridConfig, SimulationConfig

FIXTURE_UNIFORMS = [0.0, 0.3, 0.55, 0.8, 0.1, 0.1, 0.6, 0.9]


def make_config(n_spins=6, tdim=5, conf_num=2, thermal=2, seed=0,
                mu=(0.0, 0.1, 0.1), sd=(0.0, 0.2, 0.2)) -> Config:
    return Config(
        simulation=SimulationConfig(n_spins=n_spins, tdim=tdim, conf_num=conf_num, thermal=thermal, seed=seed),
        grid=GridConfig(mu_min=mu[0], mu_max=mu[1], mu_step=mu[2],
                        sd_min=sd[0], sd_max=sd[1], sd_step=sd[2]),
    )


def degenerate_magnetization(seed, n_spins, tdim, conf_num, thermal):
    """mu = sd = 0：所有提议都翻转，只需重放选址随机数。"""
    n_draws = conf_num * (thermal + tdim) * n_spins
    raw = np.random.RandomState(seed).randint(0, 2 ** 32, size=n_draws, dtype=np.uint32)
    u = raw.astype(np.float64) / 2.0 ** 32
    s = np.ones(n_spins, dtype=np.int64)
    mag = 0
    pos = 0
    for _ in range(conf_num):
        for sweep in range(thermal + tdim):
            for _ in range(n_spins):
                k = min(int(n_spins * u[pos]), n_spins - 1)
                pos += 1
                s[k] = -s[k]
            if sweep >= thermal:
                mag += int(s.sum())
    return abs(mag / (1.0 * n_spins * tdim * conf_num))


class TestEndToEndFixture(unittest.TestCase):

    def test_scripted_degenerate_cell(self):
        import tempfile
        cfg = make_config(n_spins=4, tdim=2, conf_num=1, thermal=0, mu=(0.0, 0.0, 1.0), sd=(0.0, 0.0, 1.0))
        with tempfile.TemporaryDirectory() as d:
            store = FileResultStore(d)
            ctrl = ScanController(cfg, store, rng=ScriptedRandomSource(FIXTURE_UNIFORMS))
            report = ctrl.run()
            self.assertEqual(report.computed, [(0, 0)])
            self.assertEqual(report.skipped, [])
            res = store.read(0, 0)
            self.assertEqual(res.as_tuple(), (0.0, 0.0, 1.0, 1.0, 0.5, 0.5, 0.0))
            text = store.path_for(0, 0).read_text(encoding="utf-8")
            self.assertEqual(text, "\t".join(["0.000000", "0.000000", "1.000000", "1.000000",
                                              "0.500000", "0.500000", "0.000000"]))

    def test_run_cell_does_not_touch_store(self):
        import tempfile
        cfg = make_config(n_spins=4, tdim=2, conf_num=1, thermal=0, mu=(0.0, 0.0, 1.0), sd=(0.0, 0.0, 1.0))
        with tempfile.TemporaryDirectory() as d:
            store = FileResultStore(d)
            ctrl = ScanController(cfg, store, rng=ScriptedRandomSource(FIXTURE_UNIFORMS))
            res = ctrl.run_cell(ctrl.grid.cell(0, 0))
            self.assertEqual(res.as_tuple(), (0.0, 0.0, 1.0, 1.0, 0.5, 0.5, 0.0))
            self.assertEqual(store.state(0, 0), CellState.PENDING)


def test_scan_is_idempotent(tmp_path):
    cfg = make_config()
    store = FileResultStore(tmp_path)
    first = ScanController(cfg, store).run()
    assert first.computed == [(0, 0), (0, 1), (1, 0), (1, 1)]
    snapshot = {p.name: p.read_bytes() for _, _, p in store.iter_entries()}

    second = ScanController(cfg, store).run()
    assert second.computed == []
    assert second.skipped == [(0, 0), (0, 1), (1, 0), (1, 1)]
    assert {p.name: p.read_bytes() for _, _, p in store.iter_entries()} == snapshot


def test_deleted_entry_is_recomputed_alone(tmp_path):
    cfg = make_config()
    store = FileResultStore(tmp_path)
    ScanController(cfg, store).run()
    before = store.read(1, 0)
    store.delete(1, 0)

    report = ScanController(cfg, store).run()
    assert report.computed == [(1, 0)]
    assert store.state(1, 0) is CellState.DONE
    after = store.read(1, 0)
    assert (after.mu, after.sd) == (before.mu, before.sd)


def test_claimed_cells_are_skipped(tmp_path):
    cfg = make_config()
    store = FileResultStore(tmp_path)
    assert store.claim(0, 1)
    report = ScanController(cfg, store).run()
    assert (0, 1) in report.skipped
    assert (0, 1) not in report.computed
    assert store.state(0, 1) is CellState.CLAIMED


def test_lost_claim_race_is_skipped(tmp_path):
    cfg = make_config()
    store = FileResultStore(tmp_path)
    ctrl = ScanController(cfg, store)
    real_claim = store.claim

    def racing_claim(a, b):
        if (a, b) == (1, 1):
            real_claim(a, b)  # 另一进程抢先创建
        return real_claim(a, b)

    with mock.patch.object(store, "claim", side_effect=racing_claim):
        report = ctrl.run()
    assert report.skipped == [(1, 1)]
    assert store.state(1, 1) is CellState.CLAIMED


def test_degenerate_magnetization_from_site_stream(tmp_path):
    N, T, K, TH, seed = 8, 10, 3, 5, 7
    cfg = make_config(n_spins=N, tdim=T, conf_num=K, thermal=TH, seed=seed,
                      mu=(0.0, 0.0, 1.0), sd=(0.0, 0.0, 1.0))
    expected = degenerate_magnetization(seed, N, T, K, TH)

    ctrl = ScanController(cfg, FileResultStore(tmp_path / "a"))
    res = ctrl.run_cell(ctrl.grid.cell(0, 0))
    assert res.m == pytest.approx(expected, abs=1e-12)
    assert ctrl.state.system.rng_consumed == K * (TH + T) * N

    # 固定种子下逐位可复现
    ScanController(cfg, FileResultStore(tmp_path / "b")).run()
    ScanController(cfg, FileResultStore(tmp_path / "c")).run()
    assert (tmp_path / "b" / "file_0_0.txt").read_bytes() == (tmp_path / "c" / "file_0_0.txt").read_bytes()


def test_magnetization_grows_with_mean_coupling(tmp_path):
    cfg = make_config(n_spins=16, tdim=50, conf_num=2, thermal=50, seed=3,
                      mu=(0.0, 0.5, 0.5), sd=(0.01, 0.01, 1.0))
    store = FileResultStore(tmp_path)
    ScanController(cfg, store).run()
    weak = store.read(0, 0)
    strong = store.read(1, 0)
    assert strong.m > 0.99
    assert strong.m > weak.m
    for r in (weak, strong):
        assert 0.0 <= r.m <= 1.0
        assert 0.0 <= r.q <= 1.0


def test_spins_reset_between_cells(tmp_path):
    cfg = make_config(n_spins=5, tdim=3, conf_num=1, thermal=1)
    ctrl = ScanController(cfg, FileResultStore(tmp_path))
    ctrl.run_cell(ctrl.grid.cell(0, 0))
    ctrl.state.system.spins[:] = -1
    ctrl.state.reset_for_cell()
    assert np.all(ctrl.state.system.spins == 1)
    assert ctrl.state.accumulator.n_configs == 0


def test_allocation_failure_is_resource_exhaustion():
    cfg = make_config()
    with mock.patch("sk_spinglass.simulation.scan.Sampler", side_effect=MemoryError("boom")):
        with pytest.raises(ResourceExhaustion) as ei:
            SimulationState.allocate(cfg.simulation, NumpyRandomSource(0))
    assert ei.value.what == "spin trajectory"
    assert isinstance(ei.value, MemoryError)


def test_config_is_frozen_for_the_run(tmp_path):
    cfg = make_config()
    ctrl = ScanController(cfg, FileResultStore(tmp_path))
    cfg.simulation.conf_num = 99
    assert ctrl.config.simulation.conf_num == 2


def test_memory_error_during_cell_is_resource_exhaustion(tmp_path):
    cfg = make_config()
    store = FileResultStore(tmp_path)
    ctrl = ScanController(cfg, store)
    with mock.patch.object(ctrl.state.accumulator, "accumulate", side_effect=MemoryError("x")):
        with pytest.raises(ResourceExhaustion) as ei:
            ctrl.run()
    assert isinstance(ei.value.__cause__, MemoryError)
    assert "(0, 0)" in ei.value.what
    # 中断的格点保持为空标记，其余格点未开始
    assert store.state(0, 0) is CellState.CLAIMED
    assert store.state(1, 1) is CellState.PENDING


def test_resource_exhaustion_is_not_rewrapped(tmp_path):
    ctrl = ScanController(make_config(), FileResultStore(tmp_path))
    err = ResourceExhaustion("interaction matrix", (6, 6))
    with mock.patch.object(ctrl.state.couplings, "generate", side_effect=err):
        with pytest.raises(ResourceExhaustion) as ei:
            ctrl.run_cell(ctrl.grid.cell(0, 0))
    assert ei.value is err
