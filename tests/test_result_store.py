# -*- coding: utf-8 -*-
"""
结果存储测试（pytest）

- 认领：原子创建空标记，第二次认领失败
- 写入：7 个制表符分隔字段，覆盖标记 → DONE
- release_claims 只删除空标记
- 目录不可用 → StoreUnavailable
"""

import stat
import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(_ROOT / "src"))

from sk_spinglass.core.observables import GridCellResult
from sk_spinglass.data.result_store import CellState, FileResultStore
from sk_spinglass.errors import SimulationError, StoreUnavailable

RESULT = GridCellResult(0.0005, 0.015, 0.75, 1.25, 0.5, 0.25, 0.125)


@pytest.fixture
def store(tmp_path):
    return FileResultStore(tmp_path / "results")


def test_reference_file_names(store):
    assert store.path_for(3, 12).name == "file_3_12.txt"


def test_claim_is_exclusive(store):
    assert store.state(0, 0) is CellState.PENDING
    assert store.claim(0, 0) is True
    assert store.claim(0, 0) is False
    assert store.state(0, 0) is CellState.CLAIMED
    assert store.exists(0, 0)
    assert store.read(0, 0) is None
    assert store.path_for(0, 0).stat().st_size == 0


def test_write_overwrites_marker(store):
    store.claim(1, 2)
    p = store.write(1, 2, RESULT)
    assert p == store.path_for(1, 2)
    assert store.state(1, 2) is CellState.DONE
    text = p.read_text(encoding="utf-8")
    assert text.split("\t") == ["0.000500", "0.015000", "0.750000", "1.250000",
                                "0.500000", "0.250000", "0.125000"]
    assert store.read(1, 2) == RESULT
    # 无残留临时文件
    assert [c.name for c in p.parent.iterdir()] == ["file_1_2.txt"]


@pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX permission bits")
def test_written_entry_keeps_marker_permissions(store):
    store.claim(0, 0)
    marker_mode = stat.S_IMODE(store.path_for(0, 0).stat().st_mode)
    p = store.write(0, 0, RESULT)
    assert stat.S_IMODE(p.stat().st_mode) == marker_mode

    # 未经认领直接写入：不再是 NamedTemporaryFile 的 0600
    q = store.write(1, 1, RESULT)
    assert stat.S_IMODE(q.stat().st_mode) == 0o644


def test_custom_float_format(tmp_path):
    st = FileResultStore(tmp_path, float_format="%.10e")
    st.write(0, 0, RESULT)
    assert st.path_for(0, 0).read_text(encoding="utf-8").split("\t")[0] == "5.0000000000e-04"
    assert st.read(0, 0) == RESULT


def test_delete_makes_cell_pending(store):
    store.write(0, 1, RESULT)
    assert store.delete(0, 1) is True
    assert store.state(0, 1) is CellState.PENDING
    assert store.delete(0, 1) is False


def test_iter_entries_and_release_claims(store):
    store.write(1, 0, RESULT)
    store.claim(0, 3)
    store.claim(0, 1)
    (store.root / "notes.txt").write_text("ignored", encoding="utf-8")
    (store.root / "file_x_1.txt").write_text("ignored", encoding="utf-8")

    keys = [(a, b) for a, b, _ in store.iter_entries()]
    assert keys == [(0, 1), (0, 3), (1, 0)]

    assert store.release_claims() == 2
    assert store.state(0, 1) is CellState.PENDING
    assert store.state(0, 3) is CellState.PENDING
    assert store.state(1, 0) is CellState.DONE
    assert (store.root / "notes.txt").exists()


def test_status_counts(store):
    store.write(0, 0, RESULT)
    store.write(1, 1, RESULT)
    store.claim(0, 1)
    assert store.status((2, 3)) == {"pending": 3, "claimed": 1, "done": 2, "total": 6}


def test_missing_root_without_create(tmp_path):
    st = FileResultStore(tmp_path / "nope", create=False)
    assert list(st.iter_entries()) == []
    assert st.status((1, 2))["pending"] == 2


def test_root_under_regular_file(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(StoreUnavailable) as ei:
        FileResultStore(blocker / "results")
    assert isinstance(ei.value, SimulationError)
    assert isinstance(ei.value.__cause__, OSError)


def test_claim_in_vanished_directory(tmp_path):
    root = tmp_path / "gone"
    st = FileResultStore(root)
    root.rmdir()
    with pytest.raises(StoreUnavailable):
        st.claim(0, 0)
    with pytest.raises(StoreUnavailable):
        st.write(0, 0, RESULT)


def test_pattern_requires_placeholders(tmp_path):
    with pytest.raises(ValueError):
        FileResultStore(tmp_path, pattern="cell_{a}.txt")


def test_custom_pattern(tmp_path):
    st = FileResultStore(tmp_path, pattern="cell-{a}-{b}.dat")
    st.claim(2, 5)
    assert st.path_for(2, 5).name == "cell-2-5.dat"
    assert [(a, b) for a, b, _ in st.iter_entries()] == [(2, 5)]
