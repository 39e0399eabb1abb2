# -*- coding: utf-8 -*-
"""
文件型结果存储（每个格点一个文件）

实现功能：
    - 条目以 (mu 索引, sd 索引) 为键，默认文件名 ``file_{a}_{b}.txt``（参考程序布局）
    - 条目存在（即使为空）即表示格点已被认领或已完成：
        • 空文件       → CLAIMED
        • 7 字段文本   → DONE
        • 不存在       → PENDING
    - claim() 使用 O_CREAT | O_EXCL 原子创建空标记，两个进程不可能同时认领成功；
      不支持原子创建的共享文件系统上，重复计算的竞态被接受（结果直接覆盖标记）
    - write() 在同目录写临时文件 + fsync，再 os.replace 原子替换
    - 删除某个条目即可让该格点在下次扫描时重新计算

任何 OSError（无法创建 / 打开 / 写入）都转换为致命的 StoreUnavailable。
"""

from __future__ import annotations

import enum
import logging
import os
import re
import stat
import tempfile
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple, Union

from ..core.observables import GridCellResult
from ..errors import StoreUnavailable

logger = logging.getLogger(__name__)

__all__ = ["CellState", "FileResultStore"]

# 标记文件与结果文件的默认权限（受 umask 约束前）
_ENTRY_MODE = 0o644


class CellState(enum.IntEnum):
    PENDING = 0
    CLAIMED = 1
    DONE = 2


def _pattern_to_regex(pattern: str) -> "re.Pattern[str]":
    esc = re.escape(pattern)
    esc = esc.replace(re.escape("{a}"), r"(?P<a>\d+)").replace(re.escape("{b}"), r"(?P<b>\d+)")
    return re.compile("^" + esc + "$")


class FileResultStore:
    """
    目录下每个格点一个文本文件的结果存储。
    """

    def __init__(self, root: Union[str, Path], pattern: str = "file_{a}_{b}.txt",
                 float_format: str = "%f", create: bool = True):
        if "{a}" not in pattern or "{b}" not in pattern:
            raise ValueError("pattern must contain both '{a}' and '{b}' placeholders")
        self.root = Path(root)
        self.pattern = pattern
        self.float_format = float_format
        self._regex = _pattern_to_regex(pattern)
        if create:
            try:
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreUnavailable(self.root, e)

    # -----------------------------------------------------------------
    def path_for(self, a: int, b: int) -> Path:
        return self.root / self.pattern.format(a=int(a), b=int(b))

    def exists(self, a: int, b: int) -> bool:
        return self.path_for(a, b).exists()

    def claim(self, a: int, b: int) -> bool:
        """
        原子地创建空标记文件。成功返回 True；条目已存在返回 False。
        """
        p = self.path_for(a, b)
        try:
            fd = os.open(str(p), os.O_CREAT | os.O_EXCL | os.O_WRONLY, _ENTRY_MODE)
        except FileExistsError:
            return False
        except OSError as e:
            raise StoreUnavailable(p, e)
        os.close(fd)
        logger.debug("claimed %s", p.name)
        return True

    def write(self, a: int, b: int, result: GridCellResult) -> Path:
        """用完整结果原子覆盖标记文件。"""
        p = self.path_for(a, b)
        text = result.to_line(self.float_format)
        tmpname = None
        try:
            with tempfile.NamedTemporaryFile("w", encoding="utf-8", dir=str(p.parent),
                                             prefix=p.name + ".", suffix=".tmp", delete=False) as tf:
                tmpname = tf.name
                tf.write(text)
                tf.flush()
                os.fsync(tf.fileno())
            # NamedTemporaryFile 为 0600；结果文件沿用标记文件的权限
            try:
                mode = stat.S_IMODE(p.stat().st_mode)
            except FileNotFoundError:
                mode = _ENTRY_MODE
            os.chmod(tmpname, mode)
            os.replace(tmpname, str(p))
        except OSError as e:
            if tmpname is not None and os.path.exists(tmpname):
                try:
                    os.remove(tmpname)
                except OSError:
                    logger.debug("failed to remove temp file %s", tmpname, exc_info=True)
            raise StoreUnavailable(p, e)
        return p

    def read(self, a: int, b: int) -> Optional[GridCellResult]:
        """DONE 返回结果，CLAIMED（空标记）返回 None；不存在抛 FileNotFoundError。"""
        text = self.path_for(a, b).read_text(encoding="utf-8").strip()
        if not text:
            return None
        return GridCellResult.from_line(text)

    def state(self, a: int, b: int) -> CellState:
        p = self.path_for(a, b)
        try:
            size = p.stat().st_size
        except FileNotFoundError:
            return CellState.PENDING
        return CellState.DONE if size > 0 else CellState.CLAIMED

    def delete(self, a: int, b: int) -> bool:
        try:
            self.path_for(a, b).unlink()
            return True
        except FileNotFoundError:
            return False

    # -----------------------------------------------------------------
    def iter_entries(self) -> Iterator[Tuple[int, int, Path]]:
        """遍历目录中所有符合 pattern 的条目 (a, b, path)，按 (a, b) 排序。"""
        if not self.root.exists():
            return
        found = []
        for child in self.root.iterdir():
            m = self._regex.match(child.name)
            if m and child.is_file():
                found.append((int(m.group("a")), int(m.group("b")), child))
        found.sort(key=lambda x: (x[0], x[1]))
        yield from found

    def release_claims(self) -> int:
        """
        删除所有空标记（CLAIMED 但从未 DONE 的格点），返回删除数量。
        注意：正在运行的进程的认领也会被删除，只应在没有活动扫描时调用。
        """
        n = 0
        for a, b, p in self.iter_entries():
            try:
                if p.stat().st_size == 0:
                    p.unlink()
                    n += 1
                    logger.info("released stale claim %s", p.name)
            except FileNotFoundError:
                continue
        return n

    def status(self, shape: Tuple[int, int]) -> Dict[str, int]:
        n_mu, n_sd = int(shape[0]), int(shape[1])
        counts = {"pending": 0, "claimed": 0, "done": 0}
        for a in range(n_mu):
            for b in range(n_sd):
                counts[self.state(a, b).name.lower()] += 1
        counts["total"] = n_mu * n_sd
        return counts
