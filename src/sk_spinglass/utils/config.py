# -*- coding: utf-8 -*-
"""
统一配置管理系统（支持预设、分层覆盖、参数一致性检查）

实现功能：
    - 四个配置块：simulation（N / tdim / conf_num / thermal / 种子）、grid（mu / sd 范围）、
      store（输出目录与文件格式）、logging
    - 默认值即参考程序的编译期常量（N=264, tdim=10000, conf_num=1000, thermal=10000 ...）
    - 硬性约束在 __post_init__ 中检查（非法值立即抛 ValueError）
    - 完整验证函数 validate_config() 返回 (ok, issues) 提示列表
    - 输出路径可绑定到项目根目录

注意：
1) 参数在一次运行开始前确定，运行期间不可修改
2) ENV/CLI/YAML 合并，优先级：默认/预设 < 文件 < 环境变量 < CLI --set
"""

from __future__ import annotations

import ast
import copy
import json
import logging
import os
from dataclasses import dataclass, asdict, field, replace
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple

import yaml

from ..core.rng import SEED_POLICIES, BIT_GENERATORS

logger = logging.getLogger(__name__)

__all__ = [
    'Config', 'SimulationConfig', 'GridConfig', 'StoreConfig', 'LoggingConfig',
    'load_config', 'save_config', 'get_preset_config', 'PRESETS',
    'load_from_env', 'merge_configs', 'validate_config', 'from_args', 'build_arg_parser',
]

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
# 单格点轨迹 + 协方差缓冲区的粗略上限提示（字节）
_MEMORY_HINT_BYTES = 8 * 1024 ** 3


def _to_serializable(obj: Any):
    """将对象递归转换为 JSON/YAML 友好格式。"""
    if isinstance(obj, (tuple, list)):
        return [_to_serializable(v) for v in obj]
    if isinstance(obj, dict):
        return {k: _to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, Path):
        return str(obj)
    if hasattr(obj, 'item') and callable(obj.item):
        return obj.item()
    return obj


def _deep_merge(d1: Dict[str, Any], d2: Dict[str, Any]) -> Dict[str, Any]:
    """将 d2 深度合并到 d1（原地修改 d1 并返回它）。"""
    for k, v in (d2 or {}).items():
        if k in d1 and isinstance(d1[k], dict) and isinstance(v, dict):
            _deep_merge(d1[k], v)
        else:
            d1[k] = v
    return d1


def _set_by_path(d: Dict[str, Any], path: List[str], value: Any):
    cur = d
    for key in path[:-1]:
        if key not in cur or not isinstance(cur[key], dict):
            cur[key] = {}
        cur = cur[key]
    cur[path[-1]] = value


def _parse_env_value(s: str):
    """将字符串解析为 Python 值（literal_eval 优先，兼容 true/false/none）。"""
    if s is None:
        return None
    try:
        return ast.literal_eval(s)
    except (ValueError, SyntaxError):
        sl = s.strip()
        sl_l = sl.lower()
        if sl_l == 'true':
            return True
        if sl_l == 'false':
            return False
        if sl_l in ('none', 'null'):
            return None
        return sl


def _check_positive_int(name: str, v: Any, allow_zero: bool = False):
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValueError(f"{name} must be an integer, got {v!r}")
    if v < 0 or (v == 0 and not allow_zero):
        raise ValueError(f"{name} must be {'non-negative' if allow_zero else 'positive'}, got {v}")

# -----------------------------------------------------------------------------
# Dataclasses
# -----------------------------------------------------------------------------
@dataclass
class SimulationConfig:
    n_spins: int = 264          # 自旋总数 N
    tdim: int = 10000           # 热平均长度（采样 sweep 数）
    conf_num: int = 1000        # 每格点的相互作用构型数
    thermal: int = 10000        # 每构型的热化 sweep 数

    # 随机种子（参考程序在每次启动时固定为 0）
    seed: int = 0
    seed_policy: str = 'fixed'      # 'fixed' | 'spawn' | 'time'
    bit_generator: str = 'mt19937'  # 'mt19937' | 'philox' | 'pcg64'

    def __post_init__(self):
        _check_positive_int('n_spins', self.n_spins)
        _check_positive_int('tdim', self.tdim)
        _check_positive_int('conf_num', self.conf_num)
        _check_positive_int('thermal', self.thermal, allow_zero=True)
        if isinstance(self.seed, bool) or not isinstance(self.seed, int):
            raise ValueError(f"seed must be an integer, got {self.seed!r}")
        self.seed_policy = str(self.seed_policy).strip().lower()
        if self.seed_policy not in SEED_POLICIES:
            raise ValueError(f"seed_policy must be one of {SEED_POLICIES}, got {self.seed_policy!r}")
        self.bit_generator = str(self.bit_generator).strip().lower()
        if self.bit_generator not in BIT_GENERATORS:
            raise ValueError(f"bit_generator must be one of {BIT_GENERATORS}, got {self.bit_generator!r}")

    def buffer_bytes(self) -> int:
        """单格点常驻缓冲区估计：J + SumC + ProdC + 协方差工作区 + 轨迹（int8 + float64）。"""
        N, T = self.n_spins, self.tdim
        return 4 * N * N * 8 + N * T * (1 + 8)


@dataclass
class GridConfig:
    mu_min: float = -0.002
    mu_max: float = 0.01
    mu_step: float = 0.0005
    sd_min: float = 0.0
    sd_max: float = 0.15
    sd_step: float = 0.0075

    def __post_init__(self):
        for axis in ('mu', 'sd'):
            vmin = float(getattr(self, f'{axis}_min'))
            vmax = float(getattr(self, f'{axis}_max'))
            step = float(getattr(self, f'{axis}_step'))
            if not (step > 0):
                raise ValueError(f"{axis}_step must be positive, got {step}")
            if vmax < vmin:
                raise ValueError(f"{axis}_max must be >= {axis}_min (got {vmax} < {vmin})")
            setattr(self, f'{axis}_min', vmin)
            setattr(self, f'{axis}_max', vmax)
            setattr(self, f'{axis}_step', step)
        if self.sd_min < 0:
            raise ValueError(f"sd_min must be non-negative (it is a Gaussian scale), got {self.sd_min}")

    def axis_sizes(self) -> Tuple[int, int]:
        n_mu = int(round((self.mu_max - self.mu_min) / self.mu_step)) + 1
        n_sd = int(round((self.sd_max - self.sd_min) / self.sd_step)) + 1
        return n_mu, n_sd


@dataclass
class StoreConfig:
    output_dir: str = 'results'
    pattern: str = 'file_{a}_{b}.txt'
    float_format: str = '%f'

    def __post_init__(self):
        if '{a}' not in self.pattern or '{b}' not in self.pattern:
            raise ValueError("store.pattern must contain '{a}' and '{b}'")
        try:
            self.float_format % 1.0
        except (TypeError, ValueError):
            raise ValueError(f"store.float_format is not a valid %-format for floats: {self.float_format!r}")


@dataclass
class LoggingConfig:
    level: str = 'INFO'
    log_file: Optional[str] = None
    use_color: bool = True
    progress_every: int = 1     # 每完成多少个格点输出一次进度

    def __post_init__(self):
        self.level = str(self.level).strip().upper()
        if self.level not in _LEVELS:
            raise ValueError(f"logging.level must be one of {_LEVELS}, got {self.level!r}")
        _check_positive_int('progress_every', self.progress_every)


@dataclass
class Config:
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    project_name: str = 'sk_spinglass'
    version: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'simulation': asdict(self.simulation),
            'grid': asdict(self.grid),
            'store': asdict(self.store),
            'logging': asdict(self.logging),
            'project_name': self.project_name,
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Config':
        d = d or {}
        unknown = set(d) - {'simulation', 'grid', 'store', 'logging', 'project_name', 'version'}
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")
        return cls(
            simulation=SimulationConfig(**(d.get('simulation') or {})),
            grid=GridConfig(**(d.get('grid') or {})),
            store=StoreConfig(**(d.get('store') or {})),
            logging=LoggingConfig(**(d.get('logging') or {})),
            project_name=d.get('project_name', 'sk_spinglass'),
            version=int(d.get('version', 1)),
        )

    def add_path_root(self, root: str | Path) -> 'Config':
        """将相对输出路径绑定到项目根（返回新 Config，不修改原对象）。"""
        if root is None:
            return self
        root_p = Path(os.path.expandvars(os.path.expanduser(str(root)))).resolve()

        def _bind(p):
            if p is None:
                return None
            pp = Path(os.path.expandvars(os.path.expanduser(str(p))))
            if pp.is_absolute():
                return str(pp.resolve())
            return str((root_p / pp).resolve())

        new_store = replace(self.store, output_dir=_bind(self.store.output_dir))
        new_log = replace(self.logging, log_file=_bind(self.logging.log_file))
        return replace(self, store=new_store, logging=new_log)

# -----------------------------------------------------------------------------
# I/O
# -----------------------------------------------------------------------------
def load_config(filepath: str | Path) -> Config:
    """从 YAML 或 JSON 文件加载配置并返回 Config 对象。"""
    p = Path(filepath)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")
    suf = p.suffix.lower()
    with open(p, 'r', encoding='utf-8') as f:
        if suf in ('.yaml', '.yml'):
            cfg = yaml.safe_load(f) or {}
        elif suf == '.json':
            cfg = json.load(f) or {}
        else:
            raise ValueError(f"Unsupported config file extension: {suf}")
    return Config.from_dict(cfg)


def save_config(config: Config, filepath: str | Path, format: Optional[str] = None) -> Path:
    """将 Config 保存为 YAML 或 JSON。默认根据后缀判断格式。"""
    p = Path(filepath)
    p.parent.mkdir(parents=True, exist_ok=True)
    data = _to_serializable(config.to_dict())
    fmt = format
    if fmt is None:
        fmt = 'json' if p.suffix.lower() == '.json' else 'yaml'

    if fmt == 'yaml':
        with open(p, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
    elif fmt == 'json':
        with open(p, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
    else:
        raise ValueError(f"Unsupported format: {fmt}")
    logger.info("Config saved: %s", p)
    return p

# -----------------------------------------------------------------------------
# Presets
# -----------------------------------------------------------------------------
PRESETS = ('reference', 'quick', 'tiny')


def get_preset_config(name: str) -> Config:
    """返回内置预设配置的副本（deepcopy）。"""
    presets: Dict[str, Config] = {
        # 参考程序的编译期常量
        'reference': Config(),
        # 几分钟内可跑完的粗网格
        'quick': Config(
            simulation=SimulationConfig(n_spins=64, tdim=1000, conf_num=20, thermal=1000),
            grid=GridConfig(mu_min=-0.002, mu_max=0.01, mu_step=0.002,
                            sd_min=0.0, sd_max=0.15, sd_step=0.03),
        ),
        # 冒烟测试
        'tiny': Config(
            simulation=SimulationConfig(n_spins=8, tdim=20, conf_num=2, thermal=10),
            grid=GridConfig(mu_min=0.0, mu_max=0.1, mu_step=0.1,
                            sd_min=0.0, sd_max=0.1, sd_step=0.1),
        ),
    }
    if name not in presets:
        raise ValueError(f"Unknown preset: {name}. Available: {list(presets.keys())}")
    return copy.deepcopy(presets[name])

# -----------------------------------------------------------------------------
# Environment variables (nested via sep, e.g., SKGLASS__simulation__n_spins=128)
# -----------------------------------------------------------------------------
def load_from_env(prefix: str = 'SKGLASS', sep: str = '__', environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    从环境变量读取以 prefix 开头、用 sep 分层的键，返回嵌套 dict。
    例： SKGLASS__simulation__n_spins=128  → {'simulation': {'n_spins': 128}}
    """
    env = os.environ if environ is None else environ
    out: Dict[str, Any] = {}
    pfx = prefix + sep
    for k, v in env.items():
        if not k.startswith(pfx):
            continue
        parts = [p for p in k[len(pfx):].split(sep) if p]
        if not parts:
            continue
        _set_by_path(out, parts, _parse_env_value(v))
    return out

# -----------------------------------------------------------------------------
# Merge & validate
# -----------------------------------------------------------------------------
def merge_configs(base: Config, override: Dict[str, Any]) -> Config:
    """将 override（nested dict）深度合并到 base 的字典表示上，并返回新的 Config。"""
    base_dict = base.to_dict()
    _deep_merge(base_dict, override or {})
    return Config.from_dict(base_dict)


def validate_config(cfg: Config) -> Tuple[bool, List[str]]:
    """
    一致性检查（仅返回 issues，不抛错；硬约束已在 __post_init__ 完成）。
    """
    issues: List[str] = []
    sim = cfg.simulation

    if sim.tdim < 2:
        issues.append("simulation.tdim < 2: 比热只使用 t = 1 .. tdim-1，c 将恒为 0")
    if sim.thermal == 0:
        issues.append("simulation.thermal = 0: 未热化，采样从全 +1 初态直接开始")
    if sim.buffer_bytes() > _MEMORY_HINT_BYTES:
        issues.append(f"单格点缓冲区约 {sim.buffer_bytes() / 1024 ** 3:.1f} GiB，可能触发 ResourceExhaustion")

    n_mu, n_sd = cfg.grid.axis_sizes()
    for axis, n, (vmin, vmax, step) in (
        ('mu', n_mu, (cfg.grid.mu_min, cfg.grid.mu_max, cfg.grid.mu_step)),
        ('sd', n_sd, (cfg.grid.sd_min, cfg.grid.sd_max, cfg.grid.sd_step)),
    ):
        last = vmin + (n - 1) * step
        if abs(last - vmax) > 1e-6 * step:
            issues.append(f"grid.{axis}: 末端取值 {last:g} 与 {axis}_max={vmax:g} 不一致（step 不整除区间）")

    if sim.seed_policy == 'fixed':
        issues.append("simulation.seed_policy='fixed': 多个进程将使用相同随机序列（参考行为）")

    ok = len(issues) == 0
    return ok, issues

# -----------------------------------------------------------------------------
# CLI helpers
# -----------------------------------------------------------------------------
def _parse_cli_overrides(kv_list: List[str]) -> Dict[str, Any]:
    """
    解析 --set key=value（点分路径）列表，返回 nested dict。
    例：--set simulation.n_spins=64 → {'simulation': {'n_spins': 64}}
    """
    out: Dict[str, Any] = {}
    for kv in (kv_list or []):
        if '=' not in kv:
            raise ValueError(f"--set expects key=value pairs, got: {kv}")
        key, val = kv.split('=', 1)
        path = [p.strip() for p in key.split('.') if p.strip()]
        if not path:
            continue
        _set_by_path(out, path, _parse_env_value(val))
    return out


def build_arg_parser(parser=None, env_prefix: str = 'SKGLASS'):
    """向 argparse 解析器添加配置相关参数（供 from_args 与 batch_runner 共用）。"""
    import argparse
    ap = parser if parser is not None else argparse.ArgumentParser(description="Load & merge configuration")
    ap.add_argument('--preset', type=str, choices=list(PRESETS), help='preset name')
    ap.add_argument('--config', type=str, help='config file (yaml|json)')
    ap.add_argument('--env-prefix', type=str, default=env_prefix, help=f'environment variable prefix (default {env_prefix})')
    ap.add_argument('--set', dest='sets', action='append', default=[], help='override key=value (dot notation, can repeat)')
    ap.add_argument('--root', type=str, default=None, help='project root to bind output paths')
    return ap


def config_from_namespace(ns) -> Config:
    """按优先级合并：默认/预设 <- 文件 <- 环境变量 <- CLI --set。"""
    cfg = get_preset_config(ns.preset) if ns.preset else Config()

    if ns.config:
        cfg = merge_configs(cfg, load_config(ns.config).to_dict())

    env_over = load_from_env(prefix=ns.env_prefix)
    if env_over:
        cfg = merge_configs(cfg, env_over)

    cli_over = _parse_cli_overrides(ns.sets)
    if cli_over:
        cfg = merge_configs(cfg, cli_over)

    if ns.root:
        cfg = cfg.add_path_root(ns.root)

    ok, issues = validate_config(cfg)
    for it in issues:
        logger.warning("config: %s", it)
    return cfg


def from_args(args: Optional[List[str]] = None, env_prefix: str = 'SKGLASS') -> Config:
    """
    从命令行加载并合并配置。支持参数:
      --preset NAME / --config FILE / --env-prefix PREFIX / --set k=v (可重复) / --root PATH
    """
    ap = build_arg_parser(env_prefix=env_prefix)
    ns = ap.parse_args(args=args)
    return config_from_namespace(ns)
