from __future__ import annotations

import logging
import os
import time
from collections.abc import Mapping
from pathlib import Path

import yaml

_LOG = logging.getLogger(__name__)
_CACHE: dict[str, tuple[dict, int, float, float]] = {}


def _resolve_base_dir() -> Path:
    # external directory first
    ext = os.getenv("PLANNING_POKER_CONFIG_DIR")
    if ext:
        p = Path(ext).expanduser().resolve()
        if p.exists():
            return p
    return (Path(__file__).parent / "config").resolve()


def load_yaml_cached(rel_path: str, ttl_seconds: int = 60) -> tuple[dict, int]:
    """Load a YAML mapping with TTL + mtime caching.

    Returns (data, config_version). A missing or unparsable file yields the
    last still-valid cached copy, or ({}, 0).
    """
    base = _resolve_base_dir()
    fp = (base / rel_path).resolve()
    key = str(fp)
    now = time.time()
    try:
        mtime = fp.stat().st_mtime
    except OSError:
        if key in _CACHE:
            data, ver, exp, _ = _CACHE[key]
            if now < exp:
                return data, ver
        return {}, 0

    if key in _CACHE:
        data, ver, exp, cached_m = _CACHE[key]
        if now < exp and cached_m == mtime:
            return data, ver

    try:
        with fp.open("r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        data = dict(loaded) if isinstance(loaded, Mapping) else {}
        ver = int(mtime)
    except (OSError, yaml.YAMLError):
        _LOG.warning("config_unreadable", extra={"path": key}, exc_info=True)
        if key in _CACHE:
            cached_data, cached_ver, exp, _ = _CACHE[key]
            if now < exp:
                return cached_data, cached_ver
        data, ver = {}, 0

    _CACHE[key] = (data, ver, now + max(5, int(ttl_seconds or 0)), mtime)
    return data, ver


def clear_cache() -> None:
    _CACHE.clear()


__all__ = ["clear_cache", "load_yaml_cached"]
