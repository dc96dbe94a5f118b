# writer_options.py
"""
Writer configuration: normalization plus YAML and environment loading.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict

import yaml

from sptp_protocol import (
    CHUNK_THRESHOLD_DEFAULT,
    GZIP_LEVEL_MAX,
    GZIP_LEVEL_MIN,
    GZIP_LEVEL_OFF,
    ConfigurationError,
)


@dataclass(frozen=True)
class WriterOptions:
    # 0 for no compression, 1..9 for gzip levels (9 is best)
    gzip_level: int = GZIP_LEVEL_OFF
    # payloads longer than this are sent as a chunk set
    chunk_threshold: int = CHUNK_THRESHOLD_DEFAULT

    @property
    def gzip_enabled(self) -> bool:
        return self.gzip_level != GZIP_LEVEL_OFF


def normalize_options(opts: WriterOptions, strict: bool = False) -> WriterOptions:
    """
    Clamp invalid values to safe defaults. With ``strict`` set, raise
    ConfigurationError instead.
    """
    threshold = opts.chunk_threshold
    level = opts.gzip_level

    if threshold <= 0:
        if strict:
            raise ConfigurationError(f"chunk_threshold must be positive, got {threshold}")
        logging.warning("chunk_threshold %s is not positive, using %s", threshold, CHUNK_THRESHOLD_DEFAULT)
        threshold = CHUNK_THRESHOLD_DEFAULT

    if level != GZIP_LEVEL_OFF and not GZIP_LEVEL_MIN <= level <= GZIP_LEVEL_MAX:
        if strict:
            raise ConfigurationError(
                f"gzip_level must be {GZIP_LEVEL_OFF} or {GZIP_LEVEL_MIN}..{GZIP_LEVEL_MAX}, got {level}"
            )
        logging.warning("gzip_level %s is out of range, compression disabled", level)
        level = GZIP_LEVEL_OFF

    return WriterOptions(gzip_level=level, chunk_threshold=threshold)


def _options_from_mapping(raw: Dict[str, Any], source: str) -> WriterOptions:
    unknown = set(raw) - {"gzip_level", "chunk_threshold"}
    if unknown:
        raise ConfigurationError(f"unknown option(s) in {source}: {', '.join(sorted(unknown))}")
    try:
        return WriterOptions(
            gzip_level=int(raw.get("gzip_level", GZIP_LEVEL_OFF)),
            chunk_threshold=int(raw.get("chunk_threshold", CHUNK_THRESHOLD_DEFAULT)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"bad option value in {source}: {e}") from e


def load_options(path: str) -> WriterOptions:
    if not os.path.isfile(path):
        raise FileNotFoundError(f"options file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"options file must hold a mapping: {path}")
    return _options_from_mapping(raw, path)


def options_from_env(prefix: str = "SPTP_", base: WriterOptions = WriterOptions()) -> WriterOptions:
    raw: Dict[str, Any] = {"gzip_level": base.gzip_level, "chunk_threshold": base.chunk_threshold}
    for k, v in os.environ.items():
        if k.startswith(prefix):
            name = k[len(prefix):].lower()
            if name in raw:
                raw[name] = v
    return _options_from_mapping(raw, "environment")
