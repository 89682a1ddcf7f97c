"""Duplicate matching: scoring, pair enumeration, deep analysis and ranking."""

import importlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from property_dedupe.matching.engine import DuplicateDetector  # noqa: F401
    from property_dedupe.matching.geo import haversine_distance  # noqa: F401
    from property_dedupe.matching.oracle import (  # noqa: F401
        ClaudeDuplicateOracle,
        DeepAnalysisAdapter,
        DuplicateOracle,
    )
    from property_dedupe.matching.pairs import enumerate_pairs  # noqa: F401
    from property_dedupe.matching.scoring import calculate_basic_score  # noqa: F401

__all__ = [
    "calculate_basic_score",
    "ClaudeDuplicateOracle",
    "DeepAnalysisAdapter",
    "DuplicateDetector",
    "DuplicateOracle",
    "enumerate_pairs",
    "haversine_distance",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "calculate_basic_score": (".scoring", "calculate_basic_score"),
    "ClaudeDuplicateOracle": (".oracle", "ClaudeDuplicateOracle"),
    "DeepAnalysisAdapter": (".oracle", "DeepAnalysisAdapter"),
    "DuplicateDetector": (".engine", "DuplicateDetector"),
    "DuplicateOracle": (".oracle", "DuplicateOracle"),
    "enumerate_pairs": (".pairs", "enumerate_pairs"),
    "haversine_distance": (".geo", "haversine_distance"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr = _LAZY_IMPORTS[name]
        mod = importlib.import_module(module_path, __name__)
        val = getattr(mod, attr)
        globals()[name] = val  # Cache so __getattr__ is only called once
        return val
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
