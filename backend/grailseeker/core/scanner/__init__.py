"""Scan identification and confidence resolution.

Resolves noisy scan text to a catalog item with an explainable score, a
human confirmation fallback, and a correction memory so the same input is
never mis-resolved twice.
"""

from .bias import PUBLISHER_KEYWORDS, apply_bias
from .catalog import CatalogLookup, CatalogQueryAdapter
from .classifier import classify, confirm_selection
from .config import DEFAULT_CONFIG, ScannerConfig, get_scanner_config, reload_scanner_config
from .corrections import CorrectionStore
from .diagnostics import build_diagnostics
from .engine import ScanResolutionEngine
from .models import (
    AutoResolved,
    Candidate,
    CorrectionRecord,
    NeedsConfirmation,
    NoMatch,
    ScanContext,
    ScanDiagnostics,
    ScanQuery,
    ScanResolution,
    ScanState,
    ScoreBreakdown,
)
from .normalizer import build_query_variants, normalize_input_key, parse_scan_input
from .scoring import ScoredResult, rank_candidates, score_candidate
from .service import ScanService, build_scan_service

__all__ = [
    "ScannerConfig",
    "DEFAULT_CONFIG",
    "get_scanner_config",
    "reload_scanner_config",
    "ScanQuery",
    "ScanContext",
    "Candidate",
    "ScoreBreakdown",
    "CorrectionRecord",
    "AutoResolved",
    "NeedsConfirmation",
    "NoMatch",
    "ScanDiagnostics",
    "ScanResolution",
    "ScanState",
    "parse_scan_input",
    "normalize_input_key",
    "build_query_variants",
    "CatalogQueryAdapter",
    "CatalogLookup",
    "score_candidate",
    "rank_candidates",
    "ScoredResult",
    "PUBLISHER_KEYWORDS",
    "apply_bias",
    "classify",
    "confirm_selection",
    "CorrectionStore",
    "build_diagnostics",
    "ScanResolutionEngine",
    "ScanService",
    "build_scan_service",
]
