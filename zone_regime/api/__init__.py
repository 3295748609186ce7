"""
HTTP API for the zone/regime engine.

Stateless FastAPI endpoints for zone detection, regime classification,
pattern analysis and backtests over submitted bars.
"""

from .analysis_api import create_analysis_app, run_server

__all__ = [
    "create_analysis_app",
    "run_server"
]
