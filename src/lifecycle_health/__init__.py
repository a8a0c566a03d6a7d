"""
Lifecycle Controller Probes

Liveness, readiness and metrics endpoints for the controller process.
"""

from .server import ProbeState, create_app

__all__ = ["ProbeState", "create_app"]
__version__ = "1.0.0"
