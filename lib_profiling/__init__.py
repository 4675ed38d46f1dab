"""Behavioral profiling and performance benchmarking engine."""

from .errors import ConsentMissingError, ProfilingError
from .service import ProfilingService
from .settings import EngineSettings

__all__ = [
    "ConsentMissingError",
    "EngineSettings",
    "ProfilingError",
    "ProfilingService",
]
