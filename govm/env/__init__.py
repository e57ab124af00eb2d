"""
Environment profile and diagnostics.
"""

from .diagnostics import (
    DiagnosticCheck,
    DiagnosticFinding,
    EnvironmentDiagnostics,
    EnvironmentSnapshot,
    probe,
)
from .profile import EnvProfile

__all__ = [
    "DiagnosticCheck",
    "DiagnosticFinding",
    "EnvironmentDiagnostics",
    "EnvironmentSnapshot",
    "EnvProfile",
    "probe",
]
