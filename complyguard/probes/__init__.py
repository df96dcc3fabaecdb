"""Compliance probes, one per check type."""

from .base import BaseProbe
from .mfa import MfaProbe
from .pitr import PitrProbe
from .rls import RlsProbe

__all__ = [
    "BaseProbe",
    "MfaProbe",
    "PitrProbe",
    "RlsProbe",
]
