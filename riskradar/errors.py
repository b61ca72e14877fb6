# riskradar/errors.py
from __future__ import annotations

from typing import Optional


class RiskRadarError(Exception):
    """Base class for errors raised by riskradar."""


class ProviderError(RiskRadarError):
    """A third-party call failed (non-200, timeout, network)."""

    def __init__(self, service: str, message: str, status: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status = status


class ServiceUnavailableError(RiskRadarError):
    """Rate limited or circuit open, and nothing cached to fall back on."""

    def __init__(self, service: str):
        super().__init__(f"Service {service} is rate limited or unhealthy")
        self.service = service


class SimulationError(RiskRadarError):
    """The sell simulation could not reach a verdict."""


__all__ = ["RiskRadarError", "ProviderError", "ServiceUnavailableError", "SimulationError"]
