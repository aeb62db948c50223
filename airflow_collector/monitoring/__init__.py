"""Monitoring module: salud por adapter."""

from .health import HealthState, HealthTracker

__all__ = ["HealthState", "HealthTracker"]
