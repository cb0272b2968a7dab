"""
Infrastructure module for Empire.

- Health checks for the store
"""

from empire.infra.health import HealthCheckService, ServiceStatus

__all__ = ["HealthCheckService", "ServiceStatus"]
