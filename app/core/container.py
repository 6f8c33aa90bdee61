from dataclasses import dataclass
from typing import Optional

from app.core.rate_limit import SessionRateLimiter
from app.services.cache.result_cache import ResultCache
from app.services.delivery.channel import SessionHub
from app.services.dispatch.orchestrator import DispatchOrchestrator
from app.services.pipeline.verifier import ClaimVerifier


@dataclass
class Services:
    cache: ResultCache
    limiter: SessionRateLimiter
    hub: SessionHub
    verifier: ClaimVerifier
    orchestrator: DispatchOrchestrator


# Global reference to the wired services (set on app startup)
_services: Optional[Services] = None


def set_services(services: Optional[Services]) -> None:
    """Install the service graph (called from main.py and tests)."""
    global _services
    _services = services


def get_services() -> Optional[Services]:
    return _services
