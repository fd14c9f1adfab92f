# shared/common/clients.py
"""
Clients for the services maintenance scheduling depends on

The booking service owns the reservations behind calendar holds; the asset
service expands kit, model and tag selectors into assets. Both are called
asynchronously and guarded by a circuit breaker so an unavailable service
fails fast instead of stalling every hold sync.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


# =============================================================================
# CIRCUIT BREAKER
# =============================================================================

class CircuitBreakerError(Exception):
    """The target service is failing and calls are currently short-circuited"""


class CircuitBreaker:
    """
    Opens after ``failure_threshold`` consecutive failures. Once
    ``cooldown`` seconds have passed a trial call is let through; a success
    closes the circuit again, another failure re-opens it.
    """

    CLOSED = 'closed'
    OPEN = 'open'
    PROBING = 'probing'

    def __init__(self, name: str, failure_threshold: int = 5, cooldown: float = 30.0):
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self.failure_count = 0
        self.state = self.CLOSED
        self.opened_at: Optional[float] = None

    def before_call(self) -> None:
        if self.state != self.OPEN:
            return
        if time.monotonic() - self.opened_at < self.cooldown:
            raise CircuitBreakerError(f"{self.name} is unavailable, retry in a moment")
        self.state = self.PROBING

    def record_success(self) -> None:
        if self.state == self.PROBING:
            logger.info(f"{self.name} recovered, circuit closed")
        self.state = self.CLOSED
        self.failure_count = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == self.PROBING or self.failure_count >= self.failure_threshold:
            if self.state != self.OPEN:
                logger.warning(f"Circuit for {self.name} opened after {self.failure_count} failures")
            self.state = self.OPEN
            self.opened_at = time.monotonic()


# =============================================================================
# BASE SERVICE CLIENT
# =============================================================================

class BaseServiceClient:
    """
    JSON over HTTP to another service, authenticated with the shared
    service token.

    ``transport`` replaces the network layer, which is how tests talk to
    a fake service.
    """

    service_name: str = None

    def __init__(self, base_url: str = None, transport: httpx.AsyncBaseTransport = None):
        service_urls = getattr(settings, 'SERVICE_URLS', {})
        self.base_url = base_url or service_urls.get(self.service_name, f'http://{self.service_name}:8000')
        self.transport = transport
        self.timeout = httpx.Timeout(10.0, connect=5.0)
        self.circuit_breaker = CircuitBreaker(self.service_name)

    def _headers(self) -> Dict[str, str]:
        return {
            'Accept': 'application/json',
            'X-Service-Auth': getattr(settings, 'SERVICE_AUTH_TOKEN', ''),
            'X-Source-Service': getattr(settings, 'SERVICE_NAME', 'maintenance-service'),
        }

    async def _request(self, method: str, path: str, params: Dict = None, data: Dict = None) -> Dict:
        self.circuit_breaker.before_call()

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers=self._headers(),
        ) as client:
            try:
                response = await client.request(method, path, params=params, json=data)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                logger.error(f"{self.service_name} answered {status_code} to {method} {path}")
                # A 4xx is the caller's problem, not a sign the service is down
                if status_code >= 500:
                    self.circuit_breaker.record_failure()
                raise
            except httpx.RequestError as e:
                logger.error(f"{self.service_name} unreachable for {method} {path}: {e}")
                self.circuit_breaker.record_failure()
                raise

        self.circuit_breaker.record_success()
        return response.json() if response.content else {}


# =============================================================================
# SERVICE CLIENTS
# =============================================================================

class BookingServiceClient(BaseServiceClient):
    """Reservations backing maintenance calendar holds"""

    service_name = 'booking-service'

    async def get_booking(self, booking_id: str) -> Dict:
        return await self._request('GET', f'/api/v1/bookings/{booking_id}/')

    async def create_booking(self, data: Dict) -> Dict:
        return await self._request('POST', '/api/v1/bookings/', data=data)

    async def update_booking(self, booking_id: str, data: Dict) -> Dict:
        return await self._request('PATCH', f'/api/v1/bookings/{booking_id}/', data=data)

    async def cancel_booking(self, booking_id: str, reason: str = None) -> Dict:
        return await self.update_booking(booking_id, {
            'status': 'cancelled',
            'cancellation_reason': reason,
        })


class AssetServiceClient(BaseServiceClient):
    """Asset lookups used to expand kit, model and tag rule targets"""

    service_name = 'asset-service'

    TARGET_PARAMS = {
        'kit': 'kit_ids',
        'model': 'model_ids',
        'tag': 'tag_ids',
    }

    async def get_assets_for_target(self, target_type: str, target_ids: List[str]) -> List[Dict[str, Any]]:
        """Assets belonging to any of the given kits, models or tags."""
        param = self.TARGET_PARAMS.get(target_type)
        if param is None:
            raise ValueError(f"Unsupported target type: {target_type}")
        response = await self._request(
            'GET',
            '/api/v1/assets/',
            params={param: ','.join(str(target_id) for target_id in target_ids)}
        )
        return response.get('results', [])
