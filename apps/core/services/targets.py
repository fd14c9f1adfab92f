# apps/core/services/targets.py
"""
Target Resolution

Expands a rule's target selector into the concrete assets that get a line
item on each generated work order.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx
from asgiref.sync import async_to_sync

from apps.core.models import MaintenanceRule
from shared.common.clients import AssetServiceClient, CircuitBreakerError
from .actor import coerce_uuid
from .exceptions import DependencyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAsset:
    asset_id: str
    asset_name: Optional[str] = None


class TargetResolver:
    """
    Asset targets resolve to themselves; kit, model and tag targets are
    looked up in the asset service.
    """

    def __init__(self, asset_client: AssetServiceClient = None):
        self._asset_client = asset_client

    @property
    def asset_client(self) -> AssetServiceClient:
        if self._asset_client is None:
            self._asset_client = AssetServiceClient()
        return self._asset_client

    def resolve(self, rule: MaintenanceRule) -> List[ResolvedAsset]:
        if rule.target_type == MaintenanceRule.TargetType.ASSET:
            return [ResolvedAsset(asset_id=asset_id) for asset_id in rule.target_asset_ids]

        try:
            assets = async_to_sync(self.asset_client.get_assets_for_target)(
                rule.target_type, rule.target_ids
            )
        except (httpx.HTTPError, CircuitBreakerError) as e:
            logger.error(f"Failed to resolve {rule.target_type} targets for rule {rule.id}: {e}")
            raise DependencyError(f"Could not resolve {rule.target_type} targets: {e}")

        resolved = []
        seen = set()
        for asset in assets:
            asset_id = coerce_uuid(asset.get('id'))
            if asset_id is None or asset_id in seen:
                continue
            seen.add(asset_id)
            resolved.append(ResolvedAsset(asset_id=str(asset_id), asset_name=asset.get('name')))
        return resolved
