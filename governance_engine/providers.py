"""
Interfaces to the external data collaborators and simple implementations.

The engine never fetches cloud data itself. An InventoryProvider returns a
previously collected ResourceInventory and a DirectoryProvider returns the
tenant's directory objects. The static and file-backed providers here are
used for local runs and tests.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence, Union

from .exceptions import InventoryUnavailableError
from .models import DirectorySnapshot, ResourceInventory

logger = logging.getLogger(__name__)


class InventoryProvider(ABC):
    """Source of resource inventories."""

    @abstractmethod
    def fetch_inventory(self, subscription_ids: Sequence[str]) -> ResourceInventory:
        """
        Return the inventory for the given subscriptions.

        Args:
            subscription_ids: Subscriptions to include

        Returns:
            ResourceInventory covering the requested subscriptions

        Raises:
            InventoryUnavailableError: If the inventory cannot be obtained
        """
        pass


class DirectoryProvider(ABC):
    """Source of tenant directory objects for identity analyzers."""

    @abstractmethod
    def fetch_directory(self) -> DirectorySnapshot:
        """
        Return the tenant's users, devices, applications, policies and role assignments.

        Raises:
            Exception: Any failure; identity analyzers report it as unavailable
        """
        pass


class StaticInventoryProvider(InventoryProvider):
    """Serves a fixed inventory, restricted to the requested subscriptions."""

    def __init__(self, inventory: ResourceInventory):
        self.inventory = inventory

    def fetch_inventory(self, subscription_ids: Sequence[str]) -> ResourceInventory:
        wanted = set(subscription_ids)
        resources = tuple(
            r for r in self.inventory.resources
            if not r.subscription_id or r.subscription_id in wanted
        )
        covered = tuple(s for s in self.inventory.subscription_ids if s in wanted) or tuple(subscription_ids)
        return self.inventory.model_copy(update={"resources": resources, "subscription_ids": covered})


class JsonFileInventoryProvider(InventoryProvider):
    """
    Loads an inventory previously exported by the collector as JSON.

    Args:
        path: Path to a JSON document matching the ResourceInventory schema
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def fetch_inventory(self, subscription_ids: Sequence[str]) -> ResourceInventory:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InventoryUnavailableError(f"Cannot read inventory file {self.path}: {e}") from e

        inventory = ResourceInventory.model_validate(data)
        logger.info(f"Loaded {len(inventory)} resources from {self.path}")
        return StaticInventoryProvider(inventory).fetch_inventory(subscription_ids)


class StaticDirectoryProvider(DirectoryProvider):
    """Serves a fixed directory snapshot."""

    def __init__(self, snapshot: Optional[DirectorySnapshot] = None):
        self.snapshot = snapshot or DirectorySnapshot()

    def fetch_directory(self) -> DirectorySnapshot:
        return self.snapshot
