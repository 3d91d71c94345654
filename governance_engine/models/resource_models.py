"""
Pydantic models for the collected resource inventory.

The inventory is produced by an external collector and is read-only for the
engine. Both models are frozen and the resource collection is a tuple, so a
single inventory instance can be shared by concurrent analyzers.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

ENVIRONMENT_TOKENS = ("dev", "test", "staging", "stage", "prod", "production", "qa", "uat")
ENVIRONMENT_TAG_KEYS = ("environment", "env")

_NAME_TOKEN_SPLIT = re.compile(r"[-_.]")


class AzureResource(BaseModel):
    """A single collected cloud resource"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Fully qualified resource id")
    name: str = Field(..., description="Resource name")
    type: str = Field(..., description="Provider resource type, e.g. Microsoft.Compute/virtualMachines")
    resource_group: str = Field("", description="Resource group name")
    location: str = Field("", description="Azure region")
    subscription_id: str = Field("", description="Owning subscription id")
    tags: Dict[str, str] = Field(default_factory=dict, description="Resource tags")
    properties: Dict[str, Any] = Field(default_factory=dict, description="Opaque resource property bag")
    kind: Optional[str] = Field(None, description="Resource kind")
    sku: Optional[Dict[str, Any]] = Field(None, description="Resource SKU")
    zones: List[str] = Field(default_factory=list, description="Availability zones")
    created_date: Optional[datetime] = Field(None, description="Creation timestamp")

    @property
    def normalized_type(self) -> str:
        return self.type.lower()

    @property
    def resource_type_name(self) -> str:
        """Last segment of the resource type, lower-cased (e.g. virtualmachines)."""
        return self.normalized_type.rsplit("/", 1)[-1]

    @property
    def has_tags(self) -> bool:
        return len(self.tags) > 0

    @property
    def tag_count(self) -> int:
        return len(self.tags)

    def get_tag(self, key: str) -> Optional[str]:
        """Case-insensitive tag lookup."""
        wanted = key.lower()
        for tag_key, value in self.tags.items():
            if tag_key.lower() == wanted:
                return value
        return None

    def get_property(self, path: str, default: Any = None) -> Any:
        """
        Read a nested value from the property bag.

        Args:
            path: Dotted path, e.g. "encryption.keySource"
            default: Value returned when any segment is missing

        Returns:
            The nested value or default
        """
        current: Any = self.properties
        for segment in path.split("."):
            if not isinstance(current, dict) or segment not in current:
                return default
            current = current[segment]
        return current

    @property
    def environment(self) -> Optional[str]:
        """Environment from an Environment/Env tag, else from a token in the name."""
        for key in ENVIRONMENT_TAG_KEYS:
            value = self.get_tag(key)
            if value:
                return value.lower()
        for token in _NAME_TOKEN_SPLIT.split(self.name.lower()):
            if token in ENVIRONMENT_TOKENS:
                return token
        return None


class ResourceInventory(BaseModel):
    """Immutable snapshot of collected resources"""
    model_config = ConfigDict(frozen=True)

    customer_id: str = Field("", description="Customer owning the inventory")
    resources: Tuple[AzureResource, ...] = Field(default_factory=tuple, description="Collected resources")
    collected_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the inventory was collected"
    )
    subscription_ids: Tuple[str, ...] = Field(default_factory=tuple, description="Subscriptions covered")

    def __len__(self) -> int:
        return len(self.resources)

    def resources_of_type(self, *resource_types: str) -> List[AzureResource]:
        """
        Return resources whose type matches any of the given types.

        Types match case-insensitively against either the full provider type
        (microsoft.compute/virtualmachines) or its last segment (virtualmachines).
        """
        wanted = {t.lower() for t in resource_types}
        return [
            r for r in self.resources
            if r.normalized_type in wanted or r.resource_type_name in wanted
        ]

    def filter_resource_types(
        self,
        include: Optional[Iterable[str]] = None,
        exclude: Optional[Iterable[str]] = None
    ) -> "ResourceInventory":
        """
        Return a new inventory restricted by resource type filters.

        Args:
            include: Types to keep. Empty or None keeps everything
            exclude: Types to drop, applied after include

        Returns:
            A new ResourceInventory; this instance is left untouched
        """
        include_set = {t.lower() for t in include or []}
        exclude_set = {t.lower() for t in exclude or []}
        if not include_set and not exclude_set:
            return self

        def matches(resource: AzureResource, types: set) -> bool:
            return resource.normalized_type in types or resource.resource_type_name in types

        kept = tuple(
            r for r in self.resources
            if (not include_set or matches(r, include_set)) and not matches(r, exclude_set)
        )
        return self.model_copy(update={"resources": kept})
