"""Provider interface — what the engine needs from the remote side.

Implementations retry transient failures themselves and raise ProviderError
once a call is unrecoverable. They never touch the checkpoint.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from rbxsync.models.resources import ResourceKind


@dataclass
class ResourceFields:
    """Field set sent on create or update.

    Attributes a kind does not have are ignored by the provider. ``icon``
    carries raw bytes only when the icon must be (re)uploaded.
    """

    name: str
    description: str | None = None
    price: int | None = None
    for_sale: bool = True
    regional_pricing: bool = False
    enabled: bool = True
    store_page: bool = False
    icon: bytes | None = None


@dataclass
class RemoteResource:
    """A resource as observed remotely. ``None`` means the remote did not say."""

    remote_id: int
    name: str | None = None
    description: str | None = None
    price: int | None = None
    for_sale: bool | None = None
    enabled: bool | None = None
    store_page: bool | None = None
    icon_asset_id: int | None = None


class Provider(ABC):
    """Remote create/update/get/list per resource kind, plus asset download."""

    @abstractmethod
    def create(self, kind: ResourceKind, fields: ResourceFields) -> RemoteResource:
        """Create a resource and return its remote identity and canonical fields."""

    @abstractmethod
    def update(
        self, kind: ResourceKind, remote_id: int, fields: ResourceFields
    ) -> RemoteResource | None:
        """Update a resource. May return ``None`` for an empty acknowledgement."""

    @abstractmethod
    def get(self, kind: ResourceKind, remote_id: int) -> RemoteResource:
        """Fetch one resource by remote id. Raises ProviderError if it is gone."""

    @abstractmethod
    def list(self, kind: ResourceKind) -> list[RemoteResource]:
        """List resources of a kind. The badge listing omits disabled badges."""

    @abstractmethod
    def download_asset(self, asset_id: int) -> bytes:
        """Fetch the raw bytes of an image asset."""
