"""Desired and applied resource models.

A managed resource lives in two places: the human-edited desired state
(``rbxsync.yaml``) and the checkpoint of what was last applied remotely
(``rbxsync.lock.yaml``). Both are keyed per kind by a user-chosen key.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

CHECKPOINT_VERSION = 1


class ResourceKind(Enum):
    """The closed set of resource categories, in processing order."""

    PASSES = "passes"
    BADGES = "badges"
    PRODUCTS = "products"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def title(self) -> str:
        return _TITLES[self]

    @property
    def listing_complete(self) -> bool:
        """Whether the remote listing returns every resource of this kind.

        The badge listing leaves out disabled badges, so missing badges must
        be fetched one by one before they count as removed.
        """
        return self is not ResourceKind.BADGES

    @property
    def desired_type(self) -> type:
        return _DESIRED_TYPES[self]

    @property
    def applied_type(self) -> type:
        return _APPLIED_TYPES[self]

    @classmethod
    def parse(cls, value: str) -> ResourceKind:
        value = value.strip().lower()
        for kind in cls:
            if value in (kind.value, kind.label):
                return kind
        raise ValueError(f"Unknown resource kind '{value}'")


KIND_ORDER: tuple[ResourceKind, ...] = (
    ResourceKind.PASSES,
    ResourceKind.BADGES,
    ResourceKind.PRODUCTS,
)

_LABELS = {
    ResourceKind.PASSES: "pass",
    ResourceKind.BADGES: "badge",
    ResourceKind.PRODUCTS: "product",
}

_TITLES = {
    ResourceKind.PASSES: "Game Passes",
    ResourceKind.BADGES: "Badges",
    ResourceKind.PRODUCTS: "Developer Products",
}


# --- Desired resources ---


@dataclass
class PassConfig:
    """A game pass as declared in the desired state."""

    ATTRIBUTES: ClassVar[tuple[str, ...]] = (
        "price",
        "description",
        "for_sale",
        "regional_pricing",
    )

    name: str | None = None
    price: int | None = None  # None means "no price", distinct from 0
    description: str | None = None
    icon: str | None = None
    for_sale: bool = True
    regional_pricing: bool = False
    path: str | None = None  # codegen placement only


@dataclass
class BadgeConfig:
    """A badge as declared in the desired state."""

    ATTRIBUTES: ClassVar[tuple[str, ...]] = ("description", "enabled")

    name: str | None = None
    description: str | None = None
    icon: str | None = None
    enabled: bool = True
    path: str | None = None


@dataclass
class ProductConfig:
    """A developer product as declared in the desired state."""

    ATTRIBUTES: ClassVar[tuple[str, ...]] = (
        "price",
        "description",
        "for_sale",
        "regional_pricing",
        "store_page",
    )

    name: str | None = None
    price: int = 0
    description: str | None = None
    icon: str | None = None
    for_sale: bool = True
    regional_pricing: bool = False
    store_page: bool = False
    path: str | None = None


# --- Applied resources (checkpoint entries) ---


@dataclass
class AppliedPass:
    remote_id: int
    name: str
    price: int | None = None
    description: str | None = None
    for_sale: bool = True
    regional_pricing: bool = False
    icon_asset_id: int | None = None
    icon_hash: str | None = None


@dataclass
class AppliedBadge:
    remote_id: int
    name: str
    description: str | None = None
    enabled: bool = True
    icon_asset_id: int | None = None
    icon_hash: str | None = None


@dataclass
class AppliedProduct:
    remote_id: int
    name: str
    price: int = 0
    description: str | None = None
    for_sale: bool = True
    regional_pricing: bool = False
    store_page: bool = False
    icon_asset_id: int | None = None
    icon_hash: str | None = None


_DESIRED_TYPES = {
    ResourceKind.PASSES: PassConfig,
    ResourceKind.BADGES: BadgeConfig,
    ResourceKind.PRODUCTS: ProductConfig,
}

_APPLIED_TYPES = {
    ResourceKind.PASSES: AppliedPass,
    ResourceKind.BADGES: AppliedBadge,
    ResourceKind.PRODUCTS: AppliedProduct,
}


def resolve_name(config, key: str) -> str:
    """Effective display name: the explicit override, else the key itself."""
    return config.name if config.name is not None else key


def applied_attributes(config) -> dict[str, Any]:
    """Attribute values as they are sent remotely.

    A product that is off sale is never shown on the store page.
    """
    attrs = {attr: getattr(config, attr) for attr in config.ATTRIBUTES}
    if "store_page" in attrs:
        attrs["store_page"] = attrs["store_page"] and attrs["for_sale"]
    return attrs


def mirror_desired(
    kind: ResourceKind,
    remote_id: int,
    name: str,
    config,
    icon_asset_id: int | None = None,
    icon_hash: str | None = None,
):
    """Build a checkpoint entry mirroring *config* as it was just applied."""
    attrs = applied_attributes(config)
    return kind.applied_type(
        remote_id=remote_id,
        name=name,
        icon_asset_id=icon_asset_id,
        icon_hash=icon_hash,
        **attrs,
    )


# --- State containers ---


@dataclass
class Experience:
    """The universe the resources belong to and who owns it."""

    universe_id: int = 0
    creator_type: str = "user"  # user | group
    creator_id: int = 0


@dataclass
class IconSettings:
    dir: str = "icons"  # where pulled icons land by default


@dataclass
class DesiredState:
    """Everything declared in the desired-state document."""

    experience: Experience = field(default_factory=Experience)
    icons: IconSettings = field(default_factory=IconSettings)
    passes: dict[str, PassConfig] = field(default_factory=dict)
    badges: dict[str, BadgeConfig] = field(default_factory=dict)
    products: dict[str, ProductConfig] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)  # sections kept verbatim

    def resources(self, kind: ResourceKind) -> dict:
        return getattr(self, kind.value)

    def copy(self) -> DesiredState:
        return copy.deepcopy(self)


@dataclass
class AppliedState:
    """The checkpoint: last successfully applied state per resource."""

    version: int = CHECKPOINT_VERSION
    universe_id: int = 0
    passes: dict[str, AppliedPass] = field(default_factory=dict)
    badges: dict[str, AppliedBadge] = field(default_factory=dict)
    products: dict[str, AppliedProduct] = field(default_factory=dict)

    def resources(self, kind: ResourceKind) -> dict:
        return getattr(self, kind.value)

    def copy(self) -> AppliedState:
        return copy.deepcopy(self)

    def id_index(self, kind: ResourceKind) -> dict[int, str]:
        """Reverse index from remote id to local key."""
        return {lock.remote_id: key for key, lock in self.resources(kind).items()}

    def count(self) -> int:
        return sum(len(self.resources(kind)) for kind in KIND_ORDER)
