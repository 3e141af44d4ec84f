"""Desired-state document — the human-edited ``rbxsync.yaml``.

Loading validates the whole document first and reports every problem at
once; nothing is returned for an invalid document. Unknown top-level
sections (codegen settings, for instance) are carried through untouched so
that commands which rewrite the document never lose them.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path

import yaml

from rbxsync.errors import ValidationError
from rbxsync.models.resources import (
    KIND_ORDER,
    DesiredState,
    Experience,
    IconSettings,
    ResourceKind,
)

CONFIG_NAME = "rbxsync.yaml"

KNOWN_SECTIONS = {"experience", "icons"} | {kind.value for kind in KIND_ORDER}
CREATOR_TYPES = ("user", "group")

# Optional fields omitted from the document when unset.
_OPTIONAL = {"name", "price", "description", "icon", "path"}
# Fields a document must spell out for each kind.
_REQUIRED = {ResourceKind.PRODUCTS: {"price"}}
_BOOLEANS = {"for_sale", "regional_pricing", "enabled", "store_page"}
_STRINGS = {"name", "description", "icon", "path"}


def load_desired(path: str | Path) -> DesiredState:
    """Read and validate a desired-state document."""
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ValidationError(f"{path} not found. Run `rbxsync init` to create one.")
    except yaml.YAMLError as e:
        raise ValidationError(f"Failed to parse {path}: {e}")

    issues = validate_desired(data, base_dir=path.parent)
    if issues:
        raise ValidationError(issues)
    return desired_from_dict(data)


def save_desired(state: DesiredState, path: str | Path) -> None:
    with open(path, "w") as f:
        yaml.safe_dump(desired_to_dict(state), f, sort_keys=False, allow_unicode=True)


def validate_desired(data, base_dir: str | Path | None = None) -> list[str]:
    """Check a parsed desired-state document.

    Args:
        data: The parsed YAML document.
        base_dir: Directory icon paths are relative to. When given, every
            referenced icon must exist.

    Returns:
        List of issue messages. Empty list means valid.
    """
    if not isinstance(data, dict):
        return ["Document must be a mapping with an 'experience' section"]

    issues: list[str] = []

    experience = data.get("experience")
    if not isinstance(experience, dict):
        issues.append("Missing 'experience' section")
    else:
        if not _is_int(experience.get("universe_id")):
            issues.append("experience.universe_id must be an integer")
        creator = experience.get("creator")
        if not isinstance(creator, dict):
            issues.append("Missing 'experience.creator' section")
        else:
            if creator.get("type") not in CREATOR_TYPES:
                issues.append(
                    f"experience.creator.type must be one of {list(CREATOR_TYPES)}, "
                    f"got {creator.get('type')!r}"
                )
            if not _is_int(creator.get("id")):
                issues.append("experience.creator.id must be an integer")

    icons = data.get("icons", {})
    if not isinstance(icons, dict):
        issues.append("'icons' must be a mapping")
    elif "dir" in icons and not isinstance(icons["dir"], str):
        issues.append("icons.dir must be a string")

    for kind in KIND_ORDER:
        section = data.get(kind.value) or {}
        if not isinstance(section, dict):
            issues.append(f"'{kind.value}' must be a mapping of key to settings")
            continue
        allowed = {f.name for f in fields(kind.desired_type)}
        for key, entry in section.items():
            where = f"{kind.value}.{key}"
            if entry is None:
                entry = {}
            if not isinstance(entry, dict):
                issues.append(f"{where} must be a mapping")
                continue
            for name in sorted(set(entry) - allowed):
                issues.append(f"{where}: unknown field '{name}'")
            for name in sorted(_REQUIRED.get(kind, set())):
                if entry.get(name) is None:
                    issues.append(f"{where}: missing required field '{name}'")
            for name, value in entry.items():
                if name not in allowed or value is None:
                    continue
                if name == "price" and not (_is_int(value) and value >= 0):
                    issues.append(f"{where}.price must be a non-negative integer")
                elif name in _BOOLEANS and not isinstance(value, bool):
                    issues.append(f"{where}.{name} must be true or false")
                elif name in _STRINGS and not isinstance(value, str):
                    issues.append(f"{where}.{name} must be a string")
            icon = entry.get("icon")
            if base_dir is not None and isinstance(icon, str):
                full = Path(base_dir) / icon
                if not full.is_file():
                    issues.append(f"{kind.label.capitalize()} '{key}': icon path does not exist: {full}")

    return issues


def desired_from_dict(data: dict) -> DesiredState:
    experience = data.get("experience", {})
    creator = experience.get("creator", {})
    icons = data.get("icons") or {}

    state = DesiredState(
        experience=Experience(
            universe_id=experience.get("universe_id", 0),
            creator_type=creator.get("type", "user"),
            creator_id=creator.get("id", 0),
        ),
        icons=IconSettings(dir=icons.get("dir", "icons")),
        extra={k: v for k, v in data.items() if k not in KNOWN_SECTIONS},
    )
    for kind in KIND_ORDER:
        section = state.resources(kind)
        for key, entry in (data.get(kind.value) or {}).items():
            values = {k: v for k, v in (entry or {}).items() if v is not None}
            section[str(key)] = kind.desired_type(**values)
    return state


def desired_to_dict(state: DesiredState) -> dict:
    data: dict = {
        "experience": {
            "universe_id": state.experience.universe_id,
            "creator": {
                "type": state.experience.creator_type,
                "id": state.experience.creator_id,
            },
        },
    }
    if state.icons.dir != IconSettings().dir:
        data["icons"] = {"dir": state.icons.dir}
    data.update(state.extra)

    for kind in KIND_ORDER:
        section = state.resources(kind)
        if not section:
            continue
        data[kind.value] = {key: _resource_to_dict(section[key]) for key in sorted(section)}
    return data


def _resource_to_dict(config) -> dict:
    out = {}
    for f in fields(config):
        value = getattr(config, f.name)
        if value is None and f.name in _OPTIONAL:
            continue
        out[f.name] = value
    return out


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def default_template() -> str:
    return """\
# rbxsync configuration

experience:
  universe_id: 0        # Your Roblox universe ID
  creator:
    type: user          # "user" or "group"
    id: 0               # Your Roblox user or group ID

# Icon settings
# icons:
#   dir: icons          # Directory for downloaded icons

# Game Passes
# passes:
#   VIP:
#     name: VIP Pass         # optional, defaults to the key "VIP"
#     price: 499             # optional, omit for an unpriced pass
#     description: VIP access
#     icon: icons/vip.png
#     for_sale: true         # optional, defaults to true
#     regional_pricing: false

# Badges
# badges:
#   Welcome:
#     name: Welcome Badge
#     description: Welcome to the game!
#     icon: icons/welcome.png
#     enabled: true

# Developer Products
# products:
#   Coins100:
#     name: 100 Coins
#     price: 99              # required
#     description: 100 coins
#     icon: icons/coins.png
#     for_sale: true
#     regional_pricing: false
#     store_page: false
"""
