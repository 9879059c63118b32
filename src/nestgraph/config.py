"""Unified configuration for nestgraph.

NestGraphConfig groups the settings of every component:
- Layout engine input (algorithm, direction, spacing, default sizes)
- Render styling (edge style, palette, semantic-tag mappings)
- Operation coordinator (render acknowledgement and layout timeouts)

Every config object validates itself on construction and rejects
unrecognized keys or out-of-range values with ConfigurationError.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from nestgraph.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class LayoutAlgorithm(str, Enum):
    """Layout algorithms understood by the layout bridge."""

    LAYERED = "layered"
    TREE = "tree"
    FORCE = "force"
    STRESS = "stress"
    RADIAL = "radial"


class LayoutDirection(str, Enum):
    """Primary flow direction for layered and tree layouts."""

    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


class EdgeStyle(str, Enum):
    """Edge path styles a renderer can draw."""

    BEZIER = "bezier"
    STRAIGHT = "straight"
    SMOOTHSTEP = "smoothstep"


PALETTE_NAMES = ("Set2", "Set3", "Pastel1", "Dark2")
DEFAULT_PALETTE = "Set3"

# Area budget used when planning the initial collapse of a large graph
SMART_COLLAPSE_BUDGET = 25000.0


# =============================================================================
# Validation helpers
# =============================================================================


def _coerce_enum(enum_cls: type[Enum], value: Any, key: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        for member in enum_cls:
            if member.value == normalized:
                return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise ConfigurationError(f"Invalid {key}: {value!r} (expected one of: {allowed})", key=key)


def _check_number(value: Any, key: str, *, positive: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{key} must be a number, got {value!r}", key=key)
    if not math.isfinite(value):
        raise ConfigurationError(f"{key} must be finite, got {value!r}", key=key)
    if positive and value <= 0:
        raise ConfigurationError(f"{key} must be greater than 0, got {value!r}", key=key)
    if not positive and value < 0:
        raise ConfigurationError(f"{key} must not be negative, got {value!r}", key=key)
    return value


def _reject_unknown_keys(cls: type, data: dict[str, Any]) -> None:
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(
            f"Unrecognized {cls.__name__} option(s): {', '.join(unknown)}",
            key=unknown[0],
        )


def _replace(config: Any, changes: dict[str, Any]) -> Any:
    _reject_unknown_keys(type(config), changes)
    return dataclasses.replace(config, **changes)


# =============================================================================
# Component configs
# =============================================================================


@dataclass
class LayoutConfig:
    """Configuration handed to the layout engine.

    Spacing values are in layout units and must be finite and
    non-negative. Default sizes must be strictly positive.
    """

    algorithm: LayoutAlgorithm = LayoutAlgorithm.LAYERED
    direction: LayoutDirection = LayoutDirection.DOWN
    node_spacing: float = 20.0
    layer_spacing: float = 25.0
    edge_spacing: float = 10.0
    container_padding: float = 20.0

    # Default entity sizes
    node_width: float = 180.0
    node_height: float = 60.0
    collapsed_container_width: float = 200.0
    collapsed_container_height: float = 150.0

    # Engine-specific options passed through untouched
    engine_options: dict[str, Any] = field(default_factory=dict)
    seed: int = 42
    smart_collapse_budget: float = SMART_COLLAPSE_BUDGET

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Validate every option, normalizing enum values given as strings.

        Raises:
            ConfigurationError: If any option is unknown or out of range
        """
        self.algorithm = _coerce_enum(LayoutAlgorithm, self.algorithm, "algorithm")
        self.direction = _coerce_enum(LayoutDirection, self.direction, "direction")
        for key in ("node_spacing", "layer_spacing", "edge_spacing", "container_padding"):
            _check_number(getattr(self, key), key)
        for key in (
            "node_width",
            "node_height",
            "collapsed_container_width",
            "collapsed_container_height",
            "smart_collapse_budget",
        ):
            _check_number(getattr(self, key), key, positive=True)
        if not isinstance(self.engine_options, dict):
            raise ConfigurationError("engine_options must be a mapping", key="engine_options")
        if isinstance(self.seed, bool) or not isinstance(self.seed, int):
            raise ConfigurationError(f"seed must be an integer, got {self.seed!r}", key="seed")

    def with_updates(self, **changes: Any) -> LayoutConfig:
        """Return a validated copy with the given options replaced."""
        return _replace(self, changes)

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["algorithm"] = self.algorithm.value
        data["direction"] = self.direction.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LayoutConfig:
        _reject_unknown_keys(cls, data)
        return cls(**data)


@dataclass
class StyleConfig:
    """Styling options for render data.

    semantic_mappings maps a group name to a mapping of semantic tag to
    style properties, e.g. ``{"boundedness": {"Bounded": {"line-pattern": "dashed"}}}``.
    """

    edge_style: EdgeStyle = EdgeStyle.BEZIER
    color_palette: str = DEFAULT_PALETTE
    edge_width: float = 2.0
    edge_dashed: bool = False
    edge_animated: bool = False
    show_full_labels: bool = False
    node_type_styles: dict[str, dict[str, Any]] = field(default_factory=dict)
    semantic_mappings: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Validate every option.

        Raises:
            ConfigurationError: If any option is unknown or out of range
        """
        self.edge_style = _coerce_enum(EdgeStyle, self.edge_style, "edge_style")
        if self.color_palette not in PALETTE_NAMES:
            raise ConfigurationError(
                f"Unknown color_palette: {self.color_palette!r} "
                f"(expected one of: {', '.join(PALETTE_NAMES)})",
                key="color_palette",
            )
        _check_number(self.edge_width, "edge_width", positive=True)
        for key in ("edge_dashed", "edge_animated", "show_full_labels"):
            if not isinstance(getattr(self, key), bool):
                raise ConfigurationError(f"{key} must be a boolean", key=key)
        if not isinstance(self.node_type_styles, dict):
            raise ConfigurationError("node_type_styles must be a mapping", key="node_type_styles")
        if not isinstance(self.semantic_mappings, dict):
            raise ConfigurationError("semantic_mappings must be a mapping", key="semantic_mappings")
        for group, tags in self.semantic_mappings.items():
            if not isinstance(tags, dict):
                raise ConfigurationError(
                    f"semantic_mappings[{group!r}] must map tags to style properties",
                    key="semantic_mappings",
                )

    def with_updates(self, **changes: Any) -> StyleConfig:
        """Return a validated copy with the given options replaced."""
        return _replace(self, changes)

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["edge_style"] = self.edge_style.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StyleConfig:
        _reject_unknown_keys(cls, data)
        return cls(**data)


@dataclass
class CoordinatorConfig:
    """Configuration for the operation coordinator."""

    # Seconds to wait for the renderer to confirm a render pass
    render_ack_timeout: float = 2.0
    # Seconds a layout pass may take; None disables the bound
    layout_timeout: float | None = 30.0
    max_error_log: int = 100

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        _check_number(self.render_ack_timeout, "render_ack_timeout", positive=True)
        if self.layout_timeout is not None:
            _check_number(self.layout_timeout, "layout_timeout", positive=True)
        if isinstance(self.max_error_log, bool) or not isinstance(self.max_error_log, int):
            raise ConfigurationError("max_error_log must be an integer", key="max_error_log")
        if self.max_error_log <= 0:
            raise ConfigurationError("max_error_log must be greater than 0", key="max_error_log")

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CoordinatorConfig:
        _reject_unknown_keys(cls, data)
        return cls(**data)


# =============================================================================
# Top-level config
# =============================================================================


def _env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", key=name, cause=e)


def _env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class NestGraphConfig:
    """Main configuration for nestgraph.

    Create from environment variables:
        config = NestGraphConfig.from_env()

    Load from a YAML file:
        config = NestGraphConfig.from_file("nestgraph.yaml")

    Or specify directly:
        config = NestGraphConfig(
            layout=LayoutConfig(algorithm="force"),
            style=StyleConfig(color_palette="Dark2"),
        )
    """

    layout: LayoutConfig = field(default_factory=LayoutConfig)
    style: StyleConfig = field(default_factory=StyleConfig)
    coordinator: CoordinatorConfig = field(default_factory=CoordinatorConfig)

    # Run the invariant audit after every model mutation
    audit: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "layout": self.layout.to_dict(),
            "style": self.style.to_dict(),
            "coordinator": self.coordinator.to_dict(),
            "audit": self.audit,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NestGraphConfig:
        """Build a config from a nested mapping.

        Args:
            data: Mapping with optional ``layout``, ``style``,
                ``coordinator`` sections and an ``audit`` flag

        Raises:
            ConfigurationError: If a section or option is not recognized
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping")
        _reject_unknown_keys(cls, data)
        audit = data.get("audit", False)
        if not isinstance(audit, bool):
            raise ConfigurationError("audit must be a boolean", key="audit")
        return cls(
            layout=LayoutConfig.from_dict(data.get("layout") or {}),
            style=StyleConfig.from_dict(data.get("style") or {}),
            coordinator=CoordinatorConfig.from_dict(data.get("coordinator") or {}),
            audit=audit,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> NestGraphConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file cannot be read or parsed
        """
        path = Path(path)
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load config file {path}", cause=e)
        logger.debug(f"Loaded config file: {path}")
        return cls.from_dict(raw)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> NestGraphConfig:
        """Load configuration from environment variables.

        Values already present in the environment take precedence over
        those in ``env_file``.

        Environment variables:
        - NESTGRAPH_LAYOUT_ALGORITHM: layered, tree, force, stress, radial
        - NESTGRAPH_LAYOUT_DIRECTION: up, down, left, right
        - NESTGRAPH_NODE_SPACING / NESTGRAPH_LAYER_SPACING / NESTGRAPH_EDGE_SPACING
        - NESTGRAPH_EDGE_STYLE: bezier, straight, smoothstep
        - NESTGRAPH_COLOR_PALETTE: Set2, Set3, Pastel1, Dark2
        - NESTGRAPH_RENDER_ACK_TIMEOUT: seconds
        - NESTGRAPH_LAYOUT_TIMEOUT: seconds
        - NESTGRAPH_AUDIT: true/false
        """
        if env_file is not None:
            load_dotenv(env_file, override=False)

        layout: dict[str, Any] = {}
        if algorithm := os.getenv("NESTGRAPH_LAYOUT_ALGORITHM"):
            layout["algorithm"] = algorithm
        if direction := os.getenv("NESTGRAPH_LAYOUT_DIRECTION"):
            layout["direction"] = direction
        for key in ("node_spacing", "layer_spacing", "edge_spacing"):
            value = _env_float(f"NESTGRAPH_{key.upper()}")
            if value is not None:
                layout[key] = value

        style: dict[str, Any] = {}
        if edge_style := os.getenv("NESTGRAPH_EDGE_STYLE"):
            style["edge_style"] = edge_style
        if palette := os.getenv("NESTGRAPH_COLOR_PALETTE"):
            style["color_palette"] = palette

        coordinator: dict[str, Any] = {}
        ack_timeout = _env_float("NESTGRAPH_RENDER_ACK_TIMEOUT")
        if ack_timeout is not None:
            coordinator["render_ack_timeout"] = ack_timeout
        layout_timeout = _env_float("NESTGRAPH_LAYOUT_TIMEOUT")
        if layout_timeout is not None:
            coordinator["layout_timeout"] = layout_timeout

        return cls(
            layout=LayoutConfig(**layout),
            style=StyleConfig(**style),
            coordinator=CoordinatorConfig(**coordinator),
            audit=_env_bool("NESTGRAPH_AUDIT") or False,
        )
