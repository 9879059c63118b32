"""Colour palettes and semantic-tag styling."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from nestgraph.config import DEFAULT_PALETTE, StyleConfig


@dataclass(frozen=True)
class PaletteColor:
    primary: str
    secondary: str
    name: str


PALETTES: dict[str, tuple[PaletteColor, ...]] = {
    "Set2": (
        PaletteColor("#66c2a5", "#e0f2ef", "Teal Green"),
        PaletteColor("#fc8d62", "#ffe1d6", "Soft Orange"),
        PaletteColor("#8da0cb", "#e6e9f5", "Dusty Blue"),
        PaletteColor("#e78ac3", "#fbe1f2", "Pink Purple"),
        PaletteColor("#a6d854", "#eef8d9", "Lime Green"),
        PaletteColor("#ffd92f", "#fff6bf", "Soft Yellow"),
        PaletteColor("#e5c494", "#f6ebd9", "Tan"),
    ),
    "Set3": (
        PaletteColor("#8dd3c7", "#ffffb3", "Light Teal"),
        PaletteColor("#bebada", "#fb8072", "Light Purple"),
        PaletteColor("#80b1d3", "#fdb462", "Light Blue"),
        PaletteColor("#fccde5", "#b3de69", "Light Pink"),
        PaletteColor("#d9d9d9", "#fccde5", "Light Gray"),
        PaletteColor("#bc80bd", "#ccebc5", "Medium Purple"),
        PaletteColor("#ccebc5", "#ffed6f", "Light Green"),
        PaletteColor("#ffed6f", "#8dd3c7", "Light Yellow"),
    ),
    "Pastel1": (
        PaletteColor("#fbb4ae", "#b3cde3", "Soft Red"),
        PaletteColor("#b3cde3", "#ccebc5", "Soft Blue"),
        PaletteColor("#ccebc5", "#decbe4", "Soft Green"),
        PaletteColor("#decbe4", "#fed9a6", "Soft Lavender"),
        PaletteColor("#fed9a6", "#ffffcc", "Soft Orange"),
        PaletteColor("#ffffcc", "#e5d8bd", "Soft Yellow"),
        PaletteColor("#e5d8bd", "#fddaec", "Soft Beige"),
        PaletteColor("#fddaec", "#f2f2f2", "Soft Pink"),
    ),
    "Dark2": (
        PaletteColor("#1b9e77", "#d95f02", "Dark Teal"),
        PaletteColor("#d95f02", "#7570b3", "Dark Orange"),
        PaletteColor("#7570b3", "#e7298a", "Dark Purple"),
        PaletteColor("#e7298a", "#66a61e", "Dark Pink"),
        PaletteColor("#66a61e", "#e6ab02", "Dark Green"),
        PaletteColor("#e6ab02", "#a6761d", "Dark Gold"),
        PaletteColor("#a6761d", "#666666", "Dark Brown"),
        PaletteColor("#666666", "#1b9e77", "Dark Gray"),
    ),
}

HIGHLIGHT_COLORS = {
    "default": {"background": "#fff3b0", "border": "#f59e0b", "text": "#000000"},
    "Dark2": {"background": "#cffafe", "border": "#06b6d4", "text": "#000000"},
}


def palette_color(node_type: str, palette: str = DEFAULT_PALETTE) -> PaletteColor:
    """Pick a stable palette colour for a node type."""
    colors = PALETTES.get(palette) or PALETTES[DEFAULT_PALETTE]
    index = sum(ord(ch) for ch in node_type) % len(colors)
    return colors[index]


def contrast_color(background: str) -> str:
    """Black or white text, whichever reads better on ``background``."""
    value = background.lstrip("#")
    if len(value) != 6:
        return "#000000"
    r, g, b = (int(value[i : i + 2], 16) for i in (0, 2, 4))
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
    return "#000000" if luminance > 0.5 else "#ffffff"


def highlight_colors(palette: str = DEFAULT_PALETTE) -> dict[str, str]:
    return dict(HIGHLIGHT_COLORS.get(palette, HIGHLIGHT_COLORS["default"]))


@dataclass
class TagStyle:
    """Style properties resolved from semantic tags."""

    properties: dict[str, Any] = field(default_factory=dict)
    applied_tags: list[str] = field(default_factory=list)


def process_semantic_tags(tags: list[str], style: StyleConfig) -> TagStyle:
    """Merge style properties for every tag found in the semantic mappings.

    Groups are applied in mapping order; a later group overrides earlier
    properties of the same name.
    """
    result = TagStyle()
    if not tags or not style.semantic_mappings:
        return result
    for mappings in style.semantic_mappings.values():
        for tag in tags:
            properties = mappings.get(tag)
            if properties is None:
                continue
            result.properties.update(properties)
            if tag not in result.applied_tags:
                result.applied_tags.append(tag)
    return result
