"""Configuration and matcher parameters read from a YAML file."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Union

import yaml

from vistrack.tracker import TrackerParameters

PathType = Union[str, "os.PathLike[str]"]


class ParameterError(ValueError):
    """Raised when a configuration file is malformed or holds invalid values."""


@dataclass
class Configuration:
    """Topic names, queue sizes and image scaling of the tracking node."""

    matches_msg_name: str = "/viso_topic"
    image_msg_name: str = "/image_topic"
    matches_msg_queue_size: int = 10
    image_msg_queue_size: int = 10
    scale_factor: float = 1.0


@dataclass
class VisoParameters(TrackerParameters):
    """Tracker parameters plus the Gaussian blur applied before matching."""

    blur_size: int = 3
    blur_sigma: float = 0.8


def _read_root(path: PathType) -> Any:
    with open(path, encoding="utf-8") as stream:
        try:
            return yaml.safe_load(stream)
        except yaml.YAMLError as error:
            raise ParameterError(f"Failed to parse YAML file: {error}") from error


def _section(root: Any, name: str) -> dict | None:
    if root is None:
        return None
    if not isinstance(root, dict):
        raise ParameterError("Configuration root must be a mapping")
    if name not in root:
        return None
    node = root[name]
    if node is None:
        return {}
    if not isinstance(node, dict):
        raise ParameterError(f"Section '{name}' must be a mapping")
    return node


def _convert(value: Any, kind: type, key: str) -> Any:
    invalid = ParameterError(f"Parameter '{key}' has invalid value {value!r}")
    if kind is str:
        if value is None or isinstance(value, (dict, list)):
            raise invalid
        if isinstance(value, bool):
            return "true" if value else "false"
        return value if isinstance(value, str) else str(value)
    if isinstance(value, bool):
        raise invalid
    if kind is int:
        if not isinstance(value, int):
            raise invalid
        return value
    if not isinstance(value, (int, float)):
        raise invalid
    return float(value)


def _required(node: dict, key: str, kind: type) -> Any:
    if key not in node:
        raise ParameterError(f"Parameter '{key}' is not defined")
    return _convert(node[key], kind, key)


def _optional(node: dict, keys: tuple[tuple[str, str, type], ...]) -> dict[str, Any]:
    return {attr: _convert(node[key], kind, key) for key, attr, kind in keys if key in node}


_GENERAL_OPTIONAL = (
    ("matches_msg_queue_size", "matches_msg_queue_size", int),
    ("image_msg_queue_size", "image_msg_queue_size", int),
    ("scale_factor", "scale_factor", float),
)

_MATCHER_KEYS = (
    ("nms_n", "nms_n", int),
    ("nms_tau", "nms_tau", int),
    ("match_binsize", "match_binsize", int),
    ("match_radius", "match_radius", int),
    ("match_disp_tolerance", "match_disp_tolerance", int),
    ("outlier_disp_tolerance", "outlier_disp_tolerance", int),
    ("outlier_flow_tolerance", "outlier_flow_tolerance", int),
    ("max_track_length", "max_tracklength", int),
    ("blur_size", "blur_size", int),
    ("blur_sigma", "blur_sigma", float),
    ("multi_stage", "multi_stage", int),
    ("half_resolution", "half_resolution", int),
    ("method", "method", int),
    ("refinement", "refinement", int),
)

_LIMITS = (
    ("multi_stage", 1, "multi stage is 1 or 0 (boolean)"),
    ("half_resolution", 1, "half resolution is 1 or 0 (boolean)"),
    ("method", 1, "matching method must be 0(flow) or 1(stereo)"),
    ("refinement", 2, "refinement must be 0, 1 or 2"),
)


def load_configuration(path: PathType) -> Configuration:
    """Read the 'general' section; topic names are required when it is present."""
    config = Configuration()
    node = _section(_read_root(path), "general")
    if node is None:
        return config
    return replace(
        config,
        matches_msg_name=_required(node, "matches_msg_name", str),
        image_msg_name=_required(node, "image_msg_name", str),
        **_optional(node, _GENERAL_OPTIONAL),
    )


def load_matcher_parameters(path: PathType) -> VisoParameters:
    """Read the 'matcher' section, keeping defaults for keys it leaves out."""
    params = VisoParameters()
    node = _section(_read_root(path), "matcher")
    if node is None:
        return params
    params = replace(params, **_optional(node, _MATCHER_KEYS))
    for attr, limit, message in _LIMITS:
        if getattr(params, attr) > limit:
            raise ParameterError(f"in viso_feature_tracking_parameters: {message}")
    return params


def load(path: PathType) -> tuple[Configuration, VisoParameters]:
    """Read both the node configuration and the matcher parameters."""
    return load_configuration(path), load_matcher_parameters(path)