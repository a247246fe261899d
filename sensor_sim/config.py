from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

import yaml

from .world import WorldBounds


T = TypeVar("T")


def load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@dataclass
class EngineConfig:
    """Sampling constants of the beam engine."""

    full_turn_samples: int = 72
    horizontal_step_deg: float = 5.0
    min_distance: float = 0.01
    cone_spread_single_plane_deg: float = 1.0
    cone_spread_default_deg: float = 0.5
    cone_min_radius: float = 0.01
    cone_radial_segments: int = 8


@dataclass
class WorldConfig:
    x_min: float = 0.0
    x_max: float = 30.0
    y_min: float = 0.0
    y_max: float = 5.0
    z_min: float = 0.0
    z_max: float = 30.0

    def bounds(self) -> WorldBounds:
        return WorldBounds(
            x_min=self.x_min,
            x_max=self.x_max,
            y_min=self.y_min,
            y_max=self.y_max,
            z_min=self.z_min,
            z_max=self.z_max,
        )


@dataclass
class RenderConfig:
    window_width: int = 900
    window_height: int = 900
    fps: int = 30
    show_beams: bool = True
    grid_step_m: float = 2.0


@dataclass
class AssetsConfig:
    sensor_catalog: str = "sensor_sim/catalogs/sensors.json"
    asset_root: str = "assets"
    default_scene: Optional[str] = None
    scene_output: str = "scene_configuration.json"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    telemetry_path: Optional[str] = None
    telemetry_every: int = 30


@dataclass
class SimConfig:
    world: WorldConfig = field(default_factory=WorldConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    assets: AssetsConfig = field(default_factory=AssetsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _section(cls: Type[T], data: Optional[Mapping[str, Any]]) -> T:
    """Build a config dataclass from a YAML section. Unknown keys are rejected."""
    if not data:
        return cls()
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in {cls.__name__}: {sorted(unknown)}")
    return cls(**dict(data))


def config_from_dict(cfg: Mapping[str, Any]) -> SimConfig:
    return SimConfig(
        world=_section(WorldConfig, cfg.get("world")),
        engine=_section(EngineConfig, cfg.get("engine")),
        render=_section(RenderConfig, cfg.get("render")),
        assets=_section(AssetsConfig, cfg.get("assets")),
        logging=_section(LoggingConfig, cfg.get("logging")),
    )


def load_config(path: str) -> SimConfig:
    """Load a sim YAML config; missing sections fall back to defaults."""
    return config_from_dict(load_yaml(path))
