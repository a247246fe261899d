"""
Ray-sampling and intersection engine.

Each tick, every visible placed sensor gets its angular sample grid rebuilt
from its current pose. Each ray is resolved against the collidable set (all
obstacle boxes plus the ground plane) and the resulting samples replace
whatever the presenter showed for that sensor on the previous tick.

Nearest hit wins. When two surfaces are hit at exactly the same distance the
first one in enumeration order is kept: obstacles in registry order, then the
ground plane.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple
import logging
import math

import numpy as np

from .config import EngineConfig
from .geometry_utils import normalize, quat_rotate
from .obstacles import CollisionBox, ObstacleRegistry
from .sensors import BeamLayout, SensorDefinition, SensorInstance, SensorRegistry
from .world import GroundPlane, World

if TYPE_CHECKING:
    from .presentation import BeamPresenter


logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = EngineConfig()


@dataclass(frozen=True)
class Sample:
    """One resolved ray of one sensor in one tick.

    Attributes
    ----------
    sensor_id : str
        Owning sensor instance.
    channel, step : int
        Vertical ring index and horizontal step index.
    v_angle, h_angle : float
        Elevation and azimuth in the sensor frame (degrees).
    origin : tuple
        Ray origin (sensor world position).
    direction : tuple
        Unit ray direction in world coordinates.
    distance : float
        Resolved range, max_range when nothing was hit.
    target_id : str or None
        Id of the surface that was hit, None for a miss.
    """

    sensor_id: str
    channel: int
    step: int
    v_angle: float
    h_angle: float
    origin: Tuple[float, float, float]
    direction: Tuple[float, float, float]
    distance: float
    target_id: Optional[str] = None

    @property
    def hit(self) -> bool:
        return self.target_id is not None

    @property
    def end_point(self) -> np.ndarray:
        return np.asarray(self.origin) + np.asarray(self.direction) * self.distance


@dataclass(frozen=True)
class RayHit:
    distance: float
    target_id: Optional[str] = None


class BeamState(str, Enum):
    NO_SAMPLES = "noSamples"
    SAMPLED = "sampled"


# ---------------------------------------------------------------------------
# Angular grid
# ---------------------------------------------------------------------------


def vertical_angles(definition: SensorDefinition) -> List[float]:
    """Elevation of each channel in degrees, channel 0 first."""
    channels = definition.channels
    v_step = definition.v_fov / max(1, channels - 1)
    angles: List[float] = []
    for i in range(channels):
        if channels == 1:
            angles.append(0.0)
        elif definition.beam_layout == BeamLayout.VERTICAL_EVEN:
            angles.append(-(definition.v_fov / 2.0) + i * v_step)
        else:
            angles.append(0.0)
    return angles


def horizontal_step_count(
    h_fov: float,
    full_turn_samples: int = _DEFAULT_CONFIG.full_turn_samples,
    step_deg: float = _DEFAULT_CONFIG.horizontal_step_deg,
) -> int:
    if h_fov == 360:
        return full_turn_samples
    return max(1, math.ceil(h_fov / step_deg))


def horizontal_angles(
    definition: SensorDefinition,
    config: EngineConfig = _DEFAULT_CONFIG,
) -> List[float]:
    """Azimuth of each horizontal step in degrees, starting at the left FOV edge."""
    n = horizontal_step_count(definition.h_fov, config.full_turn_samples, config.horizontal_step_deg)
    spacing = definition.h_fov / n
    return [-(definition.h_fov / 2.0) + j * spacing for j in range(n)]


# ---------------------------------------------------------------------------
# Rays
# ---------------------------------------------------------------------------


def local_direction(v_angle: float, h_angle: float) -> np.ndarray:
    """Sensor-frame direction for elevation v and azimuth h (radians). Zero angles give +Z."""
    cos_v = math.cos(v_angle)
    return np.array([math.sin(h_angle) * cos_v, math.sin(v_angle), math.cos(h_angle) * cos_v])


def ray_direction(v_angle: float, h_angle: float, quaternion: np.ndarray) -> np.ndarray:
    """World-frame unit direction for angles in radians and a sensor orientation."""
    return normalize(quat_rotate(quaternion, local_direction(v_angle, h_angle)))


def cast_ray(
    origin: np.ndarray,
    direction: np.ndarray,
    max_range: float,
    boxes: Sequence[CollisionBox],
    ground: Optional[GroundPlane] = None,
) -> RayHit:
    """Resolve the nearest hit within max_range; a miss resolves to max_range."""
    best: Optional[float] = None
    target: Optional[str] = None

    for box in boxes:
        t = box.intersect(origin, direction)
        if t is not None and t <= max_range and (best is None or t < best):
            best = t
            target = box.id

    if ground is not None:
        t = ground.intersect(origin, direction)
        if t is not None and t <= max_range and (best is None or t < best):
            best = t
            target = ground.id

    if best is None:
        return RayHit(distance=float(max_range))
    return RayHit(distance=best, target_id=target)


def scan_sensor(
    definition: SensorDefinition,
    instance: SensorInstance,
    boxes: Sequence[CollisionBox],
    ground: Optional[GroundPlane] = None,
    config: EngineConfig = _DEFAULT_CONFIG,
) -> List[Sample]:
    """Sample the full angular grid of one sensor, channel-major.

    Rays resolving below ``config.min_distance`` are dropped.
    """
    origin = instance.position.as_array()
    origin_t = instance.position.as_tuple()
    q = instance.quaternion()
    h_angles = horizontal_angles(definition, config)

    samples: List[Sample] = []
    for i, v_deg in enumerate(vertical_angles(definition)):
        v_rad = math.radians(v_deg)
        for j, h_deg in enumerate(h_angles):
            direction = ray_direction(v_rad, math.radians(h_deg), q)
            hit = cast_ray(origin, direction, definition.max_range, boxes, ground)
            if hit.distance < config.min_distance:
                continue
            samples.append(
                Sample(
                    sensor_id=instance.id,
                    channel=i,
                    step=j,
                    v_angle=v_deg,
                    h_angle=h_deg,
                    origin=origin_t,
                    direction=(float(direction[0]), float(direction[1]), float(direction[2])),
                    distance=hit.distance,
                    target_id=hit.target_id,
                )
            )
    return samples


def ranges_array(
    samples: Sequence[Sample],
    definition: SensorDefinition,
    config: EngineConfig = _DEFAULT_CONFIG,
) -> np.ndarray:
    """Arrange samples as a (channels, steps) range image; dropped rays are NaN."""
    n = horizontal_step_count(definition.h_fov, config.full_turn_samples, config.horizontal_step_deg)
    out = np.full((definition.channels, n), np.nan)
    for s in samples:
        out[s.channel, s.step] = s.distance
    return out


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class BeamEngine:
    """Per-frame beam recomputation for all placed sensors.

    The engine keeps no geometry between ticks: every ``update()`` pulls the
    current registries, rebuilds samples for visible sensors and hands them
    to the presenter, which replaces that sensor's beam visuals wholesale.
    """

    def __init__(
        self,
        world: World,
        obstacles: ObstacleRegistry,
        sensors: SensorRegistry,
        presenter: "BeamPresenter",
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.world = world
        self.obstacles = obstacles
        self.sensors = sensors
        self.presenter = presenter
        self.config = config if config is not None else EngineConfig()
        self._samples: Dict[str, List[Sample]] = {}
        self._states: Dict[str, BeamState] = {}
        self._tick = 0

    @property
    def tick_count(self) -> int:
        return self._tick

    def state(self, sensor_id: str) -> BeamState:
        return self._states.get(sensor_id, BeamState.NO_SAMPLES)

    def samples(self, sensor_id: str) -> List[Sample]:
        return list(self._samples.get(sensor_id, []))

    def all_samples(self) -> Dict[str, List[Sample]]:
        return {k: list(v) for k, v in self._samples.items()}

    def update(self) -> Dict[str, List[Sample]]:
        """Run one evaluation tick. Returns the samples produced per sensor id."""
        self._tick += 1
        boxes = self.obstacles.collision_boxes()
        ground = self.world.get_ground()
        instances = self.sensors.get_all_instances()

        produced: Dict[str, List[Sample]] = {}
        for instance in instances:
            if not instance.visible:
                self._clear(instance.id)
                continue
            definition = self.sensors.get_definition_by_id(instance.definition_id)
            if definition is None:
                self._clear(instance.id)
                continue
            try:
                samples = scan_sensor(definition, instance, boxes, ground, self.config)
                self.presenter.replace(instance.id, samples, definition.beam_layout)
            except Exception:  # noqa: BLE001
                logger.exception("Beam evaluation failed for sensor %s", instance.id)
                self._clear(instance.id)
                continue
            self._samples[instance.id] = samples
            self._states[instance.id] = BeamState.SAMPLED
            produced[instance.id] = samples

        current = {s.id for s in instances}
        stale = (set(self._samples) | set(self._states) | set(self.presenter.sensor_ids())) - current
        for sensor_id in sorted(stale):
            self._clear(sensor_id)
            self._states.pop(sensor_id, None)
        return produced

    def _clear(self, sensor_id: str) -> None:
        self.presenter.clear(sensor_id)
        self._samples.pop(sensor_id, None)
        self._states[sensor_id] = BeamState.NO_SAMPLES
