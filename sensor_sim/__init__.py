"""
Top-level package for the 3D range-sensor beam simulator.

Components:
- world: world bounds and the ground surface
- obstacles: axis-aligned box obstacle registry
- sensors: sensor catalog and placed sensor instances
- beams: per-frame ray sampling and intersection engine
- presentation: turns samples into beam cone visuals
- scene_graph: renderable node variants and their release contract
- scene_io: JSON save/load of a scene
- config: YAML configuration
- render: pygame-based top-down visualization
- geometry_utils: vectors, quaternions, ray intersection helpers
"""

from .world import World, WorldBounds, GroundPlane
from .obstacles import Obstacle, Dimensions, ObstacleRegistry
from .sensors import BeamLayout, Rotation, SensorDefinition, SensorInstance, SensorRegistry
from .beams import BeamEngine, BeamState, Sample, scan_sensor
from .presentation import BeamPresenter
from .scene_graph import SceneGraph
from .geometry_utils import Vec3

__all__ = [
    "World",
    "WorldBounds",
    "GroundPlane",
    "Obstacle",
    "Dimensions",
    "ObstacleRegistry",
    "BeamLayout",
    "Rotation",
    "SensorDefinition",
    "SensorInstance",
    "SensorRegistry",
    "BeamEngine",
    "BeamState",
    "Sample",
    "scan_sensor",
    "BeamPresenter",
    "SceneGraph",
    "Vec3",
]
