from __future__ import annotations

from typing import Dict, List, Optional, Sequence
import math

import numpy as np

from .beams import Sample
from .config import EngineConfig
from .geometry_utils import quat_from_unit_vectors
from .scene_graph import ConeNode, GroupNode, SceneGraph
from .sensors import BeamLayout


_CONE_AXIS = (0.0, 1.0, 0.0)


class BeamPresenter:
    """Turns samples into cone volumes, one group per sensor.

    ``replace`` always releases the sensor's previous group before building
    the new one, so at most one beam group per sensor id is ever live.
    """

    def __init__(self, scene: SceneGraph, config: Optional[EngineConfig] = None) -> None:
        self.scene = scene
        self.config = config if config is not None else EngineConfig()
        self._groups: Dict[str, GroupNode] = {}

    def replace(self, sensor_id: str, samples: Sequence[Sample], layout: BeamLayout) -> GroupNode:
        self.clear(sensor_id)

        group = GroupNode(name=f"beams_{sensor_id}", owner=sensor_id)
        spread_deg = (
            self.config.cone_spread_single_plane_deg
            if layout == BeamLayout.SINGLE_PLANE
            else self.config.cone_spread_default_deg
        )
        tan_spread = math.tan(math.radians(spread_deg))

        for s in samples:
            direction = np.asarray(s.direction)
            height = s.distance
            center = np.asarray(s.origin) + direction * (height / 2.0)
            group.add(
                ConeNode(
                    name=f"beam_{s.channel}_{s.step}",
                    owner=sensor_id,
                    radius=max(self.config.cone_min_radius, height * tan_spread),
                    height=height,
                    radial_segments=self.config.cone_radial_segments,
                    position=center,
                    quaternion=quat_from_unit_vectors(_CONE_AXIS, direction),
                    color=(255, 0, 0),
                )
            )

        self.scene.add(group)
        self._groups[sensor_id] = group
        return group

    def clear(self, sensor_id: str) -> None:
        group = self._groups.pop(sensor_id, None)
        if group is not None:
            self.scene.dispose(group)

    def clear_all(self) -> None:
        for sensor_id in list(self._groups):
            self.clear(sensor_id)

    def set_visibility(self, sensor_id: str, visible: bool) -> None:
        group = self._groups.get(sensor_id)
        if group is not None:
            group.visible = visible

    def sensor_ids(self) -> List[str]:
        return list(self._groups)

    def beam_group(self, sensor_id: str) -> Optional[GroupNode]:
        return self._groups.get(sensor_id)

    def live_resources(self, sensor_id: str) -> int:
        group = self._groups.get(sensor_id)
        return group.live_resources() if group is not None else 0
