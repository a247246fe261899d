from __future__ import annotations

import pytest

pygame = pytest.importorskip("pygame")

from sensor_sim.beams import BeamEngine
from sensor_sim.geometry_utils import Vec3
from sensor_sim.obstacles import Dimensions, Obstacle, ObstacleRegistry
from sensor_sim.presentation import BeamPresenter
from sensor_sim.render import PygameRenderer, beam_color
from sensor_sim.scene_graph import SceneGraph
from sensor_sim.sensors import SensorInstance, SensorRegistry
from sensor_sim.world import World, WorldBounds


def test_beam_color_endpoints() -> None:
    assert beam_color(0.0) == (255, 90, 90)
    assert beam_color(1.0) == (100, 200, 255)
    assert beam_color(5.0) == beam_color(1.0)


def test_draw_one_frame(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SDL_VIDEODRIVER", "dummy")
    scene = SceneGraph()
    world = World(scene=scene, bounds=WorldBounds(0.0, 30.0, 0.0, 5.0, 0.0, 30.0))
    obstacles = ObstacleRegistry(scene)
    obstacles.add(Obstacle("crate", Vec3(15.0, 0.5, 20.0), Dimensions(1.0, 1.0, 1.0)))
    obstacles.select("crate")
    sensors = SensorRegistry(scene)
    sensors.load_definitions(
        [{"id": "planar", "displayName": "Planar", "hFov": 270, "vFov": 0, "maxRange": 20,
          "channels": 1, "beamLayout": "singlePlane", "modelFile": ""}]
    )
    sensors.add_instance(SensorInstance("s1", "planar", Vec3(15.0, 0.5, 15.0)))
    presenter = BeamPresenter(scene)
    engine = BeamEngine(world, obstacles, sensors, presenter)
    engine.update()

    renderer = PygameRenderer(world, obstacles, sensors, presenter, window_width=200, window_height=200)
    try:
        renderer.draw(selected_sensor="s1", hud_lines=("tick=1",), fps=renderer.tick(30))
    finally:
        renderer.close()
