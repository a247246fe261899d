from __future__ import annotations

import math
from typing import Tuple

import numpy as np
import pytest

from sensor_sim import beams
from sensor_sim.beams import (
    BeamEngine,
    BeamState,
    cast_ray,
    horizontal_angles,
    horizontal_step_count,
    ranges_array,
    ray_direction,
    scan_sensor,
    vertical_angles,
)
from sensor_sim.geometry_utils import Vec3, quat_identity
from sensor_sim.obstacles import Dimensions, Obstacle, ObstacleRegistry
from sensor_sim.presentation import BeamPresenter
from sensor_sim.scene_graph import SceneGraph
from sensor_sim.sensors import BeamLayout, Rotation, SensorDefinition, SensorInstance, SensorRegistry
from sensor_sim.world import World, WorldBounds


def make_definition(**overrides) -> SensorDefinition:
    params = dict(
        id="ring",
        display_name="Ring",
        h_fov=360.0,
        v_fov=0.0,
        max_range=20.0,
        channels=1,
        beam_layout=BeamLayout.VERTICAL_EVEN,
    )
    params.update(overrides)
    return SensorDefinition(**params)


def make_setup(
    *definitions: SensorDefinition,
) -> Tuple[SceneGraph, World, ObstacleRegistry, SensorRegistry, BeamPresenter, BeamEngine]:
    scene = SceneGraph()
    world = World(scene=scene, bounds=WorldBounds(0.0, 30.0, 0.0, 5.0, 0.0, 30.0))
    obstacles = ObstacleRegistry(scene)
    sensors = SensorRegistry(scene)
    sensors.load_definitions([d.to_dict() for d in definitions] or [make_definition().to_dict()])
    presenter = BeamPresenter(scene)
    engine = BeamEngine(world, obstacles, sensors, presenter)
    return scene, world, obstacles, sensors, presenter, engine


# ---------------------------------------------------------------------------
# Angular grid
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("layout", [BeamLayout.VERTICAL_EVEN, BeamLayout.SINGLE_PLANE])
def test_single_channel_is_horizontal(layout: BeamLayout) -> None:
    assert vertical_angles(make_definition(channels=1, v_fov=30.0, beam_layout=layout)) == [0.0]


def test_vertical_even_spans_fov() -> None:
    angles = vertical_angles(make_definition(channels=16, v_fov=30.0))
    assert len(angles) == 16
    assert math.isclose(angles[0], -15.0)
    assert math.isclose(angles[-1], 15.0)
    steps = np.diff(angles)
    assert np.allclose(steps, 2.0)


def test_single_plane_collapses_channels() -> None:
    angles = vertical_angles(make_definition(channels=4, v_fov=20.0, beam_layout=BeamLayout.SINGLE_PLANE))
    assert angles == [0.0, 0.0, 0.0, 0.0]


def test_horizontal_step_counts() -> None:
    assert horizontal_step_count(360.0) == 72
    assert horizontal_step_count(180.0) == 36
    assert horizontal_step_count(270.0) == 54
    assert horizontal_step_count(7.0) == 2
    assert horizontal_step_count(1.0) == 1
    assert horizontal_step_count(0.0) == 1


def test_horizontal_angles_start_at_left_edge() -> None:
    angles = horizontal_angles(make_definition(h_fov=180.0))
    assert len(angles) == 36
    assert math.isclose(angles[0], -90.0)
    # One step short of the right edge
    assert math.isclose(angles[-1], 85.0)

    full = horizontal_angles(make_definition(h_fov=360.0))
    assert math.isclose(full[0], -180.0)
    assert full[36] == 0.0


def test_ray_direction_identity_is_forward() -> None:
    d = ray_direction(0.0, 0.0, quat_identity())
    assert np.allclose(d, (0.0, 0.0, 1.0))
    up = ray_direction(math.radians(30.0), 0.0, quat_identity())
    assert math.isclose(up[1], 0.5)
    assert math.isclose(float(np.linalg.norm(up)), 1.0)


# ---------------------------------------------------------------------------
# Intersection
# ---------------------------------------------------------------------------


def test_box_straight_ahead_resolves_to_front_face() -> None:
    scene, world, obstacles, sensors, presenter, engine = make_setup()
    obstacles.add(Obstacle("box", Vec3(5.0, 0.5, 5.0), Dimensions(1.0, 1.0, 1.0)))
    sensors.add_instance(SensorInstance("s1", "ring", Vec3(5.0, 0.5, 0.0)))

    produced = engine.update()

    ahead = [s for s in produced["s1"] if s.h_angle == 0.0]
    assert len(ahead) == 1
    assert math.isclose(ahead[0].distance, 4.5, rel_tol=1e-9)
    assert ahead[0].target_id == "box"


def test_miss_resolves_to_exactly_max_range() -> None:
    definition = make_definition()
    instance = SensorInstance("s1", "ring", Vec3(15.0, 1.0, 15.0))
    samples = scan_sensor(definition, instance, boxes=[], ground=None)
    assert len(samples) == 72
    assert all(s.distance == 20.0 for s in samples)
    assert not any(s.hit for s in samples)


def test_hit_beyond_max_range_is_ignored() -> None:
    obstacles = ObstacleRegistry()
    obstacles.add(Obstacle("far", Vec3(0.0, 0.0, 30.0), Dimensions(2.0, 2.0, 2.0)))
    hit = cast_ray(np.zeros(3), np.array([0.0, 0.0, 1.0]), 20.0, obstacles.collision_boxes())
    assert hit.distance == 20.0
    assert hit.target_id is None


def test_nearest_hit_wins_regardless_of_order() -> None:
    obstacles = ObstacleRegistry()
    obstacles.add(Obstacle("far", Vec3(0.0, 0.0, 10.0), Dimensions(1.0, 1.0, 1.0)))
    obstacles.add(Obstacle("near", Vec3(0.0, 0.0, 4.0), Dimensions(1.0, 1.0, 1.0)))
    hit = cast_ray(np.zeros(3), np.array([0.0, 0.0, 1.0]), 20.0, obstacles.collision_boxes())
    assert hit.target_id == "near"
    assert math.isclose(hit.distance, 3.5)


def test_equal_distance_tie_keeps_first_enumerated() -> None:
    obstacles = ObstacleRegistry()
    obstacles.add(Obstacle("first", Vec3(0.0, 0.0, 5.0), Dimensions(1.0, 1.0, 1.0)))
    obstacles.add(Obstacle("second", Vec3(0.0, 0.0, 5.5), Dimensions(2.0, 2.0, 2.0)))
    hit = cast_ray(np.zeros(3), np.array([0.0, 0.0, 1.0]), 20.0, obstacles.collision_boxes())
    assert math.isclose(hit.distance, 4.5)
    assert hit.target_id == "first"


def test_ground_distance_for_tilted_channels() -> None:
    definition = make_definition(channels=3, v_fov=30.0, max_range=20.0)
    scene, world, obstacles, sensors, presenter, engine = make_setup(definition)
    sensors.add_instance(SensorInstance("s1", "ring", Vec3(15.0, 2.0, 15.0)))

    samples = engine.update()["s1"]

    by_channel = {c: [s for s in samples if s.channel == c] for c in range(3)}
    expected = 2.0 / math.sin(math.radians(15.0))
    for s in by_channel[0]:
        assert math.isclose(s.distance, expected, rel_tol=1e-9)
        assert s.target_id == "ground"
    assert all(s.distance == 20.0 for s in by_channel[1])
    assert all(s.distance == 20.0 for s in by_channel[2])


def test_ground_outside_bounds_is_not_hit() -> None:
    definition = make_definition(channels=3, v_fov=30.0, max_range=20.0)
    instance = SensorInstance("s1", "ring", Vec3(-50.0, 2.0, -50.0))
    world = World(bounds=WorldBounds(0.0, 30.0, 0.0, 5.0, 0.0, 30.0))
    samples = scan_sensor(definition, instance, [], world.get_ground())
    assert all(s.distance == 20.0 for s in samples)


def test_degenerate_zero_length_rays_are_dropped() -> None:
    scene, world, obstacles, sensors, presenter, engine = make_setup()
    obstacles.add(Obstacle("box", Vec3(5.0, 0.5, 5.0), Dimensions(1.0, 1.0, 1.0)))
    # Sensor sits on the box's front face
    sensors.add_instance(SensorInstance("s1", "ring", Vec3(5.0, 0.5, 4.5)))

    samples = engine.update()["s1"]

    assert 0 < len(samples) < 72
    assert all(s.distance >= 0.01 for s in samples)
    assert not any(s.h_angle == 0.0 for s in samples)


def test_rotated_sensor_turns_its_grid() -> None:
    definition = make_definition(h_fov=10.0)
    instance = SensorInstance("s1", "ring", Vec3(0.0, 1.0, 0.0), Rotation(yaw=90.0))
    obstacles = ObstacleRegistry()
    obstacles.add(Obstacle("east", Vec3(6.0, 1.0, 0.0), Dimensions(2.0, 2.0, 20.0)))

    samples = scan_sensor(definition, instance, obstacles.collision_boxes())

    assert len(samples) == 2
    assert all(s.target_id == "east" for s in samples)
    assert all(s.direction[0] > 0.99 for s in samples)


def test_ranges_array_shape() -> None:
    definition = make_definition(channels=4, v_fov=20.0, h_fov=90.0)
    samples = scan_sensor(definition, SensorInstance("s1", "ring", Vec3(0.0, 1.0, 0.0)), [])
    image = ranges_array(samples, definition)
    assert image.shape == (4, 18)
    assert np.all(image == 20.0)


# ---------------------------------------------------------------------------
# Engine lifecycle
# ---------------------------------------------------------------------------


def test_update_is_idempotent() -> None:
    definition = make_definition(channels=8, v_fov=20.0)
    scene, world, obstacles, sensors, presenter, engine = make_setup(definition)
    obstacles.add(Obstacle("box", Vec3(12.0, 1.0, 18.0), Dimensions(2.0, 2.0, 2.0)))
    sensors.add_instance(SensorInstance("s1", "ring", Vec3(15.0, 1.5, 15.0), Rotation(pitch=5.0, yaw=30.0)))

    first = engine.update()
    second = engine.update()

    assert first == second
    assert engine.state("s1") == BeamState.SAMPLED


def test_repeated_updates_keep_one_beam_group_per_sensor() -> None:
    scene, world, obstacles, sensors, presenter, engine = make_setup()
    sensors.add_instance(SensorInstance("s1", "ring", Vec3(15.0, 1.0, 15.0)))

    for _ in range(5):
        engine.update()

    groups = [n for n in scene if n.name == "beams_s1"]
    assert len(groups) == 1
    assert presenter.live_resources("s1") == 72


def test_obstacle_edits_show_up_next_tick() -> None:
    scene, world, obstacles, sensors, presenter, engine = make_setup()
    sensors.add_instance(SensorInstance("s1", "ring", Vec3(5.0, 0.5, 0.0)))
    obstacles.add(Obstacle("box", Vec3(5.0, 0.5, 5.0), Dimensions(1.0, 1.0, 1.0)))
    engine.update()
    assert math.isclose(engine.samples("s1")[36].distance, 4.5)

    obstacles.update("box", new_dimensions=Dimensions(1.0, 1.0, 3.0))
    engine.update()
    assert math.isclose(engine.samples("s1")[36].distance, 3.5)

    obstacles.remove("box")
    engine.update()
    assert engine.samples("s1")[36].distance == 20.0


def test_hidden_sensor_releases_beams() -> None:
    scene, world, obstacles, sensors, presenter, engine = make_setup()
    sensors.add_instance(SensorInstance("s1", "ring", Vec3(15.0, 1.0, 15.0)))
    engine.update()
    group = presenter.beam_group("s1")
    assert group is not None and group.live_resources() == 72

    sensors.set_visibility("s1", False)
    engine.update()

    assert group.released
    assert presenter.beam_group("s1") is None
    assert presenter.live_resources("s1") == 0
    assert engine.state("s1") == BeamState.NO_SAMPLES
    assert engine.samples("s1") == []

    sensors.set_visibility("s1", True)
    engine.update()
    assert engine.state("s1") == BeamState.SAMPLED


def test_removed_sensor_leaves_no_resources() -> None:
    scene, world, obstacles, sensors, presenter, engine = make_setup()
    sensors.add_instance(SensorInstance("s1", "ring", Vec3(15.0, 1.0, 15.0)))
    sensors.add_instance(SensorInstance("s2", "ring", Vec3(10.0, 1.0, 10.0)))
    engine.update()

    sensors.remove_instance("s1")
    engine.update()

    assert scene.live_resources(owner="s1") == 0
    assert scene.owned_by("s1") == []
    assert "s1" not in presenter.sensor_ids()
    assert engine.state("s1") == BeamState.NO_SAMPLES
    assert presenter.live_resources("s2") == 72


def test_failing_sensor_is_isolated(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    scene, world, obstacles, sensors, presenter, engine = make_setup()
    sensors.add_instance(SensorInstance("bad", "ring", Vec3(15.0, 1.0, 15.0)))
    sensors.add_instance(SensorInstance("good", "ring", Vec3(10.0, 1.0, 10.0)))
    engine.update()

    original = beams.scan_sensor

    def flaky_scan(definition, instance, *args, **kwargs):
        if instance.id == "bad":
            raise RuntimeError("boom")
        return original(definition, instance, *args, **kwargs)

    monkeypatch.setattr(beams, "scan_sensor", flaky_scan)
    with caplog.at_level("ERROR", logger="sensor_sim.beams"):
        produced = engine.update()

    assert "bad" not in produced
    assert len(produced["good"]) == 72
    assert presenter.live_resources("bad") == 0
    assert engine.state("bad") == BeamState.NO_SAMPLES
    assert "Beam evaluation failed for sensor bad" in caplog.text


def test_empty_scene_has_no_ground_before_init() -> None:
    scene = SceneGraph()
    world = World(scene=scene)
    obstacles = ObstacleRegistry(scene)
    sensors = SensorRegistry(scene)
    sensors.load_definitions([make_definition(channels=3, v_fov=30.0).to_dict()])
    sensors.add_instance(SensorInstance("s1", "ring", Vec3(0.0, 2.0, 0.0)))
    engine = BeamEngine(world, obstacles, sensors, BeamPresenter(scene))

    samples = engine.update()["s1"]

    assert all(s.distance == 20.0 for s in samples)


def test_hiding_beams_before_next_tick() -> None:
    scene, world, obstacles, sensors, presenter, engine = make_setup()
    sensors.add_instance(SensorInstance("s1", "ring", Vec3(15.0, 1.0, 15.0)))
    engine.update()
    group = presenter.beam_group("s1")

    sensors.set_visibility("s1", False)
    presenter.set_visibility("s1", False)

    assert group is not None and not group.visible and not group.released
    engine.update()
    assert group.released
    assert presenter.beam_group("s1") is None
