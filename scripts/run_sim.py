from __future__ import annotations

import argparse
import itertools
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Ensure project root is on path when running this script directly
_script_dir = Path(__file__).resolve().parent
_project_root = _script_dir.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pygame

from sensor_sim.beams import BeamEngine
from sensor_sim.config import load_config
from sensor_sim.obstacles import Dimensions, Obstacle, ObstacleRegistry
from sensor_sim.presentation import BeamPresenter
from sensor_sim.render import PygameRenderer
from sensor_sim.scene_graph import SceneGraph
from sensor_sim.scene_io import load_scene, save_scene
from sensor_sim.sensors import Rotation, SensorInstance, SensorRegistry
from sensor_sim.geometry_utils import Vec3
from sensor_sim.world import World
from telemetry.logger import ScanTelemetryLogger


MOVE_STEP = 0.5
TURN_STEP = 15.0

HELP = """Keyboard controls:
  TAB          cycle selected sensor       N   place a sensor (next catalog entry)
  arrows       move selected sensor        X   remove selected sensor
  PGUP/PGDN    raise/lower sensor          V   toggle sensor visibility
  Q/E          yaw left/right              R/F pitch up/down
  O            add obstacle                B   cycle selected obstacle
  I/J/K/L      move selected obstacle      +/- grow/shrink selected obstacle
  DEL          remove selected obstacle    S   save scene
  ESC          quit"""


def _cycle(ids: List[str], current: Optional[str]) -> Optional[str]:
    if not ids:
        return None
    if current not in ids:
        return ids[0]
    return ids[(ids.index(current) + 1) % len(ids)]


def main() -> None:
    parser = argparse.ArgumentParser(description="Interactive 3D sensor beam simulator (top-down view).")
    parser.add_argument(
        "--config",
        type=str,
        default="configs/sim.yaml",
        help="Path to sim YAML config.",
    )
    parser.add_argument(
        "--scene",
        type=str,
        default=None,
        help="Scene JSON to load (overrides assets.default_scene).",
    )
    args = parser.parse_args()

    cfg = load_config(args.config)
    logging.basicConfig(
        level=getattr(logging, cfg.logging.level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    scene = SceneGraph()
    world = World(scene=scene, bounds=cfg.world.bounds())
    obstacles = ObstacleRegistry(scene)
    sensors = SensorRegistry(scene, asset_root=cfg.assets.asset_root)
    sensors.load_definitions(cfg.assets.sensor_catalog)

    scene_path = args.scene or cfg.assets.default_scene
    if scene_path:
        load_scene(scene_path, world, obstacles, sensors)

    presenter = BeamPresenter(scene, cfg.engine)
    engine = BeamEngine(world, obstacles, sensors, presenter, cfg.engine)
    renderer = PygameRenderer(
        world=world,
        obstacles=obstacles,
        sensors=sensors,
        presenter=presenter,
        window_width=cfg.render.window_width,
        window_height=cfg.render.window_height,
        show_beams=cfg.render.show_beams,
        grid_step_m=cfg.render.grid_step_m,
    )
    telemetry = ScanTelemetryLogger(cfg.logging.telemetry_path) if cfg.logging.telemetry_path else None

    sensor_counter = itertools.count(len(sensors) + 1)
    obstacle_counter = itertools.count(len(obstacles) + 1)
    definition_cursor = 0
    selected_sensor = _cycle([s.id for s in sensors.get_all_instances()], None)

    print(HELP)

    running = True
    while running:
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                running = False
                continue
            if event.type != pygame.KEYDOWN:
                continue

            key = event.key
            inst = sensors.get_instance_by_id(selected_sensor) if selected_sensor else None
            obs_id = obstacles.selected_id
            obs = obstacles.get_by_id(obs_id) if obs_id else None

            if key == pygame.K_ESCAPE:
                running = False
            elif key == pygame.K_TAB:
                selected_sensor = _cycle([s.id for s in sensors.get_all_instances()], selected_sensor)
            elif key == pygame.K_n:
                definitions = sensors.get_definitions()
                if definitions:
                    definition = definitions[definition_cursor % len(definitions)]
                    definition_cursor += 1
                    center = world.get_bounds().center if world.is_initialized else (0.0, 0.0, 0.0)
                    placed = sensors.add_instance(
                        SensorInstance(
                            id=f"sensor_{next(sensor_counter)}",
                            definition_id=definition.id,
                            position=Vec3(float(center[0]), 1.0, float(center[2])),
                        )
                    )
                    if placed is not None:
                        selected_sensor = placed.id
            elif key == pygame.K_x and inst is not None:
                sensors.remove_instance(inst.id)
                selected_sensor = _cycle([s.id for s in sensors.get_all_instances()], None)
            elif key == pygame.K_v and inst is not None:
                visible = not inst.visible
                sensors.set_visibility(inst.id, visible)
                # Hide beams this frame; the next engine tick releases them
                presenter.set_visibility(inst.id, visible)
            elif inst is not None and key in (pygame.K_LEFT, pygame.K_RIGHT, pygame.K_UP, pygame.K_DOWN,
                                             pygame.K_PAGEUP, pygame.K_PAGEDOWN):
                p = inst.position
                dx = {pygame.K_LEFT: -MOVE_STEP, pygame.K_RIGHT: MOVE_STEP}.get(key, 0.0)
                dz = {pygame.K_UP: -MOVE_STEP, pygame.K_DOWN: MOVE_STEP}.get(key, 0.0)
                dy = {pygame.K_PAGEUP: MOVE_STEP / 5.0, pygame.K_PAGEDOWN: -MOVE_STEP / 5.0}.get(key, 0.0)
                sensors.update_instance(inst.id, new_position=Vec3(p.x + dx, p.y + dy, p.z + dz))
            elif inst is not None and key in (pygame.K_q, pygame.K_e, pygame.K_r, pygame.K_f):
                r = inst.rotation
                dyaw = {pygame.K_q: TURN_STEP, pygame.K_e: -TURN_STEP}.get(key, 0.0)
                dpitch = {pygame.K_r: -TURN_STEP / 3.0, pygame.K_f: TURN_STEP / 3.0}.get(key, 0.0)
                sensors.update_instance(
                    inst.id, new_rotation=Rotation(roll=r.roll, pitch=r.pitch + dpitch, yaw=r.yaw + dyaw)
                )
            elif key == pygame.K_o:
                center = world.get_bounds().center if world.is_initialized else (0.0, 0.0, 0.0)
                new_obs = obstacles.add(
                    Obstacle(
                        id=f"obstacle_{next(obstacle_counter)}",
                        position=Vec3(float(center[0]), float(center[1]) + 0.5, float(center[2]) + 3.0),
                        dimensions=Dimensions(1.0, 1.0, 1.0),
                    )
                )
                obstacles.select(new_obs.id)
            elif key == pygame.K_b:
                next_id = _cycle([o.id for o in obstacles.get_all()], obs_id)
                if next_id is not None:
                    obstacles.select(next_id)
            elif key == pygame.K_DELETE and obs is not None:
                obstacles.remove(obs.id)
            elif obs is not None and key in (pygame.K_i, pygame.K_j, pygame.K_k, pygame.K_l):
                p = obs.position
                dx = {pygame.K_j: -MOVE_STEP, pygame.K_l: MOVE_STEP}.get(key, 0.0)
                dz = {pygame.K_i: -MOVE_STEP, pygame.K_k: MOVE_STEP}.get(key, 0.0)
                obstacles.update(obs.id, new_position=Vec3(p.x + dx, p.y, p.z + dz))
            elif obs is not None and key in (pygame.K_PLUS, pygame.K_EQUALS, pygame.K_MINUS):
                factor = 0.8 if key == pygame.K_MINUS else 1.25
                d = obs.dimensions
                obstacles.update(
                    obs.id,
                    new_dimensions=Dimensions(d.width * factor, d.height * factor, d.depth * factor),
                )
            elif key == pygame.K_s:
                save_scene(cfg.assets.scene_output, world, obstacles, sensors)
                print(f"Saved scene to {cfg.assets.scene_output}")

        produced = engine.update()
        if telemetry is not None and engine.tick_count % max(1, cfg.logging.telemetry_every) == 0:
            for sensor_id, samples in produced.items():
                telemetry.log_scan(engine.tick_count, sensor_id, samples)

        fps = renderer.tick(cfg.render.fps)
        hud = (
            f"tick={engine.tick_count}  sensors={len(sensors)}  obstacles={len(obstacles)}",
            f"sensor={selected_sensor or '-'}  obstacle={obstacles.selected_id or '-'}",
        )
        renderer.draw(selected_sensor=selected_sensor, hud_lines=hud, fps=fps)

    if telemetry is not None:
        telemetry.close()
    renderer.close()


if __name__ == "__main__":
    main()
