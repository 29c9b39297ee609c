import logging

from road_harmonizer.config import (
    SCENE_PATTERN,
    OUTPUT_FOLDER,
    get_active_params,
)
from road_harmonizer.errors import RoadHarmonizerError
from road_harmonizer.pipeline import harmonize_terrain
from road_harmonizer.utils.image_io import (
    ensure_output_dir,
    list_scenes,
    load_heightmap,
    load_scene,
    scene_id_from_path,
)
from road_harmonizer.visualization.save_outputs import save_all_outputs


def process_scene(path: str):
    """
    Runs the complete pipeline for one scene:
      1. Load the scene description and its heightmap
      2. Sample roads, estimate raw elevations
      3. Detect junctions
      4. Harmonize road elevations
      5. Build ownership grids and blend into the heightmap
      6. Save all outputs (heightmap, preview, junctions, ownership, delta)
    """
    scene_id = scene_id_from_path(path)
    print(f"\n=== Processing scene: {scene_id} ===")

    # ------------------------------
    # STEP 1: LOAD
    # ------------------------------
    scene, roads = load_scene(path)
    if not roads:
        print(f"[WARN] No roads in {scene_id}. Skipping.")
        return

    scale = float(scene.get("height_scale", 1.0))
    offset = float(scene.get("height_offset", 0.0))
    cell_size = float(scene.get("cell_size", 1.0))

    heightmap = load_heightmap(scene["heightmap"], scale, offset)
    original = heightmap.copy()

    # ------------------------------
    # STEPS 2-5: HARMONIZE
    # ------------------------------
    overrides = scene.get("params") or None
    result = harmonize_terrain(heightmap, cell_size, roads, params=overrides,
                               excluded_junctions=scene.get("excluded_junctions"))
    summary = result.summary

    for warning in result.network.warnings:
        print(f"[WARN] {warning.kind}: {warning.message}")
    if summary.junctions_excluded:
        print(f"[WARN] {summary.junctions_excluded} junction(s) left unharmonized by the scene")

    # ------------------------------
    # STEP 6: SAVE OUTPUTS
    # ------------------------------
    save_all_outputs(
        output_dir=OUTPUT_FOLDER,
        scene_id=scene_id,
        original=original,
        harmonized=heightmap,
        network=result.network,
        grids=result.grids,
        cell_size=cell_size,
        height_scale=scale,
        height_offset=offset,
        radius=get_active_params(overrides)["DETECTION_RADIUS"],
    )

    counts = ", ".join(f"{k}={v}" for k, v in sorted(summary.junctions.items())) or "none"
    print(f"[OK] Finished {scene_id}: {summary.roads_total - summary.roads_skipped}/{summary.roads_total} roads, "
          f"junctions {counts}, {summary.cells_modified} cells modified")


def main():
    """
    Main entry point:
      - Finds scene files
      - Processes each one independently
      - Saves output files
    """
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    ensure_output_dir(OUTPUT_FOLDER)

    scenes = list_scenes(SCENE_PATTERN)
    if not scenes:
        print(f"[ERROR] No scenes matched pattern: {SCENE_PATTERN}")
        return

    for path in scenes:
        try:
            process_scene(path)
        except (RoadHarmonizerError, ValueError, OSError) as err:
            print(f"[ERROR] {path}: {err}")

    print("\n=== All scenes processed ===")


if __name__ == "__main__":
    main()
