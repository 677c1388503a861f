"""
Pure3D inspector
Prints the chunk tree, model summary and posed skeleton of a P3D file
"""
import argparse
import logging
import sys

from pure3d.model import build_model
from pure3d.p3d_file import FormatError, load_p3d
from pure3d.pose import compute_pose


def print_summary(model_path, p3d_file, model):
    print(f"File: {model_path}")
    print("=" * 60)
    print(f"Chunks:     {len(p3d_file.chunks)}")
    print(f"Vertices:   {len(model.vertices)}")
    print(f"Indices:    {len(model.indices)}")
    print(f"Bones:      {len(model.bones)}")
    print(f"Sub-meshes: {len(model.sub_meshes)}")
    for sub_mesh in model.sub_meshes:
        texture = sub_mesh["texture_name"] or "-"
        print(f"  {sub_mesh['shader_name']} (Texture: {texture}) {sub_mesh['index_count']} indices")
    print(f"Animations: {len(model.animations)}")
    for animation in model.animations:
        print(
            f"  {animation.name}: {animation.frame_count} frames @ {animation.frame_rate:g} fps "
            f"({animation.length:.2f}s{', cyclic' if animation.cyclic else ''})"
        )


def print_pose(model, seconds):
    if not model.animations:
        print("No animation to pose, pass one with --animation")
        return
    animation = model.animations[0]
    skin = compute_pose(animation, animation.frame_at(seconds), model.bones)
    print(f"Pose of '{animation.name}' at {seconds:g}s:")
    for bone, matrix in zip(model.bones, skin):
        x, y, z = matrix[3, :3]
        print(f"  {bone.name}: ({x:.4f}, {y:.4f}, {z:.4f})")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Inspect Pure3D (P3D) model and animation files')
    parser.add_argument('input', help='P3D file to read')
    parser.add_argument('--animation', '-a', default=None,
                        help='P3D file with animations for the model\'s skeleton')
    parser.add_argument('--hierarchy', '-H', action='store_true',
                        help='Print the chunk tree instead of the summary')
    parser.add_argument('--pose', '-p', type=float, default=None, metavar='SECONDS',
                        help='Print the skinning translation of every bone at this time')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Show decoder debug output')

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        p3d_file = load_p3d(args.input)
        if args.hierarchy:
            print(p3d_file.format_hierarchy())
            return 0
        animation_file = load_p3d(args.animation) if args.animation else None
        model = build_model(p3d_file, animation_file)
    except (FormatError, OSError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    print_summary(args.input, p3d_file, model)
    if args.pose is not None:
        print()
        print_pose(model, args.pose)
    return 0


if __name__ == "__main__":
    sys.exit(main())
