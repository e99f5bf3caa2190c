#!/usr/bin/env python3
"""
VOIDFX -- Raster Dither & Halftone Engine
CLI entry point. Also importable as a library.

Usage:
    python voidfx.py process in.png out.png --params dither_v1.algorithm=bayer4
    python voidfx.py export in.png out.png --params halftone_v1.enabled=true --yes
    python voidfx.py gif frames/ out.gif --fps 12
    python voidfx.py list-effects
    python voidfx.py info dither_v1
    python voidfx.py capabilities
"""

import argparse
import asyncio
import logging
import os
import sys

# Add project root to path so imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core import accel
from core.config import load_config
from core.dispatcher import Dispatcher
from core.export import ExportCancelled, ExportError, export_gif, export_still
from core.image_io import list_frames, load_image, save_image
from core.params import ParameterState
from core.processor import Processor
from core.safety import SafetyError
from effects import EFFECTS, PIPELINE, list_effects

__version__ = "0.1.0"

logger = logging.getLogger("voidfx")


def _parse_param_value(val: str):
    """Safely parse a CLI parameter value (bool, number, or string)."""
    lowered = val.lower().strip()
    if lowered in ("true", "on", "yes"):
        return True
    if lowered in ("false", "off", "no"):
        return False
    if lowered in ("nan", "inf", "-inf", "+inf", "infinity", "-infinity"):
        raise ValueError(f"NaN/Inf not allowed: {val}")
    if val.startswith("#"):
        return val

    try:
        return int(val)
    except ValueError:
        pass
    try:
        return float(val)
    except ValueError:
        return val  # Keep as string


def parse_params(pairs) -> dict:
    """['dither_v1.algorithm=bayer4', ...] -> {'dither_v1': {'algorithm': 'bayer4'}}"""
    overrides = {}
    for pair in pairs or []:
        if "=" not in pair or "." not in pair.split("=", 1)[0]:
            raise ValueError(f"Expected effect.key=value, got: {pair}")
        target, raw = pair.split("=", 1)
        effect_id, key = target.split(".", 1)
        overrides.setdefault(effect_id, {})[key] = _parse_param_value(raw)
    return overrides


def _make_processor(args) -> Processor:
    config = load_config()
    if getattr(args, "device", None):
        config = config.model_copy(update={"accel_device": args.device})
    processor = Processor(config)
    for effect_id, params in parse_params(getattr(args, "params", None)).items():
        for key, value in params.items():
            processor.params.update(effect_id, key, value)
    return processor


def cmd_process(args):
    """Run the pipeline over one image at native size."""
    overrides = parse_params(args.params)
    state = ParameterState(PIPELINE, overrides)
    config = load_config()
    device = args.device or config.accel_device
    dispatcher = Dispatcher(accel.probe(device))
    source = load_image(args.input)
    raster, report = dispatcher.render(source, state.snapshot(), args.scale_factor)
    save_image(args.output, raster)
    paths = ", ".join(f"{eid}={path}" for eid, path in report.decisions)
    print(f"  Wrote {args.output} ({raster.shape[1]}x{raster.shape[0]}) [{paths}]")


def cmd_export(args):
    """Full-resolution export with preview-equivalent scaling."""
    processor = _make_processor(args)
    processor.load_image(args.input)

    def confirm(width, height, pixels):
        if args.yes:
            return True
        print(f"  Export is {width}x{height} ({pixels:,} px). Re-run with --yes to confirm.")
        return False

    try:
        raster = export_still(processor, full_res=True, scale=args.scale, confirm=confirm)
    except ExportCancelled as e:
        print(f"  Cancelled: {e}")
        return
    save_image(args.output, raster)
    print(f"  Exported {args.output} ({raster.shape[1]}x{raster.shape[0]})")


def cmd_gif(args):
    """Render a directory of frames into an animated GIF."""
    processor = _make_processor(args)
    frames = list_frames(args.frames)
    if not frames:
        print(f"  No frames found in {args.frames}")
        return

    def progress(done, total):
        print(f"  {done}/{total} frames", end="\r")

    try:
        path = asyncio.run(export_gif(processor, frames, args.output, fps=args.fps,
                                      full_res=args.full_res, progress=progress))
    except ExportCancelled as e:
        print(f"\n  Cancelled: {e}")
        return
    print(f"\n  Wrote {path} ({len(frames)} frames)")


def cmd_list_effects(args):
    """List all effects in pipeline order."""
    effects = list_effects(category=getattr(args, "category", None))
    print(f"\n  Pipeline ({len(effects)} stages)")
    print(f"  {'-' * 50}")
    for i, e in enumerate(effects, 1):
        print(f"    {i}. {e['name']:16s} {e['title']:20s} {e['description']}")
    print()


def cmd_info(args):
    """Show detailed info about a single effect."""
    name = args.effect_name
    if name not in EFFECTS:
        matches = [n for n in EFFECTS if name in n]
        if matches:
            print(f"Unknown effect: {name}. Did you mean: {', '.join(matches)}?")
        else:
            print(f"Unknown effect: {name}. Use 'voidfx list-effects' to see all.")
        return

    effect = EFFECTS[name]
    print(f"\n  {name}")
    print(f"  {'-' * 40}")
    print(f"  Name:        {effect.name}")
    print(f"  Category:    {effect.category.upper()}")
    print(f"  Description: {effect.description}")
    print(f"\n  Parameters:")
    for k, v in effect.default_params().items():
        print(f"    {k:20s} = {v}")
    print(f"\n  Example:")
    print(f"    voidfx process in.png out.png --params {name}.enabled=true")
    print()


def cmd_capabilities(args):
    """Probe the accelerated path and report what this session would use."""
    device = args.device or load_config().accel_device
    info = accel.describe(accel.probe(device))
    print(f"\n  Accelerated path: {'available' if info['available'] else 'unavailable'}")
    if info["available"]:
        print(f"  Device:           {info['device']}")
        print(f"  Precision:        {info['dtype']} ({'exact' if info['exact'] else 'approximate'})")
    print()


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="voidfx",
        description="VOIDFX -- Raster Dither & Halftone Engine",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="-v for info, -vv for per-render debug logging")
    sub = parser.add_subparsers(dest="command")

    device_help = "Accelerator: auto (CUDA/MPS), cpu (torch CPU) or off"

    p = sub.add_parser("process", help="Run the pipeline over an image at native size")
    p.add_argument("input", help="Input image")
    p.add_argument("output", help="Output image")
    p.add_argument("--params", nargs="*", help="Params as effect.key=value pairs")
    p.add_argument("--scale-factor", type=float, default=1.0,
                   help="Multiplier for pixel-space constants")
    p.add_argument("--device", choices=accel.DEVICE_MODES, help=device_help)

    p = sub.add_parser("export", help="Full-resolution export matching the preview look")
    p.add_argument("input", help="Input image")
    p.add_argument("output", help="Output image")
    p.add_argument("--params", nargs="*", help="Params as effect.key=value pairs")
    p.add_argument("--scale", type=float, default=None, help="Output scale relative to source")
    p.add_argument("--yes", action="store_true", help="Confirm very large exports")
    p.add_argument("--device", choices=accel.DEVICE_MODES, help=device_help)

    p = sub.add_parser("gif", help="Render a frame directory into an animated GIF")
    p.add_argument("frames", help="Directory of frame images")
    p.add_argument("output", help="Output .gif")
    p.add_argument("--params", nargs="*", help="Params as effect.key=value pairs")
    p.add_argument("--fps", type=int, default=None, help="Frames per second")
    p.add_argument("--full-res", action="store_true", help="Render frames at native size")
    p.add_argument("--device", choices=accel.DEVICE_MODES, help=device_help)

    p = sub.add_parser("list-effects", help="List pipeline stages")
    p.add_argument("--category", help="Filter by category")

    p = sub.add_parser("info", help="Show detailed info about an effect")
    p.add_argument("effect_name", help="Effect id")

    p = sub.add_parser("capabilities", help="Report accelerated-path status")
    p.add_argument("--device", choices=accel.DEVICE_MODES, help=device_help)

    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    commands = {
        "process": cmd_process,
        "export": cmd_export,
        "gif": cmd_gif,
        "list-effects": cmd_list_effects,
        "info": cmd_info,
        "capabilities": cmd_capabilities,
    }

    if args.command in commands:
        try:
            commands[args.command](args)
        except (SafetyError, ExportError, ValueError, FileNotFoundError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
