import argparse
import asyncio
import json
import logging

import cv2
import dotenv

from .utils import read_image_any_path, save_image_any_path
from . import analysis, enhancement, live_pipeline, segmentation, workflow
from .config import EnhancementParams, ProcessingParams, ServiceConfig, load_params
from .errors import ColoringVisionError, LiveLoopHalted
from .prompts import CONVERT_PROMPT, IMAGE_GENERATION_PROMPT
from .services import GeminiClient
from .sources import VideoCaptureSource


def _params_from_args(args: argparse.Namespace) -> ProcessingParams:
    params = load_params(args.params) if args.params else ProcessingParams()
    changes = {}
    for flag, field in (
        ("bilateral", "use_bilateral_filter"),
        ("median", "use_median_blur"),
        ("gaussian", "use_gaussian_blur"),
        ("close", "use_morph_close"),
        ("erode", "use_erosion"),
        ("dilate", "use_dilation"),
    ):
        if getattr(args, flag, False):
            changes[field] = True
    for flag, field in (
        ("block_size", "threshold_block_size"),
        ("c", "threshold_c"),
        ("kernel_size", "kernel_size"),
    ):
        value = getattr(args, flag, None)
        if value is not None:
            changes[field] = value
    return params.updated(**changes) if changes else params


def _save(path, image) -> int:
    if not save_image_any_path(path, image):
        print(f"Failed to save: {path}")
        return 3
    print(f"Saved: {path}")
    return 0


def cmd_lineart(args: argparse.Namespace) -> int:
    img = read_image_any_path(args.input)
    if img is None:
        print(f"Failed to read: {args.input}")
        return 2
    try:
        out = live_pipeline.run_live_pipeline(img, _params_from_args(args))
    except ColoringVisionError as exc:
        print(f"Processing failed: {exc}")
        return 4
    return _save(args.output, out)


def cmd_stream(args: argparse.Namespace) -> int:
    try:
        source = VideoCaptureSource(args.source)
    except ColoringVisionError as exc:
        print(f"Failed to open: {args.source} ({exc})")
        return 2

    writer = None

    def sink(line_art, frame):
        nonlocal writer
        if writer is None:
            h, w = line_art.shape[:2]
            fourcc = cv2.VideoWriter_fourcc(*"mp4v")
            writer = cv2.VideoWriter(args.output, fourcc, source.fps or 30.0, (w, h), False)
        writer.write(line_art)

    loop = live_pipeline.LiveLoop(source, sink, _params_from_args(args))
    try:
        count = loop.run(max_frames=args.max_frames)
    except LiveLoopHalted as exc:
        print(f"Stream halted: {exc}")
        return 4
    finally:
        source.close()
        if writer is not None:
            writer.release()
    print(f"Processed {count} frame(s) into: {args.output}")
    return 0


def cmd_segment(args: argparse.Namespace) -> int:
    img = read_image_any_path(args.input)
    if img is None:
        print(f"Failed to read: {args.input}")
        return 2
    try:
        out = segmentation.remove_background(img)
    except ColoringVisionError as exc:
        print(f"Segmentation failed: {exc}")
        return 4
    return _save(args.output, out)


def cmd_enhance(args: argparse.Namespace) -> int:
    img = read_image_any_path(args.input)
    if img is None:
        print(f"Failed to read: {args.input}")
        return 2
    params = EnhancementParams()
    img = workflow.fit_within(img, params.max_size)
    try:
        out = asyncio.run(
            enhancement.run_adaptive_enhancement(
                img, args.keywords, args.remove_background, params, timeout=args.timeout
            )
        )
    except ColoringVisionError as exc:
        print(f"Processing failed: {exc}")
        return 4
    code = _save(args.output, out)
    if code == 0 and args.stats:
        print(json.dumps(analysis.summarize(out), indent=2))
    return code


def _client() -> GeminiClient:
    dotenv.load_dotenv()
    return GeminiClient(ServiceConfig.from_env())


def cmd_retouch(args: argparse.Namespace) -> int:
    img = read_image_any_path(args.input)
    if img is None:
        print(f"Failed to read: {args.input}")
        return 2
    kwargs = {"remove_background": args.remove_background}
    if args.prompt:
        kwargs["instruction"] = args.prompt
    try:
        result = asyncio.run(workflow.ai_retouch(img, _client(), **kwargs))
    except ColoringVisionError as exc:
        print(f"Retouch error: {exc}")
        return 4
    print(f"AI suggests: {result.suggestion}")
    return _save(args.output, result.image)


CONVERT_STYLES = {"coloring-page": IMAGE_GENERATION_PROMPT, "wireframe": CONVERT_PROMPT}


def cmd_convert(args: argparse.Namespace) -> int:
    img = read_image_any_path(args.input)
    if img is None:
        print(f"Failed to read: {args.input}")
        return 2
    try:
        out = workflow.ai_convert(img, _client(), CONVERT_STYLES[args.style])
    except ColoringVisionError as exc:
        print(f"Convert error: {exc}")
        return 4
    return _save(args.output, out)


def _add_live_options(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("--params", help="JSON file with processing parameters")
    sp.add_argument("--bilateral", action="store_true", help="Enable bilateral filter")
    sp.add_argument("--median", action="store_true", help="Enable median blur")
    sp.add_argument("--gaussian", action="store_true", help="Enable gaussian blur")
    sp.add_argument("--close", action="store_true", help="Enable morphological closing")
    sp.add_argument("--erode", action="store_true", help="Enable erosion")
    sp.add_argument("--dilate", action="store_true", help="Enable dilation")
    sp.add_argument("--block-size", type=int, help="Adaptive threshold block size")
    sp.add_argument("--c", type=int, help="Adaptive threshold constant")
    sp.add_argument("--kernel-size", type=int, help="Morphology kernel size")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="coloring-vision", description="Turn photos and video into coloring pages")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("lineart", help="Run the live line-art pipeline on one image")
    sp.add_argument("--input", required=True, help="Input image path")
    sp.add_argument("--output", required=True, help="Output image path")
    _add_live_options(sp)
    sp.set_defaults(func=cmd_lineart)

    sp = sub.add_parser("stream", help="Run the live pipeline on a camera or video file")
    sp.add_argument("--source", required=True, help="Camera index or video path")
    sp.add_argument("--output", required=True, help="Output video path")
    sp.add_argument("--max-frames", type=int, default=None)
    _add_live_options(sp)
    sp.set_defaults(func=cmd_stream)

    sp = sub.add_parser("segment", help="Flatten the background to white")
    sp.add_argument("--input", required=True)
    sp.add_argument("--output", required=True)
    sp.set_defaults(func=cmd_segment)

    sp = sub.add_parser("enhance", help="Keyword-driven line art for a still image")
    sp.add_argument("--input", required=True)
    sp.add_argument("--output", required=True)
    sp.add_argument("--keywords", default="", help="Comma-separated enhancement keywords")
    sp.add_argument("--remove-background", action="store_true")
    sp.add_argument("--timeout", type=float, default=None, help="Seconds before giving up")
    sp.add_argument("--stats", action="store_true", help="Print stroke statistics")
    sp.set_defaults(func=cmd_enhance)

    sp = sub.add_parser("retouch", help="AI Retouch: Gemini suggestions + adaptive pipeline")
    sp.add_argument("--input", required=True)
    sp.add_argument("--output", required=True)
    sp.add_argument("--remove-background", action="store_true")
    sp.add_argument("--prompt", default=None, help="Override the analysis prompt")
    sp.set_defaults(func=cmd_retouch)

    sp = sub.add_parser("convert", help="AI Convert: Gemini image generation")
    sp.add_argument("--input", required=True)
    sp.add_argument("--output", required=True)
    sp.add_argument("--style", choices=sorted(CONVERT_STYLES), default="coloring-page", help="Generation prompt preset")
    sp.set_defaults(func=cmd_convert)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
