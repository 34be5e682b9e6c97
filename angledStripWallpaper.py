#!/usr/bin/env python3
"""
Angled Strip Wallpaper
----------------------
Combines several wallpapers into one image made of angled, side-by-side strips.
Every source is resized to the full output resolution first and then only masked,
so no strip is ever warped or sheared by the angle.

Features:
- Any slant angle (0 = vertical strips, negative values lean the other way)
- Broken, missing or unreadable images are skipped with a warning
- Parallel loading and compositing for large wallpapers
- Optional discovery of every user's stylix wallpaper (~/.config/stylix/image)

Usage:
    python3 angledStripWallpaper.py ./output.png 1920x1080 20 ./img1.jpg ./img2.jpg
    python3 angledStripWallpaper.py /etc/nixos/wallpaper.png 1920x1080 20 --from-users
"""

import argparse
import concurrent.futures
import math
import os
import re
import sys
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

# === SETTINGS ===
RESAMPLE_FILTER = Image.LANCZOS     # Must not be NEAREST
MAX_TANGENT = 1e6                   # Clamp for tan(angle) around 90° / 270°
MAX_WORKERS = None                  # None = let concurrent.futures pick
ROWS_PER_BAND = 64                  # Smallest row band handed to one compositing thread
JPEG_QUALITY = 95                   # Used for .jpg/.jpeg/.webp output
USER_WALLPAPER = ".config/stylix/image"
MIN_USER_UID = 1000                 # Skip system accounts
# =================


class Resolution(NamedTuple):
    width: int
    height: int


class ArgumentError(ValueError):
    """Raised for a malformed resolution or angle on the command line."""


class IngestError(Exception):
    """A single input image could not be turned into a SourceImage."""

    def __init__(self, path, stage: str, reason):
        self.path = str(path)
        self.stage = stage
        self.reason = str(reason)
        super().__init__(self.message)

    @property
    def message(self) -> str:
        article = "an" if self.stage[0].lower() in "aeiou" else "a"
        return f"Skipping {self.path} due to {article} {self.stage} error: {self.reason}"


# === ARGUMENT HELPERS ===
def parse_resolution(text: str) -> Resolution:
    """Parse '<width>x<height>' into a Resolution with both sides > 0."""
    parts = text.split("x")
    if len(parts) != 2:
        raise ArgumentError("Resolution must be in the format <width>x<height>")

    # plain ASCII digits only: int() would also take " 100", "1_920" or non-ASCII digits
    if not (parts[0].isascii() and parts[0].isdigit()):
        raise ArgumentError("Invalid width provided.")
    width = int(parts[0])
    if width <= 0:
        raise ArgumentError("Invalid width provided. Width must be a positive integer.")

    if not (parts[1].isascii() and parts[1].isdigit()):
        raise ArgumentError("Invalid height provided.")
    height = int(parts[1])
    if height <= 0:
        raise ArgumentError("Invalid height provided. Height must be a positive integer.")

    return Resolution(width, height)


def parse_angle(text: str) -> float:
    try:
        angle = float(text)
    except ValueError:
        raise ArgumentError("Invalid angle provided. Must be a number.") from None
    if not math.isfinite(angle):
        raise ArgumentError("Invalid angle provided. Must be a finite number.")
    return angle


# === IMAGE INGESTION ===
def load_source_image(path, resolution: Resolution) -> np.ndarray:
    """
    Open, decode and RGB-convert one image, then resize it to the full target resolution.
    Alpha is dropped (the underlying colour is kept). Raises IngestError naming the failed stage.
    """
    size = (resolution.width, resolution.height)
    try:
        fp = open(path, "rb")
    except OSError as e:
        raise IngestError(path, "IO", e) from e

    with fp:
        try:
            img = Image.open(fp)
        except UnidentifiedImageError as e:
            raise IngestError(path, "format", e) from e
        except Image.DecompressionBombError as e:
            raise IngestError(path, "decode", e) from e
        except OSError as e:
            raise IngestError(path, "IO", e) from e
        except Exception as e:
            # plugins can raise ValueError, IndexError, NotImplementedError... on a broken header
            raise IngestError(path, "format", e) from e

        with img:
            try:
                rgb = img.convert("RGB")
                if rgb.size != size:
                    rgb = rgb.resize(size, RESAMPLE_FILTER)
            except Exception as e:
                raise IngestError(path, "decode", e) from e

    return np.array(rgb, dtype=np.uint8)


def _ingest_task(task: Tuple[str, Resolution]):
    """Worker entry point: returns (image, None) or (None, warning) so nothing raises across processes."""
    path, resolution = task
    try:
        return load_source_image(path, resolution), None
    except IngestError as e:
        return None, e.message


def load_working_set(paths: Sequence[str], resolution: Resolution, workers: Optional[int] = MAX_WORKERS) -> List[np.ndarray]:
    """
    Load every path in parallel and return the survivors in input order.
    Failures are reported on stderr and dropped; they never abort the batch.
    """
    tasks = [(str(p), resolution) for p in paths]

    if workers == 1 or len(tasks) < 2:
        results = [_ingest_task(t) for t in tasks]
    else:
        # executor.map yields in submission order
        with concurrent.futures.ProcessPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(_ingest_task, tasks))

    images = []
    for (path, _), (image, warning) in zip(tasks, results):
        print(f"🔧 Loading and resizing: {path}")
        if warning is not None:
            print(f"⚠️ {warning}", file=sys.stderr)
            continue
        images.append(image)
    return images


# === ANGLED-PARTITION COMPOSITOR ===
def effective_tangent(angle_degrees: float) -> float:
    """tan(angle), clamped so angles at or near 90°/270° give horizontal strips instead of inf/NaN."""
    tan_theta = math.tan(math.radians(angle_degrees))
    return max(-MAX_TANGENT, min(MAX_TANGENT, tan_theta))


def skew(x, y, tan_theta: float):
    """x at which the line through (x, y) with slope tan_theta (from vertical) crosses row 0."""
    return x - y * tan_theta


def skew_bounds(resolution: Resolution, tan_theta: float) -> Tuple[float, float]:
    right = resolution.width - 1
    bottom = resolution.height - 1
    corners = (
        skew(0.0, 0.0, tan_theta),        # top-left
        skew(right, 0.0, tan_theta),      # top-right
        skew(0.0, bottom, tan_theta),     # bottom-left
        skew(right, bottom, tan_theta),   # bottom-right
    )
    return min(corners), max(corners)


def strip_indices(resolution: Resolution, count: int, tan_theta: float, rows: Optional[Tuple[int, int]] = None) -> np.ndarray:
    """
    Index of the source image that owns each pixel, for rows [start, stop) (all rows by default).
    Always within [0, count - 1], including the corners where progress is exactly 0 or 1.
    """
    start, stop = rows if rows is not None else (0, resolution.height)
    min_skew, max_skew = skew_bounds(resolution, tan_theta)
    skew_range = max_skew - min_skew

    if skew_range <= 0:
        # 1x1 canvas, or a single column at 0°: nothing to partition
        return np.zeros((stop - start, resolution.width), dtype=np.intp)

    xs = np.arange(resolution.width, dtype=np.float64)
    ys = np.arange(start, stop, dtype=np.float64)[:, np.newaxis]
    progress = (skew(xs, ys, tan_theta) - min_skew) / skew_range

    index = np.floor(progress * count).astype(np.intp)
    np.clip(index, 0, count - 1, out=index)
    return index


def _fill_band(canvas: np.ndarray, images: Sequence[np.ndarray], resolution: Resolution, tan_theta: float, start: int, stop: int):
    index = strip_indices(resolution, len(images), tan_theta, rows=(start, stop))
    band = canvas[start:stop]
    for i, image in enumerate(images):
        mask = index == i
        band[mask] = image[start:stop][mask]


def _row_bands(height: int, workers: Optional[int]) -> List[Tuple[int, int]]:
    """Split [0, height) into contiguous, disjoint row ranges, one per unit of work."""
    parts = workers or os.cpu_count() or 1
    step = max(ROWS_PER_BAND, math.ceil(height / parts))
    return [(y, min(y + step, height)) for y in range(0, height, step)]


def composite(images: Sequence[np.ndarray], resolution: Resolution, angle_degrees: float, workers: Optional[int] = MAX_WORKERS) -> np.ndarray:
    """
    Build the canvas from equally sized RGB sources.
    0 images -> black, 1 image -> that image verbatim, 2+ -> angled strips in list order.
    """
    shape = (resolution.height, resolution.width, 3)
    for image in images:
        if image.shape != shape:
            raise ValueError(f"Source image has shape {image.shape}, expected {shape}")

    if not images:
        return np.zeros(shape, dtype=np.uint8)
    if len(images) == 1:
        return images[0].copy()

    tan_theta = effective_tangent(angle_degrees)
    canvas = np.zeros(shape, dtype=np.uint8)
    bands = _row_bands(resolution.height, workers)

    if workers == 1 or len(bands) == 1:
        for start, stop in bands:
            _fill_band(canvas, images, resolution, tan_theta, start, stop)
    else:
        # Bands never overlap, and sources are only read
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(_fill_band, canvas, images, resolution, tan_theta, start, stop)
                for start, stop in bands
            ]
            for future in futures:
                future.result()

    return canvas


# === OUTPUT ===
def save_canvas(canvas: np.ndarray, output_path):
    """Encode the finished canvas in the format implied by the extension. Errors propagate."""
    path = Path(output_path)
    ext = path.suffix.lower()
    save_params = {}
    if ext in (".jpg", ".jpeg", ".webp"):
        save_params["quality"] = JPEG_QUALITY
    elif ext == ".png":
        save_params["optimize"] = True

    Image.fromarray(canvas).save(path, **save_params)


def create_angled_strip_wallpaper(output_path, resolution: Resolution, angle_degrees: float, paths: Sequence[str], workers: Optional[int] = MAX_WORKERS) -> np.ndarray:
    """
    Load, composite and save. Returns the canvas that was written.
    Only writing the output can fail; bad inputs are skipped.
    """
    images = load_working_set(paths, resolution, workers=workers)

    if not images:
        print("No valid wallpapers provided, creating a black image.")
    elif len(images) == 1:
        print("Only one wallpaper provided, saving it directly.")

    canvas = composite(images, resolution, angle_degrees, workers=workers)
    save_canvas(canvas, output_path)
    print(f"✅ Wallpaper successfully saved to {output_path}")
    return canvas


# === USER WALLPAPER DISCOVERY ===
def collect_user_wallpapers(passwd_path="/etc/passwd", min_uid: int = MIN_USER_UID, relative_image: str = USER_WALLPAPER) -> List[str]:
    """
    Find each regular user's stylix wallpaper, in passwd order.
    The link at ~/.config/stylix/image is resolved to the real file.
    """
    wallpapers = []
    with open(passwd_path, "r", encoding="utf-8") as f:
        for line in f:
            fields = line.rstrip("\n").split(":")
            if len(fields) < 6:
                continue
            try:
                uid = int(fields[2])
            except ValueError:
                continue
            if uid < min_uid:
                continue

            candidate = Path(fields[5]) / relative_image
            if candidate.is_file():
                wallpapers.append(str(candidate.resolve()))
    return wallpapers


# === MAIN ENTRY POINT ===
class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        # every argument problem exits 1, not argparse's usual 2
        self.print_usage(sys.stderr)
        self.exit(1, f"Error: {message}\n")


def _unmask_negative_numbers(argv):
    """
    argparse only takes '-20' or '-2.5' as positionals; signed reals such as '-1e1' or '-5.'
    look like unknown options to it. Rewrite those in plain positional notation.
    """
    tokens = []
    for token in argv:
        if token.startswith("-") and not token.startswith("--") and not re.fullmatch(r"-\d+|-\d*\.\d+", token):
            try:
                value = float(token)
            except ValueError:
                value = None
            if value is not None and math.isfinite(value):
                token = np.format_float_positional(value, trim="0")
        tokens.append(token)
    return tokens


def parse_args(argv=None):
    if argv is None:
        argv = sys.argv[1:]

    parser = _ArgumentParser(
        description="Combine wallpapers into angled strips without warping any of them.",
        epilog="Example: %(prog)s ./output.png 1920x1080 20 ./img1.jpg ./img2.jpg",
    )
    parser.add_argument("output", help="Path of the generated wallpaper (format from extension)")
    parser.add_argument("resolution", help="Output size as <width>x<height>, e.g. 1920x1080")
    parser.add_argument("angle", help="Slant of the strip borders in degrees. 0 is vertical")
    parser.add_argument("images", nargs="*", help="Input wallpapers, left to right")
    parser.add_argument("--workers", type=int, default=MAX_WORKERS,
                        help="Parallel workers for loading and compositing (default: auto)")
    parser.add_argument("--from-users", action="store_true",
                        help=f"Also use every user's ~/{USER_WALLPAPER}")
    parser.add_argument("--passwd", default="/etc/passwd",
                        help="passwd file used by --from-users (default: /etc/passwd)")
    parser.add_argument("--fallback", help="Wallpaper to use when no input images are given")

    # options may come before, between or after the image paths
    args = parser.parse_intermixed_args(_unmask_negative_numbers(argv))

    try:
        args.resolution = parse_resolution(args.resolution)
        args.angle = parse_angle(args.angle)
    except ArgumentError as e:
        parser.error(str(e))

    if args.workers is not None and args.workers < 1:
        parser.error("--workers must be at least 1")

    return args


def main(argv=None):
    args = parse_args(argv)

    paths = list(args.images)
    if args.from_users:
        try:
            found = collect_user_wallpapers(args.passwd)
        except (OSError, ValueError) as e:
            # ValueError covers a passwd file that is not UTF-8
            print(f"❌ Cannot read {args.passwd}: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Found {len(found)} user wallpapers.")
        paths.extend(found)

    if not paths and args.fallback:
        print(f"No wallpapers provided. Using fallback: {args.fallback}")
        paths.append(args.fallback)

    try:
        create_angled_strip_wallpaper(args.output, args.resolution, args.angle, paths, workers=args.workers)
    except (OSError, ValueError) as e:
        print(f"❌ Application error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
