"""
imageconverter: convert a single image between JPEG, PNG, GIF, WebP, BMP and AVIF

Subcommands:
  - convert: Convert one image, optionally cover-resized to an exact box
  - formats: List the image types this installation can read and write

Install:
  pip install .

Usage examples:
  imageconverter convert ./image.jpg --format webp --quality 80
  imageconverter convert ./image.png --format jpeg --width 600 --height 400 --output ./thumb.jpg
  imageconverter convert ./image.png --format png --base64
  imageconverter formats
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog="imageconverter", description="Image format conversion CLI")
	parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")
	subparsers = parser.add_subparsers(dest="command", required=True)

	# convert subcommand
	p_conv = subparsers.add_parser("convert", help="Convert/resize/compress an image")
	p_conv.add_argument("path", help="Path to an image file")
	p_conv.add_argument(
		"--format",
		choices=["jpeg", "jpg", "png", "gif", "webp", "bmp", "avif"],
		default="webp",
	)
	p_conv.add_argument("--quality", type=int, default=80, help="Quality 0-100 (ignored for gif and bmp)")
	p_conv.add_argument("--width", type=int, default=0, help="Target width; needs --height too")
	p_conv.add_argument("--height", type=int, default=0, help="Target height; needs --width too")
	out = p_conv.add_mutually_exclusive_group()
	out.add_argument("--output", type=str, default=None, help="Where to write the converted image")
	out.add_argument("--base64", action="store_true", help="Print a base64 data URI instead of writing a file")

	# formats subcommand
	subparsers.add_parser("formats", help="List supported image types")

	return parser


def configure_logging(verbose: bool) -> None:
	logger.remove()
	logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def default_output_path(path: Path, fmt: str) -> Path:
	ext = "jpg" if fmt in ("jpeg", "jpg") else fmt
	dest = path.with_suffix(f".{ext}")
	# never overwrite the source when converting to its own format
	if dest == path:
		dest = path.with_name(f"{path.stem}-converted.{ext}")
	return dest


def handle_convert(args: argparse.Namespace) -> int:
	# Lazy import so that `formats` and `--help` work without touching Pillow
	from convert import convert_to_base64, convert_to_disk
	from errors import ConversionError

	p = Path(args.path)
	if p.is_dir():
		print("Expected a single image file, got a folder.")
		return 2
	if not p.exists():
		print("Path not found.")
		return 2

	try:
		if args.base64:
			print(convert_to_base64(p, args.format, args.quality, args.width, args.height))
			return 0
		dest = Path(args.output) if args.output else default_output_path(p, args.format)
		convert_to_disk(p, dest, args.format, args.quality, args.width, args.height)
		print(f"Done: {dest}")
		return 0
	except ConversionError as e:
		print(f"Error processing {p}: {e}")
		return 1


def handle_formats(args: argparse.Namespace) -> int:
	from errors import ConversionError
	from formats import check_environment, get_supported_formats

	try:
		check_environment()
	except ConversionError as e:
		print(e)
		return 1
	for mime in sorted(get_supported_formats()):
		print(mime)
	return 0


def main(argv: list[str] | None = None) -> int:
	parser = build_parser()
	args = parser.parse_args(argv)
	configure_logging(args.verbose)
	if args.command == "convert":
		return handle_convert(args)
	if args.command == "formats":
		return handle_formats(args)
	parser.print_help()
	return 2


if __name__ == "__main__":
	raise SystemExit(main())
