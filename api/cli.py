#!/usr/bin/env python3
"""CLI for certificate export tasks.

Usage:
    python -m cli <command>

Commands:
    export   Render a certificate from a JSON file and save it as a PDF
    preview  Render a certificate from a JSON file as SVG markup

The JSON input is either render data (recipientName, courseName, ...) or a
certificate lookup record (fullName, courseName, completedDate).
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from core.config import get_settings
from core.logger import configure_logging, get_logger
from rendering.certificates import (
    CertificateRenderData,
    generate_certificate_svg,
    render_certificate,
)
from schemas import ALLOW_LOCAL_IMAGES, CertificateRecord, CertificateRenderRequest
from services.certificates_service import (
    CertificateGenerationError,
    export_certificate,
    save_to_directory,
)

logger = get_logger(__name__)


def load_render_data(path: Path) -> CertificateRenderData:
    """Read render data or a lookup record from a JSON file.

    Signatures may be local paths here since the file comes from the operator.

    Raises:
        ValueError: If the file is not valid JSON or matches neither shape.
    """
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"{path}: expected a JSON object")

    schema = CertificateRenderRequest
    if "fullName" in payload or "full_name" in payload:
        schema = CertificateRecord
    record = schema.model_validate(payload, context={ALLOW_LOCAL_IMAGES: True})
    return record.to_render_data()


def cmd_export(input_path: Path, output_dir: Path | None) -> int:
    """Export a certificate PDF into the output directory."""
    try:
        data = load_render_data(input_path)
    except (OSError, ValueError, ValidationError) as e:
        logger.error("cli.input.invalid", path=str(input_path), error=str(e))
        return 1

    settings = get_settings().model_copy(update={"capture_allow_local_images": True})
    directory = output_dir or settings.output_dir_path
    try:
        node = render_certificate(data, settings=settings)
        exported = asyncio.run(
            export_certificate(
                data, node, settings=settings, saver=save_to_directory(directory)
            )
        )
    except (CertificateGenerationError, ValueError) as e:
        logger.error("cli.export.failed", error=str(e))
        return 1

    logger.info(
        "cli.export.saved",
        path=str(directory / exported.filename),
        capture_outcome=exported.capture_outcome.value,
    )
    return 0


def cmd_preview(input_path: Path, output_path: Path) -> int:
    """Write the certificate SVG markup to a file."""
    try:
        data = load_render_data(input_path)
    except (OSError, ValueError, ValidationError) as e:
        logger.error("cli.input.invalid", path=str(input_path), error=str(e))
        return 1

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(generate_certificate_svg(data), encoding="utf-8")
    logger.info("cli.preview.saved", path=str(output_path))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Certificate Export CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    export_parser = subparsers.add_parser(
        "export",
        help="Render a certificate and save it as a PDF",
    )
    export_parser.add_argument("--input", required=True, type=Path)
    export_parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory to save into (defaults to OUTPUT_DIR)",
    )

    preview_parser = subparsers.add_parser(
        "preview",
        help="Render a certificate as SVG markup",
    )
    preview_parser.add_argument("--input", required=True, type=Path)
    preview_parser.add_argument("--output", required=True, type=Path)

    args = parser.parse_args(argv)

    if args.command == "export":
        return cmd_export(args.input, args.output_dir)
    elif args.command == "preview":
        return cmd_preview(args.input, args.output)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    configure_logging()
    sys.exit(main())
