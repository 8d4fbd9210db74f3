#!/usr/bin/env python3
"""Cupid Co-Pilot CLI: analyze a single screenshot."""

import argparse
import logging
import json
import sys
from pathlib import Path

from config.settings import Settings
from orchestrator import AnalysisOrchestrator
from schemas.responses import AnalysisRequest

MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Cupid Co-Pilot - memory-aware dating coach for chat screenshots"
    )
    parser.add_argument(
        "--image",
        "-i",
        type=str,
        required=True,
        help="Path to the screenshot to analyze"
    )
    parser.add_argument(
        "--device-id",
        "-d",
        type=str,
        help="Device identifier (default: fallback device id)"
    )
    parser.add_argument(
        "--conversation-id",
        "-c",
        type=str,
        help="Conversation id (default: derived from device and time)"
    )
    parser.add_argument(
        "--frame-number",
        type=int,
        default=0,
        help="Frame number reported with the screenshot"
    )
    parser.add_argument(
        "--provider",
        type=str,
        choices=["openai", "anthropic"],
        default="openai",
        help="LLM provider (default: openai)"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        help="SQLite database path (default: data/cupid.db)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="[%(asctime)s] %(levelname)s - %(message)s"
    )

    image_path = Path(args.image)
    if not image_path.exists():
        print(f"Screenshot not found: {image_path}", file=sys.stderr)
        sys.exit(1)

    settings_kwargs = {"llm_provider": args.provider, "verbose": args.verbose}
    if args.db_path:
        settings_kwargs["db_path"] = args.db_path
    settings = Settings(**settings_kwargs)

    orchestrator = AnalysisOrchestrator(settings=settings)

    request = AnalysisRequest(
        image=image_path.read_bytes(),
        frame_number=args.frame_number,
        format=image_path.suffix.lstrip(".") or None,
        media_type=MEDIA_TYPES.get(image_path.suffix.lower(), "image/jpeg"),
        conversation_id=args.conversation_id,
        device_id=args.device_id,
    )

    try:
        response = orchestrator.analyze(request)
        print("\n" + "="*60)
        print("ANALYSIS")
        print("="*60 + "\n")
        print(json.dumps(response.model_dump(by_alias=True, exclude_none=True), indent=2))
        print("\n")
    except Exception as e:
        print(f"Error analyzing screenshot: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
