"""
Main entry point when running the swerve_control module with python -m.
"""

import asyncio
import logging
import sys

from .client import build_parser, main, setup_logging

if __name__ == "__main__":
    args = build_parser().parse_args()

    # Setup logging based on verbose flag
    setup_logging(args.verbose)

    try:
        asyncio.run(
            main(
                duration=args.duration,
                vision_uri=args.vision_uri,
                output_dir=args.output_dir,
                seed=args.seed,
            )
        )
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)
