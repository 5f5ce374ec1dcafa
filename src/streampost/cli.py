"""
Command-line interface and entry points for streampost.

Lets operators replay a captured stream event against the configured
endpoints, and check that every required setting is present before a deploy.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from streampost.core.logger import configure_root_logger, get_logger
from streampost.handler import handler
from streampost.models.settings import StreamPostSettings

logger = get_logger(__name__)


def main(
    event_path: Optional[str] = None,
    event_dict: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Process one stream event through the pipeline.

    Args:
        event_path: Path to a JSON file holding the event (`{"Records": [...]}`)
        event_dict: The event itself

    Returns:
        Summary of the invocation (status, record_count, outcome)

    Raises:
        FileNotFoundError: If the event file doesn't exist
        ValueError: If neither event_path nor event_dict is provided
        StreamPostException: If the invocation fails

    Example:
        >>> from streampost.cli import main
        >>> result = main(event_path="captured_event.json")
        >>> print(result["status"])
    """
    try:
        if event_dict is not None:
            event = event_dict
            logger.info("Using provided event dictionary")
        elif event_path:
            event_file = Path(event_path)
            if not event_file.exists():
                raise FileNotFoundError(f"Event file not found: {event_path}")
            with open(event_file, "r") as f:
                event = json.load(f)
            logger.info(f"Loaded event from {event_path}")
        else:
            raise ValueError("Either event_path or event_dict must be provided")

        result = handler(event, None)
        logger.info(f"Invocation finished with status: {result.get('status')}")
        return result

    except Exception as e:
        logger.error(f"Invocation failed: {e}", exc_info=True)
        raise


def validate_settings(settings: Optional[StreamPostSettings] = None) -> bool:
    """
    Check that every required setting is present.

    Raises:
        ValueError: Listing the missing environment variables
    """
    settings = settings or StreamPostSettings()
    missing = settings.missing_required()
    if missing:
        raise ValueError(f"Missing required settings: {', '.join(missing)}")
    logger.info("Configuration is valid")
    return True


def cli(argv: Optional[list] = None) -> None:
    """
    Command-line interface for streampost.

    Usage:
        streampost run /path/to/event.json
        streampost validate
    """
    parser = argparse.ArgumentParser(
        prog="streampost",
        description="Decode stream records and post them to the downstream API",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    run_parser = subparsers.add_parser("run", help="Process a captured stream event")
    run_parser.add_argument("event", help="Path to the event JSON file")
    run_parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers.add_parser("validate", help="Check required settings without processing anything")

    args = parser.parse_args(argv)

    if args.command == "run":
        configure_root_logger("DEBUG" if args.verbose else "INFO")
        try:
            result = main(event_path=args.event)
            print(json.dumps(result, indent=2, default=str))
            sys.exit(0 if result.get("status") in ("success", "skipped") else 1)
        except Exception as e:
            logger.error(f"Run failed: {e}")
            sys.exit(1)

    elif args.command == "validate":
        configure_root_logger("INFO")
        try:
            validate_settings()
            sys.exit(0)
        except Exception as e:
            logger.error(f"Validation failed: {e}")
            sys.exit(1)

    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    cli()
