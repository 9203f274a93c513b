"""Report the document locations a policy inspects when evaluated against a document."""

import argparse
import sys
from typing import List, Optional

from config.settings import get_settings
from services.errors import InferenceError
from services.location_inference import LocationInferrer
from services.structured_logging import setup_structured_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="policy-locate", description=__doc__)
    parser.add_argument("--policy", required=True, help="Policy module file (.rego)")
    parser.add_argument("--document", required=True, help="YAML or JSON document to evaluate")
    parser.add_argument(
        "--query",
        help="Query to evaluate (default: inference.query from config, data.policy.deny)",
    )
    parser.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument(
        "--exact-only",
        action="store_true",
        help="Omit locations whose path could only be partly matched.",
    )
    parser.add_argument("--log-level", help="Override the configured log level.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    logging_config = settings.get_logging_config()
    setup_structured_logging(
        log_file=logging_config.get("file"),
        log_level=args.log_level or logging_config.get("level", "WARNING"),
        enable_console=bool(logging_config.get("console", True)),
    )

    config = settings.to_inference_config()
    if args.exact_only:
        config = config.model_copy(update={"include_partial_locations": False})

    try:
        report = LocationInferrer(config).infer(args.policy, args.document, query=args.query)
    except InferenceError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.format == "json":
        print(report.model_dump_json(indent=2))
    else:
        print(report.describe())
    return 0


if __name__ == "__main__":
    sys.exit(main())
