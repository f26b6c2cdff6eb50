from __future__ import annotations
import argparse
import json
import os
import sys

from ..config import LoaderConfig
from ..errors import TorchScriptError
from ..ir.importer import load_torchscript_as_model_ir
from ..utils.logging import get_logger
from ..utils.reporting import generate_report
from ..utils.viz import export_graph_ascii


def cmd_inspect(args):
    """Handles the 'inspect' command."""
    config = LoaderConfig.from_args(args)
    logger = get_logger(level=config.log_level)
    logger.info(f"Inspecting model: {config.model}")

    model = load_torchscript_as_model_ir(config.model, config)
    print(f"Format: {model.format}")
    if model.producer:
        print(f"Producer: {model.producer}")
    print(export_graph_ascii(model.graph))

    if args.json:
        directory = os.path.dirname(args.json)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(args.json, "w") as f:
            json.dump(model.graph.to_dict(), f, indent=2)
        print(f"[OK] Graph written to {args.json}")


def cmd_report(args):
    """Handles the 'report' command."""
    config = LoaderConfig.from_args(args)
    get_logger(level=config.log_level)

    print("--- Loader Configuration ---")
    print(config)
    print("----------------------------")

    model = load_torchscript_as_model_ir(config.model, config)
    generate_report(model, config)

    print(f"[OK] Reports are in {config.report_dir}")


def build_parser():
    p = argparse.ArgumentParser(
        prog="tsgraph",
        description="TorchScript archive to computation graph loader",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # --- Inspect Command ---
    pi = sub.add_parser("inspect", help="Load an archive and print its graph",
                        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    pi.add_argument("model", nargs='?', default=None,
                    help="Path to TorchScript archive (optional if specified in config)")
    pi.add_argument("-c", "--config", type=str, default=None,
                    help="Path to YAML config file to override defaults")
    pi.add_argument("--no-trace", dest="trace", action="store_false", default=None,
                    help="Skip symbolic execution of forward()")
    pi.add_argument("--display-limit", dest="display_limit", type=int, default=None,
                    help="Elements printed per tensor")
    pi.add_argument("--json", type=str, default=None,
                    help="Path to write the graph as JSON")
    pi.set_defaults(func=cmd_inspect)

    # --- Report Command ---
    pr = sub.add_parser("report", help="Load an archive and write report artifacts",
                        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    pr.add_argument("model", nargs='?', default=None,
                    help="Path to TorchScript archive (optional if specified in config)")
    pr.add_argument("-c", "--config", type=str, default=None,
                    help="Path to YAML config file to override defaults")
    pr.add_argument("--no-trace", dest="trace", action="store_false", default=None,
                    help="Skip symbolic execution of forward()")
    pr.add_argument("--report", dest="report_dir", type=str, default=None,
                    help="Directory to save reports")
    pr.set_defaults(func=cmd_report)

    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except TorchScriptError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
