# piko_poller/cli.py
import argparse

def build_parser():
    parser = argparse.ArgumentParser(
        prog="piko-poller",
        description="KOSTAL PIKO MP plus measurement poller"
    )

    parser.add_argument(
        "--config",
        default="piko_poller.conf",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress stdout output"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of human-readable text"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # Long-running service
    sub.add_parser("run", help="Poll the inverter until stopped")

    # One-shot poll
    sub.add_parser("poll", help="Run a single poll cycle and print the values")

    # Poll against a captured document
    cmd_sim = sub.add_parser(
        "simulate",
        help="Run a single poll cycle against a captured all.xml",
    )
    cmd_sim.add_argument(
        "--document",
        help="Override [simulation] document path",
    )

    # Field table
    sub.add_parser("schema", help="Print the field table as markdown")

    # Store maintenance
    cmd_maint = sub.add_parser(
        "maintain-db",
        help="Delete field objects that have not been updated recently",
    )
    cmd_maint.add_argument(
        "--stale-days",
        type=int,
        help="Override [retention] stale_days",
    )
    cmd_maint.add_argument(
        "--no-vacuum",
        action="store_true",
        help="Skip VACUUM after pruning",
    )

    return parser
