"""linode-reconcile CLI: inspect, plan and apply an instance's desired shape.

Usage examples::

    linode-reconcile show 123456
    linode-reconcile plan 123456 desired.json
    linode-reconcile --config '{"event_poll_ms": 1000}' apply 123456 desired.json

The token is read from ``LINODE_TOKEN`` unless given in ``--config``.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, NoReturn

from pydantic import ValidationError

from reconciler.base.exceptions import ReconcilerError


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ``linode-reconcile`` CLI.

    Returns:
        Configured :class:`~argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(
        prog="linode-reconcile",
        description="Reconcile a Linode instance against a declarative shape",
    )
    parser.add_argument(
        "--provider", "-p",
        default="linode",
        choices=["linode"],
        help="Compute provider",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default="{}",
        help='JSON provider config (e.g. \'{"event_poll_ms": 1000}\')',
    )
    sub = parser.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Print the flattened current state")
    show.add_argument("instance_id", type=int)

    for name, text in (("plan", "Print the changes a pass would make"),
                       ("apply", "Run a reconciliation pass")):
        cmd = sub.add_parser(name, help=text)
        cmd.add_argument("instance_id", type=int)
        cmd.add_argument("desired", type=Path, help="JSON file with the desired shape")

    apply = sub.choices["apply"]
    apply.add_argument("--create-timeout", type=float, default=600.0,
                       help="Seconds to wait for disk creation")
    apply.add_argument("--update-timeout", type=float, default=1200.0,
                       help="Seconds to wait for resizes and power cycles")
    return parser


def _fail(message: str) -> NoReturn:
    print(message, file=sys.stderr)
    sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Results are printed as JSON; failures go to stderr with exit status 1.

    Args:
        argv: Optional argument list (defaults to ``sys.argv``).
    """
    parser = _build_parser()
    ns = parser.parse_args(argv)

    try:
        config: dict[str, Any] = json.loads(ns.config)
    except json.JSONDecodeError as e:
        _fail(f"Invalid --config JSON: {e}")

    # Lazy-import to keep --help fast
    from reconciler.base.config import Timeouts
    from reconciler.base.models import InstanceSpec
    from reconciler.engine.flatten import flatten_instance
    from reconciler.factory import build_reconciler

    desired = None
    if ns.command in ("plan", "apply"):
        try:
            desired = InstanceSpec.model_validate_json(ns.desired.read_text())
        except OSError as e:
            _fail(f"Cannot read {ns.desired}: {e}")
        except ValidationError as e:
            _fail(f"Invalid desired shape in {ns.desired}:\n{e}")

    try:
        rec = build_reconciler(ns.provider, config)
    except (ValueError, ValidationError) as e:
        _fail(f"Error: {e}")

    try:
        current = rec.observe(ns.instance_id)
        if ns.command == "show":
            result: Any = flatten_instance(current.instance, current.disks, current.configs)
        elif ns.command == "plan":
            result = rec.plan(desired, current).summary() or ["no changes"]
        else:
            timeouts = Timeouts(create=ns.create_timeout, update=ns.update_timeout)
            outcome = rec.reconcile(desired, current, timeouts)
            result = {"actions": outcome.actions, "state": outcome.state}
    except ReconcilerError as e:
        _fail(f"Operation failed: {e}")
    finally:
        rec.client.close()

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
