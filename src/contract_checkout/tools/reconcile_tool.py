#!/usr/bin/env python3
"""Checkout Reconcile Tool — inspect transactions and contract templates.

A standalone CLI utility for support staff, talking to the same backend
the checkout flow uses (configured via ``CHECKOUT_BACKEND__URL`` and
``CHECKOUT_BACKEND__TOKEN`` or a YAML file in ``CHECKOUT_CONFIG_PATH``):

    # One status check (asks the backend to refresh from the gateway)
    python -m contract_checkout.tools.reconcile_tool status <transaction_id>

    # Poll like the checkout view does after a gateway return
    python -m contract_checkout.tools.reconcile_tool poll <transaction_id>

    # List the contract templates of a project and whether they are usable
    python -m contract_checkout.tools.reconcile_tool templates <project_id>
"""

from __future__ import annotations

import asyncio
import logging
import sys

from contract_checkout.config.settings import AppConfig
from contract_checkout.errors.gateway_errors import GatewayError
from contract_checkout.gateway.client import GatewayClient


def _load_config() -> AppConfig:
    config = AppConfig()
    logging.basicConfig(
        level=logging.DEBUG if config.debug else config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


def _cmd_status(transaction_id: int) -> None:
    """Query one transaction's status."""
    config = _load_config()

    async def _run() -> None:
        gateway = GatewayClient(config.backend)
        await gateway.connect()
        try:
            result = await gateway.check_status(transaction_id)
            print(f"Transaction:  {result.transaction_id}")
            print(f"Backend:      {result.raw_status or '-'}")
            print(f"Gateway:      {result.gateway_status or '-'}")
            print(f"Resolved:     {result.status.value}")
        finally:
            await gateway.close()

    asyncio.run(_run())


def _cmd_poll(transaction_id: int) -> None:
    """Poll a transaction until settled or the attempt ceiling."""
    from contract_checkout.reconciliation.poller import PaymentPoller

    config = _load_config()

    async def _run() -> None:
        gateway = GatewayClient(config.backend)
        await gateway.connect()
        try:
            poller = PaymentPoller(gateway, config.poller)
            print(
                f"Polling transaction {transaction_id} "
                f"({config.poller.max_attempts} checks, {config.poller.interval_seconds}s apart)..."
            )
            result = await poller.run(transaction_id)
            print(f"Outcome:   {result.outcome.value} after {result.attempts} check(s)")
            if result.last_status is not None:
                print(f"Last seen: {result.last_status.raw_status or '-'}")
        finally:
            await gateway.close()

    asyncio.run(_run())


def _cmd_templates(project_id: int) -> None:
    """List contract templates for a project."""
    config = _load_config()

    async def _run() -> None:
        gateway = GatewayClient(config.backend)
        await gateway.connect()
        try:
            templates = await gateway.list_templates(project_id)
            if not templates:
                print(f"No contract templates for project {project_id}")
                return
            print(f"Contract templates for project {project_id}:")
            print("-" * 80)
            for t in templates:
                state = "ready" if t.is_ready else "NOT READY"
                print(f"  #{t.id:<6} v{t.version:<3} {state:<10} {gateway.resolve_url(t.file_url)}")
        finally:
            await gateway.close()

    asyncio.run(_run())


def _int_arg(name: str) -> int:
    try:
        return int(sys.argv[2])
    except ValueError:
        print(f"{name} must be an integer, got {sys.argv[2]!r}")
        sys.exit(1)


def main() -> None:
    """CLI entry point."""
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    cmd = sys.argv[1].lower()
    commands = {
        "status": ("transaction_id", _cmd_status),
        "poll": ("transaction_id", _cmd_poll),
        "templates": ("project_id", _cmd_templates),
    }
    if cmd not in commands:
        print(f"Unknown command: {cmd}")
        print(__doc__)
        sys.exit(1)

    arg_name, handler = commands[cmd]
    if len(sys.argv) < 3:
        print(f"Usage: reconcile_tool {cmd} <{arg_name}>")
        sys.exit(1)
    try:
        handler(_int_arg(arg_name))
    except GatewayError as exc:
        print(f"Backend error ({exc.status_code}): {exc.message}")
        sys.exit(2)


if __name__ == "__main__":
    main()
