#!/usr/bin/env python3
"""Field Equipment Engine CLI.

Loads a work order's equipment catalog from the provisioning backend,
reconciles it with locally held session state, and exports the
installed/removed records used for work completion.

Environment Variables:
    - PROVISIONING_BASE_URL: Backend base URL (required for load/export)
    - PROVISIONING_API_TOKEN: Optional bearer token
    - DATABASE_URL: PostgreSQL for session state (optional; in-memory otherwise)
    - LOG_LEVEL: Logging level (default INFO)

Example Usage:
    $ python main.py load WRK001 --contract CT01 --customer C01
    $ python main.py load WRK001 --local records.json
    $ python main.py export WRK001 --output export.json
    $ python main.py serve --port 8000
"""
import argparse
import asyncio
import json
import sys
from datetime import datetime

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.fieldops.api import ConfigurationError, FieldOpsError, ProvisioningClient
from src.fieldops.config import EngineSettings, configure_logging
from src.fieldops.equipment.adapters import (
    InMemorySessionStore,
    PostgresSessionStore,
    ProvisioningAPIAdapter,
    export_session,
    import_local_session,
)
from src.fieldops.equipment.domain import WorkOrderContext
from src.fieldops.equipment.use_cases import LoadCatalogUseCase, SessionRegistry


async def setup_store(settings: EngineSettings):
    """Create the session store.

    Returns:
        (store, pool) where pool is None for the in-memory store
    """
    if not settings.database_url:
        return InMemorySessionStore(), None

    import asyncpg

    pool = await asyncpg.create_pool(settings.database_url, min_size=1, max_size=2)
    store = PostgresSessionStore(pool)
    await store.ensure_schema()
    print("[Main] Connected to PostgreSQL")
    return store, pool


def _work_order(args) -> WorkOrderContext:
    return WorkOrderContext(
        work_id=args.work_id,
        customer_id=args.customer,
        contract_id=args.contract,
        receipt_id=args.receipt,
        work_code=args.work_code,
        task_class=args.task_class,
        so_id=args.so_id,
        master_so_id=args.master_so_id,
    )


async def run_load(args, settings: EngineSettings) -> dict:
    """Load and reconcile; optionally export the resulting records."""
    settings.require("provisioning_base_url")
    work_order = _work_order(args)
    store, pool = await setup_store(settings)

    try:
        if args.local:
            with open(args.local) as f:
                records = json.load(f)
            await store.save(import_local_session(
                work_order,
                records.get("installed", []),
                records.get("removed", []),
            ))
            print(f"[Main] Seeded local state from {args.local}")

        async with ProvisioningClient(
            base_url=settings.provisioning_base_url,
            api_token=settings.provisioning_api_token,
        ) as client:
            use_case = LoadCatalogUseCase(
                catalog_api=ProvisioningAPIAdapter(client),
                store=store,
                registry=SessionRegistry(),
            )
            result = await use_case.execute(work_order)
    finally:
        if pool:
            await pool.close()

    session = result.session
    summary = {
        "work_id": session.work_id,
        "slots": len(session.slots),
        "bound": len(session.bindings),
        "stock": len(session.stock),
        "removals": len(session.removals),
        "models": len(result.table),
        "resumed": result.resumed,
    }

    if args.command == "export":
        bundle = export_session(session, settings.reg_uid)
        payload = {"installed": bundle.installed, "removed": bundle.removed}
        if args.output:
            with open(args.output, "w") as f:
                json.dump(payload, f, indent=2)
            print(f"[Main] Export saved to {args.output}")
        else:
            print(json.dumps(payload, indent=2))

    return summary


def run_serve(args, settings: EngineSettings) -> None:
    import uvicorn

    from src.fieldops.equipment.app import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port)


def _add_work_order_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("work_id", help="Work order id (WRK_ID)")
    parser.add_argument("--customer", default="", help="Customer id (CUST_ID)")
    parser.add_argument("--contract", default="", help="Contract id (CTRT_ID)")
    parser.add_argument("--receipt", default="", help="Receipt id (RCPT_ID)")
    parser.add_argument("--work-code", default="", help="Work code (WRK_CD)")
    parser.add_argument("--task-class", default="", help="Task class (CRR_TSK_CL)")
    parser.add_argument("--so-id", default="", help="SO id")
    parser.add_argument("--master-so-id", default="", help="Master SO id")
    parser.add_argument(
        "--local",
        type=str,
        metavar="FILE",
        help="Seed local state from exported installed/removed records",
    )


def main():
    parser = argparse.ArgumentParser(
        description="Equipment composition and lifecycle for field work orders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py load WRK001 --contract CT01       # Load and reconcile
  python main.py export WRK001 -o export.json      # Load, then export records
  python main.py serve --port 8000                 # Run the HTTP API
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    load_parser = subparsers.add_parser("load", help="Load and reconcile a work order")
    _add_work_order_args(load_parser)

    export_parser = subparsers.add_parser("export", help="Load, then export records as JSON")
    _add_work_order_args(export_parser)
    export_parser.add_argument("-o", "--output", type=str, metavar="FILE", help="Write JSON to FILE")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()

    try:
        settings = EngineSettings.from_env(dotenv=False)
    except ConfigurationError as e:
        print(f"[Main] Configuration error: {e}")
        sys.exit(1)
    configure_logging(settings.log_level)

    if args.command == "serve":
        run_serve(args, settings)
        return

    start_time = datetime.utcnow()
    try:
        summary = asyncio.run(run_load(args, settings))
    except ConfigurationError as e:
        print(f"[Main] Configuration error: {e}")
        sys.exit(1)
    except FieldOpsError as e:
        print(f"[Main] {e.__class__.__name__}: {e}")
        sys.exit(2)

    print(f"\n[Main] {summary}")
    duration = (datetime.utcnow() - start_time).total_seconds()
    print(f"[Main] Completed in {duration:.1f} seconds")


if __name__ == "__main__":
    main()
