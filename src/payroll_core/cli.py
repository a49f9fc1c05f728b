"""Payroll Command Line Interface.

Runs the engine entry points against the configured database. Inputs are
JSON files ("-" reads stdin); results are printed as JSON.

Usage:
    python -m payroll_core init-db
    python -m payroll_core calculate payroll.json
    python -m payroll_core bulk bulk.json
    python -m payroll_core statutory salary.json
    python -m payroll_core thirteenth-month report.json
    python -m payroll_core save-thirteenth-month override.json
    python -m payroll_core attendance day.json
    python -m payroll_core delete-payroll --company-id C --pay-date 2024-03-15
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID

from payroll_core.config import EngineConfig, get_settings
from payroll_core.database import create_all, create_session_factory, get_engine
from payroll_core.errors import InvalidArgumentError, PayrollError
from payroll_core.services import (
    AttendanceService,
    LoggingActivityRecorder,
    PayrollService,
    ThirteenthMonthService,
)

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dump_json(data: Any) -> str:
    return json.dumps(data, default=_json_default, indent=2, sort_keys=False)


def read_payload(source: str) -> Any:
    """Read a JSON payload from a file path or "-" for stdin."""
    try:
        text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
        return json.loads(text)
    except OSError as e:
        raise InvalidArgumentError(f"Cannot read {source}: {e}") from e
    except json.JSONDecodeError as e:
        raise InvalidArgumentError(f"Invalid JSON in {source}: {e}") from e


class PayrollCli:
    """Payroll Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m payroll_core",
            description="Payroll computation engine",
        )
        parser.add_argument(
            "--database-url",
            help="Override DATABASE_URL",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create database tables")

        for name, help_text in (
            ("calculate", "Calculate and store one payroll record"),
            ("bulk", "Calculate payroll for many employees"),
            ("statutory", "Compute statutory deductions for a salary"),
            ("thirteenth-month", "Compute 13th-month pay"),
            ("save-thirteenth-month", "Save per-month 13th-month overrides"),
            ("attendance", "Resolve attendance for one day or several days"),
        ):
            command = subparsers.add_parser(name, help=help_text)
            command.add_argument("file", help="JSON payload file, or - for stdin")

        delete = subparsers.add_parser("delete-payroll", help="Delete payroll records for a pay date")
        delete.add_argument("--company-id", required=True)
        delete.add_argument("--pay-date", required=True, help="YYYY-MM-DD")
        delete.add_argument("--employee-id", help="Only this employee's records")
        delete.add_argument("--cutoff-start-date", help="YYYY-MM-DD")
        delete.add_argument("--cutoff-end-date", help="YYYY-MM-DD")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        settings = get_settings()
        logging.basicConfig(
            level=getattr(logging, settings.log_level, logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )

        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[Any]]] = {
            "init-db": self._cmd_init_db,
            "calculate": self._cmd_calculate,
            "bulk": self._cmd_bulk,
            "statutory": self._cmd_statutory,
            "thirteenth-month": self._cmd_thirteenth_month,
            "save-thirteenth-month": self._cmd_save_thirteenth_month,
            "attendance": self._cmd_attendance,
            "delete-payroll": self._cmd_delete_payroll,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            result = asyncio.run(self._execute(handler, parsed))
        except PayrollError as e:
            print(dump_json(e.to_dict()), file=sys.stderr)
            return 1

        if result is not None:
            print(dump_json(result))
        return 0

    async def _execute(
        self,
        handler: Callable[[argparse.Namespace], Awaitable[Any]],
        args: argparse.Namespace,
    ) -> Any:
        settings = get_settings()
        self.config = EngineConfig.from_settings(settings)
        self.engine = get_engine(args.database_url or settings.database_url)
        self.session_factory = create_session_factory(self.engine)
        self.recorder = LoggingActivityRecorder()
        try:
            return await handler(args)
        finally:
            await self.engine.dispose()

    def _payroll_service(self) -> PayrollService:
        return PayrollService(self.session_factory, self.config, self.recorder)

    async def _cmd_init_db(self, args: argparse.Namespace) -> dict[str, Any]:
        await create_all(self.engine)
        return {"status": "ok"}

    async def _cmd_calculate(self, args: argparse.Namespace) -> dict[str, Any]:
        result = await self._payroll_service().calculate_payroll(read_payload(args.file))
        return result.to_dict()

    async def _cmd_bulk(self, args: argparse.Namespace) -> dict[str, Any]:
        result = await self._payroll_service().bulk_calculate_payroll(read_payload(args.file))
        return result.to_dict()

    async def _cmd_statutory(self, args: argparse.Namespace) -> dict[str, Any]:
        result = await self._payroll_service().compute_statutory_deductions(read_payload(args.file))
        return result.to_dict()

    async def _cmd_thirteenth_month(self, args: argparse.Namespace) -> dict[str, Any]:
        service = ThirteenthMonthService(self.session_factory, self.recorder)
        report = await service.compute_thirteenth_month_pay(read_payload(args.file))
        return report.to_dict()

    async def _cmd_save_thirteenth_month(self, args: argparse.Namespace) -> dict[str, Any]:
        service = ThirteenthMonthService(self.session_factory, self.recorder)
        return await service.save_override(read_payload(args.file))

    async def _cmd_attendance(self, args: argparse.Namespace) -> dict[str, Any]:
        payload = read_payload(args.file)
        service = AttendanceService(self.session_factory)
        if isinstance(payload, dict) and isinstance(payload.get("days"), list):
            employee_id = payload.get("employeeId") or ""
            if not employee_id:
                raise InvalidArgumentError("employeeId is required")
            adjustment = await service.build_adjustment(employee_id, payload["days"])
            return dataclasses.asdict(adjustment)
        status = await service.resolve_day(payload)
        return status.to_dict()

    async def _cmd_delete_payroll(self, args: argparse.Namespace) -> dict[str, Any]:
        service = self._payroll_service()
        if args.employee_id:
            deleted = await service.delete_payroll_by_employee(
                args.company_id,
                args.pay_date,
                args.employee_id,
                args.cutoff_start_date,
                args.cutoff_end_date,
            )
        else:
            deleted = await service.delete_payroll_by_period(
                args.company_id,
                args.pay_date,
                args.cutoff_start_date,
                args.cutoff_end_date,
            )
        return {"success": True, "deleted": deleted}


def main() -> int:
    """CLI entry point."""
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
