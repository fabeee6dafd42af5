#!/usr/bin/env python3
"""
Dead Drop command line interface.

    dead-drop export users posts --range last_week
    dead-drop export --separate-files --async
    dead-drop import storage/dead-drop/database-export-2024-01-01-120000.sql --yes
    dead-drop import dead-drop/users.sql --cloud --disk s3
    dead-drop status
    dead-drop status 3f1c...
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from deaddrop.config import ConfigManager
from deaddrop.errors import DeadDropError
from deaddrop.export_status import ExportStatusRecord
from deaddrop.import_executor import ImportResult
from deaddrop.request_types import ExportRequest, ImportRequest
from deaddrop.service import DeadDrop

logger = logging.getLogger(__name__)

DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

DATE_PRESETS = ('today', 'yesterday', 'last_week', 'last_month')

STATUS_LABELS = {
    'pending': 'Pending',
    'processing': 'Processing',
    'completed': 'Completed',
    'failed': 'Failed',
}


def format_bytes(size: int, precision: int = 2) -> str:
    units = ['B', 'KB', 'MB', 'GB', 'TB']
    value = float(max(size, 0))
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{int(value)} B"
    return f"{round(value, precision)} {units[unit]}"


def preset_date_conditions(preset: str, column: str = 'created_at',
                           now: Optional[datetime] = None) -> List[List[Any]]:
    """Where conditions for the named date ranges"""
    now = now or datetime.now()
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if preset == 'today':
        return [[column, '>=', start_of_today.strftime(DATE_FORMAT)]]
    if preset == 'yesterday':
        return [
            [column, '>=', (start_of_today - timedelta(days=1)).strftime(DATE_FORMAT)],
            [column, '<', start_of_today.strftime(DATE_FORMAT)],
        ]
    if preset == 'last_week':
        return [[column, '>=', (start_of_today - timedelta(days=7)).strftime(DATE_FORMAT)]]
    if preset == 'last_month':
        return [[column, '>=', (start_of_today - timedelta(days=30)).strftime(DATE_FORMAT)]]
    raise ValueError(f"Unknown date range: {preset}")


def custom_date_conditions(date_from: Optional[str], date_to: Optional[str],
                           column: str = 'created_at') -> List[List[Any]]:
    conditions = []
    if date_from:
        conditions.append([column, '>=', datetime.fromisoformat(date_from).strftime(DATE_FORMAT)])
    if date_to:
        conditions.append([column, '<=', datetime.fromisoformat(date_to).strftime(DATE_FORMAT)])
    return conditions


def print_table(headers: Sequence[str], rows: Sequence[Sequence[Any]], out=None):
    out = out or sys.stdout
    cells = [[str(c) for c in row] for row in rows]
    widths = [max([len(h)] + [len(r[i]) for r in cells]) for i, h in enumerate(headers)]
    rule = '+' + '+'.join('-' * (w + 2) for w in widths) + '+'

    def line(values):
        return '| ' + ' | '.join(v.ljust(w) for v, w in zip(values, widths)) + ' |'

    print(rule, file=out)
    print(line(headers), file=out)
    print(rule, file=out)
    for row in cells:
        print(line(row), file=out)
    print(rule, file=out)


def _progress_printer(total: int) -> Callable[[int], None]:
    def report(current: int):
        if total:
            print(f"\r  {current}/{total} records ({current / total * 100:.1f}%)", end='', flush=True)
        else:
            print(f"\r  {current} records", end='', flush=True)
    return report


def build_overrides(args: argparse.Namespace) -> Optional[Dict[str, Any]]:
    overrides: Dict[str, Any] = {}
    where = []
    if args.range:
        where.extend(preset_date_conditions(args.range, args.date_column))
    where.extend(custom_date_conditions(args.date_from, args.date_to, args.date_column))
    if where:
        overrides['where'] = where
    if args.limit is not None:
        overrides['limit'] = args.limit
    return overrides or None


def cmd_export(service: DeadDrop, args: argparse.Namespace) -> int:
    exporter = service.exporter
    overrides = build_overrides(args)
    tables = args.tables or None
    request = ExportRequest.from_config(service.config, tables, args.connection, args.output, overrides)

    if args.separate_files:
        if args.run_async:
            for table in request.tables:
                export_id = exporter.export_async(table, request.overrides, request.connection, request.output_path)
                print(f"{table}: queued as {export_id}")
            return 0

        for table in request.tables:
            result = exporter.export_table(table, request.connection, request.output_path, request.overrides)
            print(f"{table}: {result.records} records -> {result.file} ({format_bytes(result.size)})")
            if result.cloud_path:
                print(f"  uploaded to {result.storage_disk}:{result.cloud_path}")
        return 0

    if args.run_async:
        export_id = exporter.export_tables_to_single_file_async(
            list(request.tables), request.output_path, request.connection, request.overrides)
        print(f"Export queued: {export_id}")
        print(f"Check progress with: dead-drop status {export_id}")
        return 0

    total = exporter.count_request(request)
    print(f"Exporting {total} records from {len(request.tables)} tables...")
    result = exporter.export_request(request, _progress_printer(total))
    print()
    print_table(['Property', 'Value'], [
        ['File', result.file],
        ['Tables', ', '.join(result.tables)],
        ['Records', result.total_records],
        ['Size', format_bytes(result.size)],
        ['Cloud path', result.cloud_path or '-'],
    ])
    return 0


def display_import_result(result: ImportResult):
    if result.failed == 0:
        print("Import completed successfully!")
    else:
        print("Import completed with errors")
    print_table(['Property', 'Value'], [
        ['Source', Path(result.source).name],
        ['Total Statements', result.total],
        ['Executed', result.executed],
        ['Failed', result.failed],
    ])
    if result.errors:
        print("Errors:")
        print_table(['Statement', 'Error'], [[e.statement, e.error] for e in result.errors])


def cmd_import(service: DeadDrop, args: argparse.Namespace) -> int:
    connection = args.connection or service.config.default_connection
    if args.cloud:
        request = ImportRequest.from_cloud(args.source, connection, args.disk or service.config.storage_disk)
    else:
        request = ImportRequest.from_local(args.source, connection)

    if not args.yes:
        answer = input(f"Import {request.source} into '{connection}'? [y/N] ")
        if answer.strip().lower() not in ('y', 'yes'):
            print("Import cancelled.")
            return 0

    if args.run_async:
        import_id = service.importer.import_request_async(request)
        print(f"Import queued: {import_id}")
        return 0

    result = service.importer.import_request(request)
    display_import_result(result)
    return 1 if result.failed else 0


def _target_label(record: ExportStatusRecord) -> str:
    metadata = record.metadata or {}
    if record.type == 'export':
        tables = metadata.get('tables') or ['unknown']
        return metadata.get('table') or tables[0]
    return metadata.get('source', 'unknown')


def display_status(record: ExportStatusRecord):
    rows = [
        ['ID', record.id],
        ['Type', record.type.capitalize()],
        ['Status', STATUS_LABELS.get(record.status, record.status)],
    ]
    for key, value in (record.metadata or {}).items():
        rows.append([key.capitalize(), ', '.join(map(str, value)) if isinstance(value, list) else value])
    if record.progress_total:
        rows.append(['Progress', f"{record.progress_current}/{record.progress_total} "
                                 f"({round(record.progress_current / record.progress_total * 100, 1)}%)"])
    elif record.progress_current:
        rows.append(['Progress', f"{record.progress_current} records"])
    rows.append(['Created', record.created_at])
    rows.append(['Updated', record.updated_at])
    print_table(['Property', 'Value'], rows)

    if record.status == 'processing':
        print(f"Still processing... Refresh with: dead-drop status {record.id}")
    elif record.status == 'completed':
        print("Completed successfully!")
        for key, value in (record.result or {}).items():
            if key == 'size' and isinstance(value, int):
                value = format_bytes(value)
            print(f"  {key}: {value}")
    elif record.status == 'failed':
        print("Failed:")
        print(record.error or 'Unknown error')


def cmd_status(service: DeadDrop, args: argparse.Namespace) -> int:
    if args.id:
        record = service.status_store.get(args.id)
        if record is None:
            print(f"Export not found: {args.id}", file=sys.stderr)
            return 1
        display_status(record)
        return 0

    recent = service.status_store.get_recent(args.limit)
    if not recent:
        print("No recent exports found.")
        return 0

    print("Recent exports and imports:")
    print_table(['ID', 'Type', 'Target', 'Status', 'Created'], [
        [r.id[:8] + '...', r.type.capitalize(), _target_label(r),
         STATUS_LABELS.get(r.status, r.status), r.created_at]
        for r in recent
    ])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dead-drop", description="Dead Drop database export/import")
    parser.add_argument("--config", help="Path to a JSON config file (default: $DEAD_DROP_CONFIG)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="Export configured tables to SQL")
    export.add_argument("tables", nargs="*", help="Tables to export (default: every enabled table)")
    export.add_argument("--connection", help="Connection name")
    export.add_argument("--output", help="Output directory")
    export.add_argument("--separate-files", action="store_true", help="One file per table")
    export.add_argument("--range", choices=DATE_PRESETS, help="Preset date filter")
    export.add_argument("--from", dest="date_from", help="Only rows on or after this date (ISO format)")
    export.add_argument("--to", dest="date_to", help="Only rows on or before this date (ISO format)")
    export.add_argument("--date-column", default="created_at", help="Column used by date filters")
    export.add_argument("--limit", type=int, help="Override the row limit")
    export.add_argument("--async", dest="run_async", action="store_true", help="Run in the background")

    imp = sub.add_parser("import", help="Import a SQL dump")
    imp.add_argument("source", help="Local path, or cloud path with --cloud")
    imp.add_argument("--cloud", action="store_true", help="Read the source from cloud storage")
    imp.add_argument("--disk", help="Storage disk for --cloud (default: storage.disk)")
    imp.add_argument("--connection", help="Connection name")
    imp.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    imp.add_argument("--async", dest="run_async", action="store_true", help="Run in the background")

    status = sub.add_parser("status", help="Show export/import status")
    status.add_argument("id", nargs="?", help="Status id (default: list recent)")
    status.add_argument("--limit", type=int, default=10, help="Number of recent records")

    return parser


COMMANDS = {
    'export': cmd_export,
    'import': cmd_import,
    'status': cmd_status,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = ConfigManager().load_config(Path(args.config) if args.config else None)
    except DeadDropError as e:
        logging.basicConfig(format='%(asctime)s - %(levelname)s - %(message)s')
        logger.error(e.message)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    service = DeadDrop.from_config(config)
    try:
        return COMMANDS[args.command](service, args)
    except DeadDropError as e:
        logger.error(e.message)
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 2
    finally:
        service.close()


if __name__ == "__main__":
    raise SystemExit(main())
