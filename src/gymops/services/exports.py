from __future__ import annotations

import csv
from collections import Counter
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Font

from gymops.domain.rows import FOLLOW_UPS, LEADS, PROFILES, TASKS
from gymops.domain.stages import FunnelStage
from gymops.store.sqlite import SqliteStore

TABLES = [LEADS, PROFILES, FOLLOW_UPS, TASKS]
FUNNEL_SHEET = "funnel"

# Never exported.
EXCLUDED_COLUMNS = {"password_hash"}


def export_excel(store: SqliteStore, out_path: Path) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    wb = Workbook()
    wb.remove(wb.active)

    for table in TABLES:
        headers, rows = _table_rows(store, table)
        ws = wb.create_sheet(title=table)
        if headers:
            ws.append(headers)
            ws.freeze_panes = "A2"
            for cell in ws[1]:
                cell.font = Font(bold=True)
            for row in rows:
                ws.append(row)

    summary = wb.create_sheet(title=FUNNEL_SHEET)
    summary.append(["funnel_stage", "status", "leads"])
    for (stage, status), total in funnel_summary(store).items():
        summary.append([stage, status, total])

    wb.save(out_path)


def export_csv_tables(store: SqliteStore, out_dir: Path) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for table in TABLES:
        headers, rows = _table_rows(store, table)
        csv_path = out_dir / f"{table}.csv"
        with csv_path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            writer.writerow(headers)
            writer.writerows(rows)
        written.append(csv_path)
    return written


def funnel_summary(store: SqliteStore) -> dict[tuple[str, str], int]:
    """Lead counts per (funnel stage, status), stages in pipeline order."""
    counts = Counter(
        (row["funnel_stage"], row["status"])
        for row in store.fetch_all(f"SELECT funnel_stage, status FROM {LEADS}")
    )
    order = {stage.value: index for index, stage in enumerate(FunnelStage)}
    return dict(sorted(counts.items(), key=lambda item: (order.get(item[0][0], len(order)), item[0][1])))


def _table_rows(store: SqliteStore, table: str) -> tuple[list[str], list[list]]:
    rows = store.fetch_all(f"SELECT * FROM {table} ORDER BY created_at")
    if not rows:
        return [], []
    headers = [key for key in rows[0].keys() if key not in EXCLUDED_COLUMNS]
    return headers, [[row[h] for h in headers] for row in rows]
