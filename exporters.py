import os
import csv
import json
import logging
from typing import Any, Dict, List
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter

from models import EnrichedRecord, SubscriptionSummary

logger = logging.getLogger(__name__)

ENRICHED_COLUMNS = [
    'Subscription ID',
    'Customer ID',
    'Customer Email',
    'First Invoice ID',
    'Last Invoice ID',
    'First Invoice Subtotal',
    'First Invoice Total',
    'First Invoice Discounts',
    'Last Invoice Subtotal',
    'Last Invoice Total',
    'Last Invoice Discounts',
    'Checkout Session Status',
    'Checkout Session ID',
    'Checkout Session Json',
    'Payment Intent Created',
    'Payment Intent Json',
]

# JSON text columns get a narrower width cap in Excel
JSON_COLUMNS = {'First Invoice Discounts', 'Last Invoice Discounts', 'Checkout Session Json', 'Payment Intent Json'}


def _ensure_parent_dir(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _dump_json(data: Any, path: str) -> None:
    _ensure_parent_dir(path)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def write_snapshot(summaries: List[SubscriptionSummary], path: str = 'invoices.json') -> None:
    """
    Persist resolved summaries as a pretty-printed JSON array.

    Args:
        summaries: Summaries produced by the invoice pair resolver
        path: Output file path
    """
    _dump_json([summary.to_dict() for summary in summaries], path)
    logger.info(f"Invoices data saved to {path} ({len(summaries)} entries)")


def read_snapshot(path: str = 'invoices.json') -> List[SubscriptionSummary]:
    """Load summaries back from a file written by write_snapshot."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return [SubscriptionSummary.from_dict(entry) for entry in data]


def write_enriched_json(records: List[EnrichedRecord], path: str = 'invoices_updated.json', layout: str = 'nested') -> None:
    _dump_json([record.to_dict(layout) for record in records], path)
    logger.info(f"Enriched invoices data saved to {path} ({len(records)} records)")


def _cell(value: Any) -> Any:
    """Flatten a value for a tabular cell: None -> '', lists/dicts -> JSON text."""
    if value is None:
        return ''
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


def record_to_row(record: EnrichedRecord) -> Dict[str, Any]:
    """Flatten an enriched record into one row keyed by ENRICHED_COLUMNS."""
    summary = record.summary
    session = record.checkout_session
    intent = record.payment_intent

    return {
        'Subscription ID': summary.subscription_id,
        'Customer ID': summary.customer_id,
        'Customer Email': _cell(summary.customer_email),
        'First Invoice ID': summary.first_invoice_id,
        'Last Invoice ID': summary.last_invoice_id,
        'First Invoice Subtotal': _cell(record.first_invoice.subtotal),
        'First Invoice Total': _cell(record.first_invoice.total_amount),
        'First Invoice Discounts': _cell(record.first_invoice.total_discount_amounts),
        'Last Invoice Subtotal': _cell(record.last_invoice.subtotal),
        'Last Invoice Total': _cell(record.last_invoice.total_amount),
        'Last Invoice Discounts': _cell(record.last_invoice.total_discount_amounts),
        'Checkout Session Status': _cell(session.status),
        'Checkout Session ID': _cell(session.id),
        'Checkout Session Json': _cell(session.raw_payload),
        'Payment Intent Created': _cell(intent.created),
        'Payment Intent Json': _cell(intent.raw_payload),
    }


def write_enriched_csv(records: List[EnrichedRecord], path: str = 'invoices_updated.csv') -> None:
    """
    Export enriched records to CSV with the fixed ENRICHED_COLUMNS header.

    Args:
        records: Enriched records
        path: Output CSV file path
    """
    _ensure_parent_dir(path)
    with open(path, 'w', newline='', encoding='utf-8') as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=ENRICHED_COLUMNS)
        writer.writeheader()
        writer.writerows(record_to_row(record) for record in records)

    logger.info(f"Successfully exported {len(records)} records to {path}")


def write_enriched_excel(records: List[EnrichedRecord], path: str = 'invoices_updated.xlsx') -> None:
    """
    Export enriched records to Excel (.xlsx) using the CSV column set.

    Args:
        records: Enriched records
        path: Output Excel file path
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Invoices"

    # Define header style
    header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_alignment = Alignment(horizontal="center", vertical="center")

    for col_num, column in enumerate(ENRICHED_COLUMNS, 1):
        cell = ws.cell(row=1, column=col_num, value=column)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = header_alignment

    for row_num, record in enumerate(records, 2):
        row = record_to_row(record)
        for col_num, column in enumerate(ENRICHED_COLUMNS, 1):
            ws.cell(row=row_num, column=col_num, value=row[column])

    # Auto-adjust column widths
    for col_num, column in enumerate(ENRICHED_COLUMNS, 1):
        max_length = len(column)
        for row in ws.iter_rows(min_row=2, max_row=ws.max_row, min_col=col_num, max_col=col_num):
            cell_value = row[0].value
            if cell_value:
                max_length = max(max_length, len(str(cell_value)))
        cap = 30 if column in JSON_COLUMNS else 50
        ws.column_dimensions[get_column_letter(col_num)].width = min(max_length + 2, cap)

    # Freeze header row
    ws.freeze_panes = 'A2'

    _ensure_parent_dir(path)
    wb.save(path)
    logger.info(f"Successfully exported {len(records)} records to {path}")


def write_enriched(records: List[EnrichedRecord], path: str, output_format: str, layout: str = 'nested') -> None:
    """Dispatch to the writer for output_format ('json', 'csv' or 'xlsx')."""
    if output_format == 'json':
        write_enriched_json(records, path, layout=layout)
    elif output_format == 'csv':
        write_enriched_csv(records, path)
    elif output_format == 'xlsx':
        write_enriched_excel(records, path)
    else:
        raise ValueError(f"Unknown output format: {output_format}")
