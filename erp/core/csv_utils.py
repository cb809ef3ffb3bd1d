"""
CSV import/export helpers shared by the catalog, parties and sales apps.

Imports read an uploaded file with lower-cased, trimmed headers and hand each
row to a mapper. A mapper returns the cleaned row or raises ValueError; the
message is collected as "Row N: message" (N counts data rows from 2, matching
the line number a spreadsheet shows).
"""
import csv
import io
import logging

from django.http import HttpResponse

logger = logging.getLogger(__name__)


class CSVImportResult:
    def __init__(self):
        self.data = []
        self.errors = []
        self.total_rows = 0

    @property
    def valid_rows(self):
        return len(self.data)

    def as_dict(self):
        return {
            'total_rows': self.total_rows,
            'valid_rows': self.valid_rows,
            'errors': self.errors,
        }


def read_upload(uploaded_file):
    """Decode an uploaded CSV file (UTF-8, BOM tolerated) into text"""
    content = uploaded_file.read()
    if isinstance(content, bytes):
        content = content.decode('utf-8-sig')
    return content


def parse_csv(content, mapper, required_headers=None):
    """
    Parse CSV text and map every row

    Args:
        content: CSV text including the header line
        mapper: Callable taking a dict of lower-cased header -> stripped value
        required_headers: Headers that must be present, checked before any row
    """
    result = CSVImportResult()
    reader = csv.DictReader(io.StringIO(content))
    if not reader.fieldnames:
        result.errors.append('CSV file is empty')
        return result

    reader.fieldnames = [(name or '').strip().lower() for name in reader.fieldnames]
    missing = [h for h in (required_headers or []) if h not in reader.fieldnames]
    if missing:
        result.errors.append(f"Missing required columns: {', '.join(missing)}")
        return result

    for row_num, row in enumerate(reader, start=2):
        # Skip blank lines
        if not any((value or '').strip() for value in row.values() if isinstance(value, str)):
            continue
        result.total_rows += 1
        cleaned = {key: (value or '').strip() for key, value in row.items() if key}
        try:
            result.data.append(mapper(cleaned))
        except ValueError as e:
            result.errors.append(f"Row {row_num}: {e}")

    logger.info(f"Parsed CSV: {result.total_rows} rows, {result.valid_rows} valid, {len(result.errors)} errors")
    return result


def csv_response(filename, headers, rows):
    """Build a text/csv attachment response; csv.writer quotes commas, quotes and newlines"""
    response = HttpResponse(content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    writer = csv.writer(response)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(['' if value is None else value for value in row])
    return response
