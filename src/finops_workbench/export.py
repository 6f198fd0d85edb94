"""CSV export of the current result view."""

import csv
import io
from datetime import date, datetime

from .cells import cell_to_string
from .results import DerivedView


def view_to_csv(view: DerivedView) -> str:
    """
    Serialize a view as CSV text.

    Null cells become empty fields. Cells containing a comma, quote or newline
    are quoted, with embedded quotes doubled.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(view.headers)
    for row in view.rows:
        writer.writerow([cell_to_string(cell) for cell in row])
    return buffer.getvalue().rstrip("\n")


def export_filename(now: date | datetime | None = None) -> str:
    day = (now or datetime.now()).strftime("%Y-%m-%d")
    return f"query_results_{day}.csv"
