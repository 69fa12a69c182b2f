import csv
import re
from io import StringIO
from typing import Mapping, Sequence


CHART_COLUMNS: dict[str, list[tuple[str, str]]] = {
    "cashflow": [
        ("Month", "month"),
        ("Inflow", "inflow"),
        ("Outflow", "outflow"),
        ("Net", "net"),
    ],
    "expenses": [
        ("Category", "category"),
        ("Amount", "amount"),
    ],
    "networth": [
        ("Month", "month"),
        ("Assets", "assets"),
        ("Liabilities", "liabilities"),
        ("NetWorth", "net_worth"),
    ],
}


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def _cell(value: object) -> str:
    if isinstance(value, float):
        return f"{value:.2f}"
    if isinstance(value, int):
        return str(value)
    return sanitize_csv_value(str(value or ""))


def export_chart(chart: str, rows: Sequence[Mapping[str, object]]) -> str:
    columns = CHART_COLUMNS.get(chart)
    if columns is None:
        raise ValueError("Invalid chart type")
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow([header for header, _ in columns])
    for row in rows:
        writer.writerow([_cell(row.get(key)) for _, key in columns])
    return output.getvalue()
