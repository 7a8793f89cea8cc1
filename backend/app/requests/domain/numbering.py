from datetime import datetime
from typing import Optional


def year_suffix(moment: datetime) -> str:
    return f"{moment.year % 100:02d}"


def format_doc_no(series: str, suffix: str, number: int, width: int = 5) -> str:
    return f"{series}-{suffix}-{number:0{width}d}"


def next_doc_no(series: str, suffix: str, latest_doc_no: Optional[str], width: int = 5) -> str:
    """
    Next document number for a series within a year, e.g. PO-26-00013 after PO-26-00012.

    Numbering restarts at 1 each year. An unparseable latest number is treated as absent.
    """
    next_number = 1
    if latest_doc_no:
        parts = latest_doc_no.split("-")
        if len(parts) >= 3 and parts[2].isdigit():
            next_number = int(parts[2]) + 1
    return format_doc_no(series, suffix, next_number, width)
