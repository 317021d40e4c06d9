"""
Data Transformation Module
"""
from .aggregator import RollupSummary, aggregate_visitors
from .normalizers import to_visitor_record, to_visitor_records

__all__ = [
    "RollupSummary",
    "aggregate_visitors",
    "to_visitor_record",
    "to_visitor_records",
]
