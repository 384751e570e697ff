"""
Data Manager Module
===================

Responsibility:
- Loading of the firm-month panel (Parquet, CSV, Excel).
- Validation of declared key, label and feature columns.
- Missing-value resolution and binary-label checks.
- Ascending time ordering of observations.
"""

from .data_manager import DataManager

__all__ = ['DataManager']
