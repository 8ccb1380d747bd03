"""
Central constants for the mortgage package dashboard.
"""
from __future__ import annotations

BANK_OPTIONS = (
    "DBS",
    "OCBC",
    "UOB",
    "POSB",
    "Maybank",
    "Standard Chartered",
    "HSBC",
    "Citibank",
    "RHB",
    "Hong Leong Finance",
)

PROPERTY_TYPE_OPTIONS = ("HDB", "Private", "HDB / Private", "Executive Condominium")

LOCKIN_PERIOD_OPTIONS = ("1 Year", "2 Years", "3 Years", "4 Years", "5 Years", "No Lock-in")

CATEGORY_OPTIONS = ("Fixed", "Floating (Completed)", "BUC")

# Rows written before the category column existed are read back as Fixed.
DEFAULT_CATEGORY = "Fixed"

# Multi-line text fields (rates, features) are stored with this literal separator.
LINE_BREAK_MARKER = "<br>"

# Value used by every categorical filter dropdown to mean "no filter".
FILTER_ALL = "all"

SORT_FIELDS = ("package_name", "bank", "min_loan_size", "last_updated")

# (value, label) pairs for the sort dropdown; value is "<field>-<order>".
SORT_CHOICES = (
    ("last_updated-desc", "Latest Updated"),
    ("last_updated-asc", "Oldest Updated"),
    ("min_loan_size-asc", "Loan Size (Low to High)"),
    ("min_loan_size-desc", "Loan Size (High to Low)"),
    ("bank-asc", "Bank (A-Z)"),
    ("bank-desc", "Bank (Z-A)"),
)
