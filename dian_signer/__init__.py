"""
DIAN XAdES-EPES Signing Engine

Signs UBL 2.1 electronic invoicing documents (invoices, credit notes,
debit notes, support documents) for the Colombian tax authority.
"""

__version__ = "1.0.0"
