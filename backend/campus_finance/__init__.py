"""Campus finance service: invoicing, collections, funding and general ledger."""

__version__ = "0.3.0"
