"""Patient ledger, receipt numbering and bill/receipt documents for the HIMS front desk."""

__version__ = "0.1.0"
