"""NYS sales tax ledger modules."""
