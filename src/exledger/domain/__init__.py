"""Domain layer for exledger application."""

__all__ = [
    "Ledger",
    "TransactionLog",
    "GroupReversalService",
    "CapitalCalculator",
    "CapitalHistoryService",
    "ProfitAnalyzer",
    "DebtService",
    "BundleService",
]

_SERVICES = {
    "Ledger": "exledger.domain.ledger",
    "TransactionLog": "exledger.domain.transaction_log",
    "GroupReversalService": "exledger.domain.reversal",
    "CapitalCalculator": "exledger.domain.capital",
    "CapitalHistoryService": "exledger.domain.history",
    "ProfitAnalyzer": "exledger.domain.profit",
    "DebtService": "exledger.domain.debts",
    "BundleService": "exledger.domain.bundle",
}


# Services import the database layer, which imports entities from this
# package, so they are resolved lazily
def __getattr__(name):
    if name in _SERVICES:
        import importlib
        return getattr(importlib.import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
