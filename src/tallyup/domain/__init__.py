"""Domain layer for tallyup application."""

__all__ = [
    "AccountService",
    "AmazonService",
    "CategoryMappingService",
    "CSVImportService",
    "IgnoreRuleService",
    "PeriodService",
    "RecurringService",
    "SuggestionService",
    "SyncService",
    "TransactionService",
]

_SERVICES = {
    "AccountService": "tallyup.domain.account",
    "AmazonService": "tallyup.domain.amazon",
    "CategoryMappingService": "tallyup.domain.rules",
    "CSVImportService": "tallyup.domain.csv_import",
    "IgnoreRuleService": "tallyup.domain.rules",
    "PeriodService": "tallyup.domain.period",
    "RecurringService": "tallyup.domain.recurring",
    "SuggestionService": "tallyup.domain.suggestions",
    "SyncService": "tallyup.domain.sync",
    "TransactionService": "tallyup.domain.transaction",
}


# Import services lazily so the database layer can import entities
# without pulling in every service
def __getattr__(name):
    if name in _SERVICES:
        import importlib

        return getattr(importlib.import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
