"""Shared domain error messages and error types."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class DependencyError(DomainError):
    """Operation blocked due to dependent domain data."""


class MalformedRowError(ValidationError):
    """A single input row has an unparseable date or amount.

    Never fatal: the pipeline skips the row and counts it.
    """

    def __init__(self, row_num: int, reason: str):
        super().__init__(f"Row {row_num}: {reason}")
        self.row_num = row_num
        self.reason = reason


class MissingPeriodError(NotFoundError):
    """Target period does not exist; fatal for the whole batch."""


class MissingAccountError(NotFoundError):
    """Target account does not exist; fatal for the whole batch."""


def account_not_found(account_id: int) -> str:
    """Return message for missing account."""
    return f"Account {account_id} not found"


def period_not_found(period_id: int) -> str:
    """Return message for missing period."""
    return f"Period {period_id} not found"


def transaction_not_found(transaction_id: int) -> str:
    """Return message for missing transaction."""
    return f"Transaction {transaction_id} not found"


def definition_not_found(definition_id: int) -> str:
    """Return message for missing recurring definition."""
    return f"Recurring definition {definition_id} not found"


def batch_not_found(batch_id: int) -> str:
    """Return message for missing import batch."""
    return f"Import batch {batch_id} not found"


def order_not_found(order_id: int) -> str:
    """Return message for missing Amazon order."""
    return f"Amazon order {order_id} not found"


def transaction_already_linked(transaction_id: int, amazon_order_id: str) -> str:
    """Return message when a transaction is claimed by another order."""
    return f"Transaction {transaction_id} already linked to order {amazon_order_id}"


def account_delete_blocked(account_id: int, transaction_count: int) -> str:
    """Return message when account has dependent transactions."""
    return (
        f"Cannot delete account {account_id}: it has "
        f"{transaction_count} transaction{'s' if transaction_count != 1 else ''}. "
        "Undo its imports or delete them first."
    )
