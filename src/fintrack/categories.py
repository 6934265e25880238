"""
Category lists — add, remove, rename, and reorder labels.

Every operation returns a new :class:`CategoryData`; the input is left as is.
"""

from __future__ import annotations

from fintrack.models.ledger import CategoryData, TransactionType

DEFAULT_INCOME_CATEGORIES = [
    "Salary",
    "Bonus",
    "Gifts",
    "Refunds",
    "Other",
]

DEFAULT_EXPENSE_CATEGORIES = [
    "Housing",
    "Groceries",
    "Transportation",
    "Utilities",
    "Health",
    "Dining",
    "Entertainment",
    "Education",
    "Investment",
    "Other",
]


class DuplicateCategoryError(ValueError):
    """The label already exists in that list."""

    def __init__(self, name: str, type: TransactionType) -> None:
        super().__init__(f"Category '{name}' already exists for {type.value.lower()}")
        self.name = name
        self.type = type


def default_categories() -> CategoryData:
    return CategoryData(
        income=list(DEFAULT_INCOME_CATEGORIES),
        expense=list(DEFAULT_EXPENSE_CATEGORIES),
    )


def add_category(data: CategoryData, type: TransactionType, name: str) -> CategoryData:
    """Append ``name`` to the list for ``type``.

    Raises:
        ValueError: ``name`` is blank.
        DuplicateCategoryError: ``name`` is already in the list.
    """
    label = name.strip()
    if not label:
        raise ValueError("Category name must not be empty")
    labels = data.for_type(type)
    if label in labels:
        raise DuplicateCategoryError(label, type)
    return data.with_list(type, [*labels, label])


def remove_category(data: CategoryData, type: TransactionType, name: str) -> CategoryData:
    """Drop ``name`` from the list for ``type``; unknown names are a no-op.

    Existing transactions keep their label.
    """
    return data.with_list(type, [c for c in data.for_type(type) if c != name])


def rename_category(
    data: CategoryData,
    type: TransactionType,
    old: str,
    new: str,
) -> CategoryData:
    label = new.strip()
    if not label:
        raise ValueError("Category name must not be empty")
    labels = data.for_type(type)
    if old not in labels:
        raise KeyError(old)
    if label != old and label in labels:
        raise DuplicateCategoryError(label, type)
    return data.with_list(type, [label if c == old else c for c in labels])


def move_category(
    data: CategoryData,
    type: TransactionType,
    name: str,
    new_index: int,
) -> CategoryData:
    """Move ``name`` to position ``new_index`` (clamped to the list bounds)."""
    labels = data.for_type(type)
    if name not in labels:
        raise KeyError(name)
    labels.remove(name)
    index = max(0, min(new_index, len(labels)))
    labels.insert(index, name)
    return data.with_list(type, labels)
