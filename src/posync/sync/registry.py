"""
Registry of tracked tables.

Maps each logical table name to its SQLModel class. The registry is declared
once at startup; order matters because parents must reach a store before
the rows that reference them.
"""
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Type

from posync.models.base import TrackedRecord
from posync.models.catalog import Category, Product, ProductVariant, User
from posync.models.sales import Transaction, TransactionItem
from posync.sync.errors import UnknownTableError


class TableRegistry:
    """Ordered mapping of logical table name -> model class."""

    def __init__(self, entries: Iterable[Tuple[str, Type[TrackedRecord]]] = ()):
        self._models: Dict[str, Type[TrackedRecord]] = {}
        for name, model in entries:
            self.register(name, model)

    def register(self, name: str, model: Type[TrackedRecord]) -> None:
        if name in self._models:
            raise ValueError(f"Table already registered: {name}")
        self._models[name] = model

    def model_for(self, name: str) -> Type[TrackedRecord]:
        try:
            return self._models[name]
        except KeyError:
            raise UnknownTableError(name) from None

    def names(self) -> List[str]:
        return list(self._models)

    def models(self) -> List[Type[TrackedRecord]]:
        return list(self._models.values())

    def restricted_to(self, names: Optional[Iterable[str]]) -> "TableRegistry":
        """Return a registry holding only `names`, keeping registry order."""
        if names is None:
            return self
        wanted = set(names)
        unknown = wanted - set(self._models)
        if unknown:
            raise UnknownTableError(sorted(unknown)[0])
        return TableRegistry((n, m) for n, m in self._models.items() if n in wanted)

    def __contains__(self, name: object) -> bool:
        return name in self._models

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)


def default_registry() -> TableRegistry:
    return TableRegistry([
        ("users", User),
        ("categories", Category),
        ("products", Product),
        ("product_variants", ProductVariant),
        ("transactions", Transaction),
        ("transaction_items", TransactionItem),
    ])
