"""Saved delivery contacts."""

from __future__ import annotations

import secrets
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from swiftrun.exceptions import SwiftRunValidationError
from swiftrun.models.customer import Customer, CustomerDraft


def _new_customer_id() -> str:
    return secrets.token_hex(6)


def _validate(payload: CustomerDraft | Mapping[str, Any]) -> CustomerDraft:
    if isinstance(payload, CustomerDraft):
        return payload
    try:
        return CustomerDraft.model_validate(dict(payload))
    except ValidationError as exc:
        fields = tuple(".".join(str(part) for part in err["loc"]) for err in exc.errors())
        raise SwiftRunValidationError(f"invalid customer: {', '.join(fields)}", fields=fields) from exc


class CustomerBook:
    """Address book with case-insensitive by-name dedup on save."""

    def __init__(
        self,
        customers: Iterable[Customer] = (),
        *,
        id_factory: Callable[[], str] = _new_customer_id,
    ) -> None:
        self._customers: list[Customer] = list(customers)
        self._id_factory = id_factory

    def __len__(self) -> int:
        return len(self._customers)

    def all(self) -> list[Customer]:
        return list(self._customers)

    def get(self, customer_id: str) -> Customer | None:
        for customer in self._customers:
            if customer.id == customer_id:
                return customer
        return None

    def find_by_name(self, name: str) -> Customer | None:
        folded = name.strip().casefold()
        for customer in self._customers:
            if customer.name.strip().casefold() == folded:
                return customer
        return None

    def search(self, term: str) -> list[Customer]:
        folded = term.strip().casefold()
        return [c for c in self._customers if folded in c.name.casefold()]

    def save(self, payload: CustomerDraft | Mapping[str, Any]) -> Customer | None:
        """Add a contact. Returns ``None`` if the name is already saved."""
        draft = _validate(payload)
        if self.find_by_name(draft.name) is not None:
            return None
        customer = Customer(id=self._id_factory(), **draft.model_dump())
        self._customers.append(customer)
        return customer

    def update(self, customer_id: str, payload: CustomerDraft | Mapping[str, Any]) -> Customer | None:
        draft = _validate(payload)
        for index, customer in enumerate(self._customers):
            if customer.id == customer_id:
                updated = Customer(id=customer_id, **draft.model_dump())
                self._customers[index] = updated
                return updated
        return None

    def delete(self, customer_id: str) -> bool:
        before = len(self._customers)
        self._customers = [c for c in self._customers if c.id != customer_id]
        return len(self._customers) != before
