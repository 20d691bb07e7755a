"""Registry mapping serialization ids to gate definitions."""
from __future__ import annotations

import functools
import logging
from typing import Iterable, Optional

from texq_engine.errors import UnknownGateError
from texq_engine.gates.gate import GateBuilder, GateDefinition, GateFamily

log = logging.getLogger(__name__)


class GateCatalog:
    """Gates by serialized id, families by family id.

    Reverse lookup (`id_of`) goes by identity, so two gates with equal
    fields but different objects are still told apart.
    """

    def __init__(self, gates: Iterable[GateDefinition] = ()):
        self._by_id: dict[str, GateDefinition] = {}
        self._families: dict[str, GateFamily] = {}
        for gate in gates:
            self.register(gate)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, gate_id: str) -> bool:
        return gate_id in self._by_id

    def __iter__(self):
        return iter(self._by_id.values())

    @property
    def ids(self) -> list[str]:
        return list(self._by_id)

    def register(self, gate: GateDefinition) -> GateDefinition:
        existing = self._by_id.get(gate.serialized_id)
        if existing is not None and existing is not gate:
            raise ValueError(f"serialized id {gate.serialized_id!r} is already taken")
        self._by_id[gate.serialized_id] = gate
        return gate

    def register_family(self, family_id: str, family: GateFamily) -> GateFamily:
        if family_id in self._families and self._families[family_id] is not family:
            raise ValueError(f"family id {family_id!r} is already taken")
        for gate in family.all:
            self.register(gate)
        self._families[family_id] = family
        return family

    def lookup(self, gate_id: str) -> GateDefinition:
        try:
            return self._by_id[gate_id]
        except KeyError:
            raise UnknownGateError(gate_id) from None

    def find(self, gate_id: str) -> Optional[GateDefinition]:
        return self._by_id.get(gate_id)

    def id_of(self, gate: GateDefinition) -> Optional[str]:
        registered = self._by_id.get(gate.serialized_id)
        return gate.serialized_id if registered is gate else None

    def family(self, family_id: str) -> GateFamily:
        try:
            return self._families[family_id]
        except KeyError:
            raise UnknownGateError(family_id) from None

    def all_family_variants(self, family_id: str) -> list[GateDefinition]:
        return self.family(family_id).all

    def adjoint_of(self, gate: GateDefinition) -> Optional[GateDefinition]:
        if gate.adjoint_id is None:
            return None
        return self.lookup(gate.adjoint_id)


def placeholder_gate(gate_id: str, height: int = 1) -> GateDefinition:
    """Stand-in for an id this build does not know; keeps the id for saving."""
    return (GateBuilder()
            .set_serialized_id(gate_id)
            .set_symbol(gate_id)
            .set_title("Unknown Gate")
            .set_blurb(f"No gate is registered under {gate_id!r}.")
            .set_height(height)
            .set_drawer_id("placeholder")
            .promise_has_no_net_effect()
            .gate)


@functools.lru_cache(maxsize=None)
def default_catalog() -> GateCatalog:
    """Catalog of every gate known to the serializer."""
    from texq_engine.gates import all_gates

    catalog = GateCatalog()
    for family_id, family in all_gates.FAMILIES.items():
        catalog.register_family(family_id, family)
    for gate in all_gates.KNOWN_TO_SERIALIZER:
        catalog.register(gate)
    log.debug("default catalog holds %d gates in %d families",
              len(catalog), len(all_gates.FAMILIES))
    return catalog
