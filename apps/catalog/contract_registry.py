from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from prometheus_client import Counter

from .custom_store import CustomContractStore
from .models import CHAINS, RegistryEntry, is_known_chain, normalize_address
from .predefined import load_predefined_registry, normalize_chain_map

logger = logging.getLogger(__name__)

REGISTRY_MUTATIONS_TOTAL = Counter(
    'pagedao_catalog_registry_mutations_total',
    'Registry add/remove/update calls by outcome',
    ['action', 'outcome']
)

_IDENTITY_KEYS = {'address', 'chain', 'addedAt', 'dateAdded'}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ContractRegistry:
    """Merged view of predefined and user-added contracts, per chain.

    Predefined entries come first, custom entries follow in insertion order.
    The merged view is rebuilt from both layers after every mutation.
    """

    def __init__(
        self,
        store: CustomContractStore,
        predefined: dict[str, list[dict[str, Any]]] | None = None,
        clock: Callable[[], datetime] = _utc_now
    ) -> None:
        self.store = store
        self._clock = clock
        self._predefined = normalize_chain_map(
            predefined if predefined is not None else load_predefined_registry()
        )
        self._custom = self.store.load()
        self._merged: dict[str, list[RegistryEntry]] = {}
        self._recompute()

    def _recompute(self) -> None:
        merged: dict[str, list[RegistryEntry]] = {}
        for chain in CHAINS:
            seen: set[str] = set()
            entries: list[RegistryEntry] = []
            for raw in [*self._predefined[chain], *self._custom[chain]]:
                try:
                    entry = RegistryEntry.from_dict(raw, chain=chain)
                except ValueError:
                    logger.warning('skipping invalid registry entry chain=%s entry=%r', chain, raw)
                    continue
                if entry.address in seen:
                    continue
                seen.add(entry.address)
                entries.append(entry)
            merged[chain] = entries
        self._merged = merged

    def _persist(self, candidate: dict[str, list[dict[str, Any]]]) -> bool:
        try:
            self.store.save(candidate)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning('custom contract store write failed path=%s: %s', self.store.path, exc)
            return False
        return True

    def _commit(self, action: str, candidate: dict[str, list[dict[str, Any]]]) -> bool:
        if not self._persist(candidate):
            REGISTRY_MUTATIONS_TOTAL.labels(action=action, outcome='persist_failed').inc()
            return False
        self._custom = candidate
        self._recompute()
        REGISTRY_MUTATIONS_TOTAL.labels(action=action, outcome='ok').inc()
        return True

    def _reject(self, action: str, reason: str) -> bool:
        REGISTRY_MUTATIONS_TOTAL.labels(action=action, outcome=reason).inc()
        return False

    def get_entries(self, chain: str = 'all') -> list[RegistryEntry]:
        if chain == 'all':
            return [copy.deepcopy(entry) for name in CHAINS for entry in self._merged[name]]
        if not is_known_chain(chain):
            logger.warning('chain %r not found in registry', chain)
            return []
        return [copy.deepcopy(entry) for entry in self._merged[chain]]

    def find_by_address(self, address: str, chain: str | None = None) -> RegistryEntry | None:
        target = normalize_address(address)
        if not target:
            return None
        if chain is not None and chain != 'all':
            if not is_known_chain(chain):
                return None
            chains: tuple[str, ...] = (chain,)
        else:
            chains = CHAINS

        for name in chains:
            for entry in self._merged[name]:
                if entry.address == target:
                    return copy.deepcopy(entry)
        return None

    def add_entry(self, chain: str, entry: RegistryEntry | dict[str, Any]) -> bool:
        if not is_known_chain(chain):
            return self._reject('add', 'unknown_chain')

        payload = entry.to_dict(include_chain=False) if isinstance(entry, RegistryEntry) else dict(entry)
        address = normalize_address(payload.get('address'))
        name = str(payload.get('name') or '').strip()
        if not address or not name:
            return self._reject('add', 'invalid')
        if self.find_by_address(address, chain) is not None:
            return self._reject('add', 'duplicate')

        record = {key: value for key, value in payload.items() if key not in _IDENTITY_KEYS}
        record['address'] = address
        record['name'] = name
        record['addedAt'] = self._clock().isoformat()

        candidate = copy.deepcopy(self._custom)
        candidate[chain].append(record)
        if not self._commit('add', candidate):
            return False
        logger.info('registry entry added chain=%s address=%s name=%s', chain, address, name)
        return True

    def remove_entry(self, chain: str, address: str) -> bool:
        if not is_known_chain(chain):
            return self._reject('remove', 'unknown_chain')

        target = normalize_address(address)
        current = self._custom[chain]
        remaining = [raw for raw in current if normalize_address(raw.get('address')) != target]
        if len(remaining) == len(current):
            return self._reject('remove', 'missing')

        candidate = copy.deepcopy(self._custom)
        candidate[chain] = remaining
        if not self._commit('remove', candidate):
            return False
        logger.info('registry entry removed chain=%s address=%s', chain, target)
        return True

    def update_entry(self, chain: str, address: str, changes: dict[str, Any]) -> bool:
        if not is_known_chain(chain):
            return self._reject('update', 'unknown_chain')

        target = normalize_address(address)
        patch = {key: value for key, value in changes.items() if key not in _IDENTITY_KEYS}
        if 'name' in patch and not str(patch['name'] or '').strip():
            return self._reject('update', 'invalid')

        candidate = copy.deepcopy(self._custom)
        for raw in candidate[chain]:
            if normalize_address(raw.get('address')) != target:
                continue
            raw.update(patch)
            raw['lastUpdated'] = self._clock().isoformat()
            if not self._commit('update', candidate):
                return False
            logger.info('registry entry updated chain=%s address=%s fields=%s', chain, target, sorted(patch))
            return True
        return self._reject('update', 'missing')

    def replace_predefined(self, mapping: dict[str, list[dict[str, Any]]]) -> None:
        self._predefined = normalize_chain_map(mapping)
        self._recompute()

    def to_chain_map(self) -> dict[str, list[dict[str, Any]]]:
        return {
            chain: [entry.to_dict(include_chain=False) for entry in self._merged[chain]]
            for chain in CHAINS
        }
