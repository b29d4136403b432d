from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from .models import CHAINS

logger = logging.getLogger(__name__)


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def resolve_store_path(path_value: str) -> Path:
    path = Path(path_value)
    if path.is_absolute():
        return path
    return _repo_root() / path


def empty_chain_map() -> dict[str, list[dict[str, Any]]]:
    return {chain: [] for chain in CHAINS}


class CustomContractStore:
    """Namespaced JSON-file persistence for user-added registry entries.

    The file holds one record per namespace; this store only ever reads and
    rewrites its own record, as a whole, so the last writer wins.
    """

    def __init__(self, path: Path | str, namespace: str) -> None:
        self.path = Path(path)
        self.namespace = namespace

    def _read_document(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        payload = json.loads(self.path.read_text(encoding='utf-8'))
        if not isinstance(payload, dict):
            raise ValueError(f'store document at {self.path} is not an object')
        return payload

    def load(self) -> dict[str, list[dict[str, Any]]]:
        result = empty_chain_map()
        try:
            record = self._read_document().get(self.namespace)
        except (OSError, ValueError) as exc:
            logger.warning('custom contract store unreadable path=%s: %s', self.path, exc)
            return result

        if not isinstance(record, dict):
            return result

        for chain in CHAINS:
            entries = record.get(chain)
            if isinstance(entries, list):
                result[chain] = [dict(entry) for entry in entries if isinstance(entry, dict)]
        return result

    def save(self, entries: dict[str, list[dict[str, Any]]]) -> None:
        try:
            document = self._read_document()
        except (OSError, ValueError) as exc:
            logger.warning(
                'custom contract store unreadable, rewriting it with only namespace=%s path=%s: %s',
                self.namespace, self.path, exc
            )
            document = {}

        document[self.namespace] = {chain: list(entries.get(chain, [])) for chain in CHAINS}

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix='.custom-contracts.', dir=str(self.path.parent))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as handle:
                json.dump(document, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def clear(self) -> None:
        self.save(empty_chain_map())
