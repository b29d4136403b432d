import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

from apps.catalog.contract_registry import ContractRegistry
from apps.catalog.custom_store import CustomContractStore
from apps.catalog.models import RegistryEntry

FIXED_NOW = datetime(2026, 2, 18, 12, 0, tzinfo=timezone.utc)

PREDEFINED = {
    'base': [
        {'address': '0xAA', 'name': 'Alexandria: The Inevitable', 'type': 'alexandria_book'}
    ],
    'polygon': [
        {'address': '0x931204Fb8CEA7F7068995dCE924F0d76d571DF99', 'name': 'Readme Books by PageDAO'}
    ]
}


class ContractRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store_path = Path(self._tmp.name) / 'custom-contracts.json'
        self.store = CustomContractStore(self.store_path, 'test_contracts')

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _registry(self) -> ContractRegistry:
        return ContractRegistry(self.store, predefined=PREDEFINED, clock=lambda: FIXED_NOW)

    def test_duplicate_add_changes_registry_once(self) -> None:
        registry = self._registry()

        first = registry.add_entry('base', {'address': '0xABCDEF', 'name': 'Custom Book'})
        second = registry.add_entry('base', {'address': '0xabcdef', 'name': 'Custom Book Again'})

        self.assertTrue(first)
        self.assertFalse(second)
        self.assertEqual(len(registry.get_entries('base')), 2)

    def test_add_duplicate_of_predefined_is_rejected(self) -> None:
        registry = self._registry()
        self.assertFalse(registry.add_entry('base', {'address': '0xaa', 'name': 'Shadow'}))

    def test_find_by_address_is_case_insensitive(self) -> None:
        registry = self._registry()
        registry.add_entry('base', {'address': '0xABC123', 'name': 'Custom Book', 'type': 'nft'})

        found = registry.find_by_address('0xabc123', 'base')

        self.assertIsNotNone(found)
        self.assertEqual(found.name, 'Custom Book')
        self.assertEqual(found.address, '0xabc123')
        self.assertTrue(found.is_custom)
        self.assertEqual(found.added_at, FIXED_NOW.isoformat())

    def test_find_without_chain_attaches_discovered_chain(self) -> None:
        registry = self._registry()
        registry.add_entry('zora', {'address': '0xF00D', 'name': 'Zora Zine'})

        found = registry.find_by_address('0xf00d')

        self.assertEqual(found.chain, 'zora')
        self.assertIsNone(registry.find_by_address('0xf00d', 'base'))
        self.assertIsNone(registry.find_by_address('0xf00d', 'solana'))

    def test_entries_follow_registry_order(self) -> None:
        registry = self._registry()
        registry.add_entry('base', {'address': '0x02', 'name': 'Second'})
        registry.add_entry('base', {'address': '0x01', 'name': 'First Added Later'})

        names = [entry.name for entry in registry.get_entries('base')]
        self.assertEqual(names, ['Alexandria: The Inevitable', 'Second', 'First Added Later'])

        everything = registry.get_entries('all')
        self.assertEqual([entry.chain for entry in everything], ['base', 'base', 'base', 'polygon'])
        self.assertFalse(everything[0].is_custom)

    def test_unknown_chain_lists_nothing(self) -> None:
        self.assertEqual(self._registry().get_entries('solana'), [])

    def test_add_rejects_missing_fields_and_unknown_chain(self) -> None:
        registry = self._registry()

        self.assertFalse(registry.add_entry('base', {'address': '0x01'}))
        self.assertFalse(registry.add_entry('base', {'address': '  ', 'name': 'No Address'}))
        self.assertFalse(registry.add_entry('solana', {'address': '0x01', 'name': 'Wrong Chain'}))
        self.assertEqual(len(registry.get_entries('all')), 2)

    def test_add_accepts_registry_entry_objects(self) -> None:
        registry = self._registry()
        entry = RegistryEntry(address='0xBEEF', name='Object Entry', type='mirror_publication')

        self.assertTrue(registry.add_entry('ethereum', entry))
        self.assertEqual(registry.find_by_address('0xbeef').type, 'mirror_publication')

    def test_custom_entries_survive_reload(self) -> None:
        self._registry().add_entry('optimism', {'address': '0xCAFE', 'name': 'Persisted', 'publisher': 'Page'})

        reloaded = self._registry()
        found = reloaded.find_by_address('0xcafe', 'optimism')

        self.assertEqual(found.name, 'Persisted')
        self.assertEqual(found.extra['publisher'], 'Page')
        document = json.loads(self.store_path.read_text(encoding='utf-8'))
        self.assertEqual(document['test_contracts']['optimism'][0]['addedAt'], FIXED_NOW.isoformat())

    def test_remove_only_touches_custom_entries(self) -> None:
        registry = self._registry()
        registry.add_entry('base', {'address': '0xDEAD', 'name': 'Removable'})

        self.assertTrue(registry.remove_entry('base', '0xdead'))
        self.assertFalse(registry.remove_entry('base', '0xdead'))
        self.assertFalse(registry.remove_entry('base', '0xaa'))
        self.assertFalse(registry.remove_entry('solana', '0xdead'))
        self.assertIsNone(registry.find_by_address('0xdead'))
        self.assertEqual(self.store.load()['base'], [])

    def test_update_patches_custom_entry(self) -> None:
        registry = self._registry()
        registry.add_entry('base', {'address': '0xFEED', 'name': 'Draft'})

        updated = registry.update_entry('base', '0xFEED', {'description': 'Final cut', 'address': '0x0'})

        self.assertTrue(updated)
        found = registry.find_by_address('0xfeed', 'base')
        self.assertEqual(found.description, 'Final cut')
        self.assertEqual(found.extra['lastUpdated'], FIXED_NOW.isoformat())
        self.assertFalse(registry.update_entry('base', '0xaa', {'description': 'predefined'}))
        self.assertFalse(registry.update_entry('base', '0xfeed', {'name': ''}))

    def test_write_failure_reports_false_and_keeps_state(self) -> None:
        registry = self._registry()

        with patch.object(self.store, 'save', side_effect=OSError('disk full')):
            added = registry.add_entry('base', {'address': '0x0BAD', 'name': 'Lost'})

        self.assertFalse(added)
        self.assertIsNone(registry.find_by_address('0x0bad'))

    def test_unreadable_store_falls_back_to_predefined(self) -> None:
        self.store_path.write_text('{not json', encoding='utf-8')

        registry = self._registry()

        self.assertEqual(len(registry.get_entries('all')), 2)

    def test_custom_copy_of_predefined_address_is_merged_once(self) -> None:
        self.store.save({'base': [{'address': '0xaa', 'name': 'Stale Copy', 'addedAt': '2025-01-01T00:00:00'}]})

        entries = self._registry().get_entries('base')

        self.assertEqual([entry.name for entry in entries], ['Alexandria: The Inevitable'])

    def test_replace_predefined_keeps_custom_layer(self) -> None:
        registry = self._registry()
        registry.add_entry('base', {'address': '0x77', 'name': 'Mine'})

        registry.replace_predefined({'zora': [{'address': '0x99', 'name': 'Remote'}]})

        self.assertIsNone(registry.find_by_address('0xaa'))
        self.assertEqual(registry.find_by_address('0x99').chain, 'zora')
        self.assertIsNotNone(registry.find_by_address('0x77', 'base'))
        self.assertNotIn('chain', registry.to_chain_map()['base'][0])
