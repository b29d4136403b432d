import random
import tempfile
import unittest
from pathlib import Path

from apps.catalog.contract_registry import ContractRegistry
from apps.catalog.custom_store import CustomContractStore
from apps.catalog.errors import (
    CancellationToken,
    CatalogError,
    CollectionNotFound,
    SequenceAbandoned,
    UpstreamUnavailable,
    ValidationFailure
)
from apps.catalog.models import RegistryEntry
from apps.catalog.pagination import CollectionPager
from apps.catalog.service import REGISTRY_FALLBACK_WARNING, CatalogService, asset_type_for
from apps.catalog.tests.fakes import FakeHub, FakeRegistryApi

READMES = '0x931204fb8cea7f7068995dce924f0d76d571df99'

PREDEFINED = {
    'base': [
        {
            'address': '0xAA',
            'name': 'Alexandria: The Inevitable',
            'type': 'alexandria_book',
            'creator': 'Alexandria Labs'
        }
    ],
    'polygon': [
        {'address': READMES, 'name': 'Readme Books by PageDAO', 'description': 'registry blurb'}
    ]
}


class CatalogServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = CustomContractStore(Path(self._tmp.name) / 'custom.json', 'test_contracts')
        self.registry = ContractRegistry(self.store, predefined=PREDEFINED)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _service(self, hub: FakeHub, registry_api: FakeRegistryApi | None = None, **kwargs) -> CatalogService:
        pager = CollectionPager(hub, rng=random.Random(7))
        return CatalogService(self.registry, hub, pager, registry_api, **kwargs)

    async def test_registered_collection_end_to_end(self) -> None:
        hub = FakeHub(collection_info={'0xaa': {'totalSupply': 1, 'name': 'Upstream Name', 'symbol': 'INEV'}})
        service = self._service(hub)

        detail = await service.get_collection_detail('0xAA', 'base', page=1, page_size=8)

        self.assertEqual(hub.calls[0], ('collection-info', '0xaa', 'base', 'alexandria_book'))
        self.assertEqual(hub.calls_for('batch'), [('batch', '0xaa', 'base', ['1'], 'alexandria_book')])
        self.assertEqual(detail.collection.name, 'Alexandria: The Inevitable')
        self.assertEqual(detail.collection.total_supply, 1)
        self.assertEqual(detail.collection.creator, 'Alexandria Labs')
        self.assertEqual(detail.collection.additional_data['symbol'], 'INEV')
        self.assertEqual([item.token_id for item in detail.page.items], ['1'])
        self.assertFalse(detail.page.has_next_page)
        self.assertFalse(detail.page.alternate_probe_used)

    async def test_registry_fields_win_over_upstream(self) -> None:
        hub = FakeHub(collection_info={'0x10': {'totalSupply': 2, 'description': 'upstream', 'creator': '0xc'}})
        self.registry.add_entry('zora', {'address': '0x10', 'name': 'Zine', 'description': 'curated'})

        detail = await self._service(hub).get_collection_detail('0x10', 'zora', page_size=5)

        self.assertEqual(detail.collection.description, 'curated')
        self.assertEqual(detail.collection.creator, '0xc')
        self.assertEqual(hub.calls_for('batch')[0][3], ['1', '2'])

    async def test_unregistered_collection_uses_upstream_info(self) -> None:
        hub = FakeHub(collection_info={'0x55': {'name': 'Upstream Book', 'totalSupply': 2, 'image': 'ipfs://QmC'}})

        detail = await self._service(hub).get_collection_detail('0x55', 'zora')

        self.assertEqual(detail.collection.name, 'Upstream Book')
        self.assertEqual(detail.collection.chain, 'zora')
        self.assertEqual(detail.collection.image_uri, 'https://ipfs.io/ipfs/QmC')
        self.assertEqual(hub.calls_for('batch')[0][3], ['1', '2'])
        self.assertEqual(detail.page.page_size, 20)

    async def test_non_finite_supply_is_treated_as_unknown(self) -> None:
        hub = FakeHub(collection_info={
            '0x55': {'name': 'Odd Book', 'totalSupply': float('inf'), 'maxSupply': float('nan')}
        })

        detail = await self._service(hub).get_collection_detail('0x55', 'zora', page_size=3)

        self.assertIsNone(detail.collection.total_supply)
        self.assertIsNone(detail.collection.max_supply)
        self.assertEqual(hub.calls_for('batch')[0][3], ['1', '2', '3'])

    async def test_unregistered_collection_with_failed_lookup_is_not_found(self) -> None:
        hub = FakeHub()

        with self.assertRaises(CollectionNotFound):
            await self._service(hub).get_collection_detail('0x55', 'zora')
        with self.assertRaises(CollectionNotFound):
            await self._service(hub).get_collection_detail('0x55', 'all')
        self.assertEqual(hub.calls_for('batch'), [])

    async def test_registered_collection_survives_info_failure(self) -> None:
        hub = FakeHub()

        detail = await self._service(hub).get_collection_detail(READMES, 'polygon', page_size=4)

        self.assertEqual(detail.collection.historical_significance, 'Pioneer NFT Book Collection')
        self.assertIn('One of the earliest', detail.collection.description)
        self.assertEqual(detail.collection.contract_address, READMES)
        self.assertEqual(hub.calls_for('batch')[0][3], ['1', '2', '3', '4'])
        self.assertEqual(len(detail.page.items), 4)

    async def test_lookup_without_chain_finds_registered_chain(self) -> None:
        hub = FakeHub(collection_info={'0xaa': {'totalSupply': 2}})

        detail = await self._service(hub).get_collection_detail('0xaa', 'all')

        self.assertEqual(detail.collection.chain, 'base')
        self.assertEqual(hub.calls_for('batch')[0][2], 'base')

    async def test_abandoned_detail_sequence_raises(self) -> None:
        hub = FakeHub(collection_info={'0xaa': {'totalSupply': 2}})
        token = CancellationToken()
        hub.on_call = token.abandon

        with self.assertRaises(SequenceAbandoned):
            await self._service(hub).get_collection_detail('0xaa', 'base', cancel_token=token)
        self.assertEqual(len(hub.calls), 1)

    async def test_item_detail_resolves_and_fills_gaps_from_registry(self) -> None:
        hub = FakeHub(tokens={('0xaa', '3'): {'name': 'Inevitable #3', 'animation_url': 'https://read/3'}})

        item = await self._service(hub).get_item_detail('0xAA', 'base', 3)

        self.assertEqual(hub.calls[0], ('token', '0xaa', 'base', '3', 'alexandria_book'))
        self.assertEqual(item.title, 'Inevitable')
        self.assertEqual(item.content_uri, 'https://read/3')
        self.assertEqual(item.creator, 'Alexandria Labs')
        self.assertIsNone(item.warning)

    async def test_item_detail_falls_back_to_registry_entry(self) -> None:
        hub = FakeHub()

        item = await self._service(hub).get_item_detail('0xaa', 'base', '3')

        self.assertEqual(item.title, 'Alexandria: The Inevitable #3')
        self.assertEqual(item.warning, REGISTRY_FALLBACK_WARNING)
        self.assertEqual(item.additional_data, {'author': 'Alexandria Labs'})
        self.assertEqual(item.to_payload()['warning'], REGISTRY_FALLBACK_WARNING)

    async def test_item_detail_for_unknown_collection_propagates_failure(self) -> None:
        service = self._service(FakeHub())

        with self.assertRaises(UpstreamUnavailable):
            await service.get_item_detail('0x55', 'base', '1')
        with self.assertRaises(CollectionNotFound):
            await service.get_item_detail('0x55', 'all', '1')
        with self.assertRaises(ValidationFailure):
            await service.get_item_detail('0xaa', 'base', '  ')

    def test_list_collections_applies_overlay_and_limit(self) -> None:
        service = self._service(FakeHub())

        rows = service.list_collections('all')
        polygon = [row for row in rows if row.chain == 'polygon'][0]

        self.assertEqual(len(rows), 2)
        self.assertEqual(polygon.historical_significance, 'Pioneer NFT Book Collection')
        self.assertEqual(len(service.list_collections('all', limit=1)), 1)
        self.assertEqual(service.list_collections('optimism'), [])

    def test_custom_contract_round_trip(self) -> None:
        service = self._service(FakeHub())

        self.assertTrue(service.add_custom_contract('optimism', {'address': '0x42', 'name': 'Op Book'}))
        self.assertTrue(service.update_custom_contract('optimism', '0x42', {'description': 'edited'}))
        self.assertEqual(service.list_collections('optimism')[0].description, 'edited')
        self.assertTrue(service.remove_custom_contract('optimism', '0x42'))
        self.assertEqual(service.list_collections('optimism'), [])

    def test_asset_type_for_entries(self) -> None:
        self.assertEqual(asset_type_for(None), 'book')
        self.assertEqual(
            asset_type_for(RegistryEntry(address='0x64e2c384738b9ca2c1820a00b3c2067b8213640e', name='A', chain='base')),
            'alexandria_book'
        )
        self.assertEqual(asset_type_for(RegistryEntry(address='0x1', name='Z', type='zora_nft')), 'zora_nft')

    async def test_sync_replaces_predefined_layer(self) -> None:
        remote = FakeRegistryApi({'zora': [{'address': '0x99', 'name': 'Remote'}]})
        service = self._service(FakeHub(), remote)

        adopted = await service.sync_remote_registry()

        self.assertEqual(adopted, 1)
        self.assertIsNotNone(self.registry.find_by_address('0x99', 'zora'))
        self.assertIsNone(self.registry.find_by_address('0xaa'))

    async def test_empty_remote_registry_is_not_adopted(self) -> None:
        service = self._service(FakeHub(), FakeRegistryApi())

        self.assertEqual(await service.sync_remote_registry(), 0)
        self.assertIsNotNone(self.registry.find_by_address('0xaa'))

    async def test_registry_service_must_be_configured(self) -> None:
        service = self._service(FakeHub())

        with self.assertRaises(CatalogError) as ctx:
            await service.sync_remote_registry()
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_publish_requires_key(self) -> None:
        remote = FakeRegistryApi()
        service = self._service(FakeHub(), remote)

        with self.assertRaises(ValidationFailure):
            await service.publish_registry()

        await service.publish_registry('secret')

        mapping, key = remote.published[0]
        self.assertEqual(key, 'secret')
        self.assertEqual(mapping['base'][0]['address'], '0xaa')

    async def test_aclose_closes_clients(self) -> None:
        hub = FakeHub()
        remote = FakeRegistryApi()

        await self._service(hub, remote).aclose()

        self.assertTrue(hub.closed)
        self.assertTrue(remote.closed)
