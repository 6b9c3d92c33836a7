import asyncio
import json

import pytest

from conftest import FakeFetcher
from opencraft.cache import RevalidationStatus, VersionIndexCache, VersionIndexCacheEntry, list_versions
from opencraft.errors import VersionIndexUnavailable
from opencraft.versions import GameVersion

INDEX_URL = "https://example.invalid/version_manifest_v2.json"
HOUR = 60 * 60


class Clock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def index_document(*ids):
    return json.dumps({
        "latest": {"release": ids[0]},
        "versions": [
            {"id": version_id, "type": "release", "url": f"https://example.invalid/{version_id}.json",
             "releaseTime": "2024-06-13T08:24:03+00:00"}
            for version_id in ids
        ],
    }).encode()


def seed(cache_file, fetched_at, etag='"v1"', ids=("1.21",)):
    versions = [GameVersion(version_id, "release", f"https://example.invalid/{version_id}.json", "") for version_id in ids]
    entry = VersionIndexCacheEntry(versions, etag, fetched_at)
    cache_file.parent.mkdir(parents=True, exist_ok=True)
    cache_file.write_text(json.dumps(entry.to_dict()), encoding='utf-8')
    return versions


def test_fresh_entry_is_served(tmp_path):
    clock = Clock()
    cache = VersionIndexCache(tmp_path / "version_cache.json", ttl_seconds=60 * 60, index_url=INDEX_URL, clock=clock)
    stored = seed(cache.cache_file, fetched_at=clock.now)
    assert asyncio.run(cache.get()) == stored


def test_expired_entry_is_only_available_as_stale(tmp_path):
    clock = Clock()
    cache = VersionIndexCache(tmp_path / "version_cache.json", ttl_seconds=60 * 60, index_url=INDEX_URL, clock=clock)
    stored = seed(cache.cache_file, fetched_at=clock.now - 61 * 60)
    assert asyncio.run(cache.get()) is None
    assert asyncio.run(cache.get_stale_if_present()) == stored


def test_corrupt_cache_is_treated_as_absent(tmp_path):
    cache = VersionIndexCache(tmp_path / "version_cache.json", index_url=INDEX_URL)
    cache.cache_file.write_text("{not json", encoding='utf-8')
    assert asyncio.run(cache.get()) is None
    assert asyncio.run(cache.get_stale_if_present()) is None


def test_malformed_entry_is_treated_as_absent(tmp_path):
    cache = VersionIndexCache(tmp_path / "version_cache.json", index_url=INDEX_URL)
    cache.cache_file.write_text(json.dumps({"versions": "nope"}), encoding='utf-8')
    assert asyncio.run(cache.read_entry()) is None


def test_not_modified_refreshes_timestamp_only(tmp_path):
    clock = Clock()
    cache = VersionIndexCache(tmp_path / "version_cache.json", ttl_seconds=HOUR, index_url=INDEX_URL, clock=clock)
    stored = seed(cache.cache_file, fetched_at=clock.now - 2 * HOUR, etag='"v1"')
    fetcher = FakeFetcher({INDEX_URL: index_document("1.21.1")}, etags={INDEX_URL: '"v1"'})

    result = asyncio.run(cache.revalidate(fetcher))

    assert result.status is RevalidationStatus.UNCHANGED
    assert not result.changed
    assert result.versions == stored
    assert fetcher.requests == [(INDEX_URL, '"v1"')]
    entry = asyncio.run(cache.read_entry())
    assert entry.fetched_at == clock.now
    assert asyncio.run(cache.get()) == stored


def test_changed_index_replaces_entry(tmp_path):
    clock = Clock()
    cache = VersionIndexCache(tmp_path / "version_cache.json", ttl_seconds=HOUR, index_url=INDEX_URL, clock=clock)
    seed(cache.cache_file, fetched_at=clock.now - 2 * HOUR, etag='"v1"')
    fetcher = FakeFetcher({INDEX_URL: index_document("1.21.1", "1.21")}, etags={INDEX_URL: '"v2"'})

    result = asyncio.run(cache.revalidate(fetcher))

    assert result.status is RevalidationStatus.REPLACED
    assert [v.id for v in result.versions] == ["1.21.1", "1.21"]
    assert asyncio.run(cache.stored_etag()) == '"v2"'


def test_write_leaves_no_temporary_files(tmp_path):
    cache = VersionIndexCache(tmp_path / "version_cache.json", index_url=INDEX_URL)
    fetcher = FakeFetcher({INDEX_URL: index_document("1.21")}, etags={INDEX_URL: '"a"'})
    asyncio.run(cache.revalidate(fetcher))
    assert sorted(p.name for p in tmp_path.iterdir()) == ["version_cache.json"]


def test_list_versions_falls_back_to_stale_when_offline(tmp_path):
    clock = Clock()
    cache = VersionIndexCache(tmp_path / "version_cache.json", ttl_seconds=HOUR, index_url=INDEX_URL, clock=clock)
    stored = seed(cache.cache_file, fetched_at=clock.now - 5 * HOUR)
    offline = FakeFetcher()
    offline.fail_all = True
    assert asyncio.run(list_versions(cache, offline)) == stored


def test_list_versions_without_cache_or_network(tmp_path):
    cache = VersionIndexCache(tmp_path / "version_cache.json", index_url=INDEX_URL)
    offline = FakeFetcher()
    offline.fail_all = True
    with pytest.raises(VersionIndexUnavailable):
        asyncio.run(list_versions(cache, offline))


def test_list_versions_releases_only(tmp_path):
    cache = VersionIndexCache(tmp_path / "version_cache.json", index_url=INDEX_URL)
    document = json.dumps({"versions": [
        {"id": "24w14a", "type": "snapshot", "url": "u1", "releaseTime": ""},
        {"id": "1.21", "type": "release", "url": "u2", "releaseTime": ""},
    ]}).encode()
    fetcher = FakeFetcher({INDEX_URL: document})
    versions = asyncio.run(list_versions(cache, fetcher, releases_only=True))
    assert [v.id for v in versions] == ["1.21"]
