import asyncio
import json

from conftest import FakeFetcher
from opencraft.versions import GameVersion, LoaderMetaClient, loader_version_id, parse_version_index, split_loader_version_id

META = "https://meta.example.invalid"


def test_loader_overlay_identity():
    base = GameVersion("1.21", "release", "https://example.invalid/1.21.json", "2024-06-13")
    overlay = base.with_loader("0.15.11")
    assert overlay.id == "fabric-loader-0.15.11-1.21"
    assert overlay.base_game_version == "1.21"
    assert overlay.display_name == "1.21 [Fabric]"
    assert base.display_name == "1.21"


def test_serialization_keeps_loader_version():
    overlay = GameVersion("1.21", "release", "u", "t", loader_version="0.15.11")
    assert GameVersion.from_dict(overlay.to_dict()) == overlay


def test_split_loader_version_id():
    assert split_loader_version_id(loader_version_id("0.15.11", "1.21")) == ("0.15.11", "1.21")
    assert split_loader_version_id("fabric-loader-0.16.0-1.21-pre1") == ("0.16.0", "1.21-pre1")
    assert split_loader_version_id("1.21") is None
    assert split_loader_version_id("fabric-loader-0.15.11") is None


def test_parse_version_index_skips_malformed_entries():
    versions = parse_version_index({"versions": [{"id": "1.21", "type": "release"}, {"type": "snapshot"}]})
    assert [v.id for v in versions] == ["1.21"]


def test_latest_stable_loader():
    document = json.dumps([
        {"version": "0.16.0-beta.1", "stable": False},
        {"version": "0.15.11", "stable": True},
    ]).encode()
    client = LoaderMetaClient(FakeFetcher({f"{META}/v2/versions/loader": document}), META)
    assert asyncio.run(client.latest_stable()).version == "0.15.11"


def test_overlay_points_at_loader_profile():
    client = LoaderMetaClient(FakeFetcher(), META + "/")
    overlay = client.overlay_for(GameVersion("1.21", "release", "vanilla-url", "t"), "0.15.11")
    assert overlay.id == "fabric-loader-0.15.11-1.21"
    assert overlay.url == f"{META}/v2/versions/loader/1.21/0.15.11/profile/json"
