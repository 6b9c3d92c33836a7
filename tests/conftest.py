import json
import pathlib
import zipfile

import pytest

from opencraft.config import GamePaths
from opencraft.errors import FetchError
from opencraft.network import FetchResult
from opencraft.rules import OS_LINUX, OS_MACOS, OS_WINDOWS, PlatformInfo, RuleEvaluator


class FakeFetcher:
    """
    In-memory stand-in for HttpFetcher.

    routes maps url -> bytes. Urls without a route fail with a 404
    FetchError. etags maps url -> current ETag; a request carrying that
    ETag gets a 304.
    """

    def __init__(self, routes=None, etags=None):
        self.routes = dict(routes or {})
        self.etags = dict(etags or {})
        self.requests = []
        self.downloads = []
        self.fail_all = False

    async def fetch_bytes(self, url, etag=None):
        self.requests.append((url, etag))
        if self.fail_all or url not in self.routes:
            raise FetchError(url, "HTTP 404 Not Found", 404)
        current = self.etags.get(url)
        if etag is not None and etag == current:
            return FetchResult(etag=etag, not_modified=True, status=304)
        return FetchResult(content=self.routes[url], etag=current)

    async def download(self, url, dest_path, expected_sha1=None, force_download=False, pbar=None):
        self.downloads.append(url)
        if self.fail_all or url not in self.routes:
            raise FetchError(url, "HTTP 404 Not Found", 404)
        dest_path = pathlib.Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        dest_path.write_bytes(self.routes[url])
        return True

    async def close(self):
        pass


def write_json(path, document):
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document), encoding='utf-8')
    return path


def write_jar(path, entries):
    """Writes a zip at path holding {name: bytes}."""
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, 'w') as jar:
        for name, content in entries.items():
            jar.writestr(name, content)
    return path


def touch(path, content=b'jar'):
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def game_paths(tmp_path):
    return GamePaths(tmp_path / '.minecraft')


@pytest.fixture
def linux():
    return PlatformInfo(OS_LINUX, 'x86', 64)


@pytest.fixture
def windows():
    return PlatformInfo(OS_WINDOWS, 'x86', 64)


@pytest.fixture
def macos_arm():
    return PlatformInfo(OS_MACOS, 'arm', 64)


@pytest.fixture
def linux_evaluator(linux):
    return RuleEvaluator(linux)
