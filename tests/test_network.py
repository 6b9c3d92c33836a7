import asyncio

import pytest

from opencraft.errors import ArtifactUnavailable, FetchError
from opencraft.network import first_success, repository_candidates
from opencraft.replacer import replace_text, substitute_all, unresolved_placeholders


def test_repository_candidates_primary_first_without_duplicates():
    assert repository_candidates("https://maven.fabricmc.net", ["https://maven.fabricmc.net/", "https://b/"]) == [
        "https://maven.fabricmc.net/",
        "https://b/",
    ]
    assert repository_candidates(None, ["https://a/"]) == ["https://a/"]


def test_first_success_stops_at_first_working_candidate():
    tried = []

    async def attempt(candidate):
        tried.append(candidate)
        if candidate == "a":
            raise FetchError(candidate, "HTTP 404")
        return candidate.upper()

    assert asyncio.run(first_success(["a", "b", "c"], attempt, "lib")) == ("b", "B")
    assert tried == ["a", "b"]


def test_first_success_collects_every_failure():
    async def attempt(candidate):
        raise FetchError(candidate, "down")

    with pytest.raises(ArtifactUnavailable) as info:
        asyncio.run(first_success(["a", "b"], attempt, "com.example:lib:1.0"))
    assert info.value.name == "com.example:lib:1.0"
    assert len(info.value.failures) == 2


def test_replace_text_and_leftovers():
    replacements = {"${natives_directory}": "/tmp/natives", "${launcher_name}": "opencraft"}
    assert replace_text("-Djava.library.path=${natives_directory}", replacements) == "-Djava.library.path=/tmp/natives"
    assert substitute_all(["${launcher_name}", "--x"], replacements) == ["opencraft", "--x"]
    assert unresolved_placeholders("${a}-${b}") == ["${a}", "${b}"]
    assert replace_text(42, replacements) == 42
