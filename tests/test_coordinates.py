import pathlib

import pytest

from opencraft.coordinates import MavenCoordinate, file_name, relative_path
from opencraft.errors import InvalidCoordinate


def test_relative_path_follows_maven_layout():
    assert relative_path("net.fabricmc:fabric-loader:0.15.11") == \
        "net/fabricmc/fabric-loader/0.15.11/fabric-loader-0.15.11.jar"


def test_relative_path_is_stable_across_calls():
    first = relative_path("org.ow2.asm:asm:9.6")
    assert all(relative_path("org.ow2.asm:asm:9.6") == first for _ in range(3))


def test_classifier_becomes_file_suffix():
    coordinate = MavenCoordinate.parse("org.lwjgl:lwjgl:3.3.3:natives-linux")
    assert coordinate.classifier == "natives-linux"
    assert coordinate.file_name == "lwjgl-3.3.3-natives-linux.jar"
    assert str(coordinate) == "org.lwjgl:lwjgl:3.3.3:natives-linux"


def test_with_classifier_keeps_base_segments():
    coordinate = MavenCoordinate.parse("org.lwjgl:lwjgl:3.3.3").with_classifier("natives-windows")
    assert file_name(str(coordinate)) == "lwjgl-3.3.3-natives-windows.jar"


@pytest.mark.parametrize("raw", ["", "just-a-name", "group:artifact", "group::1.0", ":a:1"])
def test_malformed_coordinates_raise(raw):
    with pytest.raises(InvalidCoordinate) as info:
        MavenCoordinate.parse(raw)
    assert info.value.coordinate == raw


def test_invalid_coordinate_is_a_value_error():
    with pytest.raises(ValueError):
        MavenCoordinate.parse("nope")


def test_resolve_in_and_url_in():
    coordinate = MavenCoordinate.parse("com.google.guava:guava:33.0.0-jre")
    libraries = pathlib.Path("/games/libraries")
    assert coordinate.resolve_in(libraries) == \
        libraries / "com" / "google" / "guava" / "guava" / "33.0.0-jre" / "guava-33.0.0-jre.jar"
    assert coordinate.url_in("https://repo1.maven.org/maven2") == \
        "https://repo1.maven.org/maven2/com/google/guava/guava/33.0.0-jre/guava-33.0.0-jre.jar"
