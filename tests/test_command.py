import pathlib

from opencraft.command import LaunchCommandBuilder


def test_build_emits_sections_in_order(tmp_path):
    natives = tmp_path / "natives"
    builder = (
        LaunchCommandBuilder("net.minecraft.client.main.Main", java_path="/opt/java/bin/java",
                             natives_dir=natives, classpath_separator=":")
        .add_jvm_args(["-Xmx4G", "-Xms1G"])
        .add_classpath_entry("a.jar")
        .add_classpath_entries([pathlib.Path("b.jar"), "client.jar"])
        .add_game_arg("--username", "Steve")
        .add_game_arg("--fullscreen")
    )

    assert builder.build() == [
        "/opt/java/bin/java",
        "-Xmx4G",
        "-Xms1G",
        f"-Djava.library.path={natives.absolute()}",
        "-cp",
        "a.jar:b.jar:client.jar",
        "net.minecraft.client.main.Main",
        "--username",
        "Steve",
        "--fullscreen",
    ]


def test_build_is_repeatable():
    builder = LaunchCommandBuilder("Main").add_jvm_arg("-Xmx2G").add_classpath_entry("x.jar")
    assert builder.build() == builder.build()


def test_duplicates_are_kept():
    builder = LaunchCommandBuilder("Main", classpath_separator=";")
    builder.add_classpath_entry("x.jar").add_classpath_entry("x.jar")
    builder.add_jvm_arg("-Dfoo=1").add_jvm_arg("-Dfoo=1")
    command = builder.build()
    assert command == ["java", "-Dfoo=1", "-Dfoo=1", "-cp", "x.jar;x.jar", "Main"]


def test_plan_is_a_snapshot():
    builder = LaunchCommandBuilder("Main")
    plan = builder.plan()
    builder.add_game_arg("--demo")
    assert plan.to_command() == ["java", "Main"]
    assert builder.build() == ["java", "Main", "--demo"]
