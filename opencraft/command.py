"""Ordered assembly of the game's command line."""
import os
import pathlib
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

PathLike = Union[str, pathlib.Path]


@dataclass
class LaunchPlan:
    """Everything a launch needs, in emission order. Built per attempt, never stored."""
    java_path: str
    jvm_args: List[str]
    natives_dir: Optional[pathlib.Path]
    classpath: List[str]
    main_class: str
    game_args: List[str] = field(default_factory=list)
    classpath_separator: str = os.pathsep

    def to_command(self) -> List[str]:
        command = [self.java_path, *self.jvm_args]
        if self.natives_dir is not None:
            command.append(f"-Djava.library.path={pathlib.Path(self.natives_dir).absolute()}")
        if self.classpath:
            command.append('-cp')
            command.append(self.classpath_separator.join(self.classpath))
        command.append(self.main_class)
        command.extend(self.game_args)
        return command


class LaunchCommandBuilder:
    """
    Accumulates JVM flags, classpath entries and game arguments.

    build() emits: java, JVM flags, -Djava.library.path, -cp <entries>,
    main class, game arguments. Nothing is reordered or deduplicated.
    """

    def __init__(self, main_class: str, java_path: str = 'java',
                 natives_dir: Optional[PathLike] = None, classpath_separator: str = os.pathsep):
        self.main_class = main_class
        self.java_path = java_path
        self.natives_dir = pathlib.Path(natives_dir) if natives_dir is not None else None
        self.classpath_separator = classpath_separator
        self._jvm_args: List[str] = []
        self._classpath: List[str] = []
        self._game_args: List[str] = []

    def add_jvm_arg(self, arg: str) -> "LaunchCommandBuilder":
        self._jvm_args.append(arg)
        return self

    def add_jvm_args(self, args: Iterable[str]) -> "LaunchCommandBuilder":
        self._jvm_args.extend(args)
        return self

    def with_natives_dir(self, natives_dir: PathLike) -> "LaunchCommandBuilder":
        self.natives_dir = pathlib.Path(natives_dir)
        return self

    def add_classpath_entry(self, entry: PathLike) -> "LaunchCommandBuilder":
        self._classpath.append(str(entry))
        return self

    def add_classpath_entries(self, entries: Iterable[PathLike]) -> "LaunchCommandBuilder":
        self._classpath.extend(str(entry) for entry in entries)
        return self

    def add_game_arg(self, flag: str, value: Optional[str] = None) -> "LaunchCommandBuilder":
        """Appends '--flag value', or a lone token when value is None."""
        self._game_args.append(flag)
        if value is not None:
            self._game_args.append(str(value))
        return self

    def add_game_args(self, args: Iterable[str]) -> "LaunchCommandBuilder":
        self._game_args.extend(args)
        return self

    def plan(self) -> LaunchPlan:
        return LaunchPlan(
            java_path=self.java_path,
            jvm_args=list(self._jvm_args),
            natives_dir=self.natives_dir,
            classpath=list(self._classpath),
            main_class=self.main_class,
            game_args=list(self._game_args),
            classpath_separator=self.classpath_separator,
        )

    def build(self) -> List[str]:
        return self.plan().to_command()
