import pathlib

import pytest

from opencraft.__main__ import build_parser


def test_subcommands_and_global_flags():
    args = build_parser().parse_args(["--config", "cfg.json", "-v", "install", "1.21", "--loader", "latest"])
    assert args.config == pathlib.Path("cfg.json")
    assert args.verbose
    assert (args.command, args.version, args.loader) == ("install", "1.21", "latest")


def test_versions_defaults_to_releases():
    args = build_parser().parse_args(["versions"])
    assert not args.all and not args.refresh


def test_a_subcommand_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
