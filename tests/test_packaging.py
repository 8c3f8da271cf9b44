"""
Tests for pyproject.toml package discovery.
"""
import tomllib
from pathlib import Path

from setuptools import find_namespace_packages

ROOT = Path(__file__).resolve().parent.parent


class TestPackageDiscovery:
    def test_namespace_discovery_enabled(self):
        config = tomllib.loads((ROOT / "pyproject.toml").read_text())
        find = config["tool"]["setuptools"]["packages"]["find"]
        assert find["namespaces"] is True
        assert find["include"] == ["paynotify*"]

    def test_all_subpackages_found(self):
        packages = set(find_namespace_packages(where=str(ROOT), include=["paynotify*"]))
        assert {
            "paynotify",
            "paynotify.api",
            "paynotify.models",
            "paynotify.schemas",
            "paynotify.services",
            "paynotify.utils",
        } <= packages
