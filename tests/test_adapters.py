"""Tests for the package manager CLI adapters."""

from __future__ import annotations

import io
import json

import pytest

from npm_depscan.adapters import (
    CliAdapter,
    NpmAdapter,
    PnpmAdapter,
    YarnAdapter,
    default_adapters,
    select_adapter,
)
from npm_depscan.adapters.pnpm import PnpmListShape, detect_shape
from npm_depscan.discovery import LockfileKind, LockfileRef
from npm_depscan.errors import ParseError
from npm_depscan.models import UNRESOLVED_VERSION

from conftest import write_text


def _stream(data) -> io.StringIO:
    return io.StringIO(data if isinstance(data, str) else json.dumps(data))


# ── selection ────────────────────────────────────────────────────────────


class TestSelection:
    def test_adapters_satisfy_protocol(self):
        assert all(isinstance(adapter, CliAdapter) for adapter in default_adapters())
        assert [adapter.name for adapter in default_adapters()] == ["pnpm", "yarn", "npm"]

    def test_commands(self):
        assert NpmAdapter().command() == ["npm", "ls", "--all", "--json"]
        assert PnpmAdapter().command() == ["pnpm", "list", "--json", "--depth", "Infinity"]
        assert YarnAdapter().command() == ["yarn", "list", "--json"]

    def test_local_lockfile_wins(self, tmp_path):
        write_text(tmp_path / "yarn.lock", "")
        root_lock = LockfileRef(LockfileKind.PNPM, tmp_path / "pnpm-lock.yaml")
        assert select_adapter(tmp_path, root_lock).name == "yarn"

    def test_pnpm_preferred_over_npm(self, tmp_path):
        write_text(tmp_path / "package-lock.json", "{}")
        write_text(tmp_path / "pnpm-lock.yaml", "")
        assert select_adapter(tmp_path).name == "pnpm"

    def test_root_lockfile_decides(self, tmp_path):
        root_lock = LockfileRef(LockfileKind.PNPM, tmp_path / "pnpm-workspace.yaml")
        assert select_adapter(tmp_path / "packages" / "a", root_lock).name == "pnpm"

    def test_npm_fallback(self, tmp_path):
        assert select_adapter(tmp_path).name == "npm"


# ── npm ──────────────────────────────────────────────────────────────────


class TestNpmAdapter:
    def test_nested_tree(self):
        output = {
            "name": "app",
            "dependencies": {
                "express": {
                    "version": "4.18.2",
                    "required": "^4.18.0",
                    "dependencies": {"debug": {"version": "2.6.9"}},
                },
                "ghost": {"required": "^1.0.0", "missing": True},
            },
        }
        express, ghost = NpmAdapter().parse(_stream(output))

        assert (express.version, express.version_constraint, express.resolved_version) == (
            "4.18.2",
            "^4.18.0",
            "4.18.2",
        )
        debug = express.children[0]
        assert (debug.version_constraint, debug.is_transitive) == ("2.6.9", True)
        assert ghost.version == UNRESOLVED_VERSION
        assert ghost.resolved_version is None
        assert ghost.has_unresolved_version()

    def test_no_dependencies(self):
        assert NpmAdapter().parse(_stream({"name": "empty"})) == []

    def test_invalid_json(self):
        with pytest.raises(ParseError):
            NpmAdapter().parse(_stream("npm ERR! not json"))


# ── pnpm ─────────────────────────────────────────────────────────────────


class TestPnpmAdapter:
    def test_detect_shape(self):
        assert detect_shape([]) is PnpmListShape.PROJECTS
        assert detect_shape({}) is PnpmListShape.SINGLE
        with pytest.raises(ParseError):
            detect_shape("text")

    def test_projects_list(self):
        output = [
            {
                "name": "app",
                "dependencies": {
                    "react": {
                        "from": "react",
                        "version": "18.2.0",
                        "dependencies": {"loose-envify": {"from": "loose-envify", "version": "1.4.0"}},
                    },
                    "broken": "1.0.0",
                },
                "devDependencies": {"vitest": {"from": "vitest", "version": "1.6.0"}},
            }
        ]
        react, vitest = PnpmAdapter().parse(_stream(output))

        assert (react.name, react.version_constraint, react.is_dev) == ("react", "react", False)
        assert react.children[0].is_transitive
        assert (vitest.name, vitest.is_dev) == ("vitest", True)

    def test_single_object(self):
        output = {"dependencies": {"lodash": {"version": "4.17.21"}}}
        (lodash,) = PnpmAdapter().parse(_stream(output))
        assert lodash.version_constraint == "*"

    def test_empty_projects(self):
        assert PnpmAdapter().parse(_stream([])) == []


# ── yarn ─────────────────────────────────────────────────────────────────


class TestYarnAdapter:
    def test_tree_line(self):
        lines = [
            "yarn list v1.22.19",
            json.dumps({"type": "info", "data": "Resolving"}),
            json.dumps(
                {
                    "type": "tree",
                    "data": {
                        "type": "list",
                        "trees": [
                            {
                                "name": "@babel/core@7.24.0",
                                "children": [{"name": "debug@4.3.4", "children": []}],
                            },
                            {"name": "left-pad@1.3.0"},
                        ],
                    },
                }
            ),
            "Done in 0.10s.",
        ]
        babel, left_pad = YarnAdapter().parse(_stream("\n".join(lines)))

        assert (babel.name, babel.version, babel.resolved_version) == ("@babel/core", "7.24.0", "7.24.0")
        assert babel.children[0].name == "debug"
        assert babel.children[0].is_transitive
        assert left_pad.children is None

    def test_no_tree(self):
        assert YarnAdapter().parse(_stream("warning something\n")) == []
