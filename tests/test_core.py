"""Tests for strategy selection and workspace scanning."""

from __future__ import annotations

import threading
from contextlib import contextmanager

import pytest

from npm_depscan.config import ScanSettings, ScanStrategy
from npm_depscan.core import StrategySelector, scan_workspace
from npm_depscan.errors import (
    NOTICES,
    FailureKind,
    FileMissingError,
    MissingInstalledDependenciesError,
    NetworkFailureError,
    ParseError,
    ScanCancelledError,
)
from npm_depscan.executor import CommandOutput
from npm_depscan.models import Dependency, DependencyFile
from npm_depscan.strategies import NativeStrategy, ScanTarget, StaticStrategy

from conftest import write_text


class FakeStrategy:
    """Returns one dependency per target, or raises the queued errors in order."""

    def __init__(self, name, errors=None):
        self.name = name
        self.errors = list(errors or [])
        self.calls = []

    def resolve(self, target, cancel=None):
        self.calls.append(target.manifest)
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error
        dep = Dependency(name=f"{self.name}-dep", version="1.0.0", version_constraint="^1.0.0")
        return DependencyFile.from_tree(
            path=str(target.manifest),
            tree=[dep],
            package_root=str(target.directory),
            workspace_folder=str(target.workspace_root),
        )


@contextmanager
def empty_listing(argv, cwd, timeout, cancel=None):
    """Runner for a CLI that exits cleanly but lists nothing installed."""
    path = write_text(cwd / ".listing" / "stdout.json", "{}")
    yield CommandOutput(argv=tuple(argv), stdout_path=path, stderr="", returncode=0)


class Notices:
    def __init__(self):
        self.received = []

    def __call__(self, kind, message):
        self.received.append((kind, message))


def _target(tmp_path):
    return ScanTarget(manifest=tmp_path / "package.json", workspace_root=tmp_path)


# ── StrategySelector ─────────────────────────────────────────────────────


class TestStrategySelector:
    def test_auto_prefers_native(self, tmp_path):
        native, static = FakeStrategy("native"), FakeStrategy("static")
        selector = StrategySelector(ScanStrategy.AUTO, native=native, static=static)

        dep_file = selector.resolve(_target(tmp_path))

        assert dep_file.dependencies[0].name == "native-dep"
        assert static.calls == []

    def test_auto_falls_back_with_notice(self, tmp_path):
        notices = Notices()
        native = FakeStrategy("native", [NetworkFailureError("getaddrinfo ENOTFOUND")])
        static = FakeStrategy("static")
        selector = StrategySelector(ScanStrategy.AUTO, native=native, static=static, notify=notices)

        dep_file = selector.resolve(_target(tmp_path))

        assert dep_file.dependencies[0].name == "static-dep"
        assert notices.received == [(FailureKind.NETWORK, NOTICES[FailureKind.NETWORK])]

    def test_unexpected_native_exception_falls_back(self, tmp_path):
        notices = Notices()
        native = FakeStrategy("native", [KeyError("surprise")])
        selector = StrategySelector(native=native, static=FakeStrategy("static"), notify=notices)

        assert selector.resolve(_target(tmp_path)).dependencies[0].name == "static-dep"
        assert notices.received[0][0] is FailureKind.OTHER

    def test_one_notice_per_kind(self, tmp_path):
        notices = Notices()
        native = FakeStrategy(
            "native",
            [
                NetworkFailureError("ENOTFOUND"),
                NetworkFailureError("ECONNRESET"),
                MissingInstalledDependenciesError("missing: a"),
            ],
        )
        selector = StrategySelector(native=native, static=FakeStrategy("static"), notify=notices)

        for _ in range(3):
            selector.resolve(_target(tmp_path))

        assert [kind for kind, _ in notices.received] == [
            FailureKind.NETWORK,
            FailureKind.MISSING_DEPENDENCIES,
        ]

    def test_forced_native_propagates(self, tmp_path):
        native = FakeStrategy("native", [NetworkFailureError("ENOTFOUND")])
        static = FakeStrategy("static")
        selector = StrategySelector(ScanStrategy.NATIVE, native=native, static=static)

        with pytest.raises(NetworkFailureError):
            selector.resolve(_target(tmp_path))
        assert static.calls == []

    def test_forced_static_failure_skips_target(self, tmp_path):
        native = FakeStrategy("native")
        static = FakeStrategy("static", [ParseError("bad")])
        selector = StrategySelector(ScanStrategy.STATIC, native=native, static=static)

        assert selector.resolve(_target(tmp_path)) is None
        assert native.calls == []

    def test_forced_static_lets_cancellation_through(self, tmp_path):
        static = FakeStrategy("static", [ScanCancelledError("stop")])
        selector = StrategySelector(ScanStrategy.STATIC, native=FakeStrategy("native"), static=static)

        with pytest.raises(ScanCancelledError):
            selector.resolve(_target(tmp_path))

    def test_auto_static_failure_skips_target(self, tmp_path):
        native = FakeStrategy("native", [NetworkFailureError("ENOTFOUND")])
        static = FakeStrategy("static", [FileMissingError("gone")])
        selector = StrategySelector(native=native, static=static, notify=Notices())

        assert selector.resolve(_target(tmp_path)) is None

    def test_cancellation_is_not_a_fallback(self, tmp_path):
        native = FakeStrategy("native", [ScanCancelledError("stop")])
        static = FakeStrategy("static")
        selector = StrategySelector(native=native, static=static)

        with pytest.raises(ScanCancelledError):
            selector.resolve(_target(tmp_path))
        assert static.calls == []


# ── scan_workspace ───────────────────────────────────────────────────────


@pytest.fixture
def monorepo(make_package, tmp_path):
    make_package(name="root", devDependencies={"turbo": "^2.0.0"})
    make_package("packages/ui", name="@acme/ui", dependencies={"clsx": "^2.1.0"})
    make_package(
        "packages/web",
        name="@acme/web",
        dependencies={"@acme/ui": "workspace:*", "react": "^18.2.0"},
    )
    make_package("node_modules/react", name="react")
    return tmp_path


class TestScanWorkspace:
    def test_empty_workspace(self, tmp_path):
        info = scan_workspace(tmp_path, native=FakeStrategy("native"))
        assert info.to_dict() == {"ecosystemTypes": [], "dependencyFiles": [], "dependencies": []}

    def test_missing_root(self, tmp_path):
        with pytest.raises(FileMissingError):
            scan_workspace(tmp_path / "nope")

    def test_single_project_has_no_workspace_stamps(self, make_package, tmp_path):
        make_package(name="solo", dependencies={"lodash": "^4.17.21"})

        info = scan_workspace(tmp_path, ScanSettings(strategy=ScanStrategy.STATIC))

        (lodash,) = info.dependencies
        assert lodash.package_root is None
        assert lodash.workspace_folder is None
        assert info.ecosystem_types == {"npm"}

    def test_monorepo_static_scan(self, monorepo):
        info = scan_workspace(monorepo, ScanSettings(strategy=ScanStrategy.STATIC))

        root = monorepo.resolve()
        assert [f.path for f in info.dependency_files] == [
            str(root / "package.json"),
            str(root / "packages" / "ui" / "package.json"),
            str(root / "packages" / "web" / "package.json"),
        ]
        web = info.dependency_files[2]
        ui_dep = next(d for d in web.dependencies if d.name == "@acme/ui")
        react = next(d for d in web.dependencies if d.name == "react")
        assert ui_dep.is_internal
        assert ui_dep.version == "workspace:*"
        assert not react.is_internal
        assert react.package_root == str(root / "packages" / "web")
        assert react.workspace_folder == str(root)
        assert [d.name for d in info.dependencies] == ["turbo", "clsx", "@acme/ui", "react"]

    def test_auto_fallback_is_per_target(self, monorepo):
        notices = Notices()
        native = FakeStrategy("native", [None, MissingInstalledDependenciesError("missing: clsx"), None])

        info = scan_workspace(monorepo, native=native, static=StaticStrategy(), notify=notices)

        names = [d.name for f in info.dependency_files for d in f.all_dependencies()]
        assert names == ["native-dep", "clsx", "native-dep"]
        assert len(native.calls) == 3
        assert [kind for kind, _ in notices.received] == [FailureKind.MISSING_DEPENDENCIES]

    def test_auto_skips_target_when_both_fail(self, monorepo):
        write_text(monorepo / "packages" / "ui" / "package.json", "{broken")
        native = FakeStrategy("native", [None, ParseError("bad manifest"), None])

        info = scan_workspace(monorepo, native=native, notify=Notices())

        assert len(info.dependency_files) == 2

    def test_forced_native_failure_aborts(self, monorepo):
        native = FakeStrategy("native", [None, NetworkFailureError("ENOTFOUND")])
        with pytest.raises(NetworkFailureError):
            scan_workspace(monorepo, ScanSettings(strategy=ScanStrategy.NATIVE), native=native)

    def test_forced_static_skips_broken_manifest(self, make_package, tmp_path):
        make_package(name="root", devDependencies={"turbo": "^2.0.0"})
        make_package("packages/a", name="a", dependencies={"clsx": "^2.1.0"})
        write_text(tmp_path / "packages" / "b" / "package.json", "{broken")

        info = scan_workspace(tmp_path, ScanSettings(strategy=ScanStrategy.STATIC))

        root = tmp_path.resolve()
        assert [f.path for f in info.dependency_files] == [
            str(root / "package.json"),
            str(root / "packages" / "a" / "package.json"),
        ]
        clsx = info.dependency_files[1].dependencies[0]
        assert clsx.package_root == str(root / "packages" / "a")

    def test_missing_node_modules_falls_back_in_auto(self, make_package, tmp_path):
        make_package(name="app", dependencies={"lodash": "^4.17.21"})
        notices = Notices()

        info = scan_workspace(
            tmp_path,
            native=NativeStrategy(runner=empty_listing),
            static=StaticStrategy(),
            notify=notices,
        )

        assert [(d.name, d.version) for d in info.dependencies] == [("lodash", "4.17.21")]
        assert [kind for kind, _ in notices.received] == [FailureKind.MISSING_DEPENDENCIES]

    def test_missing_node_modules_rejects_in_forced_native(self, make_package, tmp_path):
        make_package(name="app", dependencies={"lodash": "^4.17.21"})

        with pytest.raises(MissingInstalledDependenciesError):
            scan_workspace(
                tmp_path,
                ScanSettings(strategy=ScanStrategy.NATIVE),
                native=NativeStrategy(runner=empty_listing),
            )

    def test_workspace_range_is_internal_without_matching_package(self, make_package, tmp_path):
        make_package(name="root")
        make_package("apps/site", name="site", dependencies={"@ghost/lib": "workspace:*"})

        info = scan_workspace(tmp_path, ScanSettings(strategy=ScanStrategy.STATIC))

        (ghost,) = info.dependencies
        assert ghost.is_internal

    def test_thread_pool_keeps_discovery_order(self, monorepo):
        info = scan_workspace(
            monorepo,
            ScanSettings(strategy=ScanStrategy.STATIC, max_workers=4),
        )
        assert [f.package_name for f in info.dependency_files] == ["root", "@acme/ui", "@acme/web"]

    def test_cancelled_before_start(self, monorepo):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ScanCancelledError):
            scan_workspace(monorepo, native=FakeStrategy("native"), cancel=cancel)

    def test_to_dict_is_json_shape(self, monorepo):
        data = scan_workspace(monorepo, ScanSettings(strategy=ScanStrategy.STATIC)).to_dict()
        assert data["ecosystemTypes"] == ["npm"]
        assert data["dependencyFiles"][0]["type"] == "npm"
        assert data["dependencies"][0]["isDev"] is True
