"""Workspace and manifest discovery utilities."""

from __future__ import annotations

import enum
import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path

import structlog

log = structlog.get_logger("npm_depscan.discovery")

MANIFEST_NAME = "package.json"
EXCLUDES = {"node_modules", ".git"}

BUILD_DIR_DENYLIST = frozenset(
    {
        ".next",
        ".turbo",
        ".cache",
        ".output",
        ".vercel",
        ".expo",
        ".parcel-cache",
        ".docusaurus",
        ".angular",
        ".svelte-kit",
        ".nuxt",
    }
)

DEFAULT_IGNORED_DIRS = frozenset({"node_modules", "out", "coverage"})
DEFAULT_IGNORED_FILES = frozenset({".env", ".DS_Store"})
DEFAULT_IGNORED_GLOBS = frozenset({"*.vsix"})


class LockfileKind(str, enum.Enum):
    PNPM = "pnpm"
    YARN = "yarn"
    NPM = "npm"


LOCKFILE_NAMES: dict[LockfileKind, str] = {
    LockfileKind.PNPM: "pnpm-lock.yaml",
    LockfileKind.YARN: "yarn.lock",
    LockfileKind.NPM: "package-lock.json",
}


@dataclass(slots=True, frozen=True)
class LockfileRef:
    kind: LockfileKind
    path: Path


@dataclass(slots=True)
class GitignoreRules:
    """The subset of .gitignore semantics used to skip manifests.

    Supported: directory names anywhere in the path, exact relative paths,
    ``*`` globs, and bare dotfile names. Negations are not supported.
    """

    dirs: set[str] = field(default_factory=set)
    files: set[str] = field(default_factory=set)
    paths: set[str] = field(default_factory=set)
    globs: set[str] = field(default_factory=set)

    @classmethod
    def defaults(cls) -> GitignoreRules:
        return cls(
            dirs=set(DEFAULT_IGNORED_DIRS),
            files=set(DEFAULT_IGNORED_FILES),
            globs=set(DEFAULT_IGNORED_GLOBS),
        )

    def add_line(self, line: str) -> None:
        entry = line.strip().replace("\\", "/")
        if not entry or entry.startswith(("#", "!")):
            return
        entry = entry.lstrip("/")
        if not entry:
            return
        if entry.endswith("/"):
            self.dirs.add(entry.rstrip("/"))
        elif "/" in entry:
            self.paths.add(entry)
        elif "*" in entry:
            self.globs.add(entry)
        elif entry.startswith("."):
            self.files.add(entry)
        else:
            self.dirs.add(entry)

    def matches(self, relative: str, is_dir: bool = False) -> bool:
        """True when a workspace-relative POSIX path is ignored."""
        segments = [seg for seg in relative.split("/") if seg]
        if not segments:
            return False
        dir_segments = segments if is_dir else segments[:-1]

        if any(seg in BUILD_DIR_DENYLIST or seg in self.dirs for seg in dir_segments):
            return True
        if relative in self.paths:
            return True
        name = segments[-1]
        if name in self.files:
            return True
        return any(
            fnmatch.fnmatch(name, glob) or fnmatch.fnmatch(relative, glob) for glob in self.globs
        )


def load_gitignore(root: Path) -> GitignoreRules:
    """Merge the workspace root .gitignore into the default rules."""
    rules = GitignoreRules.defaults()
    path = root / ".gitignore"
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return rules
    except OSError as exc:
        log.warning("discovery.gitignore_unreadable", path=str(path), error=str(exc))
        return rules

    for line in content.splitlines():
        rules.add_line(line)
    return rules


def discover_manifests(root: Path, rules: GitignoreRules | None = None) -> list[Path]:
    """Find package.json files recursively under root, sorted by path.

    node_modules, known build output directories and gitignored entries are
    skipped without descending into them.
    """
    root = root.resolve()
    if rules is None:
        rules = load_gitignore(root)

    found: list[Path] = []
    skipped = 0

    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        rel_dir = current.relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        kept = []
        for name in sorted(dirnames):
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if name in EXCLUDES:
                continue
            if rules.matches(rel, is_dir=True):
                if (current / name / MANIFEST_NAME).is_file():
                    skipped += 1
                continue
            kept.append(name)
        dirnames[:] = kept

        if MANIFEST_NAME not in filenames:
            continue
        rel_file = f"{rel_dir}/{MANIFEST_NAME}" if rel_dir else MANIFEST_NAME
        if rules.matches(rel_file):
            skipped += 1
            continue
        found.append(current / MANIFEST_NAME)

    if skipped:
        log.info("discovery.manifests_ignored", count=skipped, root=str(root))
    return sorted(found)


def is_monorepo(manifests: list[Path]) -> bool:
    return len({path.parent for path in manifests}) > 1


def find_lockfile(directory: Path) -> LockfileRef | None:
    """Return the preferred lockfile in ``directory`` (pnpm, yarn, then npm)."""
    for kind, filename in LOCKFILE_NAMES.items():
        candidate = directory / filename
        if candidate.is_file():
            return LockfileRef(kind, candidate)
    return None


def detect_root_lockfile(root: Path) -> LockfileRef | None:
    """Like :func:`find_lockfile`, also treating pnpm-workspace.yaml as pnpm."""
    candidates = (
        (LockfileKind.PNPM, "pnpm-lock.yaml"),
        (LockfileKind.PNPM, "pnpm-workspace.yaml"),
        (LockfileKind.YARN, "yarn.lock"),
        (LockfileKind.NPM, "package-lock.json"),
    )
    for kind, filename in candidates:
        candidate = root / filename
        if candidate.is_file():
            return LockfileRef(kind, candidate)
    return None
