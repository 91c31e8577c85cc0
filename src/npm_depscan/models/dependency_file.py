"""Per-manifest dependency listing."""

from __future__ import annotations

from dataclasses import dataclass, field

from .dependency import Dependency

NPM_ECOSYSTEM = "npm"


@dataclass(slots=True)
class DependencyFile:
    """Resolved dependencies of one ``package.json``."""

    path: str
    ecosystem: str = NPM_ECOSYSTEM
    package_name: str | None = None
    package_root: str | None = None
    workspace_folder: str | None = None
    dependencies: list[Dependency] = field(default_factory=list)
    dev_dependencies: list[Dependency] = field(default_factory=list)

    def all_dependencies(self) -> list[Dependency]:
        return [*self.dependencies, *self.dev_dependencies]

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "path": self.path,
            "type": self.ecosystem,
            "dependencies": [dep.to_dict() for dep in self.dependencies],
            "devDependencies": [dep.to_dict() for dep in self.dev_dependencies],
        }
        if self.package_name is not None:
            data["packageName"] = self.package_name
        if self.package_root is not None:
            data["packageRoot"] = self.package_root
        if self.workspace_folder is not None:
            data["workspaceFolder"] = self.workspace_folder
        return data

    @classmethod
    def from_tree(
        cls,
        *,
        path: str,
        tree: list[Dependency],
        package_name: str | None = None,
        package_root: str | None = None,
        workspace_folder: str | None = None,
    ) -> DependencyFile:
        """Split a mixed root list into production and dev dependencies."""
        return cls(
            path=path,
            package_name=package_name,
            package_root=package_root,
            workspace_folder=workspace_folder,
            dependencies=[dep for dep in tree if not dep.is_dev],
            dev_dependencies=[dep for dep in tree if dep.is_dev],
        )
