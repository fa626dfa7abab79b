"""Build version information derived from git history."""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

MAJOR_VERSION = 3
MINOR_VERSION = 0
PATCH_VERSION = 0

VERSION_FILES = ("VERSION", "VERSION.json", "VERSION.md", "version-update.sql")


@dataclass(frozen=True)
class VersionInfo:
    major: int
    minor: int
    patch: int
    build: int
    commit: str
    branch: str
    dirty: bool
    repository: str
    tier: Optional[str]
    timestamp: str

    @property
    def version(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}.{self.build}"

    def to_dict(self) -> Dict:
        return {
            "version": self.version,
            "major": self.major,
            "minor": self.minor,
            "patch": self.patch,
            "build": self.build,
            "repository": self.repository,
            "tier": self.tier,
            "git": {"commit": self.commit, "branch": self.branch, "dirty": self.dirty},
            "timestamp": self.timestamp,
        }


class VersionService:
    """Computes `major.minor.patch.build` and writes the version files."""

    def __init__(self, logger, clock=None):
        self.logger = logger
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _git(self, repo: Path, args: List[str], run_cmd: Callable) -> Optional[str]:
        result = run_cmd(["git", "-C", str(repo)] + args, check=False, capture_output=True)
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip()

    def collect(self, repo: Path, run_cmd: Callable, tier: Optional[str] = None) -> VersionInfo:
        repo = Path(repo)
        count = self._git(repo, ["rev-list", "--count", "HEAD"], run_cmd)
        build = int(count) if count and count.isdigit() else 0
        commit = self._git(repo, ["rev-parse", "--short", "HEAD"], run_cmd) or "unknown"
        branch = self._git(repo, ["rev-parse", "--abbrev-ref", "HEAD"], run_cmd) or "unknown"
        status = self._git(repo, ["status", "--porcelain"], run_cmd)

        return VersionInfo(
            major=MAJOR_VERSION,
            minor=MINOR_VERSION,
            patch=PATCH_VERSION,
            build=build,
            commit=commit,
            branch=branch,
            dirty=bool(status),
            repository=repo.resolve().name,
            tier=tier,
            timestamp=self.clock().strftime("%Y-%m-%dT%H:%M:%SZ"),
        )

    @staticmethod
    def render_markdown(info: VersionInfo) -> str:
        lines = [
            "# Version Information",
            "",
            f"**Repository:** {info.repository}  ",
        ]
        if info.tier:
            lines.append(f"**Tier:** {info.tier}  ")
        lines += [
            f"**Version:** {info.version}  ",
            f"**Build Date:** {info.timestamp}  ",
            "",
            "## Version Components",
            f"- **Major:** {info.major} (Breaking changes)",
            f"- **Minor:** {info.minor} (New features)",
            f"- **Patch:** {info.patch} (Bug fixes)",
            f"- **Build:** {info.build} (Total commits)",
            "",
            "## Git Information",
            f"- **Commit:** {info.commit}{'-dirty' if info.dirty else ''}",
            f"- **Branch:** {info.branch}",
            f"- **Status:** {'Modified' if info.dirty else 'Clean'}",
            "",
        ]
        return "\n".join(lines)

    @staticmethod
    def render_sql(info: VersionInfo) -> str:
        schema = info.tier or "public"
        metadata = json.dumps(
            {
                "timestamp": info.timestamp,
                "dirty": info.dirty,
                "repository": info.repository,
                "tier": info.tier,
            }
        ).replace("'", "''")
        return (
            f"-- Version Update\n"
            f"-- Generated: {info.timestamp}\n"
            f"-- Version: {info.version}\n\n"
            f"CREATE TABLE IF NOT EXISTS {schema}.schema_version (\n"
            "    id SERIAL PRIMARY KEY,\n"
            "    version VARCHAR(50) NOT NULL,\n"
            "    major INTEGER NOT NULL,\n"
            "    minor INTEGER NOT NULL,\n"
            "    patch INTEGER NOT NULL,\n"
            "    build INTEGER NOT NULL,\n"
            "    git_commit VARCHAR(40),\n"
            "    git_branch VARCHAR(100),\n"
            "    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,\n"
            "    metadata JSONB\n"
            ");\n\n"
            f"INSERT INTO {schema}.schema_version "
            "(version, major, minor, patch, build, git_commit, git_branch, metadata)\n"
            f"VALUES ('{info.version}', {info.major}, {info.minor}, {info.patch}, {info.build}, "
            f"'{info.commit}', '{info.branch}', '{metadata}'::jsonb);\n"
        )

    def write(self, info: VersionInfo, version_dir: Path) -> List[Path]:
        version_dir = Path(version_dir)
        version_dir.mkdir(parents=True, exist_ok=True)

        contents = {
            "VERSION": info.version + "\n",
            "VERSION.json": json.dumps(info.to_dict(), indent=2) + "\n",
            "VERSION.md": self.render_markdown(info),
            "version-update.sql": self.render_sql(info),
        }
        written = []
        for name in VERSION_FILES:
            path = version_dir / name
            path.write_text(contents[name], encoding="utf-8")
            written.append(path)
            self.logger.debug("Wrote %s", path)
        return written
