# scripts/release.py

"""
커밋 메시지(Conventional Commits)를 분석하여 릴리스를 자동화하는 CLI입니다.

    python -m scripts.release analyze
    python -m scripts.release version 1.2.3 minor
    python -m scripts.release run --dry-run

`run`은 사전 점검, 커밋 분석, 버전 계산, 파일 백업, 테스트/빌드, 버전 기록,
CHANGELOG 갱신, git 커밋/태그/푸시 순서로 진행하며, 백업 이후 실패하면 파일을 복원합니다.
"""

import re
import shutil
import subprocess
import sys
import time
import tomllib
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

import typer

PROJECT_ROOT = Path(__file__).resolve().parent.parent

COMMIT_PATTERN = re.compile(r"^(\w+)(?:\(([^)]+)\))?!?\s*:\s*(.+)$")
BREAKING_PATTERN = re.compile(r"BREAKING[\s-]?CHANGE", re.IGNORECASE)
SEMVER_PATTERN = re.compile(
    r"^(\d+)\.(\d+)\.(\d+)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
PROJECT_VERSION_PATTERN = re.compile(r'^(version\s*=\s*")([^"]+)(")', re.MULTILINE)

MINOR_TYPES = ("feat", "feature")
PATCH_TYPES = ("fix", "bugfix", "patch")
RELEASE_BRANCHES = ("main", "master")

# analyze 명령 종료 코드
EXIT_RELEASE_NEEDED = 0
EXIT_NO_RELEASE = 1
EXIT_ERROR = 2


class ReleaseError(Exception):
    """릴리스 과정에서 발생한 오류."""


class ReleaseType(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    PRERELEASE = "prerelease"
    NONE = "none"


_PRIORITY = [ReleaseType.MAJOR, ReleaseType.MINOR, ReleaseType.PATCH]


# =============================================================================
# 1. 명령 실행
# =============================================================================
CommandRunner = Callable[[List[str]], str]


def run_command(args: List[str]) -> str:
    """명령을 실행하고 표준 출력을 반환합니다. 실패하면 ReleaseError."""
    try:
        completed = subprocess.run(args, cwd=PROJECT_ROOT, check=True, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise ReleaseError(f"Command not found: {args[0]}") from e
    except subprocess.CalledProcessError as e:
        raise ReleaseError(f"Command failed: {' '.join(args)}\n{(e.stderr or '').strip()}") from e
    return completed.stdout


# =============================================================================
# 2. 커밋 분석
# =============================================================================
@dataclass
class CommitAnalysis:
    message: str
    type: str = "unknown"
    scope: Optional[str] = None
    subject: str = ""
    is_breaking: bool = False
    release_type: ReleaseType = ReleaseType.NONE


@dataclass
class ReleaseAnalysis:
    needs_release: bool
    release_type: ReleaseType
    summary: Dict[str, int]
    commits: List[CommitAnalysis] = field(default_factory=list)


def analyze_commit(message: str) -> CommitAnalysis:
    """
    커밋 제목을 `type(scope): subject` 형식으로 해석합니다.
    BREAKING CHANGE 또는 `!:` 는 major, feat 는 minor, fix 는 patch 입니다.
    """
    analysis = CommitAnalysis(message=message, subject=message)
    match = COMMIT_PATTERN.match(message)
    if match:
        analysis.type = match.group(1).lower()
        analysis.scope = match.group(2)
        analysis.subject = match.group(3)

    analysis.is_breaking = bool(BREAKING_PATTERN.search(message)) or "!:" in message
    if analysis.is_breaking:
        analysis.release_type = ReleaseType.MAJOR
    elif analysis.type in MINOR_TYPES:
        analysis.release_type = ReleaseType.MINOR
    elif analysis.type in PATCH_TYPES:
        analysis.release_type = ReleaseType.PATCH
    return analysis


def analyze_commits(messages: List[str]) -> ReleaseAnalysis:
    commits = [analyze_commit(m) for m in messages if m.strip()]
    summary = {"total": len(commits)}
    for kind in (*_PRIORITY, ReleaseType.NONE):
        summary[kind.value] = sum(1 for c in commits if c.release_type == kind)

    release_type = next((kind for kind in _PRIORITY if summary[kind.value] > 0), ReleaseType.NONE)
    return ReleaseAnalysis(
        needs_release=release_type != ReleaseType.NONE,
        release_type=release_type,
        summary=summary,
        commits=commits,
    )


def get_last_tag(runner: CommandRunner) -> Optional[str]:
    try:
        tag = runner(["git", "describe", "--tags", "--abbrev=0"]).strip()
    except ReleaseError:
        return None
    return tag or None


def get_commits_since(runner: CommandRunner, tag: Optional[str]) -> List[str]:
    """태그 이후의 커밋 제목 목록. 태그가 없으면 전체 커밋."""
    git_range = f"{tag}..HEAD" if tag else "HEAD"
    output = runner(["git", "log", git_range, "--pretty=format:%s"])
    return [line for line in output.splitlines() if line.strip()]


# =============================================================================
# 3. 시맨틱 버전
# =============================================================================
@dataclass(frozen=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None
    build: Optional[str] = None

    @classmethod
    def parse(cls, version: str) -> "SemVer":
        match = SEMVER_PATTERN.match(version.strip().lstrip("v"))
        if not match:
            raise ReleaseError(f"Invalid semantic version: {version}")
        major, minor, patch, prerelease, build = match.groups()
        return cls(int(major), int(minor), int(patch), prerelease, build)

    def __str__(self) -> str:
        version = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            version += f"-{self.prerelease}"
        if self.build:
            version += f"+{self.build}"
        return version

    def bump(self, release_type: ReleaseType, preid: str = "alpha") -> "SemVer":
        """하위 구성 요소를 0으로 초기화하고 prerelease/build 는 제거합니다."""
        if release_type == ReleaseType.NONE:
            return self
        if release_type == ReleaseType.MAJOR:
            return SemVer(self.major + 1, 0, 0)
        if release_type == ReleaseType.MINOR:
            return SemVer(self.major, self.minor + 1, 0)
        if release_type == ReleaseType.PATCH:
            return SemVer(self.major, self.minor, self.patch + 1)
        if release_type == ReleaseType.PRERELEASE:
            return replace(self, prerelease=self._next_prerelease(preid), build=None)
        raise ReleaseError(f"Invalid release type: {release_type}")

    def _next_prerelease(self, preid: str) -> str:
        match = re.match(r"^([a-zA-Z]+)\.?(\d+)?$", self.prerelease or "")
        if match and match.group(1) == preid:
            return f"{preid}.{int(match.group(2) or 0) + 1}"
        return f"{preid}.1"

    def compare(self, other: "SemVer") -> int:
        """-1, 0, 1. prerelease 가 있는 버전이 정식 버전보다 낮습니다. build 는 무시합니다."""
        left = (self.major, self.minor, self.patch)
        right = (other.major, other.minor, other.patch)
        if left != right:
            return -1 if left < right else 1
        if self.prerelease == other.prerelease:
            return 0
        if self.prerelease is None:
            return 1
        if other.prerelease is None:
            return -1
        return _compare_prerelease(self.prerelease, other.prerelease)


def _compare_prerelease(left: str, right: str) -> int:
    for a, b in zip(left.split("."), right.split(".")):
        if a == b:
            continue
        if a.isdigit() and b.isdigit():
            return -1 if int(a) < int(b) else 1
        if a.isdigit() != b.isdigit():
            # 숫자 식별자가 문자 식별자보다 낮습니다.
            return -1 if a.isdigit() else 1
        return -1 if a < b else 1
    left_len, right_len = len(left.split(".")), len(right.split("."))
    if left_len == right_len:
        return 0
    return -1 if left_len < right_len else 1


def read_project_version(pyproject: Path) -> str:
    with pyproject.open("rb") as f:
        data = tomllib.load(f)
    return data.get("project", {}).get("version", "0.0.0")


def write_project_version(text: str, version: str) -> str:
    """pyproject.toml 본문에서 첫 번째 version 값을 바꿉니다."""
    updated, count = PROJECT_VERSION_PATTERN.subn(rf"\g<1>{version}\g<3>", text, count=1)
    if count == 0:
        raise ReleaseError("No version field found in pyproject.toml")
    return updated


def render_changelog_entry(version: str, analysis: ReleaseAnalysis, today: Optional[date] = None) -> str:
    sections = [
        ("Breaking Changes", ReleaseType.MAJOR),
        ("Features", ReleaseType.MINOR),
        ("Bug Fixes", ReleaseType.PATCH),
    ]
    lines = [f"## [{version}] - {(today or date.today()).isoformat()}", ""]
    for title, kind in sections:
        entries = [c for c in analysis.commits if c.release_type == kind]
        if not entries:
            continue
        lines.append(f"### {title}")
        for commit in entries:
            scope = f"**{commit.scope}**: " if commit.scope else ""
            lines.append(f"- {scope}{commit.subject}")
        lines.append("")
    return "\n".join(lines) + "\n"


# =============================================================================
# 4. 릴리스 실행
# =============================================================================
@dataclass
class ReleaseOptions:
    dry_run: bool = False
    force: bool = False
    release_type: Optional[ReleaseType] = None
    skip_tests: bool = False
    skip_build: bool = False


@dataclass
class ReleaseResult:
    success: bool
    version: Optional[str] = None
    release_type: Optional[ReleaseType] = None
    reason: Optional[str] = None


class ReleaseRunner:
    """
    릴리스 전체 과정을 수행합니다.
    읽기 전용 git 명령은 dry-run 에서도 실행되며, 파일 쓰기와 변경 명령은 출력만 합니다.
    """

    test_command = [sys.executable, "-m", "pytest"]
    build_command = [sys.executable, "-m", "pip", "wheel", ".", "--no-deps", "-w", "dist"]

    def __init__(
        self,
        options: ReleaseOptions,
        root: Path = PROJECT_ROOT,
        runner: CommandRunner = run_command,
        echo: Callable[[str], None] = typer.echo,
    ):
        self.options = options
        self.root = root
        self.runner = runner
        self.echo = echo
        self.pyproject_path = root / "pyproject.toml"
        self.changelog_path = root / "CHANGELOG.md"
        self.backup_suffix = f".backup-{int(time.time() * 1000)}"

    # --- 명령 / 파일 ---
    def read(self, args: List[str]) -> str:
        return self.runner(args)

    def execute(self, args: List[str]) -> str:
        if self.options.dry_run:
            self.echo(f"DRY RUN: Would execute: {' '.join(args)}")
            return ""
        return self.runner(args)

    def write_file(self, path: Path, content: str) -> None:
        if self.options.dry_run:
            self.echo(f"DRY RUN: Would write {path.name}")
            return
        path.write_text(content, encoding="utf-8")

    # --- 사전 점검 ---
    def check_branch(self) -> bool:
        branch = self.read(["git", "rev-parse", "--abbrev-ref", "HEAD"]).strip()
        if branch not in RELEASE_BRANCHES:
            self.echo(f"Release can only be performed from main/master branch (current: {branch})")
            return False
        return True

    def check_working_directory(self) -> bool:
        status = self.read(["git", "status", "--porcelain"]).strip()
        if status:
            self.echo("Working directory is not clean. Commit or stash changes first.")
            for line in status.splitlines():
                self.echo(f"  {line}")
            return False
        return True

    def check_remote_sync(self) -> bool:
        try:
            self.execute(["git", "fetch", "origin"])
            local = self.read(["git", "rev-parse", "HEAD"]).strip()
            remote = self._remote_head()
        except ReleaseError as e:
            # 원격 확인 실패는 릴리스를 막지 않습니다.
            self.echo(f"Could not verify remote sync: {e}")
            return True
        if local != remote:
            self.echo(f"Local branch is not synchronized with remote ({local[:8]} != {remote[:8]})")
            return False
        return True

    def _remote_head(self) -> str:
        last_error: Optional[ReleaseError] = None
        for ref in ("origin/HEAD", "origin/main", "origin/master"):
            try:
                return self.read(["git", "rev-parse", ref]).strip()
            except ReleaseError as e:
                last_error = e
        raise last_error

    def pre_checks(self) -> Optional[str]:
        """실패한 점검의 사유를 반환합니다. --force 이면 경고만 출력하고 None."""
        checks = [
            (self.check_branch, "Wrong branch - releases only allowed from main/master"),
            (self.check_working_directory, "Working directory not clean - commit or stash changes first"),
            (self.check_remote_sync, "Not synchronized with remote - pull latest changes first"),
        ]
        for check, reason in checks:
            if check():
                continue
            if not self.options.force:
                return reason
            self.echo(f"WARNING: {reason} (continuing because of --force)")
        return None

    # --- 백업 ---
    def _tracked_files(self) -> List[Path]:
        return [self.pyproject_path, self.changelog_path]

    def _backup_path(self, path: Path) -> Path:
        return path.with_name(path.name + self.backup_suffix)

    def create_backups(self) -> None:
        for path in self._tracked_files():
            if not path.exists():
                continue
            if self.options.dry_run:
                self.echo(f"DRY RUN: Would back up {path.name}")
                continue
            shutil.copy2(path, self._backup_path(path))

    def restore_backups(self) -> None:
        for path in self._tracked_files():
            backup = self._backup_path(path)
            if backup.exists():
                shutil.copy2(backup, path)
                backup.unlink()
                self.echo(f"Restored {path.name}")

    def cleanup_backups(self) -> None:
        for path in self._tracked_files():
            backup = self._backup_path(path)
            if backup.exists():
                backup.unlink()

    # --- 단계 ---
    def analyze(self) -> ReleaseAnalysis:
        tag = get_last_tag(self.read)
        return analyze_commits(get_commits_since(self.read, tag))

    def run_tests(self) -> None:
        if self.options.skip_tests:
            self.echo("Skipping tests (--skip-tests)")
            return
        self.execute(self.test_command)

    def run_build(self) -> None:
        if self.options.skip_build:
            self.echo("Skipping build (--skip-build)")
            return
        self.execute(self.build_command)

    def update_version(self, version: str) -> None:
        text = self.pyproject_path.read_text(encoding="utf-8")
        self.write_file(self.pyproject_path, write_project_version(text, version))

    def update_changelog(self, version: str, analysis: ReleaseAnalysis) -> None:
        entry = render_changelog_entry(version, analysis)
        if self.changelog_path.exists():
            current = self.changelog_path.read_text(encoding="utf-8")
        else:
            current = "# Changelog\n"
        header, _, rest = current.partition("\n")
        self.write_file(self.changelog_path, f"{header}\n\n{entry}{rest.lstrip()}")

    def commit_tag_push(self, version: str, analysis: ReleaseAnalysis) -> None:
        subjects = "\n".join(f"- {c.message}" for c in analysis.commits[:10])
        self.execute(["git", "add", "pyproject.toml", "CHANGELOG.md"])
        self.execute(["git", "commit", "-m", f"chore(release): bump version to {version}"])
        self.execute(["git", "tag", "-a", f"v{version}", "-m", f"Release v{version}\n\n{subjects}".rstrip()])
        self.execute(["git", "push", "origin", "HEAD"])
        self.execute(["git", "push", "origin", "--tags"])

    def perform(self) -> ReleaseResult:
        reason = self.pre_checks()
        if reason:
            return ReleaseResult(success=False, reason=reason)

        analysis = self.analyze()
        if not analysis.needs_release and not self.options.force and self.options.release_type is None:
            return ReleaseResult(success=False, reason="No release needed")

        release_type = self.options.release_type or analysis.release_type
        if release_type == ReleaseType.NONE:
            release_type = ReleaseType.PATCH

        current = read_project_version(self.pyproject_path)
        new_version = str(SemVer.parse(current).bump(release_type))
        self.echo(f"Releasing {current} -> {new_version} ({release_type.value}, {analysis.summary['total']} commits)")

        self.create_backups()
        try:
            self.run_tests()
            self.run_build()
            self.update_version(new_version)
            self.update_changelog(new_version, analysis)
            self.commit_tag_push(new_version, analysis)
        except (ReleaseError, OSError) as e:
            self.echo(f"Release failed: {e}")
            self.restore_backups()
            return ReleaseResult(success=False, release_type=release_type, reason=str(e))
        except Exception:
            self.echo("Release failed unexpectedly, restoring files")
            self.restore_backups()
            raise

        self.cleanup_backups()
        return ReleaseResult(success=True, version=new_version, release_type=release_type)


# =============================================================================
# 5. CLI
# =============================================================================
cli = typer.Typer(help="Conventional-commit based release automation.")


@cli.command()
def analyze():
    """마지막 태그 이후의 커밋을 분석합니다. 종료 코드 0: 릴리스 필요, 1: 불필요, 2: 오류."""
    try:
        tag = get_last_tag(run_command)
        result = analyze_commits(get_commits_since(run_command, tag))
    except ReleaseError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_ERROR)

    typer.echo(f"Last tag: {tag or 'none'}")
    typer.echo(f"Needs release: {'yes' if result.needs_release else 'no'}")
    typer.echo(f"Release type: {result.release_type.value}")
    typer.echo(", ".join(f"{key}={value}" for key, value in result.summary.items()))
    raise typer.Exit(code=EXIT_RELEASE_NEEDED if result.needs_release else EXIT_NO_RELEASE)


@cli.command()
def version(
    current: str = typer.Argument(..., help="현재 버전 (예: 1.2.3)"),
    release_type: ReleaseType = typer.Argument(..., help="major | minor | patch | prerelease | none"),
    preid: str = typer.Option("alpha", "--preid", help="prerelease 식별자"),
):
    """현재 버전에서 다음 버전을 계산합니다."""
    try:
        parsed = SemVer.parse(current)
    except ReleaseError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_ERROR)
    typer.echo(str(parsed.bump(release_type, preid=preid)))


@cli.command()
def run(
    dry_run: bool = typer.Option(False, "--dry-run", help="변경 없이 수행할 작업만 출력합니다."),
    force: bool = typer.Option(False, "--force", help="사전 점검 실패를 경고로 처리합니다."),
    release_type: Optional[ReleaseType] = typer.Option(None, "--type", help="릴리스 유형을 직접 지정합니다."),
    skip_tests: bool = typer.Option(False, "--skip-tests"),
    skip_build: bool = typer.Option(False, "--skip-build"),
):
    """릴리스를 수행합니다."""
    options = ReleaseOptions(
        dry_run=dry_run,
        force=force,
        release_type=release_type,
        skip_tests=skip_tests,
        skip_build=skip_build,
    )
    try:
        result = ReleaseRunner(options).perform()
    except ReleaseError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_ERROR)

    if result.success:
        typer.echo(f"Release v{result.version} completed")
        return
    typer.echo(f"Release skipped: {result.reason}")
    if result.release_type is not None:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    cli()
