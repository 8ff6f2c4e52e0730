"""Watches git repositories for branch switches and new commits.

Reads .git directly (HEAD, refs, packed-refs) and follows the "gitdir:"
file that worktrees and submodules use in place of a .git directory.
Commit subjects come from `git log`, falling back to loose objects when
no git binary is available. Changes are picked up from three sources that
all end in check_repository(): watchdog notifications on HEAD and refs, a
polling fallback, and handle_repository_state() for callers that already
know the state.
"""

import asyncio
import subprocess
import zlib
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from models import BranchChangeEvent, CommitEvent
from patterns import Patterns
from utils import now_ms

DETACHED = "detached"
POLL_INTERVAL = 30.0
GIT_TIMEOUT = 5


def _git_dir(repo_path: str) -> Path:
    """The repository's git directory, following a "gitdir: <path>" file."""
    dot_git = Path(repo_path) / ".git"
    if not dot_git.is_file():
        return dot_git
    try:
        content = dot_git.read_text().strip()
    except OSError:
        return dot_git
    if not content.startswith("gitdir:"):
        return dot_git
    target = Path(content[len("gitdir:"):].strip())
    if not target.is_absolute():
        target = Path(repo_path) / target
    return target


def _common_dir(git_dir: Path) -> Path:
    """Where refs and packed-refs live; a linked worktree names it in "commondir"."""
    try:
        common = Path((git_dir / "commondir").read_text().strip())
    except OSError:
        return git_dir
    return common if common.is_absolute() else git_dir / common


def is_repository(path: Path) -> bool:
    return (_git_dir(str(path)) / "HEAD").is_file()


def read_head_branch(repo_path: str) -> str | None:
    """Current branch name, "detached", or None if this is not a repository."""
    try:
        head = (_git_dir(repo_path) / "HEAD").read_text().strip()
    except OSError:
        return None
    m = Patterns.HEAD_REF.match(head)
    return m.group(1) if m else DETACHED


def read_head_commit(repo_path: str) -> str | None:
    """Commit hash HEAD points at (loose ref, then packed-refs)."""
    git_dir = _git_dir(repo_path)
    try:
        head = (git_dir / "HEAD").read_text().strip()
    except OSError:
        return None

    m = Patterns.HEAD_REF.match(head)
    if not m:
        return head or None

    ref = f"refs/heads/{m.group(1)}"
    common = _common_dir(git_dir)
    try:
        return (common / ref).read_text().strip() or None
    except OSError:
        pass

    try:
        packed = (common / "packed-refs").read_text().splitlines()
    except OSError:
        return None
    for line in packed:
        if line.startswith(("#", "^")):
            continue
        parts = line.split()
        if len(parts) == 2 and parts[1] == ref:
            return parts[0]
    return None


def read_commit_message(repo_path: str, commit_hash: str) -> str:
    """Subject line of a commit.

    Asks git first, which also covers packed objects; without git only loose
    objects can be read, and anything else becomes "Commit <short hash>".
    """
    try:
        result = subprocess.run(
            ["git", "log", "-1", "--format=%s", commit_hash],
            cwd=repo_path,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
            check=True,
        )
        subject = result.stdout.strip()
        if subject:
            return subject
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired):
        pass
    return _read_loose_commit_message(repo_path, commit_hash)


def _read_loose_commit_message(repo_path: str, commit_hash: str) -> str:
    fallback = f"Commit {commit_hash[:8]}"
    obj = _common_dir(_git_dir(repo_path)) / "objects" / commit_hash[:2] / commit_hash[2:]
    try:
        raw = zlib.decompress(obj.read_bytes())
    except (OSError, zlib.error):
        return fallback

    _header, _, body = raw.partition(b"\x00")
    _headers, _, message = body.decode("utf-8", errors="replace").partition("\n\n")
    subject = message.strip().splitlines()[0] if message.strip() else ""
    return subject or fallback


class _GitRefHandler(FileSystemEventHandler):
    """Forwards changes to HEAD, packed-refs and branch refs onto the event loop."""

    def __init__(self, monitor: "BranchMonitor", repo_path: str, loop: asyncio.AbstractEventLoop):
        self.monitor = monitor
        self.repo_path = repo_path
        self.loop = loop
        self.git_dir = _git_dir(repo_path).resolve()
        self.common_dir = _common_dir(self.git_dir).resolve()

    def on_any_event(self, event):
        if event.is_directory:
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if any(self._is_ref(p) for p in paths if p):
            self.loop.call_soon_threadsafe(self.monitor.check_repository, self.repo_path)

    def _is_ref(self, path: str) -> bool:
        p = Path(path).resolve()
        if p.name.endswith(".lock"):
            return False
        if p.parent == self.git_dir and p.name == "HEAD":
            return True
        if p.parent == self.common_dir and p.name == "packed-refs":
            return True
        try:
            p.relative_to(self.common_dir / "refs" / "heads")
            return True
        except ValueError:
            return False


class BranchMonitor:
    """Emits BranchChangeEvent / CommitEvent for the repositories in the workspace."""

    def __init__(
        self,
        workspace_paths: list[str],
        poll_interval: float = POLL_INTERVAL,
        use_watchdog: bool = True,
        clock: Callable[[], int] = now_ms,
    ):
        self.workspace_paths = list(workspace_paths)
        self.poll_interval = poll_interval
        self.use_watchdog = use_watchdog
        self.clock = clock
        self.repositories: list[str] = []
        self._branches: dict[str, str] = {}
        self._commits: dict[str, str] = {}
        self._branch_listeners: list[Callable[[BranchChangeEvent], None]] = []
        self._commit_listeners: list[Callable[[CommitEvent], None]] = []
        self._observer = None
        self._poll_task: asyncio.Task | None = None

    def on_branch_change(self, callback: Callable[[BranchChangeEvent], None]) -> None:
        self._branch_listeners.append(callback)

    def on_commit(self, callback: Callable[[CommitEvent], None]) -> None:
        self._commit_listeners.append(callback)

    def current_branch(self, repo_path: str) -> str | None:
        return self._branches.get(repo_path)

    def discover_repositories(self) -> list[str]:
        """Workspace folders that are repositories, else their direct subfolders that are."""
        repos = []
        for folder in self.workspace_paths:
            root = Path(folder)
            if is_repository(root):
                repos.append(str(root))
                continue
            if not root.is_dir():
                continue
            for child in sorted(root.iterdir()):
                if child.is_dir() and is_repository(child):
                    repos.append(str(child))
        return repos

    async def start(self) -> None:
        """Initial check of every repository, then watch and poll."""
        self.repositories = self.discover_repositories()
        if not self.repositories:
            print("[!] No git repositories found in the workspace folders")
        for repo in self.repositories:
            print(f"[*] Watching {repo}")
            self.check_repository(repo)

        loop = asyncio.get_running_loop()
        if self.use_watchdog and self.repositories:
            self._start_observer(loop)
        self._poll_task = loop.create_task(self._poll_loop())

    def _start_observer(self, loop: asyncio.AbstractEventLoop) -> None:
        observer = Observer()
        for repo in self.repositories:
            handler = _GitRefHandler(self, repo, loop)
            observer.schedule(handler, str(handler.git_dir), recursive=False)
            if handler.common_dir != handler.git_dir:
                observer.schedule(handler, str(handler.common_dir), recursive=False)
            heads = handler.common_dir / "refs" / "heads"
            if heads.is_dir():
                observer.schedule(handler, str(heads), recursive=True)
        observer.start()
        self._observer = observer

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            for repo in self.repositories:
                self.check_repository(repo)

    def check_repository(self, repo_path: str) -> None:
        """Read HEAD from disk and emit events for anything that changed."""
        branch = read_head_branch(repo_path)
        if branch is None:
            return
        self.handle_repository_state(repo_path, branch, read_head_commit(repo_path))

    def handle_repository_state(self, repo_path: str, branch: str, commit: str | None = None) -> None:
        previous = self._branches.get(repo_path)
        if branch != previous:
            self._branches[repo_path] = branch
            print(f"[*] Branch in {Path(repo_path).name}: {previous or '-'} -> {branch}")
            self._emit(
                self._branch_listeners,
                BranchChangeEvent(
                    workspace_path=repo_path,
                    previous_branch=previous,
                    new_branch=branch,
                    timestamp=self.clock(),
                ),
            )

        if not commit:
            return
        previous_commit = self._commits.get(repo_path)
        self._commits[repo_path] = commit
        # a branch switch moves HEAD without committing
        if previous_commit and commit != previous_commit and branch == previous:
            message = read_commit_message(repo_path, commit)
            print(f"[*] New commit on {branch}: {commit[:8]} {message}")
            self._emit(
                self._commit_listeners,
                CommitEvent(
                    workspace_path=repo_path,
                    branch=branch,
                    commit_hash=commit,
                    commit_message=message,
                    timestamp=self.clock(),
                ),
            )

    @staticmethod
    def _emit(listeners: list[Callable], event) -> None:
        for callback in list(listeners):
            try:
                callback(event)
            except Exception as e:
                print(f"[!] Error in {type(event).__name__} listener: {e}")

    def dispose(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        self._branch_listeners.clear()
        self._commit_listeners.clear()
        self._branches.clear()
        self._commits.clear()
        self.repositories = []
