"""
Model Source

Resolves the architecture model location: a local path, or a shallow
clone of a remote model repository that is removed after the run.
"""

import asyncio
import logging
import os
import re
import shutil
import subprocess
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple
from urllib.parse import urlparse

from ..errors import DriftReviewerError, ErrorCode


logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "DRIFT_REVIEWER_GIT_TOKEN"
ASKPASS_SCRIPT = f'#!/bin/sh\necho "${TOKEN_ENV_VAR}"\n'


def _noop() -> None:
    return None


@dataclass
class ModelSource:
    """Local model path plus the handle that releases it"""
    path: str
    repo_slug: Optional[str] = None
    cleanup: Callable[[], None] = field(default=_noop, repr=False)


def parse_model_repo(model_repo: str) -> Tuple[str, str]:
    """
    Clone URL and ``owner/repo`` slug of a model repository argument.

    Accepts full https URLs or a bare ``owner/repo`` slug, which means GitHub.
    """
    if re.match(r'^https?://', model_repo):
        path = urlparse(model_repo).path.strip('/')
        if path.endswith('.git'):
            path = path[:-4]
        clean_url = re.sub(r'(\.git)?/*$', '', model_repo)
        return f"{clean_url}.git", path

    slug = model_repo.rstrip('/')
    return f"https://github.com/{slug}.git", slug


def _authenticated_url(clone_url: str) -> str:
    return clone_url.replace("https://", "https://x-access-token@", 1)


def clone_repository(clone_url: str, target_dir: str, ref: str = "main",
                     token: Optional[str] = None, timeout: int = 300) -> None:
    """
    Shallow-clone ``ref`` of ``clone_url`` into ``target_dir``.

    A token is handed to git through a ``GIT_ASKPASS`` helper so it never
    appears on the command line.

    Raises:
        DriftReviewerError: IO_CLONE_FAILED
    """
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    url = clone_url
    askpass_path = None

    if token:
        fd, askpass_path = tempfile.mkstemp(prefix="drift-reviewer-git-askpass-")
        with os.fdopen(fd, "w") as f:
            f.write(ASKPASS_SCRIPT)
        os.chmod(askpass_path, 0o700)
        env["GIT_ASKPASS"] = askpass_path
        env[TOKEN_ENV_VAR] = token
        url = _authenticated_url(clone_url)

    command = ["git", "clone", "--depth", "1", "--branch", ref, url, target_dir]
    try:
        result = subprocess.run(command, env=env, capture_output=True, text=True, timeout=timeout, check=False)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise DriftReviewerError(
            f"Failed to clone model repository: {e}",
            ErrorCode.IO_CLONE_FAILED,
            user_message=f'Could not clone {clone_url}. Check the URL, branch "{ref}", and your access token.',
            context={"clone_url": clone_url, "ref": ref},
        )
    finally:
        if askpass_path:
            os.remove(askpass_path)

    if result.returncode != 0:
        raise DriftReviewerError(
            f"Failed to clone model repository: {result.stderr.strip()}",
            ErrorCode.IO_CLONE_FAILED,
            user_message=f'Could not clone {clone_url}. Check the URL, branch "{ref}", and your access token.',
            context={"clone_url": clone_url, "ref": ref},
        )


def resolve_model_source(
    model_path: str,
    model_repo: Optional[str] = None,
    ref: str = "main",
    token: Optional[str] = None,
) -> ModelSource:
    """
    Resolve where the architecture model lives.

    Args:
        model_path: Local model path, or the path inside ``model_repo``
        model_repo: Remote model repository (URL or ``owner/repo``)
        ref: Branch or tag to clone
        token: Token for private repositories

    Returns:
        ModelSource whose ``cleanup`` must be called once the run ends
    """
    if not model_repo:
        return ModelSource(path=model_path)

    clone_url, slug = parse_model_repo(model_repo)
    tmp_dir = tempfile.mkdtemp(prefix="drift-reviewer-model-")
    logger.info(f"Cloning model repository {slug}@{ref}")

    try:
        clone_repository(clone_url, tmp_dir, ref, token)
    except DriftReviewerError:
        shutil.rmtree(tmp_dir, ignore_errors=True)
        raise

    def cleanup() -> None:
        shutil.rmtree(tmp_dir, ignore_errors=True)

    return ModelSource(path=os.path.join(tmp_dir, model_path), repo_slug=slug, cleanup=cleanup)


class _SourceHandoff:
    """
    Passes a resolved source from the worker thread to the awaiting run.

    If the run is cancelled first, whichever side finishes last releases
    the source, so a clone that completes after a deadline is still removed.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._abandoned = False
        self.source: Optional[ModelSource] = None

    def deliver(self, source: ModelSource) -> None:
        with self._lock:
            if not self._abandoned:
                self.source = source
                return
        logger.info(f"Releasing model source resolved after cancellation: {source.path}")
        source.cleanup()

    def abandon(self) -> None:
        with self._lock:
            self._abandoned = True
            source, self.source = self.source, None
        if source is not None:
            source.cleanup()


async def acquire_model_source(
    model_path: str,
    model_repo: Optional[str] = None,
    ref: str = "main",
    token: Optional[str] = None,
) -> ModelSource:
    """
    Resolve the model source in a worker thread.

    Cancelling the caller does not stop the thread; the source it produces
    is cleaned up as soon as it is available.
    """
    handoff = _SourceHandoff()

    def resolve() -> None:
        handoff.deliver(resolve_model_source(model_path, model_repo, ref, token))

    try:
        await asyncio.to_thread(resolve)
    except asyncio.CancelledError:
        handoff.abandon()
        raise
    return handoff.source
