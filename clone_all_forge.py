import os
import shutil
from itertools import islice
from pathlib import Path
from typing import List, Optional

import requests
from github import (
    Auth,
    BadCredentialsException,
    Github,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)

# GitPython refuses to import without a git executable; ensure_git() reports it instead.
os.environ.setdefault("GIT_PYTHON_REFRESH", "quiet")
from git import GitCommandError, Repo  # noqa: E402

from clone_all_errors import AuthError, CloneFailed, DependencyMissing, ForgeUnavailable, OwnerNotFound

GITHUB_URL = "https://github.com"
GIT_INSTALL_URL = "https://git-scm.com/downloads"
MAX_PAGE_SIZE = 100


# ────────────────────────────────
# DEPENDENCIES
# ────────────────────────────────

def ensure_git() -> str:
    git_path = shutil.which("git")
    if not git_path:
        raise DependencyMissing(f"git not found. Install it and try again: {GIT_INSTALL_URL}")
    return git_path


# ────────────────────────────────
# LISTING
# ────────────────────────────────

def get_github(token: Optional[str], limit: int) -> Github:
    per_page = max(1, min(limit, MAX_PAGE_SIZE))
    if token:
        return Github(auth=Auth.Token(token), per_page=per_page)
    return Github(per_page=per_page)


def _owner_repos(gh: Github, owner: str, authenticated: bool):
    account = gh.get_user(owner)
    if account.type == "Organization":
        return gh.get_organization(owner).get_repos()
    if authenticated:
        me = gh.get_user()
        if me.login.lower() == owner.lower():
            # private repositories are only listed through the authenticated endpoint
            return me.get_repos(affiliation="owner")
    return account.get_repos()


def list_repositories(owner: str, limit: int, token: Optional[str] = None) -> List[str]:
    """
    Return the names of at most `limit` repositories owned by `owner`, in the
    order GitHub lists them.
    """
    if limit <= 0:
        return []

    gh = get_github(token, limit)
    try:
        repos = _owner_repos(gh, owner, authenticated=bool(token))
        return [repo.name for repo in islice(repos, limit)]
    except UnknownObjectException:
        raise OwnerNotFound(owner) from None
    except BadCredentialsException:
        raise AuthError("GitHub rejected the token (bad credentials)") from None
    except RateLimitExceededException:
        raise ForgeUnavailable("GitHub API rate limit exceeded") from None
    except GithubException as e:
        if e.status == 403:
            raise AuthError(f"Access to repositories of {owner} was denied") from None
        raise ForgeUnavailable(f"GitHub API error (HTTP {e.status})") from None
    except requests.RequestException as e:
        raise ForgeUnavailable(f"Cannot reach GitHub: {e}") from None


# ────────────────────────────────
# CLONING
# ────────────────────────────────

def clone_url(owner: str, name: str, token: Optional[str] = None) -> str:
    url = f"{GITHUB_URL}/{owner}/{name}.git"
    if token:
        url = url.replace("https://", f"https://{token}@")
    return url


def clone_repository(
    owner: str,
    name: str,
    target_dir: Path,
    depth: Optional[int] = 0,
    token: Optional[str] = None,
) -> Path:
    """Clone owner/name into target_dir/name; depth > 0 makes a shallow clone."""
    destination = Path(target_dir) / name
    options = {"depth": depth} if depth else {}
    try:
        repo = Repo.clone_from(clone_url(owner, name, token), destination, **options)
        if token:
            # keep the token out of the clone's .git/config
            repo.remotes.origin.set_url(clone_url(owner, name))
    except GitCommandError as e:
        # the command line may carry the token, so only the exit status travels on
        status = e.status if isinstance(e.status, int) else None
        raise CloneFailed(name, status) from None
    except OSError:
        raise CloneFailed(name) from None
    return destination
