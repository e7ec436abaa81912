"""GitHub repository and issue URL parsing"""

import re
from dataclasses import dataclass

_ISSUE_URL_RE = re.compile(
    r"^https?://(?:www\.)?github\.com/(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+)/"
    r"(?P<kind>pull|pulls|issues)/(?P<number>\d+)(?:[/?#].*)?$",
    re.IGNORECASE,
)
_REPO_RE = re.compile(
    r"^(?:(?:https?://(?:www\.)?github\.com/)|(?:git@github\.com:))?"
    r"(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RepoRef:
    owner: str
    name: str

    @classmethod
    def parse(cls, value: str) -> "RepoRef":
        """Accepts ``owner/repo``, ``https://github.com/owner/repo`` or ``git@github.com:owner/repo.git``."""
        m = _REPO_RE.match((value or "").strip())
        if not m:
            raise ValueError(f"Invalid repository: {value!r}")
        return cls(m.group("owner"), m.group("repo"))

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class IssueRef:
    owner: str
    repo: str
    number: int
    is_pull: bool = False

    @classmethod
    def parse(cls, url: str) -> "IssueRef":
        m = _ISSUE_URL_RE.match((url or "").strip())
        if not m:
            raise ValueError(f"Invalid issue URL: {url!r}")
        return cls(
            owner=m.group("owner"),
            repo=m.group("repo"),
            number=int(m.group("number")),
            is_pull=m.group("kind").lower().startswith("pull"),
        )

    @property
    def url(self) -> str:
        kind = "pull" if self.is_pull else "issues"
        return f"https://github.com/{self.owner}/{self.repo}/{kind}/{self.number}"

    def __str__(self) -> str:
        return self.url


def canonical_issue_url(url: str) -> str:
    """Canonical form of an issue/PR URL, or the stripped input if it doesn't parse."""
    try:
        return IssueRef.parse(url).url
    except ValueError:
        return (url or "").strip()
