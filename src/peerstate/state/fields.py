"""Best-effort extraction of summary fields from a free-text state record.

Record bodies are written by the agent, not by us, so nothing here is a real
parse. The conventions an author is expected to follow:

    ---                         # optional YAML frontmatter
    branch: feature/login
    activity: wiring the OAuth callback
    ---

    ## Current Task             # or Current Activity / Focus / Work,
    Wiring the OAuth callback   #    Currently Working On, Working On,
                                #    In Progress, Now
    Branch: feature/login

Frontmatter keys win over the text conventions. Every function here accepts
any string and returns None for a field it cannot find; none of them raise.
"""

from __future__ import annotations

import logging
import re

import frontmatter

logger = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(.*?)\s*#*\s*$")
_ACTIVITY_TITLE_RE = re.compile(
    r"^(?:current(?:ly)?\s+(?:activity|task|focus|work|working\s+on)|working\s+on|in\s+progress|now)\b",
    re.IGNORECASE,
)
_BRANCH_RE = re.compile(
    r"^[ \t]*(?:[-*+][ \t]+)?(?:\*\*|__)?branch(?:\*\*|__)?[ \t]*:(?:\*\*|__)?[ \t]*(.*)$",
    re.IGNORECASE | re.MULTILINE,
)


def _split(body: str) -> tuple[dict, str]:
    """(frontmatter metadata, remaining text). Unparseable frontmatter is left as text."""
    if not body.startswith("---"):
        return {}, body
    try:
        post = frontmatter.loads(body)
    except Exception:
        logger.debug("Ignoring unparseable frontmatter")
        return {}, body
    if not isinstance(post.metadata, dict):
        return {}, body
    return post.metadata, post.content


def _scalar(metadata: dict, key: str) -> str | None:
    value = metadata.get(key)
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _is_activity_heading(line: str) -> bool:
    match = _HEADING_RE.match(line)
    if not match:
        return False
    title = match.group(1).rstrip(":").strip()
    return bool(_ACTIVITY_TITLE_RE.match(title))


def extract_activity(body: str) -> str | None:
    """First non-empty line under the current-activity heading."""
    if not isinstance(body, str):
        return None
    metadata, text = _split(body)
    value = _scalar(metadata, "activity")
    if value:
        return value

    lines = text.splitlines()
    for i, line in enumerate(lines):
        if not _is_activity_heading(line):
            continue
        for following in lines[i + 1 :]:
            if _HEADING_RE.match(following):
                break
            content = following.strip()
            if content:
                return content
    return None


def extract_branch(body: str) -> str | None:
    """Value of the first non-empty ``Branch:`` line."""
    if not isinstance(body, str):
        return None
    metadata, text = _split(body)
    value = _scalar(metadata, "branch")
    if value:
        return value

    for match in _BRANCH_RE.finditer(text):
        value = match.group(1).strip().strip("`*_").strip()
        if value:
            return value
    return None
