"""
Include / exclude glob matching for recursive transfers

Patterns are matched against ``<source dir name>/<relative path>``:
- ``*`` and ``?`` never cross ``/``, ``**`` spans any number of segments
- ``{a,b}`` alternatives are expanded before matching
- a pattern without ``/`` matches the file name at any depth
"""
import functools
import re
from typing import List, Optional, Tuple


def expand_braces(pattern: str) -> List[str]:
    """Expand the first {a,b,...} group recursively"""
    depth = 0
    start = -1
    for i, c in enumerate(pattern):
        if c == "{":
            if depth == 0:
                start = i
            depth += 1
        elif c == "}" and depth:
            depth -= 1
            if depth == 0:
                body = pattern[start + 1:i]
                alternatives = _split_top_level(body)
                if len(alternatives) < 2:
                    break
                prefix, suffix = pattern[:start], pattern[i + 1:]
                expanded: List[str] = []
                for alt in alternatives:
                    expanded.extend(expand_braces(prefix + alt + suffix))
                return expanded
    return [pattern]


def _split_top_level(body: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    for c in body:
        if c == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
        current.append(c)
    parts.append("".join(current))
    return parts


@functools.lru_cache(maxsize=4096)
def segment_glob_to_regex(seg_pat: str) -> "re.Pattern[str]":
    """Compile one path-segment glob to a regex"""
    i = 0
    out: List[str] = ["^"]
    while i < len(seg_pat):
        c = seg_pat[i]
        if c == "\\" and i + 1 < len(seg_pat):
            out.append(re.escape(seg_pat[i + 1]))
            i += 2
            continue
        if c == "*":
            out.append("[^/]*")
            i += 1
            continue
        if c == "?":
            out.append("[^/]")
            i += 1
            continue
        if c == "[":
            j = i + 1
            if j < len(seg_pat) and seg_pat[j] == "!":
                j += 1
            if j < len(seg_pat) and seg_pat[j] == "]":
                j += 1
            while j < len(seg_pat) and seg_pat[j] != "]":
                j += 1
            if j >= len(seg_pat):
                out.append("\\[")
                i += 1
                continue
            content = seg_pat[i + 1:j]
            if content.startswith("!"):
                content = "^" + re.escape(content[1:])
            else:
                content = re.escape(content)
            content = content.replace("\\^", "^").replace("\\-", "-")
            out.append(f"[{content}]")
            i = j + 1
            continue
        out.append(re.escape(c))
        i += 1
    out.append("$")
    return re.compile("".join(out))


def segments_match(pattern_segments: Tuple[str, ...], path_segments: List[str]) -> bool:
    """Match path segments where '**' spans zero or more segments"""
    cache: dict = {}

    def rec(pi: int, si: int) -> bool:
        key = (pi, si)
        if key in cache:
            return cache[key]
        if pi == len(pattern_segments):
            result = si == len(path_segments)
        elif pattern_segments[pi] == "**":
            result = any(rec(pi + 1, k) for k in range(si, len(path_segments) + 1))
        elif si >= len(path_segments):
            result = False
        else:
            result = bool(segment_glob_to_regex(pattern_segments[pi]).match(path_segments[si]))
            result = result and rec(pi + 1, si + 1)
        cache[key] = result
        return result

    return rec(0, 0)


class GlobPattern:
    """One user pattern, brace-expanded and split into segments"""

    def __init__(self, pattern: str):
        self.pattern = pattern
        self._alternatives: List[Tuple[str, ...]] = [
            tuple(seg for seg in alt.strip("/").split("/") if seg)
            for alt in expand_braces(pattern)
        ]

    def match(self, path: str) -> bool:
        parts = [p for p in path.strip("/").split("/") if p]
        if not parts:
            return False
        for segments in self._alternatives:
            if len(segments) == 1 and segments[0] != "**":
                if segment_glob_to_regex(segments[0]).match(parts[-1]):
                    return True
                continue
            if segments_match(segments, parts):
                return True
        return False

    def __repr__(self) -> str:
        return f"GlobPattern({self.pattern!r})"


class PathFilter:
    """Include first, then exclude"""

    def __init__(self, include: Optional[str] = None, exclude: Optional[str] = None):
        self.include = GlobPattern(include) if include else None
        self.exclude = GlobPattern(exclude) if exclude else None

    def accepts(self, path: str) -> bool:
        if self.include is not None and not self.include.match(path):
            return False
        if self.exclude is not None and self.exclude.match(path):
            return False
        return True

    @property
    def is_empty(self) -> bool:
        return self.include is None and self.exclude is None
