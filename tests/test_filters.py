"""
Include / exclude glob matching
"""
import pytest

from remotepool.domain.transfer.filters import (
    GlobPattern,
    PathFilter,
    expand_braces,
    segment_glob_to_regex,
)


def test_expand_braces():
    assert expand_braces("*/{ba*,hoge/*}") == ["*/ba*", "*/hoge/*"]
    assert expand_braces("{a,b}{1,2}") == ["a1", "a2", "b1", "b2"]
    assert expand_braces("{a,{b,c}}.txt") == ["a.txt", "b.txt", "c.txt"]
    assert expand_braces("plain") == ["plain"]
    assert expand_braces("{single}") == ["{single}"]


@pytest.mark.parametrize(
    "segment,name,expected",
    [
        ("*.py", "mod.py", True),
        ("*.py", "mod.pyc", False),
        ("?.txt", "a.txt", True),
        ("?.txt", "ab.txt", False),
        ("[ab].c", "b.c", True),
        ("[!ab].c", "b.c", False),
        ("[!ab].c", "x.c", True),
        ("a+b", "a+b", True),
        ("\\*", "*", True),
    ],
)
def test_segment_glob(segment, name, expected):
    assert bool(segment_glob_to_regex(segment).match(name)) is expected


@pytest.mark.parametrize(
    "pattern,path,expected",
    [
        ("*/{ba*,hoge/*}", "src/bar", True),
        ("*/{ba*,hoge/*}", "src/hoge/piyo", True),
        ("*/{ba*,hoge/*}", "src/foo", False),
        ("*/{ba*,hoge*}", "src/hoge/piyo", False),
        ("**/poyo", "src/hoge/poyo", True),
        ("**/poyo", "src/poyo", True),
        ("src/**", "src/a/b/c", True),
        ("*", "src/a/b/c", True),
        ("*.log", "src/deep/x.log", True),
        ("*.log", "src/deep/x.txt", False),
        ("*/*.log", "src/deep/x.log", False),
    ],
)
def test_glob_pattern(pattern, path, expected):
    assert GlobPattern(pattern).match(path) is expected


def test_path_filter_include_then_exclude():
    path_filter = PathFilter("*/{ba*,hoge/*}", "**/poyo")
    accepted = [
        p for p in ("src/foo", "src/bar", "src/baz", "src/hoge/piyo", "src/hoge/poyo")
        if path_filter.accepts(p)
    ]
    assert accepted == ["src/bar", "src/baz", "src/hoge/piyo"]


def test_path_filter_empty():
    path_filter = PathFilter()
    assert path_filter.is_empty
    assert path_filter.accepts("anything/at/all")
    assert not PathFilter(exclude="*.tmp").is_empty
