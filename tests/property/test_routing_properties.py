"""Property tests for namespace completion and longest-prefix mirror matching."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from edgeproxy.config.upstreams import DEFAULT_MIRRORS
from edgeproxy.proxy.mirror import MirrorRelay
from edgeproxy.proxy.registry import complete_library_path
from edgeproxy.proxy.upstream import UpstreamClient

# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

image_names_st = st.from_regex(r"[a-z][a-z0-9_-]{0,15}", fullmatch=True).filter(
    lambda name: name not in ("library", "manifests", "blobs", "tags")
)
keywords_st = st.sampled_from(["manifests", "blobs", "tags"])
references_st = st.from_regex(r"[a-z0-9.:_-]{1,20}", fullmatch=True)
mirror_keys_st = st.sampled_from(sorted(DEFAULT_MIRRORS))
tails_st = st.from_regex(r"(/[a-z0-9._-]{1,10}){0,3}", fullmatch=True)

RELAY = MirrorRelay(UpstreamClient(), DEFAULT_MIRRORS)


# ---------------------------------------------------------------------------
# Docker Hub namespace completion
# ---------------------------------------------------------------------------


@settings(max_examples=100)
@given(name=image_names_st, keyword=keywords_st, reference=references_st)
def test_official_images_gain_library(name: str, keyword: str, reference: str) -> None:
    path = f"{name}/{keyword}/{reference}"
    assert complete_library_path(path) == f"library/{path}"


@settings(max_examples=100)
@given(owner=image_names_st, name=image_names_st, keyword=keywords_st, reference=references_st)
def test_namespaced_images_unchanged(owner: str, name: str, keyword: str, reference: str) -> None:
    path = f"{owner}/{name}/{keyword}/{reference}"
    assert complete_library_path(path) == path


@settings(max_examples=100)
@given(name=image_names_st, keyword=keywords_st, reference=references_st)
def test_completion_is_idempotent(name: str, keyword: str, reference: str) -> None:
    once = complete_library_path(f"{name}/{keyword}/{reference}")
    assert complete_library_path(once) == once


# ---------------------------------------------------------------------------
# Longest-prefix mirror matching
# ---------------------------------------------------------------------------


@settings(max_examples=100)
@given(key=mirror_keys_st, tail=tails_st)
def test_mirror_match_picks_longest_key(key: str, tail: str) -> None:
    route = RELAY.match(f"{key}{tail}")
    assert route is not None
    candidates = [
        k for k in DEFAULT_MIRRORS if f"{key}{tail}" == k or f"{key}{tail}".startswith(k + "/")
    ]
    assert route.distro == max(candidates, key=len)
    assert route.distro == key
