"""
Display ordering for api group versions.

Group names are domains read right to left, so `gateway.networking.k8s.io`
lives under `networking.k8s.io`, which lives under `k8s.io`. Groups are
ordered by walking that hierarchy from the top level domain inwards:

    ""                          (core)
    example.com
    test.example.com
    k8s.io
    apps.k8s.io
    networking.k8s.io
    gateway.networking.k8s.io
    storage.k8s.io
    x-k8s.io

A list of patterns can be given to pull some groups to the front. A group
belongs to the bucket of the first pattern that matches it, and groups with no
matching pattern go into a trailing "other" bucket. Within a bucket the
hierarchy ordering applies, and versions of the same group are ordered as
plain strings.
"""

from functools import cmp_to_key
from typing import Callable, Iterable, List, Sequence, Tuple

from apigroups.model.group_version import GroupVersion

WILDCARD = "*"
CORE = ""

GroupVersionComparator = Callable[[GroupVersion, GroupVersion], int]


def pattern_matches(pattern: str, group: str) -> bool:
    if pattern == WILDCARD:
        return True

    # the empty pattern only selects the core group, not every group
    if pattern == CORE:
        return group == CORE

    # k8s.io matches k8s.io and apps.k8s.io, but not notk8s.io
    return group == pattern or group.endswith("." + pattern)


def get_group_priority(group: str, patterns: Sequence[str]) -> int:
    """Returns the index of the first pattern matching `group`, or
    `len(patterns)` when nothing matches."""

    for index, pattern in enumerate(patterns):
        if pattern_matches(pattern, group):
            return index

    return len(patterns)


def get_label_path(group: str) -> List[str]:
    # gateway.networking.k8s.io -> [io, k8s, networking, gateway]
    if group == CORE:
        return []

    labels = group.split(".")
    labels.reverse()
    return labels


def compare_groups_hierarchically(
    group1: str, group2: str, patterns: Sequence[str]
) -> int:
    if patterns:
        priority1 = get_group_priority(group1, patterns)
        priority2 = get_group_priority(group2, patterns)

        if priority1 != priority2:
            return -1 if priority1 < priority2 else 1

    if group1 == group2:
        return 0

    path1 = get_label_path(group1)
    path2 = get_label_path(group2)

    for label1, label2 in zip(path1, path2):
        if label1 != label2:
            return -1 if label1 < label2 else 1

    # one is an ancestor of the other, and the ancestor goes first
    return -1 if len(path1) < len(path2) else 1


def compare_versions(version1: str, version2: str) -> int:
    # v1 < v1alpha1 < v1beta1 < v2, no semver interpretation
    if version1 == version2:
        return 0

    return -1 if version1 < version2 else 1


def compare_group_versions_function(
    patterns: Sequence[str],
) -> GroupVersionComparator:
    patterns = list(patterns)

    def compare(gv1: GroupVersion, gv2: GroupVersion) -> int:
        result = compare_groups_hierarchically(gv1.group, gv2.group, patterns)
        if result != 0:
            return result

        return compare_versions(gv1.version, gv2.version)

    return compare


def group_version_less_function(
    patterns: Sequence[str],
) -> Callable[[GroupVersion, GroupVersion], bool]:
    compare = compare_group_versions_function(patterns)

    def less(gv1: GroupVersion, gv2: GroupVersion) -> bool:
        return compare(gv1, gv2) < 0

    return less


def sort_group_versions(
    group_versions: Iterable[GroupVersion], patterns: Sequence[str] = ()
) -> List[GroupVersion]:
    # sorted() is stable, so exact duplicates keep their input order
    compare = compare_group_versions_function(patterns)
    return sorted(group_versions, key=cmp_to_key(compare))


def get_bucket_label(bucket: int, patterns: Sequence[str]) -> str:
    if not patterns:
        return "all"

    if bucket >= len(patterns):
        return "other"

    return patterns[bucket]


def group_by_priority(
    group_versions: Iterable[GroupVersion], patterns: Sequence[str] = ()
) -> List[Tuple[int, str, List[GroupVersion]]]:
    """
    Sorts the group versions and splits them into runs that share a priority
    bucket, for display under a header per bucket:

        [(0, "", [v1]), (1, "k8s.io", [apps/v1, ...]), (2, "other", [...])]

    Without patterns everything lands in a single run labelled "all".
    """

    patterns = list(patterns)
    runs: List[Tuple[int, str, List[GroupVersion]]] = []

    for gv in sort_group_versions(group_versions, patterns):
        bucket = get_group_priority(gv.group, patterns) if patterns else 0

        if not runs or runs[-1][0] != bucket:
            label = get_bucket_label(bucket, patterns)
            runs.append((bucket, label, []))

        runs[-1][2].append(gv)

    return runs
