"""Tests for coordinate flattening and the cross-tile merger."""

from __future__ import annotations

import pytest

from marathon_route.geometry import (
    CoordinateMerger,
    flatten_coordinates,
    iter_pairs,
    map_coordinates,
    merge_coordinates,
)
from marathon_route.models import GeometryType


@pytest.mark.parametrize(
    "coordinates, expected",
    [
        ([1, 2], [1.0, 2.0]),
        ([[1, 2], [3, 4]], [1.0, 2.0, 3.0, 4.0]),
        ([[[1, 2], [3, 4]], [[5, 6]]], [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]),
        ([[[[1, 2], [3, 4]]], [[[5, 6], [7, 8]]]], [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0]),
    ],
    ids=["point", "linestring", "multilinestring", "multipolygon"],
)
def test_flatten_is_depth_first_left_to_right(coordinates, expected):
    flat = flatten_coordinates(coordinates)
    assert flat == expected
    assert len(flat) % 2 == 0


def test_flatten_bare_scalar():
    assert flatten_coordinates(3) == [3.0]


@pytest.mark.parametrize("bad", ["12", [[1, "a"]], [None], [True, 1]])
def test_flatten_rejects_non_numeric_leaves(bad):
    with pytest.raises(TypeError):
        flatten_coordinates(bad)


def test_iter_pairs_rejects_odd_length():
    assert list(iter_pairs([1.0, 2.0, 3.0, 4.0])) == [(1.0, 2.0), (3.0, 4.0)]
    with pytest.raises(ValueError):
        list(iter_pairs([1.0, 2.0, 3.0]))


def test_map_coordinates_keeps_nesting():
    shifted = map_coordinates([[[0, 0], [1, 1]], [[2, 2, 99]]], lambda x, y: (x + 10, y - 10))
    assert shifted == [[[10, -10], [11, -9]], [[12, -8, 99]]]


def test_first_sighting_is_stored_verbatim():
    route = {}
    merge_coordinates(route, 1, [1.0, 2.0, 3.0, 4.0])
    assert route == {1: [1.0, 2.0, 3.0, 4.0]}


def test_overlapping_batch_only_appends_new_pairs():
    route = {1: [1.0, 2.0, 3.0, 4.0]}
    merge_coordinates(route, 1, [3.0, 4.0, 5.0, 6.0])
    assert route[1] == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]


def test_repeated_batch_is_idempotent():
    route = {1: [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]}
    merge_coordinates(route, 1, [1.0, 2.0, 5.0, 6.0])
    merge_coordinates(route, 1, [1.0, 2.0, 5.0, 6.0])
    assert route[1] == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]


def test_window_check_straddles_pair_boundaries():
    # (2, 3) is not a stored pair but does appear as adjacent values.
    route = {1: [1.0, 2.0, 3.0, 4.0]}
    merge_coordinates(route, 1, [2.0, 3.0])
    assert route[1] == [1.0, 2.0, 3.0, 4.0]


def test_pairs_appended_in_the_same_batch_are_deduplicated():
    route = {1: [0.0, 0.0]}
    merge_coordinates(route, 1, [7.0, 8.0, 7.0, 8.0])
    assert route[1] == [0.0, 0.0, 7.0, 8.0]


def test_features_are_kept_apart():
    route = {}
    merge_coordinates(route, 2, [1.0, 1.0])
    merge_coordinates(route, 1, [1.0, 1.0])
    assert route == {1: [1.0, 1.0], 2: [1.0, 1.0]}


def test_merger_orders_route_by_identity(feature_factory):
    merger = CoordinateMerger()
    merger.merge_feature(feature_factory(9, [[5, 5], [6, 6]]))
    merger.merge_feature(feature_factory(3, [1, 1], geometry_type=GeometryType.POINT))
    merger.merge_feature(feature_factory(9, [[6, 6], [7, 7]]))

    route = merger.route()
    assert list(route) == [3, 9]
    assert route[9] == [5.0, 5.0, 6.0, 6.0, 7.0, 7.0]
    assert merger.feature_ids() == [3, 9]
    assert merger.point_count() == 4
    assert len(merger) == 2


def test_merger_route_is_a_copy(feature_factory):
    merger = CoordinateMerger()
    merger.merge_feature(feature_factory(1, [[0, 0], [1, 1]]))
    snapshot = merger.route()
    snapshot[1].append(42.0)
    assert merger.route()[1] == [0.0, 0.0, 1.0, 1.0]
