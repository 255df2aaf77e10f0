import os
import sys
import pytest

# Ensure repo package import
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from span_viewer.bookmarks import BookmarkSet, BookmarkTracker
from span_viewer.dn_grid import DnGridBuilder
from span_viewer.span_parser import SpanParser


TRACE = "\n".join(
    f"10:00:00.{i * 100:03d} ->INVITE [f: a |t: b |cs: {i} INVITE | Cid{i}]" for i in range(7)
) + "\n10:00:00.900 EventRinging(dn=1001|refid=3)\n10:00:00.950 EventEstablished(dn=1001|refid=3)\n"


def test_toggle_keeps_timestamp_order():
    result = SpanParser().parse_text(TRACE)
    rows = result.by_identity()
    bookmarks = BookmarkSet("messages")
    for identity in (3, 1, 5):
        assert bookmarks.toggle(identity, rows[identity].timestamp, rows[identity].time_str)
    assert bookmarks.identities() == [1, 3, 5]
    assert 3 in bookmarks
    assert len(bookmarks) == 3


def test_toggle_twice_removes():
    bookmarks = BookmarkSet("messages")
    assert bookmarks.toggle(2, 200)
    assert not bookmarks.toggle(2, 200)
    assert bookmarks.identities() == []


def test_step_deltas():
    bookmarks = BookmarkSet("messages")
    bookmarks.toggle(5, 500)
    bookmarks.toggle(1, 100)
    bookmarks.toggle(3, 350)
    steps = bookmarks.steps()
    assert [s.bookmark.identity for s in steps] == [1, 3, 5]
    assert [s.step_delta for s in steps] == [None, 250, 150]
    assert [s.cumulative for s in steps] == [0, 250, 400]


def test_equal_timestamps_ordered_by_identity():
    bookmarks = BookmarkSet("dn_grid")
    bookmarks.toggle(9, 100)
    bookmarks.toggle(2, 100)
    assert bookmarks.identities() == [2, 9]


def test_round_trip_across_reparse():
    tracker = BookmarkTracker()
    first = SpanParser().parse_text(TRACE).by_identity()
    grid_rows = {r.identity: r for r in DnGridBuilder().build(TRACE).rows}
    for identity in (3, 1, 5):
        tracker.messages.toggle(identity, first[identity].timestamp, first[identity].time_str)
    tracker.dn_grid.toggle(1, grid_rows[1].timestamp)
    saved = tracker.to_saved()
    assert saved == {"sipBookmarks": [1, 3, 5], "kazimirBookmarks": [1]}

    restored = BookmarkTracker()
    again = SpanParser().parse_text(TRACE).by_identity()
    grid_again = {r.identity: r for r in DnGridBuilder().build(TRACE).rows}
    restored.restore_saved(saved, again, grid_again)
    assert list(restored.messages) == list(tracker.messages)
    assert restored.dn_grid.identities() == [1]


def test_restore_skips_unknown_identities():
    rows = SpanParser().parse_text(TRACE).by_identity()
    bookmarks = BookmarkSet("messages")
    assert bookmarks.restore([4, 99, 4, 0], rows) == 2
    assert bookmarks.identities() == [0, 4]


def test_views_are_independent():
    tracker = BookmarkTracker()
    tracker.view("messages").toggle(1, 10)
    assert tracker.view("dn-grid").identities() == []
    assert tracker.view(BookmarkTracker.DN_GRID) is tracker.dn_grid
    with pytest.raises(ValueError):
        tracker.view("diagram")
    tracker.clear()
    assert len(tracker.messages) == 0
