"""
Tests for playlist/guide channel merging.
"""
from tvcast.services.fetch_types import ChannelPayload
from tvcast.utils.data_merging import merge_playlist_channels


def test_match_keeps_guide_name_and_takes_url():
    existing = [ChannelPayload(tvg_id="c1", display_name="N")]
    playlist = [ChannelPayload(tvg_id="c1", stream_url="U")]

    merged, added, updated = merge_playlist_channels(existing, playlist)

    assert len(merged) == 1
    assert (merged[0].tvg_id, merged[0].display_name, merged[0].stream_url) == ("c1", "N", "U")
    assert (added, updated) == (0, 1)


def test_group_and_logo_only_overwritten_when_present():
    existing = [ChannelPayload(tvg_id="c1", display_name="N", logo_url="guide.png", group_title="Guide")]

    merged, _, _ = merge_playlist_channels(existing, [ChannelPayload(tvg_id="c1", display_name="Other", stream_url="U")])
    assert merged[0].logo_url == "guide.png"
    assert merged[0].group_title == "Guide"
    assert merged[0].display_name == "N"

    merged, _, _ = merge_playlist_channels(
        existing,
        [ChannelPayload(tvg_id="c1", stream_url="U", logo_url="pl.png", group_title="US: | News", country="US")],
    )
    assert merged[0].logo_url == "pl.png"
    assert merged[0].group_title == "US: | News"
    assert merged[0].country == "US"


def test_unmatched_channels_are_added_with_keys():
    existing = [ChannelPayload(tvg_id="c1", display_name="N")]
    playlist = [
        ChannelPayload(tvg_id="c2", display_name="Two", stream_url="U2"),
        ChannelPayload(display_name="No Id", stream_url="U3"),
    ]

    merged, added, updated = merge_playlist_channels(existing, playlist)

    assert (added, updated) == (2, 0)
    assert [c.storage_key for c in merged] == ["c1", "c2", "playlist_1"]


def test_existing_records_are_not_mutated():
    existing = [ChannelPayload(tvg_id="c1", display_name="N")]

    merge_playlist_channels(existing, [ChannelPayload(tvg_id="c1", stream_url="U")])

    assert existing[0].stream_url == ""
