"""Unit tests for title-keyed merge/remove of content lists."""

from swiper.models.content import Collection, Episode, Movie
from swiper.services.reconcile_service import add_content, remove_content


def _ep(season, episode, title="Foo", owner=None):
    return Episode(title=title, season_num=season, episode_num=episode, swiper_id=owner)


def _snapshot(items):
    return [item.to_object() for item in items]


class TestAdd:
    """Adding content to a list."""

    def test_add_to_empty_list(self):
        items = []
        assert add_content(items, Movie(title="Inception", year="2010")) is None
        assert items == [Movie(title="Inception", year="2010")]

    def test_two_episodes_promote_to_collection(self):
        items = []
        assert add_content(items, _ep(1, 1)) is None
        assert add_content(items, _ep(1, 2)) is None
        assert len(items) == 1
        assert isinstance(items[0], Collection)
        assert items[0].get_desc() == "Foo S01E01-02"

    def test_third_episode_merges_into_same_collection(self):
        items = []
        for n in (1, 2, 3):
            assert add_content(items, _ep(1, n)) is None
        assert len(items) == 1
        assert [e.key() for e in items[0].episodes] == [(1, 1), (1, 2), (1, 3)]

    def test_promotion_keeps_existing_owner(self):
        items = [_ep(1, 1, owner="alice")]
        add_content(items, _ep(1, 2, owner="bob"))
        assert items[0].swiper_id == "alice"
        assert items[0].initial_type == "series"

    def test_duplicate_episode_rejected(self):
        items = [_ep(1, 1)]
        before = _snapshot(items)
        assert add_content(items, _ep(1, 1)) == "Foo S01E01 is already monitored."
        assert _snapshot(items) == before

    def test_duplicate_movie_rejected(self):
        items = [Movie(title="Inception", year="2010")]
        assert add_content(items, Movie(title="Inception", year="2010"), "queued") == "Inception (2010) is already queued."
        assert len(items) == 1

    def test_same_title_other_movie_rejected(self):
        items = [Movie(title="Dune", year="1984")]
        msg = add_content(items, Movie(title="Dune", year="2021"))
        assert msg == "Dune (1984) is already monitored under that title."
        assert items == [Movie(title="Dune", year="1984")]

    def test_cross_type_collision_rejected(self):
        items = [Movie(title="Foo", year="2001")]
        msg = add_content(items, _ep(1, 1))
        assert msg == "Foo is already monitored as a movie."
        assert len(items) == 1

    def test_movie_onto_show_rejected(self):
        items = [Collection(title="Foo", episodes=[_ep(1, 1)])]
        msg = add_content(items, Movie(title="Foo"))
        assert msg == "Foo is already monitored as a show."

    def test_collection_subset_rejected(self):
        items = [Collection(title="Foo", episodes=[_ep(1, 1), _ep(1, 2), _ep(1, 3)])]
        msg = add_content(items, Collection(title="Foo", episodes=[_ep(1, 2), _ep(1, 3)]))
        assert msg == "Foo S01E02-03 is already monitored."

    def test_collection_merge(self):
        items = [Collection(title="Foo", episodes=[_ep(1, 1)])]
        assert add_content(items, Collection(title="Foo", episodes=[_ep(1, 1), _ep(2, 1)])) is None
        assert [e.key() for e in items[0].episodes] == [(1, 1), (2, 1)]

    def test_episode_onto_collection(self):
        items = [Collection(title="Foo", episodes=[_ep(1, 1)])]
        assert add_content(items, _ep(1, 5)) is None
        assert [e.key() for e in items[0].episodes] == [(1, 1), (1, 5)]

    def test_collection_onto_episode(self):
        items = [_ep(1, 1)]
        assert add_content(items, Collection(title="Foo", episodes=[_ep(1, 2), _ep(1, 3)])) is None
        assert isinstance(items[0], Collection)
        assert items[0].get_desc() == "Foo S01E01-03"

    def test_empty_collection_rejected(self):
        items = [Movie(title="Other")]
        msg = add_content(items, Collection(title="Foo", episodes=[]))
        assert msg == "There are currently no such episodes."
        assert items == [Movie(title="Other")]

    def test_titles_stay_unique(self):
        items = []
        for content in (_ep(1, 1), Movie(title="Bar"), _ep(1, 2), _ep(2, 1, title="Baz"), _ep(1, 3)):
            add_content(items, content)
        titles = [item.title for item in items]
        assert sorted(titles) == ["Bar", "Baz", "Foo"]


class TestRemove:
    """Removing content from a list."""

    def test_remove_collection_covering_lone_episode(self):
        items = [_ep(1, 1, title="Bar")]
        bar = Collection(title="Bar", episodes=[_ep(1, 1, "Bar"), _ep(1, 2, "Bar"), _ep(1, 3, "Bar")])
        assert remove_content(items, bar) is None
        assert items == []

    def test_remove_missing_is_idempotent(self):
        items = [Movie(title="Inception", year="2010"), Collection(title="Foo", episodes=[_ep(1, 1)])]
        before = _snapshot(items)
        assert remove_content(items, Movie(title="Tenet", year="2020")) == "Tenet (2020) is not monitored."
        assert remove_content(items, _ep(4, 4)) == "Foo S04E04 is not monitored."
        assert _snapshot(items) == before

    def test_remove_movie(self):
        items = [Movie(title="Inception", year="2010")]
        assert remove_content(items, Movie(title="Inception", year="2010"), "queued") is None
        assert items == []

    def test_remove_other_movie_same_title(self):
        items = [Movie(title="Dune", year="1984")]
        assert remove_content(items, Movie(title="Dune", year="2021")) == "Dune (2021) is not monitored."

    def test_remove_episode_from_movie_title(self):
        items = [Movie(title="Foo")]
        assert remove_content(items, _ep(1, 1)) == "Foo S01E01 is not monitored."
        assert len(items) == 1

    def test_remove_overlap_from_collection(self):
        items = [Collection(title="Foo", episodes=[_ep(1, 1), _ep(1, 2), _ep(1, 3)])]
        assert remove_content(items, Collection(title="Foo", episodes=[_ep(1, 2), _ep(1, 3), _ep(1, 4)])) is None
        assert [e.key() for e in items[0].episodes] == [(1, 1)]

    def test_remove_last_episode_deletes_entry(self):
        items = [Collection(title="Foo", episodes=[_ep(1, 1)]), Movie(title="Keep")]
        assert remove_content(items, _ep(1, 1)) is None
        assert items == [Movie(title="Keep")]

    def test_remove_different_episode_not_there(self):
        items = [_ep(1, 1)]
        assert remove_content(items, _ep(1, 2)) == "Foo S01E02 is not monitored."
        assert items == [_ep(1, 1)]
