import unittest
from unittest.mock import patch

from sqlalchemy.orm import sessionmaker

from app import crud
from app.core.database import create_schema, make_engine
from app.core.errors import NotFound, ValidationFailed
from app.models import Movie, UserRating, WantToWatch
from app.services.library_store import LibraryStore


class TestLibraryStore(unittest.TestCase):
    def setUp(self):
        engine = make_engine("sqlite://")
        create_schema(engine)
        self.db = sessionmaker(bind=engine, expire_on_commit=False)()
        self.user = crud.get_or_create_user(self.db, "viewer@example.com")
        self.store = LibraryStore(self.db)

    def tearDown(self):
        self.db.close()

    def test_rate_creates_placeholder_movie(self):
        rating = self.store.rate(self.user.id, 550, 8, movie_title="Fight Club", poster_path="/p.jpg")
        self.assertEqual(rating.rating, 8)
        movie = self.db.get(Movie, 550)
        self.assertEqual(movie.title, "Fight Club")
        self.assertEqual(movie.poster_path, "/p.jpg")

    def test_rate_overwrites_existing(self):
        self.store.rate(self.user.id, 550, 6)
        self.store.rate(self.user.id, 550, 9, notes="better the second time")
        self.assertEqual(self.db.query(UserRating).count(), 1)
        self.assertEqual(self.store.get_rating(self.user.id, 550).rating, 9)

    def test_rating_removes_want_to_watch_entry(self):
        self.store.add_want_to_watch(self.user.id, 550, priority=3, movie_title="Fight Club")
        self.assertTrue(self.store.is_in_want_to_watch(self.user.id, 550))
        self.store.rate(self.user.id, 550, 7)
        self.assertFalse(self.store.is_in_want_to_watch(self.user.id, 550))

    def test_unrate_does_not_restore_want_to_watch(self):
        self.store.add_want_to_watch(self.user.id, 550, movie_title="Fight Club")
        self.store.rate(self.user.id, 550, 7)
        self.store.unrate(self.user.id, 550)
        self.assertIsNone(self.store.get_rating(self.user.id, 550))
        self.assertFalse(self.store.is_in_want_to_watch(self.user.id, 550))

    def test_out_of_range_rating_rejected_without_writes(self):
        self.store.add_want_to_watch(self.user.id, 550, movie_title="Fight Club")
        for bad in (0, 11, -1, True, "5"):
            with self.assertRaises(ValidationFailed):
                self.store.rate(self.user.id, 550, bad)
        self.assertEqual(self.db.query(UserRating).count(), 0)
        self.assertTrue(self.store.is_in_want_to_watch(self.user.id, 550))

    def test_rating_bounds_accepted(self):
        self.store.rate(self.user.id, 1, 1)
        self.store.rate(self.user.id, 2, 10)
        self.assertEqual(self.db.query(UserRating).count(), 2)

    def test_unrate_missing_is_not_found(self):
        with self.assertRaises(NotFound):
            self.store.unrate(self.user.id, 404)

    def test_priority_bounds(self):
        for bad in (0, 6):
            with self.assertRaises(ValidationFailed):
                self.store.add_want_to_watch(self.user.id, 13, priority=bad)
        self.assertEqual(self.db.query(WantToWatch).count(), 0)
        entry = self.store.add_want_to_watch(self.user.id, 13, priority=None)
        self.assertEqual(entry.priority, 1)

    def test_add_want_to_watch_is_idempotent(self):
        first = self.store.add_want_to_watch(self.user.id, 13, priority=2, movie_title="Forrest Gump")
        second = self.store.add_want_to_watch(self.user.id, 13, priority=5)
        self.assertEqual(first.id, second.id)
        self.assertEqual(second.priority, 2)
        self.assertEqual(self.db.query(WantToWatch).count(), 1)

    def test_rated_movie_cannot_be_added_to_want_to_watch(self):
        self.store.rate(self.user.id, 7, 9)
        with self.assertRaises(ValidationFailed):
            self.store.add_want_to_watch(self.user.id, 7)
        self.assertFalse(self.store.is_in_want_to_watch(self.user.id, 7))
        self.assertEqual(self.db.query(WantToWatch).count(), 0)
        self.assertEqual(self.store.get_rating(self.user.id, 7).rating, 9)

    def test_rate_retries_as_update_after_concurrent_insert(self):
        self.store.rate(self.user.id, 550, 6)
        real_get_rating = self.store.get_rating
        calls = []

        def racing_get_rating(user_id, movie_id):
            calls.append(movie_id)
            # First lookup misses the row another request already inserted
            return None if len(calls) == 1 else real_get_rating(user_id, movie_id)

        with patch.object(self.store, "get_rating", side_effect=racing_get_rating):
            rating = self.store.rate(self.user.id, 550, 9)
        self.assertEqual(len(calls), 2)
        self.assertEqual(rating.rating, 9)
        self.assertEqual(self.db.query(UserRating).count(), 1)

    def test_concurrent_want_to_watch_insert_returns_existing(self):
        first = self.store.add_want_to_watch(self.user.id, 13, priority=2)
        real_get = self.store.get_want_to_watch
        calls = []

        def racing_get(user_id, movie_id):
            calls.append(movie_id)
            return None if len(calls) == 1 else real_get(user_id, movie_id)

        with patch.object(self.store, "get_want_to_watch", side_effect=racing_get):
            entry = self.store.add_want_to_watch(self.user.id, 13, priority=5)
        self.assertEqual(entry.id, first.id)
        self.assertEqual(entry.priority, 2)
        self.assertEqual(self.db.query(WantToWatch).count(), 1)

    def test_concurrent_user_creation_returns_existing(self):
        real_lookup = crud.get_user_by_email
        lookups = []

        def racing_lookup(db, email):
            lookups.append(email)
            return None if len(lookups) == 1 else real_lookup(db, email)

        with patch("app.crud.get_user_by_email", side_effect=racing_lookup):
            user = crud.get_or_create_user(self.db, "viewer@example.com")
        self.assertEqual(user.id, self.user.id)

    def test_remove_want_to_watch(self):
        self.store.add_want_to_watch(self.user.id, 13)
        self.store.remove_want_to_watch(self.user.id, 13)
        with self.assertRaises(NotFound):
            self.store.remove_want_to_watch(self.user.id, 13)

    def test_lists_are_newest_first(self):
        for movie_id in (1, 2, 3):
            self.store.rate(self.user.id, movie_id, 5)
            self.store.add_want_to_watch(self.user.id, movie_id + 10)
        self.assertEqual([r.movie_id for r in self.store.list_ratings(self.user.id)], [3, 2, 1])
        self.assertEqual([w.movie_id for w in self.store.list_want_to_watch(self.user.id)], [13, 12, 11])

    def test_rating_does_not_rename_known_movie(self):
        crud.ensure_movie(self.db, 550, "Fight Club")
        self.db.commit()
        self.store.rate(self.user.id, 550, 8)
        self.assertEqual(self.db.get(Movie, 550).title, "Fight Club")

    def test_deleting_user_cascades(self):
        self.store.rate(self.user.id, 1, 5)
        self.store.add_want_to_watch(self.user.id, 2)
        crud.delete_user(self.db, self.user.id)
        self.assertEqual(self.db.query(UserRating).count(), 0)
        self.assertEqual(self.db.query(WantToWatch).count(), 0)

    def test_deleting_movie_cascades(self):
        self.store.rate(self.user.id, 1, 5)
        crud.delete_movie(self.db, 1)
        self.assertEqual(self.db.query(UserRating).count(), 0)


if __name__ == "__main__":
    unittest.main()
