import unittest
from app.services.tag_registry import TagRegistry


class TestTagRegistry(unittest.TestCase):
    def setUp(self):
        self.registry = TagRegistry()
        self.registry.register_all(["popular-movies", "popular-movies-page-1"], "popular:1")
        self.registry.register_all(["popular-movies", "popular-movies-page-2"], "popular:2")

    def test_keys_and_tags(self):
        self.assertEqual(self.registry.keys_for("popular-movies"), {"popular:1", "popular:2"})
        self.assertEqual(self.registry.tags_for("popular:1"), {"popular-movies", "popular-movies-page-1"})
        self.assertEqual(self.registry.keys_for("unknown"), set())

    def test_pop_detaches_keys_from_every_tag(self):
        keys = self.registry.pop("popular-movies")
        self.assertEqual(keys, {"popular:1", "popular:2"})
        self.assertEqual(self.registry.keys_for("popular-movies-page-1"), set())
        self.assertEqual(len(self.registry), 0)

    def test_pop_unknown_tag_is_noop(self):
        self.assertEqual(self.registry.pop("nothing-here"), set())
        self.assertEqual(self.registry.keys_for("popular-movies"), {"popular:1", "popular:2"})

    def test_discard_key(self):
        self.registry.discard_key("popular:1")
        self.assertEqual(self.registry.keys_for("popular-movies"), {"popular:2"})
        self.assertEqual(self.registry.keys_for("popular-movies-page-1"), set())

    def test_snapshot_changes_on_pop(self):
        snap = self.registry.snapshot(["movie-1"])
        self.assertFalse(self.registry.changed_since(snap))
        self.registry.pop("movie-2")
        self.assertFalse(self.registry.changed_since(snap))
        self.registry.pop("movie-1")
        self.assertTrue(self.registry.changed_since(snap))

    def test_unwatched_pop_keeps_no_generation(self):
        for n in range(50):
            self.registry.pop(f"movie-{n}")
        self.assertEqual(self.registry.tracked_generations(), 0)

    def test_generation_lives_while_watched(self):
        first = self.registry.snapshot(["movie-1"])
        second = self.registry.snapshot(["movie-1"])
        self.registry.pop("movie-1")
        self.assertEqual(self.registry.tracked_generations(), 1)
        self.registry.release(first)
        self.assertTrue(self.registry.changed_since(second))
        self.registry.release(second)
        self.assertEqual(self.registry.tracked_generations(), 0)
        self.assertEqual(self.registry.generation("movie-1"), 0)

    def test_snapshot_changes_on_clear(self):
        snap = self.registry.snapshot(["movie-1"])
        self.registry.clear()
        self.assertTrue(self.registry.changed_since(snap))
        self.assertEqual(len(self.registry), 0)


if __name__ == "__main__":
    unittest.main()
