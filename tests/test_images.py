import unittest
from unittest.mock import Mock

from ciworker.models.sandbox_info import Image
from ciworker.providers.docker.images import ImageResolver
from ciworker.services.exceptions import ImageNotFoundError

RUBY = Image("travis", "ruby", "sha256:1a2b3c4d")
PYTHON = Image("travis", "python", "sha256:5e6f7a8b")
NODE = Image("travis", "node_js", "sha256:9c0d1e2f")
FOREIGN = Image("library", "python", "sha256:ffff0000")


def make_resolver(images=None, **kwargs):
    backend = Mock()
    backend.list_images.return_value = [RUBY, PYTHON, NODE, FOREIGN] if images is None else images
    return ImageResolver(backend, **kwargs), backend


class TestImageResolver(unittest.TestCase):

    def test_override_wins_over_language(self):
        resolver, _ = make_resolver()
        self.assertEqual(resolver.resolve("python", override="9c0d"), NODE)

    def test_override_matches_full_digest(self):
        resolver, _ = make_resolver()
        self.assertEqual(resolver.resolve(None, override="sha256:5e6f"), PYTHON)

    def test_unmatched_override_falls_back_to_default(self):
        resolver, _ = make_resolver()
        self.assertEqual(resolver.resolve("python", override="dead"), RUBY)

    def test_no_language_uses_default(self):
        resolver, _ = make_resolver()
        self.assertEqual(resolver.resolve(None), RUBY)

    def test_language_match_ignores_case_and_separators(self):
        resolver, _ = make_resolver()
        self.assertEqual(resolver.resolve("node-js"), NODE)
        self.assertEqual(resolver.resolve("NodeJS"), NODE)
        self.assertEqual(resolver.resolve("Python"), PYTHON)

    def test_unknown_language_falls_back_to_default(self):
        resolver, _ = make_resolver()
        self.assertEqual(resolver.resolve("haskell"), RUBY)

    def test_images_outside_namespace_are_ignored(self):
        resolver, _ = make_resolver([RUBY, FOREIGN])
        self.assertEqual(resolver.resolve("python"), RUBY)
        self.assertNotIn(FOREIGN, resolver.latest_images)

    def test_language_mappings_alias_the_hint(self):
        resolver, _ = make_resolver(language_mappings={"javascript": "node_js"})
        self.assertEqual(resolver.resolve("javascript"), NODE)

    def test_missing_default_image_is_fatal(self):
        resolver, _ = make_resolver([PYTHON])
        with self.assertRaises(ImageNotFoundError):
            resolver.resolve("haskell")

    def test_missing_default_is_irrelevant_when_language_matches(self):
        resolver, _ = make_resolver([PYTHON])
        self.assertEqual(resolver.resolve("python"), PYTHON)

    def test_image_list_is_fetched_once_until_refresh(self):
        resolver, backend = make_resolver()
        resolver.resolve("python")
        resolver.resolve("ruby")
        self.assertEqual(backend.list_images.call_count, 1)

        resolver.refresh()
        resolver.resolve(None)
        self.assertEqual(backend.list_images.call_count, 2)

    def test_custom_namespace_and_default_tag(self):
        custom = Image("ci", "base", "sha256:abcd")
        resolver, _ = make_resolver([custom, RUBY], namespace="ci", default_tag="base")
        self.assertEqual(resolver.resolve(None), custom)


if __name__ == "__main__":
    unittest.main()
