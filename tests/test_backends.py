import errno
import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from kalendarus.backends import PlainfileBackend, SqliteBackend, create_backend
from kalendarus.backends.plainfile import transform_key
from kalendarus.errors import BackendError, NotEnabledError, NotFoundError
from kalendarus.models import AppConfig, PlainfileConfig, SqliteConfig


class PlainfileBackendTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.backend = PlainfileBackend(PlainfileConfig(enabled=True, data_dir=self.temp_dir.name))

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_transform_key(self) -> None:
        self.assertEqual(transform_key("/Kalendarus/events/cache"), "kalendarus_events_cache")

    def test_save_then_load(self) -> None:
        self.backend.save("kalendarus/events/cache", {"E1": {"summary": "Привет"}})
        path = Path(self.temp_dir.name) / "kalendarus_events_cache.json"
        self.assertTrue(path.exists())
        self.assertEqual(json.loads(path.read_text(encoding="utf-8")), {"E1": {"summary": "Привет"}})
        self.assertEqual(self.backend.load("kalendarus/events/cache"), {"E1": {"summary": "Привет"}})

    def test_load_missing_key(self) -> None:
        with self.assertRaises(NotFoundError):
            self.backend.load("nothing/here")

    def test_load_corrupt_file(self) -> None:
        (Path(self.temp_dir.name) / "broken.json").write_text("{not json", encoding="utf-8")
        with self.assertRaises(BackendError):
            self.backend.load("broken")

    def test_save_fallback_when_replace_ebusy(self) -> None:
        original_replace = Path.replace

        def replace_side_effect(self: Path, target: Path) -> Path:
            if str(self).endswith(".tmp"):
                raise OSError(errno.EBUSY, "Device or resource busy")
            return original_replace(self, target)

        with mock.patch("pathlib.Path.replace", new=replace_side_effect):
            self.backend.save("state", {"ok": True})

        self.assertEqual(self.backend.load("state"), {"ok": True})
        self.assertFalse((Path(self.temp_dir.name) / "state.json.tmp").exists())

    def test_unwritable_directory(self) -> None:
        backend = PlainfileBackend(PlainfileConfig(enabled=True, data_dir=str(Path(self.temp_dir.name) / "missing")))
        with self.assertRaises(BackendError):
            backend.save("state", {})

    def test_disabled_backend(self) -> None:
        backend = PlainfileBackend(PlainfileConfig(enabled=False, data_dir=self.temp_dir.name))
        with self.assertRaises(NotEnabledError):
            backend.load("state")
        with self.assertRaises(NotEnabledError):
            backend.save("state", {})


class SqliteBackendTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        path = Path(self.temp_dir.name) / "nested" / "state.db"
        self.backend = SqliteBackend(SqliteConfig(enabled=True, path=str(path)))

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_save_overwrites_and_loads(self) -> None:
        self.backend.save("kalendarus/events/cache", {"E1": {"summary": "One"}})
        self.backend.save("kalendarus/events/cache", {"E2": {"summary": "Two"}})
        self.assertEqual(self.backend.load("kalendarus/events/cache"), {"E2": {"summary": "Two"}})

    def test_load_missing_key(self) -> None:
        with self.assertRaises(NotFoundError):
            self.backend.load("kalendarus/events/cache")

    def test_disabled_backend(self) -> None:
        backend = SqliteBackend(SqliteConfig(enabled=False, path=str(Path(self.temp_dir.name) / "x.db")))
        with self.assertRaises(NotEnabledError):
            backend.save("state", {})


class CreateBackendTests(unittest.TestCase):
    def test_first_enabled_backend_wins(self) -> None:
        config = AppConfig.from_dict({"sqlite": {"enabled": True, "path": "/tmp/kalendarus-test.db"}})
        self.assertIsInstance(create_backend(config), SqliteBackend)

    def test_disabled_plainfile_when_nothing_enabled(self) -> None:
        with self.assertLogs("kalendarus.backends", level="WARNING"):
            backend = create_backend(AppConfig.from_dict({}))
        self.assertIsInstance(backend, PlainfileBackend)
        self.assertFalse(backend.enabled)


if __name__ == "__main__":
    unittest.main()
