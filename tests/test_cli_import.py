"""Regression tests for importing the data layer without the web stack."""

from __future__ import annotations

import importlib
import sys
import types
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class CLIImportTests(unittest.TestCase):
    def tearDown(self) -> None:
        self._clear_messagely_modules()

    @staticmethod
    def _clear_messagely_modules() -> None:
        for name in [m for m in list(sys.modules.keys()) if m == "messagely" or m.startswith("messagely.")]:
            sys.modules.pop(name, None)

    def test_import_services_without_fastapi(self) -> None:
        """Offline tools such as scripts/create_user.py must not need FastAPI."""

        self._clear_messagely_modules()

        fastapi_module: types.ModuleType | None = sys.modules.pop("fastapi", None)
        sys.modules["fastapi"] = None  # type: ignore[assignment]
        try:
            database_module = importlib.import_module("messagely.database")
            self.assertTrue(hasattr(database_module, "Database"))

            users_module = importlib.import_module("messagely.users")
            self.assertTrue(hasattr(users_module, "UserService"))

            messages_module = importlib.import_module("messagely.messages")
            self.assertTrue(hasattr(messages_module, "MessageService"))

            package = sys.modules.get("messagely")
            self.assertIsNotNone(package)
            self.assertTrue(hasattr(package, "Database"))
        finally:
            sys.modules.pop("fastapi", None)
            if fastapi_module is not None:
                sys.modules["fastapi"] = fastapi_module


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
