"""Tests for lazy import system in timetrace.__init__."""

from __future__ import annotations

import importlib
import sys

import pytest


class TestLazyImports:
    """Test PEP 562 lazy loading in timetrace.__init__."""

    def test_lazy_import_does_not_eagerly_load(self) -> None:
        """Importing timetrace does not load its subpackages."""
        saved = {m: sys.modules.pop(m) for m in list(sys.modules) if m.startswith("timetrace")}
        try:
            importlib.import_module("timetrace")

            assert "timetrace.core" not in sys.modules
            assert "timetrace.models" not in sys.modules
            assert "timetrace.sources" not in sys.modules
            assert "timetrace.services" not in sys.modules
        finally:
            for mod in [m for m in sys.modules if m.startswith("timetrace")]:
                del sys.modules[mod]
            sys.modules.update(saved)

    def test_lazy_import_resolves_on_access(self) -> None:
        from timetrace import Synchronizer
        from timetrace.services.synchronizer.service import Synchronizer as DirectSynchronizer

        assert Synchronizer is DirectSynchronizer

    def test_lazy_import_caches_after_first_access(self) -> None:
        import timetrace

        _ = timetrace.Event

        assert "Event" in vars(timetrace)

    def test_lazy_import_invalid_attribute(self) -> None:
        import timetrace

        with pytest.raises(AttributeError, match="no_such_thing"):
            _ = getattr(timetrace, "no_such_thing")  # noqa: B009

    def test_all_exports_are_in_lazy_imports(self) -> None:
        """__all__ and _LAZY_IMPORTS are in sync."""
        import timetrace

        assert set(timetrace.__all__) == set(timetrace._LAZY_IMPORTS)

    def test_dir_returns_all(self) -> None:
        import timetrace

        assert dir(timetrace) == timetrace.__all__

    def test_version_is_accessible(self) -> None:
        import timetrace

        assert isinstance(timetrace.__version__, str)
        assert timetrace.__version__
