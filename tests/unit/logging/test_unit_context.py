# tests/unit/logging/test_unit_context.py — v2
"""Tests for logging/context.py — contextual logging variables."""

from __future__ import annotations

import contextvars

from adaptimg.logging.context import (
    clear_context,
    get_context,
    set_artifact_context,
    set_run_context,
    set_source_context,
)


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_initial_state(self):
        ctx = get_context()
        assert ctx.run_id is None
        assert ctx.source is None
        assert ctx.placement is None
        assert ctx.viewport is None

    def test_run_and_source(self):
        set_run_context("run1")
        set_source_context("assets/hero.png")
        ctx = get_context()
        assert ctx.run_id == "run1"
        assert ctx.source == "assets/hero.png"

    def test_new_source_resets_artifact(self):
        set_artifact_context("hero-main", "desktop")
        set_source_context("b.png")
        ctx = get_context()
        assert ctx.placement is None
        assert ctx.viewport is None

    def test_as_dict_filters_none(self):
        set_run_context("run1")
        assert get_context().as_dict() == {"run_id": "run1"}

    def test_isolated_per_context(self):
        set_source_context("outer.png")

        def inner() -> str | None:
            set_source_context("inner.png")
            return get_context().source

        assert contextvars.copy_context().run(inner) == "inner.png"
        assert get_context().source == "outer.png"
