"""Tests for dropwatch.core.errors module."""

from dropwatch.core.errors import (
    ConfigurationError,
    DropwatchError,
    EngineFailure,
    ErrorCategory,
    ErrorContext,
    ExperimentNotFound,
    FileLifecycleError,
    LoadRejected,
    MalformedInput,
    ModelNotFound,
    NotFound,
    wrap_engine_error,
)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_empty_context(self):
        ctx = ErrorContext()
        assert ctx.to_dict() == {}

    def test_to_dict_skips_none_and_merges_metadata(self):
        ctx = ErrorContext(work_item="Plant.spfx", step="RUN_PLAN", metadata={"attempt": 1})
        assert ctx.to_dict() == {"work_item": "Plant.spfx", "step": "RUN_PLAN", "attempt": 1}


class TestDropwatchError:
    """Base error behaviour."""

    def test_default_category(self):
        assert DropwatchError("x").category == ErrorCategory.INTERNAL

    def test_category_override(self):
        err = EngineFailure("x", category=ErrorCategory.STORAGE)
        assert err.category == ErrorCategory.STORAGE

    def test_with_context_known_and_extra_fields(self):
        err = DropwatchError("x").with_context(step="LOAD", engine="json")
        assert err.context.step == "LOAD"
        assert err.context.metadata == {"engine": "json"}

    def test_cause_is_chained(self):
        cause = ValueError("inner")
        err = EngineFailure("outer", cause=cause)
        assert err.__cause__ is cause
        assert err.to_dict()["cause"] == "ValueError: inner"

    def test_to_dict(self):
        err = ConfigurationError("Root Folder=/x not found.").with_context(path="/x")
        assert err.to_dict() == {
            "error_type": "ConfigurationError",
            "message": "Root Folder=/x not found.",
            "category": "CONFIG",
            "context": {"path": "/x"},
        }

    def test_repr(self):
        assert repr(MalformedInput("bad row")) == "MalformedInput('bad row', category=PARSE)"


class TestHierarchy:
    def test_engine_family(self):
        for cls in (ModelNotFound, ExperimentNotFound, LoadRejected):
            err = cls("x")
            assert isinstance(err, EngineFailure)
            assert err.category == ErrorCategory.ENGINE

    def test_not_found_is_lifecycle_error(self):
        err = NotFound("gone")
        assert isinstance(err, FileLifecycleError)
        assert err.category == ErrorCategory.STORAGE

    def test_load_rejected_keeps_warnings(self):
        err = LoadRejected("warned", warnings=["a", "b"])
        assert err.warnings == ["a", "b"]


class TestWrapEngineError:
    def test_wraps_foreign_exception(self):
        err = wrap_engine_error(RuntimeError("Plan has design errors"), "RUN_PLAN")
        assert isinstance(err, EngineFailure)
        assert err.message == "Plan has design errors"
        assert err.context.step == "RUN_PLAN"
        assert isinstance(err.__cause__, RuntimeError)

    def test_typed_error_passes_through(self):
        original = ExperimentNotFound("missing")
        assert wrap_engine_error(original, "RUN_EXPERIMENT") is original
        assert original.context.step == "RUN_EXPERIMENT"

    def test_existing_step_kept(self):
        original = NotFound("gone").with_context(step="CLAIM")
        wrap_engine_error(original, "ROUTE")
        assert original.context.step == "CLAIM"

    def test_empty_message_uses_type_name(self):
        assert wrap_engine_error(KeyError(), "LOAD").message == "KeyError"
