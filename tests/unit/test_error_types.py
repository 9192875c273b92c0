"""Tests for the error hierarchy and stage-error wrapping."""

from __future__ import annotations

import pytest

from crosspost.errors import (
    AdapterTimeoutError,
    AuthError,
    CrosspostError,
    ErrorCode,
    PrerequisiteMissingError,
    PublishError,
    ResourceError,
    TransformError,
    wrap_stage_error,
)


class TestHierarchy:
    @pytest.mark.parametrize("cls,code", [
        (AuthError, ErrorCode.AUTH_ERROR),
        (TransformError, ErrorCode.TRANSFORM_ERROR),
        (ResourceError, ErrorCode.RESOURCE_ERROR),
        (PrerequisiteMissingError, ErrorCode.PREREQUISITE_MISSING),
        (AdapterTimeoutError, ErrorCode.TIMEOUT),
    ])
    def test_fixed_codes(self, cls, code):
        err = cls(message="m")
        assert err.code is code
        assert isinstance(err, CrosspostError)

    def test_publish_subclasses(self):
        assert issubclass(PrerequisiteMissingError, PublishError)
        assert issubclass(AdapterTimeoutError, PublishError)

    def test_cause_is_chained(self):
        root = ValueError("root")
        err = PublishError(message="m", cause=root)
        assert err.cause is root
        assert err.__cause__ is root

    def test_repr_includes_context(self):
        err = AuthError(message="denied", context={"platform": "substack"})
        text = repr(err)
        assert text.startswith("AuthError(code=")
        assert text.endswith("message='denied', context={'platform': 'substack'})")


class TestWrapStageError:
    def test_plain_exception_becomes_publish_error(self):
        err = wrap_stage_error("wechat-official", "draft", KeyError("media_id"))
        assert type(err) is PublishError
        assert err.message == "[wechat-official:draft] 'media_id'"
        assert err.context == {"platform": "wechat-official", "stage": "draft"}

    def test_typed_error_keeps_class_and_context(self):
        original = AuthError(message="expired", context={"errcode": 42001})
        err = wrap_stage_error("wechat-official", "resources", original)
        assert type(err) is AuthError
        assert err.context == {"errcode": 42001, "platform": "wechat-official", "stage": "resources"}
        assert err.cause is original

    def test_already_wrapped_returned_unchanged(self):
        err = wrap_stage_error("substack", "draft", RuntimeError("x"))
        assert wrap_stage_error("substack", "draft", err) is err

    def test_generic_crosspost_error_keeps_code(self):
        original = CrosspostError(code="CUSTOM", message="odd")
        err = wrap_stage_error("substack", "publish", original)
        assert err.code == "CUSTOM"
        assert err.message == "[substack:publish] odd"
