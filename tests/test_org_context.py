"""Tests for the request-scoped organization context."""

from uuid import uuid4

from app.core.org_context import (
    get_current_org_id,
    get_current_user_id,
    reset_org_context,
    set_org_context,
)


def test_context_is_restored_after_reset():
    org = str(uuid4())
    token = set_org_context(org, "user-123")
    try:
        assert get_current_org_id() == org
        assert get_current_user_id() == "user-123"
    finally:
        reset_org_context(token)

    assert get_current_org_id() is None
    assert get_current_user_id() is None


def test_nested_context_restores_outer_values():
    outer = set_org_context("org-a", "user-a")
    inner = set_org_context("org-b", "user-b")
    assert get_current_org_id() == "org-b"

    reset_org_context(inner)
    assert get_current_org_id() == "org-a"
    assert get_current_user_id() == "user-a"

    reset_org_context(outer)
    assert get_current_org_id() is None
