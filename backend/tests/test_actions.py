"""
Tests for actions.py - action schema validation.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from actions import (
    ActionValidationError,
    BulkDeleteAllAction,
    CommandResponse,
    CreateAction,
    DeleteAction,
    NoopAction,
    UpdateAction,
    validate_action,
    validate_actions,
    validate_parsed_command,
)

TASK_ID = "0b6f3d5e-2a8c-4c1e-9a57-3f1e2d4c5b6a"


class TestValidateAction:
    """Tests for single-action validation."""

    def test_each_variant(self):
        assert isinstance(validate_action({"type": "create", "title": "Buy milk"}), CreateAction)
        assert isinstance(
            validate_action({"type": "update", "match": {"title": "milk"}, "patch": {"status": "completed"}}),
            UpdateAction,
        )
        assert isinstance(validate_action({"type": "delete", "match": {"id": TASK_ID}}), DeleteAction)
        assert isinstance(validate_action({"type": "bulk_delete_all"}), BulkDeleteAllAction)
        assert isinstance(validate_action({"type": "noop", "reason": "nothing to do"}), NoopAction)

    def test_camel_case_fields(self):
        action = validate_action({"type": "create", "title": "Gym", "dueDate": "tomorrow", "recurrenceRule": "weekly:mo"})
        assert action.due_date == "tomorrow"
        assert action.recurrence_rule == "WEEKLY:MO"

    def test_missing_title(self):
        with pytest.raises(ActionValidationError) as exc:
            validate_action({"type": "create"})
        assert "title" in exc.value.message

    def test_title_too_long(self):
        with pytest.raises(ActionValidationError) as exc:
            validate_action({"type": "create", "title": "x" * 121})
        assert "title" in exc.value.message

    @pytest.mark.parametrize("raw", [
        {"type": "delete", "match": {"title": "   "}},
        {"type": "update", "match": {"title": "\t"}, "patch": {"status": "completed"}},
        {"type": "update", "match": {"title": "milk"}, "patch": {"title": "  "}},
        {"type": "create", "title": " "},
    ])
    def test_blank_title_rejected(self, raw):
        with pytest.raises(ActionValidationError) as exc:
            validate_action(raw)
        assert "title" in exc.value.message

    def test_titles_are_stripped(self):
        action = validate_action({"type": "delete", "match": {"title": "  rent  "}})
        assert action.match.title == "rent"
        assert validate_action({"type": "create", "title": " rent "}).title == "rent"

    def test_unknown_type(self):
        with pytest.raises(ActionValidationError):
            validate_action({"type": "archive", "match": {"title": "x"}})

    def test_unknown_key_rejected(self):
        with pytest.raises(ActionValidationError):
            validate_action({"type": "create", "title": "x", "priority": 3})

    def test_match_needs_id_or_title(self):
        with pytest.raises(ActionValidationError) as exc:
            validate_action({"type": "delete", "match": {}})
        assert "id or title" in exc.value.message

    def test_match_id_must_be_uuid(self):
        with pytest.raises(ActionValidationError) as exc:
            validate_action({"type": "delete", "match": {"id": "task-1"}})
        assert "UUID" in exc.value.message

    def test_empty_patch_rejected(self):
        with pytest.raises(ActionValidationError) as exc:
            validate_action({"type": "update", "match": {"title": "x"}, "patch": {}})
        assert "at least one field" in exc.value.message

    def test_patch_due_date_null_allowed(self):
        action = validate_action({"type": "update", "match": {"title": "x"}, "patch": {"dueDate": None}})
        assert "due_date" in action.patch.model_fields_set
        assert action.patch.due_date is None

    def test_patch_title_null_rejected(self):
        with pytest.raises(ActionValidationError):
            validate_action({"type": "update", "match": {"title": "x"}, "patch": {"title": None}})

    def test_invalid_recurrence_rule(self):
        with pytest.raises(ActionValidationError) as exc:
            validate_action({"type": "create", "title": "x", "recurrenceRule": "every tuesday"})
        assert "recurrence rule" in exc.value.message

    def test_unknown_timezone(self):
        with pytest.raises(ActionValidationError) as exc:
            validate_action({"type": "create", "title": "x", "recurrenceTimezone": "Mars/Olympus"})
        assert "timezone" in exc.value.message

    def test_empty_noop_reason(self):
        with pytest.raises(ActionValidationError):
            validate_action({"type": "noop", "reason": ""})

    def test_delete_limit_bounds(self):
        with pytest.raises(ActionValidationError):
            validate_action({"type": "delete", "match": {"title": "x"}, "limit": 0})

    def test_not_an_object(self):
        with pytest.raises(ActionValidationError):
            validate_action("delete everything")


class TestValidateBatch:
    """Tests for validate_actions() and validate_parsed_command()."""

    def test_first_failure_is_reported_with_index(self):
        with pytest.raises(ActionValidationError) as exc:
            validate_actions([
                {"type": "create", "title": "ok"},
                {"type": "delete", "match": {}},
                {"type": "create"},
            ])
        assert exc.value.index == 1
        assert str(exc.value).startswith("Invalid action #2:")

    def test_actions_must_be_a_list(self):
        with pytest.raises(ActionValidationError):
            validate_actions({"type": "noop", "reason": "x"})

    def test_requires_confirm_defaults_false(self):
        parsed = validate_parsed_command({"actions": [{"type": "noop", "reason": "x"}], "preview": "p"})
        assert parsed.requires_confirm is False

    def test_missing_preview(self):
        with pytest.raises(ActionValidationError):
            validate_parsed_command({"actions": [{"type": "noop", "reason": "x"}]})

    def test_empty_actions(self):
        with pytest.raises(ActionValidationError):
            validate_parsed_command({"actions": [], "preview": "p"})


class TestCommandResponse:
    """Tests for the API response envelope."""

    def test_token_required_when_confirming(self):
        with pytest.raises(ValueError):
            CommandResponse(actions=[BulkDeleteAllAction(type="bulk_delete_all")], preview="p", requires_confirm=True)

    def test_token_forbidden_without_confirm(self):
        with pytest.raises(ValueError):
            CommandResponse(actions=[], preview="p", requires_confirm=False, confirm_token="abc")

    def test_to_json_uses_camel_case_and_omits_unset(self):
        response = CommandResponse(
            actions=[validate_action({"type": "create", "title": "Gym", "dueDate": "2026-01-03"})],
            preview="Create task",
            requires_confirm=False,
        )
        assert response.to_json() == {
            "actions": [{"type": "create", "title": "Gym", "dueDate": "2026-01-03"}],
            "preview": "Create task",
            "requiresConfirm": False,
        }
