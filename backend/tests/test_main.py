"""
Tests for main.py helpers and the model system prompt.
"""
import pytest
import sys
import os
import threading

from fastapi import HTTPException

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import main
from actions import ACTION_TYPES
from models import Owner
from prompts import SYSTEM_PROMPT


class TestSystemPrompt:
    """The prompt is a format string with a single {today} placeholder."""

    def test_today_inserted(self):
        prompt = SYSTEM_PROMPT.format(today="2026-01-02")
        assert "Today's date is: 2026-01-02" in prompt

    def test_json_examples_survive_formatting(self):
        """Literal braces are escaped, so examples come out as JSON."""
        prompt = SYSTEM_PROMPT.format(today="2026-01-02")
        assert '{"type": "bulk_delete_all"}' in prompt
        assert "{{" not in prompt

    def test_every_action_type_described(self):
        prompt = SYSTEM_PROMPT.format(today="2026-01-02")
        for action_type in ACTION_TYPES:
            name = action_type.model_fields["type"].annotation.__args__[0]
            assert f'"type": "{name}"' in prompt


class TestGetOwner:
    """Tests for the identity dependency."""

    def test_user(self):
        assert main.get_owner(x_user_id="u1", x_guest_id=None) == Owner(id="u1")

    def test_guest(self):
        assert main.get_owner(x_user_id=None, x_guest_id="g1") == Owner(id="g1", is_guest=True)

    @pytest.mark.parametrize("user_id, guest_id", [(None, None), ("u1", "g1"), ("", None)])
    def test_exactly_one_required(self, user_id, guest_id):
        with pytest.raises(HTTPException) as exc:
            main.get_owner(x_user_id=user_id, x_guest_id=guest_id)
        assert exc.value.status_code == 401


class TestRevisions:
    """The executor's invalidation signal bumps a per-owner revision."""

    def test_bump(self, monkeypatch):
        monkeypatch.setattr(main, "task_list_revisions", {})
        owner = Owner(id="u1")
        main.bump_task_list_revision(owner)
        main.bump_task_list_revision(owner)
        assert main.task_list_revisions == {owner: 2}

    def test_concurrent_bumps_are_all_counted(self, monkeypatch):
        monkeypatch.setattr(main, "task_list_revisions", {})
        owner = Owner(id="u1")

        def bump_many():
            for _ in range(500):
                main.bump_task_list_revision(owner)

        workers = [threading.Thread(target=bump_many) for _ in range(8)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()
        assert main.task_list_revision(owner) == 4000

    def test_unknown_owner_is_revision_zero(self, monkeypatch):
        monkeypatch.setattr(main, "task_list_revisions", {})
        assert main.task_list_revision(Owner(id="nobody")) == 0

    def test_lifespan_registers_listener(self, app_client):
        import executor
        assert main.bump_task_list_revision in executor._task_list_listeners
