"""Tests for prompt templates and the per-phase context builders."""

import pytest

from conftest import make_record, write_records

from milhouse.lib.context import (
    builder_context,
    chat_context,
    load_augmentation,
    planner_context,
    read_last_lines,
    reviewer_context,
)
from milhouse.lib.prompts import PromptError, build_section, clear_cache, load_prompt, render, render_prompt
from milhouse.prd.paths import augmentation_path, milhouse_path, plan_path, store_path
from milhouse.prd.store import load_store


@pytest.fixture(autouse=True)
def _clear_prompt_cache():
    clear_cache()
    yield
    clear_cache()


class TestPromptLoading:

    @pytest.mark.parametrize("name", ["planner", "builder", "reviewer", "chat"])
    def test_templates_exist_without_comments(self, name):
        template = load_prompt(name)
        assert "<!--" not in template
        assert template == template.lstrip()

    def test_missing_template(self):
        with pytest.raises(PromptError, match="No template"):
            load_prompt("nonexistent")

    def test_missing_variable(self):
        with pytest.raises(PromptError, match="needs"):
            render_prompt("planner", timestamp="now")

    def test_build_section(self):
        assert build_section("body", "## H") == "## H\n\nbody\n"
        assert build_section("", "## H", "none") == "## H\n\nnone\n"
        assert build_section(None, "## H") == ""


class TestReadLastLines:

    def test_tail(self, tmp_path):
        path = tmp_path / "log.md"
        path.write_text("\n".join(f"line {i}" for i in range(1, 31)))
        assert read_last_lines(path, 3) == "line 28\nline 29\nline 30"

    def test_short_file_returned_whole(self, tmp_path):
        path = tmp_path / "log.md"
        path.write_text("a\nb")
        assert read_last_lines(path, 20) == "a\nb"

    def test_missing_file(self, tmp_path):
        assert read_last_lines(tmp_path / "nope", 5) == ""


class TestPhaseContexts:
    """Each phase template renders with the context its builder produces."""

    @pytest.fixture
    def store(self, project):
        write_records(
            project,
            make_record("open-1", priority=2),
            make_record("act-1", passes="active", activePlan=".milhouse/plans/act-1-plan.md"),
            make_record("pend-1", passes="pending"),
        )
        plan_path(project, "act-1").write_text("1. do the thing")
        milhouse_path(project, "progress.md").write_text("old\n" * 50 + "latest entry\n")
        return load_store(store_path(project))

    def test_planner(self, project, store):
        prompt = render("planner", planner_context(project, store, 20))
        assert "open-1" in prompt
        assert "act-1" not in prompt
        assert "latest entry" in prompt
        assert "###PLAN_COMPLETE:<id>###" in prompt

    def test_builder(self, project, store):
        prompt = render("builder", builder_context(project, store.find_by_id("act-1"), 20))
        assert "1. do the thing" in prompt
        assert "###PRD_COMPLETE###" in prompt
        assert "WORKING ON: act-1" in prompt

    def test_builder_missing_plan(self, project, store):
        prompt = render("builder", builder_context(project, store.find_by_id("pend-1"), 20))
        assert "is missing" in prompt

    def test_reviewer_includes_plans_and_augmentations(self, project, store):
        augmentation_path(project, "builder").write_text("Always run make lint.\n")
        prompt = render("reviewer", reviewer_context(project, store, 200, iteration=3))
        assert "iteration 3" in prompt
        assert "### act-1 (active)" in prompt
        assert "Always run make lint." in prompt
        assert "pend-1" in prompt

    def test_chat(self, project, store):
        prompt = render("chat", chat_context(project, store))
        assert "3 requirements (1 open, 1 active," in prompt

    def test_chat_without_store(self, project):
        prompt = render("chat", chat_context(project, None))
        assert "0 requirements" in prompt


class TestAugmentation:

    def test_whitespace_only_is_absent(self, project):
        augmentation_path(project, "planner").write_text("   \n\n")
        assert load_augmentation(project, "planner") == ""

    def test_augmentation_in_planner_prompt(self, project):
        augmentation_path(project, "planner").write_text("Prefer backend work first.")
        write_records(project, make_record("a"))
        prompt = render("planner", planner_context(project, load_store(store_path(project)), 20))
        assert "## Project-Specific Guidance" in prompt
        assert "Prefer backend work first." in prompt
