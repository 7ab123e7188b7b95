"""Tests for the planner, builder and reviewer phases with a stubbed agent."""

import json
from contextlib import contextmanager

import pytest

from conftest import make_record, read_records, result_event, text_event, write_records

from milhouse.agents.claude import AgentLaunchError
from milhouse.agents.signals import SignalKind
from milhouse.lib.constants import DEFAULT_ALLOWED_TOOLS
from milhouse.lib.stats import load_stats
from milhouse.phases import builder, planner, reviewer
from milhouse.phases.base import PhaseError
from milhouse.prd.paths import plan_path, store_path


class BrokenAgent:
    binary = "claude"

    @contextmanager
    def open_stream(self, options):
        raise AgentLaunchError("claude", "No such file or directory")
        yield


def _edit_store(base, **changes):
    """Return a before_stream hook that edits records the way an agent would."""
    def hook(options):
        data = json.loads(store_path(base).read_text())
        for record in data["prds"]:
            if record["id"] in changes:
                record.update(changes[record["id"]])
        store_path(base).write_text(json.dumps(data))
    return hook


class TestPlanner:
    """Tests for planner.run()."""

    def test_plan_complete_activates_record(self, ctx, project, agent):
        """One open record plus PLAN_COMPLETE:rec-1 leaves rec-1 Active with a plan ref."""
        write_records(project, make_record("rec-1", priority=1))
        agent.outputs = [[text_event("Planned it. ###PLAN_COMPLETE:rec-1###", 1000, 200)]]

        result = planner.run(ctx)

        record = read_records(project)["rec-1"]
        assert record["passes"] == "active"
        assert record["activePlan"] == ".milhouse/plans/rec-1-plan.md"
        assert result.record_id == "rec-1"
        assert result.total_tokens == 1200
        assert not result.skipped

    def test_invocation_options(self, ctx, project, agent):
        write_records(project, make_record("rec-1"))
        agent.outputs = [[text_event("###PLAN_SKIPPED:nothing ready###")]]

        planner.run(ctx)

        options = agent.calls[0]
        assert options.model == "sonnet"
        assert options.work_dir == project
        assert options.allowed_tools == list(DEFAULT_ALLOWED_TOOLS)
        assert store_path(project) in options.context_files
        assert "rec-1" in options.prompt

    def test_skips_when_active_exists(self, ctx, project, agent):
        write_records(project, make_record("a", passes="active"), make_record("b"))
        result = planner.run(ctx)
        assert result.skipped
        assert result.skip_reason == "active record exists"
        assert agent.calls == []

    def test_skips_when_nothing_open(self, ctx, project, agent):
        write_records(project, make_record("a", passes=True))
        result = planner.run(ctx)
        assert result.skip_reason == "no open records"
        assert agent.calls == []

    def test_plan_skipped(self, ctx, project, agent):
        write_records(project, make_record("a"))
        before = store_path(project).read_text()
        agent.outputs = [[text_event("###PLAN_SKIPPED:waiting on API keys###")]]

        result = planner.run(ctx)

        assert result.skipped
        assert result.skip_reason == "waiting on API keys"
        assert store_path(project).read_text() == before

    def test_blocked_does_not_mutate(self, ctx, project, agent):
        write_records(project, make_record("a"))
        agent.outputs = [[text_event("###BLOCKED:need credentials###")]]
        result = planner.run(ctx)
        assert result.blocked_reason == "need credentials"
        assert read_records(project)["a"]["passes"] is False

    def test_unknown_record_ignored(self, ctx, project, agent):
        write_records(project, make_record("a"))
        agent.outputs = [[text_event("###PLAN_COMPLETE:ghost###")]]
        result = planner.run(ctx)
        assert result.record_id is None
        assert read_records(project)["a"]["passes"] is False

    def test_never_activates_a_second_record(self, ctx, project, agent):
        """If another record became Active during the turn, PLAN_COMPLETE is ignored."""
        write_records(project, make_record("a"), make_record("b"))
        agent.before_stream = _edit_store(project, b={"passes": "active"})
        agent.outputs = [[text_event("###PLAN_COMPLETE:a###")]]

        planner.run(ctx)

        records = read_records(project)
        assert records["a"]["passes"] is False
        assert [r for r in records.values() if r["passes"] == "active"] == [records["b"]]

    def test_agent_already_activated_record(self, ctx, project, agent):
        write_records(project, make_record("a"))
        agent.before_stream = _edit_store(project, a={"passes": "active"})
        agent.outputs = [[text_event("###PLAN_COMPLETE:a###")]]

        result = planner.run(ctx)

        assert result.record_id == "a"
        assert read_records(project)["a"]["activePlan"] == ".milhouse/plans/a-plan.md"

    def test_stats_recorded(self, ctx, project, agent):
        write_records(project, make_record("a"))
        agent.outputs = [[text_event("###PLAN_COMPLETE:a###", 10, 5)]]
        planner.run(ctx)
        stats = load_stats(project)
        assert len(stats) == 1
        assert stats[0].phase == "planner"
        assert stats[0].total_tokens == 15
        assert stats[0].signals == ["PLAN_COMPLETE"]

    def test_launch_error_is_phase_error(self, ctx, project):
        write_records(project, make_record("a"))
        before = store_path(project).read_text()
        ctx.agent = BrokenAgent()

        with pytest.raises(PhaseError) as exc_info:
            planner.run(ctx)

        assert exc_info.value.phase == "planner"
        assert store_path(project).read_text() == before


class TestBuilder:
    """Tests for builder.run()."""

    def test_prd_complete_moves_to_pending(self, ctx, project, agent):
        write_records(project, make_record("a", passes="active", activePlan=".milhouse/plans/a-plan.md"))
        plan_path(project, "a").write_text("the plan")
        agent.outputs = [[text_event("All done ###PRD_COMPLETE###")]]

        result = builder.run(ctx)

        record = read_records(project)["a"]
        assert record["passes"] == "pending"
        assert record["activePlan"] == ".milhouse/plans/a-plan.md"
        assert result.completed
        assert result.record_id == "a"
        assert "the plan" in agent.calls[0].prompt

    def test_bailout_keeps_active(self, ctx, project, agent):
        write_records(project, make_record("a", passes="active", activePlan=".milhouse/plans/a-plan.md"))
        agent.outputs = [[text_event("###BAILOUT:context nearly full###")]]

        result = builder.run(ctx)

        assert result.bailed_out
        assert result.bailout_reason == "context nearly full"
        assert not result.completed
        assert read_records(project)["a"]["passes"] == "active"

    def test_token_ceiling_forces_bailout(self, ctx, project, agent):
        write_records(project, make_record("a", passes="active"))
        ctx.config.phases["builder"].max_tokens = 10000
        agent.outputs = [[
            text_event("working", 9000, 2000),
            text_event("###PRD_COMPLETE###"),
        ]]

        result = builder.run(ctx)

        assert result.terminated
        assert result.bailout_reason == "token limit exceeded"
        assert read_records(project)["a"]["passes"] == "active"

    def test_skips_without_active(self, ctx, project, agent):
        write_records(project, make_record("a"))
        result = builder.run(ctx)
        assert result.skipped
        assert agent.calls == []

    def test_skips_with_two_active(self, ctx, project, agent):
        write_records(project, make_record("a", passes="active"), make_record("b", passes="active"))
        result = builder.run(ctx)
        assert result.skipped
        assert agent.calls == []

    def test_record_removed_during_turn(self, ctx, project, agent):
        write_records(project, make_record("a", passes="active"))

        def remove(options):
            store_path(project).write_text('{"prds": []}')
        agent.before_stream = remove
        agent.outputs = [[text_event("###PRD_COMPLETE###")]]

        result = builder.run(ctx)
        assert not result.completed


class TestReviewer:
    """Tests for reviewer.run()."""

    @pytest.fixture
    def seeded(self, project):
        write_records(
            project,
            make_record("a", passes="pending", activePlan=".milhouse/plans/a-plan.md"),
            make_record("b", passes="pending", activePlan=".milhouse/plans/b-plan.md"),
            make_record("c", passes="active", activePlan=".milhouse/plans/c-plan.md"),
            make_record("d"),
        )
        for rid in ("a", "b", "c"):
            plan_path(project, rid).write_text(f"plan for {rid}")
        return project

    def test_applies_every_signal(self, ctx, seeded, agent):
        agent.outputs = [[text_event(
            "###VERIFIED:a### ###REJECTED:b:needs tests### ###PLAN_UPDATED:c### "
            "###LOOP_RISK:c### ###PROMPT_UPDATED:builder### ###ANALYSIS_COMPLETE###"
        )]]

        result = reviewer.run(ctx, iteration=2)

        records = read_records(seeded)
        assert records["a"]["passes"] is True
        assert "activePlan" not in records["a"]
        assert records["b"]["passes"] is False
        assert "needs tests" in records["b"]["notes"]
        assert "activePlan" not in records["b"]
        assert records["c"]["passes"] == "active"

        assert not plan_path(seeded, "a").exists()
        assert not plan_path(seeded, "b").exists()
        assert plan_path(seeded, "c").exists()

        assert result.verified == ["a"]
        assert result.rejected == [("b", "needs tests")]
        assert result.plan_updated == ["c"]
        assert result.loop_risk == ["c"]
        assert result.prompt_updated == ["builder"]
        assert SignalKind.ANALYSIS_COMPLETE in result.signal_kinds

    def test_multiple_verified(self, ctx, seeded, agent):
        agent.outputs = [[text_event("###VERIFIED:a###"), text_event("###VERIFIED:b###")]]
        result = reviewer.run(ctx)
        assert result.verified == ["a", "b"]
        records = read_records(seeded)
        assert records["a"]["passes"] is True and records["b"]["passes"] is True

    def test_result_event_repeat_reported_once(self, ctx, seeded, agent):
        """The closing result event echoes the last message; each id is reported once."""
        text = "###VERIFIED:a### ###LOOP_RISK:c###"
        agent.outputs = [[text_event(text), result_event(text)]]

        result = reviewer.run(ctx)

        assert [s.kind for s in result.signals].count(SignalKind.VERIFIED) == 2
        assert result.verified == ["a"]
        assert result.loop_risk == ["c"]
        assert read_records(seeded)["a"]["passes"] is True

    def test_invalid_targets_ignored(self, ctx, seeded, agent):
        """VERIFIED for an open record or an unknown id changes nothing."""
        agent.outputs = [[text_event("###VERIFIED:d### ###VERIFIED:zzz### ###REJECTED:c:nope###")]]
        result = reviewer.run(ctx)
        records = read_records(seeded)
        assert records["d"]["passes"] is False
        assert records["c"]["passes"] == "active"
        assert result.verified == []
        assert result.rejected == []

    def test_runs_for_open_records_only(self, ctx, project, agent):
        write_records(project, make_record("a"))
        agent.outputs = [[text_event("###ANALYSIS_COMPLETE###")]]
        result = reviewer.run(ctx)
        assert not result.skipped
        assert len(agent.calls) == 1

    def test_skips_when_all_complete(self, ctx, project, agent):
        write_records(project, make_record("a", passes=True))
        result = reviewer.run(ctx)
        assert result.skipped
        assert agent.calls == []
