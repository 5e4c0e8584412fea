"""CLI tests against a temporary on-disk database, using typer's CliRunner."""
from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from maturity.catalog import DEFAULT_QUESTIONS
from maturity.cli import app

runner = CliRunner()


@pytest.fixture()
def db_args(tmp_path, monkeypatch):
    monkeypatch.setattr("maturity.cli.build_client", lambda settings: None)
    return ["--db", str(tmp_path / "cli.db"), "--json"]


@pytest.fixture()
def answers_file(tmp_path):
    path = tmp_path / "answers.json"
    path.write_text(json.dumps({
        "profile": {"name": "Kim", "email": "kim@acme.test", "company": "Acme", "industry": "food"},
        "answers": {q.id: 2 for q in DEFAULT_QUESTIONS},
    }))
    return path


def invoke(args):
    result = runner.invoke(app, args)
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestCli:
    def test_init_db(self, db_args, tmp_path):
        payload = invoke(db_args + ["init-db"])
        assert payload["status"] == "ok"
        assert (tmp_path / "cli.db").exists()

    def test_submit_and_resubmit(self, db_args, answers_file):
        first = invoke(db_args + ["submit", str(answers_file)])
        second = invoke(db_args + ["submit", str(answers_file), "--company-size", "small"])
        assert first["created"] is True
        assert second["created"] is False
        assert second["result_id"] == first["result_id"]
        assert first["overall_score"] == pytest.approx(2.0)

    def test_invalid_answer_exits_nonzero(self, db_args, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"planning_1": 7}))
        result = runner.invoke(app, db_args + ["submit", str(bad)])
        assert result.exit_code == 1
        assert "planning_1" in result.output

    def test_benchmark_plan_narrative_roadmap(self, db_args, answers_file):
        rid = str(invoke(db_args + ["submit", str(answers_file)])["result_id"])

        report = invoke(db_args + ["benchmark", rid])
        assert report["total_sample_count"] == 1
        assert report["cohort_fallback"] is True

        plan = invoke(db_args + ["plan", rid])
        assert plan and plan[0]["priority"] == "high"
        assert invoke(db_args + ["plan", rid]) == plan

        updated = invoke(db_args + ["plan-update", str(plan[0]["id"]), "--status", "completed", "--progress", "100"])
        assert updated["status"] == "completed"

        narrative = invoke(db_args + ["narrative", rid])
        assert narrative["source"] == "fallback"
        assert narrative["narrative"]["executive_summary"]

        roadmap = invoke(db_args + ["roadmap", rid])
        assert roadmap["source"] == "fallback"
        assert {p["phase"] for p in roadmap["plans"]} <= {"short", "mid", "long"}

        details = invoke(db_args + ["details", rid])
        assert len(details) == 6

        full = invoke(db_args + ["report", rid])
        assert full["overall"]["grade"] == "C"
        assert len(full["plan"]) == len(plan)

    def test_results_listing(self, db_args, answers_file):
        rid = invoke(db_args + ["submit", str(answers_file)])["result_id"]
        listing = invoke(db_args + ["results"])
        assert [r["result_id"] for r in listing["results"]] == [rid]
        assert listing["stats"]["total"] == 1

    def test_unknown_result(self, db_args):
        result = runner.invoke(app, db_args + ["benchmark", "42"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_question_admin(self, db_args):
        added = invoke(db_args + ["question-add", "planning_9", "planning", "Scenario plans exist.", "--weight", "2"])
        assert added["weight"] == 2
        invoke(db_args + ["question-deactivate", "planning_9"])
        active = invoke(db_args + ["questions"])
        assert "planning_9" not in {q["question_id"] for q in active}
        everything = invoke(db_args + ["questions", "--all"])
        assert len(everything) == len(DEFAULT_QUESTIONS) + 1

    def test_table_output(self, tmp_path, monkeypatch, answers_file):
        monkeypatch.setattr("maturity.cli.build_client", lambda settings: None)
        result = runner.invoke(app, ["--db", str(tmp_path / "t.db"), "submit", str(answers_file)])
        assert result.exit_code == 0, result.output
        assert "Planning Management" in result.output
