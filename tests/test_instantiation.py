from datetime import datetime, timedelta, timezone

from methodology_engine.instantiation import (
    create_task_from_template,
    create_tasks_from_phase,
    normalize_complexity,
)
from methodology_engine.schema import TaskTemplate, parse_methodology

NOW = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


def _methodology():
    return parse_methodology(
        {
            "metadata": {"id": "research"},
            "phases": [
                {
                    "id": "survey",
                    "tasks": [
                        {
                            "id": "lit",
                            "title": "Literature review",
                            "description": "Collect prior work",
                            "complexity": "complex",
                            "estimatedDuration": 45,
                            "assignedRole": "researcher",
                            "requirements": [
                                {"type": "functional", "description": "20 sources", "priority": "must"},
                                {
                                    "type": "constraint",
                                    "description": "peer reviewed",
                                    "validationCriteria": ["journal"],
                                },
                            ],
                        },
                        {"id": "summary", "title": "Summarize", "complexity": "medium", "dependencies": ["lit"]},
                    ],
                }
            ],
        }
    )


class TestNormalizeComplexity:
    def test_keeps_task_scale(self):
        assert normalize_complexity("simple") == "simple"
        assert normalize_complexity("complex") == "complex"

    def test_other_values_become_simple(self):
        assert normalize_complexity("medium") == "simple"
        assert normalize_complexity(None) == "simple"


class TestCreateTasksFromPhase:
    def test_one_task_per_template_in_order(self):
        m = _methodology()
        tasks = create_tasks_from_phase(m, m.phases[0], "wf-1", now=NOW)
        assert [t.task_template_id for t in tasks] == ["lit", "summary"]
        assert all(t.workflow_id == "wf-1" for t in tasks)
        assert all(t.methodology_id == "research" and t.phase_id == "survey" for t in tasks)
        assert all(t.status == "pending" for t in tasks)

    def test_fields_copied_from_template(self):
        m = _methodology()
        lit, summary = create_tasks_from_phase(m, m.phases[0], "wf-1", now=NOW)
        assert lit.title == "Literature review"
        assert lit.description == "Collect prior work"
        assert lit.complexity == "complex"
        assert lit.assigned_role_id == "researcher"
        assert summary.complexity == "simple"
        assert summary.dependencies == ["lit"]

    def test_due_date_from_estimated_duration(self):
        m = _methodology()
        lit, summary = create_tasks_from_phase(m, m.phases[0], "wf-1", now=NOW)
        assert lit.created_at == NOW
        assert lit.due_date == NOW + timedelta(minutes=45)
        assert summary.due_date is None

    def test_requirements_materialised(self):
        m = _methodology()
        lit = create_tasks_from_phase(m, m.phases[0], "wf-1", now=NOW)[0]
        assert [r.id for r in lit.requirements] == ["lit-req-0", "lit-req-1"]
        first, second = lit.requirements
        assert first.priority == "must"
        assert first.status == "pending"
        assert first.source == "explicit"
        assert first.task_id == lit.id
        assert second.type == "constraint"
        assert second.priority == "should"
        assert second.validation_criteria == ["journal"]

    def test_fresh_ids_per_instantiation(self):
        m = _methodology()
        first = create_tasks_from_phase(m, m.phases[0], "wf-1")
        second = create_tasks_from_phase(m, m.phases[0], "wf-1")
        ids = {t.id for t in first} | {t.id for t in second}
        assert len(ids) == 4

    def test_empty_phase(self):
        m = parse_methodology({"metadata": {"id": "x"}, "phases": [{"id": "p"}]})
        assert create_tasks_from_phase(m, m.phases[0], "wf") == []


def test_to_dict_uses_camel_case():
    template = TaskTemplate(id="t", title="T", estimated_duration=10)
    task = create_task_from_template("m", "p", template, "wf", now=NOW)
    d = task.to_dict()
    assert d["taskTemplateId"] == "t"
    assert d["workflowId"] == "wf"
    assert d["dueDate"] == (NOW + timedelta(minutes=10)).isoformat()
    assert d["createdAt"] == NOW.isoformat()
