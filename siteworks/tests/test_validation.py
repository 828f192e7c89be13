import os
import sys
from datetime import datetime

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))
from siteworks.exceptions import ValidationError
from siteworks.models import QuickUpdateRequest, Task, TaskFilter, TaskInvoiceLink, TaskUpdate
from siteworks.validation import (clamp_progress, generate_task_code, site_initials, validate_invoice_link,
                                  validate_progress_update, validate_quick_update, validate_remark,
                                  validate_task, validate_task_filter, validate_task_update)


def make_task(**overrides) -> Task:
    data = dict(
        site_id="site_1",
        code="TT-TASK-0001",
        name="Ceiling gypsum boards",
        description="Install gypsum boards in the lobby ceiling",
        created_by="user_1",
    )
    data.update(overrides)
    return Task(**data)


def test_valid_task_passes():
    result = validate_task(make_task())
    assert result.is_valid
    assert result.errors == {}


def test_validate_task_does_not_mutate_input():
    task = make_task(progress=100)
    before = task.model_dump()
    validate_task(task)
    assert task.model_dump() == before


@pytest.mark.parametrize("overrides, field", [
    ({"name": "A"}, "name"),
    ({"name": "x" * 101}, "name"),
    ({"description": "tiny"}, "description"),
    ({"code": "X" * 21}, "code"),
    ({"location": "L" * 201}, "location"),
    ({"progress": 101}, "progress"),
    ({"progress": -1}, "progress"),
    ({"manpower": 1001}, "manpower"),
    ({"budget_amount": -5.0}, "budget_amount"),
    ({"cost_to_date": -1.0}, "cost_to_date"),
    ({"created_by": ""}, "created_by"),
])
def test_task_field_rules(overrides, field):
    result = validate_task(make_task(**overrides))
    assert not result.is_valid
    assert field in result.errors


def test_full_progress_requires_completion_date():
    result = validate_task(make_task(progress=100))
    assert "actual_completion_date" in result.errors

    completed = make_task(progress=100, actual_completion_date=datetime(2025, 9, 1))
    assert validate_task(completed).is_valid


def test_expected_completion_must_follow_start():
    result = validate_task(make_task(start_date=datetime(2025, 9, 10), expected_completion_date=datetime(2025, 9, 1)))
    assert result.errors["expected_completion_date"] == ["Expected completion date must be after start date"]


def test_billable_task_requires_budget():
    assert "budget_amount" in validate_task(make_task(billable=True)).errors
    assert "budget_amount" in validate_task(make_task(billable=True, budget_amount=0)).errors
    assert validate_task(make_task(billable=True, budget_amount=12000.0)).is_valid


def test_raise_if_invalid_carries_field_errors():
    with pytest.raises(ValidationError) as exc_info:
        validate_task(make_task(billable=True)).raise_if_invalid()
    assert exc_info.value.errors == {"budget_amount": ["Budget amount is required for billable tasks"]}
    assert "Budget amount is required" in str(exc_info.value)


def test_progress_update_bounds():
    assert validate_progress_update(65, 15).is_valid
    assert validate_progress_update(95, 10).errors == {"progress_delta": ["Progress cannot exceed 100%"]}
    assert validate_progress_update(5, -10).errors == {"progress_delta": ["Progress cannot go below 0%"]}
    assert validate_progress_update(0, 100).is_valid


def test_task_update_rules():
    update = TaskUpdate(task_id="task_1", progress_delta=10, progress_after=50, note="Poured slab", entered_by_id="u1")
    assert validate_task_update(update).is_valid

    bad = TaskUpdate(task_id="task_1", progress_delta=150, progress_after=50, note="", entered_by_id="u1",
                     manpower=-2)
    errors = validate_task_update(bad).errors
    assert set(errors) == {"progress_delta", "note", "manpower"}


@pytest.mark.parametrize("time_value, valid", [
    ("08:30", True),
    ("8:05", True),
    ("23:59", True),
    ("24:00", False),
    ("12:60", False),
    ("noon", False),
])
def test_quick_update_time_format(time_value, valid):
    data = QuickUpdateRequest(time=time_value, progress_delta=5, work_description="Wiring first floor",
                              executed_by="emp_1")
    assert validate_quick_update(data).is_valid is valid


def test_quick_update_description_length():
    data = QuickUpdateRequest(time="09:00", progress_delta=5, work_description="abc", executed_by="emp_1")
    assert "work_description" in validate_quick_update(data).errors


def test_invoice_link_balance_tolerance():
    ok = TaskInvoiceLink(task_id="t", invoice_id="i", amount_billed=2500, amount_paid=1500, balance=1000.005)
    assert validate_invoice_link(ok).is_valid

    off = TaskInvoiceLink(task_id="t", invoice_id="i", amount_billed=2500, amount_paid=1500, balance=990)
    assert "balance" in validate_invoice_link(off).errors


def test_task_filter_date_range():
    assert validate_task_filter(TaskFilter(date_from=datetime(2025, 1, 2), date_to=datetime(2025, 1, 1))).errors
    assert validate_task_filter(TaskFilter(date_from=datetime(2025, 1, 1), date_to=datetime(2025, 2, 1))).is_valid


def test_remark_length():
    assert validate_remark(None).is_valid
    assert "remark" in validate_remark("r" * 501).errors


def test_code_helpers():
    assert site_initials("Tripoli tower phase two") == "TTPT"
    assert generate_task_code("TT", 7) == "TT-TASK-0007"
    assert clamp_progress(120) == 100
    assert clamp_progress(-3) == 0
