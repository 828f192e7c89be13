"""Business-rule validation for tasks and the records hanging off them.

Every validator is pure: it takes a candidate and returns a ValidationResult
holding a field -> messages map. Nothing here touches a repository or mutates
its input.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from siteworks.exceptions import ValidationError
from siteworks.models import QuickUpdateRequest, Task, TaskFilter, TaskInvoiceLink, TaskUpdate

BALANCE_TOLERANCE = 0.01
MAX_MANPOWER = 1000
TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


@dataclass
class ValidationResult:
    errors: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add(self, field_name: str, message: str) -> None:
        self.errors.setdefault(field_name, []).append(message)

    def raise_if_invalid(self) -> None:
        if self.errors:
            raise ValidationError(self.errors)


def _check_length(result: ValidationResult, field_name: str, value: Optional[str], *, required: bool,
                  min_length: int = 1, max_length: Optional[int] = None, label: str) -> None:
    if value is None or not value.strip():
        if required:
            result.add(field_name, f"{label} is required")
        return
    if len(value) < min_length:
        result.add(field_name, f"{label} must be at least {min_length} characters")
    if max_length is not None and len(value) > max_length:
        result.add(field_name, f"{label} too long")


def _check_range(result: ValidationResult, field_name: str, value, *, low=None, high=None,
                 low_message: str, high_message: str) -> None:
    if value is None:
        return
    if low is not None and value < low:
        result.add(field_name, low_message)
    if high is not None and value > high:
        result.add(field_name, high_message)


def validate_task(task: Task) -> ValidationResult:
    result = ValidationResult()
    _check_length(result, "site_id", task.site_id, required=True, label="Site")
    _check_length(result, "code", task.code, required=True, max_length=20, label="Task code")
    _check_length(result, "name", task.name, required=True, min_length=2, max_length=100, label="Task name")
    _check_length(result, "description", task.description, required=True, min_length=5, max_length=1000,
                  label="Description")
    _check_length(result, "location", task.location, required=False, max_length=200, label="Location")
    _check_length(result, "created_by", task.created_by, required=True, label="Creator")

    _check_range(result, "progress", task.progress, low=0, high=100,
                 low_message="Progress cannot be negative", high_message="Progress cannot exceed 100%")
    _check_range(result, "manpower", task.manpower, low=0, high=MAX_MANPOWER,
                 low_message="Manpower cannot be negative", high_message="Manpower seems too high")
    _check_range(result, "budget_amount", task.budget_amount, low=0,
                 low_message="Budget cannot be negative", high_message="")
    _check_range(result, "cost_to_date", task.cost_to_date, low=0,
                 low_message="Cost cannot be negative", high_message="")

    if task.progress == 100 and task.actual_completion_date is None:
        result.add("actual_completion_date", "Actual completion date is required when progress is 100%")

    if (task.start_date is not None and task.expected_completion_date is not None
            and task.expected_completion_date <= task.start_date):
        result.add("expected_completion_date", "Expected completion date must be after start date")

    # A zero budget counts as missing
    if task.billable and not task.budget_amount:
        result.add("budget_amount", "Budget amount is required for billable tasks")
    return result


def validate_task_update(update: TaskUpdate) -> ValidationResult:
    result = ValidationResult()
    _check_length(result, "task_id", update.task_id, required=True, label="Task ID")
    _check_length(result, "entered_by_id", update.entered_by_id, required=True, label="Entered by user")
    _check_length(result, "note", update.note, required=True, max_length=1000, label="Update note")
    _check_length(result, "location", update.location, required=False, max_length=200, label="Location")
    _check_range(result, "progress_delta", update.progress_delta, low=-100, high=100,
                 low_message="Progress delta too low", high_message="Progress delta too high")
    _check_range(result, "progress_after", update.progress_after, low=0, high=100,
                 low_message="Progress cannot be negative", high_message="Progress cannot exceed 100%")
    _check_range(result, "manpower", update.manpower, low=0, high=MAX_MANPOWER,
                 low_message="Manpower cannot be negative", high_message="Manpower seems too high")
    return result


def validate_quick_update(data: QuickUpdateRequest) -> ValidationResult:
    result = ValidationResult()
    if not TIME_PATTERN.match(data.time or ""):
        result.add("time", "Invalid time format (HH:MM)")
    _check_range(result, "progress_delta", data.progress_delta, low=-100, high=100,
                 low_message="Progress change too small", high_message="Progress change too large")
    _check_length(result, "work_description", data.work_description, required=True, min_length=5,
                  max_length=500, label="Work description")
    _check_range(result, "manpower", data.manpower, low=0, high=MAX_MANPOWER,
                 low_message="Manpower cannot be negative", high_message="Manpower seems too high")
    _check_length(result, "executed_by", data.executed_by, required=True, label="Executed by")
    _check_length(result, "location", data.location, required=False, max_length=200, label="Location")
    return result


def validate_invoice_link(link: TaskInvoiceLink) -> ValidationResult:
    result = ValidationResult()
    _check_length(result, "task_id", link.task_id, required=True, label="Task ID")
    _check_length(result, "invoice_id", link.invoice_id, required=True, label="Invoice ID")
    _check_range(result, "amount_billed", link.amount_billed, low=0,
                 low_message="Amount billed cannot be negative", high_message="")
    _check_range(result, "amount_paid", link.amount_paid, low=0,
                 low_message="Amount paid cannot be negative", high_message="")
    if abs(link.balance - (link.amount_billed - link.amount_paid)) >= BALANCE_TOLERANCE:
        result.add("balance", "Balance must equal amount billed minus amount paid")
    return result


def validate_task_filter(task_filter: TaskFilter) -> ValidationResult:
    result = ValidationResult()
    if task_filter.date_from and task_filter.date_to and task_filter.date_to <= task_filter.date_from:
        result.add("date_to", "End date must be after start date")
    return result


def validate_remark(remark: Optional[str]) -> ValidationResult:
    result = ValidationResult()
    _check_length(result, "remark", remark, required=False, max_length=500, label="Remark")
    return result


def validate_progress_update(current_progress: int, delta: int) -> ValidationResult:
    result = ValidationResult()
    new_progress = current_progress + delta
    if new_progress < 0:
        result.add("progress_delta", "Progress cannot go below 0%")
    elif new_progress > 100:
        result.add("progress_delta", "Progress cannot exceed 100%")
    return result


def clamp_progress(value: int) -> int:
    return max(0, min(100, value))


def site_initials(site_name: str) -> str:
    return "".join(word[0] for word in site_name.split()).upper()


def generate_task_code(site_code: str, sequence: int) -> str:
    return f"{site_code}-TASK-{sequence:04d}"
