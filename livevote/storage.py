"""JSON-based storage for groups, schedules, employees and votes."""

import json
import os
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .config import MAX_RATING, MIN_RATING
from .models import PerformanceUnit, RatingRecord

GROUPS_FILE = "groups.json"
SCHEDULES_FILE = "schedules.json"
EMPLOYEES_FILE = "employees.json"
VOTES_FILE = "votes.json"


class VoteRejected(ValueError):
    """Raised when a vote submission fails validation."""


class UnknownParticipantError(LookupError):
    """Raised when a participant id is not in the employee directory."""


def get_data_path(filename: str) -> str:
    """Get the full path of a storage file.

    Args:
        filename: Name of the JSON file inside the data directory

    Returns:
        Path to the file
    """
    return os.path.join(config.DATA_BASE_DIR, filename)


def _load(filename: str, default: Any) -> Any:
    path = get_data_path(filename)
    if not os.path.exists(path):
        return default
    with open(path, "r") as f:
        return json.load(f)


def _save(filename: str, data: Any) -> None:
    Path(config.DATA_BASE_DIR).mkdir(parents=True, exist_ok=True)
    path = get_data_path(filename)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp_path, path)


# ---------------------------------------------------------------------------
# Groups and schedules
# ---------------------------------------------------------------------------

def save_group(group: PerformanceUnit) -> PerformanceUnit:
    """Create or replace a group.

    Args:
        group: Group to store

    Returns:
        The stored group
    """
    groups = _load(GROUPS_FILE, {})
    groups[group.id] = group.to_dict()
    _save(GROUPS_FILE, groups)
    return group


def get_group(group_id: str) -> Optional[PerformanceUnit]:
    """Load a group by id, or None if not found."""
    data = _load(GROUPS_FILE, {}).get(group_id)
    return PerformanceUnit.from_dict(data) if data else None


def set_schedule(day: date, group_id: str) -> None:
    """Schedule a group to perform on a day.

    Args:
        day: Calendar day
        group_id: Group performing that day

    Raises:
        ValueError: If the group does not exist
    """
    if get_group(group_id) is None:
        raise ValueError(f"Group {group_id} not found")

    schedules = _load(SCHEDULES_FILE, {})
    schedules[day.isoformat()] = group_id
    _save(SCHEDULES_FILE, schedules)


def get_scheduled_group(day: date) -> Optional[PerformanceUnit]:
    """Get the group scheduled for a day.

    Args:
        day: Calendar day

    Returns:
        The scheduled group, or None if nothing (or a deleted group) is scheduled
    """
    group_id = _load(SCHEDULES_FILE, {}).get(day.isoformat())
    if not group_id:
        return None
    return get_group(group_id)


# ---------------------------------------------------------------------------
# Employees
# ---------------------------------------------------------------------------

def save_employee(employee_id: str, name: str, department: str = "") -> Dict[str, str]:
    """Create or replace an employee directory entry."""
    employees = _load(EMPLOYEES_FILE, {})
    employee = {"id": employee_id, "name": name, "department": department}
    employees[employee_id] = employee
    _save(EMPLOYEES_FILE, employees)
    return employee


def get_employee(employee_id: str) -> Optional[Dict[str, str]]:
    """Load an employee by id, or None if not found."""
    return _load(EMPLOYEES_FILE, {}).get(employee_id)


def list_employees() -> List[Dict[str, str]]:
    """List employees ordered by name."""
    employees = list(_load(EMPLOYEES_FILE, {}).values())
    employees.sort(key=lambda e: e["name"])
    return employees


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------

def _load_votes() -> List[RatingRecord]:
    return [RatingRecord.from_dict(v) for v in _load(VOTES_FILE, [])]


def add_vote(
    group_id: str,
    participant_id: Optional[str],
    rating: int,
    submitted_at: Optional[datetime] = None,
) -> RatingRecord:
    """Store a new vote.

    Args:
        group_id: Group being rated
        participant_id: Employee casting the vote
        rating: Integer rating between MIN_RATING and MAX_RATING
        submitted_at: Submission time, defaults to now (UTC)

    Returns:
        The stored rating record

    Raises:
        VoteRejected: If the rating is out of range or the group or participant is unknown
    """
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise VoteRejected("Rating must be an integer")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise VoteRejected(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    if get_group(group_id) is None:
        raise VoteRejected(f"Group {group_id} not found")
    if participant_id is not None and get_employee(participant_id) is None:
        raise VoteRejected(f"Participant {participant_id} not found")

    record = RatingRecord(
        id=str(uuid.uuid4()),
        group_id=group_id,
        participant_id=participant_id,
        rating=rating,
        submitted_at=submitted_at or datetime.now(timezone.utc),
    )

    votes = _load(VOTES_FILE, [])
    votes.append(record.to_dict())
    _save(VOTES_FILE, votes)

    return record


def list_votes(group_id: str) -> List[RatingRecord]:
    """List every vote for a group, oldest first."""
    votes = [v for v in _load_votes() if v.group_id == group_id]
    votes.sort(key=lambda v: v.submitted_at)
    return votes


def list_voter_names(group_id: str) -> List[str]:
    """List names of participants who voted for a group, newest vote first.

    Votes without a known participant are skipped.
    """
    names = []
    for vote in reversed(list_votes(group_id)):
        if not vote.participant_id:
            continue
        employee = get_employee(vote.participant_id)
        if employee:
            names.append(employee["name"])
    return names


def list_pending_employees(day: date) -> List[Dict[str, str]]:
    """List employees who have not voted on a given day, ordered by name."""
    voted = {
        v.participant_id
        for v in _load_votes()
        if v.participant_id and v.submitted_at.date() == day
    }
    return [e for e in list_employees() if e["id"] not in voted]


def resolve_participant_name(participant_id: str) -> str:
    """Get an employee's display name.

    Raises:
        UnknownParticipantError: If the employee does not exist
    """
    employee = get_employee(participant_id)
    if employee is None:
        raise UnknownParticipantError(f"Participant {participant_id} not found")
    return employee["name"]
