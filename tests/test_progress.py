from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from engines.progress import set_progress
from lms_service.errors import ValidationError


def _enrollment():
    return SimpleNamespace(id=1, user_id=2, course_id=3, progress=0.0, completed=False, completed_at=None)


def test_completion_sets_timestamp_and_regression_clears_it():
    enrollment = _enrollment()
    set_progress(enrollment, 100)
    assert enrollment.completed is True
    assert enrollment.completed_at is not None

    set_progress(enrollment, 50)
    assert enrollment.completed is False
    assert enrollment.completed_at is None


def test_completion_timestamp_is_set_once():
    enrollment = _enrollment()
    first = datetime(2024, 1, 1, tzinfo=timezone.utc)
    set_progress(enrollment, 100, now=first)
    set_progress(enrollment, 100, now=datetime(2024, 2, 1, tzinfo=timezone.utc))
    assert enrollment.completed_at == first


def test_clearing_can_be_switched_off():
    enrollment = _enrollment()
    set_progress(enrollment, 100)
    stamped = enrollment.completed_at
    set_progress(enrollment, 40, clear_completed_at=False)
    assert enrollment.completed is False
    assert enrollment.completed_at == stamped


def test_partial_progress_is_not_complete():
    enrollment = _enrollment()
    set_progress(enrollment, 99.5)
    assert enrollment.progress == 99.5
    assert enrollment.completed is False


@pytest.mark.parametrize("value", [-0.1, 100.1, "50", None])
def test_out_of_range_progress_is_rejected(value):
    enrollment = _enrollment()
    with pytest.raises(ValidationError):
        set_progress(enrollment, value)
    assert enrollment.progress == 0.0
