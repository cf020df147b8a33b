# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for performance alerts raised after a grade."""

from datetime import timedelta

import pytest

from src.core.config.settings import AlertSettings
from src.core.exceptions import TransientStoreError
from src.domains.grade_pipeline.handlers import (
    AlertType,
    GradeActivityObserver,
    evaluate_alerts,
)
from src.domains.grading.models import GradeEvent
from tests.fakes import NOW, make_grade


@pytest.fixture
def alert_settings() -> AlertSettings:
    """Create alert settings with the default thresholds."""
    return AlertSettings()


@pytest.fixture
def observer(score_store, alert_settings) -> GradeActivityObserver:
    """Create an observer reading the fake score store at NOW."""
    return GradeActivityObserver(score_store, alert_settings, clock=lambda: NOW)


def latest_event(student_id: str = "s-1", subject_id: str = "math") -> GradeEvent:
    return GradeEvent(
        student_id=student_id,
        activity_id="a-1",
        class_id="c-1",
        subject_id=subject_id,
        score=40,
        max_score=100,
        graded_by="teacher-1",
        graded_at=NOW - timedelta(hours=1),
    )


def store_scores(score_store, scores: list[float], subject_id: str = "math") -> None:
    """Store s-1 grades one hour apart, the first score the newest."""
    for hours, score in enumerate(scores, start=1):
        score_store.grades.append(
            make_grade("s-1", score, NOW - timedelta(hours=hours), subject_id=subject_id)
        )


class TestEvaluateAlerts:
    """Tests for evaluate_alerts."""

    def test_struggling_average(self, alert_settings) -> None:
        """Test an average below 60 is flagged as struggling."""
        alerts = evaluate_alerts([50.0, 55.0, 40.0], alert_settings)

        assert alerts == [(AlertType.STRUGGLING_STUDENT, 48.33)]

    def test_exceptional_average(self, alert_settings) -> None:
        """Test an average above 95 is flagged as exceptional."""
        alerts = evaluate_alerts([100.0, 98.0, 97.0], alert_settings)

        assert alerts == [(AlertType.EXCEPTIONAL_PERFORMANCE, 98.33)]

    def test_significant_improvement(self, alert_settings) -> None:
        """Test newer grades more than 15 points above older ones are flagged."""
        alerts = evaluate_alerts([90.0, 85.0, 70.0, 60.0, 50.0], alert_settings)

        assert alerts == [(AlertType.SIGNIFICANT_IMPROVEMENT, 32.5)]

    def test_small_gain_not_flagged(self, alert_settings) -> None:
        """Test a gain of 15 points or less raises nothing."""
        assert evaluate_alerts([80.0, 70.0, 65.0], alert_settings) == []

    def test_too_few_grades(self, alert_settings) -> None:
        """Test fewer than the minimum number of grades raises nothing."""
        assert evaluate_alerts([10.0, 20.0], alert_settings) == []

    def test_thresholds_are_configurable(self) -> None:
        """Test custom thresholds change what is flagged."""
        settings = AlertSettings(struggling_below=75.0, min_grades=2)

        alerts = evaluate_alerts([70.0, 70.0], settings)

        assert alerts == [(AlertType.STRUGGLING_STUDENT, 70.0)]


class TestGradeActivityObserver:
    """Tests for GradeActivityObserver."""

    @pytest.mark.asyncio
    async def test_struggling_alert_raised(self, observer, score_store) -> None:
        """Test low recent grades in the subject raise a struggling alert."""
        store_scores(score_store, [40, 50, 45])

        await observer.handle(latest_event())

        alerts = observer.recent_alerts()
        assert len(alerts) == 1
        assert alerts[0].alert_type is AlertType.STRUGGLING_STUDENT
        assert alerts[0].student_id == "s-1"
        assert alerts[0].value == 45.0
        assert alerts[0].recent_scores == (40.0, 50.0, 45.0)
        assert alerts[0].raised_at == NOW
        assert observer.get_stats() == {
            "grade_events": 1,
            "alerts": {"struggling_student": 1},
        }
        assert observer.recent_activity("c-1")["alerts"] == 1

    @pytest.mark.asyncio
    async def test_only_recent_grades_checked(self, observer, score_store) -> None:
        """Test grades older than the window or in other subjects are ignored."""
        store_scores(score_store, [40, 50])
        score_store.grades.append(make_grade("s-1", 30, NOW - timedelta(days=10)))
        score_store.grades.append(
            make_grade("s-1", 30, NOW - timedelta(hours=5), subject_id="physics")
        )

        await observer.handle(latest_event())

        assert observer.recent_alerts() == []
        assert observer.get_stats()["grade_events"] == 1

    @pytest.mark.asyncio
    async def test_sample_limited_to_latest_grades(self, observer, score_store) -> None:
        """Test only the five newest grades are averaged."""
        store_scores(score_store, [97, 98, 99, 96, 100, 10, 10])

        await observer.handle(latest_event())

        alerts = observer.recent_alerts()
        assert [a.alert_type for a in alerts] == [AlertType.EXCEPTIONAL_PERFORMANCE]
        assert alerts[0].recent_scores == (97.0, 98.0, 99.0, 96.0, 100.0)

    @pytest.mark.asyncio
    async def test_alerts_filtered_by_class(self, observer, score_store) -> None:
        """Test recent alerts can be narrowed to one class."""
        store_scores(score_store, [40, 50, 45])

        await observer.handle(latest_event())

        assert len(observer.recent_alerts("c-1")) == 1
        assert observer.recent_alerts("c-2") == []

    @pytest.mark.asyncio
    async def test_store_outage_propagates(self, observer, score_store) -> None:
        """Test a store outage fails the handler after the event is counted."""
        score_store.fail = True

        with pytest.raises(TransientStoreError):
            await observer.handle(latest_event())

        assert observer.recent_activity("c-1")["grade_events"] == 1

    @pytest.mark.asyncio
    async def test_reset(self, observer, score_store) -> None:
        """Test reset forgets events and alerts."""
        store_scores(score_store, [40, 50, 45])
        await observer.handle(latest_event())

        observer.reset()

        assert observer.recent_alerts() == []
        assert observer.get_stats() == {"grade_events": 0, "alerts": {}}
