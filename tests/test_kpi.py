"""Tests for the KPI composer and input validation."""

import random

import pytest
from datetime import date

from kpi_engine.engine.kpi import KPICalculator
from kpi_engine.models.records import RevolutPillars, TaskPriority

MONDAY = date(2026, 9, 14)
SATURDAY = date(2026, 9, 19)


@pytest.fixture
def calculator(policy):
    return KPICalculator(policy=policy)


@pytest.fixture
def work_habit(make_habit):
    return make_habit(habit_id="work", name="Work", target_minutes=360, category="career", is_weekday_only=True)


# ═══════════════════════════════════════════════════════════════════════════
# Base score
# ═══════════════════════════════════════════════════════════════════════════


class TestBaseScore:
    def test_weekday_target(self, calculator, work_habit, make_habit_record):
        result = calculator.calculate_daily_kpi(
            [make_habit_record(work_habit, 360)], [], [work_habit], RevolutPillars(0, 0, 0), day=MONDAY,
        )
        assert result.base_score == pytest.approx(100)

    def test_weekend_target_is_capped(self, calculator, work_habit, make_habit_record):
        result = calculator.calculate_daily_kpi(
            [make_habit_record(work_habit, 360)], [], [work_habit], RevolutPillars(0, 0, 0), day=SATURDAY,
        )
        assert result.base_score == pytest.approx(150)

    def test_unknown_habits_skipped(self, calculator, make_habit, make_habit_record):
        habit = make_habit(target_minutes=60)
        records = [make_habit_record(habit, 30), make_habit_record("ghost", 500)]
        result = calculator.calculate_daily_kpi(records, [], [habit], RevolutPillars(0, 0, 0), day=MONDAY)
        assert result.base_score == pytest.approx(50)

    def test_no_records(self, calculator):
        result = calculator.calculate_daily_kpi([], [], [], RevolutPillars(0, 0, 0), day=MONDAY)
        assert result.base_score == 0


# ═══════════════════════════════════════════════════════════════════════════
# Composition
# ═══════════════════════════════════════════════════════════════════════════


class TestComposition:
    def test_priority_bonus_from_collaborator(self, calculator, make_task):
        tasks = [
            make_task(priority=TaskPriority.HIGH, completed=True),
            make_task(priority=TaskPriority.HIGH, completed=True),
            make_task(priority=TaskPriority.MEDIUM, completed=True),
        ]
        result = calculator.calculate_daily_kpi(tasks=tasks, habit_records=[], habits=[],
                                                revolut_pillars=RevolutPillars(0, 0, 0), day=MONDAY)
        assert calculator.priority_manager.base_priority_bonus(tasks) == 50
        assert result.priority_bonus == calculator.priority_manager.calculate_priority_bonus(tasks)

    def test_revolut_component(self, calculator):
        result = calculator.calculate_daily_kpi([], [], [], RevolutPillars(80, 70, 90), day=MONDAY)
        assert result.revolut_score == pytest.approx(80)

    def test_total_is_sum_of_parts(self, calculator, make_habit, make_habit_record, make_task):
        habit = make_habit(target_minutes=60)
        result = calculator.calculate_daily_kpi(
            [make_habit_record(habit, 30)],
            [make_task(completed=True, estimated_minutes=30, actual_minutes=30)],
            [habit],
            RevolutPillars(40, 50, 30),
            day=MONDAY,
        )
        parts = (result.base_score + result.efficiency_coefficients.total()
                 + result.priority_bonus + result.revolut_score)
        assert result.total_kpi == pytest.approx(min(parts, 150))

    def test_total_capped_at_150(self, calculator, work_habit, make_habit_record, make_task):
        tasks = [make_task(priority=TaskPriority.HIGH, completed=True) for _ in range(5)]
        result = calculator.calculate_daily_kpi(
            [make_habit_record(work_habit, 360)], tasks, [work_habit], RevolutPillars(100, 100, 100), day=SATURDAY,
        )
        assert result.total_kpi == 150

    def test_total_floored_at_zero(self, policy, make_habit, make_habit_record, make_task):
        calculator = KPICalculator(policy=policy, book_policy=lambda ctx: 0.0)
        habit = make_habit(category="career", target_minutes=10_000)
        task = make_task(priority=TaskPriority.LOW, completed=True, estimated_minutes=10, actual_minutes=100)
        result = calculator.calculate_daily_kpi(
            [make_habit_record(habit, 250)], [task], [habit], RevolutPillars(0, 0, 0), day=MONDAY,
        )
        assert result.total_kpi == 0

    def test_streaks_feed_book_coefficient(self, calculator):
        plain = calculator.calculate_daily_kpi([], [], [], RevolutPillars(0, 0, 0), day=MONDAY)
        streaky = calculator.calculate_daily_kpi(
            [], [], [], RevolutPillars(0, 0, 0), streak_data={"a": 30}, day=MONDAY,
        )
        assert streaky.efficiency_coefficients.book_principles > plain.efficiency_coefficients.book_principles

    def test_score_day_derives_pillars(self, calculator, work_habit, make_record):
        record = make_record(MONDAY, habit_minutes={"work": 360})
        result = calculator.score_day(record, [work_habit])
        assert result.base_score == pytest.approx(100)
        assert result.revolut_score > 0

    @pytest.mark.parametrize("minutes", [0, 30, 360, 2000])
    @pytest.mark.parametrize("completed", [0, 3, 5])
    @pytest.mark.parametrize("day", [MONDAY, SATURDAY])
    def test_bounds_hold(self, calculator, work_habit, make_habit, make_habit_record, make_task,
                         minutes, completed, day):
        reading = make_habit(name="Reading", category="learning", target_minutes=30)
        records = [make_habit_record(work_habit, minutes), make_habit_record(reading, minutes / 10)]
        tasks = [
            make_task(priority=TaskPriority.HIGH, completed=i < completed, estimated_minutes=30, actual_minutes=40)
            for i in range(5)
        ]
        result = calculator.calculate_daily_kpi(
            records, tasks, [work_habit, reading], RevolutPillars(50, 50, 50), day=day,
        )
        assert 0 <= result.total_kpi <= 150
        for value in result.efficiency_coefficients.to_dict().values():
            assert -15 <= value <= 15


# ═══════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════


class TestValidation:
    def test_valid_input(self, calculator, make_task):
        result = calculator.validate_inputs([], [make_task()], RevolutPillars(50, 50, 50))
        assert result.is_valid
        assert result.errors == []

    def test_too_many_tasks(self, calculator, make_task):
        result = calculator.validate_inputs([], [make_task() for _ in range(6)], RevolutPillars(50, 50, 50))
        assert not result.is_valid
        assert any("Maximum 5 tasks" in m for m in result.messages)

    def test_pillar_out_of_range(self, calculator):
        result = calculator.validate_inputs([], [], {"deliverables": 150, "skills": 50, "culture": 50})
        assert result.messages == ["Deliverables must be between 0 and 100"]
        assert result.errors[0].field == "revolut_pillars.deliverables"

    def test_reports_every_violation(self, calculator, make_task):
        result = calculator.validate_inputs(
            [], [make_task() for _ in range(6)], RevolutPillars(150, 50, 50),
        )
        fields = {e.field for e in result.errors}
        assert fields == {"tasks", "revolut_pillars.deliverables"}

    def test_non_list_inputs(self, calculator):
        result = calculator.validate_inputs("records", None, RevolutPillars(50, 50, 50))
        fields = {e.field for e in result.errors}
        assert {"habit_records", "tasks"} <= fields

    def test_missing_pillars(self, calculator):
        result = calculator.validate_inputs([], [], None)
        assert [e.field for e in result.errors] == ["revolut_pillars"]

    def test_quality_and_minutes_checked(self, calculator, make_habit_record):
        record = make_habit_record("h", -5, quality_score=9)
        result = calculator.validate_inputs([record], [], RevolutPillars(50, 50, 50))
        fields = {e.field for e in result.errors}
        assert fields == {"habit_records[0].actual_minutes", "habit_records[0].quality_score"}

    def test_to_dict(self, calculator):
        data = calculator.validate_inputs([], [], {"deliverables": -1, "skills": 50, "culture": 50}).to_dict()
        assert data["is_valid"] is False
        assert data["errors"][0]["field"] == "revolut_pillars.deliverables"

    def test_record_coefficients_bounded(self, calculator, make_habit_record):
        record = make_habit_record("h", 30, efficiency_coefficients={"pareto": 40, "parkinson": -15})
        result = calculator.validate_inputs([record], [], RevolutPillars(50, 50, 50))
        assert [e.field for e in result.errors] == ["habit_records[0].efficiency_coefficients.pareto"]

    def test_non_numeric_values_collected(self, calculator, make_habit_record):
        record = make_habit_record("h", 30, quality_score="5", efficiency_coefficients={"pareto": "high"})
        result = calculator.validate_inputs([record], [], "pillars")
        fields = {e.field for e in result.errors}
        assert fields == {
            "habit_records[0].quality_score",
            "habit_records[0].efficiency_coefficients.pareto",
            "revolut_pillars",
        }


# ═══════════════════════════════════════════════════════════════════════════
# Randomized invariants
# ═══════════════════════════════════════════════════════════════════════════


class TestRandomizedBounds:
    def test_revolut_component_matches_weights(self, calculator):
        rng = random.Random(7)
        for _ in range(200):
            d, s, c = (rng.uniform(0, 100) for _ in range(3))
            result = calculator.calculate_daily_kpi([], [], [], RevolutPillars(d, s, c), day=MONDAY)
            assert result.revolut_score == pytest.approx(d * 0.4 + s * 0.3 + c * 0.3)

    def test_total_within_bounds_for_any_coefficients(self, policy, work_habit, make_habit_record, make_task):
        rng = random.Random(11)
        for _ in range(200):
            book = rng.uniform(-15, 15)
            calculator = KPICalculator(policy=policy, book_policy=lambda ctx, book=book: book)
            tasks = [
                make_task(
                    priority=rng.choice(list(TaskPriority)),
                    completed=rng.random() < 0.5,
                    estimated_minutes=rng.randint(5, 120),
                    actual_minutes=rng.randint(1, 240),
                )
                for _ in range(rng.randint(0, 5))
            ]
            pillars = RevolutPillars(*(rng.uniform(0, 100) for _ in range(3)))
            result = calculator.calculate_daily_kpi(
                [make_habit_record(work_habit, rng.uniform(0, 900))], tasks, [work_habit], pillars,
                day=rng.choice([MONDAY, SATURDAY]),
            )
            assert 0 <= result.total_kpi <= 150
            for value in result.efficiency_coefficients.to_dict().values():
                assert -15 <= value <= 15
