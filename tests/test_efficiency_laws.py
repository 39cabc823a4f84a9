"""Tests for the efficiency law rules and the coefficient record."""

import pytest

from kpi_engine.engine.efficiency_laws import (
    RULES,
    EfficiencyCoefficients,
    EfficiencyLaw,
    clamp_coefficient,
    compound_effect,
    deep_work_law,
    diminishing_returns_law,
    evaluate_efficiency_laws,
    focus_blocks,
    habit_stacking,
    parkinson_law,
    pareto_law,
    pomodoro_technique,
    time_blocking,
    yerkes_dodson_law,
)
from kpi_engine.models.records import EisenhowerQuadrant, TaskPriority


# ═══════════════════════════════════════════════════════════════════════════
# Coefficient record
# ═══════════════════════════════════════════════════════════════════════════


class TestEfficiencyCoefficients:
    def test_one_field_per_law(self):
        coefficients = EfficiencyCoefficients()
        assert set(coefficients.to_dict()) == {law.value for law in EfficiencyLaw}

    def test_total_sums_all_laws(self):
        coefficients = EfficiencyCoefficients(pareto=10, parkinson=-10, deep_work=15)
        assert coefficients.total() == 15

    def test_get_by_law(self):
        coefficients = EfficiencyCoefficients(focus_blocks=12)
        assert coefficients.get(EfficiencyLaw.FOCUS_BLOCKS) == 12

    def test_from_dict_rejects_unknown_law(self):
        with pytest.raises(ValueError):
            EfficiencyCoefficients.from_dict({"pareto": 10, "murphy": 5})

    def test_from_dict_round_trip(self):
        coefficients = EfficiencyCoefficients(pareto=10, book_principles=4.5)
        assert EfficiencyCoefficients.from_dict(coefficients.to_dict()) == coefficients

    def test_clamp(self):
        assert clamp_coefficient(40) == 15
        assert clamp_coefficient(-40) == -15
        assert clamp_coefficient(7) == 7

    def test_rules_cover_every_law_but_books_in_order(self):
        laws = [law for law, _ in RULES]
        assert laws == [law for law in EfficiencyLaw if law != EfficiencyLaw.BOOK_PRINCIPLES]


# ═══════════════════════════════════════════════════════════════════════════
# Individual rules
# ═══════════════════════════════════════════════════════════════════════════


class TestTaskRules:
    def test_pareto_by_high_priority_share(self, make_ctx, make_task):
        tasks = [make_task(priority=TaskPriority.HIGH) for _ in range(4)] + [make_task()]
        assert pareto_law(make_ctx(tasks=tasks)) == 10

    def test_pareto_not_met(self, make_ctx, make_task):
        tasks = [make_task(priority=TaskPriority.HIGH), make_task(), make_task()]
        assert pareto_law(make_ctx(tasks=tasks)) == 0

    def test_pareto_by_q2_time(self, make_ctx, make_habit, make_habit_record):
        q2 = make_habit(eisenhower_quadrant=EisenhowerQuadrant.Q2, target_minutes=60)
        other = make_habit(target_minutes=60)
        ctx = make_ctx(
            habit_records=[make_habit_record(q2, 60), make_habit_record(other, 40)],
            habits=[q2, other],
        )
        assert pareto_law(ctx) == 10

    def test_parkinson_averages_fast_and_slow(self, make_ctx, make_task):
        tasks = [
            make_task(completed=True, estimated_minutes=60, actual_minutes=50),   # +15
            make_task(completed=True, estimated_minutes=60, actual_minutes=80),   # -10
        ]
        assert parkinson_law(make_ctx(tasks=tasks)) == pytest.approx(2.5)

    def test_parkinson_ignores_incomplete(self, make_ctx, make_task):
        tasks = [make_task(completed=False, estimated_minutes=60, actual_minutes=10)]
        assert parkinson_law(make_ctx(tasks=tasks)) == 0

    def test_yerkes_dodson(self, make_ctx, make_task):
        tasks = [make_task(completed=True, estimated_minutes=60, actual_minutes=65)]
        assert yerkes_dodson_law(make_ctx(tasks=tasks)) == 10

    def test_yerkes_dodson_overrun(self, make_ctx, make_task):
        tasks = [make_task(completed=True, estimated_minutes=60, actual_minutes=90)]
        assert yerkes_dodson_law(make_ctx(tasks=tasks)) == 0

    def test_time_blocking(self, make_ctx, make_task):
        tasks = [make_task(completed=True, estimated_minutes=60, actual_minutes=70)]
        assert time_blocking(make_ctx(tasks=tasks)) == 10

    def test_time_blocking_off_by_too_much(self, make_ctx, make_task):
        tasks = [make_task(completed=True, estimated_minutes=60, actual_minutes=30)]
        assert time_blocking(make_ctx(tasks=tasks)) == 0

    def test_focus_blocks(self, make_ctx, make_task):
        tasks = [make_task(completed=True, actual_minutes=30) for _ in range(2)]
        assert focus_blocks(make_ctx(tasks=tasks)) == 12

    def test_focus_blocks_needs_two(self, make_ctx, make_task):
        tasks = [make_task(completed=True, actual_minutes=30), make_task(completed=True, actual_minutes=10)]
        assert focus_blocks(make_ctx(tasks=tasks)) == 0


class TestHabitRules:
    def test_diminishing_returns_on_long_work(self, make_ctx, make_habit, make_habit_record):
        work = make_habit(category="career", target_minutes=240)
        ctx = make_ctx(habit_records=[make_habit_record(work, 250)], habits=[work])
        assert diminishing_returns_law(ctx) == -15

    def test_diminishing_returns_ignores_non_work(self, make_ctx, make_habit, make_habit_record):
        sleep = make_habit(category="health", target_minutes=480)
        ctx = make_ctx(habit_records=[make_habit_record(sleep, 480)], habits=[sleep])
        assert diminishing_returns_law(ctx) == 0

    def test_deep_work(self, make_ctx, make_habit, make_habit_record):
        work = make_habit(category="work", target_minutes=120)
        ctx = make_ctx(habit_records=[make_habit_record(work, 90)], habits=[work])
        assert deep_work_law(ctx) == 15

    def test_pomodoro_window(self, make_ctx, make_habit, make_habit_record):
        habit = make_habit()
        assert pomodoro_technique(make_ctx(habit_records=[make_habit_record(habit, 30)], habits=[habit])) == 10
        assert pomodoro_technique(make_ctx(habit_records=[make_habit_record(habit, 20)], habits=[habit])) == 0

    def test_habit_stacking(self, make_ctx, make_habit, make_habit_record):
        habits = [make_habit() for _ in range(5)]
        records = [make_habit_record(h, 10) for h in habits]
        assert habit_stacking(make_ctx(habit_records=records, habits=habits)) == 10
        assert habit_stacking(make_ctx(habit_records=records[:4], habits=habits)) == 0

    def test_compound_effect(self, make_ctx, make_habit, make_habit_record):
        habits = [make_habit() for _ in range(5)]
        records = [make_habit_record(h, 10) for h in habits[:4]] + [make_habit_record(habits[4], 0)]
        assert compound_effect(make_ctx(habit_records=records, habits=habits)) == 5

    def test_compound_effect_empty_day(self, make_ctx):
        assert compound_effect(make_ctx()) == 0


# ═══════════════════════════════════════════════════════════════════════════
# Evaluation
# ═══════════════════════════════════════════════════════════════════════════


class TestEvaluate:
    def test_book_policy_is_clamped(self, make_ctx):
        coefficients = evaluate_efficiency_laws(make_ctx(), book_policy=lambda ctx: 40)
        assert coefficients.book_principles == 15

    def test_book_policy_never_negative(self, make_ctx):
        coefficients = evaluate_efficiency_laws(make_ctx(), book_policy=lambda ctx: -3)
        assert coefficients.book_principles == 0

    def test_every_coefficient_bounded(self, make_ctx, make_habit, make_habit_record, make_task):
        work = make_habit(name="Work", category="career", target_minutes=360)
        habits = [work] + [make_habit() for _ in range(5)]
        records = [make_habit_record(work, 600)] + [make_habit_record(h, 30) for h in habits[1:]]
        tasks = [
            make_task(priority=TaskPriority.HIGH, completed=True, estimated_minutes=60, actual_minutes=30)
            for _ in range(5)
        ]
        coefficients = evaluate_efficiency_laws(make_ctx(habit_records=records, tasks=tasks, habits=habits))
        for value in coefficients.to_dict().values():
            assert -15 <= value <= 15

    def test_empty_day_only_scores_books(self, make_ctx):
        coefficients = evaluate_efficiency_laws(make_ctx())
        others = {k: v for k, v in coefficients.to_dict().items() if k != "book_principles"}
        assert all(v == 0 for v in others.values())
        # A light task list still earns the 4-Hour Workweek bonus: 8 * 0.3
        assert coefficients.book_principles == pytest.approx(2.4)
