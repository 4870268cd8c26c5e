"""
Command-line interface for the weekly budget planner.

Every command prints JSON on stdout. Budget errors are printed to stderr
with their kind, followed by a readable list of issues for rejected input,
and the exit code is 1.

State lives in the backend chosen by APP_STORAGE_BACKEND, a SQLite file by
default, so each invocation sees what the previous ones wrote.
"""

import argparse
import asyncio
import json
import sys
from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from budget_planner.errors import BudgetError, InvalidArgumentError
from budget_planner.orchestrator import BudgetPlanner, create_app_components


def to_jsonable(value: Any) -> Any:
    """Convert results (models, lists, decimals) into JSON-ready values."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


async def cmd_week(planner: BudgetPlanner, args) -> Any:
    if args.date:
        return await planner.get_weekly_budget(args.date)
    return await planner.get_current_week_budget()


async def cmd_next_week(planner: BudgetPlanner, args) -> Any:
    return await planner.get_next_week_budget()


async def cmd_set(planner: BudgetPlanner, args) -> Any:
    return await planner.set_weekly_budget(
        args.date or date.today(),
        args.category,
        args.amount,
        action_plan=args.action_plan,
        notes=args.notes,
    )


async def cmd_limit(planner: BudgetPlanner, args) -> Any:
    if args.set is not None:
        config = await planner.update_weekly_budget_limit(args.set)
        return {"weekly_budget_limit": config.weekly_budget_limit}
    return {"weekly_budget_limit": await planner.get_weekly_budget_limit()}


async def cmd_add_expense(planner: BudgetPlanner, args) -> Any:
    expense_id = await planner.add_expense(
        args.date or date.today(),
        args.category,
        args.amount,
        description=args.description,
        payment_method=args.payment_method,
        location=args.location,
    )
    return {"id": expense_id}


async def cmd_update_expense(planner: BudgetPlanner, args) -> Any:
    updated = await planner.update_expense(
        args.id,
        args.amount,
        description=args.description,
        payment_method=args.payment_method,
        location=args.location,
    )
    return {"updated": updated}


async def cmd_delete_expense(planner: BudgetPlanner, args) -> Any:
    return {"deleted": await planner.delete_expense(args.id)}


async def cmd_expenses(planner: BudgetPlanner, args) -> Any:
    if args.start and args.end:
        return await planner.get_expenses_by_date_range(args.start, args.end)
    return await planner.get_weekly_expenses(args.date or date.today())


async def cmd_health(planner: BudgetPlanner, args) -> Any:
    score = await planner.get_budget_health_score(args.date or date.today())
    return {"health_score": round(score, 1)}


async def cmd_adjust(planner: BudgetPlanner, args) -> Any:
    adjusted = await planner.auto_adjust_next_week(args.date or date.today())
    return {"adjustments_made": adjusted}


async def cmd_alerts(planner: BudgetPlanner, args) -> Any:
    return await planner.get_spending_alerts(args.date or date.today())


async def cmd_reallocate(planner: BudgetPlanner, args) -> Any:
    return await planner.smart_reallocate(args.date or date.today())


async def cmd_predict(planner: BudgetPlanner, args) -> Any:
    return await planner.predict_next_week_budget(weeks_history=args.weeks)


async def cmd_trends(planner: BudgetPlanner, args) -> Any:
    return await planner.get_spending_trends(weeks=args.weeks)


async def cmd_forecast(planner: BudgetPlanner, args) -> Any:
    today = date.today()
    return await planner.get_monthly_forecast(
        today.month if args.month is None else args.month,
        today.year if args.year is None else args.year,
    )


async def cmd_savings(planner: BudgetPlanner, args) -> Any:
    return await planner.get_savings_recommendations(weeks=args.weeks)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='budget-planner',
        description='Plan weekly budgets per category and track spending against them.',
    )
    subparsers = parser.add_subparsers(dest='command', title='commands', metavar='<command>')

    week_parser = subparsers.add_parser('week', help="Show a week's budget (seeds it if new)")
    week_parser.add_argument('--date', help='Any day in the week (default: today)')
    week_parser.set_defaults(handler=cmd_week)

    next_parser = subparsers.add_parser('next-week', help="Show next week's allocations")
    next_parser.set_defaults(handler=cmd_next_week)

    set_parser = subparsers.add_parser('set', help="Set a category's planned amount")
    set_parser.add_argument('category', help='Category id')
    set_parser.add_argument('amount', help='Planned amount')
    set_parser.add_argument('--date', help='Any day in the week (default: today)')
    set_parser.add_argument(
        '--action-plan',
        choices=['spend', 'save'],
        default='spend',
        help='What to do with the money (default: spend)'
    )
    set_parser.add_argument('--notes', default='', help='Free-text note')
    set_parser.set_defaults(handler=cmd_set)

    limit_parser = subparsers.add_parser('limit', help='Show or change the weekly budget limit')
    limit_parser.add_argument('--set', help='New weekly limit')
    limit_parser.set_defaults(handler=cmd_limit)

    add_parser = subparsers.add_parser('add-expense', help='Record an expense')
    add_parser.add_argument('category', help='Category id')
    add_parser.add_argument('amount', help='Amount spent')
    add_parser.add_argument('--date', help='Day of the expense (default: today)')
    add_parser.add_argument('--description', default='')
    add_parser.add_argument('--payment-method', default='')
    add_parser.add_argument('--location', default='')
    add_parser.set_defaults(handler=cmd_add_expense)

    update_parser = subparsers.add_parser('update-expense', help='Edit an expense')
    update_parser.add_argument('id', help='Expense id')
    update_parser.add_argument('amount', help='New amount')
    update_parser.add_argument('--description', default='')
    update_parser.add_argument('--payment-method', default='')
    update_parser.add_argument('--location', default='')
    update_parser.set_defaults(handler=cmd_update_expense)

    delete_parser = subparsers.add_parser('delete-expense', help='Remove an expense')
    delete_parser.add_argument('id', help='Expense id')
    delete_parser.set_defaults(handler=cmd_delete_expense)

    expenses_parser = subparsers.add_parser('expenses', help='List expenses')
    expenses_parser.add_argument('--date', help='Any day in the week (default: today)')
    expenses_parser.add_argument('--start', help='First day of a range')
    expenses_parser.add_argument('--end', help='Last day of a range')
    expenses_parser.set_defaults(handler=cmd_expenses)

    for name, handler, help_text in (
        ('health', cmd_health, 'Budget health score (0-100)'),
        ('adjust', cmd_adjust, "Adjust next week's budget from this week's spending"),
        ('alerts', cmd_alerts, 'Spending alerts'),
        ('reallocate', cmd_reallocate, 'Suggest allocation changes'),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('--date', help='Any day in the week (default: today)')
        sub.set_defaults(handler=handler)

    for name, handler, help_text in (
        ('predict', cmd_predict, "Predict next week's allocations from history"),
        ('trends', cmd_trends, 'Weekly spending totals'),
        ('savings', cmd_savings, 'Savings recommendations'),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('--weeks', type=int, default=4, help='History window in weeks (default: 4)')
        sub.set_defaults(handler=handler)

    forecast_parser = subparsers.add_parser('forecast', help='Spending of a calendar month')
    forecast_parser.add_argument('--month', type=int)
    forecast_parser.add_argument('--year', type=int)
    forecast_parser.set_defaults(handler=cmd_forecast)

    return parser


async def run(planner: BudgetPlanner, args) -> Any:
    await planner.setup()
    return await args.handler(planner, args)


def main(argv: Optional[list[str]] = None, planner: Optional[BudgetPlanner] = None) -> int:
    """Main entry point for the budget-planner CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, 'handler', None):
        parser.print_help()
        return 0

    try:
        planner = planner or create_app_components()
        result = asyncio.run(run(planner, args))
    except InvalidArgumentError as e:
        print(f"Error ({e.kind.value}): {e}", file=sys.stderr)
        if e.issues:
            print(planner.validator.get_user_friendly_summary(e.issues), file=sys.stderr)
        return 1
    except BudgetError as e:
        print(f"Error ({e.kind.value}): {e}", file=sys.stderr)
        return 1

    print(json.dumps(to_jsonable(result), indent=2, ensure_ascii=False))
    return 0


if __name__ == '__main__':
    sys.exit(main())
