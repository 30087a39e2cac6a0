from decimal import Decimal

import pytest

from spaardoel.account import DEFAULT_MILESTONES, Account
from spaardoel.exceptions import GoalClosedError, GoalNotFoundError
from spaardoel.models import ContributionSource, GoalStatus, User, UserRole
from spaardoel.money import MAX_AMOUNT, format_currency, to_cents, to_decimal
from spaardoel.plant import PlantStage


def make_account() -> Account:
    return Account(User(user_id="ava", name="Ava", role=UserRole.CHILD, parent_id="mum"))


def test_new_goal_starts_as_seed_with_default_milestones() -> None:
    account = make_account()

    goal = account.add_goal("Bicycle", "120", plant_type="rose")

    assert goal.saved_amount == Decimal("0.00")
    assert goal.remaining == Decimal("120.00")
    assert goal.plant().stage is PlantStage.SEED
    assert goal.plant_type == "rose"
    assert [m.percentage for m in account.milestones(goal.goal_id)] == list(DEFAULT_MILESTONES)


def test_goal_names_must_be_unique_and_present() -> None:
    account = make_account()
    account.add_goal("Bicycle", 100)

    with pytest.raises(ValueError):
        account.add_goal("Bicycle", 50)
    with pytest.raises(ValueError):
        account.add_goal("   ", 50)
    with pytest.raises(ValueError):
        account.add_goal("Kite", 0)


def test_contributions_grow_the_plant_and_reach_milestones_once() -> None:
    account = make_account()
    goal = account.add_goal("Bicycle", 100)

    _, reached = account.contribute(
        goal.goal_id, "30", source=ContributionSource.CHILD, contributor_name="Ava"
    )
    assert [m.percentage for m in reached] == [25]
    assert goal.plant().stage is PlantStage.SMALL

    _, reached = account.contribute(
        goal.goal_id, 5, source=ContributionSource.CHILD, contributor_name="Ava"
    )
    assert reached == []

    _, reached = account.contribute(
        goal.goal_id, 70, source=ContributionSource.PARENT, contributor_name="Mum"
    )
    assert [m.percentage for m in reached] == [50, 75, 100]
    assert goal.status is GoalStatus.COMPLETED
    assert goal.completed_at is not None
    assert goal.remaining == Decimal("0.00")
    assert goal.progress_percentage() == pytest.approx(105)


def test_custom_milestone_reward_updates_existing_mark() -> None:
    account = make_account()
    goal = account.add_goal("Tent", 80)

    account.add_milestone(goal.goal_id, 50, "Camping trip")
    account.add_milestone(goal.goal_id, 10, "Sticker")

    marks = account.milestones(goal.goal_id)
    assert [m.percentage for m in marks] == [10, 25, 50, 75, 100]
    assert marks[2].reward == "Camping trip"

    with pytest.raises(ValueError):
        account.add_milestone(goal.goal_id, 120)


def test_archived_goal_rejects_contributions() -> None:
    account = make_account()
    goal = account.add_goal("Drone", 200)
    account.archive_goal(goal.goal_id)

    with pytest.raises(GoalClosedError):
        account.contribute(goal.goal_id, 5, source=ContributionSource.CHILD, contributor_name="Ava")


def test_remove_goal_drops_its_ledger() -> None:
    account = make_account()
    bike = account.add_goal("Bicycle", 100)
    kite = account.add_goal("Kite", 20)
    account.contribute(bike.goal_id, 10, source=ContributionSource.CHILD, contributor_name="Ava")
    account.contribute(kite.goal_id, 5, source=ContributionSource.CHILD, contributor_name="Ava")

    account.remove_goal(bike.goal_id)

    assert not account.has_goal(bike.goal_id)
    assert [c.goal_id for c in account.contributions] == [kite.goal_id]
    with pytest.raises(GoalNotFoundError):
        account.milestones(bike.goal_id)
    assert account.total_saved == Decimal("5.00")


def test_statement_and_csv_export() -> None:
    account = make_account()
    goal = account.add_goal("Bicycle", 100, plant_type="tulip")
    account.contribute(
        goal.goal_id, "12,50", source=ContributionSource.EXTERNAL, contributor_name="Grandma", message="Enjoy!"
    )

    statement = account.generate_statement()
    assert "Saver: Ava" in statement
    assert "Bicycle: saved €12.50 of €100.00" in statement
    assert "sprout tulip" in statement

    csv_text = account.export_contributions_csv(goal.goal_id)
    assert csv_text.splitlines()[0] == "timestamp,goal,source,contributor,amount,message"
    assert "Bicycle,external,Grandma,12.50,Enjoy!" in csv_text


def test_money_helpers() -> None:
    assert to_decimal("€ 3,45") == Decimal("3.45")
    assert to_decimal("12,5") == Decimal("12.50")
    assert to_cents("19.99") == 1999
    assert format_currency(Decimal("1234.5")) == "€1,234.50"


@pytest.mark.parametrize(
    ("typed", "cents"),
    [
        ("1,000", 100000),
        ("€1,000.00", 100000),
        ("1.000", 100000),
        ("1.234,56", 123456),
        ("1,234.5", 123450),
        ("2,50", 250),
    ],
)
def test_grouped_amounts_read_back_as_formatted(typed: str, cents: int) -> None:
    assert to_cents(typed) == cents


def test_formatted_amount_parses_to_the_same_value() -> None:
    assert to_decimal(format_currency(Decimal("1000"))) == Decimal("1000.00")


@pytest.mark.parametrize("typed", ["1e20", "1000000.01", "Infinity", "NaN"])
def test_unbounded_amounts_are_refused(typed: str) -> None:
    with pytest.raises(ValueError):
        to_cents(typed)


def test_amount_limit_itself_is_accepted() -> None:
    assert to_cents(MAX_AMOUNT) == 100000000
