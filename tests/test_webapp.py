import importlib
from datetime import datetime, timedelta, timezone

import pytest

pytest.importorskip("sqlmodel")
from fastapi.testclient import TestClient
from sqlmodel import Session, select


@pytest.fixture()
def web(tmp_path, monkeypatch):
    monkeypatch.setenv("SPAARDOEL_SQLITE", str(tmp_path / "webapp.db"))
    import spaardoel.webapp.config as config
    import spaardoel.webapp.persistence as persistence

    importlib.reload(config)
    importlib.reload(persistence)
    import spaardoel.webapp.application as application

    importlib.reload(application)
    yield application


def register(client: TestClient, user_id: str = "mum", name: str = "Mum", pin: str = "1234", email: str = ""):
    return client.post(
        "/register",
        data={"user_id": user_id, "name": name, "pin": pin, "email": email},
        follow_redirects=False,
    )


def login(client: TestClient, user_id: str, pin: str):
    return client.post("/login", data={"user_id": user_id, "pin": pin}, follow_redirects=False)


def add_child(client: TestClient, user_id: str, name: str, pin: str = "0000", birth_date: str = ""):
    return client.post(
        "/children/create",
        data={"user_id": user_id, "name": name, "pin": pin, "birth_date": birth_date},
        follow_redirects=False,
    )


def create_goal(client: TestClient, name: str, target: str, *, owner_id: str = "", plant_type: str = "sunflower"):
    return client.post(
        "/goals/create",
        data={"name": name, "target": target, "plant_type": plant_type, "owner_id": owner_id},
        follow_redirects=False,
    )


def contribute(client: TestClient, goal_id: int, amount: str, message: str = ""):
    return client.post(
        "/goals/contribute",
        data={"goal_id": goal_id, "amount": amount, "message": message},
        follow_redirects=False,
    )


def family(web) -> TestClient:
    parent = TestClient(web.app)
    assert register(parent).status_code == 302
    assert add_child(parent, "ava", "Ava", pin="4321").status_code == 302
    return parent


def goal_by_name(web, name: str):
    with Session(web.engine) as session:
        return session.exec(select(web.SavingsGoal).where(web.SavingsGoal.name == name)).one()


def notifications(web, user_id: str, notification_type: str):
    with Session(web.engine) as session:
        return session.exec(
            select(web.Notification).where(
                web.Notification.user_id == user_id, web.Notification.type == notification_type
            )
        ).all()


def test_parent_plants_goal_for_child_and_it_grows(web) -> None:
    parent = family(web)

    assert create_goal(parent, "Bicycle", "100", owner_id="ava", plant_type="rose").status_code == 302
    goal = goal_by_name(web, "Bicycle")
    assert goal.owner_id == "ava"
    assert goal.plant_type == "rose"

    page = parent.get("/dashboard")
    assert page.status_code == 200
    assert "Bicycle" in page.text
    assert "data-stage='seed'" in page.text

    assert contribute(parent, goal.id, "30").status_code == 302
    goal = goal_by_name(web, "Bicycle")
    assert goal.saved_cents == 3000
    assert "data-stage='small'" in parent.get("/dashboard").text

    assert len(notifications(web, "ava", "goal_milestone")) == 1
    assert len(notifications(web, "mum", "goal_milestone")) == 1
    with Session(web.engine) as session:
        contribution = session.exec(select(web.Contribution)).one()
    assert contribution.source == "parent"
    assert contribution.contributor_name == "Mum"


def test_child_completes_goal_and_everyone_is_told_once(web) -> None:
    family(web)
    child = TestClient(web.app)
    assert login(child, "AVA", "4321").headers["location"] == "/dashboard"

    assert create_goal(child, "Kite", "20").status_code == 302
    goal = goal_by_name(web, "Kite")
    contribute(child, goal.id, "20")
    contribute(child, goal.id, "2,50")

    goal = goal_by_name(web, "Kite")
    assert goal.status == "completed"
    assert goal.completed_at is not None
    assert goal.saved_cents == 2250
    assert web.goal_visual(goal).stage.value == "fruiting"
    assert len(notifications(web, "ava", "goal_completed")) == 1
    assert len(notifications(web, "mum", "goal_completed")) == 1
    with Session(web.engine) as session:
        reached = session.exec(select(web.Milestone).where(web.Milestone.reached_at != None)).all()  # noqa: E711
    assert sorted(m.percentage for m in reached) == [25, 50, 75, 100]


def test_login_rejects_wrong_pin_and_sessions_expire(web, monkeypatch) -> None:
    family(web)
    client = TestClient(web.app)

    assert login(client, "ava", "9999").headers["location"] == "/"
    assert client.get("/dashboard", follow_redirects=False).headers["location"] == "/"

    login(client, "ava", "4321")
    assert client.get("/dashboard").status_code == 200

    later = datetime.now(timezone.utc) + timedelta(days=8)
    monkeypatch.setattr(web, "_time_provider", lambda: later)
    assert client.get("/dashboard", follow_redirects=False).headers["location"] == "/"


def test_logout_ends_login_session(web) -> None:
    parent = family(web)

    parent.get("/logout", follow_redirects=False)

    assert parent.get("/dashboard", follow_redirects=False).status_code == 302
    with Session(web.engine) as session:
        rows = session.exec(select(web.LoginSession).where(web.LoginSession.user_id == "mum")).all()
    assert all(row.expires_at <= datetime.now(timezone.utc) for row in rows)


def test_registration_validates_user_names(web) -> None:
    client = TestClient(web.app)
    register(client)
    other = TestClient(web.app)

    assert register(other, user_id="mum").headers["location"] == "/"
    assert register(other, user_id="x").headers["location"] == "/"
    assert register(other, user_id="has space").headers["location"] == "/"
    with Session(web.engine) as session:
        assert len(session.exec(select(web.UserAccount)).all()) == 1


def test_share_link_lets_outsiders_contribute_until_used_up(web) -> None:
    parent = family(web)
    create_goal(parent, "Bicycle", "100", owner_id="ava")
    goal = goal_by_name(web, "Bicycle")
    parent.post("/goals/share", data={"goal_id": goal.id, "expires_days": "", "max_uses": "1"})
    with Session(web.engine) as session:
        link = session.exec(select(web.ShareLink)).one()

    visitor = TestClient(web.app)
    page = visitor.get(f"/share/{link.token}")
    assert page.status_code == 200
    assert "Help Ava grow" in page.text

    response = visitor.post(
        f"/share/{link.token}",
        data={"amount": "7,50", "contributor_name": "Grandma", "message": "For your bike"},
        follow_redirects=False,
    )
    assert response.status_code == 302

    with Session(web.engine) as session:
        contribution = session.exec(select(web.Contribution)).one()
        link = session.get(web.ShareLink, link.id)
    assert contribution.source == "external"
    assert contribution.amount_cents == 750
    assert contribution.share_link_id == link.id
    assert link.use_count == 1
    assert notifications(web, "ava", "link_contribution")[0].subject == "Grandma helped your Bicycle!"

    assert visitor.get(f"/share/{link.token}").status_code == 404
    again = visitor.post(f"/share/{link.token}", data={"amount": "5", "contributor_name": "Grandma"})
    assert again.status_code == 404
    assert goal_by_name(web, "Bicycle").saved_cents == 750


def test_expired_and_revoked_share_links(web, monkeypatch) -> None:
    parent = family(web)
    create_goal(parent, "Bicycle", "100", owner_id="ava")
    goal = goal_by_name(web, "Bicycle")
    parent.post("/goals/share", data={"goal_id": goal.id, "expires_days": "1", "max_uses": ""})
    parent.post("/goals/share", data={"goal_id": goal.id, "expires_days": "", "max_uses": ""})
    with Session(web.engine) as session:
        expiring, revocable = session.exec(select(web.ShareLink).order_by(web.ShareLink.id)).all()

    parent.post("/links/revoke", data={"link_id": revocable.id})
    visitor = TestClient(web.app)
    assert visitor.get(f"/share/{revocable.token}").status_code == 404
    assert visitor.get(f"/share/{expiring.token}").status_code == 200

    later = datetime.now(timezone.utc) + timedelta(days=2)
    monkeypatch.setattr(web, "_time_provider", lambda: later)
    assert visitor.get(f"/share/{expiring.token}").status_code == 404
    assert visitor.get("/share/does-not-exist").status_code == 404


def test_share_link_limits_are_validated(web) -> None:
    parent = family(web)
    create_goal(parent, "Bicycle", "100", owner_id="ava")
    goal = goal_by_name(web, "Bicycle")

    parent.post("/goals/share", data={"goal_id": goal.id, "expires_days": "365", "max_uses": ""})
    parent.post("/goals/share", data={"goal_id": goal.id, "expires_days": "", "max_uses": "0"})

    with Session(web.engine) as session:
        assert session.exec(select(web.ShareLink)).all() == []


def test_children_cannot_manage_a_siblings_goal(web) -> None:
    parent = family(web)
    add_child(parent, "ben", "Ben", pin="1111")
    create_goal(parent, "Bicycle", "100", owner_id="ava")
    goal = goal_by_name(web, "Bicycle")

    sibling = TestClient(web.app)
    login(sibling, "ben", "1111")
    contribute(sibling, goal.id, "10")
    sibling.post("/goals/delete", data={"goal_id": goal.id})
    create_goal(sibling, "Sneaky", "10", owner_id="ava")

    assert goal_by_name(web, "Bicycle").saved_cents == 0
    with Session(web.engine) as session:
        assert [g.name for g in session.exec(select(web.SavingsGoal)).all()] == ["Bicycle"]


def test_milestone_rewards_are_parent_only_and_fire_once(web) -> None:
    parent = family(web)
    create_goal(parent, "Tent", "80", owner_id="ava")
    goal = goal_by_name(web, "Tent")
    parent.post("/goals/milestone", data={"goal_id": goal.id, "percentage": "40", "reward": "Cinema"})

    child = TestClient(web.app)
    login(child, "ava", "4321")
    child.post("/goals/milestone", data={"goal_id": goal.id, "percentage": "60", "reward": "Ice cream"})
    parent.post("/goals/milestone", data={"goal_id": goal.id, "percentage": "150", "reward": "Too much"})

    with Session(web.engine) as session:
        marks = session.exec(
            select(web.Milestone).where(web.Milestone.goal_id == goal.id).order_by(web.Milestone.percentage)
        ).all()
    assert [m.percentage for m in marks] == [25, 40, 50, 75, 100]

    contribute(child, goal.id, "36")
    contribute(child, goal.id, "1")
    rewards = [n for n in notifications(web, "ava", "goal_milestone") if "Cinema" in n.body]
    assert len(rewards) == 1


def test_archive_closes_goal_and_its_links(web) -> None:
    parent = family(web)
    create_goal(parent, "Drone", "200", owner_id="ava")
    goal = goal_by_name(web, "Drone")
    parent.post("/goals/share", data={"goal_id": goal.id, "expires_days": "", "max_uses": ""})

    parent.post("/goals/archive", data={"goal_id": goal.id})
    contribute(parent, goal.id, "10")

    goal = goal_by_name(web, "Drone")
    assert goal.status == "archived"
    assert goal.saved_cents == 0
    with Session(web.engine) as session:
        link = session.exec(select(web.ShareLink)).one()
    assert link.active is False
    assert TestClient(web.app).get(f"/share/{link.token}").status_code == 404


def test_deleting_a_goal_leaves_no_orphans(web) -> None:
    parent = family(web)
    create_goal(parent, "Bicycle", "100", owner_id="ava")
    goal = goal_by_name(web, "Bicycle")
    contribute(parent, goal.id, "30")
    parent.post("/goals/share", data={"goal_id": goal.id, "expires_days": "", "max_uses": ""})

    parent.post("/goals/delete", data={"goal_id": goal.id})

    with Session(web.engine) as session:
        for model in (web.SavingsGoal, web.Contribution, web.ShareLink, web.Milestone):
            assert session.exec(select(model)).all() == []


def test_account_deletion_cascades_to_children(web) -> None:
    parent = family(web)
    create_goal(parent, "Bicycle", "100", owner_id="ava")
    contribute(parent, goal_by_name(web, "Bicycle").id, "30")

    parent.post("/account/delete", data={"confirm": "wrong"})
    with Session(web.engine) as session:
        assert len(session.exec(select(web.UserAccount)).all()) == 2

    response = parent.post("/account/delete", data={"confirm": "mum"}, follow_redirects=False)
    assert response.headers["location"] == "/"

    with Session(web.engine) as session:
        for model in (
            web.UserAccount,
            web.SavingsGoal,
            web.Contribution,
            web.Milestone,
            web.Notification,
            web.LoginSession,
        ):
            assert session.exec(select(model)).all() == []
        tombstones = {row.user_id for row in session.exec(select(web.DeletedUser)).all()}
    assert tombstones == {"mum", "ava"}


def test_notifications_page_and_mark_read(web) -> None:
    parent = family(web)
    create_goal(parent, "Bicycle", "100", owner_id="ava")
    contribute(parent, goal_by_name(web, "Bicycle").id, "25")

    page = parent.get("/notifications")
    assert "25% milestone reached!" in page.text
    parent.post("/notifications/read")

    with Session(web.engine) as session:
        unread = session.exec(
            select(web.Notification).where(web.Notification.user_id == "mum", web.Notification.read_at == None)  # noqa: E711
        ).all()
    assert unread == []


def test_plant_svg_endpoint(web) -> None:
    client = TestClient(web.app)

    response = client.get("/plant.svg", params={"percentage": 100, "plant_type": "rose", "size": "large"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("image/svg+xml")
    assert "data-stage='fruiting'" in response.text
    assert "#ff6b9d" in response.text
    assert "width='384'" in response.text


def test_json_api(web) -> None:
    client = TestClient(web.app)

    health = client.get("/api/health")
    assert health.status_code == 200
    assert health.json()["database"] == "ok"
    assert client.get("/api/goals").json() == {"authenticated": False, "goals": []}

    plants = client.get("/api/plants").json()
    assert [stage["stage"] for stage in plants["stages"]][-1] == "fruiting"
    assert plants["plant_types"]["tulip"] == "#c44569"
    assert client.get("/api/plants", params={"percentage": 30}).json()["stage"] == "small"

    parent = family(web)
    create_goal(parent, "Bicycle", "100", owner_id="ava", plant_type="daisy")
    contribute(parent, goal_by_name(web, "Bicycle").id, "60")
    payload = parent.get("/api/goals").json()
    (goal,) = payload["goals"]
    assert goal["name"] == "Bicycle"
    assert goal["saved"] == 60.0
    assert goal["plant"]["stage"] == "medium"
    assert goal["plant"]["color"] == "#f8b500"
    assert [m["reached_at"] is not None for m in goal["milestones"]] == [True, True, False, False]
    assert goal["contributions"][0]["source"] == "parent"


def test_contributions_csv_export(web) -> None:
    parent = family(web)
    create_goal(parent, "Bicycle", "100", owner_id="ava")
    goal = goal_by_name(web, "Bicycle")
    contribute(parent, goal.id, "12.50", message="Pocket money")

    response = parent.get(f"/goals/{goal.id}/contributions.csv")

    assert response.status_code == 200
    lines = response.text.splitlines()
    assert lines[0] == "timestamp,source,contributor,amount,message"
    assert lines[1].endswith("parent,Mum,12.50,Pocket money")
    assert TestClient(web.app).get(f"/goals/{goal.id}/contributions.csv", follow_redirects=False).status_code == 302


def test_locale_preference_translates_stage_labels(web) -> None:
    parent = family(web)
    create_goal(parent, "Bicycle", "100", owner_id="ava")

    assert "Seed" in parent.get("/dashboard").text
    parent.post("/preferences/locale", data={"locale": "nl"})
    page = parent.get("/dashboard").text
    assert "Mijn spaartuin" in page
    assert "Zaadje" in page


def test_rows_are_stamped_with_aware_utc_times(web) -> None:
    parent = family(web)
    create_goal(parent, "Bicycle", "100", owner_id="ava")

    assert web.now_utc().tzinfo is not None
    with Session(web.engine) as session:
        login_row = session.exec(select(web.LoginSession)).first()
        child = session.exec(select(web.UserAccount).where(web.UserAccount.user_id == "ava")).one()
    assert login_row.expires_at.utcoffset() == timedelta(0)
    assert child.created_at.utcoffset() == timedelta(0)
    assert goal_by_name(web, "Bicycle").created_at <= web.now_utc()


def test_grouped_amounts_are_read_in_euros(web) -> None:
    parent = family(web)

    create_goal(parent, "Laptop", "1,000", owner_id="ava")
    goal = goal_by_name(web, "Laptop")
    assert goal.target_cents == 100000

    contribute(parent, goal.id, "€1,000.00")
    goal = goal_by_name(web, "Laptop")
    assert goal.saved_cents == 100000
    assert "€1,000.00" in parent.get("/dashboard").text


def test_oversized_amounts_are_refused_with_a_notice(web) -> None:
    parent = family(web)

    response = create_goal(parent, "Yacht", "1e20", owner_id="ava")
    assert response.status_code == 302
    assert "target between €0.01 and €1,000,000.00" in parent.get("/dashboard").text
    with Session(web.engine) as session:
        assert session.exec(select(web.SavingsGoal)).all() == []

    create_goal(parent, "Kite", "20", owner_id="ava")
    goal = goal_by_name(web, "Kite")
    assert contribute(parent, goal.id, "1e20").status_code == 302
    assert "Enter an amount between €0.01" in parent.get("/dashboard").text
    assert goal_by_name(web, "Kite").saved_cents == 0


@pytest.mark.parametrize("percentage", ["inf", "-inf", "nan"])
def test_plant_api_rejects_non_finite_percentages(web, percentage: str) -> None:
    client = TestClient(web.app)

    response = client.get("/api/plants", params={"percentage": percentage})

    assert response.status_code == 422
    assert "detail" in response.json()


def test_package_exposes_app_and_tables(web) -> None:
    import spaardoel.webapp as package

    assert package.app is web.app
    assert "SavingsGoal" in package.__all__
    with pytest.raises(AttributeError):
        package.missing_attribute
