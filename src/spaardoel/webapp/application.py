"""FastAPI frontend for Spaardoel.

Children save towards goals that grow as plants; parents manage their
children's goals, attach milestone rewards and hand out share links so family
and friends can chip in.  Pages are rendered as plain HTML strings and state
lives in SQLite through the models in :mod:`spaardoel.webapp.persistence`.
Served with ``uvicorn spaardoel.webapp:app``.
"""

from __future__ import annotations

import csv
import io
import math
import re
from datetime import date, datetime, timedelta
from html import escape as html_escape
from secrets import token_urlsafe
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from fastapi import FastAPI, Form, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response, StreamingResponse
from sqlalchemy import text
from sqlmodel import Session, desc, select
from starlette.middleware.sessions import SessionMiddleware

from .. import models as domain
from ..api import ApiExporter
from ..emailing import EmailClient
from ..i18n import Translator
from ..money import MAX_AMOUNT, format_currency, from_cents, to_cents
from ..notifications import Notification as OutgoingNotification
from ..notifications import NotificationChannel, NotificationType
from ..ops import HealthMonitor, StructuredLogger
from ..plant import (
    PLANT_SIZES,
    STAGE_THRESHOLDS,
    PlantStage,
    PlantVisual,
    describe_plant,
    normalize_plant_type,
    progress_percentage,
    render_plant_svg,
)
from .config import (
    DEFAULT_LOCALE,
    DEFAULT_MILESTONES,
    LOG_PATH,
    MAIL_SENDER,
    MAX_SHARE_LINK_DAYS,
    PLANT_TYPE_LABELS,
    PLANT_TYPES,
    SESSION_LIFETIME,
    SESSION_SECRET,
    SHARE_TOKEN_BYTES,
    SMTP_HOST,
    SMTP_PORT,
)
from .persistence import (
    GOAL_STATUS_ACTIVE,
    GOAL_STATUS_ARCHIVED,
    GOAL_STATUS_COMPLETED,
    ROLE_CHILD,
    ROLE_PARENT,
    SOURCE_CHILD,
    SOURCE_EXTERNAL,
    SOURCE_PARENT,
    Contribution,
    DeletedUser,
    LoginSession,
    Milestone,
    Notification,
    SavingsGoal,
    ShareLink,
    UserAccount,
    engine,
    utcnow,
)


# ---------------------------------------------------------------------------
# FastAPI application setup
# ---------------------------------------------------------------------------
app = FastAPI(title="Spaardoel")
app.add_middleware(
    SessionMiddleware,
    secret_key=SESSION_SECRET,
    same_site="lax",
    max_age=int(SESSION_LIFETIME.total_seconds()),
)

_time_provider: Callable[[], datetime] = utcnow

structured_logger = StructuredLogger(path=LOG_PATH)
translator = Translator(DEFAULT_LOCALE)
email_client = EmailClient(SMTP_HOST, SMTP_PORT, sender=MAIL_SENDER)
api_exporter = ApiExporter()

USER_ID_PATTERN = re.compile(r"^[a-z0-9_-]{2,32}$")
AMOUNT_LIMIT = format_currency(MAX_AMOUNT)


def now_utc() -> datetime:
    """Return timezone-aware UTC time from the configured provider."""

    return _time_provider()


def _database_probe() -> bool:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return True


health_monitor = HealthMonitor(database_probe=_database_probe)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------
def euro(cents: int) -> str:
    return format_currency(from_cents(cents))


def to_cents_from_str(raw: str, default: int = 0) -> int:
    raw = (raw or "").strip()
    if not raw:
        return default
    try:
        return to_cents(raw)
    except (ArithmeticError, ValueError):
        return default


def goal_percentage(goal: SavingsGoal) -> float:
    """Progress of ``goal`` in percent; over-funded goals exceed 100."""

    return progress_percentage(goal.saved_cents or 0, goal.target_cents or 0)


def goal_visual(goal: SavingsGoal) -> PlantVisual:
    return describe_plant(goal_percentage(goal), goal.plant_type)


def current_locale(request: Optional[Request]) -> str:
    if request is None:
        return DEFAULT_LOCALE
    return request.session.get("locale") or DEFAULT_LOCALE


def stage_label(stage: PlantStage, request: Optional[Request] = None) -> str:
    return translator.stage_label(stage.value, locale=current_locale(request))


# ---------------------------------------------------------------------------
# Session & authentication helpers
# ---------------------------------------------------------------------------
def set_notice(request: Request, message: str, kind: str = "info") -> None:
    request.session["notice"] = message
    request.session["notice_kind"] = kind


def pop_notice(request: Request) -> Tuple[Optional[str], str]:
    message = request.session.pop("notice", None)
    kind = request.session.pop("notice_kind", "info")
    return message, kind


def current_user_id(request: Request) -> Optional[str]:
    user_id = request.session.get("user_id")
    session_key = request.session.get("session_key")
    if not user_id or not session_key:
        return None
    with Session(engine) as session:
        row = session.exec(select(LoginSession).where(LoginSession.session_key == session_key)).first()
    if row is None or row.user_id != user_id or row.expires_at <= now_utc():
        request.session.pop("user_id", None)
        request.session.pop("session_key", None)
        return None
    return user_id


def require_user(request: Request) -> Optional[RedirectResponse]:
    if current_user_id(request) is None:
        return RedirectResponse("/", status_code=302)
    return None


def load_user(session: Session, user_id: str) -> Optional[UserAccount]:
    return session.exec(select(UserAccount).where(UserAccount.user_id == user_id)).first()


def start_login_session(request: Request, user: UserAccount) -> LoginSession:
    moment = now_utc()
    login = LoginSession(
        session_key=token_urlsafe(24),
        user_id=user.user_id,
        created_at=moment,
        expires_at=moment + SESSION_LIFETIME,
    )
    with Session(engine) as session:
        session.add(login)
        session.commit()
    request.session["user_id"] = user.user_id
    request.session["session_key"] = login.session_key
    return login


def can_manage(session: Session, actor: UserAccount, owner_id: str) -> bool:
    if actor.user_id == owner_id:
        return True
    if actor.role != ROLE_PARENT:
        return False
    owner = load_user(session, owner_id)
    return owner is not None and owner.parent_id == actor.user_id


def children_of(session: Session, parent_id: str) -> List[UserAccount]:
    return session.exec(
        select(UserAccount).where(UserAccount.parent_id == parent_id).order_by(UserAccount.name)
    ).all()


def visible_goals(session: Session, user: UserAccount) -> List[SavingsGoal]:
    if user.role == ROLE_PARENT:
        owner_ids = [child.user_id for child in children_of(session, user.user_id)]
    else:
        owner_ids = [user.user_id]
    if not owner_ids:
        return []
    return session.exec(
        select(SavingsGoal).where(SavingsGoal.owner_id.in_(owner_ids)).order_by(SavingsGoal.created_at)
    ).all()


def _load_managed_goal(
    session: Session, request: Request, goal_id: int
) -> Tuple[Optional[UserAccount], Optional[SavingsGoal]]:
    user_id = current_user_id(request)
    user = load_user(session, user_id) if user_id else None
    goal = session.get(SavingsGoal, goal_id)
    if user is None or goal is None or not can_manage(session, user, goal.owner_id):
        return user, None
    return user, goal


# ---------------------------------------------------------------------------
# Goal workflows
# ---------------------------------------------------------------------------
def notify(session: Session, user_id: str, notification_type: NotificationType, subject: str, body: str) -> Notification:
    """Store an in-app notification and mail it when the user has an address."""

    row = Notification(user_id=user_id, type=notification_type.value, subject=subject, body=body, created_at=now_utc())
    session.add(row)
    user = load_user(session, user_id)
    if user is not None and user.email:
        email_client.send_notification(
            OutgoingNotification(
                recipient=user.email,
                type=notification_type,
                subject=subject,
                body=body,
                channel=NotificationChannel.EMAIL,
            ),
            user.email,
        )
    return row


def create_goal(
    session: Session,
    owner: UserAccount,
    name: str,
    target_cents: int,
    plant_type: str,
    *,
    milestones: Sequence[int] = DEFAULT_MILESTONES,
) -> SavingsGoal:
    goal = SavingsGoal(
        owner_id=owner.user_id,
        name=name.strip(),
        target_cents=target_cents,
        plant_type=normalize_plant_type(plant_type),
        created_at=now_utc(),
    )
    session.add(goal)
    session.flush()
    for percentage in sorted(set(milestones)):
        session.add(Milestone(goal_id=goal.id, percentage=percentage))
    return goal


def record_contribution(
    session: Session,
    goal: SavingsGoal,
    amount_cents: int,
    *,
    source: str,
    contributor_name: str,
    message: str = "",
    link: Optional[ShareLink] = None,
) -> Contribution:
    """Add money to ``goal``, mark reached milestones and raise notifications.

    The caller owns the transaction and commits.
    """

    moment = now_utc()
    before = goal.saved_cents or 0
    goal.saved_cents = before + amount_cents
    contribution = Contribution(
        goal_id=goal.id,
        amount_cents=amount_cents,
        source=source,
        contributor_name=contributor_name,
        message=message.strip(),
        share_link_id=link.id if link else None,
        created_at=moment,
    )
    session.add(contribution)
    owner = load_user(session, goal.owner_id)
    recipients = [goal.owner_id]
    if owner is not None and owner.parent_id:
        recipients.append(owner.parent_id)

    if link is not None:
        link.use_count = (link.use_count or 0) + 1
        session.add(link)
        notify(
            session,
            goal.owner_id,
            NotificationType.LINK_CONTRIBUTION,
            f"{contributor_name} helped your {goal.name}!",
            f"{contributor_name} added {euro(amount_cents)} to '{goal.name}'.",
        )

    progress = goal_percentage(goal)
    pending = session.exec(
        select(Milestone)
        .where(Milestone.goal_id == goal.id, Milestone.reached_at == None)  # noqa: E711
        .order_by(Milestone.percentage)
    ).all()
    for milestone in pending:
        if progress < milestone.percentage:
            continue
        milestone.reached_at = moment
        session.add(milestone)
        reward = f" Reward: {milestone.reward}." if milestone.reward else ""
        for recipient in recipients:
            notify(
                session,
                recipient,
                NotificationType.GOAL_MILESTONE,
                f"{milestone.percentage}% milestone reached!",
                f"Goal '{goal.name}' is now {milestone.percentage}% funded.{reward}",
            )

    if before < goal.target_cents <= goal.saved_cents and goal.completed_at is None:
        goal.completed_at = moment
        if goal.status == GOAL_STATUS_ACTIVE:
            goal.status = GOAL_STATUS_COMPLETED
        for recipient in recipients:
            notify(
                session,
                recipient,
                NotificationType.GOAL_COMPLETED,
                f"'{goal.name}' is fully grown!",
                f"{euro(goal.saved_cents)} saved for '{goal.name}'.",
            )
    session.add(goal)
    visual = goal_visual(goal)
    structured_logger.log(
        "contribution",
        goal=goal.id,
        source=source,
        amount_cents=amount_cents,
        progress=round(progress, 2),
        stage=visual.stage.value,
    )
    return contribution


def share_link_usable(link: ShareLink, *, at: Optional[datetime] = None) -> bool:
    moment = at or now_utc()
    if not link.active:
        return False
    if link.expires_at is not None and moment >= link.expires_at:
        return False
    if link.max_uses is not None and (link.use_count or 0) >= link.max_uses:
        return False
    return True


def delete_goal_cascade(session: Session, goal: SavingsGoal) -> None:
    for model in (Contribution, ShareLink, Milestone):
        for row in session.exec(select(model).where(model.goal_id == goal.id)).all():
            session.delete(row)
    session.delete(goal)


def delete_user_cascade(session: Session, user: UserAccount) -> List[str]:
    """Remove ``user`` with everything they own and leave a tombstone.

    Parents take their children with them.  Returns the removed user ids.
    """

    removed: List[str] = []
    if user.role == ROLE_PARENT:
        for child in children_of(session, user.user_id):
            removed.extend(delete_user_cascade(session, child))
    for goal in session.exec(select(SavingsGoal).where(SavingsGoal.owner_id == user.user_id)).all():
        delete_goal_cascade(session, goal)
    for model in (Notification, LoginSession):
        for row in session.exec(select(model).where(model.user_id == user.user_id)).all():
            session.delete(row)
    session.delete(user)
    session.add(DeletedUser(user_id=user.user_id, deleted_at=now_utc()))
    removed.append(user.user_id)
    structured_logger.log("user_deleted", user=user.user_id)
    return removed


def to_domain_goal(goal: SavingsGoal) -> domain.Goal:
    return domain.Goal(
        goal_id=str(goal.id),
        owner_id=goal.owner_id,
        name=goal.name,
        target_amount=from_cents(goal.target_cents),
        plant_type=goal.plant_type,
        saved_amount=from_cents(goal.saved_cents or 0),
        status=domain.GoalStatus(goal.status),
        created_at=goal.created_at,
        completed_at=goal.completed_at,
    )


def goal_payload(session: Session, goal: SavingsGoal) -> Dict[str, object]:
    milestones = session.exec(
        select(Milestone).where(Milestone.goal_id == goal.id).order_by(Milestone.percentage)
    ).all()
    contributions = session.exec(
        select(Contribution).where(Contribution.goal_id == goal.id).order_by(Contribution.created_at)
    ).all()
    return api_exporter.goal_snapshot(
        to_domain_goal(goal),
        milestones=[
            domain.Milestone(percentage=row.percentage, reward=row.reward, reached_at=row.reached_at)
            for row in milestones
        ],
        contributions=[
            domain.Contribution(
                goal_id=str(goal.id),
                amount=from_cents(row.amount_cents),
                source=domain.ContributionSource(row.source),
                contributor_name=row.contributor_name,
                message=row.message,
                created_at=row.created_at,
            )
            for row in contributions
        ],
    )


# ---------------------------------------------------------------------------
# HTML rendering
# ---------------------------------------------------------------------------
def base_styles() -> str:
    return """
<style>
:root{--green:#16a34a;--ink:#0f172a;--muted:#64748b;--card:#ffffff;--line:#e2e8f0;}
body{font-family:system-ui,-apple-system,Segoe UI,Roboto,sans-serif;background:#f0fdf4;color:var(--ink);margin:0;}
header{background:var(--green);color:#fff;padding:12px 20px;display:flex;justify-content:space-between;align-items:center;}
header a{color:#fff;margin-left:12px;}
main{max-width:1080px;margin:0 auto;padding:16px;}
.card{background:var(--card);border:1px solid var(--line);border-radius:14px;padding:16px;margin-bottom:16px;box-shadow:0 1px 2px rgba(15,23,42,0.06);}
.garden{display:grid;grid-template-columns:repeat(auto-fit,minmax(300px,1fr));gap:16px;}
.goal__meta{color:var(--muted);font-size:14px;}
.goal__stage{font-weight:700;}
.bar{height:10px;background:var(--line);border-radius:6px;overflow:hidden;}
.bar__fill{height:100%;background:var(--green);}
.notice{padding:10px 14px;border-radius:10px;margin-bottom:12px;}
.notice--success{background:#dcfce7;}
.notice--error{background:#fee2e2;}
.notice--info{background:#e0f2fe;}
form.inline{display:flex;flex-wrap:wrap;gap:6px;align-items:center;margin:6px 0;}
input,select,button{font:inherit;padding:6px 8px;border-radius:8px;border:1px solid var(--line);}
button{background:var(--green);color:#fff;border:none;cursor:pointer;}
button.secondary{background:#475569;}
ul.plain{list-style:none;padding:0;margin:6px 0;}
.muted{color:var(--muted);}
</style>
"""


def frame(title: str, inner: str, head_extra: str = "") -> str:
    return (
        "<html><head><meta charset='utf-8'><meta name='viewport' "
        f"content='width=device-width,initial-scale=1'>{head_extra}<title>{html_escape(title)}</title>"
        f"{base_styles()}</head><body>{inner}</body></html>"
    )


def render_page(
    request: Optional[Request],
    title: str,
    inner: str,
    *,
    status_code: int = 200,
) -> HTMLResponse:
    notice_html = ""
    nav = ""
    if request is not None:
        message, kind = pop_notice(request)
        if message:
            notice_html = f"<div class='notice notice--{html_escape(kind)}'>{html_escape(message)}</div>"
        if request.session.get("user_id"):
            nav = "<nav><a href='/dashboard'>Garden</a><a href='/notifications'>Notifications</a><a href='/logout'>Sign out</a></nav>"
    header = f"<header><strong>Spaardoel</strong>{nav}</header>"
    return HTMLResponse(frame(title, f"{header}<main>{notice_html}{inner}</main>"), status_code=status_code)


def plant_type_options(selected: str = "") -> str:
    options = []
    for key in PLANT_TYPES:
        marker = " selected" if key == selected else ""
        options.append(f"<option value='{key}'{marker}>{PLANT_TYPE_LABELS.get(key, key.title())}</option>")
    return "".join(options)


def progress_bar(percentage: float) -> str:
    width = max(0.0, min(percentage, 100.0))
    return f"<div class='bar'><div class='bar__fill' style='width:{width:.1f}%'></div></div>"


def goal_card(session: Session, request: Request, goal: SavingsGoal, viewer: UserAccount) -> str:
    visual = goal_visual(goal)
    percentage = visual.percentage
    milestones = session.exec(
        select(Milestone).where(Milestone.goal_id == goal.id).order_by(Milestone.percentage)
    ).all()
    links = session.exec(select(ShareLink).where(ShareLink.goal_id == goal.id, ShareLink.active == True)).all()  # noqa: E712
    milestone_items = "".join(
        "<li>"
        + ("&#10003; " if row.reached_at else "&#9675; ")
        + f"{row.percentage}%"
        + (f" &middot; {html_escape(row.reward)}" if row.reward else "")
        + "</li>"
        for row in milestones
    )
    base = str(request.base_url).rstrip("/")
    link_items = "".join(
        f"<li><code>{base}/share/{html_escape(link.token)}</code> "
        f"<span class='muted'>{link.use_count or 0} use(s)"
        + (f" of {link.max_uses}" if link.max_uses else "")
        + (f", expires {link.expires_at:%Y-%m-%d}" if link.expires_at else "")
        + "</span>"
        f"<form class='inline' method='post' action='/links/revoke'><input type='hidden' name='link_id' value='{link.id}'>"
        "<button class='secondary'>Revoke</button></form></li>"
        for link in links
    )
    archived = goal.status == GOAL_STATUS_ARCHIVED
    actions = ""
    if not archived:
        actions += (
            "<form class='inline' method='post' action='/goals/contribute'>"
            f"<input type='hidden' name='goal_id' value='{goal.id}'>"
            "<input name='amount' placeholder='Amount' inputmode='decimal' required>"
            "<input name='message' placeholder='Note (optional)'>"
            "<button>Add savings</button></form>"
            "<form class='inline' method='post' action='/goals/share'>"
            f"<input type='hidden' name='goal_id' value='{goal.id}'>"
            "<input name='expires_days' placeholder='Days valid' inputmode='numeric' size='8'>"
            "<input name='max_uses' placeholder='Max uses' inputmode='numeric' size='8'>"
            "<button class='secondary'>Create share link</button></form>"
        )
    if viewer.role == ROLE_PARENT and not archived:
        actions += (
            "<form class='inline' method='post' action='/goals/milestone'>"
            f"<input type='hidden' name='goal_id' value='{goal.id}'>"
            "<input name='percentage' placeholder='%' inputmode='numeric' size='4' required>"
            "<input name='reward' placeholder='Reward'>"
            "<button class='secondary'>Set milestone</button></form>"
        )
    actions += (
        "<form class='inline' method='post' action='/goals/archive'>"
        f"<input type='hidden' name='goal_id' value='{goal.id}'>"
        f"<button class='secondary'{' disabled' if archived else ''}>Archive</button></form>"
        "<form class='inline' method='post' action='/goals/delete'>"
        f"<input type='hidden' name='goal_id' value='{goal.id}'>"
        "<button class='secondary'>Delete</button></form>"
        f"<a href='/goals/{goal.id}/contributions.csv'>Export contributions</a>"
    )
    return (
        f"<section class='card goal' data-goal='{goal.id}' data-stage='{visual.stage.value}'>"
        f"<h3>{html_escape(goal.name)}</h3>"
        f"{render_plant_svg(visual, size='small')}"
        f"<div class='goal__stage'>{html_escape(stage_label(visual.stage, request))}</div>"
        f"<div class='goal__meta'>{euro(goal.saved_cents)} of {euro(goal.target_cents)} "
        f"({percentage:.0f}%) &middot; {html_escape(goal.status)}</div>"
        f"{progress_bar(percentage)}"
        f"<ul class='plain'>{milestone_items}</ul>"
        + (f"<h4>Share links</h4><ul class='plain'>{link_items}</ul>" if link_items else "")
        + actions
        + "</section>"
    )


def create_goal_form(owner_choices: Sequence[UserAccount]) -> str:
    owner_field = ""
    if owner_choices:
        options = "".join(
            f"<option value='{html_escape(child.user_id)}'>{html_escape(child.name)}</option>" for child in owner_choices
        )
        owner_field = f"<select name='owner_id'>{options}</select>"
    return (
        "<div class='card'><h3>Plant a new goal</h3>"
        "<form class='inline' method='post' action='/goals/create'>"
        f"{owner_field}<input name='name' placeholder='What are you saving for?' required>"
        "<input name='target' placeholder='Target amount' inputmode='decimal' required>"
        f"<select name='plant_type'>{plant_type_options()}</select>"
        "<button>Plant it</button></form></div>"
    )


# ---------------------------------------------------------------------------
# Authentication routes
# ---------------------------------------------------------------------------
@app.get("/", response_class=HTMLResponse)
def index(request: Request):
    if current_user_id(request):
        return RedirectResponse("/dashboard", status_code=302)
    inner = (
        "<div class='card'><h2>Sign in</h2>"
        "<form class='inline' method='post' action='/login'>"
        "<input name='user_id' placeholder='User name' required>"
        "<input name='pin' type='password' placeholder='PIN' required>"
        "<button>Sign in</button></form></div>"
        "<div class='card'><h2>New family? Create a parent account</h2>"
        "<form class='inline' method='post' action='/register'>"
        "<input name='user_id' placeholder='User name' required>"
        "<input name='name' placeholder='Your name' required>"
        "<input name='pin' type='password' placeholder='PIN' required>"
        "<input name='email' type='email' placeholder='Email (optional)'>"
        "<button>Create account</button></form></div>"
    )
    return render_page(request, "Spaardoel", inner)


@app.post("/login")
def login(request: Request, user_id: str = Form(...), pin: str = Form(...)):
    with Session(engine) as session:
        user = load_user(session, user_id.strip().lower())
    if user is None or not user.pin or user.pin != pin.strip():
        structured_logger.log("login_failed", user=user_id.strip().lower())
        set_notice(request, "That user name and PIN do not match.", "error")
        return RedirectResponse("/", status_code=302)
    start_login_session(request, user)
    structured_logger.log("login", user=user.user_id)
    return RedirectResponse("/dashboard", status_code=302)


@app.get("/logout")
def logout(request: Request):
    session_key = request.session.get("session_key")
    if session_key:
        with Session(engine) as session:
            row = session.exec(select(LoginSession).where(LoginSession.session_key == session_key)).first()
            if row is not None:
                row.expires_at = now_utc()
                session.add(row)
                session.commit()
    request.session.clear()
    return RedirectResponse("/", status_code=302)


@app.post("/register")
def register(
    request: Request,
    user_id: str = Form(...),
    name: str = Form(...),
    pin: str = Form(...),
    email: str = Form(""),
):
    slug = user_id.strip().lower()
    if not USER_ID_PATTERN.match(slug) or not pin.strip() or not name.strip():
        set_notice(request, "Pick a user name of 2-32 letters, digits, '-' or '_', a name and a PIN.", "error")
        return RedirectResponse("/", status_code=302)
    with Session(engine) as session:
        if load_user(session, slug) is not None:
            set_notice(request, "That user name is already taken.", "error")
            return RedirectResponse("/", status_code=302)
        user = UserAccount(
            user_id=slug,
            name=name.strip(),
            role=ROLE_PARENT,
            pin=pin.strip(),
            email=email.strip() or None,
            created_at=now_utc(),
        )
        session.add(user)
        session.commit()
    structured_logger.log("user_created", user=slug, role=ROLE_PARENT)
    start_login_session(request, user)
    set_notice(request, "Welcome! Add your children to start growing goals.", "success")
    return RedirectResponse("/dashboard", status_code=302)


@app.post("/children/create")
def create_child(
    request: Request,
    user_id: str = Form(...),
    name: str = Form(...),
    pin: str = Form(...),
    birth_date: str = Form(""),
):
    if (redirect := require_user(request)) is not None:
        return redirect
    parent_id = current_user_id(request)
    slug = user_id.strip().lower()
    born: Optional[date] = None
    if birth_date.strip():
        try:
            born = date.fromisoformat(birth_date.strip())
        except ValueError:
            set_notice(request, "Use YYYY-MM-DD for the birth date.", "error")
            return RedirectResponse("/dashboard", status_code=302)
    with Session(engine) as session:
        parent = load_user(session, parent_id) if parent_id else None
        if parent is None or parent.role != ROLE_PARENT:
            set_notice(request, "Only parents can add children.", "error")
            return RedirectResponse("/dashboard", status_code=302)
        if not USER_ID_PATTERN.match(slug) or not pin.strip() or not name.strip():
            set_notice(request, "Pick a user name of 2-32 letters, digits, '-' or '_', a name and a PIN.", "error")
            return RedirectResponse("/dashboard", status_code=302)
        if load_user(session, slug) is not None:
            set_notice(request, "That user name is already taken.", "error")
            return RedirectResponse("/dashboard", status_code=302)
        session.add(
            UserAccount(
                user_id=slug,
                name=name.strip(),
                role=ROLE_CHILD,
                pin=pin.strip(),
                parent_id=parent.user_id,
                birth_date=born,
                created_at=now_utc(),
            )
        )
        session.commit()
    structured_logger.log("user_created", user=slug, role=ROLE_CHILD, parent=parent_id)
    set_notice(request, f"Added {name.strip()}.", "success")
    return RedirectResponse("/dashboard", status_code=302)


@app.post("/preferences/locale")
def set_locale(request: Request, locale: str = Form(...)):
    if locale in translator.available_locales():
        request.session["locale"] = locale
    return RedirectResponse(request.headers.get("referer") or "/dashboard", status_code=302)


@app.post("/account/delete")
def account_delete(request: Request, confirm: str = Form("")):
    if (redirect := require_user(request)) is not None:
        return redirect
    user_id = current_user_id(request)
    if confirm.strip().lower() != (user_id or "").lower():
        set_notice(request, "Type your user name to confirm the deletion.", "error")
        return RedirectResponse("/dashboard", status_code=302)
    with Session(engine) as session:
        user = load_user(session, user_id) if user_id else None
        if user is not None:
            delete_user_cascade(session, user)
            session.commit()
    request.session.clear()
    set_notice(request, "Your account and all its data were deleted.", "info")
    return RedirectResponse("/", status_code=302)


# ---------------------------------------------------------------------------
# Dashboard & goal routes
# ---------------------------------------------------------------------------
@app.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request):
    if (redirect := require_user(request)) is not None:
        return redirect
    user_id = current_user_id(request)
    with Session(engine) as session:
        user = load_user(session, user_id) if user_id else None
        if user is None:
            request.session.clear()
            return RedirectResponse("/", status_code=302)
        goals = visible_goals(session, user)
        children = children_of(session, user.user_id) if user.role == ROLE_PARENT else []
        names = {child.user_id: child.name for child in children}
        unread = len(
            session.exec(
                select(Notification).where(Notification.user_id == user.user_id, Notification.read_at == None)  # noqa: E711
            ).all()
        )
        cards = []
        for goal in goals:
            owner_label = f"<p class='muted'>{html_escape(names[goal.owner_id])}</p>" if goal.owner_id in names else ""
            cards.append(owner_label + goal_card(session, request, goal, user))
    title = translator.translate("dashboard.title", locale=current_locale(request))
    parts = [
        f"<h2>{html_escape(title)}</h2>",
        f"<p class='muted'>Hello {html_escape(user.name)}"
        + (f" &middot; <a href='/notifications'>{unread} new notification(s)</a>" if unread else "")
        + "</p>",
    ]
    if user.role == ROLE_PARENT:
        parts.append(
            "<div class='card'><h3>Add a child</h3>"
            "<form class='inline' method='post' action='/children/create'>"
            "<input name='user_id' placeholder='User name' required>"
            "<input name='name' placeholder='Name' required>"
            "<input name='pin' type='password' placeholder='PIN' required>"
            "<input name='birth_date' placeholder='Birth date (YYYY-MM-DD)'>"
            "<button>Add child</button></form></div>"
        )
        if children:
            parts.append(create_goal_form(children))
    else:
        parts.append(create_goal_form(()))
    parts.append(f"<div class='garden'>{''.join(cards) or '<p class=muted>No goals planted yet.</p>'}</div>")
    locale = current_locale(request)
    locale_options = "".join(
        f"<option value='{code}'{' selected' if code == locale else ''}>{code.upper()}</option>"
        for code in translator.available_locales()
    )
    parts.append(
        "<form class='inline' method='post' action='/preferences/locale'>"
        f"<select name='locale'>{locale_options}</select><button class='secondary'>Language</button></form>"
    )
    parts.append(
        "<div class='card'><h3>Delete my account</h3>"
        "<form class='inline' method='post' action='/account/delete'>"
        "<input name='confirm' placeholder='Type your user name'>"
        "<button class='secondary'>Delete everything</button></form></div>"
    )
    return render_page(request, title, "".join(parts))


@app.post("/goals/create")
def goal_create(
    request: Request,
    name: str = Form(...),
    target: str = Form(...),
    plant_type: str = Form(""),
    owner_id: str = Form(""),
):
    if (redirect := require_user(request)) is not None:
        return redirect
    user_id = current_user_id(request)
    target_c = to_cents_from_str(target, 0)
    if target_c <= 0 or not name.strip():
        set_notice(request, f"A goal needs a name and a target between €0.01 and {AMOUNT_LIMIT}.", "error")
        return RedirectResponse("/dashboard", status_code=302)
    with Session(engine) as session:
        user = load_user(session, user_id) if user_id else None
        owner_key = owner_id.strip() or (user.user_id if user else "")
        owner = load_user(session, owner_key) if owner_key else None
        if user is None or owner is None or owner.role != ROLE_CHILD or not can_manage(session, user, owner.user_id):
            set_notice(request, "Goals can only be planted for a child you look after.", "error")
            return RedirectResponse("/dashboard", status_code=302)
        goal = create_goal(session, owner, name, target_c, plant_type)
        session.commit()
        goal_name = goal.name
        structured_logger.log("goal_created", goal=goal.id, owner=owner.user_id, target_cents=target_c, plant_type=goal.plant_type)
    set_notice(request, f"Planted '{goal_name}'!", "success")
    return RedirectResponse("/dashboard", status_code=302)


@app.post("/goals/contribute")
def goal_contribute(request: Request, goal_id: int = Form(...), amount: str = Form(...), message: str = Form("")):
    if (redirect := require_user(request)) is not None:
        return redirect
    amount_c = to_cents_from_str(amount, 0)
    if amount_c <= 0:
        set_notice(request, f"Enter an amount between €0.01 and {AMOUNT_LIMIT}.", "error")
        return RedirectResponse("/dashboard", status_code=302)
    with Session(engine) as session:
        user, goal = _load_managed_goal(session, request, goal_id)
        if user is None or goal is None:
            set_notice(request, "Could not find that goal.", "error")
            return RedirectResponse("/dashboard", status_code=302)
        if goal.status == GOAL_STATUS_ARCHIVED:
            set_notice(request, "That goal is archived.", "error")
            return RedirectResponse("/dashboard", status_code=302)
        source = SOURCE_PARENT if user.role == ROLE_PARENT else SOURCE_CHILD
        record_contribution(session, goal, amount_c, source=source, contributor_name=user.name, message=message)
        session.commit()
        goal_name = goal.name
    set_notice(request, f"Saved {euro(amount_c)} for {goal_name}.", "success")
    return RedirectResponse("/dashboard", status_code=302)


@app.post("/goals/archive")
def goal_archive(request: Request, goal_id: int = Form(...)):
    if (redirect := require_user(request)) is not None:
        return redirect
    with Session(engine) as session:
        user, goal = _load_managed_goal(session, request, goal_id)
        if goal is None:
            set_notice(request, "Could not find that goal.", "error")
            return RedirectResponse("/dashboard", status_code=302)
        goal.status = GOAL_STATUS_ARCHIVED
        session.add(goal)
        for link in session.exec(select(ShareLink).where(ShareLink.goal_id == goal.id)).all():
            link.active = False
            session.add(link)
        session.commit()
        goal_name = goal.name
    set_notice(request, f"Archived '{goal_name}'.", "success")
    return RedirectResponse("/dashboard", status_code=302)


@app.post("/goals/delete")
def goal_delete(request: Request, goal_id: int = Form(...)):
    if (redirect := require_user(request)) is not None:
        return redirect
    with Session(engine) as session:
        user, goal = _load_managed_goal(session, request, goal_id)
        if goal is None:
            set_notice(request, "Could not find that goal.", "error")
            return RedirectResponse("/dashboard", status_code=302)
        goal_name = goal.name
        delete_goal_cascade(session, goal)
        session.commit()
    structured_logger.log("goal_deleted", goal=goal_id, user=user.user_id if user else None)
    set_notice(request, f"Deleted '{goal_name}'.", "success")
    return RedirectResponse("/dashboard", status_code=302)


@app.post("/goals/milestone")
def goal_milestone(request: Request, goal_id: int = Form(...), percentage: str = Form(...), reward: str = Form("")):
    if (redirect := require_user(request)) is not None:
        return redirect
    try:
        mark = int(percentage.strip().rstrip("%"))
    except ValueError:
        mark = 0
    if not 1 <= mark <= 100:
        set_notice(request, "Milestones sit between 1% and 100%.", "error")
        return RedirectResponse("/dashboard", status_code=302)
    with Session(engine) as session:
        user, goal = _load_managed_goal(session, request, goal_id)
        if user is None or goal is None or user.role != ROLE_PARENT:
            set_notice(request, "Only parents can set milestone rewards.", "error")
            return RedirectResponse("/dashboard", status_code=302)
        existing = session.exec(
            select(Milestone).where(Milestone.goal_id == goal.id, Milestone.percentage == mark)
        ).first()
        milestone = existing or Milestone(goal_id=goal.id, percentage=mark)
        milestone.reward = reward.strip() or milestone.reward
        if milestone.reached_at is None and goal_percentage(goal) >= mark:
            # Already past this mark; treat it as reached without notifying again.
            milestone.reached_at = now_utc()
        session.add(milestone)
        session.commit()
    set_notice(request, f"Milestone at {mark}% saved.", "success")
    return RedirectResponse("/dashboard", status_code=302)


@app.post("/goals/share")
def goal_share(request: Request, goal_id: int = Form(...), expires_days: str = Form(""), max_uses: str = Form("")):
    if (redirect := require_user(request)) is not None:
        return redirect
    try:
        days = int(expires_days) if expires_days.strip() else None
        uses = int(max_uses) if max_uses.strip() else None
    except ValueError:
        set_notice(request, "Days and uses must be whole numbers.", "error")
        return RedirectResponse("/dashboard", status_code=302)
    if (days is not None and not 1 <= days <= MAX_SHARE_LINK_DAYS) or (uses is not None and uses <= 0):
        set_notice(request, f"Links last 1-{MAX_SHARE_LINK_DAYS} days and need at least one use.", "error")
        return RedirectResponse("/dashboard", status_code=302)
    with Session(engine) as session:
        user, goal = _load_managed_goal(session, request, goal_id)
        if user is None or goal is None or goal.status == GOAL_STATUS_ARCHIVED:
            set_notice(request, "Could not share that goal.", "error")
            return RedirectResponse("/dashboard", status_code=302)
        moment = now_utc()
        link = ShareLink(
            goal_id=goal.id,
            token=token_urlsafe(SHARE_TOKEN_BYTES),
            created_by=user.user_id,
            created_at=moment,
            expires_at=moment + timedelta(days=days) if days else None,
            max_uses=uses,
        )
        session.add(link)
        session.commit()
        token = link.token
    url = f"{str(request.base_url).rstrip('/')}/share/{token}"
    set_notice(request, f"Share this link: {url}", "success")
    return RedirectResponse("/dashboard", status_code=302)


@app.post("/links/revoke")
def link_revoke(request: Request, link_id: int = Form(...)):
    if (redirect := require_user(request)) is not None:
        return redirect
    with Session(engine) as session:
        link = session.get(ShareLink, link_id)
        user, goal = _load_managed_goal(session, request, link.goal_id) if link else (None, None)
        if link is None or goal is None:
            set_notice(request, "Could not find that link.", "error")
            return RedirectResponse("/dashboard", status_code=302)
        link.active = False
        session.add(link)
        session.commit()
    set_notice(request, "Share link revoked.", "success")
    return RedirectResponse("/dashboard", status_code=302)


@app.get("/goals/{goal_id}/contributions.csv")
def goal_contributions_csv(request: Request, goal_id: int):
    if (redirect := require_user(request)) is not None:
        return redirect
    with Session(engine) as session:
        _, goal = _load_managed_goal(session, request, goal_id)
        if goal is None:
            return JSONResponse({"detail": "Goal not found"}, status_code=404)
        rows = session.exec(
            select(Contribution).where(Contribution.goal_id == goal.id).order_by(Contribution.created_at)
        ).all()
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["timestamp", "source", "contributor", "amount", "message"])
    for row in rows:
        writer.writerow(
            [row.created_at.isoformat(), row.source, row.contributor_name, f"{row.amount_cents / 100:.2f}", row.message]
        )
    buffer.seek(0)
    return StreamingResponse(
        iter([buffer.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=goal-{goal_id}-contributions.csv"},
    )


# ---------------------------------------------------------------------------
# Public share pages
# ---------------------------------------------------------------------------
def _share_lookup(session: Session, token: str) -> Tuple[Optional[ShareLink], Optional[SavingsGoal]]:
    link = session.exec(select(ShareLink).where(ShareLink.token == token)).first()
    if link is None or not share_link_usable(link):
        return link, None
    goal = session.get(SavingsGoal, link.goal_id)
    if goal is None or goal.status == GOAL_STATUS_ARCHIVED:
        return link, None
    return link, goal


def _share_unavailable(request: Request) -> HTMLResponse:
    inner = "<div class='card'><h2>This link is no longer active</h2><p>Ask the family for a fresh link.</p></div>"
    return render_page(request, "Link unavailable", inner, status_code=404)


@app.get("/share/{token}", response_class=HTMLResponse)
def share_page(request: Request, token: str):
    with Session(engine) as session:
        _, goal = _share_lookup(session, token)
        if goal is None:
            return _share_unavailable(request)
        owner = load_user(session, goal.owner_id)
        owner_name = owner.name if owner else "A young saver"
        visual = goal_visual(goal)
    inner = (
        f"<div class='card'><h2>Help {html_escape(owner_name)} grow '{html_escape(goal.name)}'</h2>"
        f"{render_plant_svg(visual, size='medium')}"
        f"<p class='goal__stage'>{html_escape(stage_label(visual.stage, request))}</p>"
        f"{progress_bar(visual.percentage)}"
        f"<form method='post' action='/share/{html_escape(token)}'>"
        "<p><input name='contributor_name' placeholder='Your name' required></p>"
        "<p><input name='amount' placeholder='Amount' inputmode='decimal' required></p>"
        "<p><input name='message' placeholder='A message (optional)'></p>"
        "<button>Send a contribution</button></form></div>"
    )
    return render_page(request, f"Help grow {goal.name}", inner)


@app.post("/share/{token}")
def share_contribute(
    request: Request,
    token: str,
    amount: str = Form(...),
    contributor_name: str = Form(...),
    message: str = Form(""),
):
    amount_c = to_cents_from_str(amount, 0)
    with Session(engine) as session:
        link, goal = _share_lookup(session, token)
        if link is None or goal is None:
            return _share_unavailable(request)
        if amount_c <= 0:
            set_notice(request, f"Enter an amount between €0.01 and {AMOUNT_LIMIT}.", "error")
            return RedirectResponse(f"/share/{token}", status_code=302)
        name = contributor_name.strip() or "A friend"
        record_contribution(
            session,
            goal,
            amount_c,
            source=SOURCE_EXTERNAL,
            contributor_name=name,
            message=message,
            link=link,
        )
        session.commit()
    set_notice(request, f"Thank you! {euro(amount_c)} was added.", "success")
    return RedirectResponse(f"/share/{token}", status_code=302)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
@app.get("/notifications", response_class=HTMLResponse)
def notifications_page(request: Request):
    if (redirect := require_user(request)) is not None:
        return redirect
    user_id = current_user_id(request)
    with Session(engine) as session:
        rows = session.exec(
            select(Notification).where(Notification.user_id == user_id).order_by(desc(Notification.created_at))
        ).all()
    items = "".join(
        f"<li class='card{'' if row.read_at else ' unread'}'><strong>{html_escape(row.subject)}</strong>"
        f"<div>{html_escape(row.body)}</div><div class='muted'>{row.created_at:%Y-%m-%d %H:%M}</div></li>"
        for row in rows
    )
    inner = (
        "<h2>Notifications</h2>"
        "<form method='post' action='/notifications/read'><button class='secondary'>Mark all as read</button></form>"
        f"<ul class='plain'>{items or '<li class=muted>Nothing yet.</li>'}</ul>"
    )
    return render_page(request, "Notifications", inner)


@app.post("/notifications/read")
def notifications_read(request: Request):
    if (redirect := require_user(request)) is not None:
        return redirect
    user_id = current_user_id(request)
    moment = now_utc()
    with Session(engine) as session:
        rows = session.exec(
            select(Notification).where(Notification.user_id == user_id, Notification.read_at == None)  # noqa: E711
        ).all()
        for row in rows:
            row.read_at = moment
            session.add(row)
        session.commit()
    return RedirectResponse("/notifications", status_code=302)


# ---------------------------------------------------------------------------
# Plant drawing & JSON API
# ---------------------------------------------------------------------------
@app.get("/plant.svg")
def plant_svg(
    percentage: float = Query(0.0),
    plant_type: Optional[str] = Query(None),
    size: str = Query("medium"),
):
    visual = describe_plant(percentage, plant_type)
    svg = render_plant_svg(visual, size=size if size in PLANT_SIZES else "medium")
    return Response(svg, media_type="image/svg+xml")


@app.get("/api/health")
def api_health():
    status = health_monitor.status()
    return JSONResponse(status, status_code=200 if status["database"] == "ok" else 503)


@app.get("/api/goals")
def api_goals(request: Request):
    user_id = current_user_id(request)
    if user_id is None:
        return JSONResponse({"authenticated": False, "goals": []})
    with Session(engine) as session:
        user = load_user(session, user_id)
        goals = visible_goals(session, user) if user else []
        payload = [goal_payload(session, goal) for goal in goals]
    return JSONResponse({"authenticated": True, "goals": payload})


@app.get("/api/plants")
def api_plants(percentage: Optional[float] = Query(None), plant_type: Optional[str] = Query(None)):
    if percentage is None:
        lower = 0.0
        stages = []
        for upper, stage in STAGE_THRESHOLDS:
            stages.append({"stage": stage.value, "from": lower, "to": upper})
            lower = upper
        stages.append({"stage": PlantStage.FRUITING.value, "from": lower, "to": None})
        return JSONResponse(
            {
                "stages": stages,
                "plant_types": {key: describe_plant(0, key).color for key in PLANT_TYPES},
            }
        )
    if not math.isfinite(percentage):
        return JSONResponse({"detail": "percentage must be a finite number"}, status_code=422)
    return JSONResponse(api_exporter.plant_snapshot(percentage, plant_type))


__all__ = [
    "app",
    "can_manage",
    "create_goal",
    "delete_goal_cascade",
    "delete_user_cascade",
    "goal_payload",
    "goal_percentage",
    "goal_visual",
    "now_utc",
    "record_contribution",
    "share_link_usable",
    "structured_logger",
]
