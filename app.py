"""
app.py
Streamlit gym credit ledger (owner-only): members, sessions, subscriptions.
Run: streamlit run app.py
"""

from __future__ import annotations

from datetime import date, datetime

import pandas as pd
import streamlit as st

import auth
import utils
from config import get_settings
from db import Database
from errors import LedgerError
from logs import bind_account, configure_logging
from members import MemberLedger
from models import (
    MEMBER_STATUSES,
    MEMBERSHIP_TYPES,
    SESSION_STATUSES,
    SESSION_UNVERIFIED,
    MemberFilters,
    MemberInput,
    MemberUpdate,
    SessionFilters,
    SessionInput,
    SessionUpdate,
    SubscriptionInput,
)
from organizations import OrganizationDirectory
from sessions import SessionLedger
from subscriptions import SubscriptionLedger

st.set_page_config(page_title="Gym Credit Ledger", layout="wide")

SESSION_COLUMNS = ["id", "member_name", "member_email", "start_time", "end_time", "status", "credits_used", "notes"]
MEMBER_COLUMNS = ["id", "full_name", "email", "phone", "membership_type", "status", "start_date", "end_date", "credits"]
SUBSCRIPTION_COLUMNS = ["id", "member_name", "amount", "credits", "created_at", "notes"]


@st.cache_resource
def get_services() -> dict:
    settings = get_settings()
    configure_logging(settings.debug)
    db = Database(settings.db_file)
    # Initialize DB + default owner if needed
    auth.init_db(db)
    return {
        "db": db,
        "members": MemberLedger(db),
        "sessions": SessionLedger(db),
        "subscriptions": SubscriptionLedger(db),
        "organizations": OrganizationDirectory(db),
    }


def require_login():
    if "account_id" not in st.session_state:
        st.session_state.account_id = None
    if "organization_id" not in st.session_state:
        st.session_state.organization_id = None


def start_session(svc: dict, account) -> None:
    orgs = svc["organizations"].get_user_organizations(account.id)
    st.session_state.account_id = account.id
    st.session_state.account_email = account.email
    st.session_state.organization_id = orgs[0].id if orgs else None


def logout():
    st.session_state.account_id = None
    st.session_state.organization_id = None
    bind_account(None)
    st.success("Logged out.")


def login_screen(svc: dict):
    st.title("🔐 Gym Owner Login")

    tab_login, tab_register = st.tabs(["Login", "Register"])
    with tab_login:
        col1, col2 = st.columns([1, 1])
        with col1:
            email = st.text_input("Email", value=get_settings().default_admin_email)
            password = st.text_input("Password", type="password")
            if st.button("Login", type="primary"):
                account = auth.login(svc["db"], email.strip(), password)
                if account:
                    start_session(svc, account)
                    st.rerun()
                else:
                    st.error("Invalid email or password.")
        with col2:
            st.info(
                "First run creates a default owner:\n\n"
                f"- email: **{get_settings().default_admin_email}**\n"
                "- password: **admin**\n\n"
                "You will be forced to change it on first login."
            )

    with tab_register:
        name = st.text_input("Your name")
        business_name = st.text_input("Business name")
        reg_email = st.text_input("Email", key="reg_email")
        reg_password = st.text_input("Password", type="password", key="reg_password")
        if st.button("Create account"):
            try:
                account, _ = auth.register(svc["db"], name, business_name, reg_email, reg_password)
            except LedgerError as exc:
                st.error(exc.message)
            else:
                start_session(svc, account)
                st.rerun()


def force_change_password_screen(svc: dict):
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the app.")
    new1 = st.text_input("New password", type="password")
    new2 = st.text_input("Confirm new password", type="password")

    if st.button("Update password", type="primary"):
        errors = auth.validate_new_password(new1, new2)
        if errors:
            st.error(errors[0])
            return
        auth.change_password(svc["db"], st.session_state.account_id, new1)
        st.success("Password updated. You can continue.")
        st.rerun()


def currency() -> str:
    org = get_services()["organizations"].get_by_id(st.session_state.organization_id)
    return org.currency if org else get_settings().default_currency


def dashboard_page(svc: dict):
    st.header("📊 Dashboard")

    owner = st.session_state.account_id
    m = svc["members"].get_stats(owner)
    s = svc["sessions"].get_stats(owner)
    sub = svc["subscriptions"].get_stats(st.session_state.organization_id)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Active members", m.active)
    c2.metric("Unverified sessions", s.unverified)
    c3.metric("Credits used", s.total_credits_used)
    c4.metric("Revenue", utils.format_currency(sub.total_amount, currency()))

    st.divider()

    st.subheader("Recent sessions")
    sessions = svc["sessions"].list(owner)[:10]
    if sessions:
        st.dataframe(utils.records_to_frame(sessions, SESSION_COLUMNS), use_container_width=True, hide_index=True)
    else:
        st.caption("No sessions recorded yet.")


def member_form(svc: dict, existing=None):
    if existing:
        st.subheader(f"✏️ Edit Member (ID: {existing.id})")
    else:
        st.subheader("➕ Add Member")

    col1, col2, col3 = st.columns(3)
    with col1:
        full_name = st.text_input("Full name", value=(existing.full_name if existing else ""))
        email = st.text_input("Email", value=(existing.email if existing else ""))
        phone = st.text_input("Phone (optional)", value=((existing.phone or "") if existing else ""))

    with col2:
        membership_type = st.selectbox(
            "Membership type",
            options=list(MEMBERSHIP_TYPES),
            index=(MEMBERSHIP_TYPES.index(existing.membership_type) if existing else 0),
        )
        start_date = st.date_input(
            "Start date", value=(utils.parse_iso(existing.start_date) if existing else date.today())
        ).isoformat()
        auto_end = utils.calc_end_date(start_date, membership_type)
        end_date = st.date_input(
            "End date (auto-calculated, editable)",
            value=utils.parse_iso(existing.end_date if existing else auto_end),
        ).isoformat()

    with col3:
        status = st.selectbox(
            "Status",
            options=list(MEMBER_STATUSES),
            index=MEMBER_STATUSES.index(existing.status if existing else utils.infer_status(end_date)),
        )
        # Balance changes go through sessions/subscriptions once the member exists
        credits = st.number_input(
            "Initial credits", min_value=0, step=1, value=(existing.credits if existing else 0),
            disabled=bool(existing),
        )
        notes = st.text_area("Notes", value=((existing.notes or "") if existing else ""))

    if st.button("Save", type="primary"):
        try:
            if existing:
                svc["members"].update(
                    MemberUpdate(
                        id=existing.id, full_name=full_name, email=email, phone=phone,
                        membership_type=membership_type, status=status,
                        start_date=start_date, end_date=end_date, notes=notes,
                    )
                )
                st.success("Member updated.")
            else:
                svc["members"].create(
                    st.session_state.account_id,
                    MemberInput(
                        full_name=full_name, email=email, phone=phone, membership_type=membership_type,
                        status=status, start_date=start_date, end_date=end_date,
                        credits=int(credits), notes=notes,
                    ),
                )
                st.success("Member record created successfully!")
        except LedgerError as exc:
            st.error(exc.message)
            return
        st.session_state.edit_member_id = None
        st.rerun()


def members_page(svc: dict):
    st.header("👥 Members")

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (name/email)")
        status_filter = st.selectbox("Status", ["All", *MEMBER_STATUSES])
        type_filter = st.selectbox("Membership type", ["All", *MEMBERSHIP_TYPES])

    filters = MemberFilters(
        status=None if status_filter == "All" else status_filter,
        membership_type=None if type_filter == "All" else type_filter,
        search=search,
    )
    members = svc["members"].list(st.session_state.account_id, filters)
    st.dataframe(utils.records_to_frame(members, MEMBER_COLUMNS), use_container_width=True, hide_index=True)

    st.divider()

    colA, colB = st.columns([1, 2])
    with colA:
        st.subheader("Select member")
        selected_id = st.selectbox("Member ID", options=["(none)"] + [str(m.id) for m in members])

    with colB:
        if selected_id != "(none)":
            st.subheader("Member actions")
            c1, c2, c3 = st.columns(3)
            with c1:
                if st.button("Edit"):
                    st.session_state.edit_member_id = int(selected_id)
                    st.rerun()
            with c2:
                if st.button("View sessions"):
                    st.session_state.sessions_member_id = int(selected_id)
                    st.session_state.page = "Sessions"
                    st.rerun()
            with c3:
                delete_confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
                if st.button("Delete", type="secondary", disabled=not delete_confirm):
                    try:
                        svc["members"].delete(int(selected_id))
                    except LedgerError as exc:
                        st.error(exc.message)
                    else:
                        st.success("Member deleted. Their sessions and payments are kept.")
                        st.rerun()

    st.divider()

    if st.session_state.get("edit_member_id"):
        existing = svc["members"].get_by_id(st.session_state.edit_member_id)
        if existing:
            member_form(svc, existing=existing)
        if st.button("Cancel edit"):
            st.session_state.edit_member_id = None
            st.rerun()
    else:
        member_form(svc, existing=None)


def sessions_page(svc: dict):
    st.header("🏃 Sessions")

    owner = st.session_state.account_id
    members = svc["members"].list(owner)
    if not members:
        st.info("No members yet. Add a member first.")
        return

    options = {f"{m.full_name} ({m.email}) - {m.credits} credits": m.id for m in members}
    labels = list(options)
    default_id = st.session_state.get("sessions_member_id")
    default_index = next((i for i, k in enumerate(labels) if options[k] == default_id), 0)

    st.subheader("Record session")
    org = svc["organizations"].get_by_id(st.session_state.organization_id)
    length = org.session_default_length_minutes if org else get_settings().default_session_length_minutes
    c1, c2, c3, c4 = st.columns([2, 1, 1, 1])
    with c1:
        chosen = st.selectbox("Member", labels, index=default_index)
    with c2:
        day = st.date_input("Date", value=date.today())
    with c3:
        start = st.time_input("Start", value=datetime.now().time().replace(second=0, microsecond=0))
    with c4:
        credits_used = st.number_input("Credits used", min_value=1, step=1, value=1)
    notes = st.text_input("Notes", value="")
    start_time = datetime.combine(day, start).isoformat()
    st.caption(f"Ends at {utils.default_end_time(start_time, length)[11:16]} ({length} min default)")

    if st.button("Record session", type="primary"):
        try:
            svc["sessions"].create(
                owner,
                SessionInput(
                    member_id=options[chosen],
                    start_time=start_time,
                    end_time=utils.default_end_time(start_time, length),
                    credits_used=int(credits_used),
                    notes=notes,
                ),
            )
        except LedgerError as exc:
            st.error(exc.message)
        else:
            st.success("Session recorded.")
            st.rerun()

    st.divider()

    st.subheader("Session history")
    f1, f2, f3, f4 = st.columns(4)
    with f1:
        member_filter = st.selectbox("Member", ["All", *labels], key="filter_member")
    with f2:
        status_filter = st.selectbox("Status", ["All", *SESSION_STATUSES], key="filter_status")
    with f3:
        from_date = st.date_input("From", value=None, key="filter_from")
    with f4:
        to_date = st.date_input("To", value=None, key="filter_to")

    filters = SessionFilters(
        member_id=None if member_filter == "All" else options[member_filter],
        status=None if status_filter == "All" else status_filter,
        start_date=from_date.isoformat() if from_date else None,
        end_date=to_date.isoformat() if to_date else None,
    )
    sessions = svc["sessions"].list(owner, filters)
    if not sessions:
        st.caption("No sessions match these filters.")
        return
    st.dataframe(utils.records_to_frame(sessions, SESSION_COLUMNS), use_container_width=True, hide_index=True)

    st.subheader("Session actions")
    by_id = {str(s.id): s for s in sessions}
    selected = st.selectbox("Session ID", list(by_id))
    session = by_id[selected]
    a1, a2, a3 = st.columns(3)
    with a1:
        if st.button("Verify", disabled=session.status != SESSION_UNVERIFIED):
            svc["sessions"].verify(session.id, owner)
            st.rerun()
    with a2:
        new_credits = st.number_input("Credits used", min_value=1, step=1, value=session.credits_used, key="edit_credits")
        if st.button("Save credits"):
            try:
                svc["sessions"].update(SessionUpdate(id=session.id, credits_used=int(new_credits)), owner)
            except LedgerError as exc:
                st.error(exc.message)
            else:
                st.rerun()
    with a3:
        st.caption(f"Deleting refunds {session.credits_used} credit(s) to {session.member_name}.")
        if st.button("Delete session"):
            try:
                svc["sessions"].delete(session.id, owner)
            except LedgerError as exc:
                st.error(exc.message)
            else:
                st.rerun()

    with st.expander("Edit times and notes"):
        started = utils.parse_iso_datetime(session.start_time)
        ended = utils.parse_iso_datetime(session.end_time) if session.end_time else None
        with st.form(f"edit_session_{session.id}"):
            t1, t2 = st.columns(2)
            with t1:
                start_day = st.date_input("Start date", value=started.date())
                start_at = st.time_input("Start time", value=started.time().replace(tzinfo=None))
            with t2:
                ongoing = st.checkbox("No end time (ongoing)", value=ended is None)
                end_day = st.date_input("End date", value=(ended or started).date())
                end_at = st.time_input("End time", value=(ended or started).time().replace(tzinfo=None))
            notes = st.text_area("Notes", value=session.notes or "")
            if st.form_submit_button("Save session"):
                update = SessionUpdate(
                    id=session.id,
                    start_time=datetime.combine(start_day, start_at).isoformat(),
                    end_time="" if ongoing else datetime.combine(end_day, end_at).isoformat(),
                    notes=notes,
                )
                try:
                    svc["sessions"].update(update, owner)
                except LedgerError as exc:
                    st.error(exc.message)
                else:
                    st.rerun()


def subscriptions_page(svc: dict):
    st.header("💳 Subscriptions")

    org_id = st.session_state.organization_id
    cur = currency()
    members = svc["members"].list(st.session_state.account_id)
    if not members:
        st.info("No members yet. Add a member first.")
        return

    st.subheader("Record payment")
    st.caption("Record a payment and add credits to a member")
    options = {f"{m.full_name} ({m.email}) - {m.credits} credits": m.id for m in members}
    c1, c2, c3 = st.columns([2, 1, 1])
    with c1:
        chosen = st.selectbox("Member", list(options))
    with c2:
        amount = st.number_input(f"Amount ({utils.currency_symbol(cur)})", min_value=0.0, step=1.0, value=0.0)
    with c3:
        credits = st.number_input("Credits", min_value=0, step=1, value=10)
    notes = st.text_input("Notes", value="", key="sub_notes")

    if st.button("Record payment", type="primary"):
        try:
            sub = svc["subscriptions"].create(
                SubscriptionInput(member_id=options[chosen], amount=float(amount), credits=int(credits), notes=notes),
                org_id,
            )
        except LedgerError as exc:
            st.error(exc.message)
        else:
            st.success(f"Subscription created! {sub.credits} credits added to {sub.member_name}")
            st.rerun()

    st.divider()

    stats = svc["subscriptions"].get_stats(org_id)
    s1, s2, s3 = st.columns(3)
    s1.metric("Payments", stats.total)
    s2.metric("Total amount", utils.format_currency(stats.total_amount, cur))
    s3.metric("Credits granted", stats.total_credits)

    subscriptions = svc["subscriptions"].list(org_id)
    if not subscriptions:
        st.caption("No payments recorded yet.")
        return
    df = utils.records_to_frame(subscriptions, SUBSCRIPTION_COLUMNS)
    df["amount"] = df["amount"].map(lambda a: utils.format_currency(a, cur))
    st.dataframe(df, use_container_width=True, hide_index=True)

    st.subheader("Delete payment record")
    st.warning(
        "Deleting this subscription will NOT remove the credits from the member's account. "
        "This only removes the payment record."
    )
    selected = st.selectbox("Subscription ID", [str(s.id) for s in subscriptions])
    password = st.text_input("Enter your password to confirm", type="password", key="sub_delete_pw")
    if st.button("Delete subscription"):
        if not password:
            st.error("Please enter your password")
        elif not auth.reauthenticate(svc["db"], st.session_state.account_id, password):
            st.error("Invalid password")
        else:
            try:
                svc["subscriptions"].delete(int(selected), org_id)
            except LedgerError as exc:
                st.error(exc.message)
            else:
                st.success("Subscription deleted.")
                st.rerun()


def reports_page(svc: dict):
    st.header("🧾 Reports")

    owner = st.session_state.account_id
    org_id = st.session_state.organization_id

    exports = [
        ("members", svc["members"].list(owner), MEMBER_COLUMNS),
        ("sessions", svc["sessions"].list(owner), SESSION_COLUMNS),
        ("subscriptions", svc["subscriptions"].list(org_id), SUBSCRIPTION_COLUMNS),
    ]
    for name, records, columns in exports:
        st.subheader(f"Export {name} to CSV")
        if records:
            st.download_button(
                f"Download {name}.csv",
                data=utils.records_to_csv_bytes(records, columns),
                file_name=f"{name}.csv",
                mime="text/csv",
            )
        else:
            st.caption(f"No {name} to export.")

    st.divider()

    st.subheader("Revenue summary by month")
    df: pd.DataFrame = utils.revenue_summary_by_month(svc["subscriptions"].list(org_id))
    st.dataframe(df, use_container_width=True, hide_index=True)


def settings_page(svc: dict):
    st.header("⚙️ Settings")

    org = svc["organizations"].get_by_id(st.session_state.organization_id)
    if org:
        st.subheader("Organization")
        name = st.text_input("Name", value=org.name)
        codes = list(utils.CURRENCIES)
        code = st.selectbox(
            "Currency",
            codes,
            index=codes.index(org.currency) if org.currency in codes else 0,
            format_func=lambda c: f"{c} - {utils.currency_name(c)}",
        )
        length = st.number_input(
            "Default session length (minutes)", min_value=1, step=5, value=org.session_default_length_minutes
        )
        if st.button("Save organization", type="primary"):
            try:
                svc["organizations"].update(org.id, name)
                svc["organizations"].update_settings(org.id, currency=code, session_default_length_minutes=int(length))
            except LedgerError as exc:
                st.error(exc.message)
            else:
                st.success("Organization updated.")

    st.divider()

    st.subheader("Change password")
    p1 = st.text_input("New password", type="password")
    p2 = st.text_input("Confirm new password", type="password")
    if st.button("Update password"):
        errors = auth.validate_new_password(p1, p2)
        if errors:
            st.error(errors[0])
        else:
            auth.change_password(svc["db"], st.session_state.account_id, p1)
            st.success("Password updated.")

    st.divider()

    st.subheader("Sample data")
    st.caption("Insert 3 sample members with a few payments and sessions (adds new rows each run).")
    if st.button("Insert sample data"):
        utils.insert_sample_data(
            svc["members"], svc["sessions"], svc["subscriptions"],
            st.session_state.account_id, st.session_state.organization_id,
        )
        st.success("Sample data inserted.")
        st.rerun()


def main_app(svc: dict):
    st.sidebar.title("🏋️ Gym Credits")
    st.sidebar.caption(f"Logged in as: {st.session_state.get('account_email')}")

    pages = {
        "Dashboard": dashboard_page,
        "Members": members_page,
        "Sessions": sessions_page,
        "Subscriptions": subscriptions_page,
        "Reports": reports_page,
        "Settings": settings_page,
    }
    names = list(pages)
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", names, index=names.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    pages[st.session_state.page](svc)


# --------- App entry ---------

def run():
    svc = get_services()
    require_login()

    if not st.session_state.account_id:
        login_screen(svc)
        return

    bind_account(st.session_state.account_id)

    # Force password change on first login after DB creation
    if svc["db"].is_force_password_change(st.session_state.account_id):
        force_change_password_screen(svc)
        return

    main_app(svc)


if __name__ == "__main__":
    run()
