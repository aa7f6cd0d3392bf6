"""
app.py
Streamlit Membership & Invoicing Administration (single admin).
Run: streamlit run app.py
"""

from __future__ import annotations

import base64
import logging
import os
import time
from dataclasses import replace
from datetime import date, datetime, timedelta

import pandas as pd
import streamlit as st

import auth
import catalog
import db
import documents
import engine
import stats
import utils
from models import (
    AdminProfile,
    Delegate,
    FinancialYear,
    InvoiceStatus,
    MembershipError,
    MembershipLevel,
    MemberStatus,
)

logging.basicConfig(
    level=os.environ.get("MEMBERSHIP_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SESSION_TIMEOUT_SECONDS = 10 * 60

st.set_page_config(page_title="Membership Administration", layout="wide")


def init_once():
    # Initialize DB + sample data and default password if needed
    if "db_ready" not in st.session_state:
        db.init_db(auth.hash_password(auth.DEFAULT_PASSWORD))
        st.session_state.db_ready = True


def require_login():
    if "logged_in" not in st.session_state:
        st.session_state.logged_in = False
    if "fy_label" not in st.session_state:
        st.session_state.fy_label = FinancialYear.for_date(date.today()).label
    if "last_activity" not in st.session_state:
        st.session_state.last_activity = time.monotonic()


def logout(message: str = "Logged out."):
    auth.logout()
    st.session_state.logged_in = False
    st.session_state.selected_member_id = None
    st.session_state.flash = message


def check_session_timeout() -> bool:
    """Log out after SESSION_TIMEOUT_SECONDS without any interaction. Returns True when it did."""
    now = time.monotonic()
    idle = now - st.session_state.last_activity
    st.session_state.last_activity = now
    if st.session_state.logged_in and idle > SESSION_TIMEOUT_SECONDS:
        logout("Your session has expired due to inactivity. You have been logged out.")
        return True
    return False


def show_flash():
    msg = st.session_state.pop("flash", None)
    if msg:
        st.info(msg)


def login_screen():
    st.title("🔐 Membership Admin Login")
    show_flash()

    col1, col2 = st.columns([1, 1])
    with col1:
        password = st.text_input("Password", type="password")
        if st.button("Login", type="primary"):
            if auth.login(password):
                st.session_state.logged_in = True
                st.session_state.last_activity = time.monotonic()
                st.rerun()
            else:
                st.error("Incorrect password. Please try again.")

    with col2:
        st.info(
            "First run uses the default password **admin123**.\n\n"
            "You will be forced to change it on first login."
        )


def force_change_password_screen():
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the app.")
    new1 = st.text_input("New password", type="password")
    new2 = st.text_input("Confirm new password", type="password")

    if st.button("Update password", type="primary"):
        try:
            auth.change_password(None, new1, new2)
        except MembershipError as e:
            show_errors(e)
            return
        st.success("Password updated. You can continue.")
        st.rerun()


# ---------- Helpers ----------

def show_errors(e: MembershipError):
    for msg in getattr(e, "errors", [str(e)]):
        st.error(msg)


def selected_fy() -> FinancialYear:
    return FinancialYear.from_label(st.session_state.fy_label)


def fy_selector(key: str = "fy_select") -> FinancialYear:
    years = utils.financial_years(date.today())
    labels = [fy.label for fy in years]
    if st.session_state.fy_label not in labels:
        labels.insert(0, st.session_state.fy_label)
    st.session_state.fy_label = st.selectbox("Financial year", labels, index=labels.index(st.session_state.fy_label), key=key)
    return selected_fy()


def level_selectbox(groups, label: str, current_id: str | None = None, key: str | None = None, allow_all: bool = False,
                    all_label: str = "All levels"):
    options = (["all"] if allow_all else []) + [lvl.id for lvl in catalog.all_levels(groups)]
    if not options:
        st.warning("No membership levels defined yet.")
        return None
    index = options.index(current_id) if current_id in options else 0

    def fmt(level_id: str) -> str:
        if level_id == "all":
            return all_label
        return f"{catalog.group_of(groups, level_id)} / {catalog.level_name(groups, level_id)}"

    return st.selectbox(label, options, index=index, format_func=fmt, key=key)


def persist_payment(state, result: engine.PaymentResult):
    db.save_invoices(engine.replace_invoice(state.invoices, result.invoice))
    if result.member_patch is not None:
        db.save_members(engine.apply_member_patch(state.members, result.member_patch))
        st.session_state.flash = f"Membership term extended to {result.member_patch.end_date}."


def projected_frame(projected, groups, fy: FinancialYear) -> pd.DataFrame:
    rows = []
    for p in projected:
        m = p.member
        rows.append(
            {
                "id": m.id,
                "name": m.name,
                "level": catalog.level_name(groups, m.membership_level_id),
                "group": catalog.group_of(groups, m.membership_level_id) or "-",
                "contact": m.contact_name,
                "telephone": m.telephone,
                "status": f"Cancelled for {fy.label}" if m.is_cancelled_for(fy.label) else p.status.value,
                "term": f"{m.start_date} → {m.end_date}",
            }
        )
    return pd.DataFrame(rows, columns=["id", "name", "level", "group", "contact", "telephone", "status", "term"])


# ---------- Pages ----------

def dashboard_page(state):
    st.header("📊 Dashboard")
    fy = fy_selector("dash_fy")

    projected = engine.project_statuses(state.members, state.invoices, fy)
    s = stats.dashboard_stats(projected, state.invoices, fy)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Active members", s.total_members)
    c2.metric(f"Paid ({fy.label})", s.paid)
    c3.metric("Outstanding", s.outstanding)
    c4.metric("Revenue this FY", f"${s.total_revenue:,.2f}")

    st.divider()

    left, right = st.columns(2)
    with left:
        st.subheader("Status breakdown")
        breakdown = s.breakdown()
        if breakdown:
            st.bar_chart(pd.DataFrame({"members": breakdown}))
        else:
            st.caption("No active members for this year.")
    with right:
        st.subheader("Recent activity")
        activity = stats.recent_activity(state.members, state.invoices)
        if activity:
            for a in activity:
                icon = "💵" if a.kind == "payment" else "➕"
                st.write(f"{icon} {a.description} **{a.subject}**  \n_{a.when:%d %b %Y}_")
        else:
            st.caption("No recent activity.")


def member_form(state, fy: FinancialYear, existing=None):
    groups = state.membership_levels
    if existing:
        st.subheader(f"✏️ Edit Member ({existing.name})")
    else:
        st.subheader("➕ Add Member")

    col1, col2, col3 = st.columns(3)
    with col1:
        name = st.text_input("Organisation / member name", value=existing.name if existing else "")
        contact_name = st.text_input("Contact name", value=existing.contact_name if existing else "")
        telephone = st.text_input("Telephone", value=existing.telephone if existing else "")
    with col2:
        level_id = level_selectbox(groups, "Membership level", existing.membership_level_id if existing else None, key="member_level")
        start_date = st.date_input(
            "Start date", value=utils.parse_iso(existing.start_date) if existing else fy.start_date
        ).isoformat()
        end_date = st.date_input(
            "End date", value=utils.parse_iso(existing.end_date) if existing else fy.end_date
        ).isoformat()
    with col3:
        postal_address = st.text_area("Postal address", value=existing.postal_address if existing else "")

    level = catalog.find_level(groups, level_id) if level_id else None
    delegates = catalog.sync_delegates(existing.delegates if existing else (), level)
    if delegates:
        st.caption("Delegates")
        named = []
        counts = {"delegate": 0, "youth_delegate": 0}
        for i, d in enumerate(delegates):
            counts[d.type] += 1
            label = f"Delegate {counts[d.type]}" if d.type == "delegate" else f"Youth Delegate {counts[d.type]}"
            named.append(Delegate(st.text_input(label, value=d.name, key=f"delegate_{i}"), d.type))
        delegates = tuple(named)

    if st.button("Save", type="primary"):
        if level is None:
            st.error("Membership level is required.")
            return
        try:
            if existing:
                updated = catalog.update_member(
                    existing, level, name=name, membership_level_id=level.id, start_date=start_date, end_date=end_date,
                    contact_name=contact_name.strip(), telephone=telephone.strip(),
                    postal_address=postal_address.strip(), delegates=delegates,
                )
                db.save_members(catalog.replace_member(state.members, updated))
                st.session_state.edit_member_id = None
                st.success("Member updated.")
            else:
                member = catalog.create_member(
                    name, level, start_date, end_date, contact_name, telephone, postal_address, delegates
                )
                invoice = engine.invoice_for_new_member(member, level, fy)
                db.save_members(list(state.members) + [member])
                db.save_invoices(list(state.invoices) + [invoice])
                st.success("Member added.")
        except MembershipError as e:
            show_errors(e)
            return
        st.rerun()


def payment_form(state, invoice, key: str):
    st.write(
        f"Invoice **{invoice.id}** ({invoice.coverage_label()}): amount **${invoice.amount:,.2f}**, "
        f"paid **${invoice.amount_paid:,.2f}**, due **${invoice.balance:,.2f}**"
    )
    with st.form(f"payment_{key}"):
        c1, c2 = st.columns(2)
        with c1:
            paid_date = st.date_input("Payment date", value=date.today()).isoformat()
        with c2:
            amount = st.number_input(
                "Amount to pay",
                min_value=0.0,
                max_value=float(max(invoice.balance, 0)),
                value=float(max(invoice.balance, 0)),
                step=1.0,
            )
        details = st.text_area("Payment details (method, reference, etc.)")
        if st.form_submit_button("Save payment", type="primary"):
            try:
                result = engine.record_payment(invoice, amount, paid_date, details)
            except MembershipError as e:
                show_errors(e)
                return
            persist_payment(state, result)
            st.rerun()


def generate_invoice_form(state, member):
    groups = state.membership_levels
    years = utils.financial_years(date.today())
    current = FinancialYear.for_date(date.today())
    labels = [fy.label for fy in years]

    with st.form(f"new_invoice_{member.id}"):
        c1, c2, c3 = st.columns(3)
        with c1:
            fy_label = st.selectbox("Financial year", labels, index=labels.index(current.label))
            level_id = level_selectbox(groups, "Level", member.membership_level_id, key=f"inv_level_{member.id}")
        with c2:
            invoice_date = st.date_input("Invoice date", value=date.today()).isoformat()
            due_date = st.date_input("Due date", value=date.today() + timedelta(days=engine.DEFAULT_DUE_DAYS)).isoformat()
        with c3:
            number_of_years = st.number_input("Number of years", min_value=1, max_value=10, value=1, step=1)
            include_joining_fee = st.checkbox("Include joining fee")
            waive_fee = st.checkbox("Waive fee (complimentary)")
        notes = st.text_area("Notes")

        if st.form_submit_button("Generate invoice", type="primary"):
            options = engine.InvoiceOptions(
                financial_year=FinancialYear.from_label(fy_label),
                level=catalog.find_level(groups, level_id) if level_id else None,
                number_of_years=int(number_of_years),
                invoice_date=invoice_date,
                due_date=due_date,
                waive_fee=waive_fee,
                include_joining_fee=include_joining_fee,
                notes=notes,
            )
            try:
                invoice = engine.generate_invoice(member, catalog.find_level(groups, member.membership_level_id), options)
            except MembershipError as e:
                show_errors(e)
                return
            db.save_invoices(list(state.invoices) + [invoice])
            st.session_state.flash = f"Invoice {invoice.id} created for ${invoice.amount:,.2f}."
            st.rerun()


def member_details(state, projected_member, fy: FinancialYear):
    member = utils.first_by_id(state.members, projected_member.id)
    groups = state.membership_levels
    st.subheader(f"📇 {member.name}")
    st.write(
        f"Level: **{catalog.level_name(groups, projected_member.member.membership_level_id)}** | "
        f"Status ({fy.label}): **{projected_member.status.value}** | Term: **{member.start_date} → {member.end_date}**"
    )
    st.write(f"Contact: {member.contact_name or '-'} | Tel: {member.telephone or '-'} | Address: {member.postal_address or '-'}")
    if member.delegates:
        st.write("Delegates: " + ", ".join(f"{d.name or '(unnamed)'} ({d.type.replace('_', ' ')})" for d in member.delegates))

    c1, c2, c3 = st.columns(3)
    with c1:
        if st.button("Edit member"):
            st.session_state.edit_member_id = member.id
            st.rerun()
    with c2:
        cancelled = member.is_cancelled_for(fy.label)
        action = "Restore" if cancelled else "Cancel"
        confirm = st.checkbox(f"Confirm {action.lower()} for {fy.label}", key=f"cancel_confirm_{member.id}")
        if st.button(f"{action} membership for {fy.label}", disabled=not confirm):
            db.save_members(catalog.replace_member(state.members, engine.toggle_cancellation(member, fy.label)))
            st.session_state.flash = f"Member '{member.name}' has been {action.lower()}ed for {fy.label}."
            st.rerun()
    with c3:
        archive_ok = st.checkbox("Confirm archive (permanent)", key=f"archive_confirm_{member.id}")
        if st.button("Archive member", disabled=member.is_globally_archived or not archive_ok):
            db.save_members(catalog.replace_member(state.members, catalog.archive_member(member)))
            st.rerun()

    st.markdown("#### Invoice history")
    invoices = sorted(
        (inv for inv in state.invoices if inv.member_id == member.id),
        key=lambda inv: utils.parse_iso(inv.date),
        reverse=True,
    )
    if not invoices:
        st.caption("No invoices for this member yet.")
    else:
        st.dataframe(utils.invoices_frame(invoices, state.members), use_container_width=True, hide_index=True)
        by_id = {inv.id: inv for inv in invoices}
        inv_id = st.selectbox("Invoice", list(by_id), format_func=lambda i: f"{i} · {by_id[i].coverage_label()} · {by_id[i].status.value}")
        invoice = by_id[inv_id]
        open_invoice = invoice.status in (InvoiceStatus.UNPAID, InvoiceStatus.PARTIALLY_PAID)

        a1, a2, a3 = st.columns(3)
        with a1:
            if st.button("Mark as fully paid", disabled=not open_invoice):
                try:
                    persist_payment(state, engine.mark_fully_paid(invoice))
                except MembershipError as e:
                    show_errors(e)
                else:
                    st.rerun()
        with a2:
            void_ok = st.checkbox("Confirm void (cannot be undone)", key=f"void_confirm_{invoice.id}", disabled=not open_invoice)
            if st.button("Void invoice", disabled=not (open_invoice and void_ok)):
                try:
                    db.save_invoices(engine.replace_invoice(state.invoices, engine.void_invoice(invoice)))
                except MembershipError as e:
                    show_errors(e)
                else:
                    st.rerun()
        with a3:
            st.download_button(
                "Download PDF",
                data=documents.invoice_pdf(member, invoice, state.settings),
                file_name=documents.invoice_filename(member, invoice),
                mime="application/pdf",
            )

        if invoice.status != InvoiceStatus.VOID:
            with st.expander("Record / edit payment"):
                payment_form(state, invoice, key=f"details_{invoice.id}")

    with st.expander("Generate new invoice"):
        generate_invoice_form(state, member)


def members_page(state):
    st.header("👥 Members")
    groups = state.membership_levels

    with st.sidebar:
        st.subheader("Search & Filters")
        fy = fy_selector("members_fy")
        search = st.text_input("Search (name)")
        level_id = level_selectbox(groups, "Level", key="filter_level", allow_all=True)
        status_label = st.selectbox("Status", ["All"] + [s.value for s in MemberStatus])
        show_cancelled = st.checkbox(f"Show cancelled for {fy.label}")

    projected = engine.project_statuses(state.members, state.invoices, fy)
    listed = stats.filter_member_list(
        projected,
        fy,
        search=search,
        level_id=None if level_id in (None, "all") else level_id,
        status=None if status_label == "All" else MemberStatus(status_label),
        show_cancelled=show_cancelled,
    )
    st.dataframe(projected_frame(listed, groups, fy), use_container_width=True, hide_index=True)

    st.divider()

    by_id = {p.id: p for p in listed}
    colA, colB = st.columns([1, 2])
    with colA:
        st.subheader("Select member")
        selected_id = st.selectbox("Member", ["(none)"] + list(by_id), format_func=lambda i: by_id[i].member.name if i in by_id else i)

    with colB:
        if selected_id != "(none)":
            outstanding = engine.outstanding_invoice(state.invoices, selected_id, fy)
            st.subheader("Payment")
            if outstanding is None:
                st.caption("No outstanding invoice for this member in the selected financial year.")
            else:
                payment_form(state, outstanding, key=f"list_{outstanding.id}")

    st.divider()

    if selected_id != "(none)" and not st.session_state.get("edit_member_id"):
        member_details(state, by_id[selected_id], fy)
        st.divider()

    if st.session_state.get("edit_member_id"):
        existing = utils.first_by_id(state.members, st.session_state.edit_member_id)
        if existing:
            member_form(state, fy, existing=existing)
        if st.button("Cancel edit"):
            st.session_state.edit_member_id = None
            st.rerun()
    else:
        member_form(state, fy)


def bulk_invoices_page(state):
    st.header("🧾 Generate Invoices")
    groups = state.membership_levels
    viewed = selected_fy()
    st.caption(f"Currently viewed financial year: **{viewed.label}**")

    years = utils.financial_years(date.today())
    labels = [fy.label for fy in years]
    c1, c2, c3 = st.columns(3)
    with c1:
        mode = st.selectbox(
            "Generate for",
            list(engine.BULK_MODES),
            index=list(engine.BULK_MODES).index(engine.BULK_UNPAID),
            format_func={
                engine.BULK_ALL: "All active members",
                engine.BULK_UNPAID: "Unpaid members (viewed year)",
                engine.BULK_LEVEL: "Members at one level",
            }.get,
        )
        level_id = level_selectbox(groups, "Level", key="bulk_level") if mode == engine.BULK_LEVEL else None
    with c2:
        target_label = st.selectbox("Financial year to invoice", labels,
                                    index=labels.index(viewed.label) if viewed.label in labels else 0)
        due_date = st.date_input("Due date for invoices", value=date.today() + timedelta(days=engine.DEFAULT_DUE_DAYS)).isoformat()
    with c3:
        include_joining = st.toggle("Include joining fee for first-year members", value=True)

    target = FinancialYear.from_label(target_label)
    options = engine.BulkOptions(viewed_financial_year=viewed, level_id=level_id, due_date=due_date,
                                 include_joining_fee=include_joining)
    projected = engine.project_statuses(state.members, state.invoices, viewed)
    targets = engine.members_to_invoice(projected, state.invoices, mode, target, options)

    st.info(
        f"This will generate new invoices for **{len(targets)} member(s)** for the **{target.label}** financial year.\n\n"
        "Members who already hold an invoice for that year, and archived members, are skipped. "
        "The 'unpaid' option only applies to the currently viewed financial year."
    )

    if st.button(f"Generate ({len(targets)})", type="primary", disabled=not targets):
        try:
            created = engine.generate_bulk_invoices(state.members, state.invoices, groups, mode, target, options)
        except MembershipError as e:
            show_errors(e)
            return
        if not created:
            st.warning("No new invoices were generated based on the current selection and filters.")
            return
        db.save_invoices(list(state.invoices) + created)
        members = {m.id: m for m in state.members}
        st.session_state.bulk_zip = (
            documents.bundle_filename(target.label),
            documents.invoices_zip(((members[inv.member_id], inv) for inv in created), state.settings),
            len(created),
        )
        st.rerun()

    if st.session_state.get("bulk_zip"):
        name, data, count = st.session_state.bulk_zip
        st.success(f"{count} invoice(s) generated.")
        st.download_button(f"Download {name}", data=data, file_name=name, mime="application/zip")


def levels_page(state):
    st.header("🏷️ Membership Levels")
    groups = state.membership_levels
    counts = catalog.level_member_counts(groups, state.members)

    rows = [
        {
            "group": g.group_name,
            "id": lvl.id,
            "level": lvl.name,
            "joining fee": lvl.joining_fee,
            "annual fee": lvl.annual_fee,
            "delegates": lvl.delegates,
            "youth delegates": lvl.youth_delegates,
            "active members": counts.get(lvl.id, 0),
        }
        for g in groups
        for lvl in g.levels
    ]
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    st.divider()

    choice = level_selectbox(groups, "Edit level", key="edit_level", allow_all=True, all_label="(new level)") or "all"
    existing = catalog.find_level(groups, choice) if choice != "all" else None
    st.subheader(f"✏️ Edit {existing.name}" if existing else "➕ Add Level")

    group_names = [g.group_name for g in groups]
    current_group = catalog.group_of(groups, existing.id) if existing else None
    c1, c2 = st.columns(2)
    with c1:
        name = st.text_input("Level name", value=existing.name if existing else "")
        group_choice = st.selectbox("Group", group_names + ["(new group)"],
                                    index=group_names.index(current_group) if current_group in group_names else 0)
        new_group = st.text_input("New group name") if group_choice == "(new group)" else ""
    with c2:
        joining_fee = st.number_input("Joining fee", min_value=0.0, value=float(existing.joining_fee if existing else 0), step=1.0)
        annual_fee = st.number_input("Annual fee", min_value=0.0, value=float(existing.annual_fee if existing else 0), step=1.0)
        delegates = st.number_input("Delegates", min_value=0, value=existing.delegates if existing else 0, step=1)
        youth = st.number_input("Youth delegates", min_value=0, value=existing.youth_delegates if existing else 0, step=1)

    if st.button("Save level", type="primary"):
        group_name = new_group if group_choice == "(new group)" else group_choice
        level = MembershipLevel(
            id=existing.id if existing else catalog.new_level_id(name, datetime.now()),
            name=name.strip(),
            joining_fee=joining_fee,
            annual_fee=annual_fee,
            delegates=int(delegates),
            youth_delegates=int(youth),
        )
        try:
            db.save_levels(catalog.save_level(groups, level, group_name))
        except MembershipError as e:
            show_errors(e)
            return
        st.success("Level saved.")
        st.rerun()


def reports_page(state):
    st.header("📑 Reports")

    st.subheader("Export members to CSV")
    if state.members:
        st.download_button("Download members.csv", data=utils.members_to_csv_bytes(state.members),
                           file_name="members.csv", mime="text/csv")
    else:
        st.caption("No members to export.")

    st.divider()

    st.subheader("Export invoices to CSV")
    if state.invoices:
        st.download_button("Download invoices.csv", data=utils.invoices_to_csv_bytes(state.invoices, state.members),
                           file_name="invoices.csv", mime="text/csv")
    else:
        st.caption("No invoices to export.")

    st.divider()

    st.subheader("Revenue summary by month")
    st.dataframe(utils.revenue_summary_by_month(state.invoices), use_container_width=True, hide_index=True)


def settings_page(state):
    st.header("⚙️ Settings")
    s = state.settings

    st.subheader("Organisation logo")
    if s.custom_logo:
        st.image(s.custom_logo, width=200)
    upload = st.file_uploader("Upload logo", type=["png", "jpg", "jpeg"])
    c1, c2 = st.columns(2)
    with c1:
        if st.button("Save logo", disabled=upload is None):
            data_url = f"data:{upload.type};base64,{base64.b64encode(upload.getvalue()).decode('ascii')}"
            db.save_settings(replace(s, custom_logo=data_url))
            st.rerun()
    with c2:
        if st.button("Remove logo", disabled=not s.custom_logo):
            db.save_settings(replace(s, custom_logo=None))
            st.rerun()

    st.divider()

    st.subheader("Payment instructions")
    text = st.text_area("Printed on every unpaid invoice", value=s.payment_instructions, height=200)
    if st.button("Save instructions", type="primary"):
        db.save_settings(replace(s, payment_instructions=text))
        st.success("Settings saved.")


def profile_page(state):
    st.header("👤 Admin Profile")

    st.subheader("Admin details")
    name = st.text_input("Name", value=state.admin_profile.name)
    email = st.text_input("Email", value=state.admin_profile.email)
    if st.button("Save details"):
        db.save_admin_profile(AdminProfile(name.strip(), email.strip()))
        st.success("Admin details updated successfully!")

    st.divider()

    st.subheader("Change password")
    old = st.text_input("Current password", type="password")
    p1 = st.text_input("New password", type="password")
    p2 = st.text_input("Confirm new password", type="password")
    if st.button("Update password", type="primary"):
        try:
            auth.change_password(old, p1, p2)
        except MembershipError as e:
            show_errors(e)
        else:
            st.success("Password updated successfully!")

    st.divider()

    st.subheader("Session history")
    c1, c2 = st.columns(2)
    c1.dataframe(pd.DataFrame({"last logins": db.get_timestamps(db.LOGIN_TIMESTAMPS)}), hide_index=True)
    c2.dataframe(pd.DataFrame({"last logouts": db.get_timestamps(db.LOGOUT_TIMESTAMPS)}), hide_index=True)

    st.divider()

    st.subheader("Data management")
    st.download_button(
        "Export data (JSON backup)",
        data=utils.export_backup(state),
        file_name=utils.backup_filename(date.today()),
        mime="application/json",
    )

    upload = st.file_uploader("Import backup (overwrites all current data)", type=["json"])
    import_ok = st.checkbox("I understand importing overwrites all data")
    if st.button("Import & overwrite", disabled=upload is None or not import_ok):
        try:
            imported = auth.with_hashed_password(utils.parse_backup(upload.getvalue()))
        except MembershipError as e:
            st.error(f"An error occurred while importing data: {e}")
        else:
            db.replace_state(imported)
            st.success("Data imported successfully.")
            st.rerun()

    reset_ok = st.checkbox("I understand resetting restores the sample data and cannot be undone")
    if st.button("Reset application data", disabled=not reset_ok):
        db.reset_data(auth.hash_password(auth.DEFAULT_PASSWORD))
        logout("Application data was reset. Log in with the default password.")
        st.rerun()


def main_app():
    st.sidebar.title("🗂️ Membership Admin")
    st.sidebar.caption(f"Viewing financial year: {st.session_state.fy_label}")

    pages = ["Dashboard", "Members", "Invoices", "Levels", "Reports", "Settings", "Profile"]
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    show_flash()
    state = db.load_state()

    if st.session_state.page == "Dashboard":
        dashboard_page(state)
    elif st.session_state.page == "Members":
        members_page(state)
    elif st.session_state.page == "Invoices":
        bulk_invoices_page(state)
    elif st.session_state.page == "Levels":
        levels_page(state)
    elif st.session_state.page == "Reports":
        reports_page(state)
    elif st.session_state.page == "Settings":
        settings_page(state)
    elif st.session_state.page == "Profile":
        profile_page(state)


# --------- App entry ---------

def run():
    init_once()
    require_login()
    check_session_timeout()

    if not st.session_state.logged_in:
        login_screen()
        return

    # Force password change on first login after DB creation
    if db.is_force_password_change():
        force_change_password_screen()
        return

    main_app()


if __name__ == "__main__":
    run()
