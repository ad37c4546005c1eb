"""
Streamlit Frontend for Temple Ledger

The screens temple volunteers use to record donations and spending.

DESIGN PRINCIPLES:
1. One screen at a time, chosen by the session controller
2. Explicit confirmation before deleting or logging out
3. Provider errors shown as-is, next to the form that caused them
4. Lists refresh themselves when anyone changes the ledger

The core package is async; it runs on one background event loop that
lives as long as the server process, so the backend client and its
realtime channels survive Streamlit reruns.
"""

import asyncio
import threading
from datetime import date
from urllib.parse import urlencode

import plotly.express as px
import streamlit as st
import streamlit.components.v1 as components

from temple_ledger.config import get_settings, validate_all_settings
from temple_ledger.ledger import (
    ConfirmationRequiredError,
    HistoryView,
    LiveView,
    SessionRequiredError,
    placeholder_for,
    title_for,
)
from temple_ledger.models import (
    CategoryTotal,
    SortOrder,
    Transaction,
    TransactionFilter,
    TransactionForm,
    TransactionKind,
    View,
    format_currency,
    spec_for,
)
from temple_ledger.orchestrator import AppComponents, create_app_components
from temple_ledger.services.backend import BackendError
from temple_ledger.session import InvalidTransitionError
from temple_ledger.validation import ValidationFailedError


# Page configuration
st.set_page_config(
    page_title="Temple Ledger",
    page_icon="🛕",
    layout="wide",
    initial_sidebar_state="collapsed",
)

st.markdown("""
<style>
    .income-amount { color: #15803d; font-weight: 600; }
    .expense-amount { color: #b91c1c; font-weight: 600; }
    .empty-note { color: #6b7280; text-align: center; padding: 1rem 0; }
</style>
""", unsafe_allow_html=True)

# The default reset link puts the recovery token in the URL fragment,
# which never reaches the server. This script moves it into the query
# string once. It navigates the top page from the components iframe, so
# it only works where that iframe may navigate its parent. Links that
# carry `?token_hash=...&type=recovery` (a customized reset email
# template) are read from the query string directly and need no hop.
RECOVERY_HOP = """
<script>
const loc = window.parent.location;
if (loc.hash && loc.hash.includes("type=recovery")) {
  loc.replace(loc.pathname + "?" + loc.hash.substring(1));
}
</script>
"""

FILTER_LABELS = {
    TransactionFilter.ALL: "All",
    TransactionFilter.INCOME: "Income",
    TransactionFilter.EXPENSE: "Expenses",
}

SORT_LABELS = {
    SortOrder.DATE_DESC: "Date (newest first)",
    SortOrder.DATE_ASC: "Date (oldest first)",
    SortOrder.AMOUNT_DESC: "Amount (high to low)",
    SortOrder.AMOUNT_ASC: "Amount (low to high)",
}


@st.cache_resource
def get_event_loop() -> asyncio.AbstractEventLoop:
    """One long-lived event loop in a daemon thread (shared by all sessions)."""
    loop = asyncio.new_event_loop()
    threading.Thread(target=loop.run_forever, name="ledger-loop", daemon=True).start()
    return loop


def run_async(coro):
    """Run a coroutine on the background loop and wait for its result."""
    return asyncio.run_coroutine_threadsafe(coro, get_event_loop()).result()


def get_components() -> AppComponents:
    """Get or create this browser session's components."""
    if "components" not in st.session_state:
        try:
            app = run_async(create_app_components())
        except Exception as e:
            st.error(f"Failed to connect to the ledger backend: {e}")
            st.stop()
        # Streamlit has no session-end hook: release channels and the
        # auth listener when the session state is dropped
        app.release_when_collected(get_event_loop())
        st.session_state.components = app
    return st.session_state.components


def currency(amount) -> str:
    return format_currency(amount, get_settings().app.currency_symbol)


def main():
    """Main application entry point."""
    app = get_components()
    controller = app.controller

    if controller.view == View.LOADING:
        components.html(RECOVERY_HOP, height=0)
        params = st.query_params.to_dict()
        run_async(controller.start(urlencode(params)))
        if controller.state.recovery is not None:
            # One-time token: keep it out of the address bar
            st.query_params.clear()

    live_view = run_async(app.sync_views())

    if controller.view == View.RESET_PASSWORD:
        render_reset_password_page(app)
    elif controller.view == View.LOGIN:
        render_login_page(app)
    elif controller.view in (View.DASHBOARD, View.HISTORY):
        render_header(app)
        render_editor(app, live_view)
        if controller.view == View.DASHBOARD:
            render_dashboard_page(app)
        else:
            render_history_page(app)
    else:
        st.info("Loading...")

    render_settings_sidebar(app)

    if live_view is not None:
        watch_for_changes(app, live_view, live_view.version, controller.view)


@st.fragment(run_every=get_settings().app.refresh_poll_seconds)
def watch_for_changes(app: AppComponents, live_view: LiveView, rendered_version: int, rendered_view: View):
    """Rerun the page when a change notification reloaded the data."""
    if live_view.version != rendered_version or app.controller.view != rendered_view:
        st.rerun(scope="app")


# =============================================================================
# AUTH SCREENS
# =============================================================================

def render_login_page(app: AppComponents):
    """Login / registration form."""
    controller = app.controller

    _, center, _ = st.columns([1, 2, 1])
    with center:
        is_register = st.checkbox("Register", key="is_register")
        st.title("Register" if is_register else "Login")

        with st.form("login_form"):
            email = st.text_input("Email", placeholder="Email")
            password = st.text_input("Password", type="password", placeholder="Password")
            submitted = st.form_submit_button(
                "Register" if is_register else "Login",
                type="primary",
            )

        if submitted:
            if not email or not password:
                st.error("Email and password are required")
            else:
                with st.spinner("Please wait..."):
                    if is_register:
                        run_async(controller.sign_up(email, password))
                    elif run_async(controller.sign_in(email, password)):
                        st.rerun()

        with st.expander("Forgot your password?"):
            reset_email = st.text_input("Email for the reset link", key="reset_email")
            if st.button("Send reset link") and reset_email:
                run_async(controller.request_password_reset(reset_email))

        if controller.state.message:
            st.info(controller.state.message)


def render_reset_password_page(app: AppComponents):
    """New-password form reached from the reset email link."""
    controller = app.controller

    _, center, _ = st.columns([1, 2, 1])
    with center:
        st.title("Reset Your Password")

        with st.form("reset_form"):
            new_password = st.text_input("New Password", type="password")
            confirm_password = st.text_input("Confirm Password", type="password")
            submitted = st.form_submit_button("Reset Password", type="primary")

        if submitted:
            with st.spinner("Resetting..."):
                ok = run_async(controller.submit_password_reset(new_password, confirm_password))
            if ok:
                st.success(controller.state.message)
                run_async(controller.finish_password_reset())
                st.rerun()
            elif controller.state.message:
                st.error(controller.state.message)


# =============================================================================
# SIGNED-IN SCREENS
# =============================================================================

def render_header(app: AppComponents):
    """Title, navigation and logout."""
    controller = app.controller

    title_col, dash_col, hist_col, logout_col = st.columns([4, 1, 1, 1])
    title_col.title("🛕 Temple Ledger")

    for col, view, label in (
        (dash_col, View.DASHBOARD, "Dashboard"),
        (hist_col, View.HISTORY, "History"),
    ):
        if col.button(
            label,
            type="primary" if controller.view == view else "secondary",
            use_container_width=True,
        ):
            try:
                controller.navigate(view)
            except InvalidTransitionError as e:
                st.error(str(e))
            st.rerun()

    if logout_col.button("Logout", use_container_width=True):
        st.session_state.confirm_logout = True

    if st.session_state.get("confirm_logout"):
        st.warning("Are you sure you want to log out?")
        yes, no, _ = st.columns([1, 1, 5])
        if yes.button("Confirm", type="primary", key="confirm_logout_yes"):
            st.session_state.confirm_logout = False
            run_async(controller.logout(confirmed=True))
            st.session_state.pop("editor", None)
            st.rerun()
        if no.button("Cancel", key="confirm_logout_no"):
            st.session_state.confirm_logout = False
            st.rerun()

    if controller.state.message:
        st.error(controller.state.message)


def open_editor(kind: TransactionKind, existing: Transaction = None):
    st.session_state.editor = {"kind": kind, "existing": existing}


def render_editor(app: AppComponents, live_view: LiveView):
    """Add/edit form, shown above the current screen while open."""
    editor_state = st.session_state.get("editor")
    if not editor_state:
        return

    kind = editor_state["kind"]
    existing = editor_state["existing"]
    prefill = TransactionForm.from_transaction(existing) if existing else None
    spec = spec_for(kind)

    with st.form("transaction_form"):
        st.subheader(title_for(kind, editing=existing is not None))
        txn_date = st.date_input(
            "Date",
            value=existing.date if existing else date.today(),
        )
        category_label = st.text_input(
            spec.column.capitalize(),
            value=prefill.category_label if prefill else "",
            placeholder=placeholder_for(kind),
        )
        amount = st.text_input(
            "Amount",
            value=prefill.amount if prefill else "",
            placeholder="Amount",
        )
        notes = st.text_area(
            "Notes (optional)",
            value=prefill.notes if prefill else "",
            placeholder="Notes (optional)",
        )
        save_col, cancel_col, _ = st.columns([1, 1, 4])
        save = save_col.form_submit_button("Save", type="primary")
        cancel = cancel_col.form_submit_button("Cancel")

    if cancel:
        st.session_state.pop("editor", None)
        st.rerun()

    if save:
        form = TransactionForm(
            kind=kind,
            date=txn_date,
            category_label=category_label,
            amount=amount,
            notes=notes,
        )
        try:
            with st.spinner("Saving..."):
                run_async(app.editor.save(form, existing=existing))
        except ValidationFailedError as e:
            for message in e.result.messages:
                st.error(message)
        except (SessionRequiredError, BackendError) as e:
            st.error(str(e))
        else:
            st.session_state.pop("editor", None)
            if live_view is not None:
                run_async(live_view.refresh())
            st.rerun()


def render_category_chart(title: str, totals: list[CategoryTotal], empty_text: str):
    st.markdown(f"#### {title}")
    if not totals:
        st.markdown(f'<p class="empty-note">{empty_text}</p>', unsafe_allow_html=True)
        return
    fig = px.pie(
        values=[float(t.value) for t in totals],
        names=[t.name for t in totals],
    )
    fig.update_layout(height=300, margin=dict(t=10, b=10))
    st.plotly_chart(fig, use_container_width=True)


def render_transactions_table(items: list[Transaction], empty_text: str):
    """Read-only transaction table."""
    if not items:
        st.markdown(f'<p class="empty-note">{empty_text}</p>', unsafe_allow_html=True)
        return
    st.dataframe(
        [
            {
                "Date": t.date.isoformat(),
                "Type": t.kind.value.capitalize(),
                "Category": t.category_label,
                "Amount": currency(t.amount),
            }
            for t in items
        ],
        hide_index=True,
        use_container_width=True,
    )


def render_dashboard_page(app: AppComponents):
    """Totals, distributions and recent transactions."""
    dashboard = app.dashboard

    add_income, add_expense, _ = st.columns([1, 1, 4])
    if add_income.button("Add Income", type="primary"):
        open_editor(TransactionKind.INCOME)
        st.rerun()
    if add_expense.button("Add Expense"):
        open_editor(TransactionKind.EXPENSE)
        st.rerun()

    if dashboard.error:
        st.error(dashboard.error)

    summary = dashboard.summary
    col1, col2, col3 = st.columns(3)
    col1.metric("Total Income", currency(summary.total_income))
    col2.metric("Total Expenses", currency(summary.total_expenses))
    col3.metric("Balance", currency(summary.balance))

    chart_income, chart_expense = st.columns(2)
    with chart_income:
        render_category_chart("Income Distribution", dashboard.income_breakdown, "No income data yet")
    with chart_expense:
        render_category_chart("Expense Distribution", dashboard.expense_breakdown, "No expense data yet")

    st.markdown("### Recent Transactions")
    render_transactions_table(dashboard.recent, "No recent transactions")


def render_history_page(app: AppComponents):
    """All transactions with filter, sort, edit and delete."""
    history: HistoryView = app.history

    header, filter_col, sort_col = st.columns([2, 3, 2])
    header.markdown("### Transactions")
    history.filter = filter_col.radio(
        "Show",
        options=list(FILTER_LABELS),
        format_func=FILTER_LABELS.get,
        horizontal=True,
        key="history_filter",
    )
    history.sort_order = sort_col.selectbox(
        "Sort by",
        options=list(SORT_LABELS),
        format_func=SORT_LABELS.get,
        key="history_sort",
    )

    if history.error:
        st.error(history.error)

    if history.loading:
        st.info("Loading...")
        return

    items = history.visible()
    if not items:
        st.markdown('<p class="empty-note">No transactions found</p>', unsafe_allow_html=True)
        return

    widths = [2, 2, 3, 2, 4, 1, 1]
    for col, label in zip(st.columns(widths), ["Date", "Type", "Category/Source", "Amount", "Notes", "", ""]):
        col.markdown(f"**{label}**")

    for item in items:
        cols = st.columns(widths)
        cols[0].write(item.date.isoformat())
        cols[1].write(item.kind.value)
        cols[2].write(item.category_label)
        css = "income-amount" if item.kind == TransactionKind.INCOME else "expense-amount"
        cols[3].markdown(f'<span class="{css}">{currency(item.amount)}</span>', unsafe_allow_html=True)
        cols[4].write(item.notes or "")
        if cols[5].button("Edit", key=f"edit-{item.key}"):
            open_editor(item.kind, existing=item)
            st.rerun()
        if cols[6].button("Delete", key=f"delete-{item.key}"):
            st.session_state.confirm_delete = item.key

        if st.session_state.get("confirm_delete") == item.key:
            st.warning("Delete this transaction?")
            yes, no, _ = st.columns([1, 1, 5])
            if yes.button("Confirm", type="primary", key=f"confirm-{item.key}"):
                st.session_state.confirm_delete = None
                try:
                    run_async(history.delete(item, confirmed=True))
                except (ConfirmationRequiredError, BackendError) as e:
                    st.error(str(e))
                else:
                    st.rerun()
            if no.button("Cancel", key=f"cancel-{item.key}"):
                st.session_state.confirm_delete = None
                st.rerun()


def render_settings_sidebar(app: AppComponents):
    """Connection status and recent activity."""
    with st.sidebar:
        st.markdown("### Connection Status")
        status = validate_all_settings()
        for name, key in (("Supabase", "supabase"), ("Application", "app")):
            if status.get(key, False):
                st.success(f"✅ {name} - Configured")
            else:
                st.error(f"❌ {name} - {status.get(f'{key}_error', 'Not configured')}")

        if app.controller.state.is_authenticated:
            st.markdown("### Recent Activity")
            for event in app.activity.recent(limit=10):
                st.caption(f"{event.timestamp:%H:%M:%S} · {event.description}")

        st.markdown("---")
        st.markdown(
            "To configure the application, create a `.env` file with your "
            "Supabase URL and anon key. See `.env.example`."
        )


if __name__ == "__main__":
    main()
