"""
Streamlit Operator Console for Peer Ledger

A thin caller over the ledger: it forwards every operation to the
orchestrator and shows the structured outcome it gets back. It owns no
ledger rules of its own.

DESIGN PRINCIPLES:
1. Every result is shown with its status code and message
2. Transfers and settlements go through the engine only
3. No hidden actions
"""

import asyncio
import threading

import streamlit as st

from peerledger.audit import configure_logging, create_correlation_id
from peerledger.config import get_settings, validate_all_settings
from peerledger.models.ledger import Theme
from peerledger.models.outcome import LedgerOutcome
from peerledger.orchestrator import LedgerApp, create_app_components


st.set_page_config(
    page_title="Peer Ledger",
    page_icon="🪙",
    layout="wide",
    initial_sidebar_state="expanded",
)


@st.cache_resource
def get_event_loop() -> asyncio.AbstractEventLoop:
    """One loop shared by all sessions, so account locks live on one loop."""
    loop = asyncio.new_event_loop()
    threading.Thread(target=loop.run_forever, daemon=True).start()
    return loop


def run_async(coro):
    """Run a coroutine on the shared loop and wait for its result."""
    return asyncio.run_coroutine_threadsafe(coro, get_event_loop()).result()


@st.cache_resource
def get_components() -> LedgerApp:
    """Get or create application components (cached)."""
    app_settings = get_settings().app
    configure_logging("DEBUG" if app_settings.debug_mode else app_settings.log_level)
    return create_app_components(use_audit_storage=True)


def show_outcome(outcome: LedgerOutcome) -> None:
    """Render an outcome the way a transport would forward it."""
    if outcome.is_success:
        st.success(f"{outcome.code} · {outcome.message}")
    else:
        st.error(f"{outcome.code} · {outcome.error.value if outcome.error else ''} · {outcome.message}")


def main():
    """Main application entry point."""
    app = get_components()

    if "account_id" not in st.session_state:
        st.session_state.account_id = None

    st.sidebar.title("🪙 Peer Ledger")
    st.sidebar.markdown("---")

    if st.session_state.account_id is None:
        render_sign_in_page(app)
        return

    account = run_async(app.storage.get_account(st.session_state.account_id))
    st.sidebar.markdown(f"**Signed in as:** {account.login}")
    st.sidebar.markdown(f"**Balance:** {account.balance:,}")
    if st.sidebar.button("Sign out"):
        st.session_state.account_id = None
        st.rerun()

    page = st.sidebar.radio(
        "Navigate to:",
        ["💸 Transfer", "📥 Pending", "📜 History", "👤 Profile", "⚙️ Settings"],
        index=0,
    )

    if page == "💸 Transfer":
        render_transfer_page(app)
    elif page == "📥 Pending":
        render_pending_page(app)
    elif page == "📜 History":
        render_history_page(app)
    elif page == "👤 Profile":
        render_profile_page(app)
    elif page == "⚙️ Settings":
        render_settings_page(app)


def render_sign_in_page(app: LedgerApp):
    st.title("Sign in")

    tab_login, tab_register = st.tabs(["Sign in", "Register"])

    with tab_login:
        login = st.text_input("Login", key="signin_login")
        password = st.text_input("Password", type="password", key="signin_password")
        if st.button("Sign in", type="primary"):
            outcome = run_async(app.accounts.authenticate(login, password))
            if outcome.is_success:
                st.session_state.account_id = outcome.payload["account_id"]
                st.rerun()
            show_outcome(outcome)

    with tab_register:
        login = st.text_input("Login", key="register_login")
        display_name = st.text_input("Display name (optional)")
        password = st.text_input("Password", type="password", key="register_password")
        if st.button("Create account"):
            outcome = run_async(app.accounts.register(
                login,
                password,
                display_name=display_name or None,
                correlation_id=create_correlation_id(),
            ))
            show_outcome(outcome)


def render_transfer_page(app: LedgerApp):
    st.title("💸 Transfer")

    tokens = app.storage.token_catalog()
    with st.expander("Token catalog"):
        for token in tokens:
            st.markdown(f"**{token.name}** · {token.unit_price} per unit · {token.description}")

    col1, col2 = st.columns(2)
    with col1:
        to_login = st.text_input("Recipient login")
        token_name = st.selectbox("Token", options=[t.name for t in tokens])
    with col2:
        amount = st.number_input("Amount (units)", min_value=1, step=1, value=1)
        deferred = st.checkbox(
            "Let the recipient accept it",
            help="Funds move only when the recipient receives the transfer",
        )

    if st.button("Send", type="primary"):
        outcome = run_async(app.transfer_by_login(
            st.session_state.account_id,
            to_login,
            int(amount),
            token_name,
            deferred=deferred,
            correlation_id=create_correlation_id(),
        ))
        show_outcome(outcome)


def render_pending_page(app: LedgerApp):
    st.title("📥 Pending transfers")

    account_id = st.session_state.account_id
    pending = run_async(app.pending_for(account_id))
    if not pending:
        st.info("Nothing waiting for you.")
        return

    for record in pending:
        st.markdown(
            f"**{record.amount} {record.token_name}** ({record.cost}) "
            f"from account {record.trigger_id} · {record.timestamp:%d %b %Y %H:%M}"
        )
        col1, col2 = st.columns(2)
        with col1:
            if st.button("Receive", key=f"receive_{record.transaction_id}"):
                show_outcome(run_async(app.engine.receive(account_id, record.transaction_id)))
        with col2:
            if st.button("Decline", key=f"decline_{record.transaction_id}"):
                show_outcome(run_async(app.engine.decline(account_id, record.transaction_id)))


def render_history_page(app: LedgerApp):
    st.title("📜 History")

    outcome = run_async(app.engine.history(st.session_state.account_id))
    if not outcome.is_success:
        show_outcome(outcome)
        return

    transactions = outcome.payload["transactions"]
    if not transactions:
        st.info("No transactions yet.")
        return
    st.dataframe(
        [
            {
                "date": t["timestamp"],
                "from": t["trigger_id"],
                "to": t["receiver_id"],
                "amount": t["amount"],
                "token": t["token_name"],
                "cost": t["cost"],
                "status": t["status"],
            }
            for t in reversed(transactions)
        ],
        use_container_width=True,
    )


def render_profile_page(app: LedgerApp):
    st.title("👤 Profile")

    account_id = st.session_state.account_id
    profile = run_async(app.accounts.get_profile(account_id)).payload

    display_name = st.text_input("Display name", value=profile.get("display_name") or "")
    bio = st.text_area("Bio", value=profile.get("bio") or "")
    avatar_url = st.text_input("Avatar URL", value=profile.get("avatar_url") or "")
    themes = [t.value for t in Theme]
    theme = st.selectbox("Theme", options=themes, index=themes.index(profile["theme"]))

    if st.button("Save profile", type="primary"):
        show_outcome(run_async(app.accounts.update_profile(
            account_id,
            display_name=display_name or None,
            bio=bio or None,
            avatar_url=avatar_url or None,
            theme=theme,
        )))

    st.markdown("---")
    st.markdown(f"**Verified:** {'yes' if profile['is_verified'] else 'no'}")


def render_settings_page(app: LedgerApp):
    st.title("⚙️ Settings")

    st.markdown("### Configuration")
    status = validate_all_settings()
    for name in ("ledger", "app"):
        if status.get(name, False):
            st.success(f"✅ {name} settings loaded")
        else:
            st.error(f"❌ {name} settings - {status.get(f'{name}_error', 'invalid')}")

    st.markdown("---")
    st.markdown("### Administration")
    target = st.number_input("Account id", min_value=1, step=1, value=st.session_state.account_id)
    balance = st.number_input("New balance", min_value=0, step=1, value=0)
    if st.button("Set balance"):
        show_outcome(run_async(app.engine.set_balance(
            int(target),
            int(balance),
            correlation_id=create_correlation_id(),
        )))
    verified = st.checkbox("Verified")
    if st.button("Set verification"):
        show_outcome(run_async(app.accounts.set_verified(int(target), verified)))

    if app.audit_storage:
        st.markdown("---")
        st.markdown("### Recent audit events")
        for event in run_async(app.audit_storage.get_recent_events(limit=20)):
            st.markdown(f"`{event.timestamp:%H:%M:%S}` {event.description}")


if __name__ == "__main__":
    main()
