"""
Streamlit Frontend for Dompetku

A chat page in front of the agent loop, plus a wallet page for coins,
top-ups and vouchers.

DESIGN PRINCIPLES:
1. The chat is the whole product; every action goes through the agent
2. Replies are shown exactly as the agent composed them
3. Paid features (voice notes, receipt photos) show their coin cost up front
4. No exception text is shown to the user
"""

import queue
from concurrent.futures import wait

import streamlit as st

from dompetku.audit import configure_logging
from dompetku.config import get_settings, validate_all_settings
from dompetku.formatting.formatter import format_coins, format_rupiah, format_voucher_redeemed
from dompetku.orchestrator import create_app_components
from dompetku.services.ledger import LedgerError
from dompetku.services.wallet import PaidFeature
from dompetku.transport import BackgroundLoop, ThinkingIndicator


# Page configuration
st.set_page_config(
    page_title="Dompetku",
    page_icon="💰",
    layout="centered",
    initial_sidebar_state="expanded",
)


@st.cache_resource
def get_event_loop() -> BackgroundLoop:
    """One event loop shared by every session (cached)."""
    loop = BackgroundLoop()
    loop.start()
    return loop


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    return get_event_loop().run(coro)


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    configure_logging(get_settings().app.log_level)
    return create_app_components(use_storage=True)


def main():
    """Main application entry point."""
    agent_loop, services, sheets_client = get_components()

    st.sidebar.title("💰 Dompetku")
    user_id = st.sidebar.text_input("User ID", value=st.session_state.get("user_id", "demo"))
    st.session_state.user_id = user_id
    if sheets_client is None:
        st.sidebar.caption("⚠️ Google Sheets belum dikonfigurasi, data hanya disimpan di memori.")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Menu:",
        ["💬 Chat", "👛 Dompet", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **Contoh pesan:**
        - "beli kopi 25rb"
        - "gaji 5 juta"
        - "budget makanan 1 juta"
        - "laporan bulan ini"
        """
    )

    if page == "💬 Chat":
        render_chat_page(agent_loop, user_id)
    elif page == "👛 Dompet":
        render_wallet_page(services, user_id)
    elif page == "⚙️ Settings":
        render_settings_page()


def _history() -> list[dict]:
    if "messages" not in st.session_state:
        st.session_state.messages = []
    return st.session_state.messages


def _show_reply(agent_loop, user_id: str, prompt: str) -> None:
    # Filler lines are produced on the loop thread; only this thread may draw them
    lines: queue.SimpleQueue = queue.SimpleQueue()
    with st.chat_message("assistant"):
        placeholder = st.empty()
        indicator = ThinkingIndicator(agent_loop.handle_message, lines.put)
        future = get_event_loop().submit(indicator(user_id, prompt))
        while True:
            done, _ = wait([future], timeout=0.2)
            while not lines.empty():
                placeholder.markdown(lines.get())
            if done:
                break
        result = future.result()
        placeholder.markdown(result.reply)
    _history().append({"role": "assistant", "content": result.reply})


def _send_media(agent_loop, user_id: str, receipt, voice) -> None:
    upload, kind = (receipt, PaidFeature.RECEIPT) if receipt else (voice, PaidFeature.VOICE)
    app_settings = get_settings().app
    if upload.size > app_settings.max_upload_size_bytes:
        st.error(f"❌ File terlalu besar (maks {app_settings.max_upload_size_mb} MB).")
        return

    label = "📸 Foto struk" if kind == PaidFeature.RECEIPT else "🎤 Pesan suara"
    _history().append({"role": "user", "content": f"{label}: {upload.name}"})
    with st.spinner("Membaca file..."):
        result = run_async(
            agent_loop.handle_media_message(user_id, upload.getvalue(), upload.type, kind)
        )
    _history().append({"role": "assistant", "content": result.reply})
    st.rerun()


def render_chat_page(agent_loop, user_id: str):
    """Render the chat page."""
    st.title("💬 Chat")

    for message in _history():
        with st.chat_message(message["role"]):
            st.markdown(message["content"])

    wallet_settings = get_settings().wallet
    with st.expander("📎 Kirim struk atau pesan suara"):
        receipt = st.file_uploader(
            f"Foto struk ({format_coins(wallet_settings.receipt_coin_cost)} koin)",
            type=get_settings().app.supported_formats_list,
            key="receipt_upload",
        )
        voice = st.file_uploader(
            f"Pesan suara ({format_coins(wallet_settings.voice_coin_cost)} koin)",
            type=get_settings().app.supported_audio_list,
            key="voice_upload",
        )
        if st.button("📤 Kirim file", type="primary") and (receipt or voice):
            _send_media(agent_loop, user_id, receipt, voice)

    prompt = st.chat_input("Tulis transaksi atau pertanyaanmu...")
    if prompt:
        _history().append({"role": "user", "content": prompt})
        with st.chat_message("user"):
            st.markdown(prompt)
        _show_reply(agent_loop, user_id, prompt)


def render_wallet_page(services, user_id: str):
    """Render the wallet page."""
    st.title("👛 Dompet")

    wallet = run_async(services.wallet.get_wallet(user_id))
    col1, col2 = st.columns(2)
    col1.metric("Saldo", format_rupiah(wallet.balance))
    col2.metric("Koin", format_coins(wallet.coins))

    rate = services.wallet.settings.balance_to_coins_rate
    st.caption(f"Setiap top up {format_rupiah(rate)} = 1 koin.")

    st.markdown("### 🎟️ Tukar Voucher")
    code = st.text_input("Kode voucher")
    if st.button("Tukar", type="primary") and code:
        try:
            redeemed = run_async(services.vouchers.redeem(user_id, code))
        except LedgerError as e:
            st.error(f"❌ {e.message}")
        else:
            st.success(format_voucher_redeemed(redeemed))


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    groups = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (AI)", "gemini"),
        ("Agent", "agent"),
        ("Wallet", "wallet"),
        ("App", "app"),
    ]

    for name, key in groups:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys "
        "(`GEMINI_API_KEY`, `GOOGLE_SHEETS_CREDENTIALS_PATH`, "
        "`GOOGLE_SHEETS_SPREADSHEET_ID`). Agent limits use the `AGENT_` prefix "
        "and coin prices the `WALLET_` prefix."
    )


if __name__ == "__main__":
    main()
