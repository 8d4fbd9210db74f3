"""Cupid Co-Pilot - Streamlit inspector for stored conversations."""

import os
from datetime import datetime

import streamlit as st
from config.settings import Settings
from memory.conversation_store import get_memory_summary
from orchestrator import AnalysisOrchestrator
from schemas.responses import AnalysisRequest


st.set_page_config(
    page_title="Cupid Co-Pilot Inspector",
    page_icon="💘",
    layout="wide"
)

if "orchestrator" not in st.session_state:
    st.session_state.orchestrator = None


def get_orchestrator(settings: Settings) -> AnalysisOrchestrator:
    """Get or create orchestrator instance."""
    if st.session_state.orchestrator is None:
        st.session_state.orchestrator = AnalysisOrchestrator(settings=settings)
    return st.session_state.orchestrator


def format_ms(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")


# Sidebar configuration
st.sidebar.header("Configuration")

db_path = st.sidebar.text_input(
    "Database Path",
    value=os.environ.get("CUPID_DB_PATH", "data/cupid.db"),
    help="SQLite file holding conversation memory and push tokens"
)

llm_provider = st.sidebar.selectbox(
    "LLM Provider",
    options=["openai", "anthropic"],
    index=0,
    help="Vision model used for test uploads"
)

limit = st.sidebar.slider(
    "Conversations to show",
    min_value=1,
    max_value=100,
    value=20
)

show_debug = st.sidebar.checkbox("Show raw records", value=False)

if st.sidebar.button("Reload", type="secondary"):
    st.session_state.orchestrator = None
    st.rerun()

settings = Settings(db_path=db_path, llm_provider=llm_provider)
orchestrator = get_orchestrator(settings)

st.sidebar.markdown("---")
llm_status = "Enabled" if orchestrator.llm_client else "Disabled (no API key)"
st.sidebar.caption(f"LLM: {llm_status}")
st.sidebar.caption(f"Registered push tokens: {orchestrator.token_store.count()}")

# Main content
st.title("Cupid Co-Pilot Inspector")
st.markdown("Conversation memory, notification history and user patterns")

tab_conversations, tab_device, tab_upload = st.tabs(
    ["Conversations", "Device Notifications", "Test Upload"]
)

with tab_conversations:
    memories = orchestrator.list_conversations(limit=limit)
    if not memories:
        st.info("No conversations stored yet.")

    for memory in memories:
        header = (
            f"{memory.conversation_id} · {memory.device_id} · "
            f"updated {format_ms(memory.last_updated_at)}"
        )
        with st.expander(header):
            st.markdown(f"**Summary:** {get_memory_summary(memory)}")

            col1, col2, col3 = st.columns(3)
            col1.metric("Messages", len(memory.messages))
            col2.metric("Notifications", len(memory.notifications))
            col3.metric("State", memory.patterns.current_state)

            if memory.notifications:
                st.markdown("**Notifications**")
                st.table([
                    {
                        "type": n.type,
                        "title": n.title,
                        "body": n.body,
                        "sent": format_ms(n.sent_at),
                    }
                    for n in memory.notifications
                ])

            if memory.messages:
                st.markdown("**Recent analyses**")
                for message in memory.messages[-5:]:
                    st.caption(f"frame {message.frame_number} · {format_ms(message.timestamp)}")
                    st.write(message.ai_analysis)

            if show_debug:
                st.json(memory.model_dump(by_alias=True))

with tab_device:
    device_id = st.text_input("Device ID", value="", placeholder="e.g. device-123")
    if device_id:
        notifications = orchestrator.get_device_notifications(device_id)
        st.caption(f"{len(notifications)} notification(s)")
        if notifications:
            st.table(notifications)

with tab_upload:
    uploaded = st.file_uploader("Screenshot", type=["jpg", "jpeg", "png", "webp"])
    upload_device = st.text_input("Upload as device", value="inspector")
    if uploaded and st.button("Analyze", type="primary"):
        with st.spinner("Analyzing..."):
            try:
                response = orchestrator.analyze(AnalysisRequest(
                    image=uploaded.getvalue(),
                    media_type=uploaded.type or "image/jpeg",
                    device_id=upload_device or None,
                ))
                st.json(response.model_dump(by_alias=True, exclude_none=True))
            except Exception as e:
                st.error(f"Error analyzing screenshot: {e}")
                if show_debug:
                    import traceback
                    st.code(traceback.format_exc())

# Footer
st.sidebar.markdown("---")
st.sidebar.markdown("Built with Streamlit")
