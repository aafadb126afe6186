"""Web interface using Streamlit."""

import uuid

import streamlit as st

from docdraft import Assistant, build_assistant
from docdraft.config import config
from docdraft.errors import IndexBuildFailure
from docdraft.models import CHANNEL_DOCUMENT, CHANNEL_GENERAL, ROLE_USER, TurnKind

HISTORY_DISPLAY_LIMIT = 50

config.setup_logging()
logger = config.get_logger(__name__)


class SessionState:
    """Centralized session state management."""

    @staticmethod
    def initialize() -> None:
        """Initialize all session state variables."""
        defaults = {
            "assistant": None,
            "user_id": uuid.uuid4().hex,
            "last_document": None,
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

    @staticmethod
    def is_system_ready() -> bool:
        """Check if the assistant has been built.

        Returns:
            bool: True once the assistant is available.
        """
        return st.session_state.get("assistant") is not None


def validate_configuration() -> bool:
    """Validate application configuration and show user feedback.

    Returns:
        bool: True if configuration is valid, False otherwise.
    """
    try:
        config.validate()
    except ValueError as e:
        st.error(f"Configuration Error: {e}")
        return False
    else:
        return True


@st.cache_resource(show_spinner=False)
def load_assistant() -> Assistant:
    """Build one assistant per server process, shared by all sessions."""  # noqa: DOC201
    return build_assistant()


def initialize_system() -> bool:
    """Build the assistant and open the knowledge index.

    Returns:
        bool: True if initialization succeeds, False otherwise.
    """
    try:
        with st.spinner("Loading templates and knowledge base..."):
            st.session_state.assistant = load_assistant()
        logger.info("Assistant initialized")
        st.success("System initialized successfully!")
    except (ValueError, RuntimeError, OSError) as e:
        logger.exception("Failed to initialize system")
        st.error(f"Failed to initialize system: {e}")
        return False
    else:
        return True


def render_sidebar() -> None:
    """Render the sidebar with configuration and system status."""
    with st.sidebar:
        st.header("System Configuration")

        if (
            st.button("Initialize System", use_container_width=True)
            and validate_configuration()
            and initialize_system()
        ):
            st.rerun()

        st.divider()
        st.subheader("System Status")
        if not SessionState.is_system_ready():
            st.write("**System:** Not Initialized")
            return

        assistant = st.session_state.assistant
        st.write("**System:** Ready")
        st.write(f"**Templates:** {len(assistant.catalog)}")
        st.write(f"**Knowledge chunks:** {assistant.index.size}")

        st.divider()
        if st.button("Rebuild Knowledge Index", use_container_width=True):
            with st.spinner("Rebuilding index..."):
                try:
                    chunk_count = assistant.index.rebuild()
                except IndexBuildFailure as e:
                    logger.exception("Index rebuild failed")
                    st.error(f"Index rebuild failed: {e}")
                else:
                    st.success(f"Index rebuilt with {chunk_count} chunks")

        if st.button("Cancel Current Document", use_container_width=True):
            assistant.dialogue.reset(st.session_state.user_id)
            st.session_state.last_document = None
            st.rerun()


def render_history(channel: str) -> None:
    """Show the stored messages of one channel."""
    assistant = st.session_state.assistant
    messages = assistant.history.recent(
        st.session_state.user_id, channel, HISTORY_DISPLAY_LIMIT
    )
    for item in messages:
        role = "user" if item.role == ROLE_USER else "assistant"
        with st.chat_message(role):
            st.write(item.content)


def render_documents_tab() -> None:
    """Render the document drafting dialogue."""
    assistant = st.session_state.assistant
    render_history(CHANNEL_DOCUMENT)

    utterance = st.chat_input("Which document do you need?", key="document_input")
    if utterance:
        with st.spinner("Thinking..."):
            response = assistant.dialogue.handle_turn(
                st.session_state.user_id, utterance
            )
        if response.kind is TurnKind.FILE:
            st.session_state.last_document = response
        st.rerun()

    document = st.session_state.last_document
    if document is not None and document.document is not None:
        st.download_button(
            f"Download {document.file_name}",
            data=document.document,
            file_name=document.file_name,
            mime=(
                "application/vnd.openxmlformats-officedocument."
                "wordprocessingml.document"
            ),
            use_container_width=True,
        )

    records = assistant.records.list_for_user(st.session_state.user_id)
    if records:
        with st.expander("Generated documents", expanded=False):
            for record in records:
                st.write(f"{record.created_at[:19]} - {record.template_id}")


def render_chat_tab() -> None:
    """Render the knowledge base question answering chat."""
    assistant = st.session_state.assistant
    render_history(CHANNEL_GENERAL)

    question = st.chat_input("Ask a question...", key="chat_input")
    if question:
        with st.spinner("Processing..."):
            assistant.rag.answer(st.session_state.user_id, question)
        st.rerun()


def main() -> None:
    """Main entry point for the Streamlit web application."""
    st.set_page_config(page_title="docdraft", layout="wide")

    SessionState.initialize()

    st.title("docdraft - Document Assistant")
    render_sidebar()

    if not SessionState.is_system_ready():
        st.info("Please initialize the system using the sidebar to get started.")
        return

    documents_tab, chat_tab = st.tabs(["Documents", "Chat"])
    with documents_tab:
        render_documents_tab()
    with chat_tab:
        render_chat_tab()


if __name__ == "__main__":
    main()
