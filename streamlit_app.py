"""Support Assistant - Streamlit App with Chat UI (web channel)."""

import os
import uuid
import streamlit as st
from config.settings import Settings
from schemas.context import Channel, ResponseOptions
from orchestrator import SupportAssistantOrchestrator
from utils.event_loop import LoopRunner
from utils.logging_config import configure_logging


st.set_page_config(
    page_title="Support Assistant",
    page_icon="💜",
    layout="wide"
)

# Initialize session state
if "session_key" not in st.session_state:
    st.session_state.session_key = str(uuid.uuid4())

if "messages" not in st.session_state:
    st.session_state.messages = []

if "orchestrator" not in st.session_state:
    st.session_state.orchestrator = None

if "loop_runner" not in st.session_state:
    st.session_state.loop_runner = LoopRunner()


def reset_conversation():
    """Reset conversation state."""
    if st.session_state.orchestrator is not None:
        st.session_state.orchestrator.clear_context(st.session_state.session_key)
    st.session_state.session_key = str(uuid.uuid4())
    st.session_state.messages = []
    st.session_state.orchestrator = None


def get_orchestrator(settings: Settings) -> SupportAssistantOrchestrator:
    """Get or create orchestrator instance."""
    if st.session_state.orchestrator is None:
        configure_logging(verbose=settings.verbose)
        st.session_state.orchestrator = SupportAssistantOrchestrator(settings=settings)
    return st.session_state.orchestrator


# Sidebar configuration
st.sidebar.header("Configuration")

llm_provider = st.sidebar.selectbox(
    "LLM Provider",
    options=["openai", "anthropic"],
    index=0,
    help="Select which LLM to use for classification and answers"
)

openai_api_key = st.sidebar.text_input(
    "OpenAI API Key",
    value=os.environ.get("OPENAI_API_KEY", ""),
    type="password",
)

anthropic_api_key = st.sidebar.text_input(
    "Anthropic API Key",
    value=os.environ.get("ANTHROPIC_API_KEY", ""),
    type="password",
)

tavily_api_key = st.sidebar.text_input(
    "Tavily API Key",
    value=os.environ.get("TAVILY_API_KEY", ""),
    type="password",
    help="Required for shelter search"
)

st.sidebar.markdown("---")

with st.sidebar.expander("Advanced Settings"):
    language = st.text_input("Language tag", value="en-US")
    geocoding_enabled = st.checkbox(
        "Use Nominatim geocoding",
        value=True,
        help="Otherwise a built-in list of US places is used"
    )
    ai_follow_up_detection = st.checkbox(
        "LLM follow-up detection",
        value=True,
        help="Ask the LLM when a follow-up is not obvious from wording"
    )
    show_debug = st.checkbox("Show debug info", value=False)

if st.sidebar.button("Start New Conversation", type="secondary"):
    reset_conversation()
    st.rerun()

st.sidebar.markdown("---")
st.sidebar.caption(f"Session: {st.session_state.session_key[:8]}...")

# Main content
st.title("Support Assistant")
st.markdown(
    "Confidential help finding shelters, legal aid and counseling. "
    "**If you are in immediate danger, call 911.** "
    "National Domestic Violence Hotline: 1-800-799-7233."
)

for message in st.session_state.messages:
    with st.chat_message(message["role"]):
        st.markdown(message["content"], unsafe_allow_html=True)

if prompt := st.chat_input("How can I help you today?"):
    st.session_state.messages.append({"role": "user", "content": prompt})

    with st.chat_message("user"):
        st.markdown(prompt)

    with st.chat_message("assistant"):
        with st.spinner("Looking that up..."):
            settings = Settings(
                llm_provider=llm_provider,
                openai_api_key=openai_api_key or None,
                anthropic_api_key=anthropic_api_key or None,
                tavily_api_key=tavily_api_key or None,
                geocoding_enabled=geocoding_enabled,
                ai_follow_up_detection=ai_follow_up_detection,
                default_language=language,
                verbose=show_debug,
            )
            orchestrator = get_orchestrator(settings)

            result = st.session_state.loop_runner.run(orchestrator.handle_utterance(
                st.session_state.session_key,
                prompt,
                Channel.WEB,
                ResponseOptions(language=language),
            ))

            st.markdown(result.reply, unsafe_allow_html=True)
            st.session_state.messages.append({"role": "assistant", "content": result.reply})

            if show_debug:
                st.info(f"Intent: {result.intent.value} ({result.confidence:.2f})")
                st.info(f"Source: {result.source.value}")
                if result.response is not None:
                    if result.response.fallback_reason:
                        st.warning(f"Fallback: {result.response.fallback_reason}")
                if result.follow_up is not None:
                    st.info(f"Follow-up: {result.follow_up.type.value}")

            if result.should_end_call:
                st.success("Conversation ended. Start a new conversation any time.")

if not st.session_state.messages:
    st.markdown("""
    ### Welcome

    I can help you find domestic violence shelters and support services.

    **Try asking:**
    - "I need a shelter near Austin"
    - "How do I get a restraining order?"
    - "Tell me more about the second one"
    """)

st.sidebar.markdown("---")
st.sidebar.markdown("Built with Streamlit")
