"""
Per-service DOM descriptors.

A ServiceDescriptor is the only thing that differs between services: the
agent is a single class parameterized by one of these values, so adding a
service means adding a row here, never new code.

Selector tables are versioned data. When a provider changes its markup,
update the descriptor; the agent logic stays the same.

Example:
    >>> descriptor = get_descriptor("claude")
    >>> descriptor.input_selector
    'div[contenteditable="true"]'
    >>> available_services()
    ['chatgpt', 'claude', 'gemini', 'perplexity', 'grok', 'deepseek', 'zai']
"""

from collections.abc import Mapping
from dataclasses import dataclass

from ..exceptions import UnknownServiceError


@dataclass(frozen=True)
class ServiceDescriptor:
    """
    Immutable URL and selector set for one AI chat service.

    Attributes:
        service_name: Lowercase identifier used in configs and CLI flags
        base_url: Page to open before prompting
        input_selector: Prompt input (textarea or content-editable element)
        submit_selector: Control that sends the prompt
        response_selector: Container holding the assistant's reply
        ready_selector: Visible once the service is interactive and
            authenticated (falls back to input_selector when None)
        loading_selector: Present while a reply is still streaming
        display_name: Human-readable name for output
    """

    service_name: str
    base_url: str
    input_selector: str
    submit_selector: str
    response_selector: str
    ready_selector: str | None = None
    loading_selector: str | None = None
    display_name: str = ""

    @property
    def label(self) -> str:
        """Return display_name, or a capitalized service_name if unset."""
        return self.display_name or self.service_name.capitalize()


SERVICE_DESCRIPTORS: dict[str, ServiceDescriptor] = {
    "chatgpt": ServiceDescriptor(
        service_name="chatgpt",
        display_name="ChatGPT",
        base_url="https://chatgpt.com/",
        input_selector="#prompt-textarea",
        submit_selector='button[data-testid="send-button"]',
        response_selector='[data-message-author-role="assistant"]',
        ready_selector="#prompt-textarea",
        loading_selector=".result-streaming",
    ),
    "claude": ServiceDescriptor(
        service_name="claude",
        display_name="Claude",
        base_url="https://claude.ai/",
        input_selector='div[contenteditable="true"]',
        submit_selector='button[type="submit"]',
        response_selector='[data-is-streaming="false"] .font-claude-message',
        ready_selector='div[contenteditable="true"]',
        loading_selector='[data-is-streaming="true"]',
    ),
    "gemini": ServiceDescriptor(
        service_name="gemini",
        display_name="Gemini",
        base_url="https://gemini.google.com/",
        input_selector="rich-textarea",
        submit_selector='button[aria-label="Send message"]',
        response_selector="model-response",
        ready_selector="rich-textarea",
        loading_selector=".loading-indicator",
    ),
    "perplexity": ServiceDescriptor(
        service_name="perplexity",
        display_name="Perplexity",
        base_url="https://www.perplexity.ai/",
        input_selector='[role="textbox"]',
        submit_selector='button[type="submit"]',
        response_selector=".answer-content",
        ready_selector='[role="textbox"]',
        loading_selector=".loading-spinner",
    ),
    "grok": ServiceDescriptor(
        service_name="grok",
        display_name="Grok",
        base_url="https://grok.com/",
        input_selector='div[contenteditable="true"]',
        submit_selector='button[aria-label="Send"]',
        response_selector='[data-testid="message-content"]',
        ready_selector='div[contenteditable="true"]',
        loading_selector=".streaming",
    ),
    "deepseek": ServiceDescriptor(
        service_name="deepseek",
        display_name="DeepSeek",
        base_url="https://chat.deepseek.com/",
        input_selector='textarea[placeholder*="Message"]',
        submit_selector='button[type="submit"]',
        response_selector=".message.assistant",
        ready_selector='textarea[placeholder*="Message"]',
        loading_selector=".thinking",
    ),
    "zai": ServiceDescriptor(
        service_name="zai",
        display_name="Z.ai",
        base_url="https://z.ai/",
        input_selector="textarea",
        submit_selector='button[type="submit"]',
        response_selector=".ai-response",
        ready_selector="textarea",
        loading_selector=".loading",
    ),
}


def available_services(
    descriptors: Mapping[str, ServiceDescriptor] | None = None,
) -> list[str]:
    """Return service names in their canonical order."""
    return list((descriptors or SERVICE_DESCRIPTORS).keys())


def get_descriptor(
    service_name: str,
    descriptors: Mapping[str, ServiceDescriptor] | None = None,
) -> ServiceDescriptor:
    """
    Look up the descriptor for a service.

    Args:
        service_name: Service identifier (case and surrounding whitespace ignored)
        descriptors: Alternate descriptor table (defaults to SERVICE_DESCRIPTORS)

    Returns:
        ServiceDescriptor: The matching descriptor

    Raises:
        UnknownServiceError: If no descriptor exists for the name
    """
    table = SERVICE_DESCRIPTORS if descriptors is None else descriptors
    key = service_name.strip().lower()
    try:
        return table[key]
    except KeyError:
        raise UnknownServiceError(service_name, list(table.keys())) from None
