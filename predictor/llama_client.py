"""
Client for the chat-completion endpoint exposed through the gateway.
"""

import logging
from typing import Dict, List, Optional
import requests

logger = logging.getLogger(__name__)

class UpstreamError(Exception):
    """A chat request produced no usable answer."""

class LlamaClient:
    """
    Minimal chat client for the inference service.

    Requests go to ``<api_base>/chat`` as ``{model, messages}``; only
    ``choices[0].message.content`` of the answer is used.
    """

    def __init__(self, api_base: str, model: str = 'llama', timeout: float = 30,
                 session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            api_base: Gateway URL including the proxy prefix
            model: Model identifier sent with every request
            timeout: Per-request timeout in seconds
            session: Optional requests session to reuse connections
        """
        self.api_base = api_base.rstrip('/')
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def chat_url(self) -> str:
        return f"{self.api_base}/chat"

    def build_payload(self, messages: List[Dict[str, str]]) -> Dict:
        return {'model': self.model, 'messages': messages}

    def chat(self, messages: List[Dict[str, str]]) -> str:
        """
        Send one chat request.

        Args:
            messages: Role-tagged messages, system first

        Returns:
            Text content of the first choice

        Raises:
            UpstreamError: On network failure, timeout, non-2xx status,
                a non-JSON body or a body without choices[0].message.content
        """
        try:
            response = self.session.post(
                self.chat_url,
                json=self.build_payload(messages),
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.Timeout as e:
            raise UpstreamError(f"Chat request timed out after {self.timeout}s") from e
        except requests.exceptions.HTTPError as e:
            raise UpstreamError(f"Chat request failed with status {e.response.status_code}") from e
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Chat request failed: {str(e)}") from e
        except ValueError as e:
            raise UpstreamError("Chat response is not valid JSON") from e

        try:
            content = data['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError("Chat response has no choices[0].message.content") from e

        if not isinstance(content, str):
            raise UpstreamError("Chat response content is not text")

        return content

    def close(self) -> None:
        self.session.close()
