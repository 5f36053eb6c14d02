"""Typed action records decoded from ``<action>`` directives, and their dispatch."""

import logging
import webbrowser
from collections.abc import Callable
from typing import Annotated, Literal, Union
from urllib.parse import quote, urlencode

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class EmailAction(BaseModel):
    type: Literal["email"]
    recipient: str
    subject: str = ""
    body: str = ""


class CallAction(BaseModel):
    type: Literal["call"]
    number: str


class SmsAction(BaseModel):
    type: Literal["sms"]
    number: str
    message: str = ""


class OpenUrlAction(BaseModel):
    type: Literal["open_url"]
    url: str


class YoutubeSearchAction(BaseModel):
    type: Literal["youtube_search"]
    query: str


class SendImAction(BaseModel):
    type: Literal["send_im"]
    platform: Literal["whatsapp", "telegram", "messenger"]
    recipient: str
    message: str = ""


Action = Annotated[
    Union[
        EmailAction,
        CallAction,
        SmsAction,
        OpenUrlAction,
        YoutubeSearchAction,
        SendImAction,
    ],
    Field(discriminator="type"),
]

_action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


def parse_action(payload: str) -> Action | None:
    """Decode an action payload.

    Malformed JSON, unknown action types and missing fields all decode to
    None; the failure is logged and never raised.

    Args:
        payload: Raw JSON text found between the action tags

    Returns:
        Typed action record, or None
    """
    try:
        return _action_adapter.validate_json(payload.strip())
    except ValidationError as e:
        logger.warning("Failed to parse action JSON: %s", e.errors(include_url=False))
        return None


def action_to_uri(action: Action) -> str:
    """Build the URI that carries out an action on the client side."""
    if isinstance(action, EmailAction):
        query = urlencode({"subject": action.subject, "body": action.body}, quote_via=quote)
        return f"mailto:{quote(action.recipient, safe='@')}?{query}"
    if isinstance(action, CallAction):
        return f"tel:{action.number}"
    if isinstance(action, SmsAction):
        return f"sms:{action.number}?{urlencode({'body': action.message}, quote_via=quote)}"
    if isinstance(action, OpenUrlAction):
        return action.url
    if isinstance(action, YoutubeSearchAction):
        query = urlencode({"search_query": action.query}, quote_via=quote)
        return f"https://www.youtube.com/results?{query}"
    if isinstance(action, SendImAction):
        text = urlencode({"text": action.message}, quote_via=quote)
        if action.platform == "whatsapp":
            digits = "".join(ch for ch in action.recipient if ch.isdigit())
            return f"https://wa.me/{digits}?{text}"
        if action.platform == "telegram":
            return f"https://t.me/{quote(action.recipient.lstrip('@'))}?{text}"
        return f"https://m.me/{quote(action.recipient)}"
    raise TypeError(f"Unsupported action: {action!r}")


class ActionDispatcher:
    """Carries out finalized actions by handing their URI to an opener."""

    def __init__(self, opener: Callable[[str], object] | None = None):
        """Initialize dispatcher.

        Args:
            opener: Callable receiving the action URI. Defaults to the
                    system web browser.
        """
        self.opener = opener or webbrowser.open

    def dispatch(self, action: Action) -> str | None:
        """Dispatch an action.

        Returns:
            The URI handed to the opener, or None if dispatch failed
        """
        try:
            uri = action_to_uri(action)
            self.opener(uri)
        except Exception:
            logger.warning("Failed to execute %s action", action.type, exc_info=True)
            return None
        logger.info("Executed %s action", action.type)
        return uri
