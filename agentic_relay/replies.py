"""
Reply activity constructors for each notification kind.
"""

from botbuilder.core import MessageFactory
from botbuilder.schema import Activity, Entity

from .models import NotificationKind


def chat_reply(text: str) -> Activity:
    message = MessageFactory.text(text)
    message.text_format = "markdown"
    return message


def comment_reply(text: str) -> Activity:
    return MessageFactory.text(text)


class EmailResponseEntity(Entity):
    """Email response entity with its HTML body declared for serialization."""

    _attribute_map = {
        "type": {"key": "type", "type": "str"},
        "html_body": {"key": "htmlBody", "type": "str"},
    }

    def __init__(self, *, html_body: str = None, **kwargs):
        super(EmailResponseEntity, self).__init__(type="emailResponse", **kwargs)
        self.html_body = html_body


def email_reply(text: str) -> Activity:
    """Message carrying an email response entity with the reply as HTML body."""
    message = MessageFactory.text(text)
    message.entities = [EmailResponseEntity(html_body=text)]
    return message


REPLY_BUILDERS = {
    NotificationKind.CHAT_MESSAGE: chat_reply,
    NotificationKind.DOCUMENT_COMMENT: comment_reply,
    NotificationKind.EMAIL_NOTIFICATION: email_reply,
}


def build_reply(kind: NotificationKind, text: str) -> Activity:
    return REPLY_BUILDERS.get(kind, comment_reply)(text)
