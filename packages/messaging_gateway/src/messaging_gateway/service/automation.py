"""
Auto-Reply Commands

Exact-match command parser for inbound text.

The whole message, trimmed and case-folded, must equal a command keyword;
partial matches never reply.
"""

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class AutoReplyCommand(str, Enum):
    """Commands customers can send."""

    HELP = "help"
    HOURS = "hours"
    RECEIPT = "receipt"


# Keyword -> command (compared after strip + casefold)
COMMAND_KEYWORDS: dict[str, AutoReplyCommand] = {
    "help": AutoReplyCommand.HELP,
    "ayuda": AutoReplyCommand.HELP,
    "hours": AutoReplyCommand.HOURS,
    "horario": AutoReplyCommand.HOURS,
    "receipt": AutoReplyCommand.RECEIPT,
    "recibo": AutoReplyCommand.RECEIPT,
}

DEFAULT_SUPPORT_TEXT = (
    "Gracias por escribirnos. Un asesor le respondera pronto.\n"
    "Comandos: AYUDA, HORARIO, RECIBO"
)
DEFAULT_HOURS_TEXT = "Nuestro horario de atencion no esta configurado. Por favor contactenos directamente."
RECEIPT_TEXT = (
    "Para consultar un recibo, responda con el numero de orden "
    "y un asesor le enviara el comprobante."
)


@dataclass
class AutoReply:
    """An auto-reply to send."""

    command: AutoReplyCommand
    text: str


class AutoReplyEngine:
    """
    Maps inbound text to at most one canned reply.

    Replies use the tenant's support text and business hours when set.
    """

    def __init__(self, keywords: dict[str, AutoReplyCommand] | None = None):
        self.keywords = keywords or COMMAND_KEYWORDS

    def match(self, text: str | None) -> AutoReplyCommand | None:
        """Return the command whose keyword equals the whole message."""
        if not text:
            return None
        return self.keywords.get(text.strip().casefold())

    def build_reply(
        self,
        text: str | None,
        support_info: str | None = None,
        business_hours: str | None = None,
    ) -> AutoReply | None:
        """
        Build the reply for a message, if it is a command.

        Args:
            text: Inbound message text
            support_info: Tenant's configured support text
            business_hours: Tenant's configured business hours

        Returns:
            AutoReply or None
        """
        command = self.match(text)
        if command is None:
            return None

        if command == AutoReplyCommand.HELP:
            reply = support_info or DEFAULT_SUPPORT_TEXT
        elif command == AutoReplyCommand.HOURS:
            reply = business_hours or DEFAULT_HOURS_TEXT
        else:
            reply = RECEIPT_TEXT

        logger.debug("Auto-reply command matched", extra={"command": command.value})
        return AutoReply(command=command, text=reply)
