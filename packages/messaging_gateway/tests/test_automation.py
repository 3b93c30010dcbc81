"""
Tests for auto-reply commands.
"""

from messaging_gateway.service.automation import (
    DEFAULT_HOURS_TEXT,
    DEFAULT_SUPPORT_TEXT,
    RECEIPT_TEXT,
    AutoReplyCommand,
    AutoReplyEngine,
)


class TestAutoReplyEngine:
    """Tests for exact-match command parsing."""

    def test_keywords_match_case_insensitively(self):
        engine = AutoReplyEngine()
        assert engine.match("AYUDA") == AutoReplyCommand.HELP
        assert engine.match("  Help\n") == AutoReplyCommand.HELP
        assert engine.match("Horario") == AutoReplyCommand.HOURS
        assert engine.match("recibo") == AutoReplyCommand.RECEIPT

    def test_partial_matches_never_reply(self):
        engine = AutoReplyEngine()
        assert engine.match("ayuda por favor") is None
        assert engine.match("cual es el horario?") is None
        assert engine.match("") is None
        assert engine.match(None) is None

    def test_help_uses_support_info(self):
        reply = AutoReplyEngine().build_reply("ayuda", support_info="Llame al 601 555 0000")
        assert reply.command == AutoReplyCommand.HELP
        assert reply.text == "Llame al 601 555 0000"

    def test_defaults_without_tenant_text(self):
        engine = AutoReplyEngine()
        assert engine.build_reply("ayuda").text == DEFAULT_SUPPORT_TEXT
        assert engine.build_reply("horario").text == DEFAULT_HOURS_TEXT
        assert engine.build_reply("recibo", support_info="x", business_hours="y").text == RECEIPT_TEXT

    def test_non_command(self):
        assert AutoReplyEngine().build_reply("Hola, tienen tornillos?") is None

    def test_custom_keywords(self):
        engine = AutoReplyEngine(keywords={"info": AutoReplyCommand.HELP})
        assert engine.match("INFO") == AutoReplyCommand.HELP
        assert engine.match("ayuda") is None
