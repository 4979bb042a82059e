"""
Tests for Discord message sanitizing.
"""

import pytest

from gemiscord.utils.sanitizer import sanitize_message_content


class TestSanitizeMessageContent:
    @pytest.mark.parametrize(
        "content,expected",
        [
            ("hi <@123>", "hi [user]"),
            ("hi <@!123>", "hi [user]"),
            ("see <#456>", "see [channel]"),
            ("ping <@&789>", "ping [role]"),
            ("hello <:wave:1234>", "hello :wave:"),
            ("party <a:dance:5678>", "party :dance:"),
        ],
    )
    def test_markup_is_replaced(self, content, expected):
        assert sanitize_message_content(content) == expected

    def test_code_blocks_are_replaced(self):
        content = "run this ```python\nimport os\nos.system('rm -rf /')\n``` please"

        assert sanitize_message_content(content) == "run this [code block] please"

    def test_each_code_block_is_replaced_separately(self):
        content = "```a``` keep this ```b```"

        assert sanitize_message_content(content) == "[code block] keep this [code block]"

    def test_whitespace_is_collapsed(self):
        assert sanitize_message_content("  a\n\n b\t c  ") == "a b c"

    def test_plain_text_is_unchanged(self):
        assert sanitize_message_content("What's 2 + 2?") == "What's 2 + 2?"

    def test_empty(self):
        assert sanitize_message_content("") == ""
