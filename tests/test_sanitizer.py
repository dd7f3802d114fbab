"""
Tests for Input Sanitizer
Version: 12.0
"""

from services.sanitizer import mask_email, normalize_email, strip_tags


class TestStripTags:

    def test_removes_tags(self):
        assert strip_tags("<p>Window <b>seat</b></p>") == "Window seat"

    def test_unterminated_tag(self):
        assert strip_tags("Late arrival <script") == "Late arrival "

    def test_none_passthrough(self):
        assert strip_tags(None) is None

    def test_lone_angle_bracket_starts_a_tag(self):
        assert strip_tags("2 surfboards, 1 < 2") == "2 surfboards, 1 "


class TestEmail:

    def test_normalize(self):
        assert normalize_email("  Jane.Doe@Example.COM ") == "jane.doe@example.com"
        assert normalize_email(None) is None

    def test_mask(self):
        masked = mask_email("jane.doe@example.com")

        assert "jane.doe" not in masked
        assert masked == "j***@example.com"

    def test_mask_empty(self):
        assert mask_email("") == "***"
