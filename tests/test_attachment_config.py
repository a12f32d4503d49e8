"""Tests for attachment limits, MIME helpers and message tables."""

import pytest

from ticketbridge.attachments.config import (
    ATTACHMENT_CONFIG,
    SUPPORTED_IMAGE_TYPES,
    AttachmentConfig,
    get_extension_for_mime_type,
    is_supported_type,
    normalize_content_type,
)
from ticketbridge.core.retry import RetryPolicy


class TestDefaults:
    def test_limits(self):
        assert ATTACHMENT_CONFIG.max_file_size == 8 * 1024 * 1024
        assert ATTACHMENT_CONFIG.max_files_per_message == 10
        assert ATTACHMENT_CONFIG.upload_timeout == 30000

    def test_retry_policy(self):
        assert ATTACHMENT_CONFIG.retry == RetryPolicy(max_attempts=3, base_delay=1000, max_delay=5000)

    def test_supported_types_exact_and_ordered(self):
        assert SUPPORTED_IMAGE_TYPES == (
            "image/png",
            "image/jpeg",
            "image/jpg",
            "image/gif",
            "image/webp",
        )

    def test_message_tables_are_read_only(self):
        with pytest.raises(TypeError):
            ATTACHMENT_CONFIG.error_messages["timeout"] = "changed"  # type: ignore[index]

    def test_custom_config_shares_message_tables(self):
        config = AttachmentConfig(max_file_size=1024)
        assert config.error_messages is ATTACHMENT_CONFIG.error_messages
        assert config.success_messages is ATTACHMENT_CONFIG.success_messages
        with pytest.raises(TypeError):
            config.success_messages["attachments_only"] = "changed"  # type: ignore[index]


class TestNormalizeContentType:
    def test_strips_parameters_and_case(self):
        assert normalize_content_type("IMAGE/PNG; charset=utf-8") == "image/png"

    def test_strips_whitespace(self):
        assert normalize_content_type("  image/gif  ") == "image/gif"

    @pytest.mark.parametrize("raw", [
        "IMAGE/PNG; charset=utf-8",
        " Image/Jpeg ;q=0.9",
        "application/pdf",
        "",
        ";;;",
        "image/",
    ])
    def test_idempotent(self, raw):
        once = normalize_content_type(raw)
        assert normalize_content_type(once) == once


class TestIsSupportedType:
    @pytest.mark.parametrize("raw", [
        "image/png",
        "image/jpeg",
        "image/jpg",
        "image/gif",
        "image/webp",
        "IMAGE/WEBP",
        "image/jpeg; charset=binary",
    ])
    def test_supported(self, raw):
        assert is_supported_type(raw) is True

    @pytest.mark.parametrize("raw", ["", "image/", "image/svg+xml", "application/pdf", "png"])
    def test_unsupported(self, raw):
        assert is_supported_type(raw) is False


class TestExtensions:
    def test_known_types(self):
        assert get_extension_for_mime_type("image/png") == "png"
        assert get_extension_for_mime_type("image/jpeg") == "jpg"
        assert get_extension_for_mime_type("image/jpg") == "jpg"
        assert get_extension_for_mime_type("image/gif") == "gif"
        assert get_extension_for_mime_type("image/webp") == "webp"

    def test_no_normalization(self):
        assert get_extension_for_mime_type("IMAGE/PNG") == "bin"
        assert get_extension_for_mime_type("image/png; q=1") == "bin"

    def test_unknown(self):
        assert get_extension_for_mime_type("application/pdf") == "bin"


class TestMessages:
    def test_file_too_large_template(self):
        message = ATTACHMENT_CONFIG.error("file_too_large", name="huge.png")
        assert "huge.png" in message
        assert "exceeds maximum size of 8MB" in message

    def test_too_many_files_uses_limit(self):
        config = AttachmentConfig(max_files_per_message=4)
        assert "Maximum is 4 images" in config.error("too_many_files")

    def test_upload_failed_mentions_attempts(self):
        message = ATTACHMENT_CONFIG.error("upload_failed", attempt=2)
        assert "attempt 2/3" in message

    def test_success_template(self):
        assert ATTACHMENT_CONFIG.success("partial_success", count=1, total=3) == (
            "📎 1 of 3 images uploaded successfully."
        )
