"""Tests for input validation functions."""

import pytest

from photolocker.errors import ConfigurationError, SigningError
from photolocker.validation import (
    MAX_PRESIGNED_EXPIRES,
    is_loose_bucket_name,
    validate_bucket_name,
    validate_endpoint,
    validate_expires,
    validate_object_key,
)


class TestValidateBucketName:
    """Tests for validate_bucket_name()."""

    # -- Valid names ----------------------------------------------------------

    def test_valid_simple(self):
        """A simple lowercase alphanumeric name passes."""
        validate_bucket_name("my-bucket")

    def test_valid_three_chars(self):
        """Minimum length (3 chars) is accepted."""
        validate_bucket_name("abc")

    def test_valid_63_chars(self):
        """Maximum length (63 chars) is accepted."""
        validate_bucket_name("a" * 63)

    def test_valid_with_dots(self):
        """Names with dots (but no consecutive dots) are accepted."""
        validate_bucket_name("my.bucket.name")

    def test_valid_all_digits(self):
        """Names that are all digits are accepted (as long as not an IP)."""
        validate_bucket_name("123456")

    # -- Invalid names --------------------------------------------------------

    @pytest.mark.parametrize(
        "name",
        [
            "ab",
            "a" * 64,
            "MyBucket",
            "-my-bucket",
            "my-bucket-",
            "192.168.1.1",
            "xn--bucket",
            "bucket-s3alias",
            "bucket--ol-s3",
            "my..bucket",
            "my_bucket",
            "",
        ],
    )
    def test_invalid(self, name):
        """Names breaking any AWS rule are rejected with field='bucket'."""
        with pytest.raises(ConfigurationError) as exc_info:
            validate_bucket_name(name)
        assert exc_info.value.field == "bucket"


class TestIsLooseBucketName:
    """Tests for the relaxed bucket rule used by configuration."""

    def test_accepts_uppercase(self):
        """S3-compatible stores may allow uppercase names."""
        assert is_loose_bucket_name("MyPhotos")

    def test_accepts_leading_hyphen(self):
        """The loose rule does not check the first character."""
        assert is_loose_bucket_name("-photos")

    @pytest.mark.parametrize("name", ["ab", "a" * 64, "my_bucket", "my bucket", ""])
    def test_rejects(self, name):
        """Length and character set are still enforced."""
        assert not is_loose_bucket_name(name)


class TestValidateObjectKey:
    """Tests for validate_object_key()."""

    def test_valid_key_with_slashes(self):
        """Keys with slashes are valid."""
        validate_object_key("photos/2024/01/01/a.jpg")

    def test_valid_at_limit(self):
        """A key of exactly 1024 bytes is accepted."""
        validate_object_key("a" * 1024)

    def test_empty(self):
        """An empty key is rejected."""
        with pytest.raises(SigningError):
            validate_object_key("")

    def test_too_long_multibyte(self):
        """The limit counts UTF-8 bytes, not characters."""
        with pytest.raises(SigningError):
            validate_object_key("é" * 513)

    @pytest.mark.parametrize(
        "key", ["albums/../x.jpg", "./x.jpg", "albums/.", "..", "a/./b.jpg"]
    )
    def test_dot_segments(self, key):
        """Keys with '.' or '..' segments are rejected."""
        with pytest.raises(SigningError):
            validate_object_key(key)

    @pytest.mark.parametrize("key", ["photo..jpg", ".hidden", "a/...b", "albums/x."])
    def test_dots_inside_segments(self, key):
        """Dots that do not form a whole segment are allowed."""
        validate_object_key(key)


class TestValidateExpires:
    """Tests for validate_expires()."""

    @pytest.mark.parametrize("value", [1, 3600, MAX_PRESIGNED_EXPIRES])
    def test_valid(self, value):
        """Values in range are returned unchanged."""
        assert validate_expires(value) == value

    @pytest.mark.parametrize("value", [0, -5, MAX_PRESIGNED_EXPIRES + 1, 1.5, "60", False])
    def test_invalid(self, value):
        """Out-of-range and non-integer values are rejected."""
        with pytest.raises(SigningError):
            validate_expires(value)


class TestValidateEndpoint:
    """Tests for validate_endpoint()."""

    @pytest.mark.parametrize(
        "endpoint",
        ["https://s3.amazonaws.com", "http://localhost:9000", "https://[::1]:9000/base"],
    )
    def test_valid(self, endpoint):
        """Absolute http(s) URLs with a host are accepted."""
        assert validate_endpoint(endpoint).hostname

    @pytest.mark.parametrize(
        "endpoint",
        ["s3.amazonaws.com", "ftp://host", "http://", "http://host:99999", "not a url"],
    )
    def test_invalid(self, endpoint):
        """Anything else is rejected with field='endpoint'."""
        with pytest.raises(ConfigurationError) as exc_info:
            validate_endpoint(endpoint)
        assert exc_info.value.field == "endpoint"
