"""Tests for AES-256-GCM envelopes."""

import base64
import json

import pytest

from photolocker.cipher import (
    ALGORITHM,
    IV_LENGTH,
    TAG_LENGTH,
    AEADCipher,
    EncryptionEnvelope,
    obfuscated_name,
    self_test,
)
from photolocker.errors import AuthenticationError, ConfigurationError
from photolocker.kdf import PBKDF2_ITERATIONS, SALT_LENGTH

PASSPHRASE = "Correct-Horse-Battery-Staple-42!"
OTHER_PASSPHRASE = "Another-Strong-Passphrase-99?"


@pytest.fixture
def cipher() -> AEADCipher:
    return AEADCipher()


@pytest.fixture
def sealed(cipher) -> EncryptionEnvelope:
    return cipher.seal(b"holiday photo bytes", PASSPHRASE)


class TestSealOpen:
    """Tests for AEADCipher.seal() and open()."""

    def test_round_trip(self, cipher, sealed):
        """open() returns the sealed plaintext."""
        assert cipher.open(sealed, PASSPHRASE) == b"holiday photo bytes"

    def test_envelope_shape(self, sealed):
        """Envelopes carry a 16-byte salt, 12-byte IV and appended tag."""
        assert len(sealed.salt) == SALT_LENGTH
        assert len(sealed.iv) == IV_LENGTH
        assert len(sealed.ciphertext) == len(b"holiday photo bytes") + TAG_LENGTH
        assert sealed.algorithm == ALGORITHM
        assert sealed.iterations == PBKDF2_ITERATIONS

    def test_empty_plaintext(self, cipher):
        """An empty payload seals to just the tag and opens to b''."""
        envelope = cipher.seal(b"", PASSPHRASE)
        assert len(envelope.ciphertext) == TAG_LENGTH
        assert cipher.open(envelope, PASSPHRASE) == b""

    def test_fresh_salt_and_iv(self, cipher):
        """Sealing the same plaintext twice never repeats salt, IV or ciphertext."""
        a = cipher.seal(b"same", PASSPHRASE)
        b = cipher.seal(b"same", PASSPHRASE)
        assert a.salt != b.salt
        assert a.iv != b.iv
        assert a.ciphertext != b.ciphertext

    def test_wrong_passphrase(self, cipher, sealed):
        """A wrong passphrase fails authentication."""
        with pytest.raises(AuthenticationError):
            cipher.open(sealed, OTHER_PASSPHRASE)

    def test_short_passphrase_on_open(self, cipher, sealed):
        """A passphrase too short to derive a key fails the same way."""
        with pytest.raises(AuthenticationError):
            cipher.open(sealed, "short")

    @pytest.mark.parametrize("field", ["ciphertext", "iv", "salt"])
    def test_tampering_detected(self, cipher, sealed, field):
        """Flipping one bit in any field fails authentication."""
        value = bytearray(getattr(sealed, field))
        value[0] ^= 0x01
        tampered = EncryptionEnvelope(
            **{
                "ciphertext": sealed.ciphertext,
                "iv": sealed.iv,
                "salt": sealed.salt,
                field: bytes(value),
            }
        )
        with pytest.raises(AuthenticationError):
            cipher.open(tampered, PASSPHRASE)

    def test_truncated_tag(self, cipher, sealed):
        """Dropping the last tag byte fails authentication."""
        truncated = EncryptionEnvelope(
            ciphertext=sealed.ciphertext[:-1], iv=sealed.iv, salt=sealed.salt
        )
        with pytest.raises(AuthenticationError):
            cipher.open(truncated, PASSPHRASE)

    def test_error_message_is_generic(self, cipher, sealed):
        """The failure message does not say which check failed."""
        with pytest.raises(AuthenticationError) as exc_info:
            cipher.open(sealed, OTHER_PASSPHRASE)
        assert exc_info.value.message == "Incorrect passphrase or corrupted data"

    def test_configured_passphrase(self, config):
        """Without an explicit passphrase the configured one is used."""
        cipher = AEADCipher(config)
        envelope = cipher.seal(b"data")
        assert cipher.open(envelope) == b"data"
        assert AEADCipher().open(envelope, config.encryption_passphrase) == b"data"

    def test_no_passphrase_no_config(self, cipher):
        """With neither a passphrase nor a config, sealing is refused."""
        with pytest.raises(ConfigurationError):
            cipher.seal(b"data")

    def test_iterations_floor(self):
        """Ciphers cannot be built below the iteration floor."""
        with pytest.raises(ValueError):
            AEADCipher(iterations=10)

    def test_custom_iterations_round_trip(self):
        """A higher iteration count is recorded and honoured."""
        cipher = AEADCipher(iterations=PBKDF2_ITERATIONS + 1)
        envelope = cipher.seal(b"data", PASSPHRASE)
        restored = EncryptionEnvelope.from_dict(envelope.to_dict())
        assert restored.iterations == PBKDF2_ITERATIONS + 1
        assert AEADCipher().open(restored, PASSPHRASE) == b"data"


class TestEnvelopeSerialization:
    """Tests for the persisted envelope form."""

    def test_to_dict_fields(self, sealed):
        """to_dict emits base64 fields and omits the default iteration count."""
        data = sealed.to_dict()
        assert set(data) == {"algorithm", "ciphertext", "iv", "salt"}
        assert base64.b64decode(data["iv"]) == sealed.iv
        assert base64.b64decode(data["salt"]) == sealed.salt

    def test_json_round_trip_opens(self, cipher, sealed):
        """An envelope survives JSON and still opens."""
        restored = EncryptionEnvelope.from_json(sealed.to_json())
        assert restored == sealed
        assert cipher.open(restored, PASSPHRASE) == b"holiday photo bytes"

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda d: d.pop("iv"),
            lambda d: d.update(salt="not base64!"),
            lambda d: d.update(iv=base64.b64encode(b"short").decode()),
            lambda d: d.update(algorithm="AES-128-CBC"),
            lambda d: d.update(iterations=5),
            lambda d: d.update(ciphertext=base64.b64encode(b"tiny").decode()),
        ],
    )
    def test_malformed_dict(self, sealed, mutate):
        """Malformed envelopes are reported as authentication failures."""
        data = sealed.to_dict()
        mutate(data)
        with pytest.raises(AuthenticationError):
            EncryptionEnvelope.from_dict(data)

    @pytest.mark.parametrize("text", ["", "not json", "[]", json.dumps({"a": 1})])
    def test_malformed_json(self, text):
        """Unparseable or non-envelope JSON fails authentication."""
        with pytest.raises(AuthenticationError):
            EncryptionEnvelope.from_json(text)


class TestText:
    """Tests for seal_text() and open_text()."""

    def test_round_trip(self, cipher):
        """Unicode text survives sealing."""
        envelope = cipher.seal_text("Grüße 📷", PASSPHRASE)
        assert isinstance(envelope, dict)
        assert cipher.open_text(envelope, PASSPHRASE) == "Grüße 📷"

    def test_non_utf8_plaintext(self, cipher):
        """A payload that is not UTF-8 fails open_text."""
        envelope = cipher.seal(b"\xff\xfe\xfd", PASSPHRASE).to_dict()
        with pytest.raises(AuthenticationError):
            cipher.open_text(envelope, PASSPHRASE)


class TestHelpers:
    """Tests for obfuscated_name() and self_test()."""

    def test_obfuscated_name(self):
        """Names are 32 hex chars plus the extension and .enc."""
        name = obfuscated_name("IMG_0001.jpg", PASSPHRASE)
        stem, ext, enc = name.split(".")
        assert len(stem) == 32
        assert int(stem, 16) >= 0
        assert (ext, enc) == ("jpg", "enc")

    def test_obfuscated_name_stable_and_keyed(self):
        """Names are stable per passphrase and differ between passphrases."""
        assert obfuscated_name("a.png", PASSPHRASE) == obfuscated_name("a.png", PASSPHRASE)
        assert obfuscated_name("a.png", PASSPHRASE) != obfuscated_name("a.png", OTHER_PASSPHRASE)

    def test_obfuscated_name_without_extension(self):
        """Dotfiles and extensionless names get only .enc."""
        assert obfuscated_name("README", PASSPHRASE).count(".") == 1
        assert obfuscated_name(".hidden", PASSPHRASE).count(".") == 1

    def test_self_test(self):
        """The built-in self-test passes."""
        assert self_test() is True
