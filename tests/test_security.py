"""Security-focused tests for the faucet."""

from types import SimpleNamespace

import pytest

from faucet.config import Settings
from faucet.services.chain_service import ChainService
from faucet.utils.encryption import EncryptionService
from faucet.utils.monitoring import filter_sensitive_data

TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcaf784d7bf4f2ff80"


class TestEncryption:
    """Test encryption and decryption functionality."""

    def test_encryption_roundtrip(self):
        """Test that encryption and decryption work correctly."""
        key = EncryptionService.generate_key()
        encryption_service = EncryptionService(key)

        encrypted = encryption_service.encrypt(TEST_PRIVATE_KEY)
        decrypted = encryption_service.decrypt(encrypted)

        assert decrypted == TEST_PRIVATE_KEY
        assert encrypted != TEST_PRIVATE_KEY

    def test_encryption_empty_data_validation(self):
        """Test encryption handles empty data appropriately."""
        encryption_service = EncryptionService(EncryptionService.generate_key())

        with pytest.raises(ValueError, match="Cannot encrypt empty data"):
            encryption_service.encrypt("")

    def test_encryption_invalid_decrypt(self):
        """Test decryption with wrong key fails appropriately."""
        service1 = EncryptionService(EncryptionService.generate_key())
        service2 = EncryptionService(EncryptionService.generate_key())

        encrypted = service1.encrypt(TEST_PRIVATE_KEY)

        with pytest.raises(ValueError, match="Decryption failed"):
            service2.decrypt(encrypted)

    def test_invalid_key(self):
        with pytest.raises(ValueError, match="Invalid encryption key"):
            EncryptionService("not-a-fernet-key")

    def test_encryption_key_generation(self):
        """Test encryption key generation produces valid keys."""
        key1 = EncryptionService.generate_key()
        key2 = EncryptionService.generate_key()

        assert key1 != key2
        # Fernet keys are 44 characters when base64 encoded
        assert len(key1) == 44
        assert len(key2) == 44

    def test_encrypted_signing_key_is_decrypted_from_settings(self):
        key = EncryptionService.generate_key()
        encrypted = EncryptionService(key).encrypt(TEST_PRIVATE_KEY)

        settings = Settings(
            PRIVATE_KEY=encrypted,
            PRIVATE_KEY_ENCRYPTED=True,
            ENCRYPTION_KEY=key,
            _env_file=None,
        )

        assert settings.signing_key() == TEST_PRIVATE_KEY


class TestInputValidation:
    """Test input validation for security vulnerabilities."""

    def test_address_validation_rejects_malicious_input(self):
        """Test address validation rejects potentially malicious inputs."""
        chain = ChainService(
            "http://rpc.test", TEST_PRIVATE_KEY, web3=SimpleNamespace(eth=None, provider=None)
        )

        malicious_inputs = [
            "'; DROP TABLE requests; --",  # SQL injection attempt
            "<script>alert('xss')</script>",  # XSS attempt
            "../../etc/passwd",  # Path traversal
            "\x00\x01\x02",  # Null bytes
            "0x" + "A" * 1000,  # Oversized input
            "0xABCDEF0123456789ABCDEF0123456789ABCDEF01\x00",  # Valid format with null byte
            "0xABCDEF0123456789ABCDEF0123456789ABCDEF01\n",  # Trailing newline
        ]

        for malicious_input in malicious_inputs:
            assert not chain.is_valid_address(
                malicious_input
            ), f"Malicious input {repr(malicious_input)} should be rejected"

    def test_invalid_private_key_is_not_echoed(self):
        from faucet.errors import ConfigurationError

        secret = "0xdeadbeef-not-a-real-key"
        with pytest.raises(ConfigurationError) as exc_info:
            ChainService("http://rpc.test", secret, web3=SimpleNamespace(eth=None, provider=None))

        assert secret not in str(exc_info.value)


class TestSensitiveDataFiltering:
    """Sentry events must never carry secrets."""

    def test_nested_secrets_are_redacted(self):
        event = {
            "request": {"data": {"address": "0xabc", "verificationToken": "tok"}},
            "extra": {"settings": {"PRIVATE_KEY": "0xsecret", "RECAPTCHA_SECRET_KEY": "s"}},
            "contexts": {"items": [{"encryption_key": "k", "name": "faucet"}]},
        }

        filtered = filter_sensitive_data(event, {})

        assert filtered["request"]["data"] == {"address": "0xabc", "verificationToken": "***REDACTED***"}
        assert filtered["extra"]["settings"] == {
            "PRIVATE_KEY": "***REDACTED***",
            "RECAPTCHA_SECRET_KEY": "***REDACTED***",
        }
        assert filtered["contexts"]["items"] == [{"encryption_key": "***REDACTED***", "name": "faucet"}]
