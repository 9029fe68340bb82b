import pytest

from masstock.errors import EncryptionError
from masstock.security.encryption import KeyEncryptor, generate_key, validate_key


def test_encrypt_produces_hex_record_and_decrypts():
    encryptor = KeyEncryptor(generate_key())
    record = encryptor.encrypt("AIza-secret-key")

    assert record["algorithm"] == "aes-256-gcm"
    assert len(bytes.fromhex(record["iv"])) == 16
    assert len(bytes.fromhex(record["authTag"])) == 16
    assert len(bytes.fromhex(record["salt"])) == 64
    assert "AIza" not in record["encrypted"]
    assert encryptor.decrypt(record) == "AIza-secret-key"


def test_each_encryption_uses_fresh_iv():
    encryptor = KeyEncryptor(generate_key())
    assert encryptor.encrypt("same")["iv"] != encryptor.encrypt("same")["iv"]


def test_tampered_record_fails():
    encryptor = KeyEncryptor(generate_key())
    record = encryptor.encrypt("secret")
    flipped = "0" if record["authTag"][0] != "0" else "1"
    record["authTag"] = flipped + record["authTag"][1:]

    with pytest.raises(EncryptionError) as exc:
        encryptor.decrypt(record)
    assert exc.value.code == "DECRYPTION_FAILED"

    with pytest.raises(EncryptionError) as exc:
        encryptor.decrypt({"iv": "zz"})
    assert exc.value.code == "DECRYPTION_FAILED"


def test_wrong_key_cannot_decrypt():
    record = KeyEncryptor(generate_key()).encrypt("secret")
    with pytest.raises(EncryptionError):
        KeyEncryptor(generate_key()).decrypt(record)


@pytest.mark.parametrize(
    "key, code",
    [(None, "MISSING_ENCRYPTION_KEY"), ("abc", "INVALID_ENCRYPTION_KEY"), ("g" * 64, "INVALID_ENCRYPTION_KEY")],
)
def test_key_validation(key, code):
    assert not validate_key(key)
    with pytest.raises(EncryptionError) as exc:
        KeyEncryptor(key)
    assert exc.value.code == code
    assert validate_key(generate_key())
