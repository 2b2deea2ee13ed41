import pytest

from hotstuff.primitives import (
    AuthorityId,
    AuthorityPair,
    AuthorityReuse,
    ClientError,
    HotstuffError,
    InvalidSignature,
    Keystore,
    UnknownAuthority,
    blake2_256,
)


def test_blake2_256_empty_input():
    assert blake2_256(b"").hex() == (
        "0e5751c026e543b2e8ab2eb06099daa1d1e5df47778f7787faab45cdf12fe3a8"
    )


def test_blake2_256_length_and_determinism():
    assert len(blake2_256(b"hotstuff/consensus")) == 32
    assert blake2_256(b"abc") == blake2_256(b"abc")
    assert blake2_256(b"abc") != blake2_256(b"abd")


def test_authority_id_rejects_wrong_length():
    with pytest.raises(ValueError):
        AuthorityId(b"\x01" * 31)


def test_authority_id_str_and_encode():
    raw = bytes(range(32))
    authority_id = AuthorityId(raw)
    assert str(authority_id) == "0x" + raw.hex()
    assert authority_id.encode() == raw
    assert AuthorityId(bytearray(raw)) == authority_id


def test_from_seed_is_deterministic():
    first = AuthorityPair.from_seed("//User0").public()
    second = AuthorityPair.from_seed("//User0").public()
    other = AuthorityPair.from_seed("//User1").public()
    assert first == second
    assert first != other


def test_sign_and_verify_round_trip():
    pair = AuthorityPair.from_seed("//Alice")
    signature = pair.sign(b"message")
    assert len(signature) == 64
    assert AuthorityPair.verify(signature, b"message", pair.public()) is True


def test_verify_rejects_other_message_key_and_length():
    pair = AuthorityPair.from_seed("//Alice")
    other = AuthorityPair.from_seed("//Bob")
    signature = pair.sign(b"message")
    assert AuthorityPair.verify(signature, b"message", other.public()) is False
    assert AuthorityPair.verify(signature, b"other", pair.public()) is False
    assert AuthorityPair.verify(signature[:10], b"message", pair.public()) is False


def test_keystore_generate_has_key_and_sign():
    keystore = Keystore()
    authority_id = keystore.generate("//User0")
    assert keystore.has_key(authority_id)
    assert authority_id == AuthorityPair.from_seed("//User0").public()
    signature = keystore.sign(authority_id, b"data")
    assert AuthorityPair.verify(signature, b"data", authority_id)


def test_keystore_unknown_key():
    keystore = Keystore()
    foreign = AuthorityPair.from_seed("//Nobody").public()
    assert keystore.has_key(foreign) is False
    assert keystore.sign(foreign, b"data") is None


def test_keystore_random_keys_differ():
    keystore = Keystore()
    first = keystore.generate()
    second = keystore.generate()
    assert keystore.has_key(first) is True
    assert keystore.has_key(second) is True
    assert (first == second) is False
    signature = keystore.sign(first, b"data")
    assert AuthorityPair.verify(signature, b"data", first) is True
    assert AuthorityPair.verify(signature, b"data", second) is False


def test_errors_carry_authority_and_detail():
    authority_id = AuthorityPair.from_seed("//User0").public()
    for error_type in (AuthorityReuse, InvalidSignature, UnknownAuthority):
        with pytest.raises(HotstuffError) as info:
            raise error_type(authority_id)
        assert info.value.authority_id == authority_id
        assert str(authority_id) in str(info.value)
    with pytest.raises(ClientError) as info:
        raise ClientError("boom")
    assert info.value.detail == "boom"