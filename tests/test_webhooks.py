import base64
import hashlib
import hmac

import pytest

from priceadjuster.utils.webhooks import extract_entity_id, verify_signature

SECRET = "shh"
BODY = b'{"id": 632910392, "title": "IPod Nano"}'


def _sign(body: bytes, secret: str = SECRET) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def test_valid_signature():
    assert verify_signature(BODY, _sign(BODY), SECRET)


def test_tampered_body_is_rejected():
    assert not verify_signature(BODY + b" ", _sign(BODY), SECRET)


def test_wrong_secret_is_rejected():
    assert not verify_signature(BODY, _sign(BODY, "other"), SECRET)


@pytest.mark.parametrize("header,secret", [(None, SECRET), ("", SECRET), ("abc", None), ("abc", "")])
def test_missing_header_or_secret(header, secret):
    assert not verify_signature(BODY, header, secret)


def test_extract_entity_id_from_bytes_and_mapping():
    assert extract_entity_id(BODY) == "632910392"
    assert extract_entity_id({"id": "gid-7"}) == "gid-7"


@pytest.mark.parametrize("payload", [b"not json", "[1, 2]", {"title": "no id"}, {"id": ""}])
def test_extract_entity_id_rejects_bad_payloads(payload):
    with pytest.raises(ValueError):
        extract_entity_id(payload)


@pytest.mark.parametrize("header", ["\xe9abc", "snow☃man"])
def test_non_ascii_signature_does_not_raise(header):
    assert not verify_signature(BODY, header, SECRET)
