#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Tests for crypto wrappers, WebAuthn structures and the passkey ceremonies.
#
# NOTE: ceremonies run against the software authenticator, except those marked
# "device" which want a real one (pytest --device).
#
import json, pytest
import cbor2
from base64 import b64decode

from cryptography.exceptions import InvalidTag

from celari.constants import *
from celari.compat import *
from celari.utils import b64url_encode, b64url_decode, normalize_signature
from celari.exceptions import (CredentialCreationFailed, AuthenticationFailed,
                                PublicKeyNotFound)
from celari.emulator import SoftAuthenticator
from celari.proto import PasskeyGateway, verify_passkey_signature
from celari.transport import AuthenticatorABC
from celari.webauthn import *

def test_wrap(p256_vector):
    # crypto lib wrappers need to function
    assert sha256s(b'abc') == \
            bytes.fromhex('ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad')

    pk, pub = CT_pick_keypair()
    assert len(pub) == 64
    assert CT_priv_to_pubkey(pk) == pub

    md = bytes(32)
    sig = normalize_signature(CT_sign(pk, md))
    assert CT_sig_verify(pub, md, sig)
    assert not CT_sig_verify(pub, b'\x01' + md[1:], sig)
    assert not CT_sig_verify(pub, md, sig[:-1] + bytes([sig[-1] ^ 1]))

    # from the browser
    vpub = p256_vector['raw'][1:]
    assert CT_priv_to_pubkey(b64decode(p256_vector['pkcs8'])) == vpub
    assert CT_sig_verify(vpub, p256_vector['msg'], p256_vector['p1363'])
    assert CT_pubkey_to_spki(vpub) == p256_vector['spki']

def test_wrap_kdf_aead():
    assert CT_pbkdf2(b'password', b'salt', 1, 32) == \
            bytes.fromhex('120fb6cffcf8b32c43e7225256c4f837a86548c92ccc35480805987cb70be17b')

    key, iv = b'\x01' * 32, b'\x02' * 12
    ct = CT_aes_gcm_seal(key, iv, b'hello')
    assert ct == bytes.fromhex('6fb3a5252502630b59edf03e770c9c03868bf73aed')
    assert CT_aes_gcm_open(key, iv, ct) == b'hello'

    with pytest.raises(InvalidTag):
        CT_aes_gcm_open(key, iv, ct[:-1] + bytes([ct[-1] ^ 1]))

def test_wrong_curve():
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import ec

    k1 = ec.generate_private_key(ec.SECP256K1()).private_bytes(serialization.Encoding.DER,
                serialization.PrivateFormat.PKCS8, serialization.NoEncryption())
    with pytest.raises(ValueError):
        CT_sign(k1, bytes(32))

def test_options():
    co = creation_options('Alice')
    assert co['rp'] == dict(name=RP_NAME, id=RP_ID)
    assert co['user']['name'] == co['user']['displayName'] == 'Alice'
    assert len(co['challenge']) == len(co['user']['id']) == 32
    assert co['pubKeyCredParams'] == [dict(type='public-key', alg=-7)]
    assert co['authenticatorSelection'] == dict(authenticatorAttachment='platform',
                                        residentKey='required', userVerification='required')
    assert co['timeout'] == 60000
    assert co['attestation'] == 'none'

    # fresh every time
    assert creation_options()['challenge'] != co['challenge']

    ro = request_options('AQIDBA', b'c' * 32)
    assert ro['rpId'] == RP_ID
    assert ro['allowCredentials'] == [dict(type='public-key', id=b'\x01\x02\x03\x04')]
    assert ro['userVerification'] == 'required'

def test_client_data():
    raw = make_client_data('webauthn.get', b'\xfb\xff')
    assert raw == b'{"type":"webauthn.get","challenge":"-_8",' \
                  b'"origin":"https://celari.wallet","crossOrigin":false}'
    assert parse_client_data(raw)['challenge'] == '-_8'

def test_auth_data():
    pk, pub = CT_pick_keypair()
    cose = cose_from_xy(pub[0:32], pub[32:])
    ad = make_auth_data(RP_ID, FLAG_UP | FLAG_UV | FLAG_AT, 7, credential_id=b'cred', cose_key=cose)

    got = parse_auth_data(ad)
    assert got['rp_id_hash'] == sha256s(RP_ID.encode())
    assert got['sign_count'] == 7
    assert got['user_present'] and got['user_verified']
    assert got['credential_id'] == b'cred'
    assert got['aaguid'] == bytes(16)
    assert got['public_key'] == cose

    assert CT_pubkey_to_spki(pub) == cose_to_spki(cose)

    # without attested data
    got = parse_auth_data(make_auth_data(RP_ID, FLAG_UP, 1))
    assert not got['user_verified']
    assert 'credential_id' not in got

    for cut in [ 10, 36, 40, 60 ]:
        with pytest.raises(ValueError):
            parse_auth_data(ad[0:cut])

    # extensions after the key
    ad2 = make_auth_data(RP_ID, FLAG_UP | FLAG_AT | FLAG_ED, 0, credential_id=b'x', cose_key=cose)
    ad2 += cbor2.dumps({'credProtect': 2})
    assert parse_auth_data(ad2)['extensions'] == {'credProtect': 2}

@pytest.mark.parametrize('mod', [
    {3: -8},            # EdDSA
    {-1: 2},            # P-384
    {-2: bytes(31)},
    {1: 1},             # OKP
])
def test_cose_rejects(mod):
    pk, pub = CT_pick_keypair()
    cose = cose_from_xy(pub[0:32], pub[32:])
    cose.update(mod)

    with pytest.raises(PublicKeyNotFound):
        cose_to_spki(cose)

def test_cose_off_curve():
    with pytest.raises(PublicKeyNotFound):
        cose_to_spki(cose_from_xy(b'\x01' * 32, b'\x02' * 32))

def test_attestation_junk():
    with pytest.raises(PublicKeyNotFound):
        spki_from_attestation(b'\xff\xff')
    with pytest.raises(PublicKeyNotFound):
        spki_from_attestation(cbor2.dumps({'fmt': 'none'}))
    with pytest.raises(PublicKeyNotFound):
        # no AT flag, so no key
        spki_from_attestation(cbor2.dumps(dict(fmt='none', attStmt={},
                                    authData=make_auth_data(RP_ID, FLAG_UP, 0))))

def test_create(gateway, soft):
    cred = gateway.create_credential('Alice')

    assert b64url_decode(cred.credential_id) == cred.raw_id
    assert cred.raw_id in soft.keys

    key = soft.keys[cred.raw_id]
    assert CT_priv_to_pubkey(key.pkcs8) == cred.public_key_x + cred.public_key_y
    assert key.rp_id == RP_ID

    hx = cred.public_key_hex
    assert hx['x'] == '0x' + cred.public_key_x.hex()

    # each ceremony makes a new key
    assert gateway.create_credential('Alice').raw_id != cred.raw_id

@pytest.mark.parametrize('raw_sigs', [ False, True ])
def test_sign(raw_sigs, soft, gateway):
    soft.raw_signatures = raw_sigs
    cred = gateway.create_credential()

    for n in range(1, 4):
        h = bytes([n]) * 32
        psig = gateway.sign(cred.credential_id, h)

        assert len(psig.signature) == 64
        assert verify_passkey_signature(cred, psig)

        cd = json.loads(psig.client_data_json)
        assert cd['type'] == 'webauthn.get'
        assert cd['challenge'] == b64url_encode(h)

        ad = parse_auth_data(psig.authenticator_data)
        assert ad['sign_count'] == n
        assert ad['user_verified']

def test_sign_picks_credential(gateway):
    c1 = gateway.create_credential('one')
    c2 = gateway.create_credential('two')

    psig = gateway.sign(c1.credential_id, bytes(32))
    assert verify_passkey_signature(c1, psig)
    assert not verify_passkey_signature(c2, psig)

def test_cancelled(gateway, soft):
    cred = gateway.create_credential()

    soft.user_present = False

    with pytest.raises(CredentialCreationFailed):
        gateway.create_credential()
    with pytest.raises(AuthenticationFailed):
        gateway.sign(cred.credential_id, bytes(32))

    # nothing was made or used
    assert len(soft.keys) == 1
    assert soft.keys[cred.raw_id].sign_count == 0

def test_sign_unknown(gateway):
    with pytest.raises(AuthenticationFailed):
        gateway.sign(b64url_encode(b'no such key'), bytes(32))

    # other relying party
    other = PasskeyGateway(gateway.auth, rp_id='example.com')
    cred = other.create_credential()
    with pytest.raises(AuthenticationFailed):
        gateway.sign(cred.credential_id, bytes(32))

@pytest.mark.parametrize('h', [ bytes(31), bytes(33), b'' ])
def test_sign_bad_hash(gateway, h):
    cred = gateway.create_credential()
    with pytest.raises(ValueError):
        gateway.sign(cred.credential_id, h)

def test_no_algorithm(soft):
    opts = creation_options()
    opts['pubKeyCredParams'] = [dict(type='public-key', alg=-8)]
    assert soft.create(opts) is None

class Replaying(AuthenticatorABC):
    # gives back an old answer, whatever we ask
    def __init__(self, inner, resp):
        self.inner, self.resp = inner, resp

    def _get_assertion(self, options):
        return self.resp

def test_challenge_mismatch(gateway, soft):
    cred = gateway.create_credential()
    old = soft.get(request_options(cred.credential_id, b'a' * 32))

    gw = PasskeyGateway(Replaying(soft, old))
    with pytest.raises(AuthenticationFailed):
        gw.sign(cred.credential_id, b'b' * 32)

    # but the honest answer is fine
    assert gw.sign(cred.credential_id, b'a' * 32).signature == normalize_signature(old.signature)

@pytest.mark.parametrize('cdj', [
    b'\xff\xfe',
    b'not json',
    b'[1, 2]',
    b'{"type":"webauthn.get","challenge":5}',
    b'{"type":"webauthn.get","challenge":"\u00e9"}',
])
def test_client_data_garbage(gateway, soft, cdj):
    cred = gateway.create_credential()
    resp = soft.get(request_options(cred.credential_id, b'a' * 32))
    resp.client_data_json = cdj

    gw = PasskeyGateway(Replaying(soft, resp))
    with pytest.raises(AuthenticationFailed):
        gw.sign(cred.credential_id, b'a' * 32)

def test_emulator_saves(tmp_path):
    fn = str(tmp_path / 'sub' / 'soft.json')

    gw = PasskeyGateway(SoftAuthenticator(path=fn))
    cred = gw.create_credential()
    gw.sign(cred.credential_id, bytes(32))

    again = SoftAuthenticator.find_emulator(fn)
    assert again.credential_ids == [cred.raw_id]
    assert again.keys[cred.raw_id].sign_count == 1

    psig = PasskeyGateway(again).sign(cred.credential_id, bytes(32))
    assert verify_passkey_signature(cred, psig)
    assert parse_auth_data(psig.authenticator_data)['sign_count'] == 2

    again.forget(cred.raw_id)
    assert SoftAuthenticator(path=fn).keys == {}

def test_verbose(capsys, gateway):
    import celari.transport as tt

    tt.VERBOSE = True
    try:
        cred = gateway.create_credential()
        gateway.sign(cred.credential_id, bytes(32))
    finally:
        tt.VERBOSE = False

    out = capsys.readouterr().out
    assert '>> create' in out
    assert '<< create: credential ' + cred.credential_id in out
    assert '<< get: sig' in out

@pytest.mark.device
def test_device(dev):
    # touch needed, twice
    gw = PasskeyGateway(dev)
    cred = gw.create_credential('pytest')

    psig = gw.sign(cred.credential_id, sha256s(b'hello'))
    assert verify_passkey_signature(cred, psig)

# EOF
