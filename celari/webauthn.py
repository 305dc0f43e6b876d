#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# webauthn.py
#
# Binary structures exchanged with authenticators: ceremony options, clientDataJSON,
# authenticatorData, attestation objects and COSE keys.
#
# authenticatorData layout:
#   rpIdHash(32) flags(1) signCount(4, BE)
#   [if AT flag] aaguid(16) credIdLen(2, BE) credId(credIdLen) credentialPublicKey(COSE/CBOR)
#   [if ED flag] extensions(CBOR)
#
import io, json, struct
from dataclasses import dataclass
from typing import Optional

import cbor2

from .constants import *
from .compat import sha256s, CT_pubkey_to_spki
from .exceptions import PublicKeyNotFound
from .utils import b64url_encode, b64url_decode, pick_challenge

def creation_options(display_name=DEFAULT_DISPLAY_NAME, rp_id=RP_ID, challenge=None, user_id=None):
    # Options for navigator.credentials.create(): platform authenticator, discoverable,
    # user verified, ES256 only, no attestation statement wanted.
    return dict(
        rp=dict(name=RP_NAME, id=rp_id),
        user=dict(id=user_id or pick_challenge(USER_ID_SIZE), name=display_name, displayName=display_name),
        challenge=challenge or pick_challenge(),
        pubKeyCredParams=[dict(type='public-key', alg=COSE_ALG_ES256)],
        authenticatorSelection=dict(authenticatorAttachment='platform',
                                    residentKey='required',
                                    userVerification='required'),
        timeout=CEREMONY_TIMEOUT_MS,
        attestation='none',
    )

def request_options(credential_id, challenge, rp_id=RP_ID):
    # Options for navigator.credentials.get(), scoped to one credential
    return dict(
        challenge=bytes(challenge),
        rpId=rp_id,
        allowCredentials=[dict(type='public-key', id=b64url_decode(credential_id))],
        userVerification='required',
        timeout=CEREMONY_TIMEOUT_MS,
    )

def make_client_data(ceremony, challenge, origin=ORIGIN):
    # ceremony is 'webauthn.create' or 'webauthn.get'
    return json.dumps(dict(type=ceremony, challenge=b64url_encode(challenge),
                            origin=origin, crossOrigin=False),
                        separators=(',', ':')).encode('utf-8')

def parse_client_data(raw):
    return json.loads(bytes(raw).decode('utf-8'))

def cose_from_xy(x, y):
    return {1: COSE_KTY_EC2, 3: COSE_ALG_ES256, -1: COSE_CRV_P256, -2: bytes(x), -3: bytes(y)}

def cose_to_spki(cose):
    # ES256 COSE_Key => SubjectPublicKeyInfo DER
    if not isinstance(cose, dict):
        raise PublicKeyNotFound("COSE key is not a map")
    if cose.get(1) != COSE_KTY_EC2 or cose.get(3) != COSE_ALG_ES256 or cose.get(-1) != COSE_CRV_P256:
        raise PublicKeyNotFound("Unsupported COSE key (need ES256 on P-256)")

    x, y = cose.get(-2), cose.get(-3)
    if not isinstance(x, bytes) or not isinstance(y, bytes) \
            or len(x) != COORD_SIZE or len(y) != COORD_SIZE:
        raise PublicKeyNotFound("COSE key has bad coordinates")

    try:
        return CT_pubkey_to_spki(x + y)
    except ValueError:
        # not on the curve
        raise PublicKeyNotFound("COSE key is not a P-256 point")

def make_auth_data(rp_id, flags, sign_count, credential_id=None, cose_key=None, aaguid=bytes(16)):
    rv = sha256s(rp_id.encode('utf-8')) + bytes([flags]) + struct.pack('>I', sign_count)

    if credential_id is not None:
        assert flags & FLAG_AT
        rv += bytes(aaguid) + struct.pack('>H', len(credential_id)) + bytes(credential_id)
        rv += cbor2.dumps(cose_key)

    return rv

def parse_auth_data(auth_data):
    # Decode authenticatorData, see layout above. Raises ValueError if truncated.
    auth_data = bytes(auth_data)
    if len(auth_data) < 37:
        raise ValueError("authenticatorData too short")

    flags = auth_data[32]
    rv = dict(rp_id_hash=auth_data[0:32], flags=flags,
                sign_count=struct.unpack('>I', auth_data[33:37])[0],
                user_present=bool(flags & FLAG_UP),
                user_verified=bool(flags & FLAG_UV))

    ptr = 37
    if flags & FLAG_AT:
        if len(auth_data) < ptr + 18:
            raise ValueError("attested credential data truncated")

        rv['aaguid'] = auth_data[ptr:ptr+16]
        ptr += 16
        cred_len, = struct.unpack('>H', auth_data[ptr:ptr+2])
        ptr += 2
        if len(auth_data) < ptr + cred_len:
            raise ValueError("credential id truncated")
        rv['credential_id'] = auth_data[ptr:ptr+cred_len]
        ptr += cred_len

        # COSE key is one CBOR item; extensions may follow it
        fp = io.BytesIO(auth_data[ptr:])
        try:
            rv['public_key'] = cbor2.CBORDecoder(fp).decode()
        except cbor2.CBORDecodeError as exc:
            raise ValueError(f"bad credential public key: {exc}")
        ptr += fp.tell()

    if flags & FLAG_ED:
        try:
            rv['extensions'] = cbor2.loads(auth_data[ptr:])
        except cbor2.CBORDecodeError as exc:
            raise ValueError(f"bad extensions: {exc}")

    return rv

def parse_attestation_object(att_obj):
    # CBOR map: {fmt: str, attStmt: map, authData: bytes}
    try:
        obj = cbor2.loads(bytes(att_obj))
    except cbor2.CBORDecodeError as exc:
        raise ValueError(f"not CBOR: {exc}")

    if not isinstance(obj, dict) or not isinstance(obj.get('authData'), bytes):
        raise ValueError("not an attestation object")

    return dict(fmt=obj.get('fmt'), att_stmt=obj.get('attStmt', {}),
                auth_data=parse_auth_data(obj['authData']), raw_auth_data=obj['authData'])

def spki_from_attestation(att_obj):
    # what getPublicKey() gives a browser: SPKI of the newly attested credential
    try:
        parsed = parse_attestation_object(att_obj)
    except ValueError as exc:
        raise PublicKeyNotFound(f"Unreadable attestation object: {exc}")

    cose = parsed['auth_data'].get('public_key')
    if cose is None:
        raise PublicKeyNotFound("No public key in attestation response")

    return cose_to_spki(cose)

def assertion_signed_data(authenticator_data, client_data_json):
    # the bytes an authenticator actually signs for an assertion
    return bytes(authenticator_data) + sha256s(bytes(client_data_json))

@dataclass
class AttestationResponse:
    # Result of create(): credential id, attestation object (CBOR), clientDataJSON
    raw_id: bytes
    attestation_object: bytes
    client_data_json: bytes

    def get_public_key(self):
        return spki_from_attestation(self.attestation_object)

@dataclass
class AssertionResponse:
    # Result of get(): signature is whatever the authenticator made (usually DER)
    raw_id: bytes
    authenticator_data: bytes
    client_data_json: bytes
    signature: bytes
    user_handle: Optional[bytes] = None

# EOF
