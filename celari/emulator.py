#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Emulate a platform authenticator, in software.
#
# Keys are plain P-256 keys held in memory (optionally saved to a JSON file) so
# there is no protection at all. Useful for tests, demos, and machines w/o a
# security key. Never for real funds.
#
import os, json
from dataclasses import dataclass

import cbor2

from .constants import *
from .compat import CT_pick_keypair, CT_sign
from .transport import AuthenticatorABC
from .utils import B2A, b64url_encode, b64url_decode, normalize_signature
from .webauthn import (make_auth_data, make_client_data, cose_from_xy, assertion_signed_data,
                        AttestationResponse, AssertionResponse)

# Print more?
DEBUG = False

# where the CLI keeps emulator state, unless told otherwise
DEFAULT_EMULATOR_PATH = os.path.expanduser('~/.celari/softkey.json')

CRED_ID_SIZE = 16

# we claim to be synced to a cloud keychain, like most platform passkeys
SOFT_FLAGS = FLAG_UP | FLAG_UV | FLAG_BE | FLAG_BS

@dataclass
class SoftKey:
    '''
        Info we store for each credential
    '''
    pkcs8: bytes
    rp_id: str
    user_id: bytes
    sign_count: int = 0

    def as_json(self):
        return dict(pkcs8=b64url_encode(self.pkcs8), rp_id=self.rp_id,
                    user_id=b64url_encode(self.user_id), sign_count=self.sign_count)

    @classmethod
    def from_json(cls, d):
        return cls(pkcs8=b64url_decode(d['pkcs8']), rp_id=d['rp_id'],
                    user_id=b64url_decode(d['user_id']), sign_count=d['sign_count'])

class SoftAuthenticator(AuthenticatorABC):
    name = 'software emulator'
    is_emulator = True

    def __init__(self, path=None, origin=ORIGIN, raw_signatures=False):
        self.path = path
        self.origin = origin

        # some authenticators hand back r||s already; we can act like that too
        self.raw_signatures = raw_signatures

        # set False to act like the user hit cancel (or walked away)
        self.user_present = True

        # credential id => SoftKey
        self.keys = {}

        if path and os.path.exists(path):
            self.load()

    @classmethod
    def find_emulator(cls, path=None):
        return cls(path=path or DEFAULT_EMULATOR_PATH)

    def load(self):
        with open(self.path, 'rt') as fd:
            j = json.load(fd)

        self.keys = {b64url_decode(k): SoftKey.from_json(v) for k,v in j.items()}

        if DEBUG:
            print(f"Loaded {len(self.keys)} credentials from {self.path}")

    def save(self):
        if not self.path:
            return

        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        with open(self.path, 'wt') as fd:
            json.dump({b64url_encode(k): v.as_json() for k,v in self.keys.items()}, fd, indent=1)

    @property
    def credential_ids(self):
        return list(self.keys)

    def forget(self, credential_id):
        # delete one credential; there is no undo
        self.keys.pop(bytes(credential_id))
        self.save()

    def _make_credential(self, options):
        if not self.user_present:
            return None

        if not any(p.get('alg') == COSE_ALG_ES256 for p in options['pubKeyCredParams']):
            # nothing we can make
            if DEBUG:
                print("No supported algorithm requested")
            return None

        rp_id = options['rp']['id']
        pkcs8, pubkey = CT_pick_keypair()
        cred_id = os.urandom(CRED_ID_SIZE)

        auth_data = make_auth_data(rp_id, SOFT_FLAGS | FLAG_AT, 0, credential_id=cred_id,
                                    cose_key=cose_from_xy(pubkey[0:32], pubkey[32:64]))
        client_data = make_client_data('webauthn.create', options['challenge'], self.origin)

        att_obj = cbor2.dumps(dict(fmt='none', attStmt={}, authData=auth_data))

        self.keys[cred_id] = SoftKey(pkcs8=pkcs8, rp_id=rp_id, user_id=bytes(options['user']['id']))
        self.save()

        if DEBUG:
            print(f"New credential {B2A(cred_id)} for {rp_id}")

        return AttestationResponse(raw_id=cred_id, attestation_object=att_obj,
                                    client_data_json=client_data)

    def _pick_key(self, options):
        rp_id = options['rpId']
        allowed = [bytes(c['id']) for c in options.get('allowCredentials', [])]

        for cred_id, key in self.keys.items():
            if key.rp_id != rp_id:
                continue
            if allowed and cred_id not in allowed:
                continue
            return cred_id, key

        return None, None

    def _get_assertion(self, options):
        if not self.user_present:
            return None

        cred_id, key = self._pick_key(options)
        if key is None:
            if DEBUG:
                print("No matching credential")
            return None

        key.sign_count += 1
        self.save()

        auth_data = make_auth_data(key.rp_id, SOFT_FLAGS, key.sign_count)
        client_data = make_client_data('webauthn.get', options['challenge'], self.origin)

        sig = CT_sign(key.pkcs8, assertion_signed_data(auth_data, client_data))
        if self.raw_signatures:
            sig = normalize_signature(sig)

        return AssertionResponse(raw_id=cred_id, authenticator_data=auth_data,
                                    client_data_json=client_data, signature=sig,
                                    user_handle=key.user_id)

    def __repr__(self):
        return f'<SoftAuthenticator: {len(self.keys)} credentials>'

# EOF
