#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# proto.py
#
# Implement the passkey ceremonies: register a credential, and sign a message
# hash with it. Both wait on the user and the authenticator.
#
from .utils import *
from .constants import *
from .exceptions import CredentialCreationFailed, AuthenticationFailed
from .compat import CT_sig_verify
from .models import PasskeyCredential, PasskeySignature
from .webauthn import (creation_options, request_options, parse_client_data,
                        assertion_signed_data)

class PasskeyGateway:
    #
    # Wrapper around one authenticator. Call methods on this instance to get work done.
    #
    # Nothing here retries: a cancelled ceremony is the user's decision and is
    # reported as an exception. Ask again from the UI if needed.
    #
    def __init__(self, authenticator, rp_id=RP_ID):
        self.auth = authenticator
        self.rp_id = rp_id

    def __repr__(self):
        return '<%s via %r for %s>' % (self.__class__.__name__, self.auth, self.rp_id)

    def close(self):
        self.auth.close()
        del self.auth

    def create_credential(self, display_name=DEFAULT_DISPLAY_NAME):
        # Registration ceremony: new platform-resident, user-verified P-256 key.
        # - returns PasskeyCredential; private key stays in the authenticator
        resp = self.auth.create(creation_options(display_name, rp_id=self.rp_id))

        if resp is None or not resp.raw_id:
            raise CredentialCreationFailed("Passkey creation cancelled or failed")

        x, y = extract_p256_pubkey(resp.get_public_key())

        return PasskeyCredential.from_raw_id(resp.raw_id, x, y)

    def sign(self, credential_id, message_hash):
        # Authentication ceremony over the 32-byte hash (used as the challenge).
        # - signature comes back as r||s, whatever format the authenticator used
        message_hash = bytes(message_hash)
        if len(message_hash) != HASH_SIZE:
            raise ValueError(f"Message hash must be {HASH_SIZE} bytes")

        resp = self.auth.get(request_options(credential_id, message_hash, rp_id=self.rp_id))

        if resp is None or not resp.signature:
            raise AuthenticationFailed("Passkey authentication cancelled or failed")

        if resp.raw_id and b64url_encode(resp.raw_id) != credential_id:
            raise AuthenticationFailed("Authenticator used a different credential")

        try:
            got = parse_client_data(resp.client_data_json)
            ok = (got.get('type') == 'webauthn.get'
                    and b64url_decode(got.get('challenge', '')) == message_hash)
        except (ValueError, TypeError, AttributeError):
            # unreadable clientData counts as a mismatch
            ok = False

        if not ok:
            raise AuthenticationFailed("Client data does not match our challenge")

        return PasskeySignature(signature=normalize_signature(resp.signature),
                                authenticator_data=bytes(resp.authenticator_data),
                                client_data_json=bytes(resp.client_data_json))

def verify_passkey_signature(credential, psig):
    # Check a PasskeySignature the way the account contract does: over
    # authenticatorData || SHA-256(clientDataJSON). Returns bool.
    msg = assertion_signed_data(psig.authenticator_data, psig.client_data_json)
    return CT_sig_verify(credential.public_key_x + credential.public_key_y, msg, psig.signature)

# EOF
