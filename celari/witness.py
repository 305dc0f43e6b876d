#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# witness.py
#
# Auth witnesses for the passkey account contract. The contract checks a P-256
# signature over the message hash, given as 64 fields (one per signature byte).
#
import base64
from dataclasses import dataclass
from typing import Tuple

from .constants import *
from .compat import CT_pick_keypair, CT_sign
from .exceptions import NoSigningMaterial
from .utils import bytes_to_hex, hex_to_bytes, message_hash_bytes, normalize_signature

@dataclass(frozen=True)
class AuthWitness:
    '''
        Proof of authorization for one transaction: 32-byte hash + 64 byte-sized fields.
    '''
    message_hash: bytes
    fields: Tuple[int, ...]

    def __post_init__(self):
        if len(self.message_hash) != HASH_SIZE:
            raise ValueError("Message hash must be 32 bytes")
        if len(self.fields) != NUM_WITNESS_FIELDS:
            raise ValueError(f"Witness needs exactly {NUM_WITNESS_FIELDS} fields, "
                                f"got {len(self.fields)}")
        if not all(isinstance(f, int) and 0 <= f <= 255 for f in self.fields):
            raise ValueError("Witness fields must be byte values")

    @classmethod
    def from_signature(cls, message_hash, sig):
        # r||s becomes one field per byte; this is NOT a compact buffer
        return cls(bytes(message_hash), tuple(bytes(sig)))

    @property
    def signature(self):
        return bytes(self.fields)

    def as_dict(self):
        return dict(messageHash=bytes_to_hex(self.message_hash), fields=list(self.fields))

class AuthWitnessProviderABC:
    # one capability: sign this hash for the account contract
    def create_auth_witness(self, message_hash):
        raise NotImplementedError

class PasskeyAuthWitnessProvider(AuthWitnessProviderABC):
    #
    # Signs using a passkey: one biometric ceremony per witness, never retried.
    #
    def __init__(self, credential, gateway):
        self.credential = credential
        self.gateway = gateway

    def create_auth_witness(self, message_hash):
        h = message_hash_bytes(message_hash)

        # AuthenticationFailed goes to caller as-is
        psig = self.gateway.sign(self.credential.credential_id, h)

        return AuthWitness.from_signature(h, psig.signature)

class P256KeyAuthWitnessProvider(AuthWitnessProviderABC):
    #
    # Signs with a raw P-256 key, for deploys from the command line where no
    # authenticator is around. Key is PKCS8 DER (bytes) or base64 of same.
    #
    def __init__(self, private_key_pkcs8):
        if isinstance(private_key_pkcs8, str):
            private_key_pkcs8 = base64.b64decode(private_key_pkcs8)
        self.pkcs8 = bytes(private_key_pkcs8)

    def create_auth_witness(self, message_hash):
        h = message_hash_bytes(message_hash)

        # SHA-256 of h happens inside the signer; result is DER, so normalize
        sig = normalize_signature(CT_sign(self.pkcs8, h))

        return AuthWitness.from_signature(h, sig)

def _coord(v):
    v = hex_to_bytes(v) if isinstance(v, str) else bytes(v)
    if len(v) != COORD_SIZE:
        raise ValueError("Public key coordinate must be 32 bytes")
    return v

class PasskeyAccountContract:
    '''
        The account contract, from the wallet's side: constructor arguments for
        deployment, and the right witness provider for whatever key we hold.
    '''
    def __init__(self, public_key_x, public_key_y, credential=None, private_key=None,
                        gateway=None):
        if credential is not None and private_key is not None:
            raise ValueError("Give a passkey credential or a private key, not both")

        self.public_key_x = _coord(public_key_x)
        self.public_key_y = _coord(public_key_y)
        self.credential = credential
        self.private_key = private_key
        self.gateway = gateway

    @classmethod
    def for_credential(cls, credential, gateway=None):
        return cls(credential.public_key_x, credential.public_key_y,
                        credential=credential, gateway=gateway)

    def deploy_args(self):
        return dict(pubKeyX=bytes_to_hex(self.public_key_x),
                    pubKeyY=bytes_to_hex(self.public_key_y),
                    credentialId=self.credential.credential_id if self.credential else None)

    def get_initialization_function_and_args(self):
        return 'constructor', [self.public_key_x, self.public_key_y]

    def get_auth_witness_provider(self, address=None):
        # address is unused; the key material decides
        if self.credential is not None:
            if self.gateway is None:
                raise NoSigningMaterial("Passkey credential given, but no authenticator to use it")
            return PasskeyAuthWitnessProvider(self.credential, self.gateway)

        if self.private_key is not None:
            return P256KeyAuthWitnessProvider(self.private_key)

        raise NoSigningMaterial("No passkey credential or private key to sign with")

    def create_auth_witness(self, message_hash):
        return self.get_auth_witness_provider().create_auth_witness(message_hash)

def generate_p256_keypair():
    # new key for an account deployed from the command line
    # - returns (pkcs8, x, y)
    pkcs8, pubkey = CT_pick_keypair()
    return pkcs8, pubkey[0:32], pubkey[32:64]

# EOF
