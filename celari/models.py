#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Records passed between the gateway, witness providers and backup code.
#
from dataclasses import dataclass
from typing import Optional

from .constants import *
from .utils import bytes_to_hex, b64url_encode

@dataclass(frozen=True)
class PasskeyCredential:
    '''
        A registered authenticator-bound key pair. Never holds the private key.
    '''
    credential_id: str          # base64url of raw_id
    raw_id: bytes
    public_key_x: bytes         # 32 bytes
    public_key_y: bytes         # 32 bytes

    def __post_init__(self):
        if len(self.public_key_x) != COORD_SIZE or len(self.public_key_y) != COORD_SIZE:
            raise ValueError("public key coordinates must be 32 bytes each")
        if b64url_encode(self.raw_id) != self.credential_id:
            raise ValueError("credential_id does not match raw_id")

    @classmethod
    def from_raw_id(cls, raw_id, x, y):
        raw_id = bytes(raw_id)
        return cls(b64url_encode(raw_id), raw_id, bytes(x), bytes(y))

    @property
    def public_key_hex(self):
        return dict(x=bytes_to_hex(self.public_key_x), y=bytes_to_hex(self.public_key_y))

@dataclass(frozen=True)
class PasskeySignature:
    '''
        Output of one signing ceremony. Ephemeral.
    '''
    signature: bytes            # 64 bytes, r || s
    authenticator_data: bytes
    client_data_json: bytes

    def __post_init__(self):
        assert len(self.signature) == SIG_SIZE

    @property
    def signature_hex(self):
        return bytes_to_hex(self.signature)

@dataclass
class Account:
    '''
        What the wallet knows about one account contract instance.
    '''
    address: str
    public_key_x: str           # 0x hex
    public_key_y: str           # 0x hex
    credential_id: str = ''
    type: str = ACCOUNT_PASSKEY
    label: str = 'Account 1'
    deployed: bool = False
    network: Optional[str] = None

    # sensitive; live in secure storage, only carried here during restore
    salt: Optional[str] = None
    secret_key: Optional[str] = None
    private_key_pkcs8: Optional[str] = None

    @property
    def short_address(self):
        if len(self.address) <= 14:
            return self.address
        return self.address[:8] + '...' + self.address[-6:]

# EOF
