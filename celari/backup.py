#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# backup.py
#
# Password-protected account backups. Must stay compatible, byte for byte, with
# the browser extension and the iOS app:
#
#   key  = PBKDF2-HMAC-SHA256(utf8(password), salt[16], 600000 iterations) => 32 bytes
#   data = AES-256-GCM(key, iv[12], json) => ciphertext || tag[16]
#   file = {"v": 1, "salt": [ints], "iv": [ints], "data": [ints]}
#
# Binary members are JSON arrays of 0..255, not base64.
#
import os, re, json, time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from cryptography.exceptions import InvalidTag

from .constants import *
from .compat import CT_pbkdf2, CT_aes_gcm_seal, CT_aes_gcm_open
from .exceptions import InvalidFormat, DecryptionFailed, KeyDerivationFailed
from .models import Account
from .storage import load_account_keys, save_account_keys

# python name => JSON name, for everything we understand
_JSON_NAMES = dict(
    address='address', public_key_x='publicKeyX', public_key_y='publicKeyY',
    type='type', label='label', deployed='deployed', timestamp='timestamp',
    credential_id='credentialId', secret_key='secretKey',
    private_key_pkcs8='privateKeyPkcs8', salt='salt', network='network',
)
_REQUIRED = ('address', 'publicKeyX', 'publicKeyY')

def now_iso():
    # same shape as JS Date.toISOString()
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')

@dataclass
class BackupPayload:
    '''
        Plaintext inside a backup. Sensitive members are optional: a passkey's
        private key never leaves the authenticator, so it's never here.
    '''
    address: str
    public_key_x: str
    public_key_y: str
    type: str = ACCOUNT_PASSKEY
    label: str = 'Restored'
    deployed: bool = True
    timestamp: Optional[str] = None

    credential_id: Optional[str] = None
    secret_key: Optional[str] = None
    private_key_pkcs8: Optional[str] = None
    salt: Optional[str] = None
    network: Optional[str] = None

    # members we don't know about; kept so they survive a restore + re-export
    extra: dict = field(default_factory=dict)

    def __post_init__(self):
        # from_dict() maps foreign types to passkey; here we only refuse
        if self.type not in ACCOUNT_TYPES:
            raise InvalidFormat(f"Unknown account type: {self.type!r}")

    def to_dict(self):
        rv = dict(self.extra)
        for attr, name in _JSON_NAMES.items():
            v = getattr(self, attr)
            if v is not None:
                rv[name] = v
        return rv

    @classmethod
    def from_dict(cls, d):
        if not isinstance(d, dict):
            raise InvalidFormat("Backup payload must be a JSON object")

        for name in _REQUIRED:
            if not isinstance(d.get(name), str):
                raise InvalidFormat(f"Backup payload lacks '{name}'")

        def pick(name, ty, default=None):
            v = d.get(name)
            return v if isinstance(v, ty) else default

        known = set(_JSON_NAMES.values())
        kind = pick('type', str)

        return cls(address=d['address'], public_key_x=d['publicKeyX'],
                    public_key_y=d['publicKeyY'],
                    type=kind if kind in ACCOUNT_TYPES else ACCOUNT_PASSKEY,
                    label=pick('label', str, 'Restored'),
                    deployed=pick('deployed', bool, True),
                    timestamp=pick('timestamp', str),
                    credential_id=pick('credentialId', str),
                    secret_key=pick('secretKey', str),
                    private_key_pkcs8=pick('privateKeyPkcs8', str),
                    salt=pick('salt', str),
                    network=pick('network', str),
                    extra={k: v for k, v in d.items() if k not in known})

def _byte_list(v, name):
    if not isinstance(v, list) \
            or not all(isinstance(i, int) and not isinstance(i, bool) and 0 <= i <= 255 for i in v):
        raise InvalidFormat(f"Backup member '{name}' must be a list of byte values")
    return bytes(v)

@dataclass
class EncryptedBackupEnvelope:
    salt: bytes
    iv: bytes
    data: bytes             # ciphertext || tag
    v: int = BACKUP_VERSION

    def to_dict(self):
        return dict(v=self.v, salt=list(self.salt), iv=list(self.iv), data=list(self.data))

    def to_json(self, indent=None):
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, d):
        if not isinstance(d, dict):
            raise InvalidFormat("Backup file must be a JSON object")

        v = d.get('v')
        _check_version(v)

        for name in ('salt', 'iv', 'data'):
            if name not in d:
                raise InvalidFormat(f"Backup file lacks '{name}'")

        return cls(salt=_byte_list(d['salt'], 'salt'), iv=_byte_list(d['iv'], 'iv'),
                    data=_byte_list(d['data'], 'data'), v=v)

    @classmethod
    def from_json(cls, text):
        try:
            d = json.loads(text)
        except ValueError:
            raise InvalidFormat("Backup file is not JSON")

        return cls.from_dict(d)

def _check_version(v):
    if isinstance(v, bool) or v != BACKUP_VERSION:
        raise InvalidFormat(f"Unsupported backup version: {v!r}")

def serialize(payload):
    # Sorted keys, compact, UTF-8: same bytes as JSON.stringify() on a
    # key-sorted object, and as Swift's JSONSerialization w/ .sortedKeys
    return json.dumps(payload.to_dict(), sort_keys=True, separators=(',', ':'),
                        ensure_ascii=False).encode('utf-8')

def deserialize(raw):
    try:
        d = json.loads(raw.decode('utf-8'))
    except ValueError:
        # includes UnicodeDecodeError
        raise InvalidFormat("Backup contents are not JSON")

    return BackupPayload.from_dict(d)

def derive_key(password, salt):
    # slow on purpose: keep it off any UI thread
    try:
        return CT_pbkdf2(password.encode('utf-8'), salt, PBKDF2_ITERATIONS, BACKUP_KEY_SIZE)
    except (ValueError, TypeError) as exc:
        # UnicodeEncodeError is a ValueError
        raise KeyDerivationFailed(f"Key derivation failed: {exc}")

def _check_lengths(env):
    # don't say which was wrong
    if len(env.salt) != BACKUP_SALT_SIZE or len(env.iv) != BACKUP_IV_SIZE \
            or len(env.data) <= GCM_TAG_SIZE:
        raise DecryptionFailed()

def seal(key, salt, iv, plaintext):
    assert len(salt) == BACKUP_SALT_SIZE and len(iv) == BACKUP_IV_SIZE
    return EncryptedBackupEnvelope(salt=bytes(salt), iv=bytes(iv),
                                    data=CT_aes_gcm_seal(key, iv, plaintext))

def open_envelope(key, env):
    # returns plaintext bytes or raises DecryptionFailed
    _check_version(env.v)
    _check_lengths(env)
    try:
        return CT_aes_gcm_open(key, env.iv, env.data)
    except InvalidTag:
        raise DecryptionFailed()

def _as_envelope(envelope):
    if isinstance(envelope, EncryptedBackupEnvelope):
        return envelope
    if isinstance(envelope, dict):
        return EncryptedBackupEnvelope.from_dict(envelope)
    return EncryptedBackupEnvelope.from_json(envelope)

def encrypt(payload, password):
    # payload: BackupPayload (or dict w/ JSON names). Fresh salt and iv each time.
    if isinstance(payload, dict):
        payload = BackupPayload.from_dict(payload)

    salt = os.urandom(BACKUP_SALT_SIZE)
    iv = os.urandom(BACKUP_IV_SIZE)

    return seal(derive_key(password, salt), salt, iv, serialize(payload))

def decrypt(envelope, password):
    # envelope: EncryptedBackupEnvelope, dict, or JSON text
    env = _as_envelope(envelope)

    # cheap checks before the expensive part
    _check_version(env.v)
    _check_lengths(env)

    return deserialize(open_envelope(derive_key(password, env.salt), env))

def _submit(executor, fn, *args):
    if executor is not None:
        return executor.submit(fn, *args)

    ex = ThreadPoolExecutor(max_workers=1, thread_name_prefix='celari-backup')
    try:
        return ex.submit(fn, *args)
    finally:
        # thread exits once the work is done; future.cancel() works until it starts
        ex.shutdown(wait=False)

def encrypt_in_background(payload, password, executor=None):
    return _submit(executor, encrypt, payload, password)

def decrypt_in_background(envelope, password, executor=None):
    return _submit(executor, decrypt, envelope, password)

def build_backup_payload(account, keystore=None):
    # What we'd export for this account: public info, plus the sensitive keys
    # found in secure storage (or on the account record itself).
    keys = load_account_keys(keystore, account.address) if keystore is not None else None
    if keys is None:
        keys = dict(secretKey=account.secret_key, privateKeyPkcs8=account.private_key_pkcs8,
                    salt=account.salt)

    return BackupPayload(address=account.address, public_key_x=account.public_key_x,
                            public_key_y=account.public_key_y, type=account.type,
                            label=account.label, deployed=account.deployed,
                            timestamp=now_iso(), credential_id=account.credential_id,
                            network=account.network,
                            secret_key=keys.get('secretKey'),
                            private_key_pkcs8=keys.get('privateKeyPkcs8'),
                            salt=keys.get('salt'))

def restore_account(payload, keystore=None):
    # Account record from a decrypted payload; sensitive keys go to the store (one write)
    if isinstance(payload, dict):
        payload = BackupPayload.from_dict(payload)

    acct = Account(address=payload.address, public_key_x=payload.public_key_x,
                    public_key_y=payload.public_key_y,
                    credential_id=payload.credential_id or '',
                    type=payload.type, label=payload.label, deployed=payload.deployed,
                    network=payload.network, salt=payload.salt,
                    secret_key=payload.secret_key, private_key_pkcs8=payload.private_key_pkcs8)

    if keystore is not None and (payload.secret_key or payload.private_key_pkcs8 or payload.salt):
        save_account_keys(keystore, payload.address, secret_key=payload.secret_key,
                            private_key_pkcs8=payload.private_key_pkcs8, salt=payload.salt)

    return acct

def default_backup_filename(label=None, now_ms=None):
    label = re.sub(r'\s+', '-', label or '') or 'account'
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f'celari-backup-{label}-{now_ms}.json'

# EOF
