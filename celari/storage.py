#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# storage.py
#
# Where sensitive key material lives between sessions. Passed in by the caller,
# never a global, so the codec and witness code can be tested without a platform.
#
# - each high-level operation here does at most one read and one write
# - values are bytes; stores that can only hold text keep them as base64
#
import os, json, base64, time

from .constants import *
from .exceptions import StorageError

class KeyStoreABC:
    #
    # Abstract base class. What a key store must do.
    #
    name = 'store'

    def get(self, key):
        # return bytes or None if absent
        raise NotImplementedError

    def set(self, key, value, require_biometric=False):
        raise NotImplementedError

    def delete(self, key):
        # absent key is not an error
        raise NotImplementedError

    def __repr__(self):
        return '<%s %s>' % (self.__class__.__name__, self.name)

class MemoryKeyStore(KeyStoreABC):
    # for tests; forgets everything at exit
    name = 'memory'

    def __init__(self):
        self.items = {}
        self.biometric = set()

    def get(self, key):
        return self.items.get(key)

    def set(self, key, value, require_biometric=False):
        self.items[key] = bytes(value)
        if require_biometric:
            self.biometric.add(key)
        else:
            self.biometric.discard(key)

    def delete(self, key):
        self.items.pop(key, None)
        self.biometric.discard(key)

class FileKeyStore(KeyStoreABC):
    #
    # JSON file, readable only by us. Like browser-extension storage: no
    # biometric gate, so require_biometric is accepted and ignored.
    #
    def __init__(self, path):
        self.path = os.path.expanduser(path)
        self.name = self.path

    def _read(self):
        if not os.path.exists(self.path):
            return {}

        try:
            with open(self.path, 'rt') as fd:
                return json.load(fd)
        except (OSError, ValueError) as exc:
            raise StorageError(f"Cannot read key store: {exc}")

    def _write(self, items):
        tmp = self.path + '.tmp'
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600), 'wt') as fd:
                json.dump(items, fd, indent=1, sort_keys=True)
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StorageError(f"Cannot write key store: {exc}")

    def get(self, key):
        v = self._read().get(key)
        return base64.b64decode(v) if v is not None else None

    def set(self, key, value, require_biometric=False):
        items = self._read()
        items[key] = base64.b64encode(bytes(value)).decode('ascii')
        self._write(items)

    def delete(self, key):
        items = self._read()
        if items.pop(key, None) is not None:
            self._write(items)

class KeychainKeyStore(KeyStoreABC):
    #
    # OS keychain via keyring. Biometric gating, where the OS has it, is set
    # up on the keychain item by the OS, not by us.
    #
    def __init__(self, service=KEYCHAIN_SERVICE):
        import keyring, keyring.errors
        self.kr = keyring
        self.service = service
        self.name = service

    def get(self, key):
        try:
            v = self.kr.get_password(self.service, key)
        except self.kr.errors.KeyringError as exc:
            raise StorageError(f"Keychain read failed: {exc}", key)

        return base64.b64decode(v) if v is not None else None

    def set(self, key, value, require_biometric=False):
        try:
            self.kr.set_password(self.service, key, base64.b64encode(bytes(value)).decode('ascii'))
        except self.kr.errors.KeyringError as exc:
            raise StorageError(f"Keychain write failed: {exc}", key)

    def delete(self, key):
        if self.get(key) is None:
            return
        try:
            self.kr.delete_password(self.service, key)
        except self.kr.errors.KeyringError as exc:
            raise StorageError(f"Keychain delete failed: {exc}", key)

#
# Sensitive account keys: one record per address.
#
_ACCOUNT_FIELDS = ('secretKey', 'privateKeyPkcs8', 'salt')

def _account_key(address):
    return ACCOUNT_KEYS_PREFIX + address.lower()

def save_account_keys(store, address, secret_key=None, private_key_pkcs8=None, salt=None,
                        require_biometric=True):
    rec = dict(secretKey=secret_key, privateKeyPkcs8=private_key_pkcs8, salt=salt)
    rec = {k: v for k, v in rec.items() if v is not None}

    store.set(_account_key(address), json.dumps(rec, sort_keys=True).encode('utf-8'),
                require_biometric=require_biometric)

def load_account_keys(store, address):
    # returns dict w/ secretKey, privateKeyPkcs8, salt (each optional), or None
    raw = store.get(_account_key(address))
    if raw is None:
        return None

    try:
        rec = json.loads(raw)
    except ValueError:
        raise StorageError("Account keys record is corrupt", _account_key(address))

    return {k: rec[k] for k in _ACCOUNT_FIELDS if k in rec}

def delete_account_keys(store, address):
    store.delete(_account_key(address))

#
# Registered passkey credentials (public info only).
#
def get_stored_credentials(store):
    raw = store.get(CREDENTIALS_KEY)
    if raw is None:
        return []

    try:
        return json.loads(raw)
    except ValueError:
        raise StorageError("Credential list is corrupt", CREDENTIALS_KEY)

def save_credential(store, credential, label=None):
    # append, or replace an entry with the same credential id
    have = [c for c in get_stored_credentials(store)
                if c.get('credentialId') != credential.credential_id]

    hx = credential.public_key_hex
    have.append(dict(credentialId=credential.credential_id,
                        publicKeyX=hx['x'], publicKeyY=hx['y'],
                        createdAt=int(time.time() * 1000),
                        label=label or f'Account {len(have)+1}'))

    store.set(CREDENTIALS_KEY, json.dumps(have).encode('utf-8'))

    return have[-1]

def clear_stored_credentials(store):
    store.delete(CREDENTIALS_KEY)

# EOF
