#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Wrappers for the crypto library. AKA API Cleanup
#
# My standards:
# - pubkeys: 64 bytes, X || Y, no 04 prefix
# - private keys: PKCS8 DER, which is what WebCrypto exports and imports
# - CT_sign gives what the library gives (DER); callers normalize
# - CT_sig_verify takes 64-byte r||s and returns bool, doesn't raise exception
# - messages to sign are NOT pre-hashed: SHA-256 happens inside sign/verify
#

__all__ = [ 'sha256s',
            'CT_pick_keypair', 'CT_priv_to_pubkey', 'CT_sign', 'CT_sig_verify',
            'CT_pubkey_to_spki', 'CT_pbkdf2', 'CT_aes_gcm_seal', 'CT_aes_gcm_open' ]

from hashlib import sha256

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

def sha256s(msg):
    # single-shot SHA256
    return sha256(msg).digest()

def _load_private(pkcs8):
    key = serialization.load_der_private_key(bytes(pkcs8), password=None)
    if not isinstance(key, ec.EllipticCurvePrivateKey) or key.curve.name != 'secp256r1':
        raise ValueError("need a P-256 private key")
    return key

def _raw_pubkey(pub):
    pt = pub.public_bytes(serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint)
    assert len(pt) == 65 and pt[0] == 0x04
    return pt[1:]

def _load_public(pubkey):
    assert len(pubkey) == 64
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), b'\x04' + bytes(pubkey))

def CT_pick_keypair():
    # return (pkcs8 der, pubkey[64])
    priv = ec.generate_private_key(ec.SECP256R1())
    pkcs8 = priv.private_bytes(serialization.Encoding.DER, serialization.PrivateFormat.PKCS8,
                                serialization.NoEncryption())
    return pkcs8, _raw_pubkey(priv.public_key())

def CT_priv_to_pubkey(pkcs8):
    return _raw_pubkey(_load_private(pkcs8).public_key())

def CT_sign(pkcs8, msg):
    # ECDSA w/ SHA-256 over msg; returns DER
    return _load_private(pkcs8).sign(bytes(msg), ec.ECDSA(hashes.SHA256()))

def CT_sig_verify(pubkey, msg, sig):
    assert len(sig) == 64
    r = int.from_bytes(sig[0:32], 'big')
    s = int.from_bytes(sig[32:64], 'big')
    try:
        _load_public(pubkey).verify(encode_dss_signature(r, s), bytes(msg),
                                        ec.ECDSA(hashes.SHA256()))
        return True
    except InvalidSignature:
        return False

def CT_pubkey_to_spki(pubkey):
    # X || Y => SubjectPublicKeyInfo DER (same as WebAuthn getPublicKey())
    return _load_public(pubkey).public_bytes(serialization.Encoding.DER,
                                serialization.PublicFormat.SubjectPublicKeyInfo)

def CT_pbkdf2(secret, salt, iterations, length):
    # PBKDF2-HMAC-SHA256
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=length, salt=bytes(salt),
                        iterations=iterations)
    return kdf.derive(bytes(secret))

def CT_aes_gcm_seal(key, iv, plaintext):
    # returns ciphertext || tag(16)
    return AESGCM(key).encrypt(bytes(iv), bytes(plaintext), None)

def CT_aes_gcm_open(key, iv, data):
    # data is ciphertext || tag(16); raises cryptography's InvalidTag
    return AESGCM(key).decrypt(bytes(iv), bytes(data), None)

# EOF
