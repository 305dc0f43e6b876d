# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
import os
from base64 import urlsafe_b64encode, urlsafe_b64decode
from binascii import b2a_hex
from .constants import *
from .exceptions import InvalidSignatureFormat, PublicKeyNotFound

# show bytes as hex in a string
B2A = lambda x: b2a_hex(x).decode('ascii')

def bytes_to_hex(b):
    # 0x-prefixed, lowercase; how coordinates and hashes travel as text
    return '0x' + B2A(bytes(b))

def hex_to_bytes(h):
    # accepts with or without the 0x prefix
    if h[0:2] in ('0x', '0X'):
        h = h[2:]
    return bytes.fromhex(h)

def b64url_encode(b):
    # URL-safe alphabet, no padding (WebAuthn style)
    return urlsafe_b64encode(bytes(b)).rstrip(b'=').decode('ascii')

def b64url_decode(s):
    s = force_bytes(s)
    return urlsafe_b64decode(s + b'=' * (-len(s) % 4))

def force_bytes(foo):
    # convert strings to bytes where needed
    return foo.encode('ascii') if isinstance(foo, str) else foo

def pick_challenge(size=CHALLENGE_SIZE):
    # fresh random challenge (or user handle) for a ceremony
    return os.urandom(size)

def message_hash_bytes(h):
    # The message hash arrives as raw bytes, as a hex string (field element's
    # text form), or as an integer. Always hand back 32 big-endian bytes.
    if isinstance(h, (bytes, bytearray, memoryview)):
        h = bytes(h)
        if len(h) != HASH_SIZE:
            raise ValueError(f"Message hash must be exactly {HASH_SIZE} bytes, not {len(h)}")
        return h

    if isinstance(h, str):
        clean = h[2:] if h[0:2] in ('0x', '0X') else h
        if not clean:
            raise ValueError("Message hash is empty")
        if len(clean) % 2:
            clean = '0' + clean
        raw = bytes.fromhex(clean)
        if len(raw) > HASH_SIZE:
            raise ValueError("Message hash is wider than 32 bytes")
        return raw.rjust(HASH_SIZE, b'\0')

    if isinstance(h, int) and not isinstance(h, bool):
        if not (0 <= h < (1 << (8 * HASH_SIZE))):
            raise ValueError("Message hash out of range")
        return h.to_bytes(HASH_SIZE, 'big')

    raise ValueError(f"Cannot use {type(h).__name__} as a message hash")

def pad_to_32(comp):
    # DER integer -> exactly 32 bytes, big-endian
    # - DER adds a 0x00 when the high bit is set (would look negative)
    # - DER drops leading zero bytes, so short values are legal
    if len(comp) == COORD_SIZE:
        return bytes(comp)
    if len(comp) == COORD_SIZE + 1 and comp[0] == 0x00:
        return bytes(comp[1:])
    if len(comp) < COORD_SIZE:
        return bytes(COORD_SIZE - len(comp)) + bytes(comp)

    raise InvalidSignatureFormat(f"Unexpected component length: {len(comp)}")

def _der_integer(buf, pos):
    # parse "02 <len> <bytes>" at pos; return (value bytes, next pos)
    if pos + 2 > len(buf) or buf[pos] != DER_INTEGER:
        raise InvalidSignatureFormat("Invalid DER: expected INTEGER")

    ln = buf[pos+1]
    if ln & 0x80:
        # long-form length; never needed for P-256
        raise InvalidSignatureFormat("Invalid DER: long-form integer length")
    if ln == 0:
        raise InvalidSignatureFormat("Invalid DER: empty integer")

    end = pos + 2 + ln
    if end > len(buf):
        raise InvalidSignatureFormat("Invalid DER: integer overruns signature")

    return buf[pos+2:end], end

def normalize_signature(sig):
    # Convert an ECDSA P-256 signature into raw r||s (64 bytes)
    # - 64 bytes is taken to be raw already and returned unchanged
    # - otherwise must be DER: 30 <len> 02 <rlen> <r> 02 <slen> <s>
    sig = bytes(sig)

    if len(sig) == SIG_SIZE:
        return sig

    if not sig or sig[0] != DER_SEQUENCE:
        raise InvalidSignatureFormat("Invalid signature format")

    if len(sig) < 2 or (sig[1] & 0x80) or sig[1] != len(sig) - 2:
        raise InvalidSignatureFormat("Invalid DER: bad sequence length")

    r, pos = _der_integer(sig, 2)
    s, pos = _der_integer(sig, pos)

    if pos != len(sig):
        raise InvalidSignatureFormat("Invalid DER: trailing bytes")

    return pad_to_32(r) + pad_to_32(s)

def extract_p256_pubkey(spki):
    # Find the uncompressed point (04 || X || Y) inside SubjectPublicKeyInfo.
    # - header length depends on how the algorithm OIDs were encoded, so scan
    # - need at least 64 bytes after the marker, or it's not our point
    spki = bytes(spki)

    for i in range(len(spki) - 2*COORD_SIZE):
        if spki[i] == EC_POINT_UNCOMPRESSED:
            x = spki[i+1:i+1+COORD_SIZE]
            y = spki[i+1+COORD_SIZE:i+1+2*COORD_SIZE]
            return x, y

    raise PublicKeyNotFound("Cannot find uncompressed point in SPKI")

# EOF
