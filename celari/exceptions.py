#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Exceptions
#

class CelariError(RuntimeError):
    # all of ours; CLI shows these w/o a traceback
    pass

class InvalidSignatureFormat(CelariError, ValueError):
    pass

class PublicKeyNotFound(CelariError, ValueError):
    pass

class CredentialCreationFailed(CelariError):
    pass

class AuthenticationFailed(CelariError):
    pass

class NoSigningMaterial(CelariError):
    pass

class InvalidFormat(CelariError, ValueError):
    # backup file or payload is not something we can read
    pass

class DecryptionFailed(CelariError):
    # never say which: bad password, or bad salt/iv/data
    MSG = "wrong password or corrupted backup"

    def __init__(self):
        super().__init__(self.MSG)

class KeyDerivationFailed(CelariError):
    pass

class StorageError(CelariError):
    def __init__(self, msg, key=None):
        self.key = key
        super().__init__(msg)

# EOF
